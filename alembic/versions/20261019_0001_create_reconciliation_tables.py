"""create reconciliation tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(include_updated_at: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]
    if include_updated_at:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)
        )
    return columns


def upgrade() -> None:
    # ---- Ingestion tier ----
    op.create_table(
        "csv_uploads",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("record_type", sa.String(length=32), nullable=False, comment="inventory, sales"),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("filename", sa.String(length=255), nullable=True),
        sa.Column("file_size_bytes", sa.Integer(), nullable=True),
        sa.Column("rows_total", sa.Integer(), nullable=False),
        sa.Column("rows_valid", sa.Integer(), nullable=False),
        sa.Column("rows_invalid", sa.Integer(), nullable=False),
        sa.Column(
            "validation_errors",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Missing/unknown headers and sampled row errors",
        ),
        sa.Column(
            "upload_metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Raw/normalized headers and sample rows",
        ),
        sa.Column("transform_summary", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("transformed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_csv_uploads_tenant_id", "csv_uploads", ["tenant_id"], unique=False)
    op.create_index("ix_csv_uploads_status", "csv_uploads", ["status"], unique=False)
    op.create_index(
        "ix_csv_uploads_tenant_record_type",
        "csv_uploads",
        ["tenant_id", "record_type"],
        unique=False,
    )

    op.create_table(
        "csv_upload_batches",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("upload_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("batch_index", sa.Integer(), nullable=False),
        sa.Column("rows_total", sa.Integer(), nullable=False),
        sa.Column("rows_valid", sa.Integer(), nullable=False),
        sa.Column("rows_invalid", sa.Integer(), nullable=False),
        sa.Column(
            "rows",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="[{row, data}] sanitized valid rows",
        ),
        sa.Column(
            "errors",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="[{row, errors: [{field, message}]}]",
        ),
        *_timestamps(include_updated_at=False),
        sa.ForeignKeyConstraint(["upload_id"], ["csv_uploads.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "upload_id",
            "batch_index",
            name="uq_csv_upload_batches_upload_batch_index",
        ),
    )
    op.create_index("ix_csv_upload_batches_upload_id", "csv_upload_batches", ["upload_id"], unique=False)

    # ---- Raw POS tier ----
    op.create_table(
        "pos_catalog_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("catalog_object_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category_id", sa.String(length=255), nullable=True),
        sa.Column("category_name", sa.String(length=255), nullable=True),
        sa.Column(
            "variations",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="[{id, name, ordinal, price_money: {amount, currency}}]",
        ),
        sa.Column("raw_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id",
            "provider",
            "catalog_object_id",
            name="uq_pos_catalog_items_tenant_provider_object",
        ),
    )
    op.create_index(
        "ix_pos_catalog_items_tenant_provider",
        "pos_catalog_items",
        ["tenant_id", "provider"],
        unique=False,
    )

    op.create_table(
        "pos_orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("external_order_id", sa.String(length=255), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "external_order_id", name="uq_pos_orders_provider_order"),
    )
    op.create_index("ix_pos_orders_tenant_opened_at", "pos_orders", ["tenant_id", "opened_at"], unique=False)

    op.create_table(
        "pos_order_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("line_item_uid", sa.String(length=255), nullable=False),
        sa.Column(
            "catalog_object_id",
            sa.String(length=255),
            nullable=True,
            comment="Null for modifiers and ad-hoc charges",
        ),
        sa.Column("variation_id", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("variation_name", sa.String(length=255), nullable=True),
        sa.Column("quantity", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("base_price_money_amount", sa.BigInteger(), nullable=False),
        sa.Column("gross_sales_money_amount", sa.BigInteger(), nullable=False),
        sa.Column("total_tax_money_amount", sa.BigInteger(), nullable=False),
        sa.Column("total_discount_money_amount", sa.BigInteger(), nullable=False),
        sa.Column("total_money_amount", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["pos_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", "line_item_uid", name="uq_pos_order_items_order_line_item"),
    )
    op.create_index(
        "ix_pos_order_items_catalog_object_id",
        "pos_order_items",
        ["catalog_object_id"],
        unique=False,
    )

    # ---- Canonical tier ----
    op.create_table(
        "inventory_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "category",
            sa.String(length=50),
            nullable=False,
            comment="produce, proteins, dairy, dry_goods, beverages, frozen, paper_disposables, cleaning_chemicals",
        ),
        sa.Column("unit", sa.String(length=20), nullable=False),
        sa.Column("unit_cost", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("current_stock", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("minimum_stock", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("maximum_stock", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("storage_location", sa.String(length=120), nullable=True),
        sa.Column("variance_threshold_quantity", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("variance_threshold_dollar", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("high_value_flag", sa.Boolean(), nullable=False),
        sa.Column("needs_review", sa.Boolean(), nullable=False),
        sa.Column(
            "source_provider",
            sa.String(length=32),
            nullable=False,
            comment="csv, square, or another POS provider",
        ),
        sa.Column("source_item_id", sa.String(length=255), nullable=False),
        sa.Column(
            "provider_payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Tagged provider payload plus classification provenance",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id",
            "source_provider",
            "source_item_id",
            name="uq_inventory_items_tenant_source",
        ),
    )
    op.create_index("ix_inventory_items_tenant_id", "inventory_items", ["tenant_id"], unique=False)
    op.create_index("ix_inventory_items_tenant_name", "inventory_items", ["tenant_id", "name"], unique=False)
    op.create_index("ix_inventory_items_category", "inventory_items", ["category"], unique=False)

    op.create_table(
        "sales_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("inventory_item_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("quantity", sa.Numeric(precision=12, scale=4), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column("total_amount", sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column("source_provider", sa.String(length=32), nullable=False),
        sa.Column("source_order_id", sa.String(length=255), nullable=True),
        sa.Column("source_line_item_id", sa.String(length=255), nullable=False),
        sa.Column("provider_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(include_updated_at=False),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "source_provider",
            "source_line_item_id",
            name="uq_sales_transactions_provider_line_item",
        ),
    )
    op.create_index(
        "ix_sales_transactions_tenant_date",
        "sales_transactions",
        ["tenant_id", "transaction_date"],
        unique=False,
    )
    op.create_index(
        "ix_sales_transactions_inventory_item_id",
        "sales_transactions",
        ["inventory_item_id"],
        unique=False,
    )

    # ---- Run ledger ----
    op.create_table(
        "transform_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("upload_id", postgresql.UUID(as_uuid=True), nullable=True, comment="Null for POS raw-tier runs"),
        sa.Column("record_type", sa.String(length=32), nullable=False, comment="inventory, sales"),
        sa.Column("source_provider", sa.String(length=32), nullable=False),
        sa.Column("dry_run", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("processed_count", sa.Integer(), nullable=False),
        sa.Column("created_count", sa.Integer(), nullable=False),
        sa.Column("updated_count", sa.Integer(), nullable=False),
        sa.Column("skipped_count", sa.Integer(), nullable=False),
        sa.Column("error_count", sa.Integer(), nullable=False),
        sa.Column(
            "error_rate",
            sa.Numeric(precision=6, scale=3),
            nullable=False,
            comment="Percentage of processed rows that errored",
        ),
        sa.Column("summary", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("errors", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["upload_id"], ["csv_uploads.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transform_runs_tenant_id", "transform_runs", ["tenant_id"], unique=False)
    op.create_index("ix_transform_runs_upload_id", "transform_runs", ["upload_id"], unique=False)
    op.create_index("ix_transform_runs_status", "transform_runs", ["status"], unique=False)
    op.create_index(
        "ix_transform_runs_record_type_status",
        "transform_runs",
        ["record_type", "status"],
        unique=False,
    )
    op.create_index("ix_transform_runs_created_at", "transform_runs", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_transform_runs_created_at", table_name="transform_runs")
    op.drop_index("ix_transform_runs_record_type_status", table_name="transform_runs")
    op.drop_index("ix_transform_runs_status", table_name="transform_runs")
    op.drop_index("ix_transform_runs_upload_id", table_name="transform_runs")
    op.drop_index("ix_transform_runs_tenant_id", table_name="transform_runs")
    op.drop_table("transform_runs")

    op.drop_index("ix_sales_transactions_inventory_item_id", table_name="sales_transactions")
    op.drop_index("ix_sales_transactions_tenant_date", table_name="sales_transactions")
    op.drop_table("sales_transactions")

    op.drop_index("ix_inventory_items_category", table_name="inventory_items")
    op.drop_index("ix_inventory_items_tenant_name", table_name="inventory_items")
    op.drop_index("ix_inventory_items_tenant_id", table_name="inventory_items")
    op.drop_table("inventory_items")

    op.drop_index("ix_pos_order_items_catalog_object_id", table_name="pos_order_items")
    op.drop_table("pos_order_items")
    op.drop_index("ix_pos_orders_tenant_opened_at", table_name="pos_orders")
    op.drop_table("pos_orders")
    op.drop_index("ix_pos_catalog_items_tenant_provider", table_name="pos_catalog_items")
    op.drop_table("pos_catalog_items")

    op.drop_index("ix_csv_upload_batches_upload_id", table_name="csv_upload_batches")
    op.drop_table("csv_upload_batches")
    op.drop_index("ix_csv_uploads_tenant_record_type", table_name="csv_uploads")
    op.drop_index("ix_csv_uploads_status", table_name="csv_uploads")
    op.drop_index("ix_csv_uploads_tenant_id", table_name="csv_uploads")
    op.drop_table("csv_uploads")
