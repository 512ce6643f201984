"""
Repository for transform run ledger persistence and status lookup.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from app.domain.reconciliation import TransformResult
from db.models.transform_run import TransformRun, TransformRunStatus


class TransformRunRepository:
    def __init__(self, session: Session, *, flagged_review_limit: int = 25) -> None:
        self._session = session
        self._flagged_review_limit = flagged_review_limit

    def create_run(
        self,
        *,
        tenant_id: str,
        record_type: str,
        source_provider: str,
        dry_run: bool,
        upload_id: uuid.UUID | None = None,
    ) -> TransformRun:
        run = TransformRun(
            tenant_id=tenant_id,
            upload_id=upload_id,
            record_type=record_type,
            source_provider=source_provider,
            dry_run=dry_run,
            status=TransformRunStatus.PROCESSING,
            started_at=datetime.now(timezone.utc),
        )
        self._session.add(run)
        self._session.flush()
        self._session.refresh(run)
        return run

    def get_run(self, run_id: uuid.UUID) -> TransformRun | None:
        return self._session.get(TransformRun, run_id)

    def list_runs(
        self,
        *,
        tenant_id: str | None = None,
        upload_id: uuid.UUID | None = None,
        record_type: str | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[TransformRun]:
        stmt: Select[tuple[TransformRun]] = select(TransformRun)

        if tenant_id:
            stmt = stmt.where(TransformRun.tenant_id == tenant_id)
        if upload_id:
            stmt = stmt.where(TransformRun.upload_id == upload_id)
        if record_type:
            stmt = stmt.where(TransformRun.record_type == record_type)
        if status:
            stmt = stmt.where(TransformRun.status == status)

        stmt = stmt.order_by(TransformRun.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def mark_completed(self, *, run_id: uuid.UUID, result: TransformResult) -> TransformRun | None:
        run = self.get_run(run_id)
        if run is None:
            return None
        self._apply_result(run, result)
        run.status = TransformRunStatus.COMPLETED
        run.completed_at = datetime.now(timezone.utc)
        run.error_message = None
        return run

    def mark_failed(
        self,
        *,
        run_id: uuid.UUID,
        error_message: str,
        result: TransformResult | None = None,
    ) -> TransformRun | None:
        run = self.get_run(run_id)
        if run is None:
            return None
        if result is not None:
            self._apply_result(run, result)
        run.status = TransformRunStatus.FAILED
        run.completed_at = datetime.now(timezone.utc)
        run.error_message = error_message
        return run

    def _apply_result(self, run: TransformRun, result: TransformResult) -> None:
        summary = result.summary
        run.processed_count = summary.processed
        run.created_count = summary.created
        run.updated_count = summary.updated
        run.skipped_count = summary.skipped
        run.error_count = summary.errors
        run.error_rate = Decimal(str(result.error_rate))
        run.summary = result.summary_payload(flagged_limit=self._flagged_review_limit)
        run.errors = [error.to_dict() for error in result.errors]
