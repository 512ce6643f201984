"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.inventory_item import InventoryItem
from db.models.pos_raw import PosCatalogItem, PosOrder, PosOrderItem
from db.models.sales_transaction import SalesTransaction
from db.models.transform_run import TransformRun
from db.models.upload import Upload, UploadBatch

__all__ = [
    "InventoryItem",
    "PosCatalogItem",
    "PosOrder",
    "PosOrderItem",
    "SalesTransaction",
    "TransformRun",
    "Upload",
    "UploadBatch",
]
