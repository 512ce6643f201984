"""
app/repositories package marker.
"""

from app.repositories.inventory_item_repository import InventoryItemRepository
from app.repositories.pos_raw_repository import PosRawRepository
from app.repositories.sales_transaction_repository import SalesTransactionRepository

__all__ = [
    "InventoryItemRepository",
    "PosRawRepository",
    "SalesTransactionRepository",
]
