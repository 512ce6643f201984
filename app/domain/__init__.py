"""
app/domain package marker.
"""

from app.domain.reconciliation import (
    CanonicalInventoryItem,
    CanonicalSalesTransaction,
    TransformResult,
    TransformSummary,
)
from app.domain.upload import FieldError, ParseSummary, UploadBatchPayload

__all__ = [
    "CanonicalInventoryItem",
    "CanonicalSalesTransaction",
    "FieldError",
    "ParseSummary",
    "TransformResult",
    "TransformSummary",
    "UploadBatchPayload",
]
