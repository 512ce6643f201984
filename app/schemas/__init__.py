"""
app/schemas package marker.
"""

from app.schemas.transforms import (
    PosSalesTransformRequest,
    TransformRequest,
    TransformResultResponse,
    TransformRunListResponse,
    TransformRunResponse,
)
from app.schemas.uploads import FieldErrorResponse, UploadStatusResponse, UploadSummaryResponse

__all__ = [
    "FieldErrorResponse",
    "PosSalesTransformRequest",
    "TransformRequest",
    "TransformResultResponse",
    "TransformRunListResponse",
    "TransformRunResponse",
    "UploadStatusResponse",
    "UploadSummaryResponse",
]
