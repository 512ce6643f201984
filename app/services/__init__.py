"""
app/services package marker.
"""

from app.services.csv_upload_service import CSVUploadService, get_csv_upload_service
from app.services.transform_service import TransformService, get_transform_service

__all__ = [
    "CSVUploadService",
    "get_csv_upload_service",
    "TransformService",
    "get_transform_service",
]
