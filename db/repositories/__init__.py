"""
Repository layer exports.
"""

from db.repositories.errors import (
    CanonicalPersistenceError,
    PersistenceTimeoutError,
    RepositoryError,
    UploadPersistenceError,
)
from db.repositories.transform_run_repository import TransformRunRepository
from db.repositories.upload_repository import UploadRepository

__all__ = [
    "CanonicalPersistenceError",
    "PersistenceTimeoutError",
    "RepositoryError",
    "TransformRunRepository",
    "UploadPersistenceError",
    "UploadRepository",
]
