"""
Repository-layer exceptions for upload and canonical persistence flows.
"""

from __future__ import annotations

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

# PostgreSQL query_canceled, raised when statement_timeout fires.
_QUERY_CANCELED_SQLSTATE = "57014"


class RepositoryError(RuntimeError):
    """Base exception for repository failures."""

    code = "PERSISTENCE_ERROR"

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": str(self)}


class UploadPersistenceError(RepositoryError):
    """Raised when upload rows or batches cannot be written."""


class CanonicalPersistenceError(RepositoryError):
    """Raised when a canonical inventory item or sales row cannot be written."""


class PersistenceTimeoutError(CanonicalPersistenceError):
    """Raised when a statement exceeds the configured statement timeout."""

    code = "PERSISTENCE_TIMEOUT"


def is_statement_timeout(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    return getattr(exc.orig, "sqlstate", None) == _QUERY_CANCELED_SQLSTATE


def wrap_persistence_error(exc: SQLAlchemyError, message: str) -> CanonicalPersistenceError:
    if is_statement_timeout(exc):
        return PersistenceTimeoutError(f"{message}: statement timeout exceeded")
    return CanonicalPersistenceError(message)
