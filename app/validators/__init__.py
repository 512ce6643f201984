"""
app/validators package marker.
"""

from app.validators.row_validator import CSVRowValidator

__all__ = [
    "CSVRowValidator",
]
