"""
Repository layer exports.
"""

from db.repositories.errors import (
    LocationNotFoundError,
    PersistenceError,
    VisibilityRepositoryError,
)
from db.repositories.result_writer import WRITE_KINDS, ResultWriter, SQLAlchemyResultWriter
from db.repositories.visibility_repository import SQLAlchemyVisibilityRepository

__all__ = [
    "ResultWriter",
    "SQLAlchemyResultWriter",
    "SQLAlchemyVisibilityRepository",
    "WRITE_KINDS",
    "VisibilityRepositoryError",
    "PersistenceError",
    "LocationNotFoundError",
]
