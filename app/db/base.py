"""
SQLAlchemy declarative base.

All models inherit from this Base class so Alembic sees a single metadata.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


# Deterministic constraint names keep Alembic migrations stable across dialects
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
