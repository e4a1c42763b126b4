"""
Declarative base.

All SQLAlchemy models inherit from Base so Alembic and init scripts see the
full metadata.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""
    pass
