"""
SQLAlchemy 2.0 DeclarativeBase for the price tracker.

All models inherit from this Base.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all catalog and price models."""
    pass
