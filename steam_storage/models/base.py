"""
SQLAlchemy 2.0 async DeclarativeBase for Steam Storage.

All models inherit from this Base.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Timezone-aware current UTC time used for every history timestamp."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all Steam Storage database models."""
    pass
