"""
curator/orm/base.py
Declarative base and shared columns for the ranking tables
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base, declared_attr

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC now; DateTime columns store no zone."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class BaseModel(Base):
    """Surrogate key plus creation time; the unranked pool sorts on created_at."""
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class OwnedMixin:
    """
    Rows scoped to one user.

    Identity is resolved upstream; user_id is an opaque reference and every
    query that serves a caller filters on it.
    """

    @declared_attr
    def user_id(cls):
        return Column(Integer, nullable=False, index=True)
