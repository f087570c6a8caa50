"""
curator/orm/activity.py
Append-only activity feed entries
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, String, JSON

from curator.orm.base import BaseModel, OwnedMixin


class ActivityType(str, PyEnum):
    """Types of events written to the feed"""
    MATCH_RECORDED = "match_recorded"
    CHALLENGER_ADDED = "challenger_added"


class Activity(OwnedMixin, BaseModel):
    __tablename__ = "activities"

    type = Column(String(40), nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<Activity(id={self.id}, type='{self.type}')>"
