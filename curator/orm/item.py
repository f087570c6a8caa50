"""
curator/orm/item.py
One piece of media inside one collection.

tier and elo_score are the two axes managed by the ranking core:
- tier is written only by the tier service
- elo_score is written only by the rating service batch path
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship

from curator.orm.base import BaseModel, OwnedMixin, isoformat, utcnow

DEFAULT_ELO = 1200


class ItemStatus(str, PyEnum):
    """Visibility of an item in tournaments"""
    ACTIVE = "ACTIVE"
    IGNORED = "IGNORED"


class Item(OwnedMixin, BaseModel):
    __tablename__ = "items"

    collection_id = Column(
        Integer,
        ForeignKey("collections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    image = Column(String(500), nullable=True)

    # Where a promoted challenger came from
    origin = Column(String(50), nullable=True)
    external_id = Column(String(100), nullable=True)

    # None means "unranked"
    tier = Column(String(80), nullable=True, index=True)
    elo_score = Column(Integer, default=DEFAULT_ELO, nullable=False)
    status = Column(SQLEnum(ItemStatus), default=ItemStatus.ACTIVE, nullable=False)

    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    collection = relationship("Collection", back_populates="items")

    __table_args__ = (
        Index("ix_items_collection_status", "collection_id", "status"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "collection_id": self.collection_id,
            "name": self.name,
            "description": self.description,
            "image": self.image,
            "tier": self.tier,
            "elo_score": self.elo_score,
            "status": self.status.value if self.status else None,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Item(id={self.id}, name='{self.name}', tier={self.tier}, elo={self.elo_score})>"
