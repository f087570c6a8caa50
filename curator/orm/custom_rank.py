"""
curator/orm/custom_rank.py
User-defined tier for one collection.

sort_order is kept dense (0..N-1) by the tier service. There is no unique
constraint on (collection_id, sort_order): a reorder swaps values inside a
single flush and SQLite checks uniqueness per statement.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, ForeignKey, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import relationship

from curator.orm.base import BaseModel


class Sentiment(str, PyEnum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class CustomRank(BaseModel):
    __tablename__ = "custom_ranks"

    collection_id = Column(
        Integer,
        ForeignKey("collections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(80), nullable=False)
    color = Column(String(20), nullable=True)
    sentiment = Column(SQLEnum(Sentiment), default=Sentiment.NEUTRAL, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    collection = relationship("Collection", back_populates="custom_ranks")

    __table_args__ = (
        UniqueConstraint("collection_id", "name", name="uq_custom_rank_collection_name"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "collection_id": self.collection_id,
            "name": self.name,
            "color": self.color,
            "sentiment": self.sentiment.value if self.sentiment else None,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<CustomRank(id={self.id}, name='{self.name}', sort_order={self.sort_order})>"
