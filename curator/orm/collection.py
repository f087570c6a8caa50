"""
curator/orm/collection.py
A user's collection of curated media (movies, games, books, ...)
"""
from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from curator.orm.base import BaseModel, OwnedMixin


class Collection(OwnedMixin, BaseModel):
    """
    Owner of items and custom ranks.

    The name doubles as the domain hint for discovery searches.
    """
    __tablename__ = "collections"

    name = Column(String(120), nullable=False)

    items = relationship("Item", back_populates="collection", cascade="all, delete-orphan")
    custom_ranks = relationship(
        "CustomRank",
        back_populates="collection",
        cascade="all, delete-orphan",
        order_by="CustomRank.sort_order",
    )

    def __repr__(self):
        return f"<Collection(id={self.id}, name='{self.name}')>"
