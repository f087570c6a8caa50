"""
curator/repositories/item_repository.py
Item persistence.

Repositories only flush; the calling service owns commit and rollback so a
multi-row change lands in one transaction.
"""
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from curator.errors import NotFoundError, ValidationError, ErrorCode
from curator.orm.item import Item, ItemStatus

# Fields the generic update path may touch. elo_score is absent:
# it is only written through set_elo_scores.
PATCHABLE_FIELDS = frozenset({"name", "description", "image", "tier", "status", "origin", "external_id"})


class ItemRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, item_id: int) -> Optional[Item]:
        return await self.db.get(Item, item_id)

    async def get_or_raise(self, item_id: int) -> Item:
        item = await self.get(item_id)
        if item is None:
            raise NotFoundError("Item", item_id, code=ErrorCode.ITEM_NOT_FOUND)
        return item

    async def list_by_collection(
        self,
        collection_id: int,
        user_id: Optional[int] = None,
        status: Optional[ItemStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Item]:
        query = select(Item).where(Item.collection_id == collection_id)
        if user_id is not None:
            query = query.where(Item.user_id == user_id)
        if status is not None:
            query = query.where(Item.status == status)
        query = query.order_by(Item.id)
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_in_tier(self, collection_id: int, tier_name: str) -> int:
        result = await self.db.execute(
            select(func.count(Item.id)).where(
                Item.collection_id == collection_id,
                Item.tier == tier_name,
            )
        )
        return result.scalar_one()

    async def insert(self, item: Item) -> Item:
        self.db.add(item)
        await self.db.flush()
        return item

    async def update(self, item_id: int, patch: Mapping[str, Any]) -> Item:
        illegal = set(patch) - PATCHABLE_FIELDS
        if illegal:
            raise ValidationError(
                f"Fields cannot be patched: {', '.join(sorted(illegal))}",
                details={"fields": sorted(illegal)},
            )
        item = await self.get_or_raise(item_id)
        for field, value in patch.items():
            setattr(item, field, value)
        await self.db.flush()
        return item

    async def delete(self, item_id: int) -> None:
        item = await self.get_or_raise(item_id)
        await self.db.delete(item)
        await self.db.flush()

    async def rename_tier(self, collection_id: int, old_name: str, new_name: str) -> int:
        """Move every item of one tier name to another; returns rows touched."""
        result = await self.db.execute(
            update(Item)
            .where(Item.collection_id == collection_id, Item.tier == old_name)
            .values(tier=new_name)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def set_elo_scores(self, updates: Mapping[int, int]) -> List[Item]:
        """
        Write ratings for a batch of items.

        Every id must exist; a missing one raises before anything is written.
        """
        if not updates:
            return []
        result = await self.db.execute(select(Item).where(Item.id.in_(list(updates))))
        items: Dict[int, Item] = {item.id: item for item in result.scalars().all()}

        missing = [item_id for item_id in updates if item_id not in items]
        if missing:
            raise NotFoundError("Item", missing[0], code=ErrorCode.ITEM_NOT_FOUND)

        for item_id, elo in updates.items():
            items[item_id].elo_score = int(elo)
        await self.db.flush()
        return [items[item_id] for item_id in updates]
