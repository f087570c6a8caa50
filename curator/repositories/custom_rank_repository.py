"""
curator/repositories/custom_rank_repository.py
CustomRank persistence. Flush only; services commit.
"""
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curator.errors import NotFoundError, ValidationError, ErrorCode
from curator.orm.custom_rank import CustomRank


class CustomRankRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, rank_id: int) -> Optional[CustomRank]:
        return await self.db.get(CustomRank, rank_id)

    async def get_or_raise(self, rank_id: int) -> CustomRank:
        rank = await self.get(rank_id)
        if rank is None:
            raise NotFoundError("Custom rank", rank_id, code=ErrorCode.RANK_NOT_FOUND)
        return rank

    async def list_by_collection(self, collection_id: int) -> List[CustomRank]:
        result = await self.db.execute(
            select(CustomRank)
            .where(CustomRank.collection_id == collection_id)
            .order_by(CustomRank.sort_order, CustomRank.name)
        )
        return list(result.scalars().all())

    async def insert(self, rank: CustomRank) -> CustomRank:
        self.db.add(rank)
        await self.db.flush()
        return rank

    async def update(self, rank_id: int, patch: Mapping[str, Any]) -> CustomRank:
        rank = await self.get_or_raise(rank_id)
        for field, value in patch.items():
            setattr(rank, field, value)
        await self.db.flush()
        return rank

    async def delete(self, rank_id: int) -> None:
        rank = await self.get_or_raise(rank_id)
        await self.db.delete(rank)
        await self.db.flush()

    async def bulk_set_sort_order(
        self,
        collection_id: int,
        orders: Iterable[Tuple[int, int]],
    ) -> List[CustomRank]:
        """
        Assign (rank_id, sort_order) pairs in one flush.

        Every rank must belong to the collection, otherwise nothing is touched.
        """
        orders = list(orders)
        ranks = {rank.id: rank for rank in await self.list_by_collection(collection_id)}
        foreign = [rank_id for rank_id, _ in orders if rank_id not in ranks]
        if foreign:
            raise ValidationError(
                f"Rank {foreign[0]} does not belong to collection {collection_id}",
                code=ErrorCode.INVALID_ORDER,
            )
        for rank_id, sort_order in orders:
            ranks[rank_id].sort_order = sort_order
        await self.db.flush()
        return sorted(ranks.values(), key=lambda r: r.sort_order)
