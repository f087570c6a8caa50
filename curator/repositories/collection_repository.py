"""
curator/repositories/collection_repository.py
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from curator.errors import NotFoundError, ErrorCode
from curator.orm.collection import Collection


class CollectionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, collection_id: int) -> Optional[Collection]:
        return await self.db.get(Collection, collection_id)

    async def get_or_raise(self, collection_id: int) -> Collection:
        collection = await self.get(collection_id)
        if collection is None:
            raise NotFoundError("Collection", collection_id, code=ErrorCode.COLLECTION_NOT_FOUND)
        return collection
