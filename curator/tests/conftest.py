"""
Shared fixtures: an in-memory database per test plus seed helpers.
"""
import asyncio
import random
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from curator.orm.base import Base
from curator.orm.collection import Collection
from curator.orm.custom_rank import CustomRank, Sentiment
from curator.orm.item import Item, ItemStatus
from curator.services.discovery_service import DiscoveryService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

OWNER_ID = 1
OTHER_USER_ID = 2


class FakeClock:
    """Settable stand-in for time.time / time.monotonic."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeDiscovery(DiscoveryService):
    """In-process discovery returning canned candidates or failing on demand."""

    def __init__(self, candidates=None, error=None, delay=0.0):
        self.candidates = candidates or []
        self.error = error
        self.delay = delay
        self.calls = []

    async def search(self, query, domain_hint=None):
        self.calls.append((query, domain_hint))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.candidates)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def collection(db_session: AsyncSession) -> Collection:
    collection = Collection(user_id=OWNER_ID, name="Favorite Movies")
    db_session.add(collection)
    await db_session.commit()
    await db_session.refresh(collection)
    return collection


@pytest_asyncio.fixture
async def make_item(db_session: AsyncSession, collection: Collection):
    """Factory: persist an item in the default collection."""

    async def _make(
        name: str,
        tier: Optional[str] = None,
        elo_score: int = 1200,
        status: ItemStatus = ItemStatus.ACTIVE,
        user_id: int = OWNER_ID,
        collection_id: Optional[int] = None,
    ) -> Item:
        item = Item(
            collection_id=collection_id or collection.id,
            user_id=user_id,
            name=name,
            tier=tier,
            elo_score=elo_score,
            status=status,
        )
        db_session.add(item)
        await db_session.commit()
        await db_session.refresh(item)
        return item

    return _make


@pytest_asyncio.fixture
async def make_ranks(db_session: AsyncSession, collection: Collection):
    """Factory: persist custom ranks in the given order (sort_order 0..N-1)."""

    async def _make(*names: str) -> List[CustomRank]:
        ranks = []
        for index, name in enumerate(names):
            rank = CustomRank(
                collection_id=collection.id,
                name=name,
                sentiment=Sentiment.NEUTRAL,
                sort_order=index,
            )
            db_session.add(rank)
            ranks.append(rank)
        await db_session.commit()
        for rank in ranks:
            await db_session.refresh(rank)
        return ranks

    return _make


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


async def elo_of(db: AsyncSession, item_id: int) -> int:
    """Read a rating straight from the table, bypassing the identity map."""
    result = await db.execute(select(Item.elo_score).where(Item.id == item_id))
    return result.scalar_one()


async def tier_of(db: AsyncSession, item_id: int) -> Optional[str]:
    result = await db.execute(select(Item.tier).where(Item.id == item_id))
    return result.scalar_one()


async def sort_orders(db: AsyncSession, collection_id: int) -> dict:
    result = await db.execute(
        select(CustomRank.name, CustomRank.sort_order).where(CustomRank.collection_id == collection_id)
    )
    return {name: order for name, order in result.all()}
