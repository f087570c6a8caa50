"""
Tier Service

Tier definitions (custom ranks) and item tier assignment for one collection.

Rules:
- An item's tier is None ("unranked") or a tier name visible to its
  collection when it is assigned
- A collection without custom ranks uses the built-in S..F ladder, which is
  never persisted unless a custom rank is added on top of assigned items
- sort_order stays dense (0..N-1); reorders and deletions rewrite it in one
  transaction
- A rank cannot be deleted while any item still references its name
"""
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from curator.errors import ValidationError, TierNotEmptyError, ErrorCode
from curator.orm.custom_rank import CustomRank, Sentiment
from curator.orm.item import Item
from curator.repositories.collection_repository import CollectionRepository
from curator.repositories.custom_rank_repository import CustomRankRepository
from curator.repositories.item_repository import ItemRepository
from curator.services.transaction import write_transaction

logger = logging.getLogger(__name__)

DEFAULT_TIERS = ("S", "A", "B", "C", "D", "F")

# Sentinel drop target / label for items without a tier
UNRANKED = "Unranked"

MAX_RANK_NAME_LENGTH = 80

HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

LADDER_STYLE = {
    "S": ("#f87171", Sentiment.POSITIVE),
    "A": ("#fb923c", Sentiment.POSITIVE),
    "B": ("#facc15", Sentiment.NEUTRAL),
    "C": ("#4ade80", Sentiment.NEUTRAL),
    "D": ("#60a5fa", Sentiment.NEGATIVE),
    "F": ("#c084fc", Sentiment.NEGATIVE),
}


@dataclass(frozen=True)
class TierDefinition:
    """A tier as the board sees it, persisted or built in."""
    id: Optional[int]
    name: str
    color: Optional[str]
    sentiment: str
    sort_order: int
    is_builtin: bool = False

    @classmethod
    def from_rank(cls, rank: CustomRank) -> "TierDefinition":
        return cls(
            id=rank.id,
            name=rank.name,
            color=rank.color,
            sentiment=rank.sentiment.value,
            sort_order=rank.sort_order,
        )


def builtin_ladder() -> List[TierDefinition]:
    return [
        TierDefinition(
            id=None,
            name=name,
            color=LADDER_STYLE[name][0],
            sentiment=LADDER_STYLE[name][1].value,
            sort_order=index,
            is_builtin=True,
        )
        for index, name in enumerate(DEFAULT_TIERS)
    ]


# ==========================================
# Validation helpers
# ==========================================

def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Tier name is required")
    if len(cleaned) > MAX_RANK_NAME_LENGTH:
        raise ValidationError(f"Tier name must be at most {MAX_RANK_NAME_LENGTH} characters")
    if cleaned == UNRANKED:
        raise ValidationError(f"'{UNRANKED}' is reserved")
    return cleaned


def _clean_color(color: Optional[str]) -> Optional[str]:
    if color is None or color == "":
        return None
    if not HEX_COLOR.match(color):
        raise ValidationError(f"Invalid color '{color}', expected a hex value like #ff8800")
    return color


def _parse_sentiment(sentiment: Union[Sentiment, str, None]) -> Sentiment:
    if sentiment is None:
        return Sentiment.NEUTRAL
    if isinstance(sentiment, Sentiment):
        return sentiment
    try:
        return Sentiment(str(sentiment).lower())
    except ValueError:
        raise ValidationError(
            f"Invalid sentiment '{sentiment}'",
            details={"allowed": [s.value for s in Sentiment]},
        )


def _parse_rank_ids(ordered_ids: Iterable[Union[int, str]]) -> List[int]:
    parsed = []
    for raw in ordered_ids:
        try:
            parsed.append(int(raw))
        except (TypeError, ValueError):
            raise ValidationError(f"Malformed tier id '{raw}'", code=ErrorCode.MALFORMED_ID)
    return parsed


# ==========================================
# Tier definitions
# ==========================================

async def list_tiers(db: AsyncSession, collection_id: int) -> List[TierDefinition]:
    """Visible tiers in display order; the built-in ladder when none are defined."""
    await CollectionRepository(db).get_or_raise(collection_id)
    ranks = await CustomRankRepository(db).list_by_collection(collection_id)
    if not ranks:
        return builtin_ladder()
    return [TierDefinition.from_rank(rank) for rank in ranks]


async def get_tier_names(db: AsyncSession, collection_id: int) -> List[str]:
    return [tier.name for tier in await list_tiers(db, collection_id)]


async def _collection_has_tiered_items(db: AsyncSession, collection_id: int) -> bool:
    result = await db.execute(
        select(func.count(Item.id)).where(
            Item.collection_id == collection_id,
            Item.tier.is_not(None),
        )
    )
    return result.scalar_one() > 0


async def create_custom_rank(
    db: AsyncSession,
    collection_id: int,
    name: str,
    color: Optional[str] = None,
    sentiment: Union[Sentiment, str, None] = None,
) -> CustomRank:
    """
    Append a custom rank to the collection's tier list.

    If the collection is still on the built-in ladder and some items are
    already sorted into it, the ladder is persisted first so those
    assignments stay valid.
    """
    await CollectionRepository(db).get_or_raise(collection_id)
    ranks_repo = CustomRankRepository(db)

    name = _clean_name(name)
    color = _clean_color(color)
    parsed_sentiment = _parse_sentiment(sentiment)

    ranks = await ranks_repo.list_by_collection(collection_id)
    materialize_ladder = not ranks and await _collection_has_tiered_items(db, collection_id)
    existing_names = [rank.name for rank in ranks] or (list(DEFAULT_TIERS) if materialize_ladder else [])

    if name in existing_names:
        raise ValidationError(f"Tier '{name}' already exists in this collection")

    async with write_transaction(db, "create_custom_rank"):
        if materialize_ladder:
            logger.info(f"Persisting built-in ladder for collection {collection_id}")
            for tier in builtin_ladder():
                await ranks_repo.insert(CustomRank(
                    collection_id=collection_id,
                    name=tier.name,
                    color=tier.color,
                    sentiment=Sentiment(tier.sentiment),
                    sort_order=tier.sort_order,
                ))

        rank = await ranks_repo.insert(CustomRank(
            collection_id=collection_id,
            name=name,
            color=color,
            sentiment=parsed_sentiment,
            sort_order=len(existing_names),
        ))

    logger.info(f"Created tier '{rank.name}' (id={rank.id}) at position {rank.sort_order}")
    return rank


async def update_custom_rank(
    db: AsyncSession,
    rank_id: int,
    name: Optional[str] = None,
    color: Optional[str] = None,
    sentiment: Union[Sentiment, str, None] = None,
) -> CustomRank:
    """Edit a rank; a rename carries its items over to the new name."""
    ranks_repo = CustomRankRepository(db)
    rank = await ranks_repo.get_or_raise(rank_id)

    patch = {}
    old_name = rank.name
    if name is not None:
        new_name = _clean_name(name)
        if new_name != old_name:
            siblings = await ranks_repo.list_by_collection(rank.collection_id)
            if any(other.name == new_name for other in siblings if other.id != rank.id):
                raise ValidationError(f"Tier '{new_name}' already exists in this collection")
            patch["name"] = new_name
    if color is not None:
        patch["color"] = _clean_color(color)
    if sentiment is not None:
        patch["sentiment"] = _parse_sentiment(sentiment)

    if not patch:
        return rank

    async with write_transaction(db, "update_custom_rank"):
        if "name" in patch:
            moved = await ItemRepository(db).rename_tier(rank.collection_id, old_name, patch["name"])
            if moved:
                logger.info(f"Moved {moved} item(s) from '{old_name}' to '{patch['name']}'")
        rank = await ranks_repo.update(rank_id, patch)

    return rank


async def delete_custom_rank(db: AsyncSession, rank_id: int) -> None:
    """
    Delete a rank and close the gap in sort_order.

    Raises:
        TierNotEmptyError: items still reference the rank (nothing is changed)
    """
    ranks_repo = CustomRankRepository(db)
    rank = await ranks_repo.get_or_raise(rank_id)
    collection_id = rank.collection_id

    in_use = await ItemRepository(db).count_in_tier(collection_id, rank.name)
    if in_use:
        raise TierNotEmptyError(rank.name, in_use)

    async with write_transaction(db, "delete_custom_rank"):
        await ranks_repo.delete(rank_id)
        remaining = await ranks_repo.list_by_collection(collection_id)
        await ranks_repo.bulk_set_sort_order(
            collection_id,
            [(other.id, index) for index, other in enumerate(remaining)],
        )

    logger.info(f"Deleted tier id={rank_id} from collection {collection_id}")


async def reorder_tiers(
    db: AsyncSession,
    collection_id: int,
    ordered_ids: Sequence[Union[int, str]],
) -> None:
    """
    Rewrite sort_order as each rank's index in ordered_ids.

    ordered_ids must list every rank of the collection exactly once; the whole
    ordering commits together or not at all.
    """
    await CollectionRepository(db).get_or_raise(collection_id)
    ranks_repo = CustomRankRepository(db)

    rank_ids = _parse_rank_ids(ordered_ids)
    ranks = await ranks_repo.list_by_collection(collection_id)
    if not ranks:
        raise ValidationError(
            "The built-in ladder cannot be reordered; create a custom tier first",
            code=ErrorCode.INVALID_ORDER,
        )

    if len(set(rank_ids)) != len(rank_ids) or set(rank_ids) != {rank.id for rank in ranks}:
        raise ValidationError(
            "Ordering must contain every tier of the collection exactly once",
            code=ErrorCode.INVALID_ORDER,
            details={"expected": sorted(rank.id for rank in ranks), "received": rank_ids},
        )

    async with write_transaction(db, "reorder_tiers"):
        await ranks_repo.bulk_set_sort_order(
            collection_id,
            [(rank_id, index) for index, rank_id in enumerate(rank_ids)],
        )


# ==========================================
# Item assignment
# ==========================================

async def _load_item_in_collection(db: AsyncSession, item_id: int, collection_id: int) -> Item:
    item = await ItemRepository(db).get_or_raise(item_id)
    if item.collection_id != collection_id:
        raise ValidationError(
            f"Item {item_id} does not belong to collection {collection_id}",
            details={"item_id": item_id, "collection_id": collection_id},
        )
    return item


async def assign_item_to_tier(
    db: AsyncSession,
    item_id: int,
    tier_name: str,
    collection_id: int,
) -> Item:
    """Put an item into a tier. Re-assigning the same tier is a no-op."""
    item = await _load_item_in_collection(db, item_id, collection_id)

    names = await get_tier_names(db, collection_id)
    if tier_name not in names:
        raise ValidationError(
            f"Unknown tier '{tier_name}'",
            code=ErrorCode.UNKNOWN_TIER,
            details={"allowed": names},
        )

    if item.tier == tier_name:
        return item

    async with write_transaction(db, "assign_item_to_tier"):
        item = await ItemRepository(db).update(item_id, {"tier": tier_name})

    logger.debug(f"Item {item_id} -> tier '{tier_name}'")
    return item


async def remove_item_tier(db: AsyncSession, item_id: int, collection_id: int) -> Item:
    """Send an item back to the unranked pool."""
    item = await _load_item_in_collection(db, item_id, collection_id)
    if item.tier is None:
        return item

    async with write_transaction(db, "remove_item_tier"):
        item = await ItemRepository(db).update(item_id, {"tier": None})

    logger.debug(f"Item {item_id} -> unranked")
    return item
