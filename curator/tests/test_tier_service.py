"""
Tier definitions and tier assignment.

Covers the board invariants:
- an item's tier is None or a current tier name of its collection
- reordering is idempotent and dense
- a referenced rank cannot be deleted and nothing changes when that is tried
"""
import pytest
from sqlalchemy import select

from curator.errors import ValidationError, NotFoundError, TierNotEmptyError, ErrorCode
from curator.orm.collection import Collection
from curator.orm.custom_rank import CustomRank, Sentiment
from curator.services import tier_service
from curator.services.tier_service import DEFAULT_TIERS, UNRANKED

from conftest import OWNER_ID, sort_orders, tier_of


# =============================================================================
# Built-in ladder
# =============================================================================

async def test_list_tiers_falls_back_to_builtin_ladder(db_session, collection):
    tiers = await tier_service.list_tiers(db_session, collection.id)

    assert [tier.name for tier in tiers] == list(DEFAULT_TIERS)
    assert all(tier.is_builtin and tier.id is None for tier in tiers)
    assert [tier.sort_order for tier in tiers] == list(range(6))

    # Nothing was persisted
    result = await db_session.execute(select(CustomRank))
    assert result.scalars().all() == []


async def test_list_tiers_uses_custom_ranks_in_order(db_session, collection, make_ranks):
    await make_ranks("Loved", "Liked", "Meh")
    tiers = await tier_service.list_tiers(db_session, collection.id)
    assert [tier.name for tier in tiers] == ["Loved", "Liked", "Meh"]
    assert not any(tier.is_builtin for tier in tiers)


async def test_list_tiers_missing_collection(db_session):
    with pytest.raises(NotFoundError) as exc_info:
        await tier_service.list_tiers(db_session, 999)
    assert exc_info.value.code == ErrorCode.COLLECTION_NOT_FOUND


# =============================================================================
# Assignment
# =============================================================================

async def test_assign_to_builtin_tier(db_session, collection, make_item):
    item = await make_item("Alien")
    updated = await tier_service.assign_item_to_tier(db_session, item.id, "S", collection.id)
    assert updated.tier == "S"
    assert await tier_of(db_session, item.id) == "S"


async def test_assign_is_idempotent(db_session, collection, make_item):
    item = await make_item("Alien")
    await tier_service.assign_item_to_tier(db_session, item.id, "A", collection.id)
    again = await tier_service.assign_item_to_tier(db_session, item.id, "A", collection.id)
    assert again.tier == "A"
    assert await tier_of(db_session, item.id) == "A"


async def test_assign_unknown_tier_rejected(db_session, collection, make_item, make_ranks):
    await make_ranks("Loved", "Liked")
    item = await make_item("Alien")

    # "S" is only valid while the collection has no custom ranks
    with pytest.raises(ValidationError) as exc_info:
        await tier_service.assign_item_to_tier(db_session, item.id, "S", collection.id)

    assert exc_info.value.code == ErrorCode.UNKNOWN_TIER
    assert exc_info.value.details["allowed"] == ["Loved", "Liked"]
    assert await tier_of(db_session, item.id) is None


async def test_assign_missing_item(db_session, collection):
    with pytest.raises(NotFoundError) as exc_info:
        await tier_service.assign_item_to_tier(db_session, 4242, "S", collection.id)
    assert exc_info.value.code == ErrorCode.ITEM_NOT_FOUND


async def test_assign_item_from_other_collection(db_session, collection, make_item):
    other = Collection(user_id=OWNER_ID, name="Games")
    db_session.add(other)
    await db_session.commit()
    item = await make_item("Portal", collection_id=other.id)

    with pytest.raises(ValidationError):
        await tier_service.assign_item_to_tier(db_session, item.id, "S", collection.id)
    assert await tier_of(db_session, item.id) is None


async def test_assign_then_remove_leaves_unranked(db_session, collection, make_item):
    item = await make_item("Alien")
    await tier_service.assign_item_to_tier(db_session, item.id, "B", collection.id)
    removed = await tier_service.remove_item_tier(db_session, item.id, collection.id)

    assert removed.tier is None
    assert await tier_of(db_session, item.id) is None


async def test_remove_unranked_item_is_noop(db_session, collection, make_item):
    item = await make_item("Alien")
    removed = await tier_service.remove_item_tier(db_session, item.id, collection.id)
    assert removed.tier is None


# =============================================================================
# Custom rank CRUD
# =============================================================================

async def test_create_first_rank_without_tiered_items(db_session, collection, make_item):
    await make_item("Alien")
    rank = await tier_service.create_custom_rank(db_session, collection.id, "Masterpiece", "#ff8800")

    assert rank.sort_order == 0
    assert rank.sentiment == Sentiment.NEUTRAL
    assert await sort_orders(db_session, collection.id) == {"Masterpiece": 0}


async def test_create_first_rank_keeps_existing_assignments(db_session, collection, make_item):
    item = await make_item("Alien", tier="S")

    rank = await tier_service.create_custom_rank(db_session, collection.id, "Guilty Pleasure")

    orders = await sort_orders(db_session, collection.id)
    assert orders == {"S": 0, "A": 1, "B": 2, "C": 3, "D": 4, "F": 5, "Guilty Pleasure": 6}
    assert rank.sort_order == 6
    assert "S" in await tier_service.get_tier_names(db_session, collection.id)
    assert await tier_of(db_session, item.id) == "S"


async def test_create_rank_appends(db_session, collection, make_ranks):
    await make_ranks("Loved", "Liked")
    rank = await tier_service.create_custom_rank(db_session, collection.id, "Meh", sentiment="negative")
    assert rank.sort_order == 2
    assert rank.sentiment == Sentiment.NEGATIVE


@pytest.mark.parametrize("name", ["", "   ", UNRANKED])
async def test_create_rank_rejects_bad_names(db_session, collection, name):
    with pytest.raises(ValidationError):
        await tier_service.create_custom_rank(db_session, collection.id, name)


async def test_create_rank_rejects_duplicate(db_session, collection, make_ranks):
    await make_ranks("Loved")
    with pytest.raises(ValidationError):
        await tier_service.create_custom_rank(db_session, collection.id, "Loved")


async def test_create_rank_rejects_bad_color_and_sentiment(db_session, collection):
    with pytest.raises(ValidationError):
        await tier_service.create_custom_rank(db_session, collection.id, "Loved", color="orange")
    with pytest.raises(ValidationError):
        await tier_service.create_custom_rank(db_session, collection.id, "Loved", sentiment="ecstatic")


async def test_rename_rank_carries_items(db_session, collection, make_ranks, make_item):
    loved, _ = await make_ranks("Loved", "Liked")
    item = await make_item("Alien", tier="Loved")

    renamed = await tier_service.update_custom_rank(db_session, loved.id, name="Adored", color="#abc")

    assert renamed.name == "Adored"
    assert renamed.color == "#abc"
    assert await tier_of(db_session, item.id) == "Adored"
    assert await tier_service.get_tier_names(db_session, collection.id) == ["Adored", "Liked"]


async def test_rename_rank_onto_sibling_rejected(db_session, collection, make_ranks, make_item):
    loved, _ = await make_ranks("Loved", "Liked")
    item = await make_item("Alien", tier="Loved")

    with pytest.raises(ValidationError):
        await tier_service.update_custom_rank(db_session, loved.id, name="Liked")
    assert await tier_of(db_session, item.id) == "Loved"


async def test_delete_referenced_rank_rejected(db_session, collection, make_ranks, make_item):
    ranks = await make_ranks("Loved", "Liked", "Meh")
    await make_item("Alien", tier="Liked")
    before = await sort_orders(db_session, collection.id)

    with pytest.raises(TierNotEmptyError) as exc_info:
        await tier_service.delete_custom_rank(db_session, ranks[1].id)

    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {"tier": "Liked", "item_count": 1}
    assert await sort_orders(db_session, collection.id) == before


async def test_delete_rank_redensifies(db_session, collection, make_ranks):
    ranks = await make_ranks("Loved", "Liked", "Meh")
    await tier_service.delete_custom_rank(db_session, ranks[0].id)
    assert await sort_orders(db_session, collection.id) == {"Liked": 0, "Meh": 1}


async def test_delete_missing_rank(db_session, collection):
    with pytest.raises(NotFoundError) as exc_info:
        await tier_service.delete_custom_rank(db_session, 77)
    assert exc_info.value.code == ErrorCode.RANK_NOT_FOUND


# =============================================================================
# Reordering
# =============================================================================

async def test_reorder_assigns_index_positions(db_session, collection, make_ranks):
    s, a, b = await make_ranks("S", "A", "B")
    await tier_service.reorder_tiers(db_session, collection.id, [a.id, b.id, s.id])
    assert await sort_orders(db_session, collection.id) == {"A": 0, "B": 1, "S": 2}


async def test_reorder_is_idempotent(db_session, collection, make_ranks):
    s, a, b = await make_ranks("S", "A", "B")
    order = [b.id, s.id, a.id]

    await tier_service.reorder_tiers(db_session, collection.id, order)
    first = await sort_orders(db_session, collection.id)
    await tier_service.reorder_tiers(db_session, collection.id, order)

    assert await sort_orders(db_session, collection.id) == first == {"B": 0, "S": 1, "A": 2}


async def test_reorder_accepts_string_ids(db_session, collection, make_ranks):
    s, a = await make_ranks("S", "A")
    await tier_service.reorder_tiers(db_session, collection.id, [str(a.id), str(s.id)])
    assert await sort_orders(db_session, collection.id) == {"A": 0, "S": 1}


@pytest.mark.parametrize("mangle", [
    lambda ids: ids[:-1],              # missing one
    lambda ids: ids + [ids[0]],        # duplicate
    lambda ids: ids[:-1] + [9999],     # foreign id
])
async def test_reorder_requires_permutation(db_session, collection, make_ranks, mangle):
    ranks = await make_ranks("S", "A", "B")
    before = await sort_orders(db_session, collection.id)

    with pytest.raises(ValidationError) as exc_info:
        await tier_service.reorder_tiers(db_session, collection.id, mangle([r.id for r in ranks]))

    assert exc_info.value.code == ErrorCode.INVALID_ORDER
    assert await sort_orders(db_session, collection.id) == before


async def test_reorder_malformed_id(db_session, collection, make_ranks):
    await make_ranks("S")
    with pytest.raises(ValidationError) as exc_info:
        await tier_service.reorder_tiers(db_session, collection.id, ["not-a-number"])
    assert exc_info.value.code == ErrorCode.MALFORMED_ID


async def test_reorder_builtin_ladder_rejected(db_session, collection):
    with pytest.raises(ValidationError):
        await tier_service.reorder_tiers(db_session, collection.id, [1, 2, 3])
