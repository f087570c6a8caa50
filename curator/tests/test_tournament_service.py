"""
Tournament pool construction, sessions and matchmaking.
"""
import random
from datetime import timezone

import pytest
import pytest_asyncio

from curator.errors import ExternalServiceError, NotFoundError, ErrorCode
from curator.orm.item import ItemStatus
from curator.services.tournament_service import (
    DISCOVERY_QUERY,
    TournamentPoolBuilder,
    TournamentSession,
    TournamentSessionStore,
    resolve_domain_hint,
)
from curator.services.tournament_types import (
    Candidate,
    MatchResult,
    OwnedItem,
    PoolItem,
    PoolItemKind,
    TournamentCandidate,
    is_candidate_id,
    new_candidate_id,
)

from conftest import OWNER_ID, OTHER_USER_ID, FakeClock, FakeDiscovery


def films(*names, description=None):
    return [Candidate(name=name, description=description, origin="tmdb", external_id=str(i))
            for i, name in enumerate(names)]


def kinds(pool):
    return sorted(entry.kind.value for entry in pool)


@pytest_asyncio.fixture
async def three_owned(make_item):
    return [await make_item(name) for name in ("Alien", "Dune", "Heat")]


# =============================================================================
# Pool builder
# =============================================================================

async def test_pool_tops_up_with_candidates(db_session, collection, three_owned, rng):
    discovery = FakeDiscovery(films("Arrival", "Brazil", "Casablanca", "Drive", "Entourage",
                                    "Fargo", "Gattaca", "Hereditary"))
    builder = TournamentPoolBuilder(discovery, rng=rng)

    pool = await builder.generate_pool(db_session, OWNER_ID, collection.id, pool_size=10)

    assert len(pool) == 10
    assert kinds(pool) == ["CANDIDATE"] * 7 + ["OWNED"] * 3
    assert discovery.calls == [(DISCOVERY_QUERY, "movie")]
    for entry in pool:
        if entry.kind is PoolItemKind.CANDIDATE:
            assert is_candidate_id(entry.key)
            assert entry.elo_score == 1200


async def test_pool_owned_only_when_unseen_disabled(db_session, collection, three_owned, rng):
    discovery = FakeDiscovery(films("Arrival", "Brazil"))
    builder = TournamentPoolBuilder(discovery, rng=rng)

    pool = await builder.generate_pool(db_session, OWNER_ID, collection.id, pool_size=10, include_unseen=False)

    assert kinds(pool) == ["OWNED"] * 3
    assert discovery.calls == []


async def test_pool_full_of_owned_items_skips_discovery(db_session, collection, make_item, rng):
    for index in range(12):
        await make_item(f"Film {index}")
    discovery = FakeDiscovery(films("Arrival"))

    pool = await TournamentPoolBuilder(discovery, rng=rng).generate_pool(
        db_session, OWNER_ID, collection.id, pool_size=10
    )

    assert len(pool) == 10
    assert all(entry.is_owned for entry in pool)
    assert discovery.calls == []


async def test_pool_skips_ignored_and_foreign_items(db_session, collection, make_item, rng):
    await make_item("Alien")
    await make_item("Dune", status=ItemStatus.IGNORED)
    await make_item("Heat", user_id=OTHER_USER_ID)

    pool = await TournamentPoolBuilder(None, rng=rng).generate_pool(
        db_session, OWNER_ID, collection.id, pool_size=5
    )

    assert [entry.name for entry in pool] == ["Alien"]


async def test_pool_drops_literal_title_duplicates(db_session, collection, three_owned, rng):
    discovery = FakeDiscovery(films("ALIEN", "Dune (2021)", "heat", "Arrival", "arrival"))

    pool = await TournamentPoolBuilder(discovery, rng=rng).generate_pool(
        db_session, OWNER_ID, collection.id, pool_size=10
    )

    names = sorted(entry.name for entry in pool if not entry.is_owned)
    # "Dune (2021)" is not a literal match for "Dune" and survives
    assert names == ["Arrival", "Dune (2021)"]


async def test_pool_never_resurfaces_ignored_titles(db_session, collection, make_item, rng):
    await make_item("Alien")
    await make_item("Cats", status=ItemStatus.IGNORED)
    discovery = FakeDiscovery(films("Cats", "Arrival"))

    pool = await TournamentPoolBuilder(discovery, rng=rng).generate_pool(
        db_session, OWNER_ID, collection.id, pool_size=5
    )

    assert sorted(entry.name for entry in pool) == ["Alien", "Arrival"]


@pytest.mark.parametrize("error", [
    ExternalServiceError("discovery", "HTTP 503"),
    RuntimeError("connection reset"),
])
async def test_pool_degrades_on_discovery_error(db_session, collection, three_owned, rng, error, caplog):
    builder = TournamentPoolBuilder(FakeDiscovery(error=error), rng=rng)

    with caplog.at_level("WARNING"):
        pool = await builder.generate_pool(db_session, OWNER_ID, collection.id, pool_size=10)

    assert kinds(pool) == ["OWNED"] * 3
    assert any("owned items only" in record.message for record in caplog.records)


async def test_pool_degrades_on_discovery_timeout(db_session, collection, three_owned, rng):
    builder = TournamentPoolBuilder(FakeDiscovery(films("Arrival"), delay=1.0), rng=rng, timeout=0.01)

    pool = await builder.generate_pool(db_session, OWNER_ID, collection.id, pool_size=10)

    assert kinds(pool) == ["OWNED"] * 3


async def test_pool_truncates_candidate_descriptions(db_session, collection, rng):
    discovery = FakeDiscovery(films("Arrival", description="x" * 1000))

    pool = await TournamentPoolBuilder(discovery, rng=rng).generate_pool(
        db_session, OWNER_ID, collection.id, pool_size=3
    )

    description = pool[0].candidate.description
    assert len(description) == 300
    assert description.endswith("...")


async def test_pool_missing_collection(db_session):
    with pytest.raises(NotFoundError):
        await TournamentPoolBuilder(None).generate_pool(db_session, OWNER_ID, 404, pool_size=5)


@pytest.mark.parametrize("name, hint", [
    ("Favorite Movies", "movie"),
    ("Anime Films", "anime"),
    ("Board games", "game"),
    ("Albums of 2024", "music"),
    ("Summer Reading", "book"),
    ("Podcasts", "podcast"),
    ("Cheeses", None),
    (None, None),
])
def test_resolve_domain_hint(name, hint):
    assert resolve_domain_hint(name) == hint


# =============================================================================
# Sessions and matchmaking
# =============================================================================

def owned_entry(item_id, name, elo_score=1200):
    return PoolItem.owned(OwnedItem(id=item_id, name=name, elo_score=elo_score))


def candidate_entry(name):
    return PoolItem.of_candidate(TournamentCandidate(temp_id=new_candidate_id(), name=name))


def test_pool_item_rejects_mismatched_payload():
    with pytest.raises(ValueError):
        PoolItem(kind=PoolItemKind.OWNED)
    with pytest.raises(ValueError):
        PoolItem(kind=PoolItemKind.CANDIDATE, item=OwnedItem(id=1, name="Alien"))


def test_session_tracks_ratings_by_key():
    alien = owned_entry(1, "Alien", elo_score=1250)
    session = TournamentSession("s1", OWNER_ID, 1, [alien, candidate_entry("Arrival")])

    assert session.rating(1) == 1250
    assert session.rating("1") == 1250
    assert session.owned_scores() == {1: 1250}
    with pytest.raises(NotFoundError):
        session.entry("42")


def test_discovery_round_pits_owned_against_candidate():
    pool = [owned_entry(1, "Alien"), owned_entry(2, "Dune"), candidate_entry("Arrival")]
    session = TournamentSession("s1", OWNER_ID, 1, pool, rng=random.Random(7), discovery_round_chance=1.0)

    for _ in range(10):
        first, second = session.matchmaker.next_pair()
        assert first.is_owned
        assert not second.is_owned


def test_standard_round_prefers_owned_entries():
    pool = [owned_entry(1, "Alien"), owned_entry(2, "Dune"), candidate_entry("Arrival")]
    session = TournamentSession("s1", OWNER_ID, 1, pool, rng=random.Random(7), discovery_round_chance=0.0)

    for _ in range(10):
        first, second = session.matchmaker.next_pair()
        assert first.key != second.key
        assert first.is_owned and second.is_owned


def test_standard_round_falls_back_to_any_entries():
    pool = [owned_entry(1, "Alien"), candidate_entry("Arrival"), candidate_entry("Brazil")]
    session = TournamentSession("s1", OWNER_ID, 1, pool, rng=random.Random(3), discovery_round_chance=0.0)

    first, second = session.matchmaker.next_pair()
    assert first.key != second.key


def test_ignore_removes_entry_from_future_pairs():
    alien, dune, heat = owned_entry(1, "Alien"), owned_entry(2, "Dune"), owned_entry(3, "Heat")
    session = TournamentSession("s1", OWNER_ID, 1, [alien, dune, heat], rng=random.Random(1))

    session.matchmaker.ignore(dune.key)

    for _ in range(10):
        pair = session.matchmaker.skip()
        assert dune.key not in {entry.key for entry in pair}
    assert session.active_keys() == ["1", "3"]


def test_no_pair_when_fewer_than_two_active():
    alien, dune = owned_entry(1, "Alien"), owned_entry(2, "Dune")
    session = TournamentSession("s1", OWNER_ID, 1, [alien, dune], rng=random.Random(1))

    assert session.matchmaker.ignore(dune.key) is None
    assert session.matchmaker.current_pair is None


def test_replace_entry_keeps_rating_and_current_pair():
    alien, arrival = owned_entry(1, "Alien"), candidate_entry("Arrival")
    session = TournamentSession("s1", OWNER_ID, 1, [alien, arrival], rng=random.Random(1))
    session.matchmaker.next_pair()
    session.apply_result(arrival.key, alien.key, MatchResult(1216, 1184))

    promoted = owned_entry(9, "Arrival", elo_score=1216)
    session.replace_entry(arrival.key, promoted)

    assert session.rating(9) == 1216
    assert {entry.key for entry in session.matchmaker.current_pair} == {"1", "9"}
    assert [entry.key for entry in session.pool] == ["1", "9"]


def test_session_store_scopes_by_user():
    store = TournamentSessionStore(rng=random.Random(1))
    session = store.create(OWNER_ID, 1, [owned_entry(1, "Alien"), owned_entry(2, "Dune")])

    assert store.get(session.session_id, OWNER_ID) is session
    with pytest.raises(NotFoundError) as exc_info:
        store.get(session.session_id, OTHER_USER_ID)
    assert exc_info.value.code == ErrorCode.SESSION_NOT_FOUND

    store.discard(session.session_id, OWNER_ID)
    assert len(store) == 0
    with pytest.raises(NotFoundError):
        store.get(session.session_id, OWNER_ID)


def test_session_store_evicts_idle_sessions():
    clock = FakeClock()
    store = TournamentSessionStore(rng=random.Random(1), ttl_seconds=600, clock=clock)
    idle = store.create(OWNER_ID, 1, [owned_entry(1, "Alien"), owned_entry(2, "Dune")])
    busy = store.create(OWNER_ID, 1, [owned_entry(3, "Heat"), owned_entry(4, "Ran")])

    clock.now += 400
    store.get(busy.session_id, OWNER_ID)
    clock.now += 400

    with pytest.raises(NotFoundError) as exc_info:
        store.get(idle.session_id, OWNER_ID)
    assert exc_info.value.code == ErrorCode.SESSION_NOT_FOUND
    assert store.get(busy.session_id, OWNER_ID) is busy
    assert len(store) == 1


def test_session_store_evicts_on_create():
    clock = FakeClock()
    store = TournamentSessionStore(ttl_seconds=60, clock=clock)
    for _ in range(3):
        store.create(OWNER_ID, 1, [owned_entry(1, "Alien")])

    clock.now += 61
    fresh = store.create(OTHER_USER_ID, 1, [owned_entry(2, "Dune")])

    assert len(store) == 1
    assert store.get(fresh.session_id, OTHER_USER_ID) is fresh


def test_session_created_at_is_utc_aware():
    session = TournamentSession("s1", OWNER_ID, 1, [owned_entry(1, "Alien")])
    assert session.created_at.tzinfo is timezone.utc
