"""
Tournament Service

Builds the working set for a face-off session and drives it:
- TournamentPoolBuilder mixes owned items with discovery candidates
- TournamentSession keeps session-local ratings, ignored keys and rounds
- Matchmaker draws the next pair (20% "discovery rounds" by default)
- TournamentSessionStore keeps live sessions in process memory and drops
  the ones left idle past TOURNAMENT_SESSION_TTL_SECONDS

Discovery is best effort: any failure or timeout degrades the pool to the
user's own items.
"""
import asyncio
import logging
import random
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from curator.config.settings import settings
from curator.errors import ValidationError, NotFoundError, ErrorCode, ExternalServiceError
from curator.orm.item import Item, ItemStatus
from curator.repositories.collection_repository import CollectionRepository
from curator.repositories.item_repository import ItemRepository
from curator.services.discovery_service import DiscoveryService
from curator.services.elo_rating_service import EloRatingService
from curator.services.tournament_types import (
    Candidate,
    MatchResult,
    OwnedItem,
    PoolItem,
    TournamentCandidate,
)

logger = logging.getLogger(__name__)

DISCOVERY_QUERY = "top"

# First matching keyword wins; order matters for names like "anime movies"
DOMAIN_KEYWORDS = (
    ("anime", ("anime", "manga")),
    ("movie", ("movie", "film", "cinema", "tv", "show", "series")),
    ("game", ("game", "gaming")),
    ("music", ("music", "album", "song", "track", "artist")),
    ("book", ("book", "novel", "reading", "comic")),
    ("podcast", ("podcast",)),
)


def resolve_domain_hint(collection_name: Optional[str]) -> Optional[str]:
    """Map a collection name onto a discovery domain, or None to let discovery decide."""
    lowered = (collection_name or "").lower()
    for domain, keywords in DOMAIN_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return domain
    return None


class TournamentPoolBuilder:
    """Assembles a shuffled pool of owned items topped up with candidates."""

    def __init__(
        self,
        discovery: Optional[DiscoveryService] = None,
        rng: Optional[random.Random] = None,
        timeout: Optional[float] = None,
        description_max_length: Optional[int] = None,
    ):
        self.discovery = discovery
        self.rng = rng or random.Random()
        self.timeout = timeout if timeout is not None else settings.DISCOVERY_TIMEOUT_SECONDS
        self.description_max_length = description_max_length or settings.DESCRIPTION_MAX_LENGTH

    async def generate_pool(
        self,
        db: AsyncSession,
        user_id: int,
        collection_id: int,
        pool_size: Optional[int] = None,
        include_unseen: bool = True,
    ) -> List[PoolItem]:
        if pool_size is None:
            pool_size = settings.TOURNAMENT_POOL_SIZE
        if pool_size < 1:
            raise ValidationError("Pool size must be at least 1")

        collection = await CollectionRepository(db).get_or_raise(collection_id)
        items_repo = ItemRepository(db)

        owned_items = await items_repo.list_by_collection(
            collection_id,
            user_id=user_id,
            status=ItemStatus.ACTIVE,
            limit=pool_size,
        )
        owned = [
            PoolItem.owned(OwnedItem.from_item(item, self.description_max_length))
            for item in owned_items
        ]

        if len(owned) >= pool_size or not include_unseen:
            pool = owned[:pool_size]
            self.rng.shuffle(pool)
            logger.info(f"Tournament pool for collection {collection_id}: {len(pool)} owned")
            return pool

        deficit = pool_size - len(owned)

        # Ignored items count as "already known" too
        known_items = await items_repo.list_by_collection(collection_id, user_id=user_id)
        candidates = await self._discover(resolve_domain_hint(collection.name))
        challengers = self._select_candidates(candidates, known_items, deficit)

        pool = owned + [PoolItem.of_candidate(challenger) for challenger in challengers]
        self.rng.shuffle(pool)
        logger.info(
            f"Tournament pool for collection {collection_id}: "
            f"{len(owned)} owned + {len(challengers)} candidate(s)"
        )
        return pool

    async def _discover(self, domain_hint: Optional[str]) -> List[Candidate]:
        if self.discovery is None:
            return []
        try:
            return await asyncio.wait_for(
                self.discovery.search(DISCOVERY_QUERY, domain_hint),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Discovery timed out after {self.timeout}s; using owned items only")
        except ExternalServiceError as e:
            logger.warning(f"Discovery failed ({e.message}); using owned items only")
        except Exception as e:
            logger.warning(f"Discovery error {type(e).__name__}: {e}; using owned items only")
        return []

    def _select_candidates(
        self,
        candidates: List[Candidate],
        known_items: List[Item],
        limit: int,
    ) -> List[TournamentCandidate]:
        # Literal case-insensitive title match only: "Dune" and "Dune (2021)" both survive
        seen = {(item.name or "").strip().lower() for item in known_items}
        selected = []
        for candidate in candidates:
            if len(selected) >= limit:
                break
            title = (candidate.name or "").strip()
            if not title or title.lower() in seen:
                continue
            seen.add(title.lower())
            selected.append(TournamentCandidate.from_candidate(candidate, self.description_max_length))
        return selected


class TournamentSession:
    """
    One user's running tournament over a fixed pool.

    Ratings here are session-local; owned items are also persisted per vote,
    candidates only when promoted. Mutations that await the database hold
    `lock`, so two requests never act on the same entry at once.
    """

    def __init__(
        self,
        session_id: str,
        user_id: int,
        collection_id: int,
        pool: List[PoolItem],
        rng: Optional[random.Random] = None,
        discovery_round_chance: Optional[float] = None,
    ):
        self.session_id = session_id
        self.user_id = user_id
        self.collection_id = collection_id
        self.created_at = datetime.now(timezone.utc)
        self.last_used: float = 0.0
        self.lock = asyncio.Lock()
        self.round_count = 0
        self.ignored: Set[str] = set()
        self._entries: Dict[str, PoolItem] = {entry.key: entry for entry in pool}
        self._ratings: Dict[str, int] = {entry.key: entry.elo_score for entry in pool}
        self.matchmaker = Matchmaker(self, rng=rng, discovery_round_chance=discovery_round_chance)

    @property
    def pool(self) -> List[PoolItem]:
        return list(self._entries.values())

    def entry(self, key) -> PoolItem:
        entry = self._entries.get(str(key))
        if entry is None:
            raise NotFoundError("Tournament entry", key)
        return entry

    def rating(self, key) -> int:
        return self._ratings[self.entry(key).key]

    def active_entries(self) -> List[PoolItem]:
        return [entry for entry in self._entries.values() if entry.key not in self.ignored]

    def active_keys(self) -> List[str]:
        return [entry.key for entry in self.active_entries()]

    def apply_result(self, winner_key: str, loser_key: str, result: MatchResult) -> None:
        self._ratings[winner_key] = result.winner_elo
        self._ratings[loser_key] = result.loser_elo
        self.round_count += 1

    def replace_entry(self, old_key: str, new_entry: PoolItem) -> None:
        """Re-key an entry (a promoted candidate), keeping its rating and position."""
        rating = self._ratings.pop(old_key)
        self._entries = {
            (new_entry.key if key == old_key else key): (new_entry if key == old_key else entry)
            for key, entry in self._entries.items()
        }
        self._ratings[new_entry.key] = rating
        if old_key in self.ignored:
            self.ignored.discard(old_key)
            self.ignored.add(new_entry.key)
        pair = self.matchmaker.current_pair
        if pair is not None:
            self.matchmaker.current_pair = tuple(
                new_entry if entry.key == old_key else entry for entry in pair
            )

    def owned_scores(self) -> Dict[int, int]:
        return {
            entry.item.id: self._ratings[entry.key]
            for entry in self._entries.values()
            if entry.is_owned
        }

    def to_dict(self) -> dict:
        entries = []
        for entry in self._entries.values():
            payload = entry.to_dict()
            payload["elo_score"] = self._ratings[entry.key]
            payload["ignored"] = entry.key in self.ignored
            entries.append(payload)
        return {
            "session_id": self.session_id,
            "collection_id": self.collection_id,
            "round_count": self.round_count,
            "pool": entries,
        }


class Matchmaker:
    """
    Pair selection for a session.

    With probability discovery_round_chance, and when active candidates
    exist, pits a random owned entry against a random candidate. Otherwise
    draws two distinct entries, owned ones when at least two are active.
    """

    def __init__(
        self,
        session: TournamentSession,
        rng: Optional[random.Random] = None,
        discovery_round_chance: Optional[float] = None,
    ):
        self.session = session
        self.rng = rng or random.Random()
        if discovery_round_chance is None:
            discovery_round_chance = settings.DISCOVERY_ROUND_CHANCE
        self.discovery_round_chance = discovery_round_chance
        self.current_pair: Optional[Tuple[PoolItem, PoolItem]] = None

    def next_pair(self) -> Optional[Tuple[PoolItem, PoolItem]]:
        active = self.session.active_entries()
        owned = [entry for entry in active if entry.is_owned]
        candidates = [entry for entry in active if not entry.is_owned]

        if len(active) < 2:
            self.current_pair = None
            return None

        if owned and candidates and self.rng.random() < self.discovery_round_chance:
            pair = (self.rng.choice(owned), self.rng.choice(candidates))
        else:
            source = owned if len(owned) >= 2 else active
            first, second = self.rng.sample(source, 2)
            pair = (first, second)

        self.current_pair = pair
        return pair

    def skip(self) -> Optional[Tuple[PoolItem, PoolItem]]:
        return self.next_pair()

    def ignore(self, key: str) -> Optional[Tuple[PoolItem, PoolItem]]:
        entry = self.session.entry(key)
        self.session.ignored.add(entry.key)
        return self.next_pair()


class TournamentSessionStore:
    """
    Process-local registry of live sessions keyed by uuid.

    A session idle for longer than ttl_seconds is evicted the next time the
    store is touched and then reads as missing.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sessions: Dict[str, TournamentSession] = {}
        self._rng = rng
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.TOURNAMENT_SESSION_TTL_SECONDS
        self._clock = clock

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if now - session.last_used > self.ttl_seconds
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"Evicted {len(expired)} idle tournament(s)")

    def create(self, user_id: int, collection_id: int, pool: List[PoolItem]) -> TournamentSession:
        self._evict_expired()
        session_id = uuid.uuid4().hex
        session = TournamentSession(session_id, user_id, collection_id, pool, rng=self._rng)
        session.last_used = self._clock()
        self._sessions[session_id] = session
        logger.info(f"Opened tournament {session_id} for user {user_id} ({len(pool)} entries)")
        return session

    def get(self, session_id: str, user_id: int) -> TournamentSession:
        self._evict_expired()
        session = self._sessions.get(session_id)
        # Another user's session looks exactly like a missing one
        if session is None or session.user_id != user_id:
            raise NotFoundError("Tournament", session_id, code=ErrorCode.SESSION_NOT_FOUND)
        session.last_used = self._clock()
        return session

    def discard(self, session_id: str, user_id: int) -> None:
        self.get(session_id, user_id)
        del self._sessions[session_id]
        logger.info(f"Closed tournament {session_id}")

    def __len__(self) -> int:
        return len(self._sessions)


async def promote_candidate(
    db: AsyncSession,
    session: TournamentSession,
    key: str,
    engine: EloRatingService,
) -> Tuple[Item, PoolItem]:
    """
    Save a candidate as a real item at its current session rating.

    A second promotion of the same key waits for the first and then finds
    the candidate gone (NotFoundError).
    """
    async with session.lock:
        entry = session.entry(key)
        if entry.is_owned:
            raise ValidationError(f"'{entry.name}' is already in the collection")

        item = await engine.add_challenger_item(
            db,
            entry.candidate,
            session.collection_id,
            session.rating(entry.key),
        )
        promoted = PoolItem.owned(OwnedItem.from_item(item, settings.DESCRIPTION_MAX_LENGTH))
        session.replace_entry(entry.key, promoted)
        return item, promoted


async def ignore_entry(
    db: AsyncSession,
    session: TournamentSession,
    key: str,
    engine: EloRatingService,
) -> Optional[Tuple[PoolItem, PoolItem]]:
    """
    Drop an entry from the session; owned items are also hidden from
    future tournaments. Returns the next pair.
    """
    async with session.lock:
        entry = session.entry(key)
        if entry.is_owned:
            await engine.ignore_item(db, entry.item.id)
        return session.matchmaker.ignore(entry.key)
