"""
Elo Rating Engine

Pairwise "face-off" rating updates for items in a collection.

Guarantees:
- Fixed K-factor per engine instance (K_FACTOR unless configured otherwise)
- Ratings are written only through update_item_scores, one transaction
  per batch; a single failure leaves every rating untouched
- Promoted challengers keep the rating they earned during the session
- Match outcomes are logged with the names the caller saw, never
  re-resolved by id
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from curator.config.settings import settings
from curator.errors import ValidationError
from curator.orm.item import Item, ItemStatus
from curator.repositories.collection_repository import CollectionRepository
from curator.repositories.item_repository import ItemRepository
from curator.services.activity_logger import log_match_outcome, log_challenger_added
from curator.services.tournament_types import (
    MatchOutcome,
    MatchResult,
    TournamentCandidate,
    parse_item_id,
)
from curator.services.transaction import write_transaction

if TYPE_CHECKING:
    from curator.services.tournament_service import TournamentSession

logger = logging.getLogger(__name__)

K_FACTOR = 32

ScoreUpdates = Union[Mapping[Union[int, str], int], Iterable[Mapping[str, Any]]]


def _normalize_updates(updates: ScoreUpdates) -> Dict[int, int]:
    """Accept {id: elo} or [{"id": ..., "elo": ...}]; later duplicates win."""
    if isinstance(updates, Mapping):
        pairs = updates.items()
    else:
        pairs = []
        for update in updates:
            if "id" not in update or "elo" not in update:
                raise ValidationError("Each score update needs 'id' and 'elo'")
            pairs.append((update["id"], update["elo"]))

    normalized: Dict[int, int] = {}
    for raw_id, elo in pairs:
        try:
            rating = int(elo)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid rating '{elo}' for item {raw_id}")
        normalized[parse_item_id(raw_id)] = rating
    return normalized


class EloRatingService:
    """Server-side Elo calculator and rating writer."""

    def __init__(self, k_factor: Optional[int] = None):
        if k_factor is None:
            k_factor = settings.ELO_K_FACTOR or K_FACTOR
        self.k_factor = k_factor

    @staticmethod
    def expected_score(ra: int, rb: int) -> float:
        """Ea = 1 / (1 + 10 ** ((Rb - Ra) / 400))."""
        return 1.0 / (1.0 + math.pow(10.0, (rb - ra) / 400.0))

    def calculate(self, winner_rating: int, loser_rating: int) -> MatchResult:
        """Winner scores 1, loser 0; both new ratings rounded independently."""
        expected_winner = self.expected_score(winner_rating, loser_rating)
        expected_loser = self.expected_score(loser_rating, winner_rating)

        new_winner = int(round(winner_rating + self.k_factor * (1 - expected_winner)))
        new_loser = int(round(loser_rating + self.k_factor * (0 - expected_loser)))
        return MatchResult(winner_elo=new_winner, loser_elo=new_loser)

    @staticmethod
    async def update_item_scores(db: AsyncSession, updates: ScoreUpdates) -> None:
        """
        Persist a batch of ratings atomically.

        Raises:
            ValidationError: malformed or candidate ids in the batch
            NotFoundError: an id does not exist (nothing is written)
            PersistenceError: the transaction failed (nothing is written)
        """
        normalized = _normalize_updates(updates)
        if not normalized:
            return

        async with write_transaction(db, "update_item_scores"):
            await ItemRepository(db).set_elo_scores(normalized)

        logger.info(f"Updated ratings for {len(normalized)} item(s)")

    async def record_match(
        self,
        db: AsyncSession,
        session: "TournamentSession",
        winner_id: str,
        loser_id: str,
        winner_name: Optional[str] = None,
        loser_name: Optional[str] = None,
    ) -> MatchResult:
        """
        Score one face-off between two entries of a tournament session.

        Owned participants are persisted first; the session's ratings only
        move once that write succeeded. Candidates are scored in the session
        alone until promoted.
        """
        async with session.lock:
            winner = session.entry(winner_id)
            loser = session.entry(loser_id)
            if winner.key == loser.key:
                raise ValidationError("An item cannot face itself")
            for entry in (winner, loser):
                if entry.key in session.ignored:
                    raise ValidationError(f"'{entry.name}' was ignored in this tournament")

            result = self.calculate(session.rating(winner.key), session.rating(loser.key))

            persisted = {}
            if winner.is_owned:
                persisted[winner.item.id] = result.winner_elo
            if loser.is_owned:
                persisted[loser.item.id] = result.loser_elo
            if persisted:
                await self.update_item_scores(db, persisted)

            session.apply_result(winner.key, loser.key, result)

            outcome = MatchOutcome(
                winner_id=winner.key,
                winner_name=winner_name or winner.name,
                loser_id=loser.key,
                loser_name=loser_name or loser.name,
            )
            await log_match_outcome(db, session.user_id, outcome, result)

        logger.debug(
            f"Match: {outcome.winner_name} ({result.winner_elo}) beat "
            f"{outcome.loser_name} ({result.loser_elo})"
        )
        return result

    @staticmethod
    async def add_challenger_item(
        db: AsyncSession,
        candidate: TournamentCandidate,
        collection_id: int,
        initial_elo: int,
    ) -> Item:
        """
        Persist a tournament candidate as a real item.

        initial_elo is the candidate's current session rating, so matches it
        already played are kept.
        """
        collection = await CollectionRepository(db).get_or_raise(collection_id)
        name = (candidate.name or "").strip()
        if not name:
            raise ValidationError("Candidate has no name")

        async with write_transaction(db, "add_challenger_item"):
            item = await ItemRepository(db).insert(Item(
                collection_id=collection.id,
                user_id=collection.user_id,
                name=name,
                description=candidate.description,
                image=candidate.image,
                origin=candidate.origin,
                external_id=candidate.external_id,
                elo_score=int(initial_elo),
                status=ItemStatus.ACTIVE,
            ))

        logger.info(f"Saved challenger '{item.name}' as item {item.id} at {item.elo_score}")
        await log_challenger_added(db, collection.user_id, item)
        return item

    @staticmethod
    async def ignore_item(db: AsyncSession, item_id: Union[int, str]) -> Item:
        """Hide an item from future tournaments; tier and rating are kept."""
        parsed_id = parse_item_id(item_id)
        async with write_transaction(db, "ignore_item"):
            item = await ItemRepository(db).update(parsed_id, {"status": ItemStatus.IGNORED})
        return item
