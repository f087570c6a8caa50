"""
Tier board controller.

Glues the drag state machine, keyboard shortcuts and tournament votes to
OptimisticSync and the HTTP client. Every recognized gesture becomes one
speculative patch plus one server call; unrecognized gestures do nothing.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from curator.client.api_client import RankingApiClient
from curator.client.optimistic_sync import (
    ErrorCallback,
    OptimisticSync,
    OrderPatch,
    RatingPatch,
    ShadowState,
    TierPatch,
)
from curator.orm.item import DEFAULT_ELO
from curator.services.elo_rating_service import EloRatingService
from curator.services.tier_service import TierDefinition
from curator.state_machines.drag_state import (
    AssignTier,
    DragKind,
    RemoveTier,
    ReorderTiers,
    TierCommand,
    TierDragStateMachine,
)

logger = logging.getLogger(__name__)


class UnrankedSort(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    ALPHABETICAL = "alphabetical"


@dataclass(frozen=True)
class BoardItem:
    id: int
    name: str
    created_at: str = ""
    image: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BoardItem":
        return cls(
            id=int(payload["id"]),
            name=payload.get("name") or "",
            created_at=payload.get("created_at") or "",
            image=payload.get("image"),
        )


def _tier_from_payload(payload: Dict[str, Any]) -> TierDefinition:
    return TierDefinition(
        id=payload.get("id"),
        name=payload["name"],
        color=payload.get("color"),
        sentiment=payload.get("sentiment") or "neutral",
        sort_order=payload.get("sort_order", 0),
        is_builtin=bool(payload.get("is_builtin")),
    )


class TierBoard:
    def __init__(
        self,
        api: RankingApiClient,
        collection_id: int,
        on_error: Optional[ErrorCallback] = None,
        k_factor: Optional[int] = None,
    ):
        self.api = api
        self.collection_id = collection_id
        self.sync = OptimisticSync(on_error=on_error)
        self.machine = TierDragStateMachine()
        self.engine = EloRatingService(k_factor)
        self._tiers: Dict[str, TierDefinition] = {}
        self._builtin: List[TierDefinition] = []
        self._items: Dict[int, BoardItem] = {}

    async def load(self) -> None:
        tiers = [_tier_from_payload(t) for t in await self.api.list_tiers(self.collection_id)]
        items = await self.api.list_items(self.collection_id)

        self._builtin = [tier for tier in tiers if tier.is_builtin]
        self._tiers = {str(tier.id): tier for tier in tiers if not tier.is_builtin}
        self._items = {int(item["id"]): BoardItem.from_payload(item) for item in items}

        self.sync.reset(ShadowState(
            item_tiers={int(item["id"]): item.get("tier") for item in items},
            rank_order=[tier.id for tier in tiers if not tier.is_builtin],
            ratings={str(item["id"]): item.get("elo_score", DEFAULT_ELO) for item in items},
        ))
        self.machine.set_tiers(self.tiers)

    # ==========================================
    # Views
    # ==========================================

    @property
    def tiers(self) -> List[TierDefinition]:
        """Visible tiers in the order the user currently sees them."""
        if not self._tiers:
            return list(self._builtin)
        order = self.sync.view.rank_order
        return [self._tiers[str(rank_id)] for rank_id in order if str(rank_id) in self._tiers]

    def items_in_tier(self, tier_name: str) -> List[BoardItem]:
        view = self.sync.view
        return [item for item_id, item in self._items.items() if view.item_tiers.get(item_id) == tier_name]

    def unranked(self, sort: UnrankedSort = UnrankedSort.NEWEST) -> List[BoardItem]:
        view = self.sync.view
        pool = [item for item_id, item in self._items.items() if view.item_tiers.get(item_id) is None]
        sort = UnrankedSort(sort)
        if sort is UnrankedSort.ALPHABETICAL:
            return sorted(pool, key=lambda item: item.name.lower())
        return sorted(pool, key=lambda item: (item.created_at, item.id), reverse=sort is UnrankedSort.NEWEST)

    def rating(self, key) -> int:
        return self.sync.view.ratings.get(str(key), DEFAULT_ELO)

    # ==========================================
    # Gestures
    # ==========================================

    def start_drag(self, source_id, kind: DragKind = DragKind.ITEM) -> None:
        self.machine.set_tiers(self.tiers)
        self.machine.start_drag(source_id, kind)

    def drop(self, target_id) -> Optional["asyncio.Task[bool]"]:
        command = self.machine.drop(target_id)
        if command is None:
            return None
        try:
            return self._dispatch(command)
        finally:
            self.machine.finish()

    def press_key(self, item_id, key: str) -> Optional["asyncio.Task[bool]"]:
        self.machine.set_tiers(self.tiers)
        command = self.machine.key_command(item_id, key)
        if command is None:
            return None
        return self._dispatch(command)

    def vote(
        self,
        session_id: str,
        winner_key: str,
        loser_key: str,
        winner_name: Optional[str] = None,
        loser_name: Optional[str] = None,
    ) -> "asyncio.Task[bool]":
        """Speculatively score a face-off and record it on the server."""
        result = self.engine.calculate(self.rating(winner_key), self.rating(loser_key))
        patch = RatingPatch.from_mapping({
            str(winner_key): result.winner_elo,
            str(loser_key): result.loser_elo,
        })
        return self.sync.dispatch(
            patch,
            lambda: self.api.record_match(session_id, winner_key, loser_key, winner_name, loser_name),
        )

    def _dispatch(self, command: TierCommand) -> Optional["asyncio.Task[bool]"]:
        logger.debug(f"Board {self.collection_id}: {command}")
        if isinstance(command, AssignTier):
            if self.sync.view.item_tiers.get(command.item_id) == command.tier_name:
                return None
            return self.sync.dispatch(
                TierPatch(command.item_id, command.tier_name),
                lambda: self.api.assign_tier(self.collection_id, command.item_id, command.tier_name),
            )
        if isinstance(command, RemoveTier):
            if self.sync.view.item_tiers.get(command.item_id) is None:
                return None
            return self.sync.dispatch(
                TierPatch(command.item_id, None),
                lambda: self.api.remove_tier(self.collection_id, command.item_id),
            )
        if isinstance(command, ReorderTiers):
            return self.sync.dispatch(
                OrderPatch(command.ordered_ids),
                lambda: self.api.reorder_tiers(self.collection_id, command.ordered_ids),
            )
        raise TypeError(f"Unsupported command {command!r}")
