"""
Tier Board Drag State Machine

Turns drag-and-drop (and keyboard) input on the tier board into tier
commands. Input modality is reduced to (source_id, target_id, kind) drop
events.

State Flow:
idle → dragging → committing → idle   (drop on a recognized target)
idle → dragging → idle                (drop on nothing / unknown target)

Only drops on a recognized target produce a command; everything else is a
no-op and issues no call.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from curator.services.tier_service import TierDefinition, UNRANKED

logger = logging.getLogger(__name__)

# Keys 1..6 pick the n-th visible tier
TIER_SHORTCUT_KEYS = ("1", "2", "3", "4", "5", "6")
UNRANK_KEYS = ("u", "U")


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


class DragState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"


class DragKind(str, Enum):
    ITEM = "item"
    ROW = "row"


@dataclass(frozen=True)
class DropEvent:
    source_id: str
    target_id: Optional[str]
    kind: DragKind = DragKind.ITEM


@dataclass(frozen=True)
class AssignTier:
    item_id: int
    tier_name: str


@dataclass(frozen=True)
class RemoveTier:
    item_id: int


@dataclass(frozen=True)
class ReorderTiers:
    ordered_ids: Tuple[int, ...]


TierCommand = Union[AssignTier, RemoveTier, ReorderTiers]


class TierDragStateMachine:
    """
    Client-side drag state for one tier board.

    The machine knows the visible tiers so it can map drop targets
    (rank ids, ladder names, "Unranked") onto commands; the board feeds it
    fresh tiers whenever the tier list changes.
    """

    ALLOWED_TRANSITIONS: Dict[DragState, List[DragState]] = {
        DragState.IDLE: [DragState.DRAGGING],
        DragState.DRAGGING: [DragState.COMMITTING, DragState.IDLE],
        DragState.COMMITTING: [DragState.IDLE],
    }

    def __init__(self, tiers: Sequence[TierDefinition] = ()):
        self._state = DragState.IDLE
        self._tiers: List[TierDefinition] = list(tiers)
        self._source_id: Optional[str] = None
        self._kind: Optional[DragKind] = None

    @property
    def state(self) -> DragState:
        return self._state

    @property
    def dragging(self) -> Optional[Tuple[str, DragKind]]:
        if self._state is DragState.IDLE:
            return None
        return self._source_id, self._kind

    def set_tiers(self, tiers: Sequence[TierDefinition]) -> None:
        self._tiers = list(tiers)

    def can_transition_to(self, new_state: DragState) -> bool:
        return new_state in self.ALLOWED_TRANSITIONS.get(self._state, [])

    def _transition(self, new_state: DragState) -> None:
        if not self.can_transition_to(new_state):
            raise InvalidTransitionError(
                f"Invalid transition: {self._state.value} → {new_state.value}"
            )
        self._state = new_state

    # ==========================================
    # Drag lifecycle
    # ==========================================

    def start_drag(self, source_id, kind: DragKind = DragKind.ITEM) -> None:
        self._transition(DragState.DRAGGING)
        self._source_id = str(source_id)
        self._kind = DragKind(kind)

    def drop(self, target_id) -> Optional[TierCommand]:
        """
        End the current drag over target_id (None = dropped on nothing).

        Returns the command to commit, or None for a no-op drop.
        """
        if self._state is not DragState.DRAGGING:
            raise InvalidTransitionError(f"Cannot drop while {self._state.value}")

        event = DropEvent(
            source_id=self._source_id,
            target_id=str(target_id) if target_id is not None else None,
            kind=self._kind,
        )
        command = self.resolve(event)
        if command is None:
            self._reset()
            return None

        self._transition(DragState.COMMITTING)
        return command

    def finish(self) -> None:
        """Commit handed off (or failed); back to idle."""
        self._transition(DragState.IDLE)
        self._source_id = None
        self._kind = None

    def cancel(self) -> None:
        if self._state is DragState.DRAGGING:
            self._reset()

    def _reset(self) -> None:
        self._transition(DragState.IDLE)
        self._source_id = None
        self._kind = None

    # ==========================================
    # Target resolution (pure)
    # ==========================================

    def resolve(self, event: DropEvent) -> Optional[TierCommand]:
        if event.target_id is None:
            return None
        if event.kind is DragKind.ROW:
            return self._resolve_row_drop(event)
        return self._resolve_item_drop(event)

    def tier_name_for_target(self, target_id: str) -> Optional[str]:
        """Tier name a drop target stands for, UNRANKED, or None if unrecognized."""
        if target_id == UNRANKED:
            return UNRANKED
        for tier in self._tiers:
            if tier.is_builtin and tier.name == target_id:
                return tier.name
            if not tier.is_builtin and str(tier.id) == target_id:
                return tier.name
        return None

    def _resolve_item_drop(self, event: DropEvent) -> Optional[TierCommand]:
        try:
            item_id = int(event.source_id)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring drag of non-item source '{event.source_id}'")
            return None

        tier_name = self.tier_name_for_target(event.target_id)
        if tier_name is None:
            return None
        if tier_name == UNRANKED:
            return RemoveTier(item_id=item_id)
        return AssignTier(item_id=item_id, tier_name=tier_name)

    def _resolve_row_drop(self, event: DropEvent) -> Optional[TierCommand]:
        # Built-in ladder rows have no ids and cannot be reordered
        ids = [str(tier.id) for tier in self._tiers if not tier.is_builtin]
        if event.source_id == event.target_id:
            return None
        if event.source_id not in ids or event.target_id not in ids:
            return None

        ordered = list(ids)
        target_index = ordered.index(event.target_id)
        ordered.remove(event.source_id)
        ordered.insert(target_index, event.source_id)
        return ReorderTiers(ordered_ids=tuple(int(rank_id) for rank_id in ordered))

    # ==========================================
    # Keyboard modality
    # ==========================================

    def key_command(self, item_id, key: str) -> Optional[TierCommand]:
        """Shortcut for a hovered item: 1..6 assign the n-th tier, u/U unrank."""
        if self._state is not DragState.IDLE:
            return None
        try:
            parsed_id = int(item_id)
        except (TypeError, ValueError):
            return None

        if key in UNRANK_KEYS:
            return RemoveTier(item_id=parsed_id)
        if key in TIER_SHORTCUT_KEYS:
            index = TIER_SHORTCUT_KEYS.index(key)
            if index < len(self._tiers):
                return AssignTier(item_id=parsed_id, tier_name=self._tiers[index].name)
        return None
