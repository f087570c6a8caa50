"""
Optimistic Sync

Keeps the tier board responsive: every mutation is applied to a local
shadow state immediately, then confirmed (folded into the confirmed state)
or rolled back (removed from the pending queue) when its server call
settles.

The visible state is always:
    confirmed state + unfolded patches replayed in issue order

A patch is folded only once every earlier patch has settled, so a late
confirmation never lets an older intent replay over a newer one. Rolling
back one failed patch reverts exactly that delta, with no refetch, while
later patches stay applied.
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass
class ShadowState:
    """Client copy of the board: item tiers, rank order, ratings by pool key."""
    item_tiers: Dict[int, Optional[str]] = field(default_factory=dict)
    rank_order: List[int] = field(default_factory=list)
    ratings: Dict[str, int] = field(default_factory=dict)

    def copy(self) -> "ShadowState":
        return ShadowState(
            item_tiers=dict(self.item_tiers),
            rank_order=list(self.rank_order),
            ratings=dict(self.ratings),
        )


@dataclass(frozen=True)
class TierPatch:
    """Assignment (tier_name set) or removal (tier_name None) of one item."""
    item_id: int
    tier_name: Optional[str]

    def apply(self, state: ShadowState) -> None:
        state.item_tiers[self.item_id] = self.tier_name


@dataclass(frozen=True)
class OrderPatch:
    ordered_ids: Tuple[int, ...]

    def apply(self, state: ShadowState) -> None:
        state.rank_order = list(self.ordered_ids)


@dataclass(frozen=True)
class RatingPatch:
    """New ratings after a vote, keyed by pool key."""
    scores: Tuple[Tuple[str, int], ...]

    @classmethod
    def from_mapping(cls, scores: Dict[str, int]) -> "RatingPatch":
        return cls(scores=tuple(scores.items()))

    def apply(self, state: ShadowState) -> None:
        for key, rating in self.scores:
            state.ratings[key] = rating


Patch = Union[TierPatch, OrderPatch, RatingPatch]
ServerCall = Callable[[], Awaitable[object]]
ErrorCallback = Callable[[Exception, Patch], None]


@dataclass
class PendingMutation:
    mutation_id: int
    patch: Patch
    confirmed: bool = False


class OptimisticSync:
    """
    Shadow state plus a reconciliation queue.

    Calls are independent: nothing is debounced or coalesced, and a later
    call is never held back by an earlier one (last write wins on the server).
    """

    def __init__(
        self,
        confirmed: Optional[ShadowState] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._confirmed = confirmed.copy() if confirmed else ShadowState()
        self._pending: List[PendingMutation] = []
        self._ids = itertools.count(1)
        self._on_error = on_error
        self._tasks: set = set()

    @property
    def confirmed(self) -> ShadowState:
        return self._confirmed.copy()

    @property
    def pending(self) -> List[Patch]:
        """Patches still waiting on their server call."""
        return [mutation.patch for mutation in self._pending if not mutation.confirmed]

    @property
    def view(self) -> ShadowState:
        state = self._confirmed.copy()
        for mutation in self._pending:
            mutation.patch.apply(state)
        return state

    def reset(self, confirmed: ShadowState) -> None:
        """Replace confirmed state (fresh load); pending patches keep replaying on top."""
        self._confirmed = confirmed.copy()

    def _fold_settled(self) -> None:
        # Only the confirmed prefix moves; anything behind an unsettled patch waits
        while self._pending and self._pending[0].confirmed:
            self._pending.pop(0).patch.apply(self._confirmed)

    def _enqueue(self, patch: Patch) -> PendingMutation:
        mutation = PendingMutation(mutation_id=next(self._ids), patch=patch)
        self._pending.append(mutation)
        return mutation

    async def _settle(self, mutation: PendingMutation, call: ServerCall) -> bool:
        try:
            await call()
        except Exception as e:
            self._pending.remove(mutation)
            self._fold_settled()
            logger.warning(f"Rolled back {type(mutation.patch).__name__}: {type(e).__name__}: {e}")
            if self._on_error is not None:
                self._on_error(e, mutation.patch)
            return False

        mutation.confirmed = True
        self._fold_settled()
        return True

    async def submit(self, patch: Patch, call: ServerCall) -> bool:
        """Apply patch now, await its call; True if confirmed, False if rolled back."""
        mutation = self._enqueue(patch)
        return await self._settle(mutation, call)

    def dispatch(self, patch: Patch, call: ServerCall) -> "asyncio.Task[bool]":
        """Fire-and-forget submit; the patch is visible before this returns."""
        mutation = self._enqueue(patch)
        task = asyncio.create_task(self._settle(mutation, call))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched call to settle."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
