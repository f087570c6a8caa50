"""
Tournament value types.

A pool mixes two identity spaces that must never be confused:
- OWNED entries wrap persisted items, keyed by the item's integer id
- CANDIDATE entries wrap discovery results, keyed by a "candidate-<hex>"
  temp id that can never parse as an item id
"""
import uuid
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional, Union

from curator.errors import ValidationError, ErrorCode
from curator.orm.item import Item, DEFAULT_ELO

CANDIDATE_PREFIX = "candidate-"


class PoolItemKind(str, Enum):
    OWNED = "OWNED"
    CANDIDATE = "CANDIDATE"


def new_candidate_id() -> str:
    return f"{CANDIDATE_PREFIX}{uuid.uuid4().hex}"


def is_candidate_id(key: Union[int, str]) -> bool:
    return isinstance(key, str) and key.startswith(CANDIDATE_PREFIX)


def parse_item_id(key: Union[int, str]) -> int:
    """Turn a pool key into a persisted item id, rejecting candidate and junk ids."""
    if isinstance(key, bool):
        raise ValidationError(f"Malformed item id '{key}'", code=ErrorCode.MALFORMED_ID)
    if isinstance(key, int):
        return key
    if is_candidate_id(key):
        raise ValidationError(
            f"'{key}' is a tournament candidate, not a saved item",
            code=ErrorCode.MALFORMED_ID,
        )
    try:
        return int(key)
    except (TypeError, ValueError):
        raise ValidationError(f"Malformed item id '{key}'", code=ErrorCode.MALFORMED_ID)


def truncate_description(description: Optional[str], max_length: int = 300) -> Optional[str]:
    """Trim long descriptions so pool payloads stay slim."""
    if not description:
        return None
    if len(description) <= max_length:
        return description
    return description[:max_length - 3] + "..."


@dataclass(frozen=True)
class Candidate:
    """One result from the discovery service."""
    name: str
    description: Optional[str] = None
    image: Optional[str] = None
    origin: Optional[str] = None
    external_id: Optional[str] = None


@dataclass(frozen=True)
class TournamentCandidate:
    temp_id: str
    name: str
    image: Optional[str] = None
    description: Optional[str] = None
    origin: Optional[str] = None
    external_id: Optional[str] = None
    elo_score: int = DEFAULT_ELO

    @classmethod
    def from_candidate(cls, candidate: Candidate, max_description: int = 300) -> "TournamentCandidate":
        return cls(
            temp_id=new_candidate_id(),
            name=candidate.name.strip(),
            image=candidate.image,
            description=truncate_description(candidate.description, max_description),
            origin=candidate.origin,
            external_id=candidate.external_id,
        )


@dataclass(frozen=True)
class OwnedItem:
    """Snapshot of a persisted item taken when the pool was built."""
    id: int
    name: str
    image: Optional[str] = None
    description: Optional[str] = None
    elo_score: int = DEFAULT_ELO
    tier: Optional[str] = None

    @classmethod
    def from_item(cls, item: Item, max_description: int = 300) -> "OwnedItem":
        return cls(
            id=item.id,
            name=item.name or "Untitled",
            image=item.image,
            description=truncate_description(item.description, max_description),
            elo_score=item.elo_score,
            tier=item.tier,
        )


@dataclass(frozen=True)
class PoolItem:
    """Tagged union: exactly one of item / candidate is set, matching kind."""
    kind: PoolItemKind
    item: Optional[OwnedItem] = None
    candidate: Optional[TournamentCandidate] = None

    def __post_init__(self):
        if self.kind is PoolItemKind.OWNED and (self.item is None or self.candidate is not None):
            raise ValueError("OWNED pool entries carry an item and no candidate")
        if self.kind is PoolItemKind.CANDIDATE and (self.candidate is None or self.item is not None):
            raise ValueError("CANDIDATE pool entries carry a candidate and no item")

    @classmethod
    def owned(cls, item: OwnedItem) -> "PoolItem":
        return cls(kind=PoolItemKind.OWNED, item=item)

    @classmethod
    def of_candidate(cls, candidate: TournamentCandidate) -> "PoolItem":
        return cls(kind=PoolItemKind.CANDIDATE, candidate=candidate)

    @property
    def is_owned(self) -> bool:
        return self.kind is PoolItemKind.OWNED

    @property
    def key(self) -> str:
        return str(self.item.id) if self.is_owned else self.candidate.temp_id

    @property
    def name(self) -> str:
        return self.item.name if self.is_owned else self.candidate.name

    @property
    def elo_score(self) -> int:
        return self.item.elo_score if self.is_owned else self.candidate.elo_score

    def to_dict(self) -> Dict[str, Any]:
        source = self.item if self.is_owned else self.candidate
        payload = asdict(source)
        payload["kind"] = self.kind.value
        payload["key"] = self.key
        return payload


@dataclass(frozen=True)
class MatchResult:
    winner_elo: int
    loser_elo: int


@dataclass(frozen=True)
class MatchOutcome:
    """Names are the ones the caller saw; candidates may never be persisted."""
    winner_id: str
    winner_name: str
    loser_id: str
    loser_name: str
