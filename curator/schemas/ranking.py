"""
curator/schemas/ranking.py
Pydantic request schemas for the tier and tournament endpoints.

All endpoints answer with the standard envelope:
{
    "success": true,
    ...resource fields
}
"""
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator


# ================= TIERS =================

class CustomRankCreate(BaseModel):
    """
    Used by: POST /api/collections/{collection_id}/tiers
    """
    name: str = Field(..., min_length=1, max_length=80)
    color: Optional[str] = Field(None, description="Hex color such as #ff8800")
    sentiment: Optional[str] = Field(None, description="positive | neutral | negative")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be blank")
        return v.strip()

    class Config:
        json_schema_extra = {
            "example": {"name": "Masterpiece", "color": "#f87171", "sentiment": "positive"}
        }


class CustomRankUpdate(BaseModel):
    """
    Used by: PATCH /api/tiers/{rank_id}
    """
    name: Optional[str] = Field(None, max_length=80)
    color: Optional[str] = None
    sentiment: Optional[str] = None


class TierOrderRequest(BaseModel):
    """
    Used by: PUT /api/collections/{collection_id}/tiers/order

    Every rank id of the collection, in the new display order.
    """
    ordered_ids: List[Union[int, str]] = Field(..., min_length=1)


class TierAssignmentRequest(BaseModel):
    """
    Used by: PUT /api/collections/{collection_id}/items/{item_id}/tier
    """
    tier: str = Field(..., min_length=1, max_length=80)


# ================= TOURNAMENTS =================

class TournamentCreateRequest(BaseModel):
    """
    Used by: POST /api/collections/{collection_id}/tournaments
    """
    pool_size: Optional[int] = Field(None, ge=2, le=200)
    include_unseen: bool = True


class MatchRequest(BaseModel):
    """
    Used by: POST /api/tournaments/{session_id}/matches

    Names are optional; when given they are logged as-is.
    """
    winner_id: str
    loser_id: str
    winner_name: Optional[str] = None
    loser_name: Optional[str] = None

    @field_validator('winner_id', 'loser_id', mode='before')
    @classmethod
    def coerce_key(cls, v) -> str:
        if isinstance(v, bool) or v is None:
            raise ValueError("pool key required")
        return str(v)

    class Config:
        json_schema_extra = {
            "example": {"winner_id": "12", "loser_id": "candidate-3f2a9c", "winner_name": "Dune"}
        }


class ScoreUpdate(BaseModel):
    id: Union[int, str]
    elo: int


class ScoreUpdateRequest(BaseModel):
    """
    Used by: POST /api/items/scores
    """
    updates: List[ScoreUpdate] = Field(..., min_length=1)
