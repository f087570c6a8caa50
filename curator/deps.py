"""
curator/deps.py
FastAPI dependencies shared by the routers.

Authentication happens upstream; the caller's id arrives in the
X-User-Id header and is trusted as-is.
"""
from typing import Optional

from fastapi import Header, Request

from curator.errors import UnauthorizedError
from curator.services.discovery_service import DiscoveryService
from curator.services.elo_rating_service import EloRatingService
from curator.services.tournament_service import TournamentPoolBuilder, TournamentSessionStore

session_store = TournamentSessionStore()


async def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> int:
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")
    try:
        return int(x_user_id)
    except ValueError:
        raise UnauthorizedError("Malformed X-User-Id header")


def get_session_store() -> TournamentSessionStore:
    return session_store


def get_discovery(request: Request) -> Optional[DiscoveryService]:
    return getattr(request.app.state, "discovery", None)


def get_pool_builder(request: Request) -> TournamentPoolBuilder:
    return TournamentPoolBuilder(discovery=get_discovery(request))


def get_rating_engine() -> EloRatingService:
    return EloRatingService()
