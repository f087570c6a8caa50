"""
curator/routes/tournaments.py
Face-off tournaments and rating writes.
"""
import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from curator.database import get_db
from curator.deps import (
    get_current_user_id,
    get_pool_builder,
    get_rating_engine,
    get_session_store,
)
from curator.errors import NotFoundError, ErrorCode
from curator.repositories.item_repository import ItemRepository
from curator.routes.tiers import require_collection
from curator.schemas.ranking import MatchRequest, ScoreUpdateRequest, TournamentCreateRequest
from curator.services.elo_rating_service import EloRatingService
from curator.services.tournament_service import (
    TournamentPoolBuilder,
    TournamentSession,
    TournamentSessionStore,
    ignore_entry,
    promote_candidate,
)
from curator.services.tournament_types import PoolItem, parse_item_id

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Tournaments"])


def _pair_payload(session: TournamentSession, pair: Optional[Tuple[PoolItem, PoolItem]]):
    if pair is None:
        return None
    entries = []
    for entry in pair:
        payload = entry.to_dict()
        payload["elo_score"] = session.rating(entry.key)
        entries.append(payload)
    return entries


@router.post("/collections/{collection_id}/tournaments", status_code=201)
async def start_tournament(
    collection_id: int,
    data: Optional[TournamentCreateRequest] = None,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    builder: TournamentPoolBuilder = Depends(get_pool_builder),
    store: TournamentSessionStore = Depends(get_session_store),
):
    data = data or TournamentCreateRequest()
    await require_collection(db, collection_id, user_id)

    pool = await builder.generate_pool(
        db,
        user_id,
        collection_id,
        pool_size=data.pool_size,
        include_unseen=data.include_unseen,
    )
    session = store.create(user_id, collection_id, pool)
    pair = session.matchmaker.next_pair()

    payload = session.to_dict()
    payload.update({"success": True, "pair": _pair_payload(session, pair)})
    return payload


@router.get("/tournaments/{session_id}/pair")
async def next_pair(
    session_id: str,
    skip: bool = False,
    user_id: int = Depends(get_current_user_id),
    store: TournamentSessionStore = Depends(get_session_store),
):
    session = store.get(session_id, user_id)
    matchmaker = session.matchmaker
    pair = matchmaker.skip() if skip else (matchmaker.current_pair or matchmaker.next_pair())
    return {
        "success": True,
        "session_id": session_id,
        "round_count": session.round_count,
        "pair": _pair_payload(session, pair),
    }


@router.post("/tournaments/{session_id}/matches")
async def record_match(
    session_id: str,
    data: MatchRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: TournamentSessionStore = Depends(get_session_store),
    engine: EloRatingService = Depends(get_rating_engine),
):
    session = store.get(session_id, user_id)
    result = await engine.record_match(
        db,
        session,
        data.winner_id,
        data.loser_id,
        winner_name=data.winner_name,
        loser_name=data.loser_name,
    )
    pair = session.matchmaker.next_pair()
    return {
        "success": True,
        "winner_elo": result.winner_elo,
        "loser_elo": result.loser_elo,
        "round_count": session.round_count,
        "pair": _pair_payload(session, pair),
    }


@router.post("/tournaments/{session_id}/candidates/{key}/promote", status_code=201)
async def promote(
    session_id: str,
    key: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: TournamentSessionStore = Depends(get_session_store),
    engine: EloRatingService = Depends(get_rating_engine),
):
    session = store.get(session_id, user_id)
    item, entry = await promote_candidate(db, session, key, engine)
    return {"success": True, "item": item.to_dict(), "key": entry.key, "replaced": key}


@router.post("/tournaments/{session_id}/ignore/{key}")
async def ignore(
    session_id: str,
    key: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: TournamentSessionStore = Depends(get_session_store),
    engine: EloRatingService = Depends(get_rating_engine),
):
    session = store.get(session_id, user_id)
    pair = await ignore_entry(db, session, key, engine)
    return {"success": True, "ignored": key, "pair": _pair_payload(session, pair)}


@router.delete("/tournaments/{session_id}")
async def close_tournament(
    session_id: str,
    user_id: int = Depends(get_current_user_id),
    store: TournamentSessionStore = Depends(get_session_store),
):
    session = store.get(session_id, user_id)
    summary = {"round_count": session.round_count, "scores": session.owned_scores()}
    store.discard(session_id, user_id)
    return {"success": True, "session_id": session_id, **summary}


@router.post("/items/scores")
async def update_scores(
    data: ScoreUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    items_repo = ItemRepository(db)
    for update in data.updates:
        item = await items_repo.get(parse_item_id(update.id))
        # Only the caller's items; foreign ids read as missing
        if item is not None and item.user_id != user_id:
            raise NotFoundError("Item", update.id, code=ErrorCode.ITEM_NOT_FOUND)

    await EloRatingService.update_item_scores(
        db, [{"id": update.id, "elo": update.elo} for update in data.updates]
    )
    return {"success": True, "updated": len(data.updates)}
