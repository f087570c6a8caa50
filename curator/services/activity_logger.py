"""
curator/services/activity_logger.py
Centralized activity feed logging

Logs are append-only. Logging is best-effort: a failure here is recorded
and swallowed, it never blocks or rolls back the ranking operation that
triggered it. Call these helpers AFTER the operation has committed.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curator.orm.activity import Activity, ActivityType
from curator.orm.item import Item
from curator.services.tournament_types import MatchOutcome, MatchResult

logger = logging.getLogger(__name__)


async def log_activity(
    db: AsyncSession,
    user_id: int,
    event_type: Union[ActivityType, str],
    payload: Optional[Dict[str, Any]] = None,
) -> Optional[Activity]:
    """
    Append one activity row.

    Returns:
        Created Activity, or None when logging failed
    """
    type_value = event_type.value if isinstance(event_type, ActivityType) else str(event_type)
    try:
        entry = Activity(user_id=user_id, type=type_value, data=payload or {})
        db.add(entry)
        await db.commit()
        await db.refresh(entry)

        logger.debug(f"Activity logged: {type_value} for user {user_id}")
        return entry

    except Exception as e:
        logger.error(f"Failed to log activity {type_value}: {e}")
        try:
            await db.rollback()
        except SQLAlchemyError as rollback_error:
            logger.error(f"Rollback after activity failure also failed: {rollback_error}")
        return None


async def log_match_outcome(
    db: AsyncSession,
    user_id: int,
    outcome: MatchOutcome,
    result: MatchResult,
) -> Optional[Activity]:
    """Log a face-off using the names captured at vote time."""
    return await log_activity(
        db,
        user_id,
        ActivityType.MATCH_RECORDED,
        {
            "winner_id": outcome.winner_id,
            "winner_name": outcome.winner_name,
            "loser_id": outcome.loser_id,
            "loser_name": outcome.loser_name,
            "winner_elo": result.winner_elo,
            "loser_elo": result.loser_elo,
        },
    )


async def log_challenger_added(db: AsyncSession, user_id: int, item: Item) -> Optional[Activity]:
    return await log_activity(
        db,
        user_id,
        ActivityType.CHALLENGER_ADDED,
        {"item_id": item.id, "item_name": item.name, "elo_score": item.elo_score},
    )


async def get_recent_activities(
    db: AsyncSession,
    user_id: Optional[int] = None,
    limit: int = 20,
) -> List[Activity]:
    query = select(Activity).order_by(desc(Activity.created_at), desc(Activity.id)).limit(limit)
    if user_id is not None:
        query = query.where(Activity.user_id == user_id)
    result = await db.execute(query)
    return list(result.scalars().all())
