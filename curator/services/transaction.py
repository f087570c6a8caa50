"""
curator/services/transaction.py
Commit-or-rollback wrapper for service writes.
"""
import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curator.errors import APIError, PersistenceError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def write_transaction(db: AsyncSession, operation: str):
    """
    Run the enclosed writes as one unit.

    Typed API errors roll back and propagate unchanged; database errors roll
    back and surface as PersistenceError so callers can undo speculative state.
    """
    try:
        yield
        await db.commit()
    except APIError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"{operation} failed and was rolled back: {type(e).__name__}: {e}")
        raise PersistenceError(f"Could not complete {operation}", operation=operation) from e
