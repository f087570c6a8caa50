"""
curator/routes/tiers.py
Tier definitions and item tier assignment.
"""
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from curator.database import get_db
from curator.deps import get_current_user_id
from curator.errors import ErrorCode, ErrorResponse, NotFoundError
from curator.orm.collection import Collection
from curator.repositories.collection_repository import CollectionRepository
from curator.repositories.custom_rank_repository import CustomRankRepository
from curator.repositories.item_repository import ItemRepository
from curator.schemas.ranking import (
    CustomRankCreate,
    CustomRankUpdate,
    TierAssignmentRequest,
    TierOrderRequest,
)
from curator.services import tier_service

logger = logging.getLogger(__name__)
router = APIRouter(
    tags=["Tiers"],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


async def require_collection(db: AsyncSession, collection_id: int, user_id: int) -> Collection:
    """Collection owned by the caller; anyone else's reads as missing."""
    collection = await CollectionRepository(db).get(collection_id)
    if collection is None or collection.user_id != user_id:
        raise NotFoundError("Collection", collection_id, code=ErrorCode.COLLECTION_NOT_FOUND)
    return collection


async def require_rank_collection(db: AsyncSession, rank_id: int, user_id: int) -> Collection:
    rank = await CustomRankRepository(db).get(rank_id)
    if rank is None:
        raise NotFoundError("Custom rank", rank_id, code=ErrorCode.RANK_NOT_FOUND)
    collection = await CollectionRepository(db).get(rank.collection_id)
    if collection is None or collection.user_id != user_id:
        raise NotFoundError("Custom rank", rank_id, code=ErrorCode.RANK_NOT_FOUND)
    return collection


# ================= TIER DEFINITIONS =================

@router.get("/collections/{collection_id}/tiers")
async def list_tiers(
    collection_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await require_collection(db, collection_id, user_id)
    tiers = await tier_service.list_tiers(db, collection_id)
    return {
        "success": True,
        "collection_id": collection_id,
        "tiers": [asdict(tier) for tier in tiers],
    }


@router.post("/collections/{collection_id}/tiers", status_code=201)
async def create_tier(
    collection_id: int,
    data: CustomRankCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await require_collection(db, collection_id, user_id)
    rank = await tier_service.create_custom_rank(
        db, collection_id, data.name, color=data.color, sentiment=data.sentiment
    )
    return {"success": True, "tier": rank.to_dict()}


@router.patch("/tiers/{rank_id}")
async def update_tier(
    rank_id: int,
    data: CustomRankUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await require_rank_collection(db, rank_id, user_id)
    rank = await tier_service.update_custom_rank(
        db, rank_id, name=data.name, color=data.color, sentiment=data.sentiment
    )
    return {"success": True, "tier": rank.to_dict()}


@router.delete("/tiers/{rank_id}", responses={409: {"model": ErrorResponse}})
async def delete_tier(
    rank_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await require_rank_collection(db, rank_id, user_id)
    await tier_service.delete_custom_rank(db, rank_id)
    logger.info(f"User {user_id} deleted tier {rank_id}")
    return {"success": True, "deleted": rank_id}


@router.put("/collections/{collection_id}/tiers/order")
async def reorder_tiers(
    collection_id: int,
    data: TierOrderRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await require_collection(db, collection_id, user_id)
    await tier_service.reorder_tiers(db, collection_id, data.ordered_ids)
    logger.info(f"User {user_id} reordered tiers of collection {collection_id}")
    tiers = await tier_service.list_tiers(db, collection_id)
    return {"success": True, "tiers": [asdict(tier) for tier in tiers]}


# ================= ITEM ASSIGNMENT =================

@router.get("/collections/{collection_id}/items")
async def list_items(
    collection_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await require_collection(db, collection_id, user_id)
    items = await ItemRepository(db).list_by_collection(collection_id, user_id=user_id)
    return {"success": True, "items": [item.to_dict() for item in items]}


@router.put("/collections/{collection_id}/items/{item_id}/tier")
async def assign_tier(
    collection_id: int,
    item_id: int,
    data: TierAssignmentRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await require_collection(db, collection_id, user_id)
    item = await tier_service.assign_item_to_tier(db, item_id, data.tier, collection_id)
    return {"success": True, "item": item.to_dict()}


@router.delete("/collections/{collection_id}/items/{item_id}/tier")
async def remove_tier(
    collection_id: int,
    item_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await require_collection(db, collection_id, user_id)
    item = await tier_service.remove_item_tier(db, item_id, collection_id)
    return {"success": True, "item": item.to_dict()}
