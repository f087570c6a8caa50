"""
curator/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from curator.routes import tiers, tournaments

router = APIRouter()

router.include_router(tiers.router)
router.include_router(tournaments.router)
