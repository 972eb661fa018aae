from fastapi import APIRouter

from . import bonus_codes, health

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(bonus_codes.router)
