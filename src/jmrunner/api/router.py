from fastapi import APIRouter

from . import controller, monitoring, runs

api_router = APIRouter()
api_router.include_router(runs.router)
api_router.include_router(controller.router)
api_router.include_router(monitoring.router)
