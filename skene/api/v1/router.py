from fastapi import APIRouter

from skene.api.v1.endpoints import health, runs

v1_router = APIRouter()
v1_router.include_router(health.router, tags=["health"])
v1_router.include_router(runs.router, tags=["runs"])
