"""HTTP router factory wiring health and monitor endpoints."""

from fastapi import APIRouter

from . import health, monitor


def create_router() -> APIRouter:
    router = APIRouter()
    router.include_router(health.router, prefix="/health")
    router.include_router(monitor.router, prefix="/monitor")
    return router
