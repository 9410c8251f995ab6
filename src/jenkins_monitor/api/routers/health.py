"""Health-check endpoint returning the current monitor status."""

from fastapi import APIRouter

from jenkins_monitor.api.dependencies import get_monitor_service


router = APIRouter()


@router.get("/", tags=["health"])
async def healthcheck() -> dict:
    service = get_monitor_service()
    status = service.status()
    return {
        "ok": status["running"],
        "monitor": status,
    }
