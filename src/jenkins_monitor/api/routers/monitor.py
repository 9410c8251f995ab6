"""Read-only job status endpoints plus an on-demand check."""

from fastapi import APIRouter, Depends, HTTPException, status

from jenkins_monitor.api.dependencies import monitor_service_dependency
from jenkins_monitor.scheduler.service import MonitorService


router = APIRouter()


@router.get("/jobs", tags=["monitor"])
async def list_jobs(service: MonitorService = Depends(monitor_service_dependency)) -> dict:
    jobs = list(service.list_jobs())
    return {"jobs": jobs, "count": len(jobs)}


@router.get("/jobs/{name:path}", tags=["monitor"])
async def job_details(name: str, service: MonitorService = Depends(monitor_service_dependency)) -> dict:
    try:
        return service.job_details(name)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job '{name}' not found") from exc


@router.post("/check", tags=["monitor"])
async def trigger_check(service: MonitorService = Depends(monitor_service_dependency)) -> dict:
    return await service.trigger_check()
