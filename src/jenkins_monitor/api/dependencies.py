"""Shared FastAPI dependencies exposing the monitor service singleton."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException

from jenkins_monitor.scheduler.service import MonitorService


_monitor_service: Optional[MonitorService] = None


def set_monitor_service(service: Optional[MonitorService]) -> None:
    global _monitor_service
    _monitor_service = service


def get_monitor_service() -> MonitorService:
    if _monitor_service is None:
        raise HTTPException(status_code=503, detail="Monitor service not ready")
    return _monitor_service


def monitor_service_dependency(service: MonitorService = Depends(get_monitor_service)) -> MonitorService:
    return service
