"""FastAPI application entrypoint that boots the monitor service."""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI

from jenkins_monitor.api.dependencies import set_monitor_service
from jenkins_monitor.api.routers import create_router
from jenkins_monitor.configs.settings import load_config
from jenkins_monitor.scheduler.service import MonitorService


def default_service_factory() -> MonitorService:
    return MonitorService(load_config())


def create_app(service_factory: Optional[Callable[[], MonitorService]] = None) -> FastAPI:
    """Build the status API; the service is created and started in the lifespan.

    :param service_factory: Returns the service to run, built from
        ``monitor.yaml`` (or ``MONITOR_CONFIG``) when omitted.
    """
    factory = service_factory or default_service_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = factory()
        set_monitor_service(service)
        await service.startup()
        try:
            yield
        finally:
            try:
                await service.shutdown()
            finally:
                set_monitor_service(None)

    app = FastAPI(title="Jenkins Monitor API", version="1.0.0", lifespan=lifespan)
    app.include_router(create_router())
    return app


app = create_app()
