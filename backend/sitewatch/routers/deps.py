"""Request dependencies shared by the API routers."""
from fastapi import Request

from ..services.container import Services
from ..services.monitoring import MonitoringService


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_monitoring(request: Request) -> MonitoringService:
    return get_services(request).monitoring
