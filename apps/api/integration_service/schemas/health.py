from datetime import datetime
from typing import Any, Optional

from .common import CamelModel


class ServiceHealth(CamelModel):
    status: str
    version: Optional[str] = None
    cluster_status: Optional[str] = None
    error: Optional[str] = None
    details: Optional[Any] = None


class HealthResponse(CamelModel):
    message: str
    timestamp: datetime
    uptime: float
    services: dict[str, ServiceHealth]


class DetailedHealthResponse(HealthResponse):
    version: str
    environment: str
    configuration: dict[str, Any]
