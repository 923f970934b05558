from datetime import datetime

from pydantic import BaseModel


class ServiceStatus(BaseModel):
    database: str
    cache: str


class SystemHealth(BaseModel):
    status: str
    timestamp: datetime
    services: ServiceStatus
