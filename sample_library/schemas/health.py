from sample_library.schemas.pagination import CamelModel


class HealthResponse(CamelModel):
    status: str
    version: str
    database: str
    uptime_seconds: float
