from __future__ import annotations

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    container: str = Field(..., description="Container name")
    status: str = Field(..., description="absent|created|running|restarting|exited")
    instance_id: str | None = None
    ready: bool = Field(False, description="pg_isready succeeded")


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    service_name: str | None = None
    stage: str | None = None
    message: str


class RunOut(BaseModel):
    id: int
    service_name: str
    image: str
    state: str = Field(..., description="running|succeeded|degraded|failed")
    stage: str | None = None
    exit_code: int | None = None
    message: str | None = None
    started_at: str
    finished_at: str | None = None
