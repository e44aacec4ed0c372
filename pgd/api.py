"""Read-only status API for a deployed instance.

Run with ``python cli.py serve`` or ``uvicorn pgd.api:app``.
"""
from __future__ import annotations

from dataclasses import asdict

from fastapi import Depends, FastAPI, HTTPException, Query

from . import db
from .admin import AdminChannel, PsqlAdmin
from .api_models import EventOut, RunOut, StatusResponse
from .docker_ops import ContainerRuntime, DockerRuntime
from .errors import RuntimeOperationError
from .health import check_ready
from .models import InstanceStatus
from .settings import settings


app = FastAPI(title="pgd status")


def get_runtime() -> ContainerRuntime:
    return DockerRuntime()


def get_admin(runtime: ContainerRuntime = Depends(get_runtime)) -> AdminChannel:
    return PsqlAdmin(runtime, user=settings.db_user)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/status", response_model=StatusResponse)
def status(
    runtime: ContainerRuntime = Depends(get_runtime),
    admin: AdminChannel = Depends(get_admin),
) -> StatusResponse:
    try:
        instances = runtime.list_by_name(settings.container_name)
    except RuntimeOperationError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    if not instances:
        return StatusResponse(container=settings.container_name, status=InstanceStatus.ABSENT.value)

    inst = instances[0]
    ready = False
    if inst.status == InstanceStatus.RUNNING:
        ready, _ = check_ready(admin, inst)
    return StatusResponse(
        container=inst.name,
        status=inst.status.value,
        instance_id=inst.instance_id,
        ready=ready,
    )


@app.get("/events", response_model=list[EventOut])
def events(limit: int = Query(50, ge=1, le=500)) -> list[EventOut]:
    return [EventOut(**e) for e in db.latest_events(limit)]


@app.get("/runs", response_model=list[RunOut])
def runs(limit: int = Query(20, ge=1, le=500)) -> list[RunOut]:
    return [RunOut(**asdict(r)) for r in db.latest_runs(limit)]
