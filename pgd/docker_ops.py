from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

import docker
from docker.errors import DockerException, NotFound

from .errors import RuntimeOperationError
from .models import InstanceStatus, ServiceInstance, ServiceSpec


CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]{0,127}$")
LABEL_SERVICE = "pgd.service"


def validate_container_name(name: str) -> None:
    if not CONTAINER_NAME_RE.match(name):
        raise ValueError(
            "Invalid container name. Use letters/numbers and _.- , starting with a letter or number (max 128 chars)."
        )


class ContainerRuntime(Protocol):
    """The runtime operations the reconciler, health reporter and API rely on."""

    def list_by_name(self, name: str) -> list[ServiceInstance]: ...

    def pull(self, image: str) -> None: ...

    def create(self, spec: ServiceSpec, memory_limit_bytes: int) -> ServiceInstance: ...

    def stop(self, instance_id: str) -> None: ...

    def remove(self, instance_id: str) -> None: ...

    def status(self, instance_id: str) -> InstanceStatus: ...

    def logs(self, instance_id: str, tail: int = 100) -> str: ...

    def exec(self, instance_id: str, argv: list[str], user: str | None = None) -> tuple[int, str]: ...


def _client() -> docker.DockerClient:
    return docker.from_env()


def _restart_policy(name: str) -> dict[str, object]:
    if name.startswith("on-failure"):
        # "on-failure" or "on-failure:5"
        _, _, count = name.partition(":")
        if count and not count.isdigit():
            raise ValueError(f"Invalid restart policy: {name!r}")
        return {"Name": "on-failure", "MaximumRetryCount": int(count or 0)}
    return {"Name": name}


class DockerRuntime:
    """ContainerRuntime backed by the Docker SDK.

    The client is created lazily so the object can be built before Docker
    itself is installed.
    """

    def __init__(self, client: docker.DockerClient | None = None, stop_timeout_s: int = 10):
        self._client = client
        self.stop_timeout_s = stop_timeout_s

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = _client()
            except DockerException as e:
                raise RuntimeOperationError("connect", str(e)) from e
        return self._client

    def list_by_name(self, name: str) -> list[ServiceInstance]:
        try:
            # The name filter is a substring/regex match; keep exact names only.
            containers = self.client.containers.list(all=True, filters={"name": name})
        except DockerException as e:
            raise RuntimeOperationError("list", str(e)) from e
        return [
            ServiceInstance(instance_id=x.id, name=x.name, status=InstanceStatus.from_docker(x.status))
            for x in containers
            if x.name == name
        ]

    def pull(self, image: str) -> None:
        try:
            self.client.images.pull(image)
        except DockerException as e:
            raise RuntimeOperationError("pull", str(e)) from e

    def create(self, spec: ServiceSpec, memory_limit_bytes: int) -> ServiceInstance:
        """Create and start the container described by spec."""
        try:
            validate_container_name(spec.name)
            restart_policy = _restart_policy(spec.restart_policy)
        except ValueError as e:
            raise RuntimeOperationError("create", str(e)) from e
        kwargs: dict[str, object] = {}
        if memory_limit_bytes > 0:
            kwargs["mem_limit"] = int(memory_limit_bytes)

        host_path = str(Path(spec.volume_host_path).expanduser())
        try:
            container = self.client.containers.run(
                spec.image_reference,
                detach=True,
                name=spec.name,
                environment=dict(spec.environment),
                ports={f"{int(spec.published_port)}/tcp": int(spec.published_port)},
                volumes={host_path: {"bind": spec.volume_container_path, "mode": "rw"}},
                restart_policy=restart_policy,
                labels={LABEL_SERVICE: spec.name},
                **kwargs,
            )
        except DockerException as e:
            raise RuntimeOperationError("create", str(e)) from e
        return ServiceInstance(
            instance_id=container.id, name=spec.name, status=InstanceStatus.from_docker(container.status)
        )

    def stop(self, instance_id: str) -> None:
        try:
            self.client.containers.get(instance_id).stop(timeout=self.stop_timeout_s)
        except NotFound:
            return
        except DockerException as e:
            raise RuntimeOperationError("stop", str(e)) from e

    def remove(self, instance_id: str) -> None:
        try:
            self.client.containers.get(instance_id).remove(force=True)
        except NotFound:
            return
        except DockerException as e:
            raise RuntimeOperationError("remove", str(e)) from e

    def status(self, instance_id: str) -> InstanceStatus:
        try:
            cont = self.client.containers.get(instance_id)
            cont.reload()
        except NotFound:
            return InstanceStatus.ABSENT
        except DockerException as e:
            raise RuntimeOperationError("inspect", str(e)) from e
        return InstanceStatus.from_docker(cont.status)

    def logs(self, instance_id: str, tail: int = 100) -> str:
        try:
            raw = self.client.containers.get(instance_id).logs(tail=tail)
        except DockerException as e:
            raise RuntimeOperationError("logs", str(e)) from e
        return raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)

    def exec(self, instance_id: str, argv: list[str], user: str | None = None) -> tuple[int, str]:
        try:
            result = self.client.containers.get(instance_id).exec_run(argv, user=user or "")
        except DockerException as e:
            raise RuntimeOperationError("exec", str(e)) from e
        output = result.output
        text = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else str(output or "")
        return int(result.exit_code or 0), text
