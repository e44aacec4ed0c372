from __future__ import annotations

from typing import Protocol

from .docker_ops import ContainerRuntime
from .errors import AdminCommandError
from .models import ServiceInstance


RELOAD_STATEMENT = "SELECT pg_reload_conf();"


class AdminChannel(Protocol):
    def execute(self, instance: ServiceInstance, statement: str) -> str: ...

    def reload(self, instance: ServiceInstance) -> None: ...

    def ping(self, instance: ServiceInstance) -> bool: ...


class PsqlAdmin:
    """Administrative channel that runs psql / pg_isready inside the container.

    Uses the local socket, so no password is passed around.
    """

    def __init__(self, runtime: ContainerRuntime, user: str = "postgres"):
        self.runtime = runtime
        self.user = user

    def execute(self, instance: ServiceInstance, statement: str) -> str:
        argv = ["psql", "-U", self.user, "-v", "ON_ERROR_STOP=1", "-X", "-q", "-c", statement]
        code, output = self.runtime.exec(instance.instance_id, argv)
        if code != 0:
            raise AdminCommandError(code, output)
        return output

    def reload(self, instance: ServiceInstance) -> None:
        self.execute(instance, RELOAD_STATEMENT)

    def ping(self, instance: ServiceInstance) -> bool:
        code, _ = self.runtime.exec(instance.instance_id, ["pg_isready", "-U", self.user])
        return code == 0
