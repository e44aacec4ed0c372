from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from .docker_ops import ContainerRuntime
from .errors import MissingCredential, ReconcileError, RuntimeOperationError
from .models import InstanceStatus, ResourcePlan, RetryPolicy, ServiceInstance, ServiceSpec


log = logging.getLogger(__name__)

REQUIRED_CREDENTIALS = ("POSTGRES_PASSWORD", "MOTHERDUCK_TOKEN")
LOG_TAIL_LINES = 100


def missing_credentials(spec: ServiceSpec, required: Iterable[str] = REQUIRED_CREDENTIALS) -> list[str]:
    return [k for k in required if not spec.environment.get(k)]


class Reconciler:
    """Brings the container named spec.name to a running state.

    Full replace semantics: whatever exists under that name is stopped and
    removed, then a fresh container is created. If creation fails the old
    container is already gone; that step is never retried.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        policy: RetryPolicy | None = None,
        required_credentials: Iterable[str] = REQUIRED_CREDENTIALS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runtime = runtime
        self.policy = policy or RetryPolicy()
        self.required_credentials = tuple(required_credentials)
        self.sleep = sleep

    def reconcile(self, spec: ServiceSpec, plan: ResourcePlan) -> ServiceInstance:
        missing = missing_credentials(spec, self.required_credentials)
        if missing:
            raise MissingCredential(missing[0])

        log.info("Pulling image %s...", spec.image_reference)
        try:
            self.runtime.pull(spec.image_reference)
        except RuntimeOperationError as e:
            raise ReconcileError("pull", str(e)) from e

        self._remove_existing(spec.name)

        log.info(
            "Starting container %s (memory limit: %s bytes)",
            spec.name,
            plan.container_memory_limit_bytes or "none",
        )
        try:
            instance = self.runtime.create(spec, plan.container_memory_limit_bytes)
        except RuntimeOperationError as e:
            raise ReconcileError("create", str(e)) from e

        return self._wait_running(instance)

    def _remove_existing(self, name: str) -> None:
        try:
            existing = self.runtime.list_by_name(name)
        except RuntimeOperationError as e:
            raise ReconcileError("list", str(e)) from e

        for inst in existing:
            log.info("Found existing container %s (%s). Removing it...", name, inst.status.value)
            try:
                self.runtime.stop(inst.instance_id)
            except RuntimeOperationError as e:
                log.warning("Stopping %s failed, removing anyway: %s", name, e)
            try:
                self.runtime.remove(inst.instance_id)
            except RuntimeOperationError as e:
                raise ReconcileError("remove", str(e), status=inst.status.value) from e

        try:
            leftover = self.runtime.list_by_name(name)
        except RuntimeOperationError as e:
            raise ReconcileError("list", str(e)) from e
        if leftover:
            raise ReconcileError("remove", f"Container '{name}' still exists after removal.", status=leftover[0].status.value)

    def _wait_running(self, instance: ServiceInstance) -> ServiceInstance:
        status = instance.status
        for attempt in range(1, self.policy.attempts + 1):
            try:
                status = self.runtime.status(instance.instance_id)
            except RuntimeOperationError as e:
                raise ReconcileError("wait", str(e)) from e
            if status == InstanceStatus.RUNNING:
                log.info("Container %s is running (attempt %d).", instance.name, attempt)
                return instance.with_status(status)
            if attempt < self.policy.attempts:
                self.sleep(self.policy.interval_s)

        raise ReconcileError(
            "wait",
            f"Container '{instance.name}' did not reach running state after {self.policy.attempts} checks (status: {status.value}).",
            status=status.value,
            captured_logs=self._capture_logs(instance),
        )

    def _capture_logs(self, instance: ServiceInstance) -> str:
        try:
            return self.runtime.logs(instance.instance_id, tail=LOG_TAIL_LINES)
        except RuntimeOperationError as e:
            return f"(logs unavailable: {e})"
