from __future__ import annotations

import logging
import time
from typing import Callable

from .admin import AdminChannel
from .docker_ops import ContainerRuntime
from .models import HealthSummary, RetryPolicy, ServiceInstance


log = logging.getLogger(__name__)


def check_ready(admin: AdminChannel, instance: ServiceInstance) -> tuple[bool, str]:
    """One liveness probe. Returns (is_ready, message); never raises."""
    try:
        if admin.ping(instance):
            return True, "Accepting connections"
        return False, "Not accepting connections"
    except Exception as e:
        return False, f"Error: {type(e).__name__}: {e}"


class HealthReporter:
    def __init__(
        self,
        admin: AdminChannel,
        runtime: ContainerRuntime,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        log_tail: int = 50,
    ):
        self.admin = admin
        self.runtime = runtime
        self.policy = policy or RetryPolicy(attempts=15, interval_s=2.0)
        self.sleep = sleep
        self.log_tail = log_tail

    def report(self, instance: ServiceInstance) -> HealthSummary:
        msg = ""
        for attempt in range(1, self.policy.attempts + 1):
            ok, msg = check_ready(self.admin, instance)
            if ok:
                return HealthSummary(reachable=True, attempts=attempt)
            log.debug("Readiness probe %d/%d: %s", attempt, self.policy.attempts, msg)
            if attempt < self.policy.attempts:
                self.sleep(self.policy.interval_s)

        try:
            logs = self.runtime.logs(instance.instance_id, tail=self.log_tail)
            diagnostic = f"{msg}\n--- last {self.log_tail} log lines ---\n{logs}"
        except Exception as e:
            diagnostic = f"{msg}\n(logs unavailable: {type(e).__name__}: {e})"
        return HealthSummary(reachable=False, attempts=self.policy.attempts, diagnostic=diagnostic)
