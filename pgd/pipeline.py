from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

from . import db
from .configurator import ConfigurationApplier, baseline_settings, restart_required
from .docker_ops import validate_container_name
from .errors import PartialFailure, PgdError, ValidationError, VolumeError
from .health import HealthReporter
from .installer import RuntimeInstaller
from .models import HostProfile, RunReport, ServiceSpec
from .planner import DEFAULT_BUFFER_CACHE_RATIO, pg_size, plan
from .prober import probe
from .reconciler import REQUIRED_CREDENTIALS, Reconciler, missing_credentials


log = logging.getLogger(__name__)

RESTART_POLICIES = ("no", "always", "unless-stopped", "on-failure")


def validate_spec(spec: ServiceSpec, required: Iterable[str] = REQUIRED_CREDENTIALS) -> None:
    missing = missing_credentials(spec, required)
    if missing:
        raise ValidationError(f"Missing required credentials: {', '.join(missing)}", missing=missing)
    try:
        validate_container_name(spec.name)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    policy, _, count = spec.restart_policy.partition(":")
    if policy not in RESTART_POLICIES or (count and (policy != "on-failure" or not count.isdigit())):
        raise ValidationError(f"Invalid restart policy: {spec.restart_policy!r}")


class Pipeline:
    """Prober -> Installer -> Planner -> Reconciler -> Applier -> Reporter.

    Strictly sequential. Fatal errors propagate as PgdError after the run has
    been recorded as failed; partial configuration, missing extensions and an
    unreachable service only degrade the RunReport.
    """

    def __init__(
        self,
        installer: RuntimeInstaller,
        reconciler: Reconciler,
        applier: ConfigurationApplier,
        reporter: HealthReporter,
        prober: Callable[[], HostProfile] = probe,
        buffer_cache_ratio: float = DEFAULT_BUFFER_CACHE_RATIO,
        extensions: Iterable[str] = ("duckdb",),
        query_logging: bool = True,
        prepare_volume: bool = True,
    ):
        self.installer = installer
        self.reconciler = reconciler
        self.applier = applier
        self.reporter = reporter
        self.prober = prober
        self.buffer_cache_ratio = buffer_cache_ratio
        self.extensions = tuple(extensions)
        self.query_logging = query_logging
        self.prepare_volume = prepare_volume
        self._stage = "start"

    def run(self, spec: ServiceSpec) -> RunReport:
        # Nothing is probed, installed or started before the spec checks out.
        validate_spec(spec, self.reconciler.required_credentials)

        run_id = db.start_run(spec.name, spec.image_reference)
        db.log_event("INFO", f"Deployment started: {spec.redacted()}", service_name=spec.name, stage="start")
        try:
            report = self._run(spec)
        except PgdError as e:
            self._record_failure(run_id, spec, e)
            raise
        except Exception as e:
            err = PgdError(self._stage, f"Unexpected error: {e}")
            self._record_failure(run_id, spec, err)
            raise err from e

        state = "succeeded" if report.ok else "degraded"
        db.finish_run(run_id, state, 0, "" if report.ok else "see events", stage="report")
        db.log_event("INFO", f"Deployment {state}.", service_name=spec.name, stage="report")
        return report

    def _record_failure(self, run_id: int, spec: ServiceSpec, e: PgdError) -> None:
        db.log_event("ERROR", f"{e} (exit code {e.exit_code})", service_name=spec.name, stage=e.stage)
        db.finish_run(run_id, "failed", e.exit_code, str(e), stage=e.stage)

    def _run(self, spec: ServiceSpec) -> RunReport:
        self._stage = "probe"
        profile = self.prober()
        db.log_event(
            "INFO",
            f"Host: {profile.distro.value} ({profile.os_family.value}), arch {profile.architecture.value}, "
            f"{profile.total_memory_bytes // (1024 * 1024)}MB RAM, {profile.cpu_count} CPUs",
            service_name=spec.name,
            stage="probe",
        )

        self._stage = "install"
        self.installer.ensure_runtime_present(profile)
        db.log_event("INFO", "Docker runtime is available.", service_name=spec.name, stage="install")

        self._stage = "plan"
        resources = plan(profile, self.buffer_cache_ratio)
        db.log_event(
            "INFO",
            f"Container memory limit {pg_size(resources.container_memory_limit_bytes) if resources.container_memory_limit_bytes else 'none'}, "
            f"shared_buffers {pg_size(resources.buffer_cache_bytes)}, max_connections {resources.max_connections}",
            service_name=spec.name,
            stage="plan",
        )

        if self.prepare_volume:
            self._stage = "prepare-volume"
            path = Path(spec.volume_host_path).expanduser()
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise VolumeError(str(path), e.strerror or str(e)) from e

        self._stage = "reconcile"
        instance = self.reconciler.reconcile(spec, resources)
        db.log_event("INFO", f"Container {instance.name} is running.", service_name=spec.name, stage="reconcile")

        # Settings need a server that accepts connections, not just a running container.
        self._stage = "configure"
        settings = baseline_settings(resources, self.query_logging)
        health = self.reporter.report(instance)
        failed_extensions: list[str] = []
        failed_settings: list[str] = []
        pending_restart: list[str] = []
        if health.reachable:
            failed_extensions = self.applier.ensure_extensions(instance, self.extensions)
            if failed_extensions:
                db.log_event(
                    "WARN", f"Extensions not installed: {', '.join(failed_extensions)}", service_name=spec.name, stage="configure"
                )
            try:
                self.applier.apply(instance, settings)
            except PartialFailure as e:
                failed_settings = e.failed_keys
                db.log_event("WARN", str(e), service_name=spec.name, stage="configure")
            pending_restart = [k for k in restart_required(settings) if k not in failed_settings]
            if pending_restart:
                db.log_event(
                    "WARN",
                    f"{', '.join(pending_restart)} take effect after a restart: docker restart {instance.name}",
                    service_name=spec.name,
                    stage="configure",
                )
            self._stage = "report"
            health = self.reporter.report(instance)
        else:
            failed_extensions = list(self.extensions)
            failed_settings = [s.key for s in settings]
            db.log_event("WARN", "Service never accepted connections; settings were not applied.", service_name=spec.name, stage="configure")

        if not health.reachable:
            db.log_event("WARN", f"Service is not reachable.\n{health.diagnostic or ''}", service_name=spec.name, stage="report")

        return RunReport(
            profile=profile,
            plan=resources,
            instance=instance,
            health=health,
            failed_settings=failed_settings,
            failed_extensions=failed_extensions,
            pending_restart=pending_restart,
        )
