from __future__ import annotations

import logging
import re

from .admin import AdminChannel
from .errors import AdminCommandError, ConfigNotReady, PartialFailure, ReloadFailed
from .models import ConfigSetting, ConfigSettings, InstanceStatus, ResourcePlan, ServiceInstance
from .planner import pg_size


log = logging.getLogger(__name__)

SETTING_KEY_RE = re.compile(r"^[a-z_][a-z0-9_.]{0,62}$")
EXTENSION_NAME_RE = re.compile(r"^[a-z_][a-z0-9_\-]{0,62}$")

QUERY_LOGGING_SETTINGS = [
    ConfigSetting("log_min_duration_statement", "0"),
    ConfigSetting("log_statement", "all"),
    ConfigSetting("log_duration", "on"),
    ConfigSetting("log_line_prefix", "%t [%p]: [%l-1] db=%d,user=%u "),
]

# Written by ALTER SYSTEM but only read at server start; pg_reload_conf() skips them.
RESTART_REQUIRED_SETTINGS = frozenset({"shared_buffers", "max_connections"})


def baseline_settings(plan: ResourcePlan, query_logging: bool = True) -> ConfigSettings:
    settings = [
        ConfigSetting("work_mem", pg_size(plan.work_mem_bytes)),
        ConfigSetting("maintenance_work_mem", pg_size(plan.maintenance_work_mem_bytes)),
        ConfigSetting("shared_buffers", pg_size(plan.buffer_cache_bytes)),
        ConfigSetting("effective_cache_size", pg_size(plan.effective_cache_bytes)),
        ConfigSetting("max_connections", str(plan.max_connections)),
    ]
    if query_logging:
        settings.extend(QUERY_LOGGING_SETTINGS)
    return settings


def restart_required(settings: ConfigSettings) -> list[str]:
    return [s.key for s in settings if s.key in RESTART_REQUIRED_SETTINGS]


def alter_system_statement(setting: ConfigSetting) -> str:
    if not SETTING_KEY_RE.match(setting.key):
        raise ValueError(f"Invalid setting name: {setting.key!r}")
    value = setting.value.replace("'", "''")
    return f"ALTER SYSTEM SET {setting.key} = '{value}';"


class ConfigurationApplier:
    """Applies ALTER SYSTEM settings one by one, then reloads once.

    A failing setting does not block the others; it is reported through
    PartialFailure after the reload went out.
    """

    def __init__(self, admin: AdminChannel):
        self.admin = admin

    def apply(self, instance: ServiceInstance, settings: ConfigSettings) -> None:
        if instance.status != InstanceStatus.RUNNING:
            raise ConfigNotReady(instance.status.value)

        failed: list[str] = []
        for setting in settings:
            try:
                self.admin.execute(instance, alter_system_statement(setting))
                log.info("Set %s = %s", setting.key, setting.value)
            except (ValueError, AdminCommandError) as e:
                log.warning("Setting %s failed: %s", setting.key, e)
                failed.append(setting.key)

        try:
            self.admin.reload(instance)
        except AdminCommandError as e:
            raise ReloadFailed(e.exit_code, e.output, failed_keys=failed) from e
        log.info("Configuration reloaded.")

        if failed:
            raise PartialFailure(failed)

    def ensure_extensions(self, instance: ServiceInstance, names: list[str] | tuple[str, ...]) -> list[str]:
        """CREATE EXTENSION IF NOT EXISTS for each name; returns the ones that failed."""
        if instance.status != InstanceStatus.RUNNING:
            raise ConfigNotReady(instance.status.value)

        failed: list[str] = []
        for name in names:
            if not EXTENSION_NAME_RE.match(name):
                log.warning("Skipping invalid extension name %r", name)
                failed.append(name)
                continue
            try:
                self.admin.execute(instance, f'CREATE EXTENSION IF NOT EXISTS "{name}";')
                log.info("Extension %s is installed.", name)
            except AdminCommandError as e:
                log.warning("Creating extension %s failed: %s", name, e)
                failed.append(name)
        return failed
