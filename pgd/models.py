from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class OsFamily(str, Enum):
    DEBIAN_LIKE = "debian-like"
    RHEL_LIKE = "rhel-like"
    OTHER = "other"


class Distro(str, Enum):
    UBUNTU = "ubuntu"
    DEBIAN = "debian"
    AMAZON_LINUX_2023 = "amzn-2023"
    AMAZON_LINUX_2 = "amzn-2"
    FEDORA = "fedora"
    RHEL = "rhel"
    UNKNOWN = "unknown"


class PackageManager(str, Enum):
    APT = "apt"
    DNF = "dnf"
    YUM = "yum"
    NONE = "none"


class Architecture(str, Enum):
    ARM64 = "arm64"
    X86_64 = "x86_64"
    OTHER = "other"


class InstanceStatus(str, Enum):
    ABSENT = "absent"
    CREATED = "created"
    RUNNING = "running"
    RESTARTING = "restarting"
    EXITED = "exited"

    @classmethod
    def from_docker(cls, state: str | None) -> "InstanceStatus":
        """Map a Docker ``State.Status`` string onto our five states."""
        if not state:
            return cls.ABSENT
        return _DOCKER_STATES.get(state.strip().lower(), cls.EXITED)


_DOCKER_STATES = {
    "created": InstanceStatus.CREATED,
    "running": InstanceStatus.RUNNING,
    "restarting": InstanceStatus.RESTARTING,
    "exited": InstanceStatus.EXITED,
    "dead": InstanceStatus.EXITED,
    "removing": InstanceStatus.EXITED,
    "paused": InstanceStatus.EXITED,
}


@dataclass(frozen=True)
class HostProfile:
    os_family: OsFamily
    architecture: Architecture
    total_memory_bytes: int
    distro: Distro = Distro.UNKNOWN
    package_manager: PackageManager = PackageManager.NONE
    codename: str | None = None
    cpu_count: int = 1


@dataclass(frozen=True)
class ResourcePlan:
    container_memory_limit_bytes: int  # 0 = no cap
    buffer_cache_bytes: int
    effective_cache_bytes: int
    work_mem_bytes: int
    maintenance_work_mem_bytes: int
    max_connections: int


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    image_reference: str
    published_port: int
    volume_host_path: str
    volume_container_path: str
    environment: dict[str, str] = field(default_factory=dict, repr=False)
    restart_policy: str = "unless-stopped"

    def redacted(self) -> dict[str, object]:
        """Loggable view: environment keys only, values masked."""
        return {
            "name": self.name,
            "image": self.image_reference,
            "port": self.published_port,
            "volume": f"{self.volume_host_path}:{self.volume_container_path}",
            "environment": {k: "***" for k in sorted(self.environment)},
            "restart_policy": self.restart_policy,
        }


@dataclass(frozen=True)
class ServiceInstance:
    instance_id: str
    name: str
    status: InstanceStatus

    def with_status(self, status: InstanceStatus) -> "ServiceInstance":
        return replace(self, status=status)


@dataclass(frozen=True)
class ConfigSetting:
    key: str
    value: str


ConfigSettings = list[ConfigSetting]


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 30
    interval_s: float = 2.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.interval_s < 0:
            raise ValueError("interval_s must be >= 0")


@dataclass(frozen=True)
class HealthSummary:
    reachable: bool
    attempts: int
    diagnostic: str | None = None


@dataclass
class RunReport:
    profile: HostProfile
    plan: ResourcePlan
    instance: ServiceInstance
    health: HealthSummary
    failed_settings: list[str] = field(default_factory=list)
    failed_extensions: list[str] = field(default_factory=list)
    pending_restart: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.health.reachable and not self.failed_settings and not self.failed_extensions
