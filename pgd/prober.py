from __future__ import annotations

import logging
import os
import platform
import shutil
from pathlib import Path
from typing import Callable

from .models import Architecture, Distro, HostProfile, OsFamily, PackageManager


log = logging.getLogger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")
MEMINFO_PATH = Path("/proc/meminfo")

_DEBIAN_IDS = {"ubuntu", "debian"}
_RHEL_IDS = {"amzn", "fedora", "rhel", "centos", "rocky", "almalinux", "ol"}


def read_os_release(path: Path = OS_RELEASE_PATH) -> dict[str, str]:
    """Parse an os-release file into a dict. Missing/unreadable file -> {}."""
    data: dict[str, str] = {}
    try:
        text = path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return data
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        data[k.strip()] = v.strip().strip('"').strip("'")
    return data


def classify_distro(info: dict[str, str]) -> Distro:
    dist_id = info.get("ID", "").lower()
    version = info.get("VERSION_ID", "")
    like = set(info.get("ID_LIKE", "").lower().split())

    if dist_id == "ubuntu":
        return Distro.UBUNTU
    if dist_id == "debian":
        return Distro.DEBIAN
    if dist_id == "amzn":
        # Amazon Linux 2023 reports VERSION_ID="2023", Amazon Linux 2 reports "2".
        return Distro.AMAZON_LINUX_2023 if version.startswith("2023") else Distro.AMAZON_LINUX_2
    if dist_id == "fedora":
        return Distro.FEDORA
    if dist_id in _RHEL_IDS or like & {"rhel", "centos", "fedora"}:
        return Distro.RHEL
    if "ubuntu" in like:
        return Distro.UBUNTU
    if "debian" in like:
        return Distro.DEBIAN
    return Distro.UNKNOWN


def classify_family(distro: Distro) -> OsFamily:
    if distro in {Distro.UBUNTU, Distro.DEBIAN}:
        return OsFamily.DEBIAN_LIKE
    if distro in {Distro.AMAZON_LINUX_2023, Distro.AMAZON_LINUX_2, Distro.FEDORA, Distro.RHEL}:
        return OsFamily.RHEL_LIKE
    return OsFamily.OTHER


def classify_package_manager(distro: Distro, which: Callable[[str], str | None] = shutil.which) -> PackageManager:
    if distro in {Distro.UBUNTU, Distro.DEBIAN}:
        return PackageManager.APT
    if distro in {Distro.AMAZON_LINUX_2023, Distro.FEDORA, Distro.RHEL}:
        return PackageManager.DNF
    if distro == Distro.AMAZON_LINUX_2:
        return PackageManager.YUM
    # Unknown distribution: go by what is installed.
    for exe, pm in (("apt-get", PackageManager.APT), ("dnf", PackageManager.DNF), ("yum", PackageManager.YUM)):
        if which(exe):
            return pm
    return PackageManager.NONE


def classify_architecture(machine: str) -> Architecture:
    m = (machine or "").strip().lower()
    if m in {"aarch64", "arm64"}:
        return Architecture.ARM64
    if m in {"x86_64", "amd64"}:
        return Architecture.X86_64
    return Architecture.OTHER


def read_total_memory(path: Path = MEMINFO_PATH) -> int:
    """Total host memory in bytes; 0 when it cannot be determined."""
    try:
        for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
            # "MemTotal:       16384000 kB"
            if line.startswith("MemTotal:"):
                parts = line.split()
                return int(parts[1]) * 1024
    except (OSError, ValueError, IndexError):
        pass
    try:
        return int(os.sysconf("SC_PHYS_PAGES")) * int(os.sysconf("SC_PAGE_SIZE"))
    except (AttributeError, OSError, ValueError):
        return 0


def probe(
    os_release_path: Path = OS_RELEASE_PATH,
    meminfo_path: Path = MEMINFO_PATH,
    machine: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> HostProfile:
    """Classify the host. Read-only, offline, never raises.

    Anything unrecognised degrades to the OTHER/UNKNOWN variants.
    """
    info = read_os_release(os_release_path)
    distro = classify_distro(info)
    profile = HostProfile(
        os_family=classify_family(distro),
        architecture=classify_architecture(machine if machine is not None else platform.machine()),
        total_memory_bytes=max(0, read_total_memory(meminfo_path)),
        distro=distro,
        package_manager=classify_package_manager(distro, which),
        codename=info.get("UBUNTU_CODENAME") or info.get("VERSION_CODENAME") or None,
        cpu_count=os.cpu_count() or 1,
    )
    log.debug("Host profile: %s", profile)
    return profile
