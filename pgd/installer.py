from __future__ import annotations

import logging
import shutil
from typing import Callable

import httpx

from .errors import InstallError
from .host import CommandError, Runner, run, sudo_prefix
from .models import Architecture, Distro, HostProfile, PackageManager


log = logging.getLogger(__name__)

DOCKER_DOWNLOAD_BASE = "https://download.docker.com/linux"
APT_KEYRING_DIR = "/etc/apt/keyrings"
APT_KEYRING = f"{APT_KEYRING_DIR}/docker.asc"
APT_SOURCE_LIST = "/etc/apt/sources.list.d/docker.list"

APT_PREREQUISITES = ["apt-transport-https", "ca-certificates", "curl", "gnupg", "lsb-release"]
APT_ENGINE_PACKAGES = ["docker-ce", "docker-ce-cli", "containerd.io"]
RPM_PREREQUISITES = ["device-mapper-persistent-data", "lvm2", "ca-certificates"]

START_STYLES = (["systemctl", "start", "docker"], ["service", "docker", "start"])
ENABLE_STYLES = (["systemctl", "enable", "docker"], ["chkconfig", "docker", "on"])

_DPKG_ARCH = {Architecture.ARM64: "arm64", Architecture.X86_64: "amd64"}


def fetch_gpg_key(url: str, timeout_s: float = 30.0) -> str:
    with httpx.Client(timeout=timeout_s, follow_redirects=True) as client:
        resp = client.get(url)
    resp.raise_for_status()
    return resp.text


class RuntimeInstaller:
    """Makes sure the Docker engine is installed, running and enabled.

    Idempotent: when the CLI is on PATH and the daemon answers, nothing is
    executed beyond those two checks.
    """

    def __init__(
        self,
        runner: Runner = run,
        which: Callable[[str], str | None] = shutil.which,
        sudo: list[str] | None = None,
        user: str | None = None,
        key_fetcher: Callable[[str], str] = fetch_gpg_key,
    ):
        self.runner = runner
        self.which = which
        self.sudo = sudo_prefix() if sudo is None else list(sudo)
        self.user = user
        self.key_fetcher = key_fetcher

    def runtime_present(self) -> bool:
        return self.which("docker") is not None

    def daemon_running(self) -> bool:
        result = self.runner([*self.sudo, "docker", "info"], check=False, capture_output=True)
        return result.returncode == 0

    def ensure_runtime_present(self, profile: HostProfile) -> None:
        if self.runtime_present():
            if self.daemon_running():
                log.info("Docker is already installed and running, skipping installation.")
                return
            log.info("Docker is installed but the daemon is not answering; starting it.")
        else:
            self._install(profile)
            if not self.runtime_present():
                raise InstallError("verify", 127, "Docker installation failed: 'docker' is still not on PATH.")
            self._add_user_to_group()

        self._first_success("start-service", START_STYLES)
        self._first_success("enable-service", ENABLE_STYLES)

        result = self.runner([*self.sudo, "docker", "info"], check=False, capture_output=True)
        if result.returncode != 0:
            raise InstallError("daemon", result.returncode, "Docker daemon did not come up after starting the service.")

    # -- steps ---------------------------------------------------------

    def _step(self, stage: str, argv: list[str], input: str | None = None) -> None:
        try:
            self.runner([*self.sudo, *argv], input=input, capture_output=input is not None)
        except CommandError as e:
            raise InstallError(stage, e.returncode, str(e)) from e

    def _refresh(self, argv: list[str]) -> None:
        """Package list refresh; a failing mirror must not stop the install."""
        try:
            self.runner([*self.sudo, *argv])
        except CommandError as e:
            log.warning("Package list refresh failed (exit code %s); continuing.", e.returncode)

    def _first_success(self, stage: str, styles: tuple[list[str], ...]) -> None:
        last_code = 127
        for argv in styles:
            result = self.runner([*self.sudo, *argv], check=False, capture_output=True)
            if result.returncode == 0:
                return
            last_code = result.returncode
            log.debug("%s failed with exit code %s", " ".join(argv), result.returncode)
        raise InstallError(stage, last_code)

    def _install(self, profile: HostProfile) -> None:
        pm = profile.package_manager
        log.info("Installing Docker (%s via %s)...", profile.distro.value, pm.value)
        if pm == PackageManager.APT:
            self._install_apt(profile)
        elif pm == PackageManager.DNF:
            self._refresh(["dnf", "update", "-y"])
            if profile.distro == Distro.AMAZON_LINUX_2023:
                # --allowerasing resolves the curl-minimal conflict on AL2023.
                self._step("prerequisites", ["dnf", "install", "-y", "--allowerasing", *RPM_PREREQUISITES])
            else:
                self._step("prerequisites", ["dnf", "install", "-y", *RPM_PREREQUISITES])
            self._step("install", ["dnf", "install", "-y", "docker"])
        elif pm == PackageManager.YUM:
            self._refresh(["yum", "update", "-y"])
            self._step("prerequisites", ["yum", "install", "-y", *RPM_PREREQUISITES])
            if profile.distro == Distro.AMAZON_LINUX_2:
                self._step("install", ["amazon-linux-extras", "install", "-y", "docker"])
            else:
                self._step("install", ["yum", "install", "-y", "docker"])
        else:
            raise InstallError(
                "select-package-source", 1, f"No supported package manager found on this host ({profile.os_family.value})."
            )

    def _install_apt(self, profile: HostProfile) -> None:
        distro = "debian" if profile.distro == Distro.DEBIAN else "ubuntu"
        arch = _DPKG_ARCH.get(profile.architecture)
        if not profile.codename:
            raise InstallError("select-package-source", 1, "Could not determine the release codename from os-release.")
        if arch is None:
            raise InstallError("select-package-source", 1, f"Unsupported architecture for apt: {profile.architecture.value}")

        self._refresh(["apt-get", "update", "-y"])
        self._step("prerequisites", ["apt-get", "install", "-y", *APT_PREREQUISITES])

        key_url = f"{DOCKER_DOWNLOAD_BASE}/{distro}/gpg"
        try:
            key = self.key_fetcher(key_url)
        except httpx.HTTPError as e:
            raise InstallError("repository-key", 1, f"Could not download {key_url}: {e}") from e
        self._step("repository-key", ["install", "-m", "0755", "-d", APT_KEYRING_DIR])
        self._step("repository-key", ["tee", APT_KEYRING], input=key)
        self._step("repository-key", ["chmod", "a+r", APT_KEYRING])

        source = f"deb [arch={arch} signed-by={APT_KEYRING}] {DOCKER_DOWNLOAD_BASE}/{distro} {profile.codename} stable\n"
        self._step("repository", ["tee", APT_SOURCE_LIST], input=source)

        self._step("install", ["apt-get", "update", "-y"])
        self._step("install", ["apt-get", "install", "-y", *APT_ENGINE_PACKAGES])

    def _add_user_to_group(self) -> None:
        if not self.user:
            return
        result = self.runner([*self.sudo, "usermod", "-aG", "docker", self.user], check=False, capture_output=True)
        if result.returncode != 0:
            log.warning("Could not add %s to the docker group (exit code %s).", self.user, result.returncode)
        else:
            log.info("Added %s to the docker group; log out and back in to use docker without sudo.", self.user)
