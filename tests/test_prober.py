import pytest

from pgd.models import Architecture, Distro, OsFamily, PackageManager
from pgd.prober import classify_architecture, classify_distro, probe, read_os_release


UBUNTU = """\
PRETTY_NAME="Ubuntu 22.04.4 LTS"
NAME="Ubuntu"
VERSION_ID="22.04"
ID=ubuntu
ID_LIKE=debian
UBUNTU_CODENAME=jammy
VERSION_CODENAME=jammy
"""

AL2023 = """\
NAME="Amazon Linux"
VERSION="2023"
ID="amzn"
ID_LIKE="fedora"
VERSION_ID="2023"
PRETTY_NAME="Amazon Linux 2023.4.20240528"
"""

AL2 = """\
NAME="Amazon Linux"
VERSION="2"
ID="amzn"
ID_LIKE="centos rhel fedora"
VERSION_ID="2"
"""


def _write(tmp_path, name, text):
    p = tmp_path / name
    p.write_text(text)
    return p


def test_read_os_release_strips_quotes_and_comments(tmp_path):
    p = _write(tmp_path, "os-release", '# comment\nID="amzn"\n\nVERSION_ID=\'2\'\nbogus line\n')
    assert read_os_release(p) == {"ID": "amzn", "VERSION_ID": "2"}


def test_read_os_release_missing_file(tmp_path):
    assert read_os_release(tmp_path / "nope") == {}


@pytest.mark.parametrize(
    "info,expected",
    [
        ({"ID": "ubuntu"}, Distro.UBUNTU),
        ({"ID": "debian"}, Distro.DEBIAN),
        ({"ID": "amzn", "VERSION_ID": "2023"}, Distro.AMAZON_LINUX_2023),
        ({"ID": "amzn", "VERSION_ID": "2"}, Distro.AMAZON_LINUX_2),
        ({"ID": "fedora"}, Distro.FEDORA),
        ({"ID": "rocky", "ID_LIKE": "rhel centos fedora"}, Distro.RHEL),
        ({"ID": "linuxmint", "ID_LIKE": "ubuntu debian"}, Distro.UBUNTU),
        ({"ID": "arch"}, Distro.UNKNOWN),
        ({}, Distro.UNKNOWN),
    ],
)
def test_classify_distro(info, expected):
    assert classify_distro(info) == expected


@pytest.mark.parametrize(
    "machine,expected",
    [("aarch64", Architecture.ARM64), ("arm64", Architecture.ARM64), ("x86_64", Architecture.X86_64),
     ("AMD64", Architecture.X86_64), ("riscv64", Architecture.OTHER), ("", Architecture.OTHER)],
)
def test_classify_architecture(machine, expected):
    assert classify_architecture(machine) == expected


def test_probe_ubuntu_arm(tmp_path):
    osr = _write(tmp_path, "os-release", UBUNTU)
    mem = _write(tmp_path, "meminfo", "MemTotal:       16384000 kB\nMemFree:  100 kB\n")
    profile = probe(osr, mem, machine="aarch64", which=lambda _: None)
    assert profile.os_family == OsFamily.DEBIAN_LIKE
    assert profile.distro == Distro.UBUNTU
    assert profile.package_manager == PackageManager.APT
    assert profile.codename == "jammy"
    assert profile.architecture == Architecture.ARM64
    assert profile.total_memory_bytes == 16384000 * 1024


@pytest.mark.parametrize(
    "text,distro,pm",
    [(AL2023, Distro.AMAZON_LINUX_2023, PackageManager.DNF), (AL2, Distro.AMAZON_LINUX_2, PackageManager.YUM)],
)
def test_probe_amazon_linux(tmp_path, text, distro, pm):
    osr = _write(tmp_path, "os-release", text)
    mem = _write(tmp_path, "meminfo", "MemTotal: 8000000 kB\n")
    profile = probe(osr, mem, machine="x86_64", which=lambda _: None)
    assert profile.os_family == OsFamily.RHEL_LIKE
    assert profile.distro == distro
    assert profile.package_manager == pm
    assert profile.architecture == Architecture.X86_64


def test_probe_unknown_host_degrades_without_raising(tmp_path):
    profile = probe(tmp_path / "missing", tmp_path / "missing-meminfo", machine="sparc", which=lambda _: None)
    assert profile.os_family == OsFamily.OTHER
    assert profile.distro == Distro.UNKNOWN
    assert profile.package_manager == PackageManager.NONE
    assert profile.architecture == Architecture.OTHER
    assert profile.total_memory_bytes >= 0


def test_probe_unknown_distro_uses_installed_package_manager(tmp_path):
    osr = _write(tmp_path, "os-release", "ID=mystery\n")
    profile = probe(osr, tmp_path / "meminfo", machine="x86_64", which=lambda exe: "/usr/bin/yum" if exe == "yum" else None)
    assert profile.package_manager == PackageManager.YUM
