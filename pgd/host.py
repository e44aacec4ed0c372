from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from typing import Protocol


class CommandError(subprocess.CalledProcessError):
    """Non-zero exit from a host command; str() shows the command and stderr."""

    def __str__(self) -> str:
        out = f"Exit code {self.returncode} from: {' '.join(shlex.quote(a) for a in self.cmd)}"
        if self.stderr:
            out += f"\n{str(self.stderr).strip()}"
        return out


class Runner(Protocol):
    def __call__(
        self,
        argv: list[str],
        *,
        check: bool = True,
        capture_output: bool = False,
        input: str | None = None,
    ) -> subprocess.CompletedProcess: ...


def run(
    argv: list[str],
    *,
    check: bool = True,
    capture_output: bool = False,
    input: str | None = None,
) -> subprocess.CompletedProcess:
    """subprocess.run in text mode, raising CommandError when check is set.

    A missing executable is reported as exit code 127, like a shell would.
    """
    try:
        result = subprocess.run(
            argv,
            capture_output=capture_output,
            input=input,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        if check:
            raise CommandError(127, argv, "", str(e)) from e
        return subprocess.CompletedProcess(argv, 127, "", str(e))
    if check and result.returncode != 0:
        raise CommandError(result.returncode, argv, result.stdout, result.stderr)
    return result


def sudo_prefix() -> list[str]:
    """``["sudo"]`` unless we already run as root (or sudo is unavailable)."""
    if os.name != "posix" or os.geteuid() == 0 or not shutil.which("sudo"):
        return []
    return ["sudo"]


def invoking_user() -> str | None:
    """The human user behind this process, looking through sudo."""
    user = os.environ.get("SUDO_USER") or os.environ.get("USER")
    if not user or user == "root":
        return None
    return user
