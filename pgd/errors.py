from __future__ import annotations


def shell_exit_code(code: int) -> int:
    """Non-zero exit code for a failure; signal deaths (-N) become 128 + N like in a shell."""
    if code < 0:
        return 128 - code
    return code if code else 1


class PgdError(Exception):
    """Base for failures that end (or degrade) a deployment run.

    Every error names the stage it happened in and the exit code the CLI
    should finish with.
    """

    def __init__(self, stage: str, message: str, exit_code: int = 1):
        super().__init__(message)
        self.stage = stage
        self.exit_code = shell_exit_code(exit_code)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class ValidationError(PgdError):
    """Pre-flight input check failed; nothing on the host was touched."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__("validate", message, exit_code=1)
        self.missing = list(missing or [])


class InstallError(PgdError):
    def __init__(self, stage: str, underlying_exit_code: int, message: str = ""):
        super().__init__(
            stage,
            message or f"Docker installation failed at stage '{stage}' (exit code {underlying_exit_code})",
            exit_code=underlying_exit_code,
        )
        self.underlying_exit_code = underlying_exit_code


class VolumeError(PgdError):
    """The host directory for the data volume could not be created."""

    def __init__(self, path: str, detail: str):
        super().__init__("prepare-volume", f"Cannot create volume directory {path}: {detail}")
        self.path = path


class ReconcileError(PgdError):
    def __init__(
        self,
        stage: str,
        message: str,
        status: str | None = None,
        captured_logs: str = "",
        exit_code: int = 1,
    ):
        super().__init__(stage, message, exit_code=exit_code)
        self.status = status
        self.captured_logs = captured_logs


class MissingCredential(ReconcileError):
    def __init__(self, key: str):
        super().__init__("validate", f"Required credential '{key}' is missing from the service environment.")
        self.key = key


class ConfigError(PgdError):
    pass


class ConfigNotReady(ConfigError):
    def __init__(self, status: str):
        super().__init__("configure", f"Service is not running (status: {status}); cannot apply settings.")
        self.status = status


class PartialFailure(ConfigError):
    """Some settings failed but the reload was still issued. Not fatal."""

    def __init__(self, failed_keys: list[str]):
        super().__init__("configure", f"Failed to apply settings: {', '.join(failed_keys)}")
        self.failed_keys = list(failed_keys)


class ReloadFailed(ConfigError):
    def __init__(self, exit_code: int, output: str = "", failed_keys: list[str] | None = None):
        super().__init__("reload", f"Configuration reload failed: {output.strip() or 'no output'}", exit_code=exit_code)
        self.output = output
        self.failed_keys = list(failed_keys or [])


class RuntimeOperationError(Exception):
    """A container runtime call failed."""

    def __init__(self, operation: str, detail: str):
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class AdminCommandError(Exception):
    """An administrative command inside the service returned non-zero."""

    def __init__(self, exit_code: int, output: str):
        super().__init__(f"exit code {exit_code}: {output.strip()}")
        self.exit_code = exit_code
        self.output = output
