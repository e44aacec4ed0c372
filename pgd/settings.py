from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(x.strip() for x in raw.split(",") if x.strip())


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("PGD_DB_PATH", "pgd.db")
    log_level: str = os.getenv("PGD_LOG_LEVEL", "INFO")

    # Service
    container_name: str = os.getenv("PGD_CONTAINER_NAME", "pgduckdb")
    image: str = os.getenv("PGD_IMAGE", "pgduckdb/pgduckdb:17-main")
    port: int = _env_int("PGD_PORT", 5432)
    data_dir: str = os.getenv("PGD_DATA_DIR", "~/pgduckdb_data")
    container_data_path: str = os.getenv("PGD_CONTAINER_DATA_PATH", "/var/lib/postgresql/data")
    restart_policy: str = os.getenv("PGD_RESTART_POLICY", "unless-stopped")
    db_user: str = os.getenv("PGD_DB_USER", "postgres")
    extensions: tuple[str, ...] = _env_list("PGD_EXTENSIONS", ("duckdb",))

    # Waits
    ready_attempts: int = _env_int("PGD_READY_ATTEMPTS", 30)
    ready_interval_s: float = _env_float("PGD_READY_INTERVAL_S", 2.0)
    health_attempts: int = _env_int("PGD_HEALTH_ATTEMPTS", 15)
    health_interval_s: float = _env_float("PGD_HEALTH_INTERVAL_S", 2.0)

    # Database tuning
    buffer_cache_ratio: float = _env_float("PGD_BUFFER_CACHE_RATIO", 0.125)
    query_logging: bool = _env_bool("PGD_QUERY_LOGGING", True)

    # Outputs
    scripts_dir: str = os.getenv("PGD_SCRIPTS_DIR", "~")
    api_url: str = os.getenv("PGD_API_URL", "http://localhost:8000")


settings = Settings()
