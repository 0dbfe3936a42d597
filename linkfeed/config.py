from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

from linkfeed.logsink.sink import DEFAULT_MAX_BYTES, LogSinkConfig


def _env_str(name: str, default: str | None = None) -> str:
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return value


def _env_int(name: str, default: int | None = None) -> int:
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return int(value)


def _env_float(name: str, default: float | None = None) -> float:
    value = os.getenv(name)
    if value is None:
        if default is None:
            raise RuntimeError(f"Missing required env: {name}")
        return default
    return float(value)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip().lower()
    return value in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Config:
    # Sources / storage
    sources_path: Path
    sqlite_path: Path

    # Ingestion
    ingest_interval_seconds: int
    fetch_timeout_seconds: float
    fetch_verify_tls: bool
    fetch_retries: int
    fetch_retry_backoff_seconds: float
    items_per_source: int
    retention_days: int
    user_agent: str

    # Metrics / status
    metrics_enabled: bool
    metrics_bind: str
    metrics_port: int
    status_json_path: Path
    status_interval_seconds: int

    # Logging
    debug: bool
    force_log: bool
    log_dir: Path
    log_base_name: str
    log_max_bytes: int
    log_level: str

    def log_sink_config(self) -> LogSinkConfig:
        return LogSinkConfig(
            enabled=self.debug or self.force_log,
            directory=self.log_dir,
            base_name=self.log_base_name,
            max_bytes=self.log_max_bytes,
        )


def load_config() -> Config:
    return Config(
        sources_path=Path(_env_str("SOURCES_PATH", "sources.yaml")),
        sqlite_path=Path(_env_str("SQLITE_PATH", "data/linkfeed.db")),
        ingest_interval_seconds=_env_int("INGEST_INTERVAL_SECONDS", 1800),
        fetch_timeout_seconds=_env_float("FETCH_TIMEOUT_SECONDS", 15.0),
        fetch_verify_tls=_env_bool("FETCH_VERIFY_TLS", False),
        fetch_retries=_env_int("FETCH_RETRIES", 0),
        fetch_retry_backoff_seconds=_env_float("FETCH_RETRY_BACKOFF_SECONDS", 1.0),
        items_per_source=_env_int("ITEMS_PER_SOURCE", 10),
        retention_days=_env_int("RETENTION_DAYS", 365),
        user_agent=_env_str(
            "USER_AGENT",
            "Mozilla/5.0 (compatible; linkfeed/0.1; +https://github.com/linkfeed/linkfeed)",
        ),
        metrics_enabled=_env_bool("METRICS_ENABLED", False),
        metrics_bind=_env_str("METRICS_BIND", "127.0.0.1"),
        metrics_port=_env_int("METRICS_PORT", 9109),
        status_json_path=Path(_env_str("STATUS_JSON_PATH", "data/status.json")),
        status_interval_seconds=_env_int("STATUS_INTERVAL_SECONDS", 30),
        debug=_env_bool("DEBUG", False),
        force_log=_env_bool("FORCE_LOG", False),
        log_dir=Path(_env_str("LOG_DIR", "data/logs")),
        log_base_name=_env_str("LOG_BASE_NAME", "linkfeed"),
        log_max_bytes=_env_int("LOG_MAX_BYTES", DEFAULT_MAX_BYTES),
        log_level=_env_str("LOG_LEVEL", "INFO"),
    )
