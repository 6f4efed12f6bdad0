from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from providers.impl.minio_credentials import DEFAULT_METADATA_URL, DEFAULT_ROLE_TIMEOUT_SECONDS
from providers.minio_options import ConnectionOptions, conf_from_env


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else str(v)


def _env_float(name: str, default: float) -> float:
    raw = _env(name, "")
    if not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = _env(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ---------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StorageSettings:
    """
    Object store configuration.

    connection comes from MINIO_* (see providers.minio_options.conf_from_env).
    An AWS S3 endpoint with an empty access key or secret switches the client
    to EC2 IAM role credentials fetched from metadata_url.
    """
    connection: ConnectionOptions
    bucket: str = "mlpipeline"
    metadata_url: str = DEFAULT_METADATA_URL
    role_timeout_seconds: float = DEFAULT_ROLE_TIMEOUT_SECONDS


@dataclass(frozen=True)
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


@dataclass(frozen=True)
class Settings:
    storage: StorageSettings
    server: ServerSettings


# ---------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------

def _load_storage_settings() -> StorageSettings:
    bucket = (_env("MINIO_BUCKET", "") or "mlpipeline").strip()
    metadata_url = (_env("MINIO_METADATA_URL", "") or DEFAULT_METADATA_URL).strip().rstrip("/")

    role_timeout = _env_float("MINIO_METADATA_ROLE_TIMEOUT_SECONDS", DEFAULT_ROLE_TIMEOUT_SECONDS)
    role_timeout = max(0.05, float(role_timeout))

    return StorageSettings(
        connection=conf_from_env(os.environ),
        bucket=bucket,
        metadata_url=metadata_url,
        role_timeout_seconds=role_timeout,
    )


def _load_server_settings() -> ServerSettings:
    host = (_env("SERVER_HOST", "") or "0.0.0.0").strip()
    port = _env_int("SERVER_PORT", 8000)
    if port <= 0:
        port = 8000
    log_level = (_env("LOG_LEVEL", "") or "INFO").strip().upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        log_level = "INFO"

    return ServerSettings(host=host, port=port, log_level=log_level)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        storage=_load_storage_settings(),
        server=_load_server_settings(),
    )
