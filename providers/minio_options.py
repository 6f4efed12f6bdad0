from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


# Endpoints for which an empty key pair means "use the EC2 IAM role".
AMAZON_ENDPOINTS = frozenset(
    {
        "s3.amazonaws.com",
        "s3.cn-north-1.amazonaws.com.cn",
    }
)

# Client built from IAM role credentials always talks to this endpoint.
AMAZON_CANONICAL_ENDPOINT = "s3.amazonaws.com"


@dataclass(frozen=True)
class ConnectionOptions:
    """
    Everything needed to build a MinIO/S3 client.

    endpoint is a bare hostname (no scheme, no port).
    """

    endpoint: str
    access_key: str = ""
    secret_key: str = ""
    port: Optional[int] = None
    secure: bool = False
    region: Optional[str] = None
    session_token: Optional[str] = None

    @property
    def host(self) -> str:
        # Minio() takes "host:port" in a single argument
        if self.port:
            return f"{self.endpoint}:{self.port}"
        return self.endpoint

    def has_static_keys(self) -> bool:
        return bool(self.access_key) and bool(self.secret_key)


def is_amazon_endpoint(endpoint: str) -> bool:
    return (endpoint or "").strip().lower() in AMAZON_ENDPOINTS


def as_bool(value: Optional[str]) -> bool:
    if not value:
        return False
    return value.strip().lower() in ("true", "1")


def _as_port(value: Optional[str], default: int) -> int:
    try:
        return int((value or "").strip())
    except ValueError:
        return default


def _strip_http(endpoint: str) -> str:
    # tolerate MINIO_END_POINT=http://host/ ; the port belongs in MINIO_PORT
    endpoint = (endpoint or "").strip()
    endpoint = endpoint.replace("http://", "").replace("https://", "")
    return endpoint.rstrip("/")


def conf_from_env(env: Optional[Mapping[str, str]] = None) -> ConnectionOptions:
    """
    Build ConnectionOptions from MINIO_* environment variables.

    Defaults match the in-cluster MinIO service:
      - MINIO_END_POINT  minio-service.kubeflow
      - MINIO_PORT       9000
      - MINIO_ACCESS_KEY minio
      - MINIO_SECRET_KEY minio123
      - MINIO_SECURE     false ("true"/"1" enable it)
      - MINIO_REGION     unset
    """
    env = os.environ if env is None else env

    endpoint = _strip_http(env.get("MINIO_END_POINT", "minio-service.kubeflow"))
    region = (env.get("MINIO_REGION") or "").strip() or None

    return ConnectionOptions(
        endpoint=endpoint,
        port=_as_port(env.get("MINIO_PORT", "9000"), 9000),
        secure=as_bool(env.get("MINIO_SECURE", "false")),
        access_key=env.get("MINIO_ACCESS_KEY", "minio"),
        secret_key=env.get("MINIO_SECRET_KEY", "minio123"),
        region=region,
    )
