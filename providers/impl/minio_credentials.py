from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx
from minio import Minio

from providers.errors import CredentialFetchFailed, NoClientAvailable, RoleResolutionFailed
from providers.minio_options import (
    AMAZON_CANONICAL_ENDPOINT,
    ConnectionOptions,
    is_amazon_endpoint,
)

log = logging.getLogger(__name__)

# AWS EC2 metadata store
DEFAULT_METADATA_URL = "http://169.254.169.254/latest/meta-data"

# Bounds role lookup when no metadata service is reachable (e.g. off EC2).
DEFAULT_ROLE_TIMEOUT_SECONDS = 0.5

# Expiration of a persistent client.
NEVER = datetime.max.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_expiration(value: Any) -> datetime:
    """
    Parse the metadata service "Expiration" field (ISO-8601, usually "...Z").
    Naive timestamps are taken as UTC.
    """
    raw = str(value or "").strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class CredentialMode(str, Enum):
    PERSISTENT = "persistent"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class MetadataCredentials:
    access_key: str
    secret_key: str
    session_token: str
    expiration: datetime

    @classmethod
    def from_payload(cls, payload: Any) -> "MetadataCredentials":
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")

        access_key = str(payload.get("AccessKeyId") or "").strip()
        secret_key = str(payload.get("SecretAccessKey") or "").strip()
        if not access_key or not secret_key:
            raise ValueError("AccessKeyId / SecretAccessKey missing from metadata response")

        return cls(
            access_key=access_key,
            secret_key=secret_key,
            session_token=str(payload.get("Token") or "").strip(),
            expiration=parse_expiration(payload.get("Expiration")),
        )


class MinioClientManager:
    """
    Hands out a ready-to-use MinIO client.

    If access key and secret are supplied, or the endpoint is not AWS S3, a
    single persistent client is built at construction and returned forever.

    On AWS S3 with an empty access key or secret, credentials come from the
    EC2 IAM role instead:
      1) GET {metadata_url}/iam/security-credentials/         -> role name (cached)
      2) GET {metadata_url}/iam/security-credentials/{role}   -> temporary keys
    The resulting client is cached until the credentials' Expiration. Concurrent
    callers that find no valid client all await one shared refresh task.
    """

    def __init__(
        self,
        options: ConnectionOptions,
        *,
        metadata_url: str = DEFAULT_METADATA_URL,
        role_timeout: float = DEFAULT_ROLE_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
        client_factory: Callable[..., Any] = Minio,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.options = options
        self.metadata_url = (metadata_url or DEFAULT_METADATA_URL).rstrip("/")
        self.role_timeout = role_timeout

        self._http = http_client
        self._owns_http = http_client is None
        self._client_factory = client_factory
        self._clock = clock

        self._client: Any = None
        self._expiration: Optional[datetime] = None
        self._role: Optional[str] = None
        self._refresh_task: Optional[asyncio.Future] = None
        self._closed = False

        self._init()

    # ----------------------------
    # State
    # ----------------------------
    def _init(self) -> None:
        if is_amazon_endpoint(self.options.endpoint) and not self.options.has_static_keys():
            # no credentials provided, fall back to IAM role credentials
            self.mode = CredentialMode.DYNAMIC
            log.info("[MinIO] endpoint=%s without keys; using EC2 IAM role credentials", self.options.endpoint)
            return

        self.mode = CredentialMode.PERSISTENT
        self._expiration = NEVER
        self._client = self._build_client(self.options)
        log.info("[MinIO] endpoint=%s using configured access keys", self.options.host)

    @property
    def expiration(self) -> Optional[datetime]:
        return self._expiration

    @property
    def role(self) -> Optional[str]:
        return self._role

    def _is_valid(self) -> bool:
        if self._client is None or self._expiration is None:
            return False
        return self._expiration > self._clock()

    def describe(self) -> Dict[str, Any]:
        if self._expiration is None:
            expiration = None
        elif self._expiration == NEVER:
            expiration = "never"
        else:
            expiration = self._expiration.isoformat()

        return {
            "mode": self.mode.value,
            "endpoint": self.options.host if self.mode is CredentialMode.PERSISTENT else AMAZON_CANONICAL_ENDPOINT,
            "role": self._role,
            "expiration": expiration,
            "cached": self._is_valid(),
            "refreshing": self._refresh_task is not None,
        }

    # ----------------------------
    # Public API
    # ----------------------------
    async def acquire_client(self) -> Any:
        """
        Return a client whose credentials are valid now.

        Raises RoleResolutionFailed / CredentialFetchFailed (both NoClientAvailable)
        when IAM role credentials cannot be obtained.
        After aclose() a refresh is no longer started and NoClientAvailable is
        raised instead.
        """
        if self.mode is CredentialMode.PERSISTENT:
            return self._client

        if self._is_valid():
            return self._client

        if self._refresh_task is None:
            if self._closed:
                raise NoClientAvailable("MinioClientManager is closed")
            self._refresh_task = asyncio.ensure_future(self._refresh())
            self._refresh_task.add_done_callback(self._refresh_done)

        # shield: one waiter being cancelled must not cancel the shared refresh
        return await asyncio.shield(self._refresh_task)

    async def aclose(self) -> None:
        self._closed = True
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    # ----------------------------
    # Refresh
    # ----------------------------
    def _refresh_done(self, task: asyncio.Future) -> None:
        self._refresh_task = None
        if not task.cancelled():
            # retrieved here so asyncio does not warn if every waiter was cancelled
            task.exception()

    async def _refresh(self) -> Any:
        log.info("[MinIO] refreshing IAM role credentials role=%s", self._role or "<unresolved>")

        if not self._role:
            self._role = await self._fetch_role()
        if not self._role:
            log.warning("[MinIO] no IAM role available from %s", self.metadata_url)
            raise RoleResolutionFailed("Unable to find IAM role for EC2 instance.")

        creds = await self._fetch_credentials(self._role)
        client = self._build_client(
            ConnectionOptions(
                endpoint=AMAZON_CANONICAL_ENDPOINT,
                access_key=creds.access_key,
                secret_key=creds.secret_key,
                session_token=creds.session_token or None,
                secure=True,
                region=self.options.region,
            )
        )

        self._client = client
        self._expiration = creds.expiration
        log.info("[MinIO] IAM role credentials refreshed role=%s expiration=%s", self._role, creds.expiration.isoformat())
        return client

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    async def _fetch_role(self) -> Optional[str]:
        url = f"{self.metadata_url}/iam/security-credentials/"
        try:
            resp = await self._http_client().get(url, timeout=self.role_timeout)
        except httpx.HTTPError as exc:
            log.warning("[MinIO] IAM role lookup failed url=%s error=%s", url, exc.__class__.__name__)
            return None

        if not resp.is_success:
            log.warning("[MinIO] IAM role lookup failed url=%s status=%s", url, resp.status_code)
            return None

        for line in resp.text.splitlines():
            if line.strip():
                return line.strip()
        return None

    async def _fetch_credentials(self, role: str) -> MetadataCredentials:
        url = f"{self.metadata_url}/iam/security-credentials/{role}"
        try:
            resp = await self._http_client().get(url)
            resp.raise_for_status()
            return MetadataCredentials.from_payload(resp.json())
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("[MinIO] IAM credential fetch failed role=%s error=%s", role, exc)
            raise CredentialFetchFailed(f"Unable to fetch credentials for IAM role {role!r}: {exc}") from exc

    def _build_client(self, options: ConnectionOptions) -> Any:
        return self._client_factory(
            endpoint=options.host,
            access_key=options.access_key,
            secret_key=options.secret_key,
            session_token=options.session_token,
            secure=bool(options.secure),
            region=options.region,
        )
