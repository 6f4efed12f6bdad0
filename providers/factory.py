from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.settings import Settings, get_settings
from providers.impl.minio_credentials import MinioClientManager
from providers.impl.storage_minio import MinioClientProxy
from providers.storage import ObjectStore


@dataclass(frozen=True)
class Providers:
    """
    Central container for providers.

    manager is exposed for health reporting; request handlers go through storage.
    """
    settings: Settings
    manager: MinioClientManager
    storage: ObjectStore


def build_providers(settings: Settings) -> Providers:
    s = settings.storage
    manager = MinioClientManager(
        s.connection,
        metadata_url=s.metadata_url,
        role_timeout=s.role_timeout_seconds,
    )
    return Providers(settings=settings, manager=manager, storage=MinioClientProxy(manager))


_cached: Optional[Providers] = None


def get_providers() -> Providers:
    global _cached
    if _cached is None:
        _cached = build_providers(get_settings())
    return _cached


async def close_providers() -> None:
    global _cached
    if _cached is not None:
        await _cached.manager.aclose()
        _cached = None
