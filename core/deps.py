from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from core.providers import providers_from_request
from providers.factory import Providers
from providers.impl.minio_credentials import MinioClientManager
from providers.storage import ObjectStore


# -----------------------------
# Canonical provider access
# -----------------------------

def get_providers(request: Request) -> Providers:
    """
    Canonical runtime provider resolver.

    Source of truth: request.app.state.providers
    """
    return providers_from_request(request)


# -----------------------------
# Canonical service deps
# -----------------------------

def get_storage(request: Request) -> ObjectStore:
    return get_providers(request).storage


StorageDep = Annotated[ObjectStore, Depends(get_storage)]


def get_credential_manager(request: Request) -> MinioClientManager:
    return get_providers(request).manager


CredentialManagerDep = Annotated[MinioClientManager, Depends(get_credential_manager)]


def get_default_bucket(request: Request) -> str:
    return get_providers(request).settings.storage.bucket


DefaultBucketDep = Annotated[str, Depends(get_default_bucket)]
