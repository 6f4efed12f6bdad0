from __future__ import annotations

import asyncio
import io
from datetime import timedelta
from typing import Any, Dict, List, Optional

from providers.impl.minio_credentials import MinioClientManager
from providers.minio_options import ConnectionOptions
from providers.storage import ObjectStore


def _key(key: str) -> str:
    return (key or "").lstrip("/")


def _read_object(client: Any, bucket: str, key: str, length: Optional[int] = None) -> bytes:
    # minio reads length=0 as "whole object"
    if length:
        resp = client.get_object(bucket_name=bucket, object_name=key, length=length)
    else:
        resp = client.get_object(bucket_name=bucket, object_name=key)
    try:
        return resp.read()
    finally:
        resp.close()
        resp.release_conn()


def _clean_metadata(metadata: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    # metadata headers must be strings
    meta: Dict[str, str] = {}
    for k, v in (metadata or {}).items():
        if v is None:
            continue
        meta[str(k)] = str(v)
    return meta or None


class MinioClientProxy(ObjectStore):
    """
    MinIO client facade that never holds on to a client.

    Each operation asks the manager for a client first (refreshing IAM role
    credentials if they expired), then runs the blocking minio call in a worker
    thread. Errors from either step reach the caller unchanged.
    """

    def __init__(self, manager: MinioClientManager) -> None:
        self.manager = manager

    async def _call(self, method: str, **kwargs: Any) -> Any:
        client = await self.manager.acquire_client()
        return await asyncio.to_thread(getattr(client, method), **kwargs)

    async def attribute(self, name: str) -> Any:
        client = await self.manager.acquire_client()
        return getattr(client, name)

    async def bucket_exists(self, bucket: str) -> bool:
        return await self._call("bucket_exists", bucket_name=bucket)

    async def get_object(self, bucket: str, key: str, length: Optional[int] = None) -> bytes:
        client = await self.manager.acquire_client()
        return await asyncio.to_thread(_read_object, client, bucket, _key(key), length)

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        if data is None:
            data = b""

        # MinIO put_object requires a stream and a length
        return await self._call(
            "put_object",
            bucket_name=bucket,
            object_name=_key(key),
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type or "application/octet-stream",
            metadata=_clean_metadata(metadata),
        )

    async def stat_object(self, bucket: str, key: str) -> Any:
        return await self._call("stat_object", bucket_name=bucket, object_name=_key(key))

    async def remove_object(self, bucket: str, key: str) -> None:
        await self._call("remove_object", bucket_name=bucket, object_name=_key(key))

    async def list_objects(self, bucket: str, prefix: str = "", recursive: bool = False) -> List[Any]:
        client = await self.manager.acquire_client()

        def _list() -> List[Any]:
            # list_objects is a lazy generator; drain it off the event loop
            objects = client.list_objects(bucket_name=bucket, prefix=_key(prefix) or None, recursive=recursive)
            return list(objects)

        return await asyncio.to_thread(_list)

    async def presigned_get_object(self, bucket: str, key: str, ttl_seconds: int = 900) -> str:
        return await self._call(
            "presigned_get_object",
            bucket_name=bucket,
            object_name=_key(key),
            expires=timedelta(seconds=max(1, int(ttl_seconds))),
        )


def get_minio_client_proxy(options: ConnectionOptions, **manager_kwargs: Any) -> MinioClientProxy:
    """
    Build a manager for `options` and return a proxy over it.

    Usage:
        storage = get_minio_client_proxy(conf_from_env())
        data = await storage.get_object("mlpipeline", "artifacts/run-1/out.tgz")
    """
    return MinioClientProxy(MinioClientManager(options, **manager_kwargs))
