from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class ObjectStore(Protocol):
    """
    Object storage operations used by the gateway.

    Every call resolves a client with valid credentials first, so results and
    errors are those of the underlying MinIO client.
    """

    async def bucket_exists(self, bucket: str) -> bool: ...

    async def get_object(self, bucket: str, key: str, length: Optional[int] = None) -> bytes: ...

    async def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any: ...

    async def stat_object(self, bucket: str, key: str) -> Any: ...

    async def remove_object(self, bucket: str, key: str) -> None: ...

    async def list_objects(self, bucket: str, prefix: str = "", recursive: bool = False) -> List[Any]: ...

    async def presigned_get_object(self, bucket: str, key: str, ttl_seconds: int = 900) -> str: ...

    async def attribute(self, name: str) -> Any: ...
