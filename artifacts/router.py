# artifacts/router.py
from __future__ import annotations

import io
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse
from minio.error import S3Error
from pydantic import BaseModel

from core.deps import DefaultBucketDep, StorageDep
from providers.errors import NoClientAvailable

log = logging.getLogger(__name__)

router = APIRouter(prefix="/artifacts", tags=["artifacts"])

_MISSING_CODES = ("NoSuchKey", "NoSuchObject", "NoSuchBucket")


class ArtifactItem(BaseModel):
    key: str
    size: Optional[int] = None
    isDir: bool = False
    lastModified: Optional[str] = None


class ArtifactList(BaseModel):
    bucket: str
    prefix: str
    items: List[ArtifactItem]


class PresignedArtifact(BaseModel):
    bucket: str
    key: str
    url: str


def _is_missing(exc: Exception) -> bool:
    if isinstance(exc, FileNotFoundError):
        return True
    if isinstance(exc, S3Error):
        return getattr(exc, "code", "") in _MISSING_CODES
    return False


def _storage_error(exc: Exception, bucket: str, key: str) -> HTTPException:
    if isinstance(exc, NoClientAvailable):
        log.warning("[Artifacts] no storage client bucket=%s key=%s: %s", bucket, key, exc)
        return HTTPException(status_code=503, detail=f"Object store unavailable: {exc}")
    if _is_missing(exc):
        return HTTPException(status_code=404, detail=f"Artifact not found: {bucket}/{key}")
    log.exception("[Artifacts] storage call failed bucket=%s key=%s", bucket, key)
    return HTTPException(status_code=502, detail=f"Object store error: {exc}")


def _require_key(key: str) -> str:
    key = (key or "").strip().lstrip("/")
    if not key:
        raise HTTPException(status_code=400, detail="key is required")
    return key


# ---------------------------------------------------------------------
# GET /artifacts/get
# ---------------------------------------------------------------------
@router.get("/get")
async def get_artifact(
    storage: StorageDep,
    default_bucket: DefaultBucketDep,
    key: str = Query(""),
    bucket: Optional[str] = Query(None),
    peek: Optional[int] = Query(None, ge=0, description="Return at most this many bytes."),
):
    """Return the raw bytes of one object."""
    key = _require_key(key)
    bucket = (bucket or "").strip() or default_bucket

    try:
        data = await storage.get_object(bucket, key, length=peek or None)
    except Exception as exc:
        raise _storage_error(exc, bucket, key) from exc

    if peek is not None:
        data = data[:peek]

    return StreamingResponse(
        io.BytesIO(data),
        media_type="application/octet-stream",
        headers={"Cache-Control": "no-store"},
    )


# ---------------------------------------------------------------------
# GET /artifacts/list
# ---------------------------------------------------------------------
@router.get("/list", response_model=ArtifactList)
async def list_artifacts(
    storage: StorageDep,
    default_bucket: DefaultBucketDep,
    prefix: str = Query(""),
    bucket: Optional[str] = Query(None),
    recursive: bool = Query(False),
):
    bucket = (bucket or "").strip() or default_bucket

    try:
        objects = await storage.list_objects(bucket, prefix=prefix, recursive=recursive)
    except Exception as exc:
        raise _storage_error(exc, bucket, prefix) from exc

    items: List[ArtifactItem] = []
    for obj in objects:
        modified = getattr(obj, "last_modified", None)
        items.append(
            ArtifactItem(
                key=obj.object_name,
                size=getattr(obj, "size", None),
                isDir=bool(getattr(obj, "is_dir", False)),
                lastModified=modified.isoformat() if modified else None,
            )
        )

    return ArtifactList(bucket=bucket, prefix=prefix, items=items)


# ---------------------------------------------------------------------
# GET /artifacts/presign
# ---------------------------------------------------------------------
@router.get("/presign", response_model=PresignedArtifact)
async def presign_artifact(
    storage: StorageDep,
    default_bucket: DefaultBucketDep,
    key: str = Query(""),
    bucket: Optional[str] = Query(None),
    ttl_seconds: int = Query(900, ge=1, le=7 * 24 * 3600),
):
    key = _require_key(key)
    bucket = (bucket or "").strip() or default_bucket

    try:
        url = await storage.presigned_get_object(bucket, key, ttl_seconds=ttl_seconds)
    except Exception as exc:
        raise _storage_error(exc, bucket, key) from exc

    return PresignedArtifact(bucket=bucket, key=key, url=url)
