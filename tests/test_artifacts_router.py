from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from artifacts.router import router as artifacts_router
from core.settings import ServerSettings, Settings, StorageSettings
from health.router import router as health_router
from providers.factory import Providers
from providers.impl.minio_credentials import MinioClientManager
from providers.impl.storage_minio import MinioClientProxy
from providers.minio_options import ConnectionOptions


class FakeResponse:
    def __init__(self, data: bytes):
        self.data = data

    def read(self) -> bytes:
        return self.data

    def close(self) -> None:
        pass

    def release_conn(self) -> None:
        pass


class FakeMinio:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.objects: Dict[str, bytes] = {
            "mlpipeline/runs/1/out.txt": b"hello artifact",
            "other/a.bin": b"\x00\x01",
        }
        self.lengths: List[Optional[int]] = []

    def get_object(self, bucket_name, object_name, length=None):
        key = f"{bucket_name}/{object_name}"
        if key not in self.objects:
            # local provider behavior for missing keys
            raise FileNotFoundError(key)
        self.lengths.append(length)
        data = self.objects[key]
        return FakeResponse(data[:length] if length else data)

    def list_objects(self, bucket_name, prefix=None, recursive=False):
        return [
            SimpleNamespace(
                object_name="runs/1/out.txt",
                size=14,
                is_dir=False,
                last_modified=datetime(2024, 5, 1, tzinfo=timezone.utc),
            ),
            SimpleNamespace(object_name="runs/2/", size=None, is_dir=True, last_modified=None),
        ]

    def presigned_get_object(self, bucket_name, object_name, expires):
        return f"https://minio.test/{bucket_name}/{object_name}?X-Amz-Expires={int(expires.total_seconds())}"


def _client_for(options: ConnectionOptions, **manager_kwargs) -> TestClient:
    settings = Settings(
        storage=StorageSettings(connection=options, bucket="mlpipeline"),
        server=ServerSettings(),
    )
    manager = MinioClientManager(options, client_factory=FakeMinio, **manager_kwargs)

    app = FastAPI()
    app.include_router(health_router)
    app.include_router(artifacts_router)
    app.state.providers = Providers(settings=settings, manager=manager, storage=MinioClientProxy(manager))
    return TestClient(app)


@pytest.fixture
def client() -> TestClient:
    return _client_for(ConnectionOptions(endpoint="minio.test", port=9000, access_key="minio", secret_key="minio123"))


@pytest.fixture
def offline_client() -> TestClient:
    # AWS endpoint without keys, and no metadata service reachable
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("no route to metadata service")

    return _client_for(
        ConnectionOptions(endpoint="s3.amazonaws.com"),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


# ---------------------------------------------------------------------
# /health
# ---------------------------------------------------------------------

def test_health_is_always_ok(client):
    assert client.get("/health").json() == {"ok": True}


def test_health_storage_persistent(client):
    body = client.get("/health/storage").json()
    assert body["ok"] is True
    assert body["clientReady"] is True
    assert body["mode"] == "persistent"
    assert body["endpoint"] == "minio.test:9000"
    assert body["expiration"] == "never"


def test_health_storage_reports_missing_role(offline_client):
    resp = offline_client.get("/health/storage")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is False
    assert body["clientReady"] is False
    assert body["mode"] == "dynamic"
    assert body["role"] is None
    assert "IAM role" in body["error"]


# ---------------------------------------------------------------------
# /artifacts/get
# ---------------------------------------------------------------------

def test_get_artifact_from_default_bucket(client):
    resp = client.get("/artifacts/get", params={"key": "runs/1/out.txt"})
    assert resp.status_code == 200
    assert resp.content == b"hello artifact"
    assert resp.headers["content-type"] == "application/octet-stream"


def test_get_artifact_from_explicit_bucket_with_peek(client):
    resp = client.get("/artifacts/get", params={"bucket": "other", "key": "/a.bin", "peek": 1})
    assert resp.status_code == 200
    assert resp.content == b"\x00"
    # only the peeked range is requested from storage
    assert client.app.state.providers.manager._client.lengths == [1]


def test_get_artifact_without_peek_reads_whole_object(client):
    resp = client.get("/artifacts/get", params={"bucket": "other", "key": "a.bin"})
    assert resp.content == b"\x00\x01"
    assert client.app.state.providers.manager._client.lengths == [None]


def test_get_artifact_peek_zero_is_empty(client):
    resp = client.get("/artifacts/get", params={"bucket": "other", "key": "a.bin", "peek": 0})
    assert resp.status_code == 200
    assert resp.content == b""


def test_get_artifact_missing_is_404(client):
    resp = client.get("/artifacts/get", params={"key": "runs/9/none.txt"})
    assert resp.status_code == 404


def test_get_artifact_requires_key(client):
    assert client.get("/artifacts/get").status_code == 400


def test_get_artifact_without_credentials_is_503(offline_client):
    resp = offline_client.get("/artifacts/get", params={"key": "runs/1/out.txt"})
    assert resp.status_code == 503
    assert "Object store unavailable" in resp.json()["detail"]


# ---------------------------------------------------------------------
# /artifacts/list + /artifacts/presign
# ---------------------------------------------------------------------

def test_list_artifacts(client):
    body = client.get("/artifacts/list", params={"prefix": "runs/"}).json()
    assert body["bucket"] == "mlpipeline"
    assert body["prefix"] == "runs/"
    assert body["items"] == [
        {"key": "runs/1/out.txt", "size": 14, "isDir": False, "lastModified": "2024-05-01T00:00:00+00:00"},
        {"key": "runs/2/", "size": None, "isDir": True, "lastModified": None},
    ]


def test_presign_artifact(client):
    body = client.get("/artifacts/presign", params={"key": "runs/1/out.txt", "ttl_seconds": 120}).json()
    assert body == {
        "bucket": "mlpipeline",
        "key": "runs/1/out.txt",
        "url": "https://minio.test/mlpipeline/runs/1/out.txt?X-Amz-Expires=120",
    }


def test_routes_fail_loudly_without_providers():
    app = FastAPI()
    app.include_router(artifacts_router)
    with pytest.raises(RuntimeError):
        TestClient(app).get("/artifacts/list")
