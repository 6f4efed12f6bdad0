from core.settings import get_settings
from providers.factory import build_providers
from providers.impl.minio_credentials import DEFAULT_METADATA_URL, CredentialMode


def _clear_minio_env(monkeypatch):
    for name in (
        "MINIO_END_POINT",
        "MINIO_PORT",
        "MINIO_ACCESS_KEY",
        "MINIO_SECRET_KEY",
        "MINIO_SECURE",
        "MINIO_REGION",
        "MINIO_BUCKET",
        "MINIO_METADATA_URL",
        "MINIO_METADATA_ROLE_TIMEOUT_SECONDS",
        "LOG_LEVEL",
        "SERVER_PORT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_settings_defaults(monkeypatch):
    _clear_minio_env(monkeypatch)

    s = get_settings()
    assert s.storage.connection.endpoint == "minio-service.kubeflow"
    assert s.storage.connection.port == 9000
    assert s.storage.bucket == "mlpipeline"
    assert s.storage.metadata_url == DEFAULT_METADATA_URL
    assert s.storage.role_timeout_seconds == 0.5
    assert s.server.port == 8000
    assert s.server.log_level == "INFO"


def test_settings_overrides_and_clamps(monkeypatch):
    _clear_minio_env(monkeypatch)
    monkeypatch.setenv("MINIO_BUCKET", "artifacts")
    monkeypatch.setenv("MINIO_METADATA_URL", "http://metadata.local/latest/meta-data/")
    monkeypatch.setenv("MINIO_METADATA_ROLE_TIMEOUT_SECONDS", "0")
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    monkeypatch.setenv("SERVER_PORT", "-1")

    s = get_settings()
    assert s.storage.bucket == "artifacts"
    assert s.storage.metadata_url == "http://metadata.local/latest/meta-data"
    assert s.storage.role_timeout_seconds == 0.05
    assert s.server.log_level == "INFO"
    assert s.server.port == 8000


def test_bad_numbers_fall_back(monkeypatch):
    _clear_minio_env(monkeypatch)
    monkeypatch.setenv("MINIO_METADATA_ROLE_TIMEOUT_SECONDS", "soon")

    assert get_settings().storage.role_timeout_seconds == 0.5


def test_build_providers_static_minio(monkeypatch):
    _clear_minio_env(monkeypatch)

    p = build_providers(get_settings())
    assert p.manager.mode is CredentialMode.PERSISTENT
    assert p.storage.manager is p.manager


def test_build_providers_iam_role_on_s3(monkeypatch):
    _clear_minio_env(monkeypatch)
    monkeypatch.setenv("MINIO_END_POINT", "s3.amazonaws.com")
    monkeypatch.setenv("MINIO_ACCESS_KEY", "")
    monkeypatch.setenv("MINIO_SECRET_KEY", "")
    monkeypatch.setenv("MINIO_METADATA_ROLE_TIMEOUT_SECONDS", "2")

    p = build_providers(get_settings())
    assert p.manager.mode is CredentialMode.DYNAMIC
    assert p.manager.role_timeout == 2.0
    assert p.manager.describe()["cached"] is False
