from __future__ import annotations

import pytest

from dialogue_worker.config import WorkerConfig

ENV_KEYS = (
    "JOB_SOURCE_TYPE", "DATABASE_URL", "AWS_SQS_QUEUE_URL", "AWS_S3_BUCKET", "ANALYSIS_PROVIDERS",
    "CONFIDENCE_THRESHOLD", "WORKER_MAX_ATTEMPTS", "DID_API_URL", "WORKER_DEV_HTTP", "SQS_VISIBILITY_TIMEOUT",
    "VIDEO_GEN_TIMEOUT_S", "VIDEO_PROVIDER_RETRY_LIMIT", "STORAGE_RETRY_LIMIT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    config = WorkerConfig.from_env()

    assert config.JOB_SOURCE_TYPE == "postgres"
    assert config.ANALYSIS_PROVIDERS == ["elevenlabs", "google"]
    assert config.ANALYSIS_MAX_RETRIES == 2
    assert config.ANALYSIS_RETRY_DELAY_MS == 1000
    assert config.CONFIDENCE_THRESHOLD == 0.6
    assert config.VIDEO_GEN_TIMEOUT_S == 120
    assert config.VIDEO_PROVIDER_RETRY_LIMIT == 2
    assert config.STORAGE_RETRY_LIMIT == 3
    assert config.BLOB_STORE_CONFIG["bucket"] == "devplan-video-therapy"
    assert config.PROVIDER_CONFIG["did"]["api_url"] == "https://api.d-id.com/talks"
    assert config.ENABLE_HTTP_SERVER is False


def test_overrides(monkeypatch) -> None:
    monkeypatch.setenv("ANALYSIS_PROVIDERS", " OpenAI , google ,")
    monkeypatch.setenv("CONFIDENCE_THRESHOLD", "0.75")
    monkeypatch.setenv("WORKER_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("WORKER_DEV_HTTP", "TRUE")

    config = WorkerConfig.from_env()

    assert config.ANALYSIS_PROVIDERS == ["openai", "google"]
    assert config.CONFIDENCE_THRESHOLD == 0.75
    assert config.MAX_ATTEMPTS == 5
    assert config.ENABLE_HTTP_SERVER is True


def test_validate_requires_database_url() -> None:
    with pytest.raises(ValueError, match="DATABASE_URL"):
        WorkerConfig.from_env().validate()


def test_validate_requires_queue_url_for_sqs(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/test")
    monkeypatch.setenv("JOB_SOURCE_TYPE", "sqs")

    with pytest.raises(ValueError, match="AWS_SQS_QUEUE_URL"):
        WorkerConfig.from_env().validate()

    monkeypatch.setenv("AWS_SQS_QUEUE_URL", "https://sqs.test/queue")
    WorkerConfig.from_env().validate()


def test_validate_rejects_unknown_values(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/test")
    monkeypatch.setenv("ANALYSIS_PROVIDERS", "elevenlabs,azure")

    with pytest.raises(ValueError, match="azure"):
        WorkerConfig.from_env().validate()

    monkeypatch.setenv("ANALYSIS_PROVIDERS", "elevenlabs")
    monkeypatch.setenv("JOB_SOURCE_TYPE", "kafka")
    with pytest.raises(ValueError, match="Unsupported job source type"):
        WorkerConfig.from_env().validate()


def test_sqs_visibility_covers_worst_case_generation(monkeypatch) -> None:
    monkeypatch.setenv("JOB_SOURCE_TYPE", "sqs")

    config = WorkerConfig.from_env()

    assert config.max_job_seconds() == (2 * 2 + 3 + 1) * 120 + 60
    assert config.JOB_SOURCE_CONFIG["visibility_timeout"] == 1020

    monkeypatch.setenv("SQS_VISIBILITY_TIMEOUT", "3600")
    assert WorkerConfig.from_env().JOB_SOURCE_CONFIG["visibility_timeout"] == 3600
