"""
Configuration management for the dialogue worker.

Centralizes all configuration loading from environment variables
and provides type-safe access to configuration values.
"""

import os
from typing import Dict, Any, List
from dataclasses import dataclass, field


@dataclass
class WorkerConfig:
    """Configuration for the dialogue worker"""

    # Job source settings
    JOB_SOURCE_TYPE: str = "postgres"  # postgres, sqs
    JOB_SOURCE_CONFIG: Dict[str, Any] = field(default_factory=dict)

    # Record store and blob store settings
    RECORD_STORE_CONFIG: Dict[str, Any] = field(default_factory=dict)
    BLOB_STORE_CONFIG: Dict[str, Any] = field(default_factory=dict)

    # Provider settings
    ANALYSIS_PROVIDERS: List[str] = field(default_factory=lambda: ["elevenlabs", "google"])
    PROVIDER_CONFIG: Dict[str, Any] = field(default_factory=dict)

    # Pipeline settings
    ANALYSIS_MAX_RETRIES: int = 2
    ANALYSIS_RETRY_DELAY_MS: int = 1000
    CONFIDENCE_THRESHOLD: float = 0.6
    VIDEO_GEN_TIMEOUT_S: int = 120
    VIDEO_PROVIDER_RETRY_LIMIT: int = 2
    STORAGE_RETRY_LIMIT: int = 3

    # Worker loop settings
    POLL_INTERVAL_MS: int = 1500
    MAX_ATTEMPTS: int = 3
    BACKOFF_MULTIPLIER: float = 1.5
    MAX_BACKOFF_MS: int = 12000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "/app/data/worker"

    # HTTP server
    ENABLE_HTTP_SERVER: bool = False
    HTTP_PORT: int = 8000

    @classmethod
    def from_env(cls) -> 'WorkerConfig':
        """Load configuration from environment variables"""
        config = cls()

        config.JOB_SOURCE_TYPE = os.getenv("JOB_SOURCE_TYPE", "postgres")
        config.JOB_SOURCE_CONFIG = cls._parse_job_source_config()
        config.RECORD_STORE_CONFIG = cls._parse_record_store_config()
        config.BLOB_STORE_CONFIG = cls._parse_blob_store_config()

        providers = os.getenv("ANALYSIS_PROVIDERS", "elevenlabs,google")
        config.ANALYSIS_PROVIDERS = [p.strip().lower() for p in providers.split(",") if p.strip()]
        config.PROVIDER_CONFIG = cls._parse_provider_config()

        config.ANALYSIS_MAX_RETRIES = int(os.getenv("ANALYSIS_MAX_RETRIES", "2"))
        config.ANALYSIS_RETRY_DELAY_MS = int(os.getenv("ANALYSIS_RETRY_DELAY_MS", "1000"))
        config.CONFIDENCE_THRESHOLD = float(os.getenv("CONFIDENCE_THRESHOLD", "0.6"))
        config.VIDEO_GEN_TIMEOUT_S = int(os.getenv("VIDEO_GEN_TIMEOUT_S", "120"))
        config.VIDEO_PROVIDER_RETRY_LIMIT = int(os.getenv("VIDEO_PROVIDER_RETRY_LIMIT", "2"))
        config.STORAGE_RETRY_LIMIT = int(os.getenv("STORAGE_RETRY_LIMIT", "3"))

        if config.JOB_SOURCE_TYPE == "sqs" and not config.JOB_SOURCE_CONFIG.get("visibility_timeout"):
            config.JOB_SOURCE_CONFIG["visibility_timeout"] = config.max_job_seconds()

        config.POLL_INTERVAL_MS = int(os.getenv("WORKER_POLL_MS", "1500"))
        config.MAX_ATTEMPTS = int(os.getenv("WORKER_MAX_ATTEMPTS", "3"))
        config.BACKOFF_MULTIPLIER = float(os.getenv("WORKER_BACKOFF_MULTIPLIER", "1.5"))
        config.MAX_BACKOFF_MS = int(os.getenv("WORKER_MAX_BACKOFF_MS", "12000"))

        config.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        config.LOG_DIR = os.getenv("LOG_DIR", "/app/data/worker")

        config.ENABLE_HTTP_SERVER = os.getenv("WORKER_DEV_HTTP", "false").lower() == "true"
        config.HTTP_PORT = int(os.getenv("WORKER_HTTP_PORT", "8000"))

        return config

    @classmethod
    def _parse_job_source_config(cls) -> Dict[str, Any]:
        """Parse job source specific configuration"""
        job_source_type = os.getenv("JOB_SOURCE_TYPE", "postgres")

        if job_source_type == "postgres":
            return {
                "database_url": os.getenv("DATABASE_URL"),
                "connection_pool_size": int(os.getenv("POSTGRES_POOL_SIZE", "5")),
                "connection_timeout": int(os.getenv("POSTGRES_TIMEOUT", "10"))
            }
        elif job_source_type == "sqs":
            return {
                "queue_url": os.getenv("AWS_SQS_QUEUE_URL"),
                "region": os.getenv("AWS_REGION", "us-east-1"),
                "max_messages": int(os.getenv("SQS_MAX_MESSAGES", "1")),
                "wait_time_seconds": int(os.getenv("SQS_WAIT_TIME", "20")),
                "visibility_timeout": int(os.getenv("SQS_VISIBILITY_TIMEOUT", "0")) or None
            }
        else:
            return {}

    @classmethod
    def _parse_record_store_config(cls) -> Dict[str, Any]:
        return {
            "database_url": os.getenv("DATABASE_URL"),
            "connection_pool_size": int(os.getenv("POSTGRES_POOL_SIZE", "5")),
            "connection_timeout": int(os.getenv("POSTGRES_TIMEOUT", "10"))
        }

    @classmethod
    def _parse_blob_store_config(cls) -> Dict[str, Any]:
        return {
            "bucket": os.getenv("AWS_S3_BUCKET", "devplan-video-therapy"),
            "region": os.getenv("AWS_REGION", "us-east-1"),
            "prefix": os.getenv("S3_PREFIX", ""),
            "endpoint_url": os.getenv("S3_ENDPOINT_URL"),
            "signed_url_ttl": int(os.getenv("SIGNED_URL_TTL_S", "3600"))
        }

    @classmethod
    def _parse_provider_config(cls) -> Dict[str, Any]:
        """Parse provider credentials and endpoints; missing keys disable a provider"""
        return {
            "elevenlabs": {
                "api_key": os.getenv("ELEVENLABS_API_KEY"),
                "api_url": os.getenv("ELEVENLABS_API_URL", "https://api.elevenlabs.io/v1"),
            },
            "google": {
                "api_key": os.getenv("GOOGLE_AI_STUDIO_API_KEY"),
                "speech_url": os.getenv(
                    "GOOGLE_SPEECH_API_URL", "https://speech.googleapis.com/v1/speech:recognize"
                ),
                "language_url": os.getenv(
                    "GOOGLE_LANGUAGE_API_URL",
                    "https://language.googleapis.com/v1/documents:analyzeSentiment"
                ),
            },
            "openai": {
                "api_key": os.getenv("OPENAI_API_KEY"),
                "transcription_model": os.getenv("OPENAI_TRANSCRIPTION_MODEL", "whisper-1"),
                "sentiment_model": os.getenv("OPENAI_SENTIMENT_MODEL", "gpt-4o-mini"),
            },
            "did": {
                "api_key": os.getenv("DID_API_KEY"),
                "api_url": os.getenv("DID_API_URL", "https://api.d-id.com/talks"),
            },
            "jogg": {
                "api_key": os.getenv("JOGG_API_KEY"),
                "api_url": os.getenv("JOGG_API_URL", "https://app.jogg.ai/api"),
            },
        }

    def max_job_seconds(self) -> int:
        """Upper bound on one generation job: every provider call plus every upload attempt, with slack"""
        provider_calls = self.VIDEO_PROVIDER_RETRY_LIMIT * 2
        upload_attempts = self.STORAGE_RETRY_LIMIT + 1
        return (provider_calls + upload_attempts) * self.VIDEO_GEN_TIMEOUT_S + 60

    def validate(self) -> None:
        """Validate configuration and raise errors for missing required values"""
        required_vars = []

        if self.JOB_SOURCE_TYPE not in ("postgres", "sqs"):
            raise ValueError(f"Unsupported job source type: {self.JOB_SOURCE_TYPE}")

        if not self.RECORD_STORE_CONFIG.get("database_url"):
            required_vars.append("DATABASE_URL")

        if self.JOB_SOURCE_TYPE == "sqs" and not self.JOB_SOURCE_CONFIG.get("queue_url"):
            required_vars.append("AWS_SQS_QUEUE_URL")

        if not self.BLOB_STORE_CONFIG.get("bucket"):
            required_vars.append("AWS_S3_BUCKET")

        if required_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(required_vars)}")

        unknown = [p for p in self.ANALYSIS_PROVIDERS if p not in ("elevenlabs", "google", "openai")]
        if unknown:
            raise ValueError(f"Unknown analysis providers: {', '.join(unknown)}")
