"""
Main worker service.

Wires the job source, record store and blob store adapters to the
analysis and video stages, then polls for jobs with idle backoff.
"""

import time
import signal
import sys
import logging
from typing import Optional, Dict, Any

from .config import WorkerConfig
from .adapters.base import BlobStore, JobSourceAdapter, RecordStore
from .adapters.postgres_adapter import PostgresJobSourceAdapter, PostgresRecordStore
from .adapters.sqs_adapter import SQSJobSourceAdapter
from .adapters.s3_adapter import S3BlobStore
from .controller import PipelineController
from .orchestrator import PipelineOrchestrator
from .pipeline.mood import MoodAnalysisStage
from .pipeline.video import VideoGenerationStage
from .processor import DialogueProcessor
from .providers import build_speech_adapters, build_video_adapters
from .logging_setup import setup_logging, log_exception
from .http_server import start_health_server

logger = logging.getLogger("dialogue_worker")


class WorkerService:
    """Main worker service with adapter-based architecture"""

    def __init__(self, config: Optional[WorkerConfig] = None,
                 job_source: Optional[JobSourceAdapter] = None,
                 record_store: Optional[RecordStore] = None,
                 blob_store: Optional[BlobStore] = None):
        self.config = config or WorkerConfig.from_env()
        self.job_source = job_source
        self.record_store = record_store
        self.blob_store = blob_store
        self.orchestrator: Optional[PipelineOrchestrator] = None
        self.health_server = None
        self.running = False
        self.backoff_interval = self.config.POLL_INTERVAL_MS
        self.max_backoff = self.config.MAX_BACKOFF_MS

    def initialize(self, setup_logs: bool = True):
        """Initialize adapters, stages and the orchestrator from configuration"""
        try:
            if setup_logs:
                setup_logging(self.config.LOG_LEVEL, self.config.LOG_DIR)

            self.config.validate()
            self._initialize_adapters()

            mood_stage = MoodAnalysisStage(
                build_speech_adapters(self.config),
                max_retries=self.config.ANALYSIS_MAX_RETRIES,
                retry_delay_ms=self.config.ANALYSIS_RETRY_DELAY_MS,
                confidence_threshold=self.config.CONFIDENCE_THRESHOLD,
            )
            video_stage = VideoGenerationStage(
                build_video_adapters(self.config),
                self.blob_store,
                provider_retry_limit=self.config.VIDEO_PROVIDER_RETRY_LIMIT,
                storage_retry_limit=self.config.STORAGE_RETRY_LIMIT,
                timeout=self.config.VIDEO_GEN_TIMEOUT_S,
            )
            processor = DialogueProcessor(self.config, self.record_store, self.blob_store, mood_stage, video_stage)
            self.orchestrator = PipelineOrchestrator(self.config, self.job_source, processor)

            self.health_server = start_health_server(
                self, self.config.ENABLE_HTTP_SERVER, self.config.HTTP_PORT
            )

            logger.info(
                f"Worker service initialized: {self.config.JOB_SOURCE_TYPE} job source, "
                f"analysis providers {', '.join(self.config.ANALYSIS_PROVIDERS)}"
            )

        except Exception as e:
            log_exception(logger, f"Failed to initialize worker service: {e}")
            raise

    def _initialize_adapters(self):
        if self.job_source is None:
            self.job_source = self._create_job_source_adapter()
            self.job_source.connect()

        if self.record_store is None:
            config = self.config.RECORD_STORE_CONFIG
            self.record_store = PostgresRecordStore(
                database_url=config["database_url"],
                pool_size=config.get("connection_pool_size", 5),
                timeout=config.get("connection_timeout", 10)
            )
            self.record_store.connect()

        if self.blob_store is None:
            config = self.config.BLOB_STORE_CONFIG
            self.blob_store = S3BlobStore(
                bucket=config["bucket"],
                region=config.get("region", "us-east-1"),
                prefix=config.get("prefix", ""),
                endpoint_url=config.get("endpoint_url"),
                signed_url_ttl=config.get("signed_url_ttl", 3600)
            )
            self.blob_store.connect()

    def _create_job_source_adapter(self) -> JobSourceAdapter:
        """Create job source adapter based on configuration"""
        config = self.config.JOB_SOURCE_CONFIG

        if self.config.JOB_SOURCE_TYPE == "postgres":
            return PostgresJobSourceAdapter(
                database_url=config["database_url"],
                pool_size=config.get("connection_pool_size", 5),
                timeout=config.get("connection_timeout", 10)
            )

        elif self.config.JOB_SOURCE_TYPE == "sqs":
            return SQSJobSourceAdapter(
                queue_url=config["queue_url"],
                region=config.get("region", "us-east-1"),
                max_messages=config.get("max_messages", 1),
                wait_time=config.get("wait_time_seconds", 20),
                visibility_timeout=config.get("visibility_timeout")
            )

        else:
            raise ValueError(f"Unsupported job source type: {self.config.JOB_SOURCE_TYPE}")

    def create_controller(self) -> PipelineController:
        """Request-side controller sharing this service's adapters"""
        return PipelineController(
            self.record_store,
            self.blob_store,
            self.job_source,
            signed_url_ttl=self.config.BLOB_STORE_CONFIG.get("signed_url_ttl", 3600)
        )

    def start(self):
        """Start the polling loop"""
        if self.running:
            logger.warning("Worker service is already running")
            return

        self.running = True
        logger.info("Worker started, polling for jobs...")

        while self.running:
            try:
                processed = self.run_once()

                if not processed:
                    time.sleep(self.backoff_interval / 1000.0)
                    self.backoff_interval = min(
                        self.backoff_interval * self.config.BACKOFF_MULTIPLIER,
                        self.max_backoff
                    )

            except KeyboardInterrupt:
                logger.info("Received interrupt signal, shutting down...")
                break
            except Exception as e:
                log_exception(logger, f"Unexpected error in worker loop: {str(e)}")
                time.sleep(self.backoff_interval / 1000.0)
                self.backoff_interval = min(
                    self.backoff_interval * self.config.BACKOFF_MULTIPLIER,
                    self.max_backoff
                )

        logger.info("Worker polling loop stopped")

    def run_once(self) -> bool:
        """
        Run one iteration of the worker loop.

        Returns:
            True if a job was claimed, False if none was available
        """
        try:
            job = self.job_source.claim_job()
            if not job:
                return False

            # Reset backoff on successful job claim
            self.backoff_interval = self.config.POLL_INTERVAL_MS
            self.orchestrator.execute_pipeline(job)
            return True

        except Exception as e:
            log_exception(logger, f"Error in worker loop: {str(e)}")
            return False

    def stop(self):
        """Stop the worker service"""
        self.running = False

        if self.health_server:
            self.health_server.stop()

        for adapter in (self.job_source, self.record_store, self.blob_store):
            if adapter:
                adapter.close()

        logger.info("Worker service stopped")

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            'running': self.running,
            'config': {
                'job_source_type': self.config.JOB_SOURCE_TYPE,
                'analysis_providers': self.config.ANALYSIS_PROVIDERS,
                'poll_interval_ms': self.config.POLL_INTERVAL_MS,
                'max_attempts': self.config.MAX_ATTEMPTS
            }
        }

        if self.orchestrator:
            stats['orchestrator'] = self.orchestrator.get_stats()

        return stats


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main():
    """Main entry point"""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    worker = WorkerService()

    try:
        worker.initialize()
        worker.start()
    except Exception as e:
        log_exception(logger, f"Worker failed to start: {str(e)}")
        sys.exit(1)
    finally:
        worker.stop()


if __name__ == "__main__":
    main()
