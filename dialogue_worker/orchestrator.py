"""
Pipeline orchestration and execution management.

Handles job execution flow, retries, error recovery, and progress tracking.
Coordinates between DialogueProcessor and the job source.
"""

import time
import logging
from typing import Dict, Any
from datetime import datetime

from .models import Job, ProcessingResult
from .adapters.base import JobSourceAdapter
from .processor import DialogueProcessor
from .config import WorkerConfig
from .logging_setup import log_exception

logger = logging.getLogger("dialogue_worker")


class PipelineOrchestrator:
    """Manages pipeline execution flow and coordination"""

    def __init__(self, config: WorkerConfig, job_source: JobSourceAdapter, processor: DialogueProcessor):
        self.config = config
        self.job_source = job_source
        self.processor = processor
        self.stats = self._fresh_stats()

    @staticmethod
    def _fresh_stats() -> Dict[str, Any]:
        return {
            'jobs_processed': 0,
            'jobs_failed': 0,
            'jobs_requeued': 0,
            'total_processing_time': 0.0,
            'by_type': {},
            'start_time': datetime.now()
        }

    def execute_pipeline(self, job: Job) -> ProcessingResult:
        """
        Execute one job and settle it with the job source.

        Args:
            job: Job to process

        Returns:
            ProcessingResult with execution details
        """
        start_time = time.time()

        try:
            logger.info(f"Executing {job.job_type} job {job.id} for {job.entity_id} (attempt {job.attempts})")

            result = self.processor.process_job(job)

            processing_time = time.time() - start_time
            self.stats['total_processing_time'] += processing_time
            counts = self.stats['by_type'].setdefault(job.job_type, {'succeeded': 0, 'failed': 0})

            if result.success:
                self.job_source.complete_job(job)
                self.stats['jobs_processed'] += 1
                counts['succeeded'] += 1
                logger.info(f"Job {job.id} completed in {processing_time:.2f}s")
            else:
                self._handle_failure(job, result.error, result.retryable)
                self.stats['jobs_failed'] += 1
                counts['failed'] += 1

            return result

        except Exception as e:
            error_msg = f"Unexpected error in pipeline execution: {str(e)}"
            log_exception(logger, error_msg)

            self._handle_failure(job, error_msg, retryable=True)
            self.stats['jobs_failed'] += 1

            return ProcessingResult(
                success=False,
                stages_completed=[],
                error=error_msg,
                metrics={'processing_time_sec': time.time() - start_time}
            )

    def _handle_failure(self, job: Job, error: str, retryable: bool) -> None:
        """Requeue retryable failures until MAX_ATTEMPTS, otherwise fail permanently"""
        try:
            if retryable and job.attempts < self.config.MAX_ATTEMPTS:
                logger.warning(f"Job {job.id} failed (attempt {job.attempts}/{self.config.MAX_ATTEMPTS}): {error}")
                self.job_source.fail_job(job, f"Attempt {job.attempts} failed: {error}", retry=True)
                self.stats['jobs_requeued'] += 1
            else:
                logger.error(f"Job {job.id} failed permanently after {job.attempts} attempts: {error}")
                self.job_source.fail_job(job, f"Permanent failure after {job.attempts} attempts: {error}")

        except Exception as e:
            log_exception(logger, f"Error handling job failure for {job.id}: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics"""
        uptime = (datetime.now() - self.stats['start_time']).total_seconds()
        settled = self.stats['jobs_processed'] + self.stats['jobs_failed']

        return {
            'jobs_processed': self.stats['jobs_processed'],
            'jobs_failed': self.stats['jobs_failed'],
            'jobs_requeued': self.stats['jobs_requeued'],
            'by_type': self.stats['by_type'],
            'total_processing_time': self.stats['total_processing_time'],
            'average_processing_time': self.stats['total_processing_time'] / settled if settled else 0,
            'uptime_seconds': uptime,
            'success_rate': self.stats['jobs_processed'] / settled if settled else 0
        }

    def reset_stats(self) -> None:
        self.stats = self._fresh_stats()
        logger.info("Orchestrator statistics reset")
