"""
Dialogue processing.

Runs one queued job through the matching pipeline stage and persists the
outcome on the dialogue or video record. Provider failures are absorbed by
the stages; only record-store and blob-store faults surface here, and they
mark the entity failed before being reported.
"""

import time
import logging

from .adapters.base import BlobStore, RecordStore
from .config import WorkerConfig
from .models import (
    AnalysisStatus,
    Dialogue,
    DialogueStatus,
    Job,
    JobType,
    ProcessingResult,
    Template,
    VideoGenerationPayload,
    VideoStatus,
)
from .pipeline.mood import MoodAnalysisStage
from .pipeline.video import VideoGenerationStage
from .pipeline.util import utc_now_iso
from .state import advance_dialogue_status, release_generation
from .logging_setup import log_exception

logger = logging.getLogger("dialogue_worker")

DIALOGUES = "dialogues"
VIDEOS = "videos"
TEMPLATES = "templates"


class DialogueProcessor:
    """Executes analysis and generation jobs"""

    def __init__(self, config: WorkerConfig, record_store: RecordStore, blob_store: BlobStore,
                 mood_stage: MoodAnalysisStage, video_stage: VideoGenerationStage):
        self.config = config
        self.record_store = record_store
        self.blob_store = blob_store
        self.mood_stage = mood_stage
        self.video_stage = video_stage

    def process_job(self, job: Job) -> ProcessingResult:
        if job.job_type == JobType.ANALYZE_DIALOGUE.value:
            return self.analyze_dialogue(job)
        if job.job_type == JobType.GENERATE_VIDEO.value:
            return self.generate_video(job)
        return ProcessingResult(
            success=False,
            stages_completed=[],
            error=f"Unknown job type: {job.job_type}",
            retryable=False,
        )

    def analyze_dialogue(self, job: Job) -> ProcessingResult:
        """
        Run mood analysis for a dialogue.

        A neutral fallback result still completes the analysis; the dialogue
        only advances to analyzed when the result carries real confidence.
        """
        start_time = time.time()
        dialogue_id = job.payload.get("dialogue_id", job.entity_id)
        stages_completed = []

        record = self.record_store.get(DIALOGUES, dialogue_id)
        if not record:
            return ProcessingResult(
                success=False,
                stages_completed=stages_completed,
                error=f"Dialogue {dialogue_id} not found",
                retryable=False,
            )
        dialogue = Dialogue.from_record(record)

        try:
            self.record_store.update(DIALOGUES, dialogue_id, {
                "analysis_status": AnalysisStatus.PROCESSING.value,
                "updated_at": utc_now_iso(),
            })

            if dialogue.audio_path:
                media = self.blob_store.get(dialogue.audio_path)
            else:
                media = dialogue.content
            stages_completed.append("load")

            hint = job.payload.get("original_language") or dialogue.original_language
            result = self.mood_stage.analyze(media, hint)
            stages_completed.append("analyze")

            self.record_store.update(DIALOGUES, dialogue_id, {
                "transcript": result.transcript,
                "mood_analysis": result.mood_analysis.to_dict(),
                "analysis_status": AnalysisStatus.COMPLETED.value,
                "language": result.language.value,
                "analysis_metadata": {
                    **result.metadata,
                    "api_used": result.api_used,
                    "processing_time": result.processing_time,
                    "confidence": result.confidence,
                    "analyzed_at": utc_now_iso(),
                },
                "updated_at": utc_now_iso(),
            })
            if result.confidence > 0:
                advance_dialogue_status(self.record_store, dialogue_id, DialogueStatus.ANALYZED)
            stages_completed.append("persist")

            processing_time = time.time() - start_time
            logger.info(
                f"Analysis completed for dialogue {dialogue_id}: api={result.api_used}, "
                f"confidence={result.confidence:.2f}, language={result.language.value}"
            )
            return ProcessingResult(
                success=True,
                stages_completed=stages_completed,
                metrics={
                    'api_used': result.api_used,
                    'confidence': result.confidence,
                    'retry_count': result.metadata.get('retry_count', 0),
                },
                processing_time_sec=processing_time,
            )

        except Exception as e:
            error_msg = f"Analysis failed for dialogue {dialogue_id}: {e}"
            log_exception(logger, error_msg)
            self._mark_analysis_failed(dialogue_id, str(e))
            return ProcessingResult(
                success=False,
                stages_completed=stages_completed,
                error=error_msg,
                metrics={'failed_at_stage': stages_completed[-1] if stages_completed else 'start'},
                processing_time_sec=time.time() - start_time,
                retryable=True,
            )

    def generate_video(self, job: Job) -> ProcessingResult:
        """
        Generate the avatar video for a queued attempt and write its final state.

        The video record gets exactly one terminal write, guarded on it still
        being in processing. The dialogue's generation token is released
        afterwards so a new attempt can be requested.
        """
        start_time = time.time()
        video_id = job.payload.get("video_id", job.entity_id)
        stages_completed = []

        try:
            video = self.record_store.get(VIDEOS, video_id)
        except Exception as e:
            return self._video_lookup_failed(job, video_id, e)
        if not video:
            return ProcessingResult(
                success=False, stages_completed=[], error=f"Video {video_id} not found", retryable=False
            )
        dialogue_id = video["dialogue_id"]

        if video.get("status") != VideoStatus.PROCESSING.value:
            logger.warning(f"Video {video_id} already {video.get('status')}, skipping generation")
            release_generation(self.record_store, dialogue_id, video_id)
            return ProcessingResult(success=True, stages_completed=["skipped"], retryable=False)

        try:
            dialogue_record = self.record_store.get(DIALOGUES, dialogue_id)
            if not dialogue_record:
                raise LookupError(f"Dialogue {dialogue_id} not found")
            dialogue = Dialogue.from_record(dialogue_record)

            template_record = self.record_store.get(TEMPLATES, video["template_id"])
            template = Template.from_record(template_record) if template_record else Template(id=video["template_id"])

            payload = VideoGenerationPayload(
                transcript=dialogue.transcript or dialogue.content,
                mood_profile=dialogue.mood_profile,
                template_id=template.id,
                template_metadata=template.metadata,
                custom_settings=job.payload.get("custom_settings") or {},
            )
            stages_completed.append("load")

            result = self.video_stage.generate(payload, video["user_id"], dialogue_id, template.id)
            stages_completed.append("generate")

            metadata = dict(video.get("metadata") or {})
            metadata["provider_response"] = result.provider_response
            written = self.record_store.update_if(
                VIDEOS, video_id, {"status": [VideoStatus.PROCESSING.value]},
                {
                    "status": result.status.value,
                    "video_url": result.video_url,
                    "storage_path": result.storage_path,
                    "provider": result.provider.value if result.provider else None,
                    "duration": result.duration,
                    "error_message": result.error_message,
                    "metadata": metadata,
                    "updated_at": utc_now_iso(),
                }
            )
            if written is None:
                logger.warning(f"Video {video_id} reached a terminal state elsewhere, result discarded")
            stages_completed.append("persist")

            if written is not None and result.status == VideoStatus.COMPLETED:
                advance_dialogue_status(self.record_store, dialogue_id, DialogueStatus.COMPLETED)
            release_generation(self.record_store, dialogue_id, video_id)

            processing_time = time.time() - start_time
            metrics = {
                'video_status': result.status.value,
                'provider': result.provider.value if result.provider else None,
            }
            if result.status == VideoStatus.COMPLETED:
                logger.info(f"Video {video_id} completed via {metrics['provider']} in {processing_time:.2f}s")
                return ProcessingResult(
                    success=True, stages_completed=stages_completed, metrics=metrics,
                    processing_time_sec=processing_time, retryable=False,
                )
            return ProcessingResult(
                success=False, stages_completed=stages_completed, error=result.error_message,
                metrics=metrics, processing_time_sec=processing_time, retryable=False,
            )

        except Exception as e:
            error_msg = f"Video generation failed for video {video_id}: {e}"
            log_exception(logger, error_msg)
            self._mark_video_failed(video_id, dialogue_id, str(e))
            return ProcessingResult(
                success=False,
                stages_completed=stages_completed,
                error=error_msg,
                metrics={'failed_at_stage': stages_completed[-1] if stages_completed else 'start'},
                processing_time_sec=time.time() - start_time,
                retryable=False,
            )

    def _video_lookup_failed(self, job: Job, video_id: str, error: Exception) -> ProcessingResult:
        """
        Nothing has been generated yet, so the job can be retried. On the last
        attempt the video is failed and the dialogue's generation token freed.
        """
        error_msg = f"Could not load video {video_id}: {error}"
        log_exception(logger, error_msg)
        final_attempt = job.attempts >= self.config.MAX_ATTEMPTS
        if final_attempt:
            self._mark_video_failed(video_id, job.payload.get("dialogue_id"), str(error))
        return ProcessingResult(
            success=False,
            stages_completed=[],
            error=error_msg,
            metrics={"failed_at_stage": "start"},
            retryable=not final_attempt,
        )

    def _mark_analysis_failed(self, dialogue_id: str, error: str) -> None:
        try:
            self.record_store.update(DIALOGUES, dialogue_id, {
                "analysis_status": AnalysisStatus.FAILED.value,
                "analysis_metadata": {"error": error, "failed_at": utc_now_iso()},
                "updated_at": utc_now_iso(),
            })
        except Exception as e:
            log_exception(logger, f"Could not mark dialogue {dialogue_id} as failed: {e}")

    def _mark_video_failed(self, video_id: str, dialogue_id: str, error: str) -> None:
        try:
            self.record_store.update_if(VIDEOS, video_id, {"status": [VideoStatus.PROCESSING.value]}, {
                "status": VideoStatus.FAILED.value,
                "video_url": "",
                "error_message": error,
                "updated_at": utc_now_iso(),
            })
            if dialogue_id:
                release_generation(self.record_store, dialogue_id, video_id)
        except Exception as e:
            log_exception(logger, f"Could not mark video {video_id} as failed: {e}")
