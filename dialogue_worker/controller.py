"""
Request-side pipeline controller.

Records dialogues and video attempts, picks templates, and hands the slow
stages to the worker through the job source. Nothing here waits on a
provider; callers get the record back immediately and poll for results.
"""

import uuid
import logging
from typing import Optional, Dict, Any, List

from .adapters.base import BlobStore, JobSourceAdapter, RecordStore
from .errors import (
    AnalysisNotReady,
    DialogueNotFound,
    GenerationInProgress,
    TemplateConfigurationError,
    TemplatesUnavailable,
    UnsupportedLanguage,
    VideoNotFound,
)
from .models import (
    AnalysisStatus,
    Dialogue,
    DialogueStatus,
    JobType,
    Language,
    Template,
    TemplateSuggestion,
    Video,
    VideoStatus,
)
from .pipeline import templates as template_rules
from .pipeline.util import audio_extension, audio_storage_path, detect_language, utc_now_iso
from .state import advance_dialogue_status, claim_generation, release_generation
from .logging_setup import log_exception

logger = logging.getLogger("dialogue_worker")

DIALOGUES = "dialogues"
VIDEOS = "videos"
TEMPLATES = "templates"


class PipelineController:
    """Sequences ingestion, analysis and generation against dialogue and video records"""

    def __init__(self, record_store: RecordStore, blob_store: BlobStore, job_source: JobSourceAdapter,
                 signed_url_ttl: int = 3600):
        self.record_store = record_store
        self.blob_store = blob_store
        self.job_source = job_source
        self.signed_url_ttl = signed_url_ttl

    def ingest_dialogue(self, user_id: str, title: str, audio: Optional[bytes] = None,
                        content: Optional[str] = None, content_type: Optional[str] = None,
                        filename: Optional[str] = None,
                        original_language: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a dialogue from audio or text and queue its analysis.

        Audio is stored in the blob store first. Text is language-checked up
        front and rejected unless it is Hebrew or English.

        Returns:
            The new dialogue record (draft, analysis pending)
        """
        if not title or not title.strip():
            raise ValueError("Title is required")
        if not audio and not (content and content.strip()):
            raise ValueError("Either audio or transcript content is required")

        dialogue_id = str(uuid.uuid4())
        now = utc_now_iso()
        dialogue = Dialogue(
            id=dialogue_id,
            user_id=user_id,
            title=title.strip(),
            content=content or "",
            original_language=original_language,
            created_at=now,
            updated_at=now,
        )

        if audio:
            path = audio_storage_path(user_id, dialogue_id, audio_extension(content_type, filename))
            dialogue.audio_url = self.blob_store.put(path, audio, content_type or "audio/wav")
            dialogue.audio_path = path
            dialogue.language = Language.UNKNOWN.value
        else:
            detected = detect_language(content, default=Language.UNSUPPORTED)
            if detected == Language.UNSUPPORTED:
                raise UnsupportedLanguage()
            dialogue.language = detected.value
            dialogue.original_language = original_language or detected.value

        record = self.record_store.insert(DIALOGUES, dialogue.to_record())
        logger.info(f"Dialogue {dialogue_id} created for user {user_id} ({'audio' if audio else 'text'})")

        self.job_source.enqueue(JobType.ANALYZE_DIALOGUE.value, dialogue_id, {
            "dialogue_id": dialogue_id,
            "original_language": dialogue.original_language,
        })
        return record

    def get_dialogue_analysis(self, user_id: str, dialogue_id: str) -> Dict[str, Any]:
        dialogue = self._owned_dialogue(user_id, dialogue_id)
        if not dialogue.mood_analysis or dialogue.analysis_status != AnalysisStatus.COMPLETED.value:
            raise AnalysisNotReady(dialogue_id, dialogue.analysis_status)
        return {
            "id": dialogue.id,
            "title": dialogue.title,
            "transcript": dialogue.transcript,
            "mood_analysis": dialogue.mood_analysis,
            "analysis_status": dialogue.analysis_status,
            "language": dialogue.language,
            "analysis_metadata": dialogue.analysis_metadata,
        }

    def suggest_template_for_dialogue(self, user_id: str, dialogue_id: str) -> Dict[str, Any]:
        """Advisory suggestion, already checked against the active template set"""
        dialogue = self._completed_dialogue(user_id, dialogue_id)
        templates = self._active_templates()

        suggestion = template_rules.suggest_template(dialogue.mood_analysis)
        if not template_rules.validate_template_id(suggestion.template_id, templates):
            suggestion = TemplateSuggestion(
                template_id=template_rules.get_fallback_template_id(templates),
                confidence=suggestion.confidence,
                reasoning='Original suggestion not available, using fallback template',
                fallback_used=True,
            )

        return {
            "suggestion": suggestion.to_dict(),
            "available_templates": len(templates),
            "dialogue_analysis_status": dialogue.analysis_status,
        }

    def get_selection_reasoning(self, user_id: str, dialogue_id: str, selected_template_id: str) -> str:
        dialogue = self._completed_dialogue(user_id, dialogue_id)
        suggested = template_rules.suggest_template(dialogue.mood_analysis)
        return template_rules.get_selection_reasoning(
            dialogue.mood_analysis, selected_template_id, suggested.template_id
        )

    def request_video_generation(self, user_id: str, dialogue_id: str, template_id: Optional[str] = None,
                                 custom_settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Record a video attempt and queue its generation.

        The template is suggested when not given, then always re-validated
        against the live active set. Only one generation per dialogue may be
        in flight.

        Returns:
            Dict with the video record (processing), the final template, a
            poll id and fallback details when a fallback template was used

        Raises:
            DialogueNotFound, AnalysisNotReady, TemplatesUnavailable,
            TemplateConfigurationError, GenerationInProgress
        """
        dialogue = self._completed_dialogue(user_id, dialogue_id)
        templates = self._active_templates()

        final_template_id = template_id
        fallback_used = False
        fallback_reason = ""
        suggestion: Optional[TemplateSuggestion] = None

        if not final_template_id:
            suggestion = template_rules.suggest_template(dialogue.mood_analysis)
            final_template_id = suggestion.template_id
            if suggestion.fallback_used:
                fallback_used = True
                fallback_reason = suggestion.reasoning
            logger.info(
                f"Suggested template {final_template_id} for dialogue {dialogue_id} "
                f"(confidence {suggestion.confidence:.2f})"
            )

        if not template_rules.validate_template_id(final_template_id, templates):
            fallback_id = template_rules.get_fallback_template_id(templates)
            logger.warning(f"Invalid template ID {final_template_id}, using fallback {fallback_id}")
            final_template_id = fallback_id
            fallback_used = True
            fallback_reason = f"Invalid template ID provided. Using fallback template: {fallback_id}"

        final_template = next((t for t in templates if t.id == final_template_id), None)
        if final_template is None:
            raise TemplateConfigurationError(final_template_id)

        video_id = str(uuid.uuid4())
        if not claim_generation(self.record_store, dialogue_id, video_id, {"template_id": final_template_id}):
            raise GenerationInProgress(dialogue_id)

        now = utc_now_iso()
        video = Video(
            id=video_id,
            dialogue_id=dialogue_id,
            user_id=user_id,
            template_id=final_template_id,
            title=dialogue.title,
            status=VideoStatus.PROCESSING.value,
            video_url="",
            metadata={
                "custom_settings": custom_settings or {},
                "template_selection": {
                    "provided_template_id": template_id,
                    "final_template_id": final_template_id,
                    "suggested_template_id": suggestion.template_id if suggestion else None,
                    "suggestion_confidence": suggestion.confidence if suggestion else None,
                    "suggestion_reasoning": suggestion.reasoning if suggestion else None,
                    "fallback_used": fallback_used,
                    "fallback_reason": fallback_reason,
                    "available_templates_count": len(templates),
                    "selected_at": now,
                },
            },
            created_at=now,
            updated_at=now,
        )

        video_record = None
        try:
            video_record = self.record_store.insert(VIDEOS, video.to_record())
            advance_dialogue_status(self.record_store, dialogue_id, DialogueStatus.GENERATED)
            self.job_source.enqueue(JobType.GENERATE_VIDEO.value, video_id, {
                "video_id": video_id,
                "dialogue_id": dialogue_id,
                "template_id": final_template_id,
                "custom_settings": custom_settings or {},
            })
        except Exception as e:
            log_exception(logger, f"Failed to start video generation for dialogue {dialogue_id}: {e}")
            if video_record is not None:
                self.record_store.update_if(VIDEOS, video_id, {"status": [VideoStatus.PROCESSING.value]}, {
                    "status": VideoStatus.FAILED.value,
                    "error_message": f"Failed to queue video generation: {e}",
                    "updated_at": utc_now_iso(),
                })
            release_generation(self.record_store, dialogue_id, video_id)
            raise

        logger.info(f"Video generation queued: video {video_id}, dialogue {dialogue_id}, template {final_template_id}")

        response = {
            "video": video_record,
            "template": {
                "id": final_template.id,
                "name": final_template.name,
                "category": final_template.category,
            },
            "message": "Video generation started",
            "poll_id": video_id,
        }
        if suggestion is not None:
            response["suggestion"] = suggestion.to_dict()
        if fallback_used:
            response["fallback_info"] = {
                "used": True,
                "reason": fallback_reason,
                "original_template_id": template_id,
            }
        return response

    def get_video(self, user_id: str, video_id: str) -> Dict[str, Any]:
        """Poll a video; completed videos carry a signed download URL"""
        record = self.record_store.get(VIDEOS, video_id)
        if not record or record.get("user_id") != user_id:
            raise VideoNotFound(video_id)

        result = dict(record)
        if record.get("status") == VideoStatus.COMPLETED.value and record.get("storage_path"):
            result["download_url"] = self.blob_store.signed_url(record["storage_path"], self.signed_url_ttl)
        return result

    def video_stats(self, user_id: str) -> Dict[str, int]:
        videos: List[Dict[str, Any]] = []
        page = 1
        while True:
            batch = self.record_store.list(VIDEOS, {"user_id": user_id}, page=page, limit=500)
            videos.extend(batch)
            if len(batch) < 500:
                break
            page += 1

        def count(status: VideoStatus) -> int:
            return sum(1 for v in videos if v.get("status") == status.value)

        return {
            "total": len(videos),
            "completed": count(VideoStatus.COMPLETED),
            "processing": count(VideoStatus.PROCESSING),
            "failed": count(VideoStatus.FAILED),
        }

    def _owned_dialogue(self, user_id: str, dialogue_id: str) -> Dialogue:
        record = self.record_store.get(DIALOGUES, dialogue_id)
        if not record or record.get("user_id") != user_id:
            raise DialogueNotFound(dialogue_id)
        return Dialogue.from_record(record)

    def _completed_dialogue(self, user_id: str, dialogue_id: str) -> Dialogue:
        dialogue = self._owned_dialogue(user_id, dialogue_id)
        if dialogue.analysis_status != AnalysisStatus.COMPLETED.value or not dialogue.mood_analysis:
            raise AnalysisNotReady(dialogue_id, dialogue.analysis_status)
        return dialogue

    def _active_templates(self) -> List[Template]:
        records = self.record_store.list(TEMPLATES, {"is_active": True}, order_by="id")
        if not records:
            raise TemplatesUnavailable()
        return [Template.from_record(r) for r in records]
