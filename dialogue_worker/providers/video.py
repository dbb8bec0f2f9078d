import logging
from typing import Any, Dict, Optional

from ..models import VideoGenerationPayload, VideoProvider
from .base import (
    AvatarVideoAdapter,
    SynthesisResult,
    ProviderContractViolation,
    ProviderUnavailable,
    request_json,
)

logger = logging.getLogger("dialogue_worker")


def _duration_from(response: Dict[str, Any]) -> Optional[float]:
    duration = response.get("duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return None
    return float(duration)


def _mood_dict(payload: VideoGenerationPayload) -> Optional[Dict[str, Any]]:
    return payload.mood_profile.to_dict() if payload.mood_profile else None


class DIDVideoAdapter(AvatarVideoAdapter):
    """D-ID talking-avatar generation"""

    name = "D-ID"
    provider = VideoProvider.DID

    def synthesize(self, payload: VideoGenerationPayload) -> SynthesisResult:
        self.require_configured()
        if not self.api_url:
            raise ProviderUnavailable(self.name, "API URL not configured")

        data = request_json(
            self.name, "POST", self.api_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json={
                "script": payload.transcript,
                "mood": _mood_dict(payload),
                "template": payload.template_metadata,
                "settings": payload.custom_settings,
            },
        )
        media_url = data.get("video_url") or data.get("result_url")
        if not media_url:
            raise ProviderContractViolation(self.name, "D-ID API did not return a video URL")
        return SynthesisResult(media_url=media_url, provider_response=data, duration=_duration_from(data))


class JOGGVideoAdapter(AvatarVideoAdapter):
    """JOGG avatar generation; expression and tone follow the mood profile"""

    name = "JOGG"
    provider = VideoProvider.JOGG

    def synthesize(self, payload: VideoGenerationPayload) -> SynthesisResult:
        self.require_configured()
        profile = payload.mood_profile

        data = request_json(
            self.name, "POST", f"{(self.api_url or '').rstrip('/')}/generate-video",
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json={
                "text": payload.transcript,
                "mood": _mood_dict(payload),
                "template": payload.template_metadata,
                "avatar_settings": {
                    "style": payload.template_metadata.get("avatar_style") or "professional",
                    "expression": profile.overall_mood.value if profile else "neutral",
                    "voice_tone": profile.sentiment_score if profile else 0,
                },
            },
        )
        media_url = data.get("video_url") or data.get("download_url")
        if not media_url:
            raise ProviderContractViolation(self.name, "JOGG API did not return a video URL")
        return SynthesisResult(media_url=media_url, provider_response=data, duration=_duration_from(data))
