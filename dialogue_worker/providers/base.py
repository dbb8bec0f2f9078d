"""
Provider adapter interfaces and error taxonomy.

Every external transcription, sentiment or avatar-video service is wrapped
in an adapter with a uniform signature, so the provider chain can try them
in priority order and tests can swap in fakes.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple, Union

import requests

from ..models import Emotion, Mood, VideoGenerationPayload, VideoProvider

logger = logging.getLogger("dialogue_worker")


class ProviderError(Exception):
    """Base class for provider failures"""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ProviderUnavailable(ProviderError):
    """Provider is not configured; skipped without consuming retries"""


class ProviderTransientError(ProviderError):
    """Network or HTTP failure; retried with backoff"""


class ProviderContractViolation(ProviderError):
    """Provider answered but omitted a required field"""


class ProviderChainExhausted(Exception):
    """Every adapter in a chain failed or was unavailable"""

    def __init__(self, errors: List[Tuple[str, Exception]], retry_count: int = 0):
        self.errors = errors
        self.retry_count = retry_count
        self.last_provider = errors[-1][0] if errors else None
        summary = "; ".join(f"{name}: {error}" for name, error in errors) or "no providers configured"
        super().__init__(f"All providers failed ({summary})")


@dataclass
class Transcription:
    text: str
    confidence: float


@dataclass
class SentimentReading:
    mood: Mood
    confidence: float
    sentiment_score: float
    emotions: List[Emotion] = field(default_factory=list)


@dataclass
class SpeechAnalysis:
    """Joint transcription and sentiment reading from one provider"""
    provider: str
    transcript: str
    confidence: float
    sentiment: SentimentReading


@dataclass
class SynthesisResult:
    media_url: str
    provider_response: Dict[str, Any] = field(default_factory=dict)
    duration: Optional[float] = None


class ProviderAdapter(ABC):
    """Common surface of every provider adapter"""

    name: str = "provider"

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def require_configured(self) -> None:
        if not self.is_configured():
            raise ProviderUnavailable(self.name, "API key not configured")


class SpeechSentimentAdapter(ProviderAdapter):
    """Adapter that can turn audio into text and text into a sentiment reading"""

    @abstractmethod
    def transcribe(self, audio: bytes) -> Transcription:
        pass

    @abstractmethod
    def sentiment(self, text: str) -> SentimentReading:
        pass

    def analyze(self, media: Union[bytes, str]) -> SpeechAnalysis:
        """
        Transcribe (for audio) and then analyze sentiment.

        Text input skips transcription and is treated as fully confident.
        Both sub-calls must succeed for the adapter to report success.
        """
        self.require_configured()

        if isinstance(media, str):
            transcription = Transcription(text=media, confidence=1.0)
        else:
            transcription = self.transcribe(media)

        if not transcription.text or not transcription.text.strip():
            raise ProviderContractViolation(self.name, "No transcript received")

        reading = self.sentiment(transcription.text)
        if reading is None:
            raise ProviderContractViolation(self.name, "No sentiment analysis received")

        return SpeechAnalysis(
            provider=self.name,
            transcript=transcription.text,
            confidence=transcription.confidence,
            sentiment=reading,
        )


class AvatarVideoAdapter(ProviderAdapter):
    """Adapter that synthesizes an avatar video and returns its media URL"""

    provider: VideoProvider = VideoProvider.DID

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None, timeout: int = 120):
        super().__init__(api_key)
        self.api_url = api_url
        self.timeout = timeout

    @abstractmethod
    def synthesize(self, payload: VideoGenerationPayload) -> SynthesisResult:
        pass


def request_json(provider: str, method: str, url: str, timeout: float = 30, **kwargs) -> Dict[str, Any]:
    """
    Perform an HTTP call and return the decoded JSON body.

    Raises:
        ProviderTransientError: on connection errors, timeouts and non-2xx responses
        ProviderContractViolation: when the body is not a JSON object
    """
    try:
        response = requests.request(method, url, timeout=timeout, **kwargs)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise ProviderTransientError(provider, f"request failed: {e}") from e

    try:
        body = response.json()
    except ValueError as e:
        raise ProviderContractViolation(provider, "response was not valid JSON") from e

    if not isinstance(body, dict):
        raise ProviderContractViolation(provider, "response was not a JSON object")
    return body
