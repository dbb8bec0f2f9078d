"""
Provider adapters for transcription, sentiment and avatar-video synthesis.

Each vendor is wrapped behind SpeechSentimentAdapter or AvatarVideoAdapter
so the provider chain can try them in order and tests can substitute fakes.
"""

from typing import List

from ..config import WorkerConfig
from .base import (
    ProviderError,
    ProviderUnavailable,
    ProviderTransientError,
    ProviderContractViolation,
    ProviderChainExhausted,
    SpeechSentimentAdapter,
    AvatarVideoAdapter,
)
from .speech import ElevenLabsSpeechAdapter, GoogleSpeechAdapter, OpenAISpeechAdapter
from .video import DIDVideoAdapter, JOGGVideoAdapter


def build_speech_adapters(config: WorkerConfig) -> List[SpeechSentimentAdapter]:
    """Create speech adapters in the configured priority order"""
    providers = config.PROVIDER_CONFIG
    factories = {
        "elevenlabs": lambda: ElevenLabsSpeechAdapter(
            api_key=providers["elevenlabs"]["api_key"],
            api_url=providers["elevenlabs"]["api_url"],
        ),
        "google": lambda: GoogleSpeechAdapter(
            api_key=providers["google"]["api_key"],
            speech_url=providers["google"]["speech_url"],
            language_url=providers["google"]["language_url"],
        ),
        "openai": lambda: OpenAISpeechAdapter(
            api_key=providers["openai"]["api_key"],
            transcription_model=providers["openai"]["transcription_model"],
            sentiment_model=providers["openai"]["sentiment_model"],
        ),
    }
    return [factories[name]() for name in config.ANALYSIS_PROVIDERS]


def build_video_adapters(config: WorkerConfig) -> List[AvatarVideoAdapter]:
    """Primary D-ID, secondary JOGG"""
    providers = config.PROVIDER_CONFIG
    return [
        DIDVideoAdapter(
            api_key=providers["did"]["api_key"],
            api_url=providers["did"]["api_url"],
            timeout=config.VIDEO_GEN_TIMEOUT_S,
        ),
        JOGGVideoAdapter(
            api_key=providers["jogg"]["api_key"],
            api_url=providers["jogg"]["api_url"],
            timeout=config.VIDEO_GEN_TIMEOUT_S,
        ),
    ]


__all__ = [
    'ProviderError',
    'ProviderUnavailable',
    'ProviderTransientError',
    'ProviderContractViolation',
    'ProviderChainExhausted',
    'SpeechSentimentAdapter',
    'AvatarVideoAdapter',
    'ElevenLabsSpeechAdapter',
    'GoogleSpeechAdapter',
    'OpenAISpeechAdapter',
    'DIDVideoAdapter',
    'JOGGVideoAdapter',
    'build_speech_adapters',
    'build_video_adapters',
]
