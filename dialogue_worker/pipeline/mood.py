"""
Speech-to-text and mood analysis stage.

Runs the speech providers through the retrying chain, turns the winning
reading into a MoodProfile, and degrades to neutral profiles on low
confidence or total provider failure. Nothing raised by a provider
escapes analyze().
"""

import time
import logging
from typing import Callable, List, Optional, Sequence, Union

from ..models import AnalysisResult, Emotion, Language, Mood, MoodProfile
from ..providers.base import ProviderChainExhausted, SpeechAnalysis, SpeechSentimentAdapter
from ..logging_setup import log_exception
from .chain import RetryingProviderChain
from .util import detect_language

logger = logging.getLogger("dialogue_worker")

THEME_VOCABULARY = ['work', 'family', 'health', 'stress', 'happiness', 'anxiety', 'success', 'failure']
RISK_KEYWORDS = ['suicide', 'harm', 'danger', 'hopeless', 'worthless']
MAX_THEMES = 3

MOOD_RECOMMENDATIONS = {
    Mood.POSITIVE: [
        'Continue with current positive practices',
        'Share your positive experiences with others',
    ],
    Mood.NEGATIVE: [
        'Consider speaking with a mental health professional',
        'Practice self-care and stress management techniques',
    ],
    Mood.NEUTRAL: [
        'Explore activities that bring you joy',
        'Consider setting new goals or challenges',
    ],
}

LOW_CONFIDENCE_RECOMMENDATIONS = [
    'Consider re-recording with clearer audio',
    'Try speaking more slowly and clearly',
]

FAILED_ANALYSIS_RECOMMENDATIONS = [
    'Unable to analyze audio. Please try re-recording with clearer audio.',
]

API_FALLBACK = "fallback"


def extract_key_themes(text: str) -> List[str]:
    """Vocabulary themes that appear inside any whitespace-separated word, capped at three"""
    words = text.lower().split()
    return [theme for theme in THEME_VOCABULARY if any(theme in word for word in words)][:MAX_THEMES]


def detect_risk_indicators(text: str) -> List[str]:
    """Case-insensitive substring match against the crisis vocabulary"""
    lowered = text.lower()
    return [keyword for keyword in RISK_KEYWORDS if keyword in lowered]


def generate_recommendations(mood: Mood) -> List[str]:
    return list(MOOD_RECOMMENDATIONS.get(Mood(mood), []))[:3]


def build_mood_profile(analysis: SpeechAnalysis) -> MoodProfile:
    reading = analysis.sentiment
    return MoodProfile(
        overall_mood=reading.mood,
        confidence_score=reading.confidence,
        sentiment_score=reading.sentiment_score,
        emotions=tuple(reading.emotions),
        key_themes=tuple(extract_key_themes(analysis.transcript)),
        risk_indicators=tuple(detect_risk_indicators(analysis.transcript)),
        recommendations=tuple(generate_recommendations(reading.mood)),
    )


def apply_neutral_fallback(profile: MoodProfile) -> MoodProfile:
    """Neutralize mood fields while keeping themes and risk indicators"""
    return MoodProfile(
        overall_mood=Mood.NEUTRAL,
        confidence_score=0.5,
        sentiment_score=0.0,
        emotions=(Emotion(name="neutral", intensity=0.5, confidence=0.5),),
        key_themes=profile.key_themes,
        risk_indicators=profile.risk_indicators,
        recommendations=tuple(LOW_CONFIDENCE_RECOMMENDATIONS),
    )


def create_neutral_mood_profile() -> MoodProfile:
    return MoodProfile(
        overall_mood=Mood.NEUTRAL,
        confidence_score=0.0,
        sentiment_score=0.0,
        emotions=(Emotion(name="neutral", intensity=0.5, confidence=0.0),),
        key_themes=(),
        risk_indicators=(),
        recommendations=tuple(FAILED_ANALYSIS_RECOMMENDATIONS),
    )


class MoodAnalysisStage:
    """Transcription plus mood analysis with provider fallback and a confidence gate"""

    def __init__(self, adapters: Sequence[SpeechSentimentAdapter], max_retries: int = 2,
                 retry_delay_ms: int = 1000, confidence_threshold: float = 0.6,
                 sleep: Callable[[float], None] = time.sleep):
        self.adapters = list(adapters)
        self.confidence_threshold = confidence_threshold
        self.chain = RetryingProviderChain(
            max_retries=max_retries,
            retry_delay_ms=retry_delay_ms,
            sleep=sleep,
            label="analysis provider",
        )

    def analyze(self, media: Union[bytes, str], original_language: Optional[str] = None) -> AnalysisResult:
        """
        Analyze audio bytes (or text) and return a mood analysis.

        Args:
            media: Raw audio bytes, or dialogue text to skip transcription
            original_language: Caller-supplied language hint, informational only

        Returns:
            AnalysisResult; on total provider failure a neutral result with
            api_used "fallback" and confidence 0
        """
        start_time = time.time()

        try:
            outcome = self.chain.run(self.adapters, lambda adapter: adapter.analyze(media))
        except ProviderChainExhausted as e:
            logger.error(f"Audio analysis failed completely: {e}")
            return self._fallback_result(start_time, e.retry_count)
        except Exception as e:
            log_exception(logger, f"Unexpected error during mood analysis: {e}")
            return self._fallback_result(start_time, 0)

        analysis: SpeechAnalysis = outcome.value
        fallback_used = outcome.position > 0
        neutral_fallback_applied = False
        language_override = False

        detected = detect_language(analysis.transcript)
        if original_language and original_language != Language.UNKNOWN.value and detected.value != original_language:
            language_override = True
            logger.info(f"Language override detected: {original_language} -> {detected.value}")

        profile = build_mood_profile(analysis)
        if analysis.confidence < self.confidence_threshold:
            neutral_fallback_applied = True
            profile = apply_neutral_fallback(profile)
            logger.info(
                f"Low confidence detected ({analysis.confidence:.2f}), applying neutral fallback"
            )

        processing_time = time.time() - start_time
        logger.info(
            f"Mood analysis completed via {outcome.provider}: mood={profile.overall_mood.value}, "
            f"confidence={analysis.confidence:.2f}, retries={outcome.retry_count}"
        )

        return AnalysisResult(
            transcript=analysis.transcript,
            language=detected,
            mood_analysis=profile,
            confidence=analysis.confidence,
            api_used=outcome.provider,
            processing_time=processing_time,
            metadata={
                'processing_time': processing_time,
                'retry_count': outcome.retry_count,
                'fallback_used': fallback_used,
                'neutral_fallback_applied': neutral_fallback_applied,
                'language_override': language_override,
            }
        )

    def _fallback_result(self, start_time: float, retry_count: int) -> AnalysisResult:
        processing_time = time.time() - start_time
        return AnalysisResult(
            transcript="",
            language=Language.UNKNOWN,
            mood_analysis=create_neutral_mood_profile(),
            confidence=0.0,
            api_used=API_FALLBACK,
            processing_time=processing_time,
            metadata={
                'processing_time': processing_time,
                'retry_count': retry_count,
                'fallback_used': True,
                'neutral_fallback_applied': True,
                'language_override': False,
            }
        )
