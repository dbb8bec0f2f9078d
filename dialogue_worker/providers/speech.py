import base64
import io
import json
import logging
import math
from typing import Optional, List, Literal

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from ..models import Emotion, Mood
from .base import (
    SpeechSentimentAdapter,
    Transcription,
    SentimentReading,
    ProviderTransientError,
    ProviderContractViolation,
    request_json,
)

logger = logging.getLogger("dialogue_worker")

LABEL_TO_SCORE = {
    Mood.POSITIVE: 0.8,
    Mood.NEGATIVE: -0.8,
    Mood.NEUTRAL: 0.0,
}


def _parse_mood(provider: str, label) -> Mood:
    try:
        return Mood(str(label).lower())
    except ValueError as e:
        raise ProviderContractViolation(provider, f"unknown sentiment label {label!r}") from e


class ElevenLabsSpeechAdapter(SpeechSentimentAdapter):
    """ElevenLabs speech-to-text plus sentiment, authenticated with xi-api-key"""

    name = "elevenlabs"

    def __init__(self, api_key: Optional[str] = None, api_url: str = "https://api.elevenlabs.io/v1",
                 timeout: int = 60):
        super().__init__(api_key)
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def transcribe(self, audio: bytes) -> Transcription:
        self.require_configured()
        data = request_json(
            self.name, "POST", f"{self.api_url}/speech-to-text",
            timeout=self.timeout,
            headers={"xi-api-key": self.api_key, "Content-Type": "audio/wav"},
            data=audio,
        )
        text = data.get("text")
        if not text:
            raise ProviderContractViolation(self.name, "No transcript received")
        return Transcription(text=text, confidence=float(data.get("confidence", 0.0)))

    def sentiment(self, text: str) -> SentimentReading:
        self.require_configured()
        data = request_json(
            self.name, "POST", f"{self.api_url}/sentiment-analysis",
            timeout=self.timeout,
            headers={"xi-api-key": self.api_key, "Content-Type": "application/json"},
            json={"text": text},
        )
        if "sentiment" not in data:
            raise ProviderContractViolation(self.name, "No sentiment analysis received")

        mood = _parse_mood(self.name, data["sentiment"])
        confidence = float(data.get("confidence", 0.0))
        # Emotions inherit the overall sentiment confidence
        emotions = [
            Emotion(name=e.get("name", "neutral"), intensity=float(e.get("intensity", 0.0)), confidence=confidence)
            for e in data.get("emotions") or []
        ]
        return SentimentReading(
            mood=mood,
            confidence=confidence,
            sentiment_score=LABEL_TO_SCORE[mood],
            emotions=emotions,
        )


class GoogleSpeechAdapter(SpeechSentimentAdapter):
    """Google Speech-to-Text and Natural Language sentiment over REST"""

    name = "google"

    def __init__(self, api_key: Optional[str] = None,
                 speech_url: str = "https://speech.googleapis.com/v1/speech:recognize",
                 language_url: str = "https://language.googleapis.com/v1/documents:analyzeSentiment",
                 timeout: int = 60):
        super().__init__(api_key)
        self.speech_url = speech_url
        self.language_url = language_url
        self.timeout = timeout

    def _headers(self):
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def transcribe(self, audio: bytes) -> Transcription:
        self.require_configured()
        data = request_json(
            self.name, "POST", self.speech_url,
            timeout=self.timeout,
            headers=self._headers(),
            json={
                "audio": {"content": base64.b64encode(audio).decode("ascii")},
                "config": {"encoding": "LINEAR16", "sampleRateHertz": 16000, "languageCode": "en-US"},
            },
        )
        results = data.get("results") or []
        alternatives = [r["alternatives"][0] for r in results if r.get("alternatives")]
        transcript = " ".join(a.get("transcript", "") for a in alternatives).strip()
        if not transcript:
            raise ProviderContractViolation(self.name, "No transcript received")

        confidence = alternatives[0].get("confidence") or 0.5
        return Transcription(text=transcript, confidence=float(confidence))

    def sentiment(self, text: str) -> SentimentReading:
        self.require_configured()
        data = request_json(
            self.name, "POST", self.language_url,
            timeout=self.timeout,
            headers=self._headers(),
            json={"document": {"type": "PLAIN_TEXT", "content": text}},
        )
        document = data.get("documentSentiment")
        if not document or "score" not in document:
            raise ProviderContractViolation(self.name, "No sentiment analysis received")

        score = float(document["score"])
        if score > 0.1:
            mood = Mood.POSITIVE
        elif score < -0.1:
            mood = Mood.NEGATIVE
        else:
            mood = Mood.NEUTRAL

        if score > 0.3:
            emotions = [Emotion(name="joy", intensity=score, confidence=0.8)]
        elif score < -0.3:
            emotions = [Emotion(name="sadness", intensity=abs(score), confidence=0.8)]
        else:
            emotions = [Emotion(name="neutral", intensity=0.5, confidence=0.6)]

        return SentimentReading(mood=mood, confidence=abs(score), sentiment_score=score, emotions=emotions)


class EmotionItem(BaseModel):
    """Emotion detected in a transcript"""
    name: str = Field(description="Lowercase emotion name such as joy, sadness, anxiety, stress")
    intensity: float = Field(description="Intensity 0-1", ge=0, le=1)


class SentimentAnalysis(BaseModel):
    """Structured output from sentiment analysis"""
    sentiment: Literal["positive", "negative", "neutral"] = Field(description="Overall mood")
    confidence: float = Field(description="Confidence score 0-1", ge=0, le=1)
    score: float = Field(description="Sentiment score from -1 (negative) to 1 (positive)", ge=-1, le=1)
    emotions: List[EmotionItem] = Field(description="Emotions expressed in the text")


def _strict_schema(model) -> dict:
    schema = model.model_json_schema()

    def add_additional_properties_false(schema_part):
        if isinstance(schema_part, dict):
            if schema_part.get("type") == "object":
                schema_part["additionalProperties"] = False
            for value in schema_part.values():
                add_additional_properties_false(value)
        elif isinstance(schema_part, list):
            for item in schema_part:
                add_additional_properties_false(item)

    add_additional_properties_false(schema)
    return schema


class OpenAISpeechAdapter(SpeechSentimentAdapter):
    """Whisper transcription plus structured-output sentiment via chat completions"""

    name = "openai"

    def __init__(self, api_key: Optional[str] = None, transcription_model: str = "whisper-1",
                 sentiment_model: str = "gpt-4o-mini", client: Optional[OpenAI] = None):
        super().__init__(api_key)
        self.transcription_model = transcription_model
        self.sentiment_model = sentiment_model
        self._client = client

    def is_configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def transcribe(self, audio: bytes) -> Transcription:
        self.require_configured()
        audio_file = io.BytesIO(audio)
        audio_file.name = "dialogue.wav"
        try:
            transcript = self.client.audio.transcriptions.create(
                model=self.transcription_model,
                file=audio_file,
                response_format="verbose_json",
                timestamp_granularities=["segment"]
            )
        except OpenAIError as e:
            raise ProviderTransientError(self.name, f"transcription failed: {e}") from e

        text = (getattr(transcript, "text", "") or "").strip()
        if not text:
            raise ProviderContractViolation(self.name, "No transcript received")

        # Segment log-probabilities approximate a transcription confidence
        segments = getattr(transcript, "segments", None) or []
        logprobs = [s.avg_logprob for s in segments if getattr(s, "avg_logprob", None) is not None]
        if logprobs:
            confidence = min(1.0, math.exp(sum(logprobs) / len(logprobs)))
        else:
            confidence = 0.5
        return Transcription(text=text, confidence=confidence)

    def sentiment(self, text: str) -> SentimentReading:
        self.require_configured()
        try:
            response = self.client.chat.completions.create(
                model=self.sentiment_model,
                messages=[
                    {
                        "role": "system",
                        "content": "Classify the emotional tone of the user's dialogue. "
                                   "Report overall sentiment, a score, and the emotions expressed."
                    },
                    {"role": "user", "content": text}
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "sentiment_analysis",
                        "schema": _strict_schema(SentimentAnalysis),
                        "strict": True
                    }
                },
                temperature=0.1
            )
        except OpenAIError as e:
            raise ProviderTransientError(self.name, f"sentiment analysis failed: {e}") from e

        content = response.choices[0].message.content
        try:
            analysis = SentimentAnalysis(**json.loads(content or ""))
        except (ValueError, ValidationError) as e:
            raise ProviderContractViolation(self.name, f"invalid sentiment payload: {e}") from e

        return SentimentReading(
            mood=Mood(analysis.sentiment),
            confidence=analysis.confidence,
            sentiment_score=analysis.score,
            emotions=[
                Emotion(name=e.name.lower(), intensity=e.intensity, confidence=analysis.confidence)
                for e in analysis.emotions
            ],
        )
