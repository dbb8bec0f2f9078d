from __future__ import annotations

import json
import math
from types import SimpleNamespace

import pytest
import requests

from dialogue_worker.config import WorkerConfig
from dialogue_worker.models import Mood, MoodProfile, VideoGenerationPayload
from dialogue_worker.providers import (
    DIDVideoAdapter,
    ElevenLabsSpeechAdapter,
    GoogleSpeechAdapter,
    JOGGVideoAdapter,
    OpenAISpeechAdapter,
    build_speech_adapters,
    build_video_adapters,
)
from dialogue_worker.providers.base import (
    ProviderContractViolation,
    ProviderTransientError,
    ProviderUnavailable,
)


class FakeResponse:
    def __init__(self, body=None, status_code=200):
        self.body = body
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if isinstance(self.body, str):
            return json.loads(self.body)
        return self.body


class FakeHTTP:
    """Replays canned responses keyed by URL suffix and records each call"""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        for suffix, response in self.routes.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"unexpected request to {url}")


@pytest.fixture
def payload() -> VideoGenerationPayload:
    return VideoGenerationPayload(
        transcript="Let's talk about the week",
        mood_profile=MoodProfile(overall_mood=Mood.NEGATIVE, confidence_score=0.8, sentiment_score=-0.4, emotions=()),
        template_id="motivational-coach",
        template_metadata={"avatar_style": "energetic"},
        custom_settings={"voice": "calm"},
    )


def test_elevenlabs_maps_label_to_fixed_score(monkeypatch) -> None:
    http = FakeHTTP({
        "/speech-to-text": FakeResponse({"text": "I am tired of work", "confidence": 0.88}),
        "/sentiment-analysis": FakeResponse({
            "sentiment": "NEGATIVE",
            "confidence": 0.75,
            "emotions": [{"name": "sadness", "intensity": 0.7}],
        }),
    })
    monkeypatch.setattr(requests, "request", http)

    analysis = ElevenLabsSpeechAdapter(api_key="xi").analyze(b"audio")

    assert analysis.provider == "elevenlabs"
    assert analysis.transcript == "I am tired of work"
    assert analysis.confidence == pytest.approx(0.88)
    assert analysis.sentiment.mood == Mood.NEGATIVE
    assert analysis.sentiment.sentiment_score == -0.8
    assert analysis.sentiment.emotions[0].name == "sadness"
    assert analysis.sentiment.emotions[0].confidence == pytest.approx(0.75)
    assert http.calls[0]["headers"]["xi-api-key"] == "xi"
    assert http.calls[1]["json"] == {"text": "I am tired of work"}


def test_elevenlabs_without_transcript_is_contract_violation(monkeypatch) -> None:
    monkeypatch.setattr(requests, "request", FakeHTTP({"/speech-to-text": FakeResponse({"text": ""})}))

    with pytest.raises(ProviderContractViolation):
        ElevenLabsSpeechAdapter(api_key="xi").analyze(b"audio")


def test_elevenlabs_unknown_label_is_contract_violation(monkeypatch) -> None:
    monkeypatch.setattr(requests, "request", FakeHTTP({
        "/sentiment-analysis": FakeResponse({"sentiment": "ecstatic", "confidence": 0.9}),
    }))

    with pytest.raises(ProviderContractViolation):
        ElevenLabsSpeechAdapter(api_key="xi").sentiment("hello")


def test_google_joins_alternatives_and_defaults_confidence(monkeypatch) -> None:
    monkeypatch.setattr(requests, "request", FakeHTTP({
        "speech:recognize": FakeResponse({"results": [
            {"alternatives": [{"transcript": "first part"}]},
            {"alternatives": [{"transcript": "second part", "confidence": 0.9}]},
        ]}),
        "documents:analyzeSentiment": FakeResponse({"documentSentiment": {"score": 0.5, "magnitude": 1.2}}),
    }))

    analysis = GoogleSpeechAdapter(api_key="g").analyze(b"audio")

    assert analysis.transcript == "first part second part"
    assert analysis.confidence == 0.5
    assert analysis.sentiment.mood == Mood.POSITIVE
    assert analysis.sentiment.confidence == pytest.approx(0.5)
    assert [e.name for e in analysis.sentiment.emotions] == ["joy"]


@pytest.mark.parametrize("score, mood, emotion", [
    (0.05, Mood.NEUTRAL, "neutral"),
    (-0.2, Mood.NEGATIVE, "neutral"),
    (-0.6, Mood.NEGATIVE, "sadness"),
])
def test_google_sentiment_thresholds(monkeypatch, score, mood, emotion) -> None:
    monkeypatch.setattr(requests, "request", FakeHTTP({
        "documents:analyzeSentiment": FakeResponse({"documentSentiment": {"score": score}}),
    }))

    reading = GoogleSpeechAdapter(api_key="g").sentiment("text")

    assert reading.mood == mood
    assert reading.sentiment_score == pytest.approx(score)
    assert reading.emotions[0].name == emotion


def test_http_error_is_transient(monkeypatch) -> None:
    monkeypatch.setattr(requests, "request", FakeHTTP({
        "documents:analyzeSentiment": FakeResponse({}, status_code=503),
    }))

    with pytest.raises(ProviderTransientError):
        GoogleSpeechAdapter(api_key="g").sentiment("text")


def test_connection_error_is_transient(monkeypatch) -> None:
    monkeypatch.setattr(requests, "request", FakeHTTP({
        "/speech-to-text": requests.exceptions.ConnectionError("refused"),
    }))

    with pytest.raises(ProviderTransientError):
        ElevenLabsSpeechAdapter(api_key="xi").transcribe(b"audio")


def test_non_json_body_is_contract_violation(monkeypatch) -> None:
    monkeypatch.setattr(requests, "request", FakeHTTP({"/speech-to-text": FakeResponse("<html>")}))

    with pytest.raises(ProviderContractViolation):
        ElevenLabsSpeechAdapter(api_key="xi").transcribe(b"audio")


def test_missing_key_is_unavailable(payload) -> None:
    with pytest.raises(ProviderUnavailable):
        ElevenLabsSpeechAdapter(api_key=None).analyze(b"audio")
    with pytest.raises(ProviderUnavailable):
        JOGGVideoAdapter(api_key="", api_url="https://jogg.test").synthesize(payload)


def test_did_without_url_is_unavailable(payload) -> None:
    with pytest.raises(ProviderUnavailable):
        DIDVideoAdapter(api_key="d", api_url=None).synthesize(payload)


def test_did_posts_script_and_reads_result_url(monkeypatch, payload) -> None:
    http = FakeHTTP({"/talks": FakeResponse({"result_url": "https://d-id.test/out.mp4", "duration": 9})})
    monkeypatch.setattr(requests, "request", http)

    result = DIDVideoAdapter(api_key="d", api_url="https://d-id.test/talks").synthesize(payload)

    assert result.media_url == "https://d-id.test/out.mp4"
    assert result.duration == 9.0
    body = http.calls[0]["json"]
    assert body["script"] == "Let's talk about the week"
    assert body["mood"]["overall_mood"] == "negative"
    assert body["settings"] == {"voice": "calm"}


def test_did_without_video_url_is_contract_violation(monkeypatch, payload) -> None:
    monkeypatch.setattr(requests, "request", FakeHTTP({"/talks": FakeResponse({"id": "tlk_1"})}))

    with pytest.raises(ProviderContractViolation, match="D-ID API did not return a video URL"):
        DIDVideoAdapter(api_key="d", api_url="https://d-id.test/talks").synthesize(payload)


def test_jogg_sends_avatar_settings_from_mood(monkeypatch, payload) -> None:
    http = FakeHTTP({"/generate-video": FakeResponse({"download_url": "https://jogg.test/v.mp4", "duration": "n/a"})})
    monkeypatch.setattr(requests, "request", http)

    result = JOGGVideoAdapter(api_key="j", api_url="https://jogg.test/api/").synthesize(payload)

    assert result.media_url == "https://jogg.test/v.mp4"
    assert result.duration is None
    assert http.calls[0]["url"] == "https://jogg.test/api/generate-video"
    assert http.calls[0]["json"]["avatar_settings"] == {
        "style": "energetic",
        "expression": "negative",
        "voice_tone": -0.4,
    }


def test_openai_adapter_uses_segment_logprobs_and_structured_output() -> None:
    transcription = SimpleNamespace(
        text="I keep worrying about my health",
        segments=[SimpleNamespace(avg_logprob=-0.2), SimpleNamespace(avg_logprob=-0.4)],
    )
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=json.dumps({
        "sentiment": "negative",
        "confidence": 0.82,
        "score": -0.55,
        "emotions": [{"name": "Anxiety", "intensity": 0.7}],
    })))])
    requests_seen = {}

    def create_chat(**kwargs):
        requests_seen.update(kwargs)
        return completion

    client = SimpleNamespace(
        audio=SimpleNamespace(transcriptions=SimpleNamespace(create=lambda **kwargs: transcription)),
        chat=SimpleNamespace(completions=SimpleNamespace(create=create_chat)),
    )

    analysis = OpenAISpeechAdapter(client=client).analyze(b"audio")

    assert analysis.confidence == pytest.approx(math.exp(-0.3))
    assert analysis.sentiment.mood == Mood.NEGATIVE
    assert analysis.sentiment.sentiment_score == pytest.approx(-0.55)
    assert analysis.sentiment.emotions[0].name == "anxiety"
    schema = requests_seen["response_format"]["json_schema"]["schema"]
    assert schema["additionalProperties"] is False


def test_builders_follow_configured_order(monkeypatch) -> None:
    monkeypatch.setenv("ANALYSIS_PROVIDERS", "google, ElevenLabs")
    monkeypatch.setenv("DID_API_KEY", "d")
    config = WorkerConfig.from_env()

    speech = build_speech_adapters(config)
    video = build_video_adapters(config)

    assert [a.name for a in speech] == ["google", "elevenlabs"]
    assert [a.name for a in video] == ["D-ID", "JOGG"]
    assert [a.is_configured() for a in video] == [True, False]
