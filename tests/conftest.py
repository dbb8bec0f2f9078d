from __future__ import annotations

import copy
import uuid
from typing import Any

import pytest

from dialogue_worker.adapters.base import BlobStore, JobSourceAdapter, RecordStore
from dialogue_worker.config import WorkerConfig
from dialogue_worker.models import Emotion, Job, Mood, VideoProvider
from dialogue_worker.providers.base import (
    AvatarVideoAdapter,
    SentimentReading,
    SpeechAnalysis,
    SpeechSentimentAdapter,
    SynthesisResult,
    Transcription,
)


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.fail_updates = False
        self.unreadable: set[str] = set()

    def _table(self, collection: str) -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    def get(self, collection, record_id):
        if collection in self.unreadable:
            raise ConnectionError("record store unavailable")
        record = self._table(collection).get(record_id)
        return copy.deepcopy(record) if record else None

    def insert(self, collection, fields):
        self._table(collection)[fields["id"]] = copy.deepcopy(fields)
        return copy.deepcopy(fields)

    def update(self, collection, record_id, fields):
        if self.fail_updates:
            raise ConnectionError("record store unavailable")
        record = self._table(collection).get(record_id)
        if record is None:
            return None
        record.update(copy.deepcopy(fields))
        return copy.deepcopy(record)

    def update_if(self, collection, record_id, expected, fields):
        if self.fail_updates:
            raise ConnectionError("record store unavailable")
        record = self._table(collection).get(record_id)
        if record is None:
            return None
        for key, values in expected.items():
            if record.get(key) not in list(values):
                return None
        record.update(copy.deepcopy(fields))
        return copy.deepcopy(record)

    def list(self, collection, filters=None, order_by=None, descending=False, page=1, limit=100):
        rows = [
            copy.deepcopy(r) for r in self._table(collection).values()
            if all(r.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by, "")), reverse=descending)
        start = (page - 1) * limit
        return rows[start:start + limit]

    def delete(self, collection, record_id):
        return self._table(collection).pop(record_id, None) is not None


class InMemoryBlobStore(BlobStore):
    def __init__(self, failures: int = 0) -> None:
        self.objects: dict[str, bytes] = {}
        self.failures = failures
        self.put_calls = 0

    def put(self, path, data, content_type):
        self.put_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("blob store unavailable")
        self.objects[path] = data
        return f"https://blobs.test/{path}"

    def get(self, path):
        return self.objects[path]

    def delete(self, path):
        return self.objects.pop(path, None) is not None

    def signed_url(self, path, ttl=3600):
        return f"https://blobs.test/{path}?expires={ttl}"


class InMemoryJobSource(JobSourceAdapter):
    def __init__(self) -> None:
        self.jobs: list[Job] = []
        self.completed: list[str] = []
        self.failed: list[tuple[str, str, bool]] = []
        self.fail_enqueue = False

    def enqueue(self, job_type, entity_id, payload):
        if self.fail_enqueue:
            raise ConnectionError("queue unavailable")
        job = Job(id=str(uuid.uuid4()), job_type=job_type, entity_id=entity_id, payload=dict(payload))
        self.jobs.append(job)
        return job.id

    def claim_job(self):
        for job in self.jobs:
            if job.status == "pending":
                job.status = "processing"
                job.attempts += 1
                return job
        return None

    def complete_job(self, job):
        job.status = "done"
        self.completed.append(job.id)

    def fail_job(self, job, error, retry=False):
        job.status = "pending" if retry else "failed"
        job.error = error
        self.failed.append((job.id, error, retry))

    def get_job_info(self, job_id):
        return next((j for j in self.jobs if j.id == job_id), None)

    def get_pending_jobs(self):
        return [j for j in self.jobs if j.status == "pending"]


def speech_result(transcript="I feel great about my work today", confidence=0.9,
                  mood=Mood.POSITIVE, sentiment_confidence=0.85, score=0.8, emotions=None):
    reading = SentimentReading(
        mood=mood,
        confidence=sentiment_confidence,
        sentiment_score=score,
        emotions=emotions if emotions is not None else [Emotion("joy", 0.9, sentiment_confidence)],
    )
    return transcript, confidence, reading


class ScriptedSpeechAdapter(SpeechSentimentAdapter):
    """Each call to analyze consumes the next scripted outcome; the last one repeats"""

    def __init__(self, name: str, outcomes=None, configured: bool = True) -> None:
        super().__init__(api_key="key" if configured else None)
        self.name = name
        self.outcomes = list(outcomes or [])
        self.calls = 0
        self.media_seen: list[Any] = []

    def transcribe(self, audio):
        raise NotImplementedError

    def sentiment(self, text):
        raise NotImplementedError

    def analyze(self, media):
        self.require_configured()
        self.calls += 1
        self.media_seen.append(media)
        outcome = self.outcomes[min(self.calls - 1, len(self.outcomes) - 1)]
        if isinstance(outcome, Exception):
            raise outcome
        transcript, confidence, reading = outcome
        return SpeechAnalysis(provider=self.name, transcript=transcript, confidence=confidence, sentiment=reading)


class ScriptedVideoAdapter(AvatarVideoAdapter):
    def __init__(self, name: str, provider: VideoProvider, outcomes=None, configured: bool = True) -> None:
        super().__init__(api_key="key" if configured else None, api_url="https://provider.test")
        self.name = name
        self.provider = provider
        self.outcomes = list(outcomes or [])
        self.calls = 0

    def synthesize(self, payload):
        self.require_configured()
        self.calls += 1
        outcome = self.outcomes[min(self.calls - 1, len(self.outcomes) - 1)]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def synthesis(url="https://provider.test/render/abc.mp4", duration=None):
    return SynthesisResult(media_url=url, provider_response={"video_url": url}, duration=duration)


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def job_source() -> InMemoryJobSource:
    return InMemoryJobSource()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def config() -> WorkerConfig:
    return WorkerConfig()


TEMPLATES = [
    {"id": "crisis-support-therapist", "name": "Crisis Support", "category": "crisis", "is_active": True},
    {"id": "general-therapist", "name": "General Therapist", "category": "general", "is_active": True},
    {"id": "motivational-coach", "name": "Motivational Coach", "category": "coaching", "is_active": True,
     "metadata": {"avatar_style": "energetic"}},
    {"id": "career-counselor", "name": "Career Counselor", "category": "career", "is_active": False},
]


@pytest.fixture
def seeded_templates(record_store: InMemoryRecordStore) -> list[dict[str, Any]]:
    for template in TEMPLATES:
        record_store.insert("templates", template)
    return TEMPLATES
