"""
Domain models for the dialogue worker.

Defines the records, value objects and stage results passed between
the controller, the pipeline stages and the worker.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime


class Language(str, Enum):
    ENGLISH = "english"
    HEBREW = "hebrew"
    UNKNOWN = "unknown"
    UNSUPPORTED = "unsupported"


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DialogueStatus(str, Enum):
    DRAFT = "draft"
    ANALYZED = "analyzed"
    GENERATED = "generated"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return DIALOGUE_STATUS_ORDER.index(self)


DIALOGUE_STATUS_ORDER = [
    DialogueStatus.DRAFT,
    DialogueStatus.ANALYZED,
    DialogueStatus.GENERATED,
    DialogueStatus.COMPLETED,
]


class VideoStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoProvider(str, Enum):
    DID = "D-ID"
    JOGG = "JOGG"


class Mood(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class JobType(str, Enum):
    ANALYZE_DIALOGUE = "analyze_dialogue"
    GENERATE_VIDEO = "generate_video"


@dataclass(frozen=True)
class Emotion:
    """A single named emotion with its intensity and confidence"""
    name: str
    intensity: float
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "intensity": self.intensity, "confidence": self.confidence}


NEUTRAL_EMOTION = Emotion(name="neutral", intensity=0.5, confidence=0.5)


@dataclass(frozen=True)
class MoodProfile:
    """
    Structured sentiment summary derived from a transcript.

    `emotions` is never empty; a neutral placeholder stands in when the
    provider reported no emotion signal.
    """
    overall_mood: Mood
    confidence_score: float
    sentiment_score: float
    emotions: tuple
    key_themes: tuple = ()
    risk_indicators: tuple = ()
    recommendations: tuple = ()

    def __post_init__(self):
        if not self.emotions:
            object.__setattr__(self, "emotions", (NEUTRAL_EMOTION,))
        object.__setattr__(self, "overall_mood", Mood(self.overall_mood))
        object.__setattr__(self, "confidence_score", _clamp(self.confidence_score, 0.0, 1.0))
        object.__setattr__(self, "sentiment_score", _clamp(self.sentiment_score, -1.0, 1.0))
        object.__setattr__(self, "emotions", tuple(self.emotions))
        object.__setattr__(self, "key_themes", tuple(self.key_themes)[:3])
        object.__setattr__(self, "risk_indicators", tuple(self.risk_indicators))
        object.__setattr__(self, "recommendations", tuple(self.recommendations)[:3])

    @property
    def primary_emotion(self) -> str:
        """Name of the highest-intensity emotion, first one wins on ties"""
        best = self.emotions[0]
        for emotion in self.emotions[1:]:
            if emotion.intensity > best.intensity:
                best = emotion
        return best.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_mood": self.overall_mood.value,
            "confidence_score": self.confidence_score,
            "sentiment_score": self.sentiment_score,
            "emotions": [e.to_dict() for e in self.emotions],
            "key_themes": list(self.key_themes),
            "risk_indicators": list(self.risk_indicators),
            "recommendations": list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MoodProfile':
        emotions = tuple(
            Emotion(
                name=str(e.get("name", "neutral")),
                intensity=float(e.get("intensity", 0.0)),
                confidence=float(e.get("confidence", 0.0)),
            )
            for e in data.get("emotions") or []
        )
        return cls(
            overall_mood=Mood(data.get("overall_mood", Mood.NEUTRAL.value)),
            confidence_score=float(data.get("confidence_score", 0.0)),
            sentiment_score=float(data.get("sentiment_score", 0.0)),
            emotions=emotions,
            key_themes=tuple(data.get("key_themes") or ()),
            risk_indicators=tuple(data.get("risk_indicators") or ()),
            recommendations=tuple(data.get("recommendations") or ()),
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))


@dataclass
class TemplateSuggestion:
    """Advisory template recommendation, not persisted on its own"""
    template_id: str
    confidence: float
    reasoning: str
    fallback_used: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Template:
    """Read-only catalog entry for a presentation persona"""
    id: str
    name: str = ""
    category: str = "general"
    is_active: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Template':
        return cls(
            id=record["id"],
            name=record.get("name", ""),
            category=record.get("category", "general"),
            is_active=bool(record.get("is_active", True)),
            metadata=record.get("metadata") or {},
        )


@dataclass
class Dialogue:
    """One user-submitted item of raw content"""
    id: str
    user_id: str
    title: str = ""
    content: str = ""
    transcript: Optional[str] = None
    audio_url: Optional[str] = None
    audio_path: Optional[str] = None
    video_url: Optional[str] = None
    language: str = Language.UNKNOWN.value
    original_language: Optional[str] = None
    analysis_status: str = AnalysisStatus.PENDING.value
    status: str = DialogueStatus.DRAFT.value
    mood_analysis: Optional[Dict[str, Any]] = None
    analysis_metadata: Dict[str, Any] = field(default_factory=dict)
    template_id: Optional[str] = None
    generation_token: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Dialogue':
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in record.items() if k in known})

    @property
    def mood_profile(self) -> Optional[MoodProfile]:
        if not self.mood_analysis:
            return None
        return MoodProfile.from_dict(self.mood_analysis)


@dataclass
class Video:
    """One avatar-video generation attempt for a dialogue"""
    id: str
    dialogue_id: str
    user_id: str
    template_id: str
    title: str = ""
    status: str = VideoStatus.PROCESSING.value
    provider: Optional[str] = None
    video_url: Optional[str] = None
    storage_path: Optional[str] = None
    error_message: Optional[str] = None
    duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Video':
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in record.items() if k in known})


@dataclass
class AnalysisResult:
    """Outcome of the mood analysis stage; always populated, even on total failure"""
    transcript: str
    language: Language
    mood_analysis: MoodProfile
    confidence: float
    api_used: str
    processing_time: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VideoGenerationPayload:
    """Everything a video provider needs to synthesize an avatar video"""
    transcript: str
    mood_profile: Optional[MoodProfile]
    template_id: str
    template_metadata: Dict[str, Any] = field(default_factory=dict)
    custom_settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VideoResult:
    """Outcome of the video generation stage"""
    video_url: str
    provider: Optional[VideoProvider]
    status: VideoStatus
    error_message: Optional[str] = None
    duration: Optional[float] = None
    storage_path: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None


@dataclass
class Job:
    """Represents a queued pipeline job"""
    id: str
    job_type: str
    entity_id: str
    payload: Dict[str, Any]
    status: str = "pending"
    created_at: Optional[datetime] = None
    attempts: int = 0
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProcessingResult:
    """Represents the result of processing one job"""
    success: bool
    stages_completed: List[str]
    error: Optional[str] = None
    metrics: Dict[str, Any] = None
    processing_time_sec: Optional[float] = None
    retryable: bool = True
