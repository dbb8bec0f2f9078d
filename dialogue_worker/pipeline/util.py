import re
import time
from datetime import datetime, timezone
from typing import Optional

from ..models import Language


HEBREW_PATTERN = re.compile(r'[\u0590-\u05FF]')
LATIN_PATTERN = re.compile(r'[a-zA-Z]')

AUDIO_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
}


def detect_language(text: str, default: Language = Language.UNKNOWN) -> Language:
    """Script-range heuristic: any Hebrew letter wins, then any Latin letter"""
    if HEBREW_PATTERN.search(text or ""):
        return Language.HEBREW
    if LATIN_PATTERN.search(text or ""):
        return Language.ENGLISH
    return default


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def now_ms() -> int:
    return int(time.time() * 1000)


def clean_filename(filename: str) -> str:
    """Clean filename for safe object-store keys"""
    filename = re.sub(r'[<>:"/\\|?*\s]', '_', filename)
    filename = re.sub(r'_+', '_', filename)
    filename = filename.strip('_.')
    return filename or 'unnamed'


def audio_extension(content_type: Optional[str], filename: Optional[str] = None) -> str:
    if filename and "." in filename:
        return clean_filename(filename.rsplit(".", 1)[1].lower())
    return AUDIO_EXTENSIONS.get((content_type or "").lower(), "wav")


def audio_storage_path(user_id: str, object_id: str, extension: str) -> str:
    return f"audio/{clean_filename(user_id)}/{object_id}.{extension}"


def video_storage_path(user_id: str, dialogue_id: str, timestamp_ms: Optional[int] = None) -> str:
    """Upload key for a generated video, namespaced by user and dialogue"""
    stamp = timestamp_ms if timestamp_ms is not None else now_ms()
    return f"videos/{clean_filename(user_id)}/{clean_filename(dialogue_id)}/{stamp}_avatar.mp4"
