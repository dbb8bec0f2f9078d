"""
Guarded dialogue state transitions.

All writes go through the record store's compare-and-swap so that a
dialogue's pipeline status only moves forward and only one video
generation per dialogue is in flight at a time.
"""

import logging
from typing import Optional, Dict, Any

from .adapters.base import RecordStore
from .models import DialogueStatus, DIALOGUE_STATUS_ORDER
from .pipeline.util import utc_now_iso

logger = logging.getLogger("dialogue_worker")

DIALOGUES = "dialogues"


def advance_dialogue_status(store: RecordStore, dialogue_id: str, target: DialogueStatus,
                            extra: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """
    Move a dialogue to target only if its current status ranks below it.

    Returns:
        The updated record, or None when the dialogue is already at or past target
    """
    target = DialogueStatus(target)
    earlier = [s.value for s in DIALOGUE_STATUS_ORDER[:target.rank]]
    fields = {"status": target.value, "updated_at": utc_now_iso()}
    fields.update(extra or {})
    updated = store.update_if(DIALOGUES, dialogue_id, {"status": earlier + [None]}, fields)
    if updated is None:
        logger.debug(f"Dialogue {dialogue_id} already at or past {target.value}, status left unchanged")
    return updated


def claim_generation(store: RecordStore, dialogue_id: str, video_id: str,
                     extra: Optional[Dict[str, Any]] = None) -> bool:
    """Take the per-dialogue generation token; False if another generation holds it"""
    fields = {"generation_token": video_id, "updated_at": utc_now_iso()}
    fields.update(extra or {})
    return store.update_if(DIALOGUES, dialogue_id, {"generation_token": [None]}, fields) is not None


def release_generation(store: RecordStore, dialogue_id: str, video_id: str) -> bool:
    """Release the token, only if video_id still holds it"""
    released = store.update_if(
        DIALOGUES, dialogue_id, {"generation_token": [video_id]},
        {"generation_token": None, "updated_at": utc_now_iso()}
    )
    return released is not None
