"""
Best-effort side effects run as FastAPI background tasks.

They execute after the response is sent, so they open their own DB session
and never raise: failures are logged and dropped.
"""

from __future__ import annotations

import logging
import uuid

from beatstream.api.db import get_db_session
from beatstream.api.models import PlayHistory
from beatstream.api.storage import ObjectStorage

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def record_play_history(user_id: uuid.UUID, song_id: uuid.UUID) -> None:
    """Append one play-history row."""
    try:
        with get_db_session() as db:
            db.add(PlayHistory(user_id=user_id, song_id=song_id))
    except Exception:
        logger.exception("play_history_failed: user_id=%s song_id=%s", user_id, song_id)


# PUBLIC_INTERFACE
def delete_blob_quietly(storage: ObjectStorage, key: str) -> None:
    """Delete a blob whose song row is already gone."""
    try:
        storage.delete_object(key)
    except Exception:
        logger.exception("storage_delete_failed: key=%s", key)
