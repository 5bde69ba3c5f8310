"""Append-only conversation transcript storage (JSONL on disk, thread-safe)."""
from __future__ import annotations

import json
import logging
import re
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Protocol

from .errors import StoreReadFailure, StoreWriteFailure

logger = logging.getLogger(__name__)


# -----------------------------
# Record type
# -----------------------------
@dataclass(frozen=True)
class PersistedMessage:
    """One stored chat message. Never updated or deleted once written."""

    conversation_id: str
    message_id: str
    user_id: str
    role: str
    content: str
    created_at: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "userId": self.user_id,
            "role": self.role,
            "content": self.content,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "PersistedMessage":
        return cls(
            conversation_id=str(row["conversationId"]),
            message_id=str(row["messageId"]),
            user_id=str(row["userId"]),
            role=str(row["role"]),
            content=str(row.get("content") or ""),
            created_at=str(row.get("createdAt") or ""),
        )


def new_message_id() -> str:
    # Zero-padded ns prefix keeps ids sortable by creation; the suffix avoids
    # collisions when the clock is coarse or calls arrive back to back.
    return f"msg-{time.time_ns():020d}-{uuid.uuid4().hex[:8]}"


def new_message(conversation_id: str, user_id: str, role: str, content: str) -> PersistedMessage:
    """Stamp a new message with a fresh id and the current UTC time."""
    return PersistedMessage(
        conversation_id=conversation_id,
        message_id=new_message_id(),
        user_id=user_id,
        role=role,
        content=content,
        created_at=datetime.now(timezone.utc).isoformat(),
    )


# -----------------------------
# Store contract
# -----------------------------
class TranscriptStore(Protocol):
    def query(self, conversation_id: str, user_id: str) -> List[PersistedMessage]:
        """Return the user's messages in ``conversation_id``, oldest first."""
        ...

    def put(self, message: PersistedMessage) -> None:
        ...


# -----------------------------
# Helpers
# -----------------------------
def _safe_name(name: str) -> str:
    # Keep it readable but filesystem-safe.
    s = re.sub(r"[^\w.\-@]+", "_", name.strip() or "default")
    return s[:128]


# -----------------------------
# JsonlTranscriptStore
# -----------------------------
class JsonlTranscriptStore:
    """One append-only JSONL log per conversation.

    Layout:
        data_dir/
          conversations/<conversation id>.jsonl   # one PersistedMessage per line

    File order is append order, which is creation order. Rows carry their
    own conversation and user ids, so two ids that map onto the same file
    name never leak into each other's history.
    """

    def __init__(self, data_dir: str) -> None:
        self.root = Path(data_dir)
        self.conversations_dir = self.root / "conversations"
        self.conversations_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, conversation_id: str) -> Path:
        return self.conversations_dir / f"{_safe_name(conversation_id)}.jsonl"

    def query(self, conversation_id: str, user_id: str) -> List[PersistedMessage]:
        path = self._path(conversation_id)
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as f:
                lines = f.readlines()
        except OSError as e:
            raise StoreReadFailure(f"cannot read {path}: {e}") from e

        out: List[PersistedMessage] = []
        for line_no, line in enumerate(lines, 1):
            line = line.strip()
            if not line:
                continue
            try:
                msg = PersistedMessage.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
                logger.error("Corrupt line %d in %s: %s", line_no, path, e)
                raise StoreReadFailure(f"corrupt line {line_no} in {path}: {e}") from e
            if msg.conversation_id == conversation_id and msg.user_id == user_id:
                out.append(msg)
        return out

    def put(self, message: PersistedMessage) -> None:
        line = json.dumps(message.to_dict(), ensure_ascii=False)
        path = self._path(message.conversation_id)
        try:
            with self._lock:
                with path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError as e:
            raise StoreWriteFailure(f"cannot append to {path}: {e}") from e
