"""Turn history assembly for a single conversation."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import List

from .errors import StoreReadFailure
from .grammar import PERSISTED_ROLES, SYSTEM, USER
from .memory import TranscriptStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Turn:
    role: str
    content: str


@dataclass
class Transcript:
    """Ordered turns for one (user, conversation) pair.

    ``turns`` always starts with the synthetic system turn and ends with the
    newly arrived user turn; persisted history sits in between.
    """

    user_id: str
    conversation_id: str
    turns: List[Turn] = field(default_factory=list)
    is_new: bool = False

    @property
    def history(self) -> List[Turn]:
        return self.turns[1:-1]

    @property
    def latest(self) -> Turn:
        return self.turns[-1]


def mint_conversation_id() -> str:
    return f"conv-{uuid.uuid4().hex}"


class TranscriptAssembler:
    """Rebuilds a :class:`Transcript` from the store on every call.

    Parameters
    ----------
    store : TranscriptStore
        Source of persisted messages.
    system_prompt : str
        Instruction injected as the first turn. Never stored.
    history_limit : int
        Keep only the most recent N historical turns; ``0`` keeps all.
    """

    def __init__(self, store: TranscriptStore, system_prompt: str, *, history_limit: int = 0) -> None:
        self.store = store
        self.system_prompt = system_prompt
        self.history_limit = max(0, int(history_limit))

    def assemble(self, user_id: str, conversation_id: str, query: str) -> Transcript:
        is_new = not conversation_id
        if is_new:
            conversation_id = mint_conversation_id()
            history: List[Turn] = []
            logger.info("Started conversation %s for user %s", conversation_id, user_id)
        else:
            history = self._load_history(user_id, conversation_id)
            logger.info(
                "Resumed conversation %s for user %s with %d prior turns",
                conversation_id, user_id, len(history),
            )

        turns = [Turn(SYSTEM, self.system_prompt), *history, Turn(USER, query)]
        return Transcript(user_id=user_id, conversation_id=conversation_id, turns=turns, is_new=is_new)

    def _load_history(self, user_id: str, conversation_id: str) -> List[Turn]:
        try:
            rows = self.store.query(conversation_id, user_id)
        except StoreReadFailure:
            raise
        except Exception as e:
            raise StoreReadFailure(str(e)) from e

        history: List[Turn] = []
        for row in rows:
            if row.role not in PERSISTED_ROLES:
                logger.warning(
                    "Discarding stored message %s with role %r in conversation %s",
                    row.message_id, row.role, conversation_id,
                )
                continue
            history.append(Turn(row.role, row.content))

        if self.history_limit and len(history) > self.history_limit:
            history = history[-self.history_limit:]
        return history
