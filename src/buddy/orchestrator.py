"""Per-request conversation flow.

    load history -> store user turn -> format prompt -> invoke model
    -> sanitize -> store assistant turn -> result

Reading history and invoking the model are fatal when they fail; the two
writes are best-effort and only logged. Nothing is retried.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from .errors import BuddyError, ModelInvocationFailure
from .grammar import ASSISTANT, USER
from .llm import ModelGateway
from .memory import TranscriptStore, new_message
from .prompt import format_prompt
from .sanitize import sanitize_response
from .transcript import TranscriptAssembler

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    conversation_id: str
    response: str
    # Roles whose turn could not be persisted for this request.
    write_failures: List[str] = field(default_factory=list)


class ConversationOrchestrator:
    def __init__(
        self,
        store: TranscriptStore,
        model: ModelGateway,
        *,
        system_prompt: str,
        temperature: float = 0.5,
        history_limit: int = 0,
    ) -> None:
        self.store = store
        self.model = model
        self.temperature = float(temperature)
        self.assembler = TranscriptAssembler(store, system_prompt, history_limit=history_limit)

    def handle(self, user_id: str, query: str, conversation_id: str = "") -> ChatResult:
        """Answer ``query`` in the context of ``conversation_id``.

        Raises
        ------
        StoreReadFailure
            History could not be loaded; the model was not called.
        ModelInvocationFailure, ResponseParseFailure
            The model call failed; nothing was stored for the assistant.
        """
        transcript = self.assembler.assemble(user_id, conversation_id or "", query)
        conversation_id = transcript.conversation_id
        failures: List[str] = []

        self._persist(conversation_id, user_id, USER, query, failures)

        prompt = format_prompt(transcript)
        raw = self._invoke(prompt, conversation_id)
        answer = sanitize_response(raw)
        if not answer:
            logger.warning("Model output for conversation %s was empty after sanitizing", conversation_id)

        self._persist(conversation_id, user_id, ASSISTANT, answer, failures)
        return ChatResult(conversation_id=conversation_id, response=answer, write_failures=failures)

    def _invoke(self, prompt: str, conversation_id: str) -> str:
        try:
            return self.model.invoke(prompt, self.temperature)
        except BuddyError as e:
            logger.error("Model call failed for conversation %s: %s", conversation_id, e)
            raise
        except Exception as e:
            logger.error("Model call failed for conversation %s: %s", conversation_id, e)
            raise ModelInvocationFailure(str(e)) from e

    def _persist(self, conversation_id: str, user_id: str, role: str, content: str, failures: List[str]) -> None:
        try:
            self.store.put(new_message(conversation_id, user_id, role, content))
        except Exception as e:
            # Best-effort write.
            logger.warning("Failed to store %s message for conversation %s: %s", role, conversation_id, e)
            failures.append(role)
