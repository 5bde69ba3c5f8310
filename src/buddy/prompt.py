"""Serialize a transcript into the delimiter-tagged prompt the model expects."""
from __future__ import annotations

import logging
from typing import List

from .grammar import ASSISTANT_MARKER, marker_for
from .transcript import Transcript

logger = logging.getLogger(__name__)


def format_prompt(transcript: Transcript) -> str:
    """Render every turn as ``marker\\ncontent\\n`` and append the generation cue.

    Content is emitted verbatim. The trailing empty assistant block tells
    the model where to continue.
    """
    blocks: List[str] = []
    for turn in transcript.turns:
        marker = marker_for(turn.role)
        if marker is None:
            logger.warning("Dropping turn with unknown role %r", turn.role)
            continue
        blocks.append(f"{marker}\n{turn.content}\n")
    blocks.append(f"{ASSISTANT_MARKER}\n")
    return "".join(blocks)
