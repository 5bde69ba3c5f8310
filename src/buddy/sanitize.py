"""Strip leaked or echoed role markers out of raw model output."""
from __future__ import annotations

import re

from .grammar import ASSISTANT_MARKER, SYSTEM_MARKER, USER_MARKER

_FLAGS = re.IGNORECASE | re.DOTALL

_SYS = re.escape(SYSTEM_MARKER)
_USR = re.escape(USER_MARKER)
_AST = re.escape(ASSISTANT_MARKER)

# A leaked system block runs through the next user/assistant marker or the end.
SYSTEM_BLOCK = re.compile(rf"{_SYS}.*?(?:{_USR}|{_AST}|\Z)", _FLAGS)
# A leaked user block runs through the next system/assistant marker or the end.
USER_BLOCK = re.compile(rf"{_USR}.*?(?:{_SYS}|{_AST}|\Z)", _FLAGS)
ASSISTANT_TAG = re.compile(_AST, _FLAGS)
ANY_TAG = re.compile(rf"{_SYS}|{_USR}|{_AST}", _FLAGS)


def sanitize_response(text: str) -> str:
    """Remove protocol markers from ``text``.

    Passes run in a fixed order since each one targets what the previous
    ones leave behind: whole system blocks, whole user blocks, bare
    assistant markers, any remaining marker, then surrounding whitespace.
    The result never contains a marker, so sanitizing twice is a no-op.
    """
    text = SYSTEM_BLOCK.sub("", text)
    text = USER_BLOCK.sub("", text)
    text = ASSISTANT_TAG.sub("", text)
    # Deleting a marker can join its neighbours into a new one.
    removed = 1
    while removed:
        text, removed = ANY_TAG.subn("", text)
    return text.strip()
