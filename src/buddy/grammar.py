"""Role markers shared by prompt formatting and response sanitizing."""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"

SYSTEM_MARKER = "<|system|>"
USER_MARKER = "<|user|>"
ASSISTANT_MARKER = "<|assistant|>"

MARKERS: Dict[str, str] = {
    SYSTEM: SYSTEM_MARKER,
    USER: USER_MARKER,
    ASSISTANT: ASSISTANT_MARKER,
}

# Only these roles are ever written to or replayed from the store.
PERSISTED_ROLES: FrozenSet[str] = frozenset({USER, ASSISTANT})


def marker_for(role: str) -> Optional[str]:
    """Return the marker for ``role`` or ``None`` if the role is unknown."""
    return MARKERS.get(role)
