"""Exception taxonomy for the chat service.

Every error carries the HTTP status the transport should answer with and a
short prefix used to build the plain-text diagnostic body.
"""

from __future__ import annotations


class BuddyError(Exception):
    """Base class for all service errors."""

    status_code: int = 500
    prefix: str = "Internal error"

    def diagnostic(self) -> str:
        return f"{self.prefix}: {self}"


class RequestMalformed(BuddyError):
    status_code = 400
    prefix = "Invalid request"


class ConfigurationFailure(BuddyError):
    prefix = "Failed to load configuration"


class StoreReadFailure(BuddyError):
    prefix = "Failed to get conversation history"


class StoreWriteFailure(BuddyError):
    # Never surfaced to clients; writes are best-effort.
    prefix = "Failed to store message"


class ModelInvocationFailure(BuddyError):
    prefix = "Failed to invoke model"


class ResponseParseFailure(BuddyError):
    prefix = "Failed to parse model response"
