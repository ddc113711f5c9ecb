from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    MALFORMED_RESPONSE = "malformed_response"


class ProviderError(Exception):
    kind: ErrorKind

    def __init__(self, context: str, message: str) -> None:
        super().__init__(f"{context}: {message}")
        self.context = context
        self.message = message


class ProviderUnavailable(ProviderError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE

    def __init__(self, context: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(context, message)
        self.status_code = status_code


class MalformedResponse(ProviderError):
    kind = ErrorKind.MALFORMED_RESPONSE


class Superseded(Exception):
    """A fetch finished after a newer request for the same slot was issued."""

    def __init__(self, slot: str, seq: int, latest: int) -> None:
        super().__init__(f"{slot} request #{seq} superseded by #{latest}")
        self.slot = slot
        self.seq = seq
        self.latest = latest
