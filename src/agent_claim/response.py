"""Interpretation of registry claim responses."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum

from agent_claim.errors import EXIT_SUCCESS
from agent_claim.transport import RawResponse

logger = logging.getLogger(__name__)


class ServerErrorKind(Enum):
    """Registry-reported claim failures: (error message, exit code)."""

    INVALID_AGENT_ID = ("invalid agent id", 6)
    INVALID_PUBLIC_KEY = ("invalid public key", 7)
    TOKEN_EXPIRED = ("token has expired", 8)
    INVALID_TOKEN = ("invalid token", 9)
    DUPLICATE_AGENT_ID = ("duplicate agent id", 10)
    ALREADY_CLAIMED_ELSEWHERE = ("claimed in another workspace", 11)
    INTERNAL_SERVER_ERROR = ("internal server error", 12)
    UNKNOWN_SERVER_ERROR = (None, 5)

    def __init__(self, message: str | None, exit_code: int) -> None:
        self.message = message
        self.exit_code = exit_code

    @classmethod
    def from_message(cls, message: object) -> "ServerErrorKind":
        if isinstance(message, str):
            for kind in cls:
                if kind.message is not None and kind.message == message:
                    return kind
        return cls.UNKNOWN_SERVER_ERROR


@dataclass(frozen=True)
class ClaimOutcome:
    error: ServerErrorKind | None = None
    status_code: int | None = None
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return EXIT_SUCCESS if self.error is None else self.error.exit_code

    @property
    def name(self) -> str:
        return "success" if self.error is None else self.error.name.lower()


def _error_message(body: bytes) -> str | None:
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    message = payload.get("error")
    return message if isinstance(message, str) else None


def interpret_response(response: RawResponse) -> ClaimOutcome:
    if response.status_code == 200:
        return ClaimOutcome(status_code=200)

    message = _error_message(response.body)
    kind = ServerErrorKind.from_message(message)
    if kind is ServerErrorKind.UNKNOWN_SERVER_ERROR:
        logger.debug(
            "unrecognized registry error (status %s): %r",
            response.status_code,
            message if message is not None else response.text[:200],
        )
    return ClaimOutcome(error=kind, status_code=response.status_code, message=message)
