"""Claiming error types."""

from __future__ import annotations

EXIT_SUCCESS = 0
EXIT_USAGE_ERROR = 1
EXIT_SETUP_FAILED = 2
EXIT_DEPENDENCY_MISSING = 3
EXIT_TRANSPORT_FAILED = 4


class ClaimError(RuntimeError):
    """Base error for local failures that end a claiming run."""

    exit_code = EXIT_SETUP_FAILED


class UsageError(ClaimError):
    """Arguments or configuration could not be understood."""

    exit_code = EXIT_USAGE_ERROR


class DirectorySetupError(ClaimError):
    """Claiming directory could not be created, written, or is too permissive."""

    exit_code = EXIT_SETUP_FAILED


class KeyGenerationError(ClaimError):
    """Keypair could not be generated, loaded, or its public key extracted."""

    exit_code = EXIT_SETUP_FAILED


class DependencyMissingError(ClaimError):
    """A required crypto or HTTP library is not importable."""

    exit_code = EXIT_DEPENDENCY_MISSING


class ClaimTransportError(ClaimError):
    """No response was received from the registry."""

    exit_code = EXIT_TRANSPORT_FAILED

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        attempts: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts
