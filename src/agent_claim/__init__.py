"""agent-claim public surface."""

from agent_claim.claim import ClaimConfig, ClaimResult, build_transport, run_claim
from agent_claim.errors import (
    ClaimError,
    ClaimTransportError,
    DependencyMissingError,
    DirectorySetupError,
    KeyGenerationError,
    UsageError,
)
from agent_claim.keystore import Keypair, ensure_keypair
from agent_claim.request import AgentIdentity, ClaimRequest, build_claim_request, parse_rooms
from agent_claim.response import ClaimOutcome, ServerErrorKind, interpret_response
from agent_claim.state import ClaimState
from agent_claim.transport import ClaimTransport, RawResponse

__all__ = [
    "ClaimConfig",
    "ClaimResult",
    "run_claim",
    "build_transport",
    "ClaimError",
    "ClaimTransportError",
    "DependencyMissingError",
    "DirectorySetupError",
    "KeyGenerationError",
    "UsageError",
    "Keypair",
    "ensure_keypair",
    "AgentIdentity",
    "ClaimRequest",
    "build_claim_request",
    "parse_rooms",
    "ClaimOutcome",
    "ServerErrorKind",
    "interpret_response",
    "ClaimState",
    "ClaimTransport",
    "RawResponse",
]
