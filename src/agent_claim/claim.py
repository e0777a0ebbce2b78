"""The claiming procedure: keys, request, exchange, verdict, state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from agent_claim.errors import UsageError
from agent_claim.keystore import ensure_keypair, ensure_storage_dir
from agent_claim.request import AgentIdentity, build_claim_request, claim_path
from agent_claim.response import ClaimOutcome, interpret_response
from agent_claim.state import ClaimState
from agent_claim.transport import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_RETRIES,
    ClaimTransport,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://registry.agent-claim.io"
CLAIM_DIRNAME = "claim.d"


@dataclass(frozen=True)
class ClaimConfig:
    """Fully resolved inputs for one claiming run.

    ``token``/``rooms`` of ``None`` mean "not supplied"; the pending values stored
    in ``claim.d`` are used instead.
    """

    agent_id: str
    hostname: str
    config_dir: Path
    token: str | None = None
    rooms: tuple[str, ...] | None = None
    base_url: str = DEFAULT_BASE_URL
    proxy: str | None = None
    noproxy: bool = False
    insecure: bool = False
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    retries: int = DEFAULT_RETRIES

    @property
    def claim_dir(self) -> Path:
        return Path(self.config_dir) / CLAIM_DIRNAME

    @property
    def claim_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{claim_path(self.agent_id)}"


@dataclass(frozen=True)
class ClaimResult:
    outcome: ClaimOutcome
    agent_id: str
    claim_dir: Path
    key_created: bool = False
    already_claimed: bool = False


def build_transport(config: ClaimConfig) -> ClaimTransport:
    return ClaimTransport(
        connect_timeout=config.connect_timeout,
        retries=config.retries,
        proxy=config.proxy,
        trust_env=not config.noproxy,
        verify_tls=not config.insecure,
    )


def run_claim(config: ClaimConfig, *, transport: ClaimTransport | None = None) -> ClaimResult:
    """Run one claiming attempt.

    Local failures raise ``ClaimError`` subclasses; whatever the registry answers
    comes back as the result's ``outcome``. Callers must not run two claims
    against the same ``claim.d`` at once.
    """
    claim_dir = ensure_storage_dir(config.claim_dir)
    state = ClaimState(claim_dir)

    if config.token is None and state.is_claimed():
        logger.info("agent already claimed; nothing to do")
        return ClaimResult(
            outcome=ClaimOutcome(),
            agent_id=state.claimed_id() or config.agent_id,
            claim_dir=claim_dir,
            already_claimed=True,
        )

    if transport is None:
        transport = build_transport(config)

    token = config.token if config.token is not None else state.read_token()
    if token is None:
        raise UsageError(f"no claim token supplied and none pending in {claim_dir}")
    state.store_pending(token=config.token, rooms=config.rooms)
    rooms = config.rooms if config.rooms is not None else state.read_rooms()

    keypair, key_created = ensure_keypair(claim_dir)

    request = build_claim_request(
        identity=AgentIdentity(id=config.agent_id, hostname=config.hostname),
        token=token,
        rooms=rooms,
        public_key=keypair.public_key,
    )
    url = config.claim_url
    logger.info("claiming agent %s at %s (rooms: %d)", config.agent_id, url, len(request.rooms))
    response = transport.send(url, request.to_json(), trust_anchor=state.trust_anchor_path)

    outcome = interpret_response(response)
    state.commit(outcome, agent_id=config.agent_id)
    return ClaimResult(
        outcome=outcome,
        agent_id=config.agent_id,
        claim_dir=claim_dir,
        key_created=key_created,
    )
