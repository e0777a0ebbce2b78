"""Durable claiming state under ``claim.d``.

Files:
- ``token``: pending claim token, removed once a claim succeeds
- ``rooms``: pending room list, one room per line
- ``is_claimed``: empty success marker
- ``claimed_id``: agent id the last successful claim enrolled
- ``cloud_fullchain.pem``: optional trust anchor, never written here
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from agent_claim.errors import DirectorySetupError
from agent_claim.keystore import write_atomic
from agent_claim.request import parse_rooms
from agent_claim.response import ClaimOutcome

logger = logging.getLogger(__name__)

TOKEN_FILENAME = "token"
ROOMS_FILENAME = "rooms"
CLAIMED_MARKER_FILENAME = "is_claimed"
CLAIMED_ID_FILENAME = "claimed_id"
TRUST_ANCHOR_FILENAME = "cloud_fullchain.pem"


class ClaimState:
    def __init__(self, claim_dir: str | Path) -> None:
        self.claim_dir = Path(claim_dir)

    @property
    def token_path(self) -> Path:
        return self.claim_dir / TOKEN_FILENAME

    @property
    def rooms_path(self) -> Path:
        return self.claim_dir / ROOMS_FILENAME

    @property
    def marker_path(self) -> Path:
        return self.claim_dir / CLAIMED_MARKER_FILENAME

    @property
    def claimed_id_path(self) -> Path:
        return self.claim_dir / CLAIMED_ID_FILENAME

    @property
    def trust_anchor_path(self) -> Path:
        return self.claim_dir / TRUST_ANCHOR_FILENAME

    def is_claimed(self) -> bool:
        return self.marker_path.exists()

    def claimed_id(self) -> str | None:
        try:
            value = self.claimed_id_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise DirectorySetupError(f"cannot read {self.claimed_id_path}: {exc}") from exc
        return value or None

    def read_token(self) -> str | None:
        try:
            value = self.token_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise DirectorySetupError(f"cannot read {self.token_path}: {exc}") from exc
        return value or None

    def read_rooms(self) -> tuple[str, ...]:
        try:
            raw = self.rooms_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ()
        except OSError as exc:
            raise DirectorySetupError(f"cannot read {self.rooms_path}: {exc}") from exc
        return parse_rooms(raw.splitlines())

    def store_pending(self, *, token: str | None, rooms: Sequence[str] | None) -> None:
        """Persist whichever of token and rooms were supplied for this attempt.

        The success marker is left alone; only a registry verdict changes it.
        """
        try:
            if token is not None:
                write_atomic(self.token_path, f"{token}\n".encode("utf-8"))
            if rooms is not None:
                rooms_text = "".join(f"{room}\n" for room in rooms)
                write_atomic(self.rooms_path, rooms_text.encode("utf-8"))
        except OSError as exc:
            raise DirectorySetupError(
                f"cannot write claim state in {self.claim_dir}: {exc}"
            ) from exc

    def commit(self, outcome: ClaimOutcome, *, agent_id: str) -> None:
        if not outcome.success:
            logger.debug("claim failed (%s); leaving %s untouched", outcome.name, self.claim_dir)
            return
        try:
            write_atomic(self.claimed_id_path, f"{agent_id}\n".encode("utf-8"))
            write_atomic(self.marker_path, b"")
            self.token_path.unlink(missing_ok=True)
        except OSError as exc:
            raise DirectorySetupError(f"cannot record claim in {self.claim_dir}: {exc}") from exc
        logger.info("claim recorded in %s", self.claim_dir)
