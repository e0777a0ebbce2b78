"""Claim request builder."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable, Sequence
from urllib.parse import quote

CLAIM_PATH_TEMPLATE = "/api/v1/workspaces/agents/{agent_id}"


@dataclass(frozen=True)
class AgentIdentity:
    id: str
    hostname: str


@dataclass(frozen=True)
class ClaimRequest:
    agent: AgentIdentity
    token: str
    rooms: tuple[str, ...]
    public_key: str

    def to_dict(self) -> dict:
        return {
            "agent": {"id": self.agent.id, "hostname": self.agent.hostname},
            "token": self.token,
            "rooms": list(self.rooms),
            "publicKey": self.public_key,
        }

    def to_json(self) -> bytes:
        # Fixed key order and separators keep the body byte-for-byte reproducible.
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":")).encode(
            "utf-8"
        )


def parse_rooms(values: str | Iterable[str] | None) -> tuple[str, ...]:
    """Split comma-separated room ids into an ordered, de-duplicated tuple.

    Accepts a single string (``"room1,room2"``) or an iterable of such strings,
    e.g. a repeated CLI option or a TOML array.
    """
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]

    rooms: list[str] = []
    for value in values:
        for part in str(value).split(","):
            room = part.strip()
            if room and room not in rooms:
                rooms.append(room)
    return tuple(rooms)


def claim_path(agent_id: str) -> str:
    return CLAIM_PATH_TEMPLATE.format(agent_id=quote(agent_id, safe=""))


def build_claim_request(
    *,
    identity: AgentIdentity,
    token: str,
    rooms: Sequence[str],
    public_key: str,
) -> ClaimRequest:
    return ClaimRequest(agent=identity, token=token, rooms=tuple(rooms), public_key=public_key)
