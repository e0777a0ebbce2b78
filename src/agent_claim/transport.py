"""HTTP transport for the claim exchange."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from agent_claim.errors import ClaimTransportError, DependencyMissingError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 30.0
DEFAULT_RETRIES = 3


@dataclass(frozen=True)
class RawResponse:
    status_code: int
    headers: dict[str, str]
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def resolve_verify(trust_anchor: str | Path | None, *, verify_tls: bool = True) -> bool | str:
    """Pick the ``verify`` argument for requests.

    A readable trust-anchor file pins the server chain to it; a missing or
    unreadable one falls back to the default trust store.
    """
    if not verify_tls:
        return False
    if trust_anchor is None:
        return True
    anchor = Path(trust_anchor)
    if anchor.is_file() and os.access(anchor, os.R_OK):
        return str(anchor)
    logger.debug("trust anchor %s not readable; using default trust store", anchor)
    return True


@dataclass
class ClaimTransport:
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    retries: int = DEFAULT_RETRIES
    proxy: str | None = None
    trust_env: bool = True
    verify_tls: bool = True
    backoff_factor: float = 0.5
    _session: object = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        try:
            import requests
            from requests.adapters import HTTPAdapter
            from urllib3.util.retry import Retry
        except Exception as exc:  # pragma: no cover
            raise DependencyMissingError(f"requests stack unavailable: {exc}") from exc

        self._requests = requests
        self._session = requests.Session()
        self._session.trust_env = self.trust_env
        # Only connection establishment is retried; once the server has answered,
        # whatever it said is final.
        retry = Retry(
            total=max(0, int(self.retries)),
            connect=max(0, int(self.retries)),
            read=0,
            status=0,
            other=0,
            allowed_methods=("PUT",),
            backoff_factor=self.backoff_factor,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)
        if self.proxy:
            self._session.proxies = {"http": self.proxy, "https": self.proxy}

    def send(
        self,
        url: str,
        payload: bytes,
        *,
        trust_anchor: str | Path | None = None,
    ) -> RawResponse:
        """PUT ``payload`` to ``url`` and return the response, whatever its status."""
        verify = resolve_verify(trust_anchor, verify_tls=self.verify_tls)
        logger.debug(
            "PUT %s (connect_timeout=%s, retries=%s, verify=%s)",
            url,
            self.connect_timeout,
            self.retries,
            verify,
        )
        try:
            response = self._session.request(
                "PUT",
                url,
                data=payload,
                headers={"Content-Type": "application/json"},
                timeout=(self.connect_timeout, self.read_timeout),
                verify=verify,
            )
        except self._requests.RequestException as exc:
            attempts = max(0, int(self.retries)) + 1
            raise ClaimTransportError(
                f"no response from {url} after {attempts} attempt(s): {exc}",
                url=url,
                attempts=attempts,
            ) from exc

        logger.debug("registry answered %s", response.status_code)
        return RawResponse(
            status_code=int(response.status_code),
            headers=dict(response.headers or {}),
            body=response.content or b"",
        )
