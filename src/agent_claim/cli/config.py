"""Configuration helpers for the agent-claim CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_claim.claim import DEFAULT_BASE_URL
from agent_claim.request import parse_rooms
from agent_claim.transport import DEFAULT_CONNECT_TIMEOUT, DEFAULT_RETRIES

DEFAULT_CONFIG_DIR = Path.home() / ".agent_claim"
CONFIG_FILENAME = "claim.toml"
BASE_URL_ENV_VAR = "AGENT_CLAIM_URL"
TOKEN_ENV_VAR = "AGENT_CLAIM_TOKEN"

MIN_CONNECT_TIMEOUT = 1.0
MAX_CONNECT_TIMEOUT = 60.0
MAX_RETRIES = 5


@dataclass(frozen=True)
class FileConfig:
    url: str = DEFAULT_BASE_URL
    agent_id: str | None = None
    hostname: str | None = None
    token: str | None = None
    rooms: tuple[str, ...] | None = None
    proxy: str | None = None
    noproxy: bool = False
    insecure: bool = False
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    retries: int = DEFAULT_RETRIES


class ConfigError(ValueError):
    """Raised when CLI config is invalid."""


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc

    try:  # Python 3.11+
        import tomllib  # type: ignore[attr-defined]
        try:
            return tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc
    except ModuleNotFoundError:
        try:
            import tomli
        except ModuleNotFoundError as exc:
            raise ConfigError("toml parser unavailable; install tomli for Python < 3.11") from exc
        try:
            return tomli.loads(raw)
        except tomli.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc


def _to_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    raise ConfigError(f"{field_name} must be a boolean")


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def validate_connect_timeout(value: Any) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError("connect_timeout must be a number") from exc
    if not MIN_CONNECT_TIMEOUT <= timeout <= MAX_CONNECT_TIMEOUT:
        raise ConfigError(
            f"connect_timeout must be between {MIN_CONNECT_TIMEOUT:g} and "
            f"{MAX_CONNECT_TIMEOUT:g} seconds"
        )
    return timeout


def validate_retries(value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError("retries must be an integer")
    try:
        retries = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError("retries must be an integer") from exc
    if not 0 <= retries <= MAX_RETRIES:
        raise ConfigError(f"retries must be between 0 and {MAX_RETRIES}")
    return retries


def default_config_path(config_dir: str | Path | None = None) -> Path:
    return Path(config_dir or DEFAULT_CONFIG_DIR) / CONFIG_FILENAME


def load_file_config(path: str | Path | None = None) -> FileConfig:
    """Read ``claim.toml`` and apply environment overrides.

    Values may sit at the top level or under a ``[claim]`` table. A missing file
    yields defaults.
    """
    config_path = Path(path) if path else default_config_path()
    parsed: dict[str, Any] = _load_toml(config_path) if config_path.exists() else {}

    section = parsed.get("claim")
    if isinstance(section, dict):
        source = section
    elif section is None:
        source = parsed
    else:
        raise ConfigError("[claim] must be a table")

    env_url = os.getenv(BASE_URL_ENV_VAR)
    configured_url = str(source.get("url", DEFAULT_BASE_URL)).strip()
    url = env_url.strip() if env_url else configured_url
    if not url:
        raise ConfigError("url must not be empty")

    rooms_raw = source.get("rooms")
    if rooms_raw is None:
        rooms = None
    elif isinstance(rooms_raw, (str, list)):
        rooms = parse_rooms(rooms_raw)
    else:
        raise ConfigError("rooms must be a string or an array of strings")

    env_token = os.getenv(TOKEN_ENV_VAR)

    return FileConfig(
        url=url,
        agent_id=_optional_str(source.get("id")),
        hostname=_optional_str(source.get("hostname")),
        token=env_token.strip() or None if env_token else None,
        rooms=rooms,
        proxy=_optional_str(source.get("proxy")),
        noproxy=_to_bool(source.get("noproxy", False), "noproxy"),
        insecure=_to_bool(source.get("insecure", False), "insecure"),
        connect_timeout=validate_connect_timeout(
            source.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT)
        ),
        retries=validate_retries(source.get("retries", DEFAULT_RETRIES)),
    )
