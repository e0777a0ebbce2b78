"""Command-line interface for agent-claim."""

from __future__ import annotations

import argparse
import json
import logging
import re
import socket
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import Sequence

from agent_claim.claim import ClaimConfig, ClaimResult, run_claim
from agent_claim.cli.config import (
    DEFAULT_CONFIG_DIR,
    ConfigError,
    FileConfig,
    default_config_path,
    load_file_config,
    validate_connect_timeout,
    validate_retries,
)
from agent_claim.errors import (
    EXIT_SUCCESS,
    EXIT_USAGE_ERROR,
    ClaimError,
    ClaimTransportError,
    DependencyMissingError,
    DirectorySetupError,
    KeyGenerationError,
    UsageError,
)
from agent_claim.request import parse_rooms
from agent_claim.response import ServerErrorKind

_SENSITIVE_FIELDS = (
    "token",
    "private_key",
    "authorization",
    "password",
)

_ERROR_PREFIXES: dict[type, str] = {
    UsageError: "usage error",
    DirectorySetupError: "claim directory error",
    KeyGenerationError: "key error",
    DependencyMissingError: "dependency error",
    ClaimTransportError: "connection error",
}

_SERVER_ERROR_HINTS = {
    ServerErrorKind.INVALID_AGENT_ID: "the registry rejected the agent id {agent_id!r}.",
    ServerErrorKind.INVALID_PUBLIC_KEY: (
        "the registry rejected the public key. Check {claim_dir}/public.pem or remove both "
        "key files to generate a new keypair."
    ),
    ServerErrorKind.TOKEN_EXPIRED: (
        "the claim token has expired. Request a new token and run again with --token."
    ),
    ServerErrorKind.INVALID_TOKEN: (
        "the claim token is not valid. Check it and run again with --token."
    ),
    ServerErrorKind.DUPLICATE_AGENT_ID: (
        "another agent is already registered with id {agent_id!r}."
    ),
    ServerErrorKind.ALREADY_CLAIMED_ELSEWHERE: (
        "this agent is already claimed in another workspace."
    ),
    ServerErrorKind.INTERNAL_SERVER_ERROR: (
        "the registry reported an internal error. Try again later."
    ),
}


class _ArgumentParser(argparse.ArgumentParser):
    # argparse exits with 2 on bad input, which is reserved for directory failures.
    def error(self, message: str):  # type: ignore[override]
        raise UsageError(message)


def _sdk_version() -> str:
    try:
        return pkg_version("agent-claim")
    except PackageNotFoundError:
        return "0.0.0+local"


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="agent-claim",
        description="Claim this agent in a remote registry with a one-time token.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"agent-claim {_sdk_version()}",
    )
    parser.add_argument(
        "--config-dir",
        default=None,
        help="Configuration directory holding claim.d/ (default: ~/.agent_claim)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config TOML (default: <config-dir>/claim.toml)",
    )
    parser.add_argument("--token", default=None, help="One-time claim token")
    parser.add_argument(
        "--rooms",
        action="append",
        default=None,
        help="Comma-separated room ids to join; may be repeated",
    )
    parser.add_argument("--url", default=None, help="Registry base URL")
    parser.add_argument("--id", dest="agent_id", default=None, help="Agent id to claim")
    parser.add_argument(
        "--hostname",
        default=None,
        help="Hostname reported to the registry (default: this machine's hostname)",
    )

    proxy_group = parser.add_mutually_exclusive_group()
    proxy_group.add_argument("--proxy", default=None, help="Proxy URL for the claim request")
    proxy_group.add_argument(
        "--noproxy",
        action="store_true",
        help="Ignore proxy settings from the environment",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip TLS certificate verification (trust anchor is ignored)",
    )
    parser.add_argument("--connect-timeout", default=None, help="Connect timeout in seconds")
    parser.add_argument(
        "--retries",
        default=None,
        help="Connection retries before giving up",
    )
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    return parser


def _sanitize_error_text(value: str) -> str:
    redacted = value
    for field in _SENSITIVE_FIELDS:
        redacted = re.sub(
            rf"(?i)({field}\s*[=:]\s*)([^,\s]+)",
            r"\1[REDACTED]",
            redacted,
        )
    redacted = re.sub(r"(?i)([?&](?:secret|token|api_key)=)([^&\s]+)", r"\1[REDACTED]", redacted)
    redacted = re.sub(r"(://)([^/@\s:]+):([^/@\s]+)@", r"\1\2:[REDACTED]@", redacted)
    return redacted


def _print_error(stderr, prefix: str, message: str, *, code: int) -> int:
    print(f"{prefix}: {_sanitize_error_text(message)}", file=stderr)
    return code


def _configure_logging(verbose: bool, stderr) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=stderr,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _resolve_config(args, file_config: FileConfig, config_dir: Path) -> ClaimConfig:
    agent_id = args.agent_id if args.agent_id is not None else file_config.agent_id
    if agent_id is None:
        raise ConfigError("agent id is required (--id or `id` in the config file)")

    hostname = args.hostname or file_config.hostname or socket.gethostname()
    token = (args.token or "").strip() or file_config.token
    rooms = parse_rooms(args.rooms) if args.rooms is not None else file_config.rooms

    connect_timeout = file_config.connect_timeout
    if args.connect_timeout is not None:
        connect_timeout = validate_connect_timeout(args.connect_timeout)
    retries = file_config.retries
    if args.retries is not None:
        retries = validate_retries(args.retries)

    return ClaimConfig(
        agent_id=agent_id,
        hostname=hostname,
        config_dir=config_dir,
        token=token,
        rooms=rooms,
        base_url=(args.url or "").strip() or file_config.url,
        proxy=args.proxy or file_config.proxy,
        noproxy=args.noproxy or file_config.noproxy,
        insecure=args.insecure or file_config.insecure,
        connect_timeout=connect_timeout,
        retries=retries,
    )


def _result_payload(result: ClaimResult) -> dict:
    outcome = result.outcome
    return {
        "agent_id": result.agent_id,
        "claim_dir": str(result.claim_dir),
        "claimed": outcome.success,
        "already_claimed": result.already_claimed,
        "key_created": result.key_created,
        "outcome": outcome.name,
        "exit_code": outcome.exit_code,
        "status_code": outcome.status_code,
        "error": outcome.message,
    }


def _report_result(result: ClaimResult, *, as_json: bool, stdout, stderr) -> int:
    outcome = result.outcome
    if as_json:
        print(json.dumps(_result_payload(result), sort_keys=True), file=stdout)
    elif outcome.success:
        print(f"agent_id: {result.agent_id}", file=stdout)
        print(f"claim_dir: {result.claim_dir}", file=stdout)
        print("claimed: true", file=stdout)
        if result.already_claimed:
            print("note: already claimed; pass --token to claim again", file=stdout)

    if outcome.success:
        return EXIT_SUCCESS

    hint = _SERVER_ERROR_HINTS.get(outcome.error)
    if hint is None:
        detail = outcome.message if outcome.message is not None else "no error message"
        message = f"unrecognized registry response (HTTP {outcome.status_code}): {detail}"
    else:
        message = hint.format(agent_id=result.agent_id, claim_dir=result.claim_dir)
    return _print_error(stderr, "claim failed", message, code=outcome.exit_code)


def main(argv: Sequence[str] | None = None, *, stdout=sys.stdout, stderr=sys.stderr) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as exc:
        return _print_error(stderr, "usage error", str(exc), code=EXIT_USAGE_ERROR)

    _configure_logging(args.verbose, stderr)

    config_dir = Path(args.config_dir) if args.config_dir else DEFAULT_CONFIG_DIR
    try:
        file_config = load_file_config(args.config or default_config_path(config_dir))
        config = _resolve_config(args, file_config, config_dir)
    except ConfigError as exc:
        return _print_error(stderr, "config error", str(exc), code=EXIT_USAGE_ERROR)

    try:
        result = run_claim(config)
    except ClaimError as exc:
        prefix = _ERROR_PREFIXES.get(type(exc), "claim error")
        return _print_error(stderr, prefix, str(exc), code=exc.exit_code)

    return _report_result(result, as_json=args.json, stdout=stdout, stderr=stderr)


if __name__ == "__main__":
    raise SystemExit(main())
