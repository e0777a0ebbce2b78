"""Local RSA keypair management for the claiming directory.

The keypair is created once and reused on every later run:
- ``private.pem``: PKCS#8 PEM, owner read/write only
- ``public.pem``: SubjectPublicKeyInfo PEM derived from the private key
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path

from agent_claim.errors import DependencyMissingError, DirectorySetupError, KeyGenerationError

logger = logging.getLogger(__name__)

PRIVATE_KEY_FILENAME = "private.pem"
PUBLIC_KEY_FILENAME = "public.pem"
RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537


@dataclass(frozen=True)
class Keypair:
    private_key_pem: bytes
    public_key_pem: bytes

    @property
    def public_key(self) -> str:
        return self.public_key_pem.decode("ascii")


def _serialization():
    try:
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric import rsa
    except Exception as exc:  # pragma: no cover
        raise DependencyMissingError(f"cryptography stack unavailable: {exc}") from exc
    return serialization, rsa


def _chmod_owner_only(path: Path) -> None:
    if os.name != "posix":
        return
    path.chmod(0o600)


def ensure_storage_dir(storage_dir: str | Path) -> Path:
    """Create the claiming directory if needed and reject group/world writable ones."""
    path = Path(storage_dir)
    try:
        path.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectorySetupError(f"cannot create claiming directory {path}: {exc}") from exc
    if not path.is_dir():
        raise DirectorySetupError(f"claiming path is not a directory: {path}")
    if not os.access(path, os.W_OK):
        raise DirectorySetupError(f"claiming directory is not writable: {path}")

    if os.name == "posix":
        mode = stat.S_IMODE(path.stat().st_mode)
        if mode & (stat.S_IWGRP | stat.S_IWOTH):
            raise DirectorySetupError(
                f"claiming directory {path} is writable by group or others "
                f"(mode {mode:o}); restrict it to the owner"
            )
    return path


def write_atomic(path: Path, data: bytes) -> None:
    # Written under a dot-prefixed temp name; only the final rename makes it visible.
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        _chmod_owner_only(tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _public_pem_for(private_key_pem: bytes) -> bytes:
    serialization, rsa = _serialization()
    try:
        private = serialization.load_pem_private_key(private_key_pem, password=None)
    except (ValueError, TypeError) as exc:
        raise KeyGenerationError(f"invalid private key: {exc}") from exc
    if not isinstance(private, rsa.RSAPrivateKey):
        raise KeyGenerationError("private key is not an RSA key")
    if private.key_size < RSA_KEY_SIZE:
        raise KeyGenerationError(
            f"private key is {private.key_size} bits; at least {RSA_KEY_SIZE} required"
        )
    return private.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _load_keypair(storage: Path) -> Keypair:
    private_path = storage / PRIVATE_KEY_FILENAME
    public_path = storage / PUBLIC_KEY_FILENAME
    try:
        private_key_pem = private_path.read_bytes()
    except OSError as exc:
        raise KeyGenerationError(f"cannot read private key {private_path}: {exc}") from exc

    expected_public = _public_pem_for(private_key_pem)
    if public_path.exists():
        try:
            public_key_pem = public_path.read_bytes()
        except OSError as exc:
            raise KeyGenerationError(f"cannot read public key {public_path}: {exc}") from exc
        if public_key_pem == expected_public:
            return Keypair(private_key_pem=private_key_pem, public_key_pem=public_key_pem)
        logger.warning("public key %s does not match private key; rewriting it", public_path)
    else:
        logger.info("public key missing; deriving it from %s", private_path)

    try:
        write_atomic(public_path, expected_public)
    except OSError as exc:
        raise KeyGenerationError(f"cannot write public key {public_path}: {exc}") from exc
    return Keypair(private_key_pem=private_key_pem, public_key_pem=expected_public)


def _create_keypair(storage: Path) -> Keypair:
    serialization, rsa = _serialization()
    logger.info("generating %d-bit RSA keypair in %s", RSA_KEY_SIZE, storage)
    try:
        private = rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=RSA_KEY_SIZE,
        )
        private_key_pem = private.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        public_key_pem = private.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    except Exception as exc:
        raise KeyGenerationError(f"RSA key generation failed: {exc}") from exc

    # private.pem is the file whose presence means "keypair exists", so it goes last.
    try:
        write_atomic(storage / PUBLIC_KEY_FILENAME, public_key_pem)
        write_atomic(storage / PRIVATE_KEY_FILENAME, private_key_pem)
    except OSError as exc:
        raise KeyGenerationError(f"cannot persist keypair in {storage}: {exc}") from exc
    return Keypair(private_key_pem=private_key_pem, public_key_pem=public_key_pem)


def ensure_keypair(storage_dir: str | Path) -> tuple[Keypair, bool]:
    """Load the keypair from ``storage_dir`` or create it on first use.

    Returns the keypair and whether it was created by this call. An existing
    private key is never overwritten, even when it cannot be parsed.
    """
    storage = ensure_storage_dir(storage_dir)
    if (storage / PRIVATE_KEY_FILENAME).exists():
        return _load_keypair(storage), False
    return _create_keypair(storage), True
