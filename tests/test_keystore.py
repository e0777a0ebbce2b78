from __future__ import annotations

import os
import stat

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from agent_claim.errors import DirectorySetupError, KeyGenerationError
from agent_claim.keystore import ensure_keypair, ensure_storage_dir


def _snapshot(directory):
    return {
        path.name: (path.read_bytes(), path.stat().st_mtime_ns)
        for path in sorted(directory.iterdir())
    }


def test_ensure_keypair_is_idempotent(tmp_path) -> None:
    claim_dir = tmp_path / "claim.d"

    first, created_first = ensure_keypair(claim_dir)
    before = _snapshot(claim_dir)
    second, created_second = ensure_keypair(claim_dir)

    assert created_first is True
    assert created_second is False
    assert first == second
    assert _snapshot(claim_dir) == before
    assert sorted(before) == ["private.pem", "public.pem"]


def test_generated_key_is_rsa_2048_with_matching_public_pem(tmp_path) -> None:
    keypair, _ = ensure_keypair(tmp_path / "claim.d")

    private = serialization.load_pem_private_key(keypair.private_key_pem, password=None)
    assert isinstance(private, rsa.RSAPrivateKey)
    assert private.key_size >= 2048
    expected_public = private.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    assert keypair.public_key_pem == expected_public
    assert keypair.public_key.startswith("-----BEGIN PUBLIC KEY-----\n")


def test_key_files_are_owner_only_on_posix(tmp_path) -> None:
    claim_dir = tmp_path / "claim.d"
    ensure_keypair(claim_dir)

    if os.name != "posix":
        return

    for name in ("private.pem", "public.pem"):
        assert stat.S_IMODE((claim_dir / name).stat().st_mode) == 0o600
    assert stat.S_IMODE(claim_dir.stat().st_mode) & 0o077 == 0


def test_missing_public_key_is_derived_without_touching_private_key(tmp_path) -> None:
    claim_dir = tmp_path / "claim.d"
    keypair, _ = ensure_keypair(claim_dir)
    (claim_dir / "public.pem").unlink()

    reloaded, created = ensure_keypair(claim_dir)

    assert created is False
    assert reloaded == keypair
    assert (claim_dir / "public.pem").read_bytes() == keypair.public_key_pem


def test_corrupt_private_key_is_rejected_and_not_overwritten(tmp_path) -> None:
    claim_dir = tmp_path / "claim.d"
    claim_dir.mkdir(mode=0o700)
    (claim_dir / "private.pem").write_bytes(b"not a key")

    with pytest.raises(KeyGenerationError):
        ensure_keypair(claim_dir)

    assert (claim_dir / "private.pem").read_bytes() == b"not a key"


def test_short_rsa_key_is_rejected(tmp_path) -> None:
    claim_dir = tmp_path / "claim.d"
    claim_dir.mkdir(mode=0o700)
    weak = rsa.generate_private_key(public_exponent=65537, key_size=1024)
    (claim_dir / "private.pem").write_bytes(
        weak.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )

    with pytest.raises(KeyGenerationError, match="at least 2048"):
        ensure_keypair(claim_dir)


def test_failed_write_leaves_no_key_files(tmp_path, monkeypatch) -> None:
    claim_dir = tmp_path / "claim.d"

    def broken_replace(src, dst):  # noqa: ANN001
        raise OSError("disk full")

    monkeypatch.setattr("agent_claim.keystore.os.replace", broken_replace)

    with pytest.raises(KeyGenerationError):
        ensure_keypair(claim_dir)

    assert list(claim_dir.iterdir()) == []


@pytest.mark.skipif(os.name != "posix", reason="permission bits are posix-only")
def test_group_writable_directory_is_rejected(tmp_path) -> None:
    claim_dir = tmp_path / "claim.d"
    claim_dir.mkdir()
    claim_dir.chmod(0o770)

    with pytest.raises(DirectorySetupError, match="writable by group or others"):
        ensure_storage_dir(claim_dir)


def test_storage_path_that_is_a_file_is_rejected(tmp_path) -> None:
    claim_dir = tmp_path / "claim.d"
    claim_dir.write_text("oops", encoding="utf-8")

    with pytest.raises(DirectorySetupError):
        ensure_storage_dir(claim_dir)
