"""Deterministic IVs derived from encrypted paths."""

from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass
from typing import Union

from .diskfiles import DIR_IV_LEN

_MASK64 = (1 << 64) - 1


class Purpose(str, enum.Enum):
    """What a derived IV is used for; mixed into the derivation."""

    # Directory IV.
    DIR_IV = "DIRIV"
    # File ID in the file header.
    FILE_ID = "FILEID"
    # IV for symlink target encryption.
    SYMLINK_IV = "SYMLINKIV"
    # IV of ciphertext block 0.
    BLOCK0_IV = "BLOCK0IV"


def derive(path: str, purpose: Union[Purpose, str]) -> bytes:
    """Derive a 16-byte IV from an encrypted path by hashing it with SHA-256."""
    purpose = Purpose(purpose)
    # A null byte cannot occur in a path, so it is a safe separator.
    extended = (path + "\0" + purpose.value).encode("utf-8", "surrogateescape")
    return hashlib.sha256(extended).digest()[:DIR_IV_LEN]


@dataclass(frozen=True)
class FileIVs:
    """Both IVs needed to present a file."""

    id: bytes
    block0_iv: bytes


def derive_file(path: str) -> FileIVs:
    """Derive the file ID and the block-0 IV for ``path``."""
    return FileIVs(
        id=derive(path, Purpose.FILE_ID),
        block0_iv=derive(path, Purpose.BLOCK0_IV),
    )


def block_iv(block0_iv: bytes, block_no: int) -> bytes:
    """IV of block ``block_no``: ``block_no`` is added to bytes 8..16 of the block-0 IV."""
    if len(block0_iv) < 16:
        raise ValueError(f"block0 IV must be at least 16 bytes long (got {len(block0_iv)})")
    if block_no < 0:
        raise ValueError("block number must not be negative")
    low = int.from_bytes(block0_iv[8:16], "big")
    low = (low + block_no) & _MASK64
    return bytes(block0_iv[:8]) + low.to_bytes(8, "big") + bytes(block0_iv[16:])