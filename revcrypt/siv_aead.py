"""AES-SIV (RFC 5297) with an AEAD-style interface.

The nonce is passed as the last associated-data element after the
authentication data, as RFC 5297 section 3 allows for nonce-based use.
"""

from __future__ import annotations

import hmac

from cryptography.hazmat.primitives import cmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

# Required key length for ``new``. AES-SIV also supports 32 and 48 bytes.
KEY_LEN = 64
# Required nonce length.
NONCE_SIZE = 16
# Bytes added for integrity checking.
OVERHEAD = 16

_BLOCK = 16
_MASK128 = (1 << 128) - 1
_SUPPORTED_KEY_LENS = (32, 48, 64)


class AuthenticationError(Exception):
    """Raised when a ciphertext fails authentication."""


def _cmac(key: bytes, data: bytes) -> bytes:
    mac = cmac.CMAC(algorithms.AES(key))
    mac.update(data)
    return mac.finalize()


def _dbl(block: bytes) -> bytes:
    n = (int.from_bytes(block, "big") << 1) & _MASK128
    if block[0] & 0x80:
        n ^= 0x87
    return n.to_bytes(_BLOCK, "big")


def _xor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b))


def _s2v(key: bytes, strings: list[bytes]) -> bytes:
    d = _cmac(key, bytes(_BLOCK))
    *associated, last = strings
    for s in associated:
        d = _xor(_dbl(d), _cmac(key, s))
    if len(last) >= _BLOCK:
        t = last[:-_BLOCK] + _xor(last[-_BLOCK:], d)
    else:
        padded = last + b"\x80" + bytes(_BLOCK - len(last) - 1)
        t = _xor(_dbl(d), padded)
    return _cmac(key, t)


def _ctr(key: bytes, siv: bytes, data: bytes) -> bytes:
    q = bytearray(siv)
    q[8] &= 0x7F
    q[12] &= 0x7F
    ctx = Cipher(algorithms.AES(key), modes.CTR(bytes(q))).encryptor()
    return ctx.update(data) + ctx.finalize()


class SivAead:
    """AES-SIV cipher with a fixed 16-byte nonce."""

    def __init__(self, key: bytes) -> None:
        if len(key) not in _SUPPORTED_KEY_LENS:
            raise ValueError(f"key must be 32, 48 or 64 bytes long (got {len(key)})")
        # Private copy so the caller can wipe its own.
        self._key = bytearray(key)

    def nonce_size(self) -> int:
        return NONCE_SIZE

    def overhead(self) -> int:
        return OVERHEAD

    def _split_key(self, nonce: bytes) -> tuple[bytes, bytes]:
        if len(nonce) != NONCE_SIZE:
            raise ValueError(f"nonce must be {NONCE_SIZE} bytes long")
        if not self._key:
            raise RuntimeError("key has been wiped")
        half = len(self._key) // 2
        return bytes(self._key[:half]), bytes(self._key[half:])

    def seal(self, nonce: bytes, plaintext: bytes, auth_data: bytes = b"") -> bytes:
        """Encrypt and authenticate; returns the 16-byte SIV followed by the ciphertext."""
        mac_key, enc_key = self._split_key(nonce)
        plaintext = bytes(plaintext)
        siv = _s2v(mac_key, [bytes(auth_data or b""), bytes(nonce), plaintext])
        return siv + _ctr(enc_key, siv, plaintext)

    def open(self, nonce: bytes, ciphertext: bytes, auth_data: bytes = b"") -> bytes:
        """Verify and decrypt; raises AuthenticationError on failure."""
        mac_key, enc_key = self._split_key(nonce)
        ciphertext = bytes(ciphertext)
        if len(ciphertext) < OVERHEAD:
            raise AuthenticationError("ciphertext too short")
        siv, body = ciphertext[:OVERHEAD], ciphertext[OVERHEAD:]
        plaintext = _ctr(enc_key, siv, body)
        expected = _s2v(mac_key, [bytes(auth_data or b""), bytes(nonce), plaintext])
        if not hmac.compare_digest(expected, siv):
            raise AuthenticationError("message authentication failed")
        return plaintext

    def wipe(self) -> None:
        """Overwrite the key with zeros and drop it."""
        for i in range(len(self._key)):
            self._key[i] = 0
        self._key = bytearray()


def new(key: bytes) -> SivAead:
    """Return a cipher for a 64-byte key."""
    if len(key) != KEY_LEN:
        raise ValueError(f"key must be {KEY_LEN} bytes long (you passed {len(key)})")
    return SivAead(key)