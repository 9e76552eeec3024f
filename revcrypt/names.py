"""File name encryption.

Names are padded to the AES block size (PKCS#7), encrypted with the EME
wide-block mode under a per-directory IV and base64-encoded. Encrypted names
that are too long are replaced by a hash ("long names").
"""

from __future__ import annotations

import base64
import binascii
import enum
import errno
import fnmatch
import hashlib
import logging
import os
import posixpath
from typing import Optional, Sequence

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

# Like ext4, at most 255 bytes are allowed for a file name.
NAME_MAX = 255
# AES block size.
BLOCK_SIZE = 16
# Suffix of the file holding the full encrypted name of a long-name file.
LONG_NAME_SUFFIX = ".name"
# Prefix of hashed long names.
LONG_NAME_PREFIX = "gocryptfs.longname."
# Appended to names shown in plaintext view when a `badname` pattern matched.
BADNAME_SUFFIX = " GOCRYPTFS_BAD_NAME"

# xattr names are encrypted like file names, but with this fixed IV.
_XATTR_NAME_IV = b"xattr_name_iv_xx"
# EME handles at most 128 blocks of 16 bytes.
_MAX_EME_BLOCKS = 128
_MASK128 = (1 << 128) - 1
# Names longer than this are never hashed when long names are disabled.
_LONG_NAMES_DISABLED = 2**31 - 1

_log = logging.getLogger(__name__)


class InvalidNameError(OSError):
    """A name is not acceptable, or a ciphertext name is corrupt (EBADMSG)."""

    def __init__(self, message: str) -> None:
        super().__init__(errno.EBADMSG, message)


class PaddingError(ValueError):
    """Raised when PKCS#7 padding is malformed."""


class NameType(enum.Enum):
    """Kind of an encrypted directory entry name."""

    # Stores the content of a file with a long name: gocryptfs.longname.[sha256]
    CONTENT = "content"
    # Stores the full encrypted name: gocryptfs.longname.[sha256].name
    FILENAME = "filename"
    # A normal encrypted name.
    NONE = "none"


def _to_bytes(name: str) -> bytes:
    return name.encode("utf-8", "surrogateescape")


def _from_bytes(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


def _dbl(x: int) -> int:
    """Multiply by two in GF(2^128), blocks read as little-endian integers."""
    x <<= 1
    if x >> 128:
        x = (x & _MASK128) ^ 0x87
    return x


class Eme:
    """EME (ECB-Mix-ECB) wide-block encryption on top of AES."""

    def __init__(self, key: bytes) -> None:
        if len(key) not in (16, 24, 32):
            raise ValueError(f"AES key must be 16, 24 or 32 bytes long (got {len(key)})")
        self._cipher = Cipher(algorithms.AES(bytes(key)), modes.ECB())
        l_value = self._ecb([0], encrypt=True)[0]
        table = []
        for _ in range(_MAX_EME_BLOCKS):
            l_value = _dbl(l_value)
            table.append(l_value)
        self._l_table = table

    def _ecb(self, blocks: list[int], encrypt: bool) -> list[int]:
        ctx = self._cipher.encryptor() if encrypt else self._cipher.decryptor()
        raw = b"".join(b.to_bytes(BLOCK_SIZE, "little") for b in blocks)
        out = ctx.update(raw) + ctx.finalize()
        return [
            int.from_bytes(out[i : i + BLOCK_SIZE], "little")
            for i in range(0, len(out), BLOCK_SIZE)
        ]

    def _transform(self, tweak: bytes, data: bytes, encrypt: bool) -> bytes:
        if len(tweak) != BLOCK_SIZE:
            raise ValueError(f"tweak must be {BLOCK_SIZE} bytes long (got {len(tweak)})")
        if len(data) % BLOCK_SIZE:
            raise ValueError("data length must be a multiple of 16")
        m = len(data) // BLOCK_SIZE
        if m == 0 or m > _MAX_EME_BLOCKS:
            raise ValueError(f"data must hold 1 to {_MAX_EME_BLOCKS} blocks (got {m})")
        t = int.from_bytes(tweak, "little")
        plain = [
            int.from_bytes(data[i : i + BLOCK_SIZE], "little")
            for i in range(0, len(data), BLOCK_SIZE)
        ]
        l_table = self._l_table[:m]
        ppp = self._ecb([p ^ l for p, l in zip(plain, l_table)], encrypt)
        mp = t
        for block in ppp:
            mp ^= block
        mc = self._ecb([mp], encrypt)[0]
        mask = mp ^ mc
        ccc = [0] * m
        for j in range(1, m):
            mask = _dbl(mask)
            ccc[j] = ppp[j] ^ mask
        first = mc ^ t
        for block in ccc[1:]:
            first ^= block
        ccc[0] = first
        cc = self._ecb(ccc, encrypt)
        return b"".join((c ^ l).to_bytes(BLOCK_SIZE, "little") for c, l in zip(cc, l_table))

    def encrypt(self, tweak: bytes, data: bytes) -> bytes:
        """Encrypt ``data`` (1 to 128 whole blocks) under ``tweak``."""
        return self._transform(bytes(tweak), bytes(data), encrypt=True)

    def decrypt(self, tweak: bytes, data: bytes) -> bytes:
        """Decrypt ``data`` (1 to 128 whole blocks) under ``tweak``."""
        return self._transform(bytes(tweak), bytes(data), encrypt=False)


def pad16(data: bytes) -> bytes:
    """Pad ``data`` to a multiple of 16 bytes using PKCS#7 padding."""
    if not data:
        raise ValueError("padding a zero-length string makes no sense")
    pad_len = BLOCK_SIZE - len(data) % BLOCK_SIZE
    return bytes(data) + bytes([pad_len]) * pad_len


def unpad16(data: bytes) -> bytes:
    """Remove PKCS#7 padding; raises PaddingError if it is malformed."""
    old_len = len(data)
    if old_len == 0:
        raise PaddingError("empty input")
    if old_len % BLOCK_SIZE:
        raise PaddingError("unaligned size")
    pad_len = data[-1]
    if pad_len == 0:
        raise PaddingError("padding cannot be zero-length")
    if pad_len > BLOCK_SIZE:
        raise PaddingError(f"padding too long, pad_len={pad_len} > 16")
    if pad_len >= old_len:
        raise PaddingError(f"padding too long, old_len={old_len} >= pad_len={pad_len}")
    for i in range(old_len - pad_len, old_len):
        if data[i] != pad_len:
            raise PaddingError(f"padding byte at i={i} is invalid")
    return bytes(data[: old_len - pad_len])


def check_name(name: str) -> str:
    """Return ``name`` if it is a valid name for a normal file, else raise InvalidNameError."""
    if name == "":
        raise InvalidNameError("empty input")
    if len(_to_bytes(name)) > NAME_MAX:
        raise InvalidNameError("too long")
    if "\0" in name or "/" in name:
        raise InvalidNameError("contains forbidden bytes")
    if name in (".", ".."):
        raise InvalidNameError(". and .. are forbidden names")
    return name


def check_xattr_name(name: str) -> str:
    """Return ``name`` if it is a valid xattr name, else raise InvalidNameError."""
    if name == "":
        raise InvalidNameError("empty input")
    if "\0" in name:
        raise InvalidNameError("contains forbidden null byte")
    return name


def name_type(c_name: str) -> NameType:
    """Classify an encrypted name. Does no I/O."""
    if not c_name.startswith(LONG_NAME_PREFIX):
        return NameType.NONE
    if c_name.endswith(LONG_NAME_SUFFIX):
        return NameType.FILENAME
    return NameType.CONTENT


def is_long_content(c_name: str) -> bool:
    """True if ``c_name`` looks like gocryptfs.longname.[sha256]."""
    return name_type(c_name) is NameType.CONTENT


def remove_long_name_suffix(c_name: str) -> str:
    """Strip the ".name" suffix. Does not check that it is present."""
    return c_name[: len(c_name) - len(LONG_NAME_SUFFIX)]


def dir_name(path: str) -> str:
    """Directory part of ``path``, cleaned; "" instead of ".'"."""
    d = posixpath.dirname(path)
    d = posixpath.normpath(d) if d else "."
    if d.startswith("//"):
        d = "/" + d.lstrip("/")
    return "" if d == "." else d


class NameTransform:
    """Encrypts and decrypts file names."""

    def __init__(
        self,
        eme: Eme,
        long_names: bool = True,
        long_name_max: int = 0,
        raw64: bool = True,
        badname: Optional[Sequence[str]] = None,
        deterministic_names: bool = False,
    ) -> None:
        """Names longer than ``long_name_max`` are hashed when ``long_names`` is set.

        ``long_name_max = 0`` selects the default of 255.
        """
        if not 0 <= long_name_max <= 255:
            raise ValueError(f"long_name_max must be in 0..255 (got {long_name_max})")
        _log.debug(
            "NameTransform: long_name_max=%s, raw64=%s, badname=%r",
            long_name_max,
            raw64,
            badname,
        )
        self._eme = eme
        self._raw64 = raw64
        self._badname_patterns = list(badname or [])
        self._deterministic_names = deterministic_names
        if long_names:
            self._long_name_max = long_name_max or NAME_MAX
        else:
            self._long_name_max = _LONG_NAMES_DISABLED

    @property
    def long_name_max(self) -> int:
        """Encrypted names longer than this are hashed."""
        return self._long_name_max

    @property
    def deterministic_names(self) -> bool:
        """True if all directories use an all-zero IV."""
        return self._deterministic_names

    def b64_encode(self, data: bytes) -> str:
        """URL-safe base64, without padding if raw64 is enabled."""
        text = base64.urlsafe_b64encode(bytes(data)).decode("ascii")
        return text.rstrip("=") if self._raw64 else text

    def b64_decode(self, text: str) -> bytes:
        """Strict inverse of ``b64_encode``; raises binascii.Error on corrupt input."""
        if self._raw64:
            if "=" in text:
                raise binascii.Error("illegal padding character in unpadded base64")
            padded = text + "=" * (-len(text) % 4)
        else:
            padded = text
        try:
            data = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
        except ValueError as e:
            raise binascii.Error(f"corrupt base64 input: {e}") from e
        if self.b64_encode(data) != text:
            raise binascii.Error("non-canonical base64 input")
        return data

    def have_badname_patterns(self) -> bool:
        """True if `badname` patterns were provided."""
        return bool(self._badname_patterns)

    def hash_long_name(self, name: str) -> str:
        """Return "gocryptfs.longname.[sha256 of name]". Does no I/O."""
        digest = hashlib.sha256(_to_bytes(name)).digest()
        return LONG_NAME_PREFIX + self.b64_encode(digest)

    def _encrypt_name(self, plain_name: str, iv: bytes) -> str:
        return self.b64_encode(self._eme.encrypt(iv, pad16(_to_bytes(plain_name))))

    def _decrypt_name(self, cipher_name: str, iv: bytes) -> str:
        # Strict base64 would still ignore CR and LF; reject them here.
        if "\r" in cipher_name or "\n" in cipher_name:
            raise ValueError("characters CR or LF in base64")
        data = self.b64_decode(cipher_name)
        if not data:
            _log.warning("decrypt_name: empty input")
            raise InvalidNameError("empty input")
        if len(data) % BLOCK_SIZE:
            _log.debug(
                "decrypt_name %r: decoded length %d is not a multiple of 16",
                cipher_name,
                len(data),
            )
            raise InvalidNameError("decoded length is not a multiple of 16")
        data = self._eme.decrypt(iv, data)
        try:
            data = unpad16(data)
        except PaddingError as e:
            _log.warning("decrypt_name %r: unpad16 error: %s", cipher_name, e)
            raise InvalidNameError(f"bad padding: {e}") from e
        return _from_bytes(data)

    def _decrypt_badname(self, cipher_name: str, iv: bytes) -> str:
        for pattern in self._badname_patterns:
            if not fnmatch.fnmatchcase(cipher_name, pattern):
                continue
            # At least one AES block is needed.
            name_min = len(self.b64_encode(bytes(BLOCK_SIZE)))
            for charpos in range(len(cipher_name) - 1, name_min - 1, -1):
                try:
                    res = self._decrypt_name(cipher_name[:charpos], iv)
                except (ValueError, OSError):
                    continue
                return res + cipher_name[charpos:] + BADNAME_SUFFIX
            return cipher_name + BADNAME_SUFFIX
        raise InvalidNameError("name matches no badname pattern")

    def decrypt_name(self, cipher_name: str, iv: bytes) -> str:
        """Decrypt a base64-encoded name, falling back to badname patterns."""
        try:
            res = self._decrypt_name(cipher_name, iv)
        except (ValueError, OSError):
            if not self.have_badname_patterns():
                raise
            res = self._decrypt_badname(cipher_name, iv)
        try:
            check_name(res)
        except InvalidNameError as e:
            _log.warning("decrypt_name %r: invalid name after decryption: %s", cipher_name, e)
            raise InvalidNameError(f"invalid name after decryption: {e.strerror}") from e
        return res

    def encrypt_name(self, plain_name: str, iv: bytes) -> str:
        """Encrypt a file name; rejects names with null bytes, slashes etc."""
        try:
            check_name(plain_name)
        except InvalidNameError as e:
            _log.warning("encrypt_name %r: invalid plain name: %s", plain_name, e)
            raise
        return self._encrypt_name(plain_name, iv)

    def encrypt_and_hash_name(self, name: str, iv: bytes) -> str:
        """Encrypt ``name`` and hash it to a long name if it is too long."""
        if len(_to_bytes(name)) > NAME_MAX:
            raise OSError(errno.ENAMETOOLONG, os.strerror(errno.ENAMETOOLONG))
        c_name = self.encrypt_name(name, iv)
        if len(c_name) > self._long_name_max:
            return self.hash_long_name(c_name)
        return c_name

    def encrypt_xattr_name(self, plain_name: str) -> str:
        """Encrypt an extended attribute name with the fixed xattr IV."""
        try:
            check_xattr_name(plain_name)
        except InvalidNameError as e:
            _log.warning("encrypt_xattr_name %r: invalid plain name: %s", plain_name, e)
            raise
        return self._encrypt_name(plain_name, _XATTR_NAME_IV)

    def decrypt_xattr_name(self, cipher_name: str) -> str:
        """Decrypt an encrypted extended attribute name."""
        plain_name = self._decrypt_name(cipher_name, _XATTR_NAME_IV)
        try:
            check_xattr_name(plain_name)
        except InvalidNameError as e:
            _log.warning(
                "decrypt_xattr_name %r: invalid name after decryption: %s", cipher_name, e
            )
            raise InvalidNameError(f"invalid name after decryption: {e.strerror}") from e
        return plain_name