"""Benchmark of the authenticated ciphers, similar to "openssl speed"."""

from __future__ import annotations

import os
import struct
import sys
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from . import siv_aead

# 128-bit file ID + 64-bit block number.
AD_LEN = 24
# Fixed 4 kiB blocks.
BLOCK_SIZE = 4096

_CPUINFO = "/proc/cpuinfo"

Seal = Callable[[bytes, bytes, bytes], bytes]
Open = Callable[[bytes, bytes, bytes], bytes]


@dataclass(frozen=True)
class BenchmarkResult:
    """Outcome of one benchmark: ``n`` operations of ``bytes`` each in ``seconds``."""

    n: int
    bytes: int
    seconds: float


def _read_cpuinfo(path: Optional[str]) -> Optional[List[str]]:
    if path is None:
        if not sys.platform.startswith("linux"):
            return None
        path = _CPUINFO
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return f.read().split("\n")
    except OSError:
        return None


def cpu_model_name(path: Optional[str] = None) -> str:
    """CPU "model name" (or "Hardware" on ARM) from cpuinfo, or "" if unknown."""
    lines = _read_cpuinfo(path)
    if lines is None:
        return ""
    for want in ("model name", "Hardware"):
        for line in lines:
            if line.startswith(want):
                parts = line.split(":", 1)
                if len(parts) != 2:
                    continue
                return parts[1].strip()
    return ""


def _has_aes_acceleration(path: Optional[str] = None) -> bool:
    lines = _read_cpuinfo(path)
    if lines is None:
        return False
    for line in lines:
        if line.startswith(("flags", "Features")):
            _, _, value = line.partition(":")
            if "aes" in value.split():
                return True
    return False


def mb_per_sec(result: BenchmarkResult) -> float:
    """Throughput in MB/s, or 0 if the result holds no measurement."""
    if result.bytes <= 0 or result.seconds <= 0 or result.n <= 0:
        return 0.0
    return (result.bytes * result.n / 1e6) / result.seconds


def _timed(op: Callable[[], object], duration: float) -> Tuple[int, float]:
    n = 0
    start = time.perf_counter()
    while True:
        op()
        n += 1
        elapsed = time.perf_counter() - start
        if elapsed >= duration:
            return n, elapsed


def bench_encrypt(
    seal: Seal, nonce_size: int, block_size: int = BLOCK_SIZE, duration: float = 1.0
) -> BenchmarkResult:
    """Measure encryption of ``block_size`` bytes per operation."""
    auth_data = os.urandom(AD_LEN)
    iv = os.urandom(nonce_size)
    plaintext = bytes(block_size)
    n, elapsed = _timed(lambda: seal(iv, plaintext, auth_data), duration)
    return BenchmarkResult(n, block_size, elapsed)


def bench_decrypt(
    seal: Seal,
    open_: Open,
    nonce_size: int,
    block_size: int = BLOCK_SIZE,
    duration: float = 1.0,
) -> BenchmarkResult:
    """Measure decryption of ``block_size`` bytes per operation."""
    auth_data = os.urandom(AD_LEN)
    iv = os.urandom(nonce_size)
    plaintext = os.urandom(block_size)
    ciphertext = seal(iv, plaintext, auth_data)
    if open_(iv, ciphertext, auth_data) != plaintext:
        raise ValueError("decryption returned wrong plaintext")
    n, elapsed = _timed(lambda: open_(iv, ciphertext, auth_data), duration)
    return BenchmarkResult(n, block_size, elapsed)


def _rotl(v: int, c: int) -> int:
    return ((v << c) & 0xFFFFFFFF) | (v >> (32 - c))


def _quarter_round(s: List[int], a: int, b: int, c: int, d: int) -> None:
    s[a] = (s[a] + s[b]) & 0xFFFFFFFF
    s[d] = _rotl(s[d] ^ s[a], 16)
    s[c] = (s[c] + s[d]) & 0xFFFFFFFF
    s[b] = _rotl(s[b] ^ s[c], 12)
    s[a] = (s[a] + s[b]) & 0xFFFFFFFF
    s[d] = _rotl(s[d] ^ s[a], 8)
    s[c] = (s[c] + s[d]) & 0xFFFFFFFF
    s[b] = _rotl(s[b] ^ s[c], 7)


def _hchacha20(key: bytes, nonce16: bytes) -> bytes:
    s = [0x61707865, 0x3320646E, 0x79622D32, 0x6B206574]
    s += list(struct.unpack("<8I", key))
    s += list(struct.unpack("<4I", nonce16))
    for _ in range(10):
        _quarter_round(s, 0, 4, 8, 12)
        _quarter_round(s, 1, 5, 9, 13)
        _quarter_round(s, 2, 6, 10, 14)
        _quarter_round(s, 3, 7, 11, 15)
        _quarter_round(s, 0, 5, 10, 15)
        _quarter_round(s, 1, 6, 11, 12)
        _quarter_round(s, 2, 7, 8, 13)
        _quarter_round(s, 3, 4, 9, 14)
    return struct.pack("<8I", *(s[0:4] + s[12:16]))


class _XChaCha20Poly1305:
    """XChaCha20-Poly1305 with a 24-byte nonce."""

    NONCE_SIZE = 24

    def __init__(self, key: bytes) -> None:
        if len(key) != 32:
            raise ValueError("key must be 32 bytes long")
        self._key = bytes(key)

    def _derive(self, nonce: bytes) -> Tuple[ChaCha20Poly1305, bytes]:
        if len(nonce) != self.NONCE_SIZE:
            raise ValueError("nonce must be 24 bytes long")
        subkey = _hchacha20(self._key, nonce[:16])
        return ChaCha20Poly1305(subkey), bytes(4) + nonce[16:]

    def seal(self, nonce: bytes, plaintext: bytes, auth_data: bytes) -> bytes:
        aead, n12 = self._derive(nonce)
        return aead.encrypt(n12, plaintext, auth_data)

    def open(self, nonce: bytes, ciphertext: bytes, auth_data: bytes) -> bytes:
        aead, n12 = self._derive(nonce)
        return aead.decrypt(n12, ciphertext, auth_data)


def _aes_gcm() -> Tuple[Seal, int]:
    gcm = AESGCM(os.urandom(32))
    return (lambda n, p, a: gcm.encrypt(n, p, a)), 16


def _aes_siv() -> Tuple[Seal, int]:
    c = siv_aead.new(os.urandom(64))
    return c.seal, c.nonce_size()


def _xchacha() -> Tuple[Seal, int]:
    c = _XChaCha20Poly1305(os.urandom(32))
    return c.seal, c.NONCE_SIZE


def run(duration: float = 1.0) -> List[Tuple[str, float, bool]]:
    """Benchmark all ciphers, print a table and return (name, MB/s, preferred)."""
    cpu = cpu_model_name() or "unknown"
    accel = _has_aes_acceleration()
    note = "; with AES-GCM acceleration" if accel else "; no AES-GCM acceleration"
    print(f"cpu: {cpu}{note}")
    table = [
        ("AES-GCM-256", _aes_gcm, accel),
        ("AES-SIV-512", _aes_siv, False),
        ("XChaCha20-Poly1305", _xchacha, not accel),
    ]
    results = []
    for name, factory, preferred in table:
        seal, nonce_size = factory()
        mbs = mb_per_sec(bench_encrypt(seal, nonce_size, BLOCK_SIZE, duration))
        line = f"{name:<26}\t"
        line += f"{mbs:7.2f} MB/s" if mbs > 0 else "    N/A"
        if preferred:
            line += "\t(selected in auto mode)"
        print(line)
        results.append((name, mbs, preferred))
    return results