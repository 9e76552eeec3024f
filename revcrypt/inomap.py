"""Translation of (device, tag, inode) tuples to unique 64-bit inode numbers.

Format of the returned inode numbers::

    [spill bit = 0][15 bit namespace id][48 bit passthru inode number]
    [spill bit = 1][63 bit counter                                   ]

Each (dev, tag) pair gets a namespace id. The original inode number is passed
through in the lower 48 bits. When the namespace ids run out, or the original
inode number does not fit into 48 bits, the whole tuple is mapped through the
spill map and the spill bit is set.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

# Max value of the 15 bit namespace id.
MAX_NAMESPACE_ID = (1 << 15) - 1
# Max value of the 48 bit passthru inode number.
MAX_PASSTHRU_INO = (1 << 48) - 1
# The spill inode number space starts at 0b1000...0.
SPILL_SPACE_START = 1 << 63

_MAX_UINT64 = (1 << 64) - 1

_log = logging.getLogger(__name__)
_spill_warned = threading.Event()


@dataclass(frozen=True)
class QIno:
    """Qualified inode number: uniquely identifies a backing file."""

    dev: int = 0
    # Extension of the device number, used for virtual files.
    tag: int = 0
    ino: int = 0

    @property
    def namespace(self) -> tuple[int, int]:
        return (self.dev, self.tag)


def qino_from_stat(st) -> QIno:
    """Build a QIno from an ``os.stat_result``-like object."""
    return QIno(int(st.st_dev), 0, int(st.st_ino))


class InoMap:
    """Thread-safe inode number translator."""

    def __init__(self, root_dev: int = 0) -> None:
        """Inode numbers on ``root_dev`` are passed through as-is.

        If ``root_dev`` is zero, the first translated device becomes the
        effective root device.
        """
        self._lock = threading.Lock()
        self._spill_lock = threading.Lock()
        self._namespace_map: dict[tuple[int, int], int] = {}
        self._namespace_next = 0
        self._spill_map: dict[QIno, int] = {}
        self._spill_next = SPILL_SPACE_START
        if root_dev > 0:
            # Reserve namespace 0 for root_dev.
            self._namespace_map[(root_dev, 0)] = 0
            self._namespace_next = 1

    def next_spill_ino(self) -> int:
        """Return a fresh inode number from the spill pool without recording it."""
        with self._spill_lock:
            if self._spill_next == _MAX_UINT64:
                raise OverflowError(f"spill map overflow: next = {self._spill_next:#x}")
            out = self._spill_next
            self._spill_next += 1
            return out

    def _spill(self, qino: QIno) -> int:
        if not _spill_warned.is_set():
            _spill_warned.set()
            _log.warning("InoMap: opening spill map for %r", qino)
        out = self._spill_map.get(qino)
        if out is None:
            out = self.next_spill_ino()
            self._spill_map[qino] = out
        return out

    def translate(self, qino: QIno) -> int:
        """Map a (device, tag, inode) tuple to a unique inode number."""
        with self._lock:
            if qino.ino > MAX_PASSTHRU_INO:
                return self._spill(qino)
            ns = self._namespace_map.get(qino.namespace)
            if ns is not None:
                return ns << 48 | qino.ino
            if self._namespace_next >= MAX_NAMESPACE_ID:
                return self._spill(qino)
            ns = self._namespace_next
            self._namespace_next += 1
            self._namespace_map[qino.namespace] = ns
            return ns << 48 | qino.ino

    def translate_stat(self, st) -> int:
        """Return the unique inode number for the (device, inode) pair in ``st``."""
        return self.translate(qino_from_stat(st))