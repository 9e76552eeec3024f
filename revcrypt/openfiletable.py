"""Table of currently open files, keyed by qualified inode number.

The table stores the current file ID centrally and provides a per-file lock
that serialises writes to the file content.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Hashable, Iterator, Optional


class ContentLock:
    """Reader/writer lock that reports every write acquisition."""

    def __init__(self, on_write_lock: Optional[Callable[[], None]] = None) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0
        self._on_write_lock = on_write_lock

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the lock exclusively."""
        with self._cond:
            self._writers_waiting += 1
            try:
                self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        if self._on_write_lock is not None:
            self._on_write_lock()
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the lock shared with other readers."""
        with self._cond:
            self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()


@dataclass(eq=False)
class Entry:
    """An entry in the open file table."""

    # Every writer must hold this lock while modifying the file content.
    content_lock: ContentLock = field(default_factory=ContentLock)
    # The file ID from the file header.
    id: Optional[bytes] = None
    # Must be held to access ``id`` unless ``content_lock`` is held for writing.
    id_lock: threading.Lock = field(default_factory=threading.Lock)
    ref_count: int = field(default=0, init=False)


class OpenFileTable:
    """Reference-counted table of open files."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Hashable, Entry] = {}
        self._count_lock = threading.Lock()
        self._write_ops = 0

    def _count_write(self) -> None:
        with self._count_lock:
            self._write_ops += 1

    def register(self, qino: Hashable) -> Entry:
        """Return the entry for ``qino``, creating it if needed, and add a reference."""
        with self._lock:
            entry = self._entries.get(qino)
            if entry is None:
                entry = Entry(content_lock=ContentLock(self._count_write))
                self._entries[qino] = entry
            entry.ref_count += 1
            return entry

    def unregister(self, qino: Hashable) -> None:
        """Drop a reference; the entry is removed when none are left."""
        with self._lock:
            try:
                entry = self._entries[qino]
            except KeyError:
                raise KeyError(f"{qino!r} is not registered") from None
            entry.ref_count -= 1
            if entry.ref_count == 0:
                del self._entries[qino]

    def write_op_count(self) -> int:
        """Number of write-lock acquisitions on entries of this table."""
        with self._count_lock:
            return self._write_ops

    def count_open_files(self) -> int:
        """Number of entries currently in the table."""
        with self._lock:
            return len(self._entries)


_TABLE = OpenFileTable()


def register(qino: Hashable) -> Entry:
    """Register ``qino`` in the process-wide table."""
    return _TABLE.register(qino)


def unregister(qino: Hashable) -> None:
    """Unregister ``qino`` from the process-wide table."""
    _TABLE.unregister(qino)


def write_op_count() -> int:
    """Write-lock counter of the process-wide table."""
    return _TABLE.write_op_count()


def count_open_files() -> int:
    """Number of entries in the process-wide table."""
    return _TABLE.count_open_files()