"""On-disk helper files of an encrypted directory.

Each directory holds a ``gocryptfs.diriv`` file with its random IV. Files
whose encrypted name is too long are stored under a hashed name, with the
full encrypted name kept in a companion ``<hash>.name`` file. All functions
work relative to an open directory file descriptor.
"""

from __future__ import annotations

import errno
import logging
import os

from .names import BADNAME_SUFFIX, LONG_NAME_SUFFIX, NameTransform

# The directory IV is one AES block long.
DIR_IV_LEN = 16
# Name of the file that stores the directory IV.
DIR_IV_FILENAME = "gocryptfs.diriv"
# gocryptfs.diriv files are created once and never modified. Group- and
# world-readable so the encrypted directory can be shared and copied.
DIRIV_PERMS = 0o444
# Permissions of gocryptfs.longname.[sha256].name files, for the same reasons.
NAME_PERMS = 0o444
# 256 bytes (255 padded to 16) take 344 characters in base64.
LONG_NAME_FILE_LIMIT = 344

_ALL_ZERO_DIR_IV = bytes(DIR_IV_LEN)

_log = logging.getLogger(__name__)


def _base_name(path: str) -> str:
    """Last element of ``path``, like a cleaned basename."""
    if path == "":
        return "."
    stripped = path.rstrip("/")
    if stripped == "":
        return "/"
    return stripped.rsplit("/", 1)[-1]


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]


def _write_new_file(dirfd: int, name: str, data: bytes, perms: int, what: str) -> None:
    """Create ``name`` exclusively and write ``data``; remove it again on failure."""
    fd = os.open(name, os.O_WRONLY | os.O_CREAT | os.O_EXCL, perms, dir_fd=dirfd)
    try:
        _write_all(fd, data)
    except OSError as e:
        os.close(fd)
        if e.errno != errno.ENOSPC:
            _log.warning("%s: write: %s", what, e)
        _unlink_quietly(dirfd, name)
        raise
    try:
        os.close(fd)
    except OSError as e:
        _log.warning("%s: close: %s", what, e)
        _unlink_quietly(dirfd, name)
        raise


def _unlink_quietly(dirfd: int, name: str) -> None:
    try:
        os.unlink(name, dir_fd=dirfd)
    except OSError:
        pass


def _exists_at(dirfd: int, name: str) -> bool:
    try:
        os.stat(name, dir_fd=dirfd, follow_symlinks=False)
    except (OSError, ValueError):
        return False
    return True


def read_dir_iv_at(transform: NameTransform, dirfd: int) -> bytes:
    """Read and verify the directory IV of the directory opened as ``dirfd``.

    Returns an all-zero IV without touching the disk when deterministic names
    are in use.
    """
    if transform.deterministic_names:
        return bytes(DIR_IV_LEN)
    fd = os.open(DIR_IV_FILENAME, os.O_RDONLY | os.O_NOFOLLOW, dir_fd=dirfd)
    try:
        # One byte more than needed, to detect oversized files.
        try:
            iv = os.read(fd, DIR_IV_LEN + 1)
        except OSError as e:
            raise OSError(e.errno, f"read failed: {e.strerror}") from e
    finally:
        os.close(fd)
    if len(iv) != DIR_IV_LEN:
        raise ValueError(f"wanted {DIR_IV_LEN} bytes, got {len(iv)}")
    if iv == _ALL_ZERO_DIR_IV:
        raise ValueError("diriv is all-zero")
    return iv


def write_dir_iv_at(dirfd: int) -> None:
    """Create a new gocryptfs.diriv with a random IV in the directory ``dirfd``.

    An incomplete file is removed again on error.
    """
    iv = os.urandom(DIR_IV_LEN)
    try:
        _write_new_file(dirfd, DIR_IV_FILENAME, iv, DIRIV_PERMS, "write_dir_iv_at")
    except FileExistsError:
        _log.warning("write_dir_iv_at: %s already exists", DIR_IV_FILENAME)
        raise


def read_long_name_at(dirfd: int, c_name: str) -> str:
    """Read the full encrypted name stored in ``c_name + ".name"``."""
    fd = os.open(c_name + LONG_NAME_SUFFIX, os.O_RDONLY | os.O_NOFOLLOW, dir_fd=dirfd)
    try:
        # Read one byte beyond the limit to see whether the file is too big.
        want = LONG_NAME_FILE_LIMIT + 1
        data = b""
        while len(data) < want:
            chunk = os.pread(fd, want - len(data), len(data))
            if not chunk:
                break
            data += chunk
    finally:
        os.close(fd)
    if not data:
        raise ValueError("read_long_name_at: empty file")
    if len(data) > LONG_NAME_FILE_LIMIT:
        raise ValueError(
            f"read_long_name_at: size={len(data)} > limit={LONG_NAME_FILE_LIMIT}"
        )
    return data.decode("utf-8", "surrogateescape")


def delete_long_name_at(dirfd: int, hash_name: str) -> None:
    """Delete ``hash_name + ".name"`` in the directory ``dirfd``."""
    try:
        os.unlink(hash_name + LONG_NAME_SUFFIX, dir_fd=dirfd)
    except OSError as e:
        _log.warning("delete_long_name_at: %s", e)
        raise


def write_long_name_at(
    transform: NameTransform, dirfd: int, hash_name: str, plain_name: str
) -> None:
    """Encrypt the basename of ``plain_name`` and store it in ``hash_name + ".name"``.

    Raises FileExistsError without logging if the file exists already, which
    callers handling renames expect.
    """
    plain_name = _base_name(plain_name)
    dir_iv = read_dir_iv_at(transform, dirfd)
    c_name = transform.encrypt_name(plain_name, dir_iv)
    target = hash_name + LONG_NAME_SUFFIX
    try:
        _write_new_file(
            dirfd,
            target,
            c_name.encode("utf-8", "surrogateescape"),
            NAME_PERMS,
            "write_long_name_at",
        )
    except FileExistsError:
        raise
    except OSError as e:
        _log.warning("write_long_name_at: %s", e)
        raise


def encrypt_and_hash_bad_name(
    transform: NameTransform, name: str, iv: bytes, dirfd: int
) -> str:
    """Find the single existing cipher file that ``name`` refers to.

    Names without the badname suffix are simply encrypted and hashed. For a
    name carrying the suffix, the candidates are the regular encryption, the
    name without the suffix, and every encrypted prefix followed by the
    unencrypted rest. Raises FileNotFoundError unless exactly one candidate
    exists.
    """
    last_found = transform.encrypt_and_hash_name(name, iv)
    if not name.endswith(BADNAME_SUFFIX):
        return last_found
    if _exists_at(dirfd, last_found):
        return last_found

    stripped = name[: len(name) - len(BADNAME_SUFFIX)]
    files_found = 0
    if _exists_at(dirfd, stripped):
        files_found += 1
        last_found = stripped

    # Search every split point: encrypted prefix plus unencrypted suffix.
    for charpos in range(len(stripped), 0, -1):
        try:
            c_part = transform.encrypt_name(name[:charpos], iv)
        except (OSError, ValueError):
            continue
        candidate = c_part + stripped[charpos:]
        if _exists_at(dirfd, candidate):
            files_found += 1
            last_found = candidate

    if files_found == 1:
        return last_found
    raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), name)