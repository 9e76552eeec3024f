"""Reading a password from a file, an external program, stdin or the terminal."""

from __future__ import annotations

import getpass
import logging
import subprocess
import sys
from typing import BinaryIO, Optional, Sequence

# 2 kB limit.
MAX_PASSWORD_LEN = 2048

_log = logging.getLogger(__name__)


class PasswordError(Exception):
    """Raised when no usable password could be obtained."""


def once(
    extpass: Optional[Sequence[str]] = None,
    passfile: Optional[Sequence[str]] = None,
    prompt: str = "",
) -> bytes:
    """Get a password from passfiles, extpass, stdin or the terminal, in that order."""
    if passfile:
        return read_pass_file_concatenate(passfile)
    if extpass:
        return read_password_extpass(extpass)
    prompt = prompt or "Password"
    if not _stdin_is_terminal():
        return read_password_stdin(prompt)
    return _read_password_terminal(prompt + ": ")


def twice(
    extpass: Optional[Sequence[str]] = None,
    passfile: Optional[Sequence[str]] = None,
) -> bytes:
    """Like ``once``, but asks twice when reading from the terminal."""
    if passfile:
        return read_pass_file_concatenate(passfile)
    if extpass:
        return read_password_extpass(extpass)
    if not _stdin_is_terminal():
        return read_password_stdin("Password")
    first = _read_password_terminal("Password: ")
    second = _read_password_terminal("Repeat: ")
    if first != second:
        raise PasswordError("Passwords do not match")
    return first


def _stdin_is_terminal() -> bool:
    return sys.stdin is not None and sys.stdin.isatty()


def _read_password_terminal(prompt: str) -> bytes:
    try:
        text = getpass.getpass(prompt, stream=sys.stderr)
    except (EOFError, OSError) as e:
        raise PasswordError(f"Could not read password from terminal: {e}") from e
    if not text:
        raise PasswordError("Password is empty")
    return text.encode()


def read_pass_file(passfile: str) -> bytes:
    """Return the first line of ``passfile``."""
    _log.info("passfile: reading from file %r", passfile)
    try:
        f = open(passfile, "rb")
    except OSError as e:
        raise PasswordError(f"fatal: passfile: could not open {passfile!r}: {e}") from e
    with f:
        try:
            # +1 for an optional trailing newline, +1 to detect overlong input.
            data = f.read(MAX_PASSWORD_LEN + 2)
        except OSError as e:
            raise PasswordError(f"fatal: passfile: could not read from {passfile!r}: {e}") from e
    if not data:
        raise PasswordError(f"fatal: passfile: could not read from {passfile!r}: EOF")
    first, _, rest = data.partition(b"\n")
    if not first:
        raise PasswordError(f"fatal: passfile: empty first line in {passfile!r}")
    if len(first) > MAX_PASSWORD_LEN:
        raise PasswordError(
            f"fatal: passfile: max password length ({MAX_PASSWORD_LEN} bytes) exceeded"
        )
    if rest:
        _log.warning(
            "warning: passfile: ignoring trailing garbage (%d bytes) after first line",
            len(rest),
        )
    return first


def read_pass_file_concatenate(passfiles: Sequence[str]) -> bytes:
    """Concatenate the first lines of all ``passfiles``."""
    return b"".join(read_pass_file(p) for p in passfiles)


def read_password_stdin(prompt: str, stream: Optional[BinaryIO] = None) -> bytes:
    """Read one line from ``stream`` (stdin by default)."""
    _log.info("Reading %s from stdin", prompt)
    if stream is None:
        stream = sys.stdin.buffer
    line = read_line_unbuffered(stream)
    if not line:
        raise PasswordError(f"Got empty {prompt} from stdin")
    return line


def read_password_extpass(extpass: Sequence[str]) -> bytes:
    """Run the extpass program and return the first line of its output.

    A single element is split on spaces into program and arguments.
    """
    parts = extpass[0].split(" ") if len(extpass) == 1 else list(extpass)
    _log.info("Reading password from extpass program %r, arguments: %r", parts[0], parts[1:])
    try:
        proc = subprocess.Popen(parts, stdout=subprocess.PIPE, bufsize=0)
    except OSError as e:
        raise PasswordError(f"extpass cmd start failed: {e}") from e
    try:
        line = read_line_unbuffered(proc.stdout)
    finally:
        proc.stdout.close()
        returncode = proc.wait()
    if returncode != 0:
        raise PasswordError(f"extpass program returned an error: exit status {returncode}")
    if not line:
        raise PasswordError("extpass: password is empty")
    return line


def read_line_unbuffered(stream: BinaryIO) -> bytes:
    """Read single bytes up to a newline or EOF; the newline is not returned."""
    line = bytearray()
    while True:
        if len(line) > MAX_PASSWORD_LEN:
            raise PasswordError(
                f"fatal: maximum password length of {MAX_PASSWORD_LEN} bytes exceeded"
            )
        try:
            b = stream.read(1)
        except OSError as e:
            raise PasswordError(f"readLineUnbuffered: {e}") from e
        if b is None:
            continue
        if not b or b == b"\n":
            return bytes(line)
        line += b