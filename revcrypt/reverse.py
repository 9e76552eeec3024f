"""Name handling for the reverse (encrypted view of a plaintext tree) mode.

Paths are encrypted component by component. Each directory's IV is derived
from its encrypted path, so the view is deterministic. Paths can be hidden
with gitignore-style exclusion patterns.
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from . import pathiv
from .diskfiles import DIR_IV_LEN
from .names import NAME_MAX, NameTransform

_log = logging.getLogger(__name__)

_MAGIC_STAR = "#$~"
_NEEDS_ANCHOR = re.compile(r"([^\/+])/.*\*\.")
_ESCAPED_LEAD = re.compile(r"^(\#|\!)")


@dataclass
class ExcludeOptions:
    """Exclusion settings as given on the command line."""

    # Paths relative to the root; matched as anchored patterns.
    exclude: List[str] = field(default_factory=list)
    # gitignore-style wildcard patterns.
    exclude_wildcard: List[str] = field(default_factory=list)
    # Files holding one pattern per line.
    exclude_from: List[str] = field(default_factory=list)


def _compile_pattern(line: str) -> Optional[tuple]:
    """Turn one gitignore line into (regex, negate), or None for no-op lines."""
    line = line.rstrip("\r")
    if line.startswith("#"):
        return None
    line = line.strip(" ")
    if line == "":
        return None
    negate = False
    if line[0] == "!":
        negate = True
        line = line[1:]
    if _ESCAPED_LEAD.match(line):
        line = line[1:]
    # foo/*.blah is anchored at the root.
    if _NEEDS_ANCHOR.search(line) and line[0] != "/":
        line = "/" + line
    line = line.replace(".", r"\.")
    if line.startswith("/**/"):
        line = line[1:]
    line = line.replace("/**/", "(/|/.+/)")
    line = line.replace("**/", "(|." + _MAGIC_STAR + "/)")
    line = line.replace("/**", "(|/." + _MAGIC_STAR + ")")
    line = line.replace("\\*", "\\" + _MAGIC_STAR)
    line = line.replace("*", "([^/]*)")
    line = line.replace("?", r"\?")
    line = line.replace(_MAGIC_STAR, "*")
    if line.endswith("/"):
        expr = line + r"(|.*)\Z"
    else:
        expr = line + r"(|/.*)\Z"
    if expr.startswith("/"):
        expr = "^(|/)" + expr[1:]
    else:
        expr = "^(|.*/)" + expr
    try:
        return re.compile(expr, re.DOTALL), negate
    except re.error:
        _log.warning("ignoring invalid exclusion pattern %r", line)
        return None


class Excluder:
    """Matches relative paths against gitignore-style patterns."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns = [p for p in map(_compile_pattern, patterns) if p is not None]

    def matches_path(self, path: str) -> bool:
        """True if ``path`` is excluded; later negated patterns can re-include it."""
        matched = False
        for regex, negate in self._patterns:
            if regex.match(path):
                if not negate:
                    matched = True
                elif matched:
                    matched = False
        return matched


def read_lines(path: str) -> List[str]:
    """Read a file and split it into lines."""
    with open(path, encoding="utf-8", errors="surrogateescape", newline="") as f:
        return f.read().split("\n")


def get_exclusion_patterns(options: ExcludeOptions) -> List[str]:
    """Collect all exclusion patterns.

    Plain ``exclude`` entries get a leading "/" so they always match against
    the full path.
    """
    patterns = ["/" + p for p in options.exclude]
    patterns.extend(options.exclude_wildcard)
    for path in options.exclude_from:
        patterns.extend(read_lines(path))
    return patterns


def prepare_excluder(options: ExcludeOptions) -> Excluder:
    """Build an Excluder from the options; there must be at least one pattern."""
    patterns = get_exclusion_patterns(options)
    if not patterns:
        raise ValueError("no exclusion patterns given")
    return Excluder(patterns)


def _join(*parts: str) -> str:
    joined = posixpath.join(*parts)
    return posixpath.normpath(joined) if joined else ""


class ReverseNames:
    """Encrypted names of a plaintext tree."""

    def __init__(
        self,
        name_transform: NameTransform,
        plaintext_names: bool = False,
        deterministic_names: bool = False,
        long_names: bool = True,
        excluder: Optional[Excluder] = None,
    ) -> None:
        self._nt = name_transform
        self._plaintext_names = plaintext_names
        self._deterministic_names = deterministic_names
        self._long_names = long_names
        self._excluder = excluder

    def derive_dir_iv(self, c_path: str) -> bytes:
        """IV of the directory at encrypted path ``c_path``."""
        if self._plaintext_names:
            raise RuntimeError("derive_dir_iv called but plaintext names are in use")
        if self._deterministic_names:
            return bytes(DIR_IV_LEN)
        return pathiv.derive(c_path, pathiv.Purpose.DIR_IV)

    def encrypt_path(self, plain_path: str) -> str:
        """Encrypt a relative plaintext path component by component."""
        if self._plaintext_names or plain_path == "":
            return plain_path
        cipher_path = ""
        for part in plain_path.split("/"):
            dir_iv = self.derive_dir_iv(cipher_path)
            encrypted = self._nt.encrypt_name(part, dir_iv)
            if self._long_names and (
                len(encrypted) > NAME_MAX or len(encrypted) > self._nt.long_name_max
            ):
                encrypted = self._nt.hash_long_name(encrypted)
            cipher_path = _join(cipher_path, encrypted)
        return cipher_path

    def is_excluded_plain(self, p_path: str) -> bool:
        """True if the relative plaintext path is excluded. The root never is."""
        if p_path == "":
            return False
        return self._excluder is not None and self._excluder.matches_path(p_path)

    def exclude_entries(self, p_dir: str, names: Sequence[str]) -> List[str]:
        """Drop the excluded entries of plaintext directory ``p_dir``."""
        if self._excluder is None:
            return list(names)
        return [n for n in names if not self.is_excluded_plain(_join(p_dir, n))]