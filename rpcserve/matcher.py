"""Case-insensitive glob patterns used to validate hosts and origins."""

from __future__ import annotations

import logging
import re
import string
from abc import ABC, abstractmethod

log = logging.getLogger(__name__)

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


class Pattern(ABC):
    """Something a string can be matched against."""

    @abstractmethod
    def matches(self, other: str) -> bool:
        """Return True if ``other`` matches the pattern."""


class _GlobError(ValueError):
    """Raised when a glob pattern cannot be compiled."""


def _translate_class(pattern: str, start: int) -> tuple[str, int]:
    """Translate a ``[...]`` class starting after ``[``; return regex and next index."""
    index = start
    negated = False
    if index < len(pattern) and pattern[index] in "!^":
        negated = True
        index += 1
    members: list[str] = []
    first = True
    while True:
        if index >= len(pattern):
            raise _GlobError(f"unclosed character class in {pattern!r}")
        char = pattern[index]
        if char == "]" and not first:
            index += 1
            break
        first = False
        if (
            index + 2 < len(pattern)
            and pattern[index + 1] == "-"
            and pattern[index + 2] != "]"
        ):
            low, high = char, pattern[index + 2]
            if low > high:
                raise _GlobError(f"invalid range {low}-{high} in {pattern!r}")
            members.append(f"{re.escape(low)}-{re.escape(high)}")
            index += 3
        else:
            members.append(re.escape(char))
            index += 1
    body = "".join(members)
    return (f"[^{body}]" if negated else f"[{body}]"), index


def _translate(pattern: str) -> str:
    """Translate a glob into a regular expression."""
    parts: list[str] = []
    in_alternates = False
    index = 0
    while index < len(pattern):
        char = pattern[index]
        index += 1
        if char == "\\":
            if index >= len(pattern):
                raise _GlobError(f"dangling escape in {pattern!r}")
            parts.append(re.escape(pattern[index]))
            index += 1
        elif char == "*":
            while index < len(pattern) and pattern[index] == "*":
                index += 1
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            regex, index = _translate_class(pattern, index)
            parts.append(regex)
        elif char == "{":
            if in_alternates:
                raise _GlobError(f"nested alternates in {pattern!r}")
            in_alternates = True
            parts.append("(?:")
        elif char == "}" and in_alternates:
            in_alternates = False
            parts.append(")")
        elif char == "," and in_alternates:
            parts.append("|")
        else:
            parts.append(re.escape(char))
    if in_alternates:
        raise _GlobError(f"unclosed alternates in {pattern!r}")
    return "".join(parts)


class Matcher(Pattern):
    """A glob matcher; falls back to case-insensitive equality for invalid globs."""

    __slots__ = ("pattern", "_regex")

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        try:
            self._regex: re.Pattern[str] | None = re.compile(
                _translate(pattern), re.IGNORECASE | re.DOTALL
            )
        except _GlobError as error:
            log.warning("Invalid glob pattern for %s: %s", pattern, error)
            self._regex = None

    @property
    def is_glob(self) -> bool:
        """True if the pattern compiled as a glob."""
        return self._regex is not None

    def matches(self, other: str) -> bool:
        if self._regex is not None:
            return self._regex.fullmatch(other) is not None
        return self.pattern.translate(_ASCII_LOWER) == other.translate(_ASCII_LOWER)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matcher):
            return NotImplemented
        return self.pattern == other.pattern

    def __hash__(self) -> int:
        return hash(self.pattern)

    def __repr__(self) -> str:
        return f"{self.pattern!r} ({self.is_glob})"