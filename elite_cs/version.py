"""Controller version numbers."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .exceptions import EliteException, ErrorCode

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _leading_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"invalid integer: {text!r}")
    return int(match.group(1))


@dataclass
class VersionInfo:
    """A version of the form major.minor.bugfix.build."""

    major: int = 0
    minor: int = 0
    bugfix: int = 0
    build: int = 0

    @classmethod
    def from_string(cls, text: str) -> "VersionInfo":
        components = text.split(".")
        if len(components) < 2:
            raise EliteException(
                ErrorCode.ILLEGAL_PARAM,
                f"Given string '{text}' does not conform a version string format.",
            )
        version = cls(_leading_int(components[0]), _leading_int(components[1]))
        if len(components) in (3, 4):
            version.bugfix = _leading_int(components[2])
        if len(components) == 4:
            version.build = _leading_int(components[3])
        return version

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.bugfix}.{self.build}"

    def __gt__(self, other: "VersionInfo") -> bool:
        if not isinstance(other, VersionInfo):
            return NotImplemented
        return self.major > other.major and self.minor > other.minor

    def __ge__(self, other: "VersionInfo") -> bool:
        if not isinstance(other, VersionInfo):
            return NotImplemented
        return self == other or self > other

    def __lt__(self, other: "VersionInfo") -> bool:
        if not isinstance(other, VersionInfo):
            return NotImplemented
        return not self >= other

    def __le__(self, other: "VersionInfo") -> bool:
        if not isinstance(other, VersionInfo):
            return NotImplemented
        return self == other or self < other