"""Core data models shared by the matcher, sampler, controller and ingress."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


@dataclass(frozen=True)
class ColorSample:
    r: int
    g: int
    b: int

    def __post_init__(self) -> None:
        for channel in (self.r, self.g, self.b):
            if not 0 <= channel <= 255:
                raise ValueError(f"Color channel {channel} outside 0-255")

    @classmethod
    def clamp(cls, r: int, g: int, b: int) -> ColorSample:
        return cls(_clamp(r, 0, 255), _clamp(g, 0, 255), _clamp(b, 0, 255))

    @classmethod
    def from_hex(cls, value: str) -> ColorSample:
        match = _HEX_COLOR_RE.match(value.strip())
        if not match:
            raise ValueError(f"Invalid hex color '{value}'")
        return cls(*(int(part, 16) for part in match.groups()))

    @property
    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


@dataclass(frozen=True)
class SetColor:
    color: ColorSample

    @classmethod
    def rgb(cls, r: int, g: int, b: int) -> SetColor:
        return cls(ColorSample.clamp(r, g, b))


@dataclass(frozen=True)
class SetPower:
    on: bool


@dataclass(frozen=True)
class SetBrightness:
    level: int

    def __post_init__(self) -> None:
        if not 0 <= self.level <= 100:
            raise ValueError(f"Brightness {self.level} outside 0-100")

    @classmethod
    def clamp(cls, level: int) -> SetBrightness:
        return cls(_clamp(level, 0, 100))


Intent = SetColor | SetPower | SetBrightness


class DispatchOutcome(enum.Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class DispatchResult:
    intent: Intent
    outcome: DispatchOutcome
    detail: str | None = None
    forced_reset: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome in (DispatchOutcome.SENT, DispatchOutcome.SKIPPED)


@dataclass(frozen=True)
class Advertisement:
    identifier: str
    name: str | None
    service_ids: frozenset[str]
    connectable: bool
    rssi: int


@dataclass(frozen=True)
class CandidateDevice:
    identifier: str
    name: str
    rssi: int
    connectable: bool = True


class MatchVerdict(enum.Enum):
    EXCLUDE = "exclude"
    CANDIDATE = "candidate"
    DEFINITE = "definite"
    IGNORE = "ignore"


@dataclass(frozen=True)
class MatchReport:
    definite: CandidateDevice | None
    candidates: tuple[CandidateDevice, ...]

    @property
    def found(self) -> bool:
        return self.definite is not None or bool(self.candidates)


@dataclass(frozen=True)
class Frame:
    """One captured video frame as packed 4-byte pixels."""

    width: int
    height: int
    data: bytes
    layout: str = "RGBA"
