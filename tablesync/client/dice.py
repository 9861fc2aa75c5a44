"""Dice roll commands typed into chat (``/roll 2d6+3``)."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass

from tablesync.client.errors import InputValidationError


ROLL_PREFIX = "🎲"
ROLL_COMMAND = "/roll"
MAX_DICE = 100

FORMAT_ERROR = "Invalid dice format. Use e.g. /roll d20+5"
COUNT_ERROR = f"Number of dice must be between 1 and {MAX_DICE}"
SIZE_ERROR = "Dice size must be at least 1"

_PATTERN_RE = re.compile(r"^(\d+)?d(\d+)([+-]\d+)?$", re.IGNORECASE)


@dataclass(frozen=True)
class RollRequest:
    count: int
    size: int
    modifier: int
    pattern: str


@dataclass(frozen=True)
class RollValidation:
    valid: bool
    error: str | None = None
    request: RollRequest | None = None


@dataclass(frozen=True)
class RollResult:
    request: RollRequest
    rolls: tuple[int, ...]

    @property
    def subtotal(self) -> int:
        return sum(self.rolls)

    @property
    def total(self) -> int:
        return self.subtotal + self.request.modifier

    @property
    def breakdown(self) -> str:
        if self.request.modifier == 0:
            return str(self.total)
        return f"{self.subtotal}{self.request.modifier:+d}={self.total}"


def parse_roll_pattern(pattern: str) -> RollRequest:
    """Parse ``[count]d<size>[+-modifier]``; raise with a readable reason."""
    trimmed = (pattern or "").strip()
    match = _PATTERN_RE.match(trimmed)
    if match is None:
        raise InputValidationError(FORMAT_ERROR)

    count = int(match.group(1)) if match.group(1) else 1
    size = int(match.group(2))
    modifier = int(match.group(3)) if match.group(3) else 0

    if count < 1 or count > MAX_DICE:
        raise InputValidationError(COUNT_ERROR)
    if size < 1:
        raise InputValidationError(SIZE_ERROR)
    return RollRequest(count=count, size=size, modifier=modifier, pattern=trimmed.lower())


def validate_roll_pattern(pattern: str) -> RollValidation:
    try:
        request = parse_roll_pattern(pattern)
    except InputValidationError as exc:
        return RollValidation(valid=False, error=str(exc))
    return RollValidation(valid=True, request=request)


def parse_roll_command(text: str) -> RollRequest | None:
    """Return the roll request for ``/roll <pattern>`` input, None for other text."""
    stripped = text.strip()
    command, _, argument = stripped.partition(" ")
    if command.lower() != ROLL_COMMAND:
        return None
    return parse_roll_pattern(argument)


def execute_roll(request: RollRequest, rng: random.Random | None = None) -> RollResult:
    generator = rng if rng is not None else random.SystemRandom()
    rolls = tuple(generator.randint(1, request.size) for _ in range(request.count))
    return RollResult(request=request, rolls=rolls)


def format_roll_message(nickname: str, result: RollResult) -> str:
    pattern = result.request.pattern
    if len(result.rolls) == 1 and result.request.modifier == 0:
        return f"{ROLL_PREFIX} {nickname} rolls {pattern}: {result.total}"
    rolls = ", ".join(str(roll) for roll in result.rolls)
    return f"{ROLL_PREFIX} {nickname} rolls {pattern}: [{rolls}] {result.breakdown}"


def is_roll_message(content: str) -> bool:
    return content.startswith(ROLL_PREFIX)
