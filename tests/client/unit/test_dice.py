import random

import pytest

from tablesync.client.dice import (
    COUNT_ERROR,
    FORMAT_ERROR,
    SIZE_ERROR,
    RollRequest,
    RollResult,
    execute_roll,
    format_roll_message,
    is_roll_message,
    parse_roll_command,
    parse_roll_pattern,
    validate_roll_pattern,
)
from tablesync.client.errors import InputValidationError


class _ScriptedRandom(random.Random):
    def __init__(self, values: list[int]) -> None:
        super().__init__()
        self._values = list(values)

    def randint(self, a: int, b: int) -> int:
        return self._values.pop(0)


def test_parse_roll_pattern_accepts_valid_patterns() -> None:
    assert parse_roll_pattern("d20") == RollRequest(count=1, size=20, modifier=0, pattern="d20")
    assert parse_roll_pattern("2d6+3") == RollRequest(count=2, size=6, modifier=3, pattern="2d6+3")
    assert parse_roll_pattern(" 3D6-2 ").modifier == -2


@pytest.mark.parametrize(
    ("pattern", "message"),
    [
        ("0d6", COUNT_ERROR),
        ("101d6", COUNT_ERROR),
        ("d0", SIZE_ERROR),
        ("d", FORMAT_ERROR),
        ("2x6", FORMAT_ERROR),
        ("", FORMAT_ERROR),
    ],
)
def test_parse_roll_pattern_rejects_invalid_patterns(pattern: str, message: str) -> None:
    with pytest.raises(InputValidationError) as excinfo:
        parse_roll_pattern(pattern)

    assert str(excinfo.value) == message


def test_validate_roll_pattern_reports_errors_without_raising() -> None:
    assert validate_roll_pattern("d20").valid is True
    assert validate_roll_pattern("d0").error == SIZE_ERROR


def test_parse_roll_command_ignores_other_text() -> None:
    assert parse_roll_command("hello") is None
    assert parse_roll_command("/rolling d20") is None
    assert parse_roll_command("/roll d20").size == 20


def test_execute_roll_uses_injected_rng_and_stays_in_range() -> None:
    result = execute_roll(parse_roll_pattern("100d6"), rng=random.Random(7))

    assert len(result.rolls) == 100
    assert all(1 <= roll <= 6 for roll in result.rolls)


def test_format_roll_message_with_modifier_shows_breakdown() -> None:
    result = execute_roll(parse_roll_pattern("3d6-2"), rng=_ScriptedRandom([4, 2, 5]))

    assert result.rolls == (4, 2, 5)
    assert result.breakdown == "11-2=9"
    assert format_roll_message("Aria", result) == "🎲 Aria rolls 3d6-2: [4, 2, 5] 11-2=9"


def test_format_roll_message_single_die_without_modifier() -> None:
    result = RollResult(request=parse_roll_pattern("d20"), rolls=(17,))

    message = format_roll_message("Bram", result)

    assert message == "🎲 Bram rolls d20: 17"
    assert is_roll_message(message) is True


def test_breakdown_without_modifier_is_total() -> None:
    result = RollResult(request=parse_roll_pattern("2d6"), rolls=(3, 4))

    assert result.breakdown == "7"
    assert format_roll_message("Bram", result) == "🎲 Bram rolls 2d6: [3, 4] 7"
