"""Duration helpers used to size journey proposals."""

from __future__ import annotations

import math
import re

DEFAULT_WEEKS = 4

_UNIT_WEEKS: dict[str, float] = {
    "day": 0.2,
    "week": 1.0,
    "wk": 1.0,
    "month": 4.0,
    "quarter": 9.0,
    "term": 12.0,
    "semester": 18.0,
    "year": 36.0,
}

_NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10, "twelve": 12,
}

_DURATION_RE = re.compile(
    r"\b(?P<num>\d+(?:\.\d+)?|a|an|one|two|three|four|five|six|seven|eight|nine|ten|twelve)"
    r"(?:\s*(?:-|–|to)\s*(?P<upper>\d+(?:\.\d+)?))?\s*"
    r"(?P<unit>day|week|wk|month|quarter|term|semester|year)s?",
    re.IGNORECASE,
)


def estimate_duration_weeks(duration: str | None) -> int:
    """Estimate a duration string in weeks.

    Ranges take their upper bound ("2-3 weeks" is 3). Bare unit words
    ("semester", "quarter") count as one of that unit. Unparseable input
    falls back to DEFAULT_WEEKS.

    Args:
        duration: Free-text duration from the wizard

    Returns:
        Whole weeks, clamped to 1..36
    """
    if not duration or not duration.strip():
        return DEFAULT_WEEKS

    text = duration.strip().lower()
    match = _DURATION_RE.search(text)
    if match:
        raw = (match.group("upper") or match.group("num")).lower()
        amount = float(_NUMBER_WORDS[raw]) if raw in _NUMBER_WORDS else float(raw)
        weeks = amount * _UNIT_WEEKS[match.group("unit").lower()]
    else:
        unit = next((u for u in _UNIT_WEEKS if u in text), None)
        if unit is None:
            return DEFAULT_WEEKS
        weeks = _UNIT_WEEKS[unit]

    return max(1, min(36, math.ceil(weeks)))


def recommended_phase_count(weeks: int) -> int:
    """Return how many journey phases fit a project of ``weeks`` weeks."""
    if weeks <= 2:
        return 3
    if weeks <= 8:
        return 4
    return 5


def allocate_week_ranges(weeks: int, count: int) -> list[str]:
    """Split ``weeks`` into ``count`` contiguous labels such as ``Weeks 2-3``.

    Earlier phases absorb the remainder. When there are more phases than
    weeks, phases share a week.
    """
    if count <= 0:
        return []
    if weeks < count:
        return [f"Week {min(weeks, math.floor(i * weeks / count) + 1)}" for i in range(count)]

    base, remainder = divmod(weeks, count)
    labels: list[str] = []
    start = 1
    for i in range(count):
        span = base + (1 if i < remainder else 0)
        end = start + span - 1
        labels.append(f"Week {start}" if span == 1 else f"Weeks {start}-{end}")
        start = end + 1
    return labels
