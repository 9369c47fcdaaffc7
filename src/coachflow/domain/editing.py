"""Edit commands for numbered lists shown during a micro-flow.

Both micro-flows let the user rename, reorder, remove, and add items by
number ("rename phase 2 to Field Work", "swap 1 and 3", "remove milestone
4"). Parsing is shared here; each flow applies the command to its own list.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

from pydantic import BaseModel

T = TypeVar("T")

_NUMBER_WORDS: dict[str, int] = {
    "one": 1, "first": 1, "1st": 1,
    "two": 2, "second": 2, "2nd": 2,
    "three": 3, "third": 3, "3rd": 3,
    "four": 4, "fourth": 4, "4th": 4,
    "five": 5, "fifth": 5, "5th": 5,
    "six": 6, "sixth": 6, "6th": 6,
}

_NUM = r"(\d+|one|two|three|four|five|six|first|second|third|fourth|fifth|sixth|1st|2nd|3rd|4th|5th|6th)"
_ITEM = r"(?:phase|milestone|artifact|criterion|criteria|item|number|#)?\s*"
_QUOTES = "\"'“”‘’"


class EditKind(str, Enum):
    RENAME = "rename"
    SWAP = "swap"
    MOVE = "move"
    REMOVE = "remove"
    ADD = "add"


class EditCommand(BaseModel):
    """A parsed list edit.

    Attributes:
        kind: Edit operation
        index: Zero-based item index (rename, swap, move, remove)
        target: Zero-based second index (swap, move)
        value: New text (rename, add)
    """

    kind: EditKind
    index: int | None = None
    target: int | None = None
    value: str | None = None


def to_index(token: str) -> int:
    """Convert ``"2"`` or ``"second"`` to a zero-based index."""
    token = token.lower()
    if token in _NUMBER_WORDS:
        return _NUMBER_WORDS[token] - 1
    return int(token) - 1


def _clean(value: str) -> str:
    return value.strip().rstrip(".").strip().strip(_QUOTES).strip()


_RENAME_RES = (
    re.compile(rf"^(?:please\s+)?(?:rename|retitle|call)\s+{_ITEM}{_NUM}\s+(?:to|as)?\s*:?\s*(?P<value>.+)$", re.I),
    re.compile(rf"^(?:please\s+)?change\s+{_ITEM}{_NUM}\s+to\s*:?\s*(?P<value>.+)$", re.I),
    re.compile(rf"^{_ITEM}{_NUM}\s+should\s+(?:be\s+called|be\s+named|be|say)\s*:?\s*(?P<value>.+)$", re.I),
)
_SWAP_RE = re.compile(rf"^(?:please\s+)?(?:swap|switch|flip)\s+{_ITEM}{_NUM}\s+(?:and|with)\s+{_ITEM}{_NUM}\b", re.I)
_MOVE_RE = re.compile(
    rf"^(?:please\s+)?move\s+{_ITEM}{_NUM}\s+(?P<where>to|before|after)\s+(?:position\s+)?{_ITEM}{_NUM}\b", re.I
)
_MOVE_EDGE_RE = re.compile(
    rf"^(?:please\s+)?move\s+{_ITEM}{_NUM}\s+to\s+the\s+(?P<edge>start|beginning|front|top|end|bottom)\b", re.I
)
_REMOVE_RE = re.compile(rf"^(?:please\s+)?(?:remove|delete|drop|cut)\s+{_ITEM}{_NUM}\b", re.I)
_ADD_RE = re.compile(
    r"^(?:please\s+)?(?:add|include|append)\s+(?:a\s+|an\s+|another\s+|one\s+more\s+)?"
    r"(?:new\s+)?(?:phase|milestone|artifact|criterion|criteria|item)?\s*"
    r"(?:called|named|for|:)?\s*(?P<value>.+)$",
    re.I,
)


def parse_edit_command(text: str) -> EditCommand | None:
    """Parse a list edit from free text.

    Args:
        text: User text

    Returns:
        EditCommand, or None when the text is not an edit
    """
    stripped = text.strip()
    for pattern in _RENAME_RES:
        match = pattern.match(stripped)
        if match and _clean(match.group("value")):
            return EditCommand(kind=EditKind.RENAME, index=to_index(match.group(1)), value=_clean(match.group("value")))

    if match := _SWAP_RE.match(stripped):
        return EditCommand(kind=EditKind.SWAP, index=to_index(match.group(1)), target=to_index(match.group(2)))

    if match := _MOVE_EDGE_RE.match(stripped):
        edge = match.group("edge").lower()
        target = 0 if edge in ("start", "beginning", "front", "top") else -1
        return EditCommand(kind=EditKind.MOVE, index=to_index(match.group(1)), target=target)

    if match := _MOVE_RE.match(stripped):
        index = to_index(match.group(1))
        target = to_index(match.group(3))
        if match.group("where").lower() == "after":
            target += 1
        if target > index and match.group("where").lower() != "to":
            target -= 1
        return EditCommand(kind=EditKind.MOVE, index=index, target=target)

    if match := _REMOVE_RE.match(stripped):
        return EditCommand(kind=EditKind.REMOVE, index=to_index(match.group(1)))

    if match := _ADD_RE.match(stripped):
        value = _clean(match.group("value"))
        if value:
            return EditCommand(kind=EditKind.ADD, value=value)

    return None


class EditError(ValueError):
    """Raised when an edit cannot be applied (e.g. index out of range)."""


def apply_edit(
    items: list[T],
    command: EditCommand,
    *,
    rename: Callable[[T, str], T],
    create: Callable[[str], T],
) -> list[T]:
    """Apply ``command`` to a copy of ``items``.

    Args:
        items: Current list (not modified)
        command: Parsed edit
        rename: Returns a renamed copy of an item
        create: Builds a new item from text

    Returns:
        The edited list

    Raises:
        EditError: If an index is out of range
    """
    result = list(items)

    def check(index: int | None) -> int:
        if index is None or not 0 <= index < len(result):
            shown = "?" if index is None else index + 1
            raise EditError(f"There is no item {shown}; the list has {len(result)}.")
        return index

    if command.kind is EditKind.RENAME:
        i = check(command.index)
        result[i] = rename(result[i], command.value or "")
    elif command.kind is EditKind.SWAP:
        i, j = check(command.index), check(command.target)
        result[i], result[j] = result[j], result[i]
    elif command.kind is EditKind.MOVE:
        i = check(command.index)
        target = len(result) - 1 if command.target == -1 else command.target
        target = check(min(target, len(result) - 1) if target is not None else None)
        result.insert(target, result.pop(i))
    elif command.kind is EditKind.REMOVE:
        result.pop(check(command.index))
    elif command.kind is EditKind.ADD:
        result.append(create(command.value or ""))
    return result


def describe_edit(command: EditCommand, noun: str) -> str:
    """Short confirmation line for an applied edit."""
    if command.kind is EditKind.RENAME:
        return f"Renamed {noun} {command.index + 1} to \"{command.value}\"."
    if command.kind is EditKind.SWAP:
        return f"Swapped {noun}s {command.index + 1} and {command.target + 1}."
    if command.kind is EditKind.MOVE:
        return f"Moved {noun} {command.index + 1}."
    if command.kind is EditKind.REMOVE:
        return f"Removed {noun} {command.index + 1}."
    return f"Added {noun} \"{command.value}\"."
