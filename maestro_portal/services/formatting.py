"""
Display helpers for instance detail: variable values, timestamps and runs.

Variable values arrive as loosely typed JSON. They are treated as a closed
set of kinds and each kind has one bounded text rendering, so wide values
cannot blow up a table cell.
"""

import json
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from maestro_portal.orchestrator.contracts import StatusCategory
from maestro_portal.orchestrator.records import Instance, Variable
from maestro_portal.orchestrator.status import categorize

VALUE_DISPLAY_LIMIT = 100
ELLIPSIS = "..."
COMPLEX_OBJECT = "[Complex Object]"

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class ValueKind(str, Enum):
    NULL = "null"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"


def value_kind(value) -> ValueKind:
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    return ValueKind.OBJECT


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ELLIPSIS if len(text) > limit else text


def _format_number(value) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def format_variable_value(value, limit: int = VALUE_DISPLAY_LIMIT) -> str:
    kind = value_kind(value)
    if kind is ValueKind.NULL:
        return "null"
    if kind is ValueKind.STRING:
        return _truncate(value, limit)
    if kind is ValueKind.BOOLEAN:
        return "true" if value else "false"
    if kind is ValueKind.NUMBER:
        return _format_number(value)
    try:
        text = json.dumps(value, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return COMPLEX_OBJECT
    return _truncate(text, limit)


def search_variables(variables: Iterable[Variable], term: Optional[str]) -> list[Variable]:
    """Case-insensitive match on name, type or source."""
    variables = list(variables)
    if not term:
        return variables
    needle = term.lower()
    return [
        v for v in variables
        if any(field and needle in field.lower() for field in (v.name, v.type, v.source))
    ]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_timestamp(value: Optional[str], fallback: str = "N/A") -> str:
    """'2024-04-03T14:05:00Z' -> 'Apr 3, 2024, 2:05 PM'."""
    dt = parse_timestamp(value)
    if dt is None:
        return fallback
    hour = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return f"{_MONTHS[dt.month - 1]} {dt.day}, {dt.year}, {hour}:{dt.minute:02d} {meridiem}"


@dataclass(frozen=True)
class RunRow:
    number: int
    run_id: str
    status: str
    category: StatusCategory
    started: str
    completed: str


def run_rows(instance: Instance) -> list[RunRow]:
    """Runs newest first, numbered in execution order (oldest is Run #1)."""
    rows = [
        RunRow(
            number=i + 1,
            run_id=run.run_id,
            status=run.status,
            category=categorize(run.status),
            started=format_timestamp(run.started_time),
            completed=format_timestamp(run.completed_time, fallback="In progress"),
        )
        for i, run in enumerate(instance.instance_runs)
    ]
    rows.reverse()
    return rows
