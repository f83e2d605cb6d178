# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Five-field cron expressions for maintenance schedules.

Fields: ``minute hour day month weekday``.  Each field accepts ``*``,
``N``, ``N,M``, ``N-M``, ``*/S`` and ``N-M/S``.  Weekday 0 and 7 are both
Sunday.  As in classic cron, when both day and weekday are restricted a
time matches if either one does.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from vigil.core.exceptions import ConfigurationError


class CronParseError(ConfigurationError):
    """Raised when a cron expression is invalid."""


_BOUNDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day", 1, 31),
    ("month", 1, 12),
    ("weekday", 0, 7),
)


def _parse_int(text: str, part: str) -> int:
    try:
        return int(text)
    except ValueError as exc:
        raise CronParseError(f"Invalid value in {part!r}") from exc


def _parse_field(field: str, name: str, lo: int, hi: int) -> frozenset[int]:
    values: set[int] = set()
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = _parse_int(step_text, part) if step_text else 1
        if step <= 0:
            raise CronParseError(f"Step must be positive: {part!r}")

        if base == "*":
            start, end = lo, hi
        elif "-" in base:
            first, _, last = base.partition("-")
            start, end = _parse_int(first, part), _parse_int(last, part)
        else:
            start = _parse_int(base, part)
            end = hi if step_text else start

        if start < lo or end > hi or start > end:
            raise CronParseError(f"{name} {part!r} out of bounds ({lo}-{hi})")
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True, slots=True)
class CronSchedule:
    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]  # 0=Sunday
    day_restricted: bool
    weekday_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> CronSchedule:
        parts = expression.split()
        if len(parts) != 5:
            raise CronParseError(
                f"Cron expression must have exactly 5 fields, got {len(parts)}: {expression!r}"
            )
        fields = [
            _parse_field(part, name, lo, hi)
            for part, (name, lo, hi) in zip(parts, _BOUNDS, strict=True)
        ]
        weekdays = frozenset(d % 7 for d in fields[4])
        return cls(
            expression=expression,
            minutes=fields[0],
            hours=fields[1],
            days=fields[2],
            months=fields[3],
            weekdays=weekdays,
            day_restricted=parts[2] != "*",
            weekday_restricted=parts[4] != "*",
        )

    def _day_matches(self, moment: datetime) -> bool:
        day_ok = moment.day in self.days
        # Python: Monday=0; cron: Sunday=0
        weekday_ok = (moment.weekday() + 1) % 7 in self.weekdays
        if self.day_restricted and self.weekday_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok

    def matches(self, moment: datetime) -> bool:
        return (
            moment.month in self.months
            and self._day_matches(moment)
            and moment.hour in self.hours
            and moment.minute in self.minutes
        )

    def next_after(self, after: datetime) -> datetime:
        """First matching minute strictly after *after* (searches one leap cycle)."""
        candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = candidate + timedelta(days=366 * 4)
        while candidate < limit:
            if candidate.month not in self.months or not self._day_matches(candidate):
                candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if candidate.hour not in self.hours:
                candidate = (candidate + timedelta(hours=1)).replace(minute=0)
                continue
            if candidate.minute in self.minutes:
                return candidate
            candidate += timedelta(minutes=1)
        raise CronParseError(f"Cron expression never fires: {self.expression!r}")
