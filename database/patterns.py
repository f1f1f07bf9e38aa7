"""
database/patterns.py
Best-effort temporal pattern mining over ownership events.

  hour-of-day    one local hour holds >= 3 events and >= 45% of them
  owner-at-hour  inside that hour one owner has >= 2 events and >= 60%
  day-of-week    one local weekday (0 = Sunday) passes the same 3 / 45% bar

Fewer than 5 events never yield a pattern. Order of input is irrelevant.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Sequence, Tuple

from database.models import OwnershipEvent, Pattern, owner_label
from utils.constants import (
    MORNING_HOURS, PATTERN_MIN_BUCKET, PATTERN_MIN_EVENTS, PATTERN_MIN_RATIO,
    PATTERN_OWNER_MIN, PATTERN_OWNER_RATIO, PatternKind,
)

WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def _argmax(counts: Sequence[int]) -> Tuple[int, int]:
    """(index, value) of the first maximum."""
    best_i, best_v = 0, -1
    for i, v in enumerate(counts):
        if v > best_v:
            best_i, best_v = i, v
    return best_i, best_v


def local_hour(e: OwnershipEvent) -> int:
    return e.at.astimezone().hour


def local_weekday(e: OwnershipEvent) -> int:
    """0 = Sunday … 6 = Saturday."""
    return (e.at.astimezone().weekday() + 1) % 7


def _clustered(n: int, total: int) -> bool:
    return n >= PATTERN_MIN_BUCKET and n / total >= PATTERN_MIN_RATIO


def detect_patterns(events: Iterable[OwnershipEvent]) -> List[Pattern]:
    events = list(events)
    total = len(events)
    if total < PATTERN_MIN_EVENTS:
        return []

    hours = [0] * 24
    days = [0] * 7
    owners_by_hour: dict[int, Counter] = {}
    for e in events:
        h = local_hour(e)
        hours[h] += 1
        days[local_weekday(e)] += 1
        owners_by_hour.setdefault(h, Counter())[owner_label(e)] += 1

    out: List[Pattern] = []

    top_hour, top_hour_n = _argmax(hours)
    if _clustered(top_hour_n, total):
        if top_hour in MORNING_HOURS:
            summary = (f"Looks like a morning pattern around {top_hour:02d}:00 "
                       f"local time ({top_hour_n}/{total})")
        else:
            summary = (f"Events often occur around {top_hour:02d}:00 local time "
                       f"({top_hour_n}/{total} in window)")
        out.append(Pattern(PatternKind.HOUR_OF_DAY.value, summary))

        # Counter.most_common keeps first-seen order among ties
        best_owner, best_n = owners_by_hour[top_hour].most_common(1)[0]
        if best_n >= PATTERN_OWNER_MIN and best_n / top_hour_n >= PATTERN_OWNER_RATIO:
            out.append(Pattern(
                PatternKind.OWNER_AT_HOUR.value,
                f"{best_owner} is the most common owner around {top_hour:02d}:00 "
                f"({best_n}/{top_hour_n})",
            ))

    top_day, top_day_n = _argmax(days)
    if _clustered(top_day_n, total):
        out.append(Pattern(
            PatternKind.DAY_OF_WEEK.value,
            f"Events often happen on {WEEKDAYS[top_day]} ({top_day_n}/{total} in window)",
        ))

    return out
