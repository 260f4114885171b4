"""
Interval expression evaluation for recurring jobs.

A job's interval is a six-field cron expression::

    second minute hour day-of-month month day-of-week

Each field accepts ``*``, single values, ranges, steps and lists. Day-of-week
runs 0-7 where both 0 and 7 mean Sunday. When day-of-month and day-of-week are
both restricted a day matches if either matches; when one of them is ``*`` the
other one alone decides.

Classic five-field expressions are accepted too and fire at second 0.
"""

import logging
from datetime import datetime
from typing import Optional

from croniter import croniter, CroniterBadCronError, CroniterBadDateError

from .utils import ensure_utc

logger = logging.getLogger(__name__)

# Upper bound on how far ahead a match is searched for: the eight year gap
# between two Feb 29ths plus a margin.
MAX_SEARCH_YEARS = 10


class IntervalError(ValueError):
    """Raised when an interval expression cannot be parsed."""


def parse_interval(expression: str) -> str:
    """
    Validate an interval expression and normalize it to six fields.

    Args:
        expression: Cron-style expression with five or six fields

    Returns:
        The normalized six-field expression

    Raises:
        IntervalError: If the expression is not a string or is malformed
    """
    if not isinstance(expression, str):
        raise IntervalError(f"Interval must be a string, got {type(expression).__name__}")

    fields = expression.split()
    if len(fields) == 5:
        fields.insert(0, '0')
    elif len(fields) != 6:
        raise IntervalError(
            f"Interval must have 6 fields (second minute hour day month weekday), "
            f"got {len(fields)}: '{expression}'"
        )

    fields[5] = _normalize_day_of_week(fields[5])

    normalized = ' '.join(fields)
    if not croniter.is_valid(normalized, second_at_beginning=True):
        raise IntervalError(f"Invalid interval '{expression}'")

    return normalized


def _normalize_day_of_week(field: str) -> str:
    """Spell Sunday as 0 wherever the day-of-week field uses 7."""
    values = []
    for part in field.split(','):
        body, _, step = part.partition('/')
        bounds = body.split('-')
        if (len(bounds) > 2 or not all(b.isdigit() for b in bounds)
                or (step and (not step.isdigit() or int(step) == 0))):
            values.append(part)
            continue

        start, end = int(bounds[0]), int(bounds[-1])
        if 7 not in (start, end) or start > end or end > 7:
            values.append(part)
            continue

        if len(bounds) == 1 and step:
            end = 7
        values.extend(str(day % 7) for day in range(start, end + 1, int(step or 1)))

    return ','.join(dict.fromkeys(values))


def next_wake(expression: str, after: datetime,
              ceiling: Optional[datetime] = None) -> Optional[datetime]:
    """
    Compute the next instant selected by an interval expression.

    Args:
        expression: Five or six-field cron expression
        after: Reference instant; the result is strictly later than this
        ceiling: Optional last allowed instant (a job's repeatUntil)

    Returns:
        The earliest matching UTC instant after the reference, or None when the
        schedule is exhausted (next match past the ceiling, or no match at all
        within MAX_SEARCH_YEARS)

    Raises:
        IntervalError: If the expression is malformed
    """
    normalized = parse_interval(expression)

    # Seconds are the finest resolution, so sub-second parts of the reference
    # can be dropped without ever returning an instant <= after.
    start = ensure_utc(after).replace(microsecond=0)

    try:
        iterator = croniter(
            normalized,
            start,
            second_at_beginning=True,
            max_years_between_matches=MAX_SEARCH_YEARS,
        )
        candidate = iterator.get_next(datetime)
    except CroniterBadDateError:
        logger.debug(f"No occurrence of '{expression}' within {MAX_SEARCH_YEARS} years")
        return None
    except CroniterBadCronError as e:
        raise IntervalError(f"Invalid interval '{expression}': {e}") from e

    candidate = ensure_utc(candidate)

    if ceiling is not None and candidate > ensure_utc(ceiling):
        return None

    return candidate
