"""
Recurrence Expansion Service.

Expands a recurring time-block request into concrete occurrences using
python-dateutil rrule.

Rules:
- Weekly frequency only, days keyed 0=Sunday ... 6=Saturday
- Occurrences start the day after the base block and run through end_date
  inclusive
- Each occurrence keeps the base block's local wall-clock start and duration;
  the result is converted to UTC for storage
- Business-closed days are not skipped: a time block is a groomer
  availability record, independent of the shop calendar
"""

from datetime import UTC, date, datetime, timedelta

from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

from scheduling.errors import ValidationError
from scheduling.schemas import RecurrencePattern
from shared.business_calendar import get_business_tz

# Mapping from integer (0=Sunday) to dateutil weekday constants
WEEKDAY_MAP = {
    0: SU,  # Sunday
    1: MO,  # Monday
    2: TU,  # Tuesday
    3: WE,  # Wednesday
    4: TH,  # Thursday
    5: FR,  # Friday
    6: SA,  # Saturday
}


def expand_dates(base_date: date, days_of_week: list[int], end_date: date) -> list[date]:
    """
    Dates matching days_of_week from the day after base_date through end_date.

    Examples:
        # Mondays and Wednesdays after Monday 2024-01-01 through 2024-01-15
        expand_dates(date(2024, 1, 1), [1, 3], date(2024, 1, 15))
        # Returns: Jan 3, 8, 10, 15
    """
    first = base_date + timedelta(days=1)
    if end_date < first:
        return []

    rule = rrule(
        freq=WEEKLY,
        dtstart=datetime.combine(first, datetime.min.time()),
        until=datetime.combine(end_date, datetime.min.time()),
        byweekday=[WEEKDAY_MAP[d] for d in days_of_week],
    )
    return [dt.date() for dt in rule]


def expand_occurrences(
    start_time: datetime,
    end_time: datetime,
    pattern: RecurrencePattern,
) -> list[tuple[datetime, datetime]]:
    """
    Generate (start, end) UTC intervals for every recurrence of a base block.

    Args:
        start_time: Base block start (timezone-aware)
        end_time: Base block end (timezone-aware)
        pattern: Weekly recurrence request

    Returns:
        Intervals in chronological order, excluding the base block itself

    Raises:
        ValidationError: end_date earlier than the base block's date
    """
    tz = get_business_tz()
    local_start = start_time.astimezone(tz)
    duration = end_time - start_time

    if pattern.end_date < local_start.date():
        raise ValidationError(
            "Recurrence end date cannot be before the first block",
            error_code="INVALID_RECURRENCE",
            details={
                "end_date": pattern.end_date.isoformat(),
                "start_date": local_start.date().isoformat(),
            },
        )

    occurrences = []
    for day in expand_dates(local_start.date(), pattern.days_of_week, pattern.end_date):
        occurrence_start = datetime.combine(day, local_start.time(), tzinfo=tz).astimezone(UTC)
        occurrences.append((occurrence_start, occurrence_start + duration))
    return occurrences
