"""Recurrence utilities: parsing, expanding and splitting recurrence rules.

A series stores its rule as RRULE text restricted to FREQ, INTERVAL, BYDAY,
BYMONTHDAY, COUNT and UNTIL. ``RecurrenceRuleParser`` validates that text once,
at create/update time, and produces a typed ``RecurrenceRule``. The other
helpers assume an already validated rule:

- ``RecurrenceExpander`` lists the raw occurrences of a series intersecting a
  window.
- ``RecurrenceRuleSplitter`` re-anchors a rule for the continuation series of a
  this-and-future edit.
- ``OccurrenceValidator`` checks that a start instant is a generated occurrence.

Occurrences are keyed by their original start, so every helper here is a pure
function of its inputs and can be called again with a different window.
"""

import dataclasses
import datetime
import re
from dataclasses import dataclass

from dateutil.rrule import (
    DAILY,
    FR,
    MO,
    MONTHLY,
    SA,
    SU,
    TH,
    TU,
    WE,
    WEEKLY,
    YEARLY,
    rrule,
    rruleset,
)

from household_calendar.constants import (
    MAX_RECURRENCE_RULE_LENGTH,
    RecurrenceFrequency,
    RecurrenceWeekday,
)
from household_calendar.exceptions import (
    ExpansionLimitExceededError,
    InvalidRecurrenceRuleError,
)


MAX_OCCURRENCES = 10000

RRULE_PREFIX = "RRULE:"
UNTIL_FORMAT = "%Y%m%dT%H%M%SZ"

DATEUTIL_FREQUENCIES = {
    RecurrenceFrequency.DAILY: DAILY,
    RecurrenceFrequency.WEEKLY: WEEKLY,
    RecurrenceFrequency.MONTHLY: MONTHLY,
    RecurrenceFrequency.YEARLY: YEARLY,
}
DATEUTIL_WEEKDAYS = {
    RecurrenceWeekday.MONDAY: MO,
    RecurrenceWeekday.TUESDAY: TU,
    RecurrenceWeekday.WEDNESDAY: WE,
    RecurrenceWeekday.THURSDAY: TH,
    RecurrenceWeekday.FRIDAY: FR,
    RecurrenceWeekday.SATURDAY: SA,
    RecurrenceWeekday.SUNDAY: SU,
}

BYDAY_PATTERN = re.compile(r"^(?P<ordinal>[+-]?\d{1,2})?(?P<weekday>MO|TU|WE|TH|FR|SA|SU)$")
INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str
    interval: int = 1
    by_weekday: tuple[str, ...] = ()
    by_month_day: tuple[int, ...] = ()
    count: int | None = None
    until: datetime.datetime | None = None

    @property
    def is_bounded(self) -> bool:
        return self.count is not None or self.until is not None

    def to_rrule_string(self) -> str:
        """
        Convert the recurrence rule to an RRULE string following RFC 5545.
        """
        parts = [f"FREQ={self.frequency}"]

        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")

        if self.by_weekday:
            parts.append(f"BYDAY={','.join(self.by_weekday)}")

        if self.by_month_day:
            parts.append(f"BYMONTHDAY={','.join(str(day) for day in self.by_month_day)}")

        if self.count:
            parts.append(f"COUNT={self.count}")

        if self.until:
            parts.append(f"UNTIL={self.until.astimezone(datetime.UTC).strftime(UNTIL_FORMAT)}")

        return ";".join(parts)

    def to_rrule(self, dtstart: datetime.datetime) -> rrule:
        kwargs: dict = {
            "freq": DATEUTIL_FREQUENCIES[RecurrenceFrequency(self.frequency)],
            "dtstart": dtstart,
            "interval": self.interval,
        }
        if self.by_weekday:
            kwargs["byweekday"] = [_to_dateutil_weekday(value) for value in self.by_weekday]
        if self.by_month_day:
            kwargs["bymonthday"] = self.by_month_day
        if self.count:
            kwargs["count"] = self.count
        if self.until:
            until = self.until
            if dtstart.tzinfo is None:
                until = until.astimezone(datetime.UTC).replace(tzinfo=None)
            kwargs["until"] = until
        return rrule(**kwargs)

    def to_rruleset(self, dtstart: datetime.datetime) -> rruleset:
        """
        Build the occurrence set of the rule anchored at ``dtstart``.

        Following RFC 5545 the anchor is always the first occurrence and counts
        toward COUNT, even when it does not match BYDAY or BYMONTHDAY. dateutil's
        ``rrule`` alone would skip such an anchor.
        """
        recurrence = self.to_rrule(dtstart)
        occurrences = rruleset()
        occurrences.rdate(dtstart)
        if self.count is None or recurrence.after(dtstart, inc=True) == dtstart:
            occurrences.rrule(recurrence)
        elif self.count > 1:
            occurrences.rrule(dataclasses.replace(self, count=self.count - 1).to_rrule(dtstart))
        return occurrences


def _to_dateutil_weekday(value: str):
    match = BYDAY_PATTERN.match(value)
    if match is None:
        raise InvalidRecurrenceRuleError(f"Invalid BYDAY value: {value}")
    weekday = DATEUTIL_WEEKDAYS[RecurrenceWeekday(match.group("weekday"))]
    if match.group("ordinal"):
        return weekday(int(match.group("ordinal")))
    return weekday


class RecurrenceRuleParser:
    """Parses the supported RRULE subset into a ``RecurrenceRule``."""

    SUPPORTED_PARTS = ("FREQ", "INTERVAL", "BYDAY", "BYMONTHDAY", "COUNT", "UNTIL")
    UNTIL_FORMATS = ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%M%S", "%Y%m%d")

    @classmethod
    def parse(cls, text: str) -> RecurrenceRule:
        """
        Parse an RRULE string such as ``FREQ=WEEKLY;BYDAY=MO,WE,FR``.

        :param text: the rule, with or without the ``RRULE:`` prefix.
        :return: the typed rule.
        :raises InvalidRecurrenceRuleError: if the text is not a valid rule.
        """
        if text is None or not text.strip():
            raise InvalidRecurrenceRuleError("Recurrence rule is empty.")
        if len(text) > MAX_RECURRENCE_RULE_LENGTH:
            raise InvalidRecurrenceRuleError(
                f"Recurrence rule must be at most {MAX_RECURRENCE_RULE_LENGTH} characters."
            )

        parts = cls._split_parts(text.strip())

        if "FREQ" not in parts:
            raise InvalidRecurrenceRuleError("Recurrence rule must specify FREQ.")
        frequency = parts["FREQ"].upper()
        if frequency not in RecurrenceFrequency.values:
            raise InvalidRecurrenceRuleError(
                f"Unsupported frequency: {parts['FREQ']}. "
                f"Valid options are: {', '.join(RecurrenceFrequency.values)}"
            )

        interval = cls._parse_integer(parts.get("INTERVAL", "1"), "INTERVAL")
        if interval < 1:
            raise InvalidRecurrenceRuleError("INTERVAL must be a positive integer.")

        count = None
        if "COUNT" in parts:
            count = cls._parse_integer(parts["COUNT"], "COUNT")
            if count < 1:
                raise InvalidRecurrenceRuleError("COUNT must be at least 1.")

        until = cls._parse_until(parts["UNTIL"]) if "UNTIL" in parts else None

        if count is not None and until is not None:
            raise InvalidRecurrenceRuleError(
                "Cannot specify both 'COUNT' and 'UNTIL' in a recurrence rule."
            )

        return RecurrenceRule(
            frequency=frequency,
            interval=interval,
            by_weekday=cls._parse_by_weekday(parts.get("BYDAY"), frequency),
            by_month_day=cls._parse_by_month_day(parts.get("BYMONTHDAY"), frequency),
            count=count,
            until=until,
        )

    @classmethod
    def _split_parts(cls, text: str) -> dict[str, str]:
        if text.upper().startswith(RRULE_PREFIX):
            text = text[len(RRULE_PREFIX) :]

        parts: dict[str, str] = {}
        for token in text.split(";"):
            if not token.strip():
                continue
            name, separator, value = token.partition("=")
            name = name.strip().upper()
            value = value.strip()
            if not separator or not name or not value:
                raise InvalidRecurrenceRuleError(f"Malformed recurrence rule part: {token!r}")
            if name not in cls.SUPPORTED_PARTS:
                raise InvalidRecurrenceRuleError(f"Unsupported recurrence rule part: {name}")
            if name in parts:
                raise InvalidRecurrenceRuleError(f"Duplicate recurrence rule part: {name}")
            parts[name] = value
        return parts

    @staticmethod
    def _parse_integer(value: str, name: str) -> int:
        if not INTEGER_PATTERN.match(value):
            raise InvalidRecurrenceRuleError(f"{name} must be an integer, got {value!r}.")
        return int(value)

    @classmethod
    def _parse_until(cls, value: str) -> datetime.datetime:
        for date_format in cls.UNTIL_FORMATS:
            try:
                parsed = datetime.datetime.strptime(value, date_format)  # noqa: DTZ007
            except ValueError:
                continue
            if date_format == "%Y%m%d":
                # a date-only UNTIL includes the whole day
                parsed = parsed.replace(hour=23, minute=59, second=59)
            return parsed.replace(tzinfo=datetime.UTC)
        raise InvalidRecurrenceRuleError(f"Invalid UNTIL value: {value}")

    @staticmethod
    def _parse_by_weekday(value: str | None, frequency: str) -> tuple[str, ...]:
        if value is None:
            return ()

        weekdays = []
        for item in value.upper().split(","):
            item = item.strip()
            match = BYDAY_PATTERN.match(item)
            if match is None:
                raise InvalidRecurrenceRuleError(
                    f"Invalid weekday: {item}. Valid options are: MO, TU, WE, TH, FR, SA, SU"
                )
            ordinal = match.group("ordinal")
            if ordinal:
                if frequency not in (RecurrenceFrequency.MONTHLY, RecurrenceFrequency.YEARLY):
                    raise InvalidRecurrenceRuleError(
                        "Numbered weekdays are only allowed for MONTHLY or YEARLY rules."
                    )
                if int(ordinal) == 0 or abs(int(ordinal)) > 53:
                    raise InvalidRecurrenceRuleError(f"Invalid weekday position: {item}")
            weekdays.append(item)
        return tuple(weekdays)

    @classmethod
    def _parse_by_month_day(cls, value: str | None, frequency: str) -> tuple[int, ...]:
        if value is None:
            return ()
        if frequency == RecurrenceFrequency.WEEKLY:
            raise InvalidRecurrenceRuleError("BYMONTHDAY is not allowed for WEEKLY rules.")

        month_days = tuple(
            cls._parse_integer(item.strip(), "BYMONTHDAY") for item in value.split(",")
        )
        invalid_days = [day for day in month_days if day == 0 or day > 31 or day < -31]
        if invalid_days:
            raise InvalidRecurrenceRuleError(
                f"Invalid month days: {', '.join(map(str, invalid_days))}. "
                "Must be between 1-31 or -1 to -31."
            )
        return month_days


def parse_recurrence_rule(text: str | None) -> RecurrenceRule | None:
    """Parse ``text`` or return ``None`` for a single, non-recurring event."""
    if text is None or not text.strip():
        return None
    return RecurrenceRuleParser.parse(text)


@dataclass(frozen=True)
class RawOccurrence:
    """An occurrence as generated by the rule, before any exception is applied."""

    original_start: datetime.datetime
    start: datetime.datetime
    end: datetime.datetime


class RecurrenceExpander:
    """Expands a series anchor and rule into the occurrences overlapping a window."""

    def __init__(self, max_occurrences: int = MAX_OCCURRENCES):
        self.max_occurrences = max_occurrences

    def expand(
        self,
        start: datetime.datetime,
        end: datetime.datetime,
        rule: RecurrenceRule | None,
        window_start: datetime.datetime,
        window_end: datetime.datetime,
        recurrence_end: datetime.datetime | None = None,
    ) -> list[RawOccurrence]:
        """
        List the occurrences whose ``[start, start + duration)`` interval overlaps
        ``[window_start, window_end)``, in chronological order.

        :param start: start of the series anchor.
        :param end: end of the series anchor; ``end - start`` is the duration of
            every occurrence.
        :param rule: the parsed rule, or ``None`` for a single event.
        :param window_start: inclusive lower bound of the query window.
        :param window_end: exclusive upper bound of the query window.
        :param recurrence_end: optional cap; occurrences starting after it are
            not generated.
        :return: list of raw occurrences.
        :raises ExpansionLimitExceededError: if more than ``max_occurrences``
            occurrences fall inside the window.
        """
        if window_end <= window_start:
            return []

        duration = end - start

        if rule is None:
            if start < window_end and end > window_start:
                return [RawOccurrence(original_start=start, start=start, end=end)]
            return []

        occurrences: list[RawOccurrence] = []
        # anything starting after `window_start - duration` ends inside or after the window
        occurrence_starts = rule.to_rruleset(start).xafter(window_start - duration, inc=False)
        for occurrence_start in occurrence_starts:
            if occurrence_start >= window_end:
                break
            if recurrence_end is not None and occurrence_start > recurrence_end:
                break
            if len(occurrences) >= self.max_occurrences:
                raise ExpansionLimitExceededError(limit=self.max_occurrences)
            occurrences.append(
                RawOccurrence(
                    original_start=occurrence_start,
                    start=occurrence_start,
                    end=occurrence_start + duration,
                )
            )
        return occurrences


class RecurrenceRuleSplitter:
    """Helpers to split a rule when a series is capped and continued."""

    @staticmethod
    def count_occurrences_before(
        rule: RecurrenceRule, dtstart: datetime.datetime, split_date: datetime.datetime
    ) -> int:
        """Number of occurrences of ``rule`` anchored at ``dtstart`` strictly before ``split_date``."""
        used = 0
        for occurrence in rule.to_rruleset(dtstart):
            if occurrence >= split_date:
                break
            used += 1
        return used

    @staticmethod
    def has_occurrences_before(
        rule: RecurrenceRule, dtstart: datetime.datetime, split_date: datetime.datetime
    ) -> bool:
        return rule.to_rruleset(dtstart).before(split_date, inc=False) is not None

    @staticmethod
    def create_continuation_rule(
        rule: RecurrenceRule,
        original_start: datetime.datetime,
        split_date: datetime.datetime,
        new_start: datetime.datetime | None = None,
    ) -> RecurrenceRule | None:
        """Create the rule of a continuation series anchored at ``new_start``.

        If the rule has a COUNT the continuation keeps only the occurrences not
        consumed before ``split_date``. Returns ``None`` when the continuation
        would have no recurrence left.
        """
        new_start = new_start or split_date

        remaining: int | None = None
        if rule.count:
            used = RecurrenceRuleSplitter.count_occurrences_before(rule, original_start, split_date)
            remaining = rule.count - used
            if remaining <= 0:
                return None

        if rule.until and rule.until < new_start:
            return None

        return dataclasses.replace(rule, count=remaining)


class OccurrenceValidator:
    """Helpers to validate occurrence keys against a series."""

    @staticmethod
    def is_occurrence(
        start: datetime.datetime,
        rule: RecurrenceRule | None,
        candidate: datetime.datetime,
        recurrence_end: datetime.datetime | None = None,
    ) -> bool:
        """Return True if ``candidate`` is an original start generated for the series."""
        if rule is None:
            return candidate == start
        if candidate < start:
            return False
        if recurrence_end is not None and candidate > recurrence_end:
            return False
        return rule.to_rruleset(start).before(candidate, inc=True) == candidate
