"""
Appointment time window resolution.

Turns a stored calendar date, an "HH:MM" wall-clock start, an optional
timezone offset and an optional end time or duration into absolute UTC
instants, and decides whether "now" falls inside the access window
``[start - buffer, end]``.

Everything here is pure: the only input that changes over time is ``now``,
which callers pass in.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Dict, Optional, Tuple, Union
import enum
import re

from app.core.clock import aware_utc
from app.core.exceptions import ValidationError
from app.domain.appointments.legacy_timezone import compat_timezone_offset

DEFAULT_BUFFER_MINUTES = 2
DEFAULT_DURATION_MINUTES = 30

# An end time this far "before" the start is read as the next day
OVERNIGHT_THRESHOLD_MINUTES = 12 * 60

_WALL_CLOCK = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_TIMEZONE_LABEL = re.compile(r"^(?:UTC|GMT)\s*([+-])(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)

CalendarValue = Union[date, datetime, str]


class WindowReason(str, enum.Enum):
    BEFORE_START = "BEFORE_START"
    AFTER_END = "AFTER_END"


@dataclass(frozen=True)
class TimeWindow:
    is_valid: bool
    start_utc: datetime
    end_utc: datetime
    earliest_allowed: datetime
    reason: Optional[WindowReason] = None
    message: Optional[str] = None

    def as_details(self) -> Dict[str, Any]:
        details = {
            "start_utc": self.start_utc.isoformat(),
            "end_utc": self.end_utc.isoformat(),
            "earliest_allowed": self.earliest_allowed.isoformat(),
        }
        if self.reason:
            details["reason"] = self.reason.value
        return details


def parse_wall_clock(value: Union[str, time]) -> Tuple[int, int]:
    """Parse "HH:MM" into (hour, minute)"""
    if isinstance(value, time):
        return value.hour, value.minute

    match = _WALL_CLOCK.match((value or "").strip())
    if not match:
        raise ValidationError(
            f"Invalid time '{value}', expected HH:MM",
            details={"value": value},
            error_code="INVALID_TIME_FORMAT"
        )
    return int(match.group(1)), int(match.group(2))


def format_wall_clock(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def add_minutes_to_wall_clock(value: str, minutes: int) -> str:
    """Wall-clock arithmetic that wraps past midnight"""
    hour, minute = parse_wall_clock(value)
    total = (hour * 60 + minute + minutes) % (24 * 60)
    return format_wall_clock(total // 60, total % 60)


def parse_timezone_label(label: Optional[str]) -> Optional[int]:
    """Offset in minutes for labels like "UTC+5" or "GMT-03:30"; None if unparseable"""
    if not label:
        return None
    match = _TIMEZONE_LABEL.match(label.strip())
    if not match:
        return None
    sign = -1 if match.group(1) == "-" else 1
    return sign * (int(match.group(2)) * 60 + int(match.group(3) or 0))


def _is_midnight(value: datetime) -> bool:
    return (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0)


def intended_calendar_date(value: CalendarValue, local_tz: Optional[tzinfo] = None) -> date:
    """
    Recover the calendar date a stored value was meant to represent.

    Plain dates and naive datetimes carry their date directly. For an aware
    instant the local (``local_tz``, or the server zone) and UTC calendar
    days are compared: if they agree either is right; if they diverge, a
    value sitting on local midnight was stored as local midnight and one on
    UTC midnight as UTC midnight. Anything else falls back to the local day.
    """
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(
                f"Invalid date '{value}'",
                details={"value": value},
                error_code="INVALID_DATE_FORMAT"
            )

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        local = value.astimezone(local_tz) if local_tz else value.astimezone()
        utc = value.astimezone(timezone.utc)
        if local.date() == utc.date():
            return local.date()
        if _is_midnight(local):
            return local.date()
        if _is_midnight(utc):
            return utc.date()
        return local.date()

    if isinstance(value, date):
        return value

    raise ValidationError("Appointment date is required", error_code="INVALID_DATE_FORMAT")


def resolve_start_end(
    appointment_date: CalendarValue,
    appointment_time: Union[str, time],
    timezone_offset: Optional[int] = None,
    end_time: Optional[Union[str, time]] = None,
    duration_minutes: Optional[int] = None,
    local_tz: Optional[tzinfo] = None,
) -> Tuple[datetime, datetime]:
    """Absolute UTC start and end of an appointment"""
    calendar_day = intended_calendar_date(appointment_date, local_tz)
    hour, minute = parse_wall_clock(appointment_time)
    offset = timedelta(minutes=compat_timezone_offset(timezone_offset, hour))

    start_utc = datetime(
        calendar_day.year, calendar_day.month, calendar_day.day, hour, minute, tzinfo=timezone.utc
    ) - offset

    if end_time:
        end_hour, end_minute = parse_wall_clock(end_time)
        end_day = calendar_day
        if (hour * 60 + minute) - (end_hour * 60 + end_minute) > OVERNIGHT_THRESHOLD_MINUTES:
            end_day = calendar_day + timedelta(days=1)
        end_utc = datetime(
            end_day.year, end_day.month, end_day.day, end_hour, end_minute, tzinfo=timezone.utc
        ) - offset
    else:
        end_utc = start_utc + timedelta(minutes=duration_minutes or DEFAULT_DURATION_MINUTES)

    return start_utc, end_utc


def _describe(start_utc: datetime, end_utc: datetime, offset_minutes: int) -> Tuple[str, str]:
    zone = timezone(timedelta(minutes=offset_minutes))
    fmt = "%Y-%m-%d %H:%M (UTC%z)"
    return start_utc.astimezone(zone).strftime(fmt), end_utc.astimezone(zone).strftime(fmt)


def resolve_window(
    appointment_date: CalendarValue,
    appointment_time: Union[str, time],
    now: datetime,
    timezone_offset: Optional[int] = None,
    end_time: Optional[Union[str, time]] = None,
    duration_minutes: Optional[int] = None,
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
    local_tz: Optional[tzinfo] = None,
) -> TimeWindow:
    """Decide whether ``now`` falls inside the appointment's access window"""
    start_utc, end_utc = resolve_start_end(
        appointment_date,
        appointment_time,
        timezone_offset=timezone_offset,
        end_time=end_time,
        duration_minutes=duration_minutes,
        local_tz=local_tz,
    )
    earliest_allowed = start_utc - timedelta(minutes=buffer_minutes)
    now = aware_utc(now)

    hour, _ = parse_wall_clock(appointment_time)
    starts, ends = _describe(start_utc, end_utc, compat_timezone_offset(timezone_offset, hour))

    if now < earliest_allowed:
        return TimeWindow(
            is_valid=False,
            start_utc=start_utc,
            end_utc=end_utc,
            earliest_allowed=earliest_allowed,
            reason=WindowReason.BEFORE_START,
            message=(
                "This appointment is only accessible during its scheduled time window. "
                f"It starts at {starts} and ends at {ends}."
            ),
        )

    if now > end_utc:
        return TimeWindow(
            is_valid=False,
            start_utc=start_utc,
            end_utc=end_utc,
            earliest_allowed=earliest_allowed,
            reason=WindowReason.AFTER_END,
            message=(
                f"The appointment time has passed. The window was from {starts} to {ends}."
            ),
        )

    return TimeWindow(
        is_valid=True,
        start_utc=start_utc,
        end_utc=end_utc,
        earliest_allowed=earliest_allowed,
    )


def resolve_appointment_window(
    appointment: Any,
    now: datetime,
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
) -> TimeWindow:
    """Window of an appointment record"""
    return resolve_window(
        appointment.appointment_date,
        appointment.appointment_time,
        now,
        timezone_offset=appointment.timezone_offset,
        end_time=appointment.appointment_end_time,
        duration_minutes=appointment.appointment_duration,
        buffer_minutes=buffer_minutes,
    )


def appointment_start_utc(appointment: Any) -> datetime:
    start_utc, _ = resolve_start_end(
        appointment.appointment_date,
        appointment.appointment_time,
        timezone_offset=appointment.timezone_offset,
        end_time=appointment.appointment_end_time,
        duration_minutes=appointment.appointment_duration,
    )
    return start_utc
