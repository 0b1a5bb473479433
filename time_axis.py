"""Time-axis inference for hardware-monitor CSV exports.

Exporters disagree on how they stamp rows: some write separate ``Date`` and
``Time`` columns, some a single timestamp column, some nothing at all. This
module picks the best available representation, drops rows that cannot sit on
the axis, and derives the summary facts shown next to the charts.
"""

import math
import numbers
import re
import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Tuple, Union

import pandas as pd


class TimeMode:
    DATE_TIME = "date-time"
    SINGLE = "single"
    INDEX = "index"


DATE_KEY_RE = re.compile(r"\bdate\b", re.IGNORECASE)
TIME_COLUMN_KEY_RE = re.compile(r"\btime\b", re.IGNORECASE)
TIME_KEY_RE = re.compile(r"(time|date|timestamp|recorded|log)", re.IGNORECASE)
TIME_ONLY_RE = re.compile(r"^(\d+):(\d{1,2}):(\d{1,2})(?:\.(\d+))?$")
EURO_DATE_RE = re.compile(
    r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\s+(\d{1,2}):(\d{1,2}):(\d{1,2})(?:\.(\d+))?$"
)
_TIME_OF_DAY_RE = re.compile(r"^\d+:\d{1,2}(?::\d{1,2}(?:\.\d+)?)?$")
_NUMERIC_TEXT_RE = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")

# Some exporters repeat the header line mid-file; a date/time cell holding one
# of these words marks such a row.
HEADER_ECHO_VALUES: Tuple[str, str] = ("date", "time")

EPOCH_MS_THRESHOLD = 1_000_000_000_000
EPOCH_S_THRESHOLD = 1_000_000_000

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class TimeAxis:
    rows: pd.DataFrame
    date_key: Optional[str]
    time_key: Optional[str]
    time_mode: str
    start_ms: Optional[int]
    end_ms: Optional[int]
    time_parsed: bool
    last_timestamp: Union[int, str, None]
    last_timestamp_label: Optional[str]
    duration_label: Optional[str]


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value == ""


def _as_text(value: object) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _fraction_ms(fraction: Optional[str]) -> int:
    if not fraction:
        return 0
    return int(fraction.ljust(3, "0")[:3])


def _first_match(headers: Sequence[str], pattern: "re.Pattern[str]") -> Optional[str]:
    return next((header for header in headers if pattern.search(header)), None)


def detect_time_key(headers: Sequence[str]) -> Optional[str]:
    """Return the first header that looks like any kind of time column."""

    return _first_match(headers, TIME_KEY_RE)


def find_date_and_time_keys(headers: Sequence[str]) -> Tuple[Optional[str], Optional[str]]:
    """Return the first date-like and the first time-like header.

    Both may name the same column (``Date/Time``); such a column still mandates
    a value in every row but is plotted as a single timestamp.
    """

    return _first_match(headers, DATE_KEY_RE), _first_match(headers, TIME_COLUMN_KEY_RE)


def _datetime_to_ms(value: datetime) -> int:
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime(warn=False)
    return int(round(value.timestamp() * 1000))


def _number_to_ms(value: float) -> Optional[int]:
    if not math.isfinite(value):
        return None
    if value > EPOCH_MS_THRESHOLD:
        return int(value)
    if value > EPOCH_S_THRESHOLD:
        return int(round(value * 1000))
    return None


def parse_time_only(value: object) -> Optional[int]:
    """Return milliseconds since midnight for ``HH:MM:SS[.fff]`` text.

    Hours are not bounded, so long captures written as ``26:10:00`` still parse.
    """

    if not isinstance(value, str):
        return None
    match = TIME_ONLY_RE.match(value.strip())
    if not match:
        return None
    hours, minutes, seconds, fraction = match.groups()
    return (
        int(hours) * 3_600_000
        + int(minutes) * 60_000
        + int(seconds) * 1000
        + _fraction_ms(fraction)
    )


def parse_date_value(value: object) -> Optional[int]:
    """Return an absolute timestamp in epoch milliseconds, or ``None``.

    Numbers are read as epoch milliseconds or seconds depending on magnitude.
    Strings in ``DD.MM.YYYY HH:MM:SS[.fff]`` form are read field by field;
    anything else goes through pandas after turning ``/`` into ``-``. Naive
    values are taken as local time.
    """

    if _is_missing(value) or value is pd.NaT:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _datetime_to_ms(value)
    if isinstance(value, numbers.Real):
        return _number_to_ms(float(value))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if _NUMERIC_TEXT_RE.match(text):
        return _number_to_ms(float(text))

    match = EURO_DATE_RE.match(text)
    if match:
        day, month, year, hours, minutes, seconds, fraction = match.groups()
        try:
            stamp = datetime(
                int(year),
                int(month),
                int(day),
                int(hours),
                int(minutes),
                int(seconds),
                _fraction_ms(fraction) * 1000,
            )
        except ValueError:
            stamp = None
        if stamp is not None:
            return _datetime_to_ms(stamp)

    if _TIME_OF_DAY_RE.match(text):
        # A bare time of day is not an absolute timestamp.
        return None

    normalized = text.replace("/", "-")
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(normalized, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed is None or pd.isna(parsed):
        return None
    return _datetime_to_ms(parsed)


def format_duration(duration_ms: Optional[float]) -> Optional[str]:
    """Format a millisecond span as ``HH:MM:SS``; hours may exceed 24."""

    if duration_ms is None or not math.isfinite(duration_ms) or duration_ms < 0:
        return None
    total_seconds = int(duration_ms // 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_timestamp(ms: int) -> str:
    """Return a label like ``Jan 5, 2024, 3:04:05 PM`` in local time."""

    stamp = datetime.fromtimestamp(ms / 1000)
    hour = stamp.hour % 12 or 12
    meridiem = "AM" if stamp.hour < 12 else "PM"
    return (
        f"{_MONTHS[stamp.month - 1]} {stamp.day}, {stamp.year}, "
        f"{hour}:{stamp.minute:02d}:{stamp.second:02d} {meridiem}"
    )


def raw_timestamp(
    row, time_mode: str, date_key: Optional[str], time_key: Optional[str]
) -> Optional[object]:
    """Return the raw timestamp cell(s) of a row for the given mode."""

    if time_mode == TimeMode.DATE_TIME and date_key and time_key:
        return f"{_as_text(row.get(date_key))} {_as_text(row.get(time_key))}".strip()
    if time_mode == TimeMode.SINGLE and time_key:
        value = row.get(time_key)
        return None if _is_missing(value) else value
    return None


def filter_header_echo_rows(
    rows: pd.DataFrame,
    date_key: Optional[str],
    time_key: Optional[str],
    echo_values: Sequence[str] = HEADER_ECHO_VALUES,
    drop_header_echoes: bool = True,
) -> pd.DataFrame:
    """Drop repeated header rows and rows missing a mandated date/time cell."""

    if not date_key and not time_key:
        return rows

    date_echo, time_echo = (v.lower() for v in echo_values)
    keep = pd.Series(True, index=rows.index)
    for key, echo in ((date_key, date_echo), (time_key, time_echo)):
        if not key or key not in rows.columns:
            continue
        column = rows[key]
        keep &= ~column.map(_is_missing)
        if drop_header_echoes:
            keep &= ~column.map(lambda v, e=echo: isinstance(v, str) and v.lower() == e)
    return rows.loc[keep].reset_index(drop=True)


def resolve_time_axis(
    headers: Sequence[str],
    rows: pd.DataFrame,
    drop_header_echoes: bool = True,
) -> TimeAxis:
    """Pick the time representation for ``rows`` and derive timing facts.

    The returned ``rows`` may be empty when every row was filtered out; the
    caller decides how to report that.
    """

    date_key, time_column_key = find_date_and_time_keys(headers)
    detected_key = detect_time_key(headers)

    rows = filter_header_echo_rows(
        rows, date_key, time_column_key, drop_header_echoes=drop_header_echoes
    )

    if date_key and date_key == time_column_key:
        time_mode, time_key = TimeMode.SINGLE, time_column_key
        date_key = None
    elif date_key and time_column_key:
        time_mode, time_key = TimeMode.DATE_TIME, time_column_key
    elif detected_key:
        time_mode, time_key = TimeMode.SINGLE, detected_key
    else:
        time_mode, time_key = TimeMode.INDEX, None

    if rows.empty:
        return TimeAxis(rows, date_key, time_key, time_mode,
                        None, None, False, None, None, None)

    first_row = rows.iloc[0]
    last_row = rows.iloc[-1]
    raw_start = raw_timestamp(first_row, time_mode, date_key, time_key)
    raw_end = raw_timestamp(last_row, time_mode, date_key, time_key)

    start_ms = parse_date_value(raw_start) if raw_start not in (None, "") else None
    end_ms = parse_date_value(raw_end) if raw_end not in (None, "") else None
    time_parsed = start_ms is not None and end_ms is not None

    if end_ms is not None:
        last_timestamp: Union[int, str, None] = end_ms
        last_label: Optional[str] = format_timestamp(end_ms)
    elif raw_end not in (None, ""):
        last_timestamp = raw_end if isinstance(raw_end, str) else _as_text(raw_end)
        last_label = _as_text(raw_end)
    else:
        last_timestamp = len(rows)
        last_label = None

    duration_label = None
    if time_key:
        first_time = parse_time_only(first_row.get(time_key))
        last_time = parse_time_only(last_row.get(time_key))
        if first_time is not None and last_time is not None:
            duration_label = format_duration(last_time - first_time)

    return TimeAxis(
        rows=rows,
        date_key=date_key,
        time_key=time_key,
        time_mode=time_mode,
        start_ms=start_ms,
        end_ms=end_ms,
        time_parsed=time_parsed,
        last_timestamp=last_timestamp,
        last_timestamp_label=last_label,
        duration_label=duration_label,
    )
