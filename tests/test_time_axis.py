import sys
from datetime import datetime
from pathlib import Path

import pandas as pd

sys.path.append(str(Path(__file__).resolve().parents[1]))

from time_axis import (
    TimeMode,
    detect_time_key,
    filter_header_echo_rows,
    find_date_and_time_keys,
    format_duration,
    format_timestamp,
    parse_date_value,
    parse_time_only,
    resolve_time_axis,
)


def _local_ms(*args) -> int:
    return int(round(datetime(*args).timestamp() * 1000))


def test_parse_date_value_round_trips_euro_format():
    ms = 1_704_456_245_123
    stamp = datetime.fromtimestamp(ms // 1000)
    text = f"{stamp:%d.%m.%Y %H:%M:%S}.{ms % 1000:03d}"

    assert parse_date_value(text) == ms


def test_parse_date_value_euro_format_without_fraction():
    assert parse_date_value("05.01.2024 12:00:05") == _local_ms(2024, 1, 5, 12, 0, 5)
    assert parse_date_value("5.1.2024 12:00:05.5") == _local_ms(2024, 1, 5, 12, 0, 5, 500000)


def test_parse_date_value_numeric_epochs():
    assert parse_date_value(1_700_000_000_000) == 1_700_000_000_000
    assert parse_date_value(1_700_000_000) == 1_700_000_000_000
    assert parse_date_value("1700000000") == 1_700_000_000_000
    assert parse_date_value(12345) is None
    assert parse_date_value(True) is None


def test_parse_date_value_generic_strings():
    assert parse_date_value("2024/01/05 12:00:00") == _local_ms(2024, 1, 5, 12)
    assert parse_date_value("2024-01-05T12:00:00Z") == 1_704_456_000_000
    assert parse_date_value("not a date") is None
    assert parse_date_value("12:00:00") is None
    assert parse_date_value("12:00") is None
    assert parse_date_value("7:05") is None
    assert parse_date_value("") is None
    assert parse_date_value(None) is None


def test_parse_date_value_passes_through_datetimes():
    stamp = datetime(2024, 1, 5, 8, 30)
    assert parse_date_value(stamp) == _local_ms(2024, 1, 5, 8, 30)
    assert parse_date_value(pd.Timestamp(stamp)) == _local_ms(2024, 1, 5, 8, 30)
    assert parse_date_value(pd.NaT) is None


def test_parse_time_only():
    assert parse_time_only("01:02:03") == 3_723_000
    assert parse_time_only(" 01:02:03.5 ") == 3_723_500
    assert parse_time_only("26:00:00.1234") == 93_600_123
    assert parse_time_only("2024-01-05 01:02:03") is None
    assert parse_time_only(3723) is None
    assert parse_time_only(None) is None


def test_format_duration():
    assert format_duration(3_723_999) == "01:02:03"
    assert format_duration(0) == "00:00:00"
    assert format_duration(100 * 3_600_000) == "100:00:00"
    assert format_duration(-1) is None
    assert format_duration(float("inf")) is None
    assert format_duration(None) is None


def test_format_timestamp():
    assert format_timestamp(_local_ms(2024, 1, 5, 15, 4, 5)) == "Jan 5, 2024, 3:04:05 PM"
    assert format_timestamp(_local_ms(2024, 12, 31, 0, 0, 9)) == "Dec 31, 2024, 12:00:09 AM"


def test_key_detection():
    headers = ["Sensor Date", "Log Time", "CPU"]
    assert find_date_and_time_keys(headers) == ("Sensor Date", "Log Time")
    assert detect_time_key(["CPU", "Recorded At", "Timestamp"]) == "Recorded At"
    assert find_date_and_time_keys(["Timestamp", "Datetime"]) == (None, None)
    assert find_date_and_time_keys(["Date/Time", "CPU"]) == ("Date/Time", "Date/Time")


def test_filter_header_echo_rows_drops_echoes_and_missing_cells():
    rows = pd.DataFrame(
        {
            "Date": ["05.01.2024", "DATE", "05.01.2024", None, "05.01.2024"],
            "Time": ["12:00:00", "Time", "", "12:00:03", "12:00:04"],
            "CPU": [1, "CPU", 3, 4, 5],
        },
        dtype=object,
    )

    filtered = filter_header_echo_rows(rows, "Date", "Time")

    assert filtered["CPU"].tolist() == [1, 5]
    assert list(filtered.index) == [0, 1]


def test_filter_header_echo_rows_can_keep_echoes():
    rows = pd.DataFrame({"Time": ["12:00:00", "time"], "CPU": [1, 2]}, dtype=object)

    kept = filter_header_echo_rows(rows, None, "Time", drop_header_echoes=False)

    assert kept["CPU"].tolist() == [1, 2]


def test_resolve_time_axis_date_time_mode():
    rows = pd.DataFrame(
        {
            "Date": ["05.01.2024", "05.01.2024"],
            "Time": ["12:00:00.000", "13:30:15.250"],
            "CPU": [1, 2],
        },
        dtype=object,
    )

    axis = resolve_time_axis(["Date", "Time", "CPU"], rows)

    assert axis.time_mode == TimeMode.DATE_TIME
    assert axis.date_key == "Date"
    assert axis.time_key == "Time"
    assert axis.time_parsed
    assert axis.start_ms == _local_ms(2024, 1, 5, 12)
    assert axis.last_timestamp == _local_ms(2024, 1, 5, 13, 30, 15, 250000)
    assert axis.last_timestamp_label == "Jan 5, 2024, 1:30:15 PM"
    assert axis.duration_label == "01:30:15"


def test_resolve_time_axis_single_unparsable_column_keeps_raw_label():
    rows = pd.DataFrame({"Log": ["start", "end"], "CPU": [1, 2]}, dtype=object)

    axis = resolve_time_axis(["Log", "CPU"], rows)

    assert axis.time_mode == TimeMode.SINGLE
    assert axis.time_key == "Log"
    assert not axis.time_parsed
    assert axis.last_timestamp == "end"
    assert axis.last_timestamp_label == "end"
    assert axis.duration_label is None


def test_resolve_time_axis_single_date_time_column():
    rows = pd.DataFrame(
        {"Date/Time": ["2024-01-05 12:00:00", "2024-01-05 12:10:00"], "CPU": [1, 2]},
        dtype=object,
    )

    axis = resolve_time_axis(["Date/Time", "CPU"], rows)

    assert axis.time_mode == TimeMode.SINGLE
    assert axis.time_key == "Date/Time"
    assert axis.date_key is None
    assert axis.time_parsed


def test_resolve_time_axis_shared_date_time_column_drops_blank_and_echo_rows():
    rows = pd.DataFrame(
        {
            "Date Time": ["2024-01-05 12:00:00", "", "Time", "2024-01-05 12:00:05"],
            "CPU": [1, 2, "CPU", 3],
        },
        dtype=object,
    )

    axis = resolve_time_axis(["Date Time", "CPU"], rows)

    assert axis.time_mode == TimeMode.SINGLE
    assert axis.time_key == "Date Time"
    assert axis.rows["CPU"].tolist() == [1, 3]
    assert axis.last_timestamp == _local_ms(2024, 1, 5, 12, 0, 5)


def test_resolve_time_axis_index_mode():
    rows = pd.DataFrame({"CPU": [1, 2, 3]}, dtype=object)

    axis = resolve_time_axis(["CPU"], rows)

    assert axis.time_mode == TimeMode.INDEX
    assert axis.time_key is None
    assert not axis.time_parsed
    assert axis.last_timestamp == 3
    assert axis.last_timestamp_label is None
    assert axis.duration_label is None
