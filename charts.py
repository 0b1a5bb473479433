"""Chart grouping and Altair chart construction for parsed datasets."""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Sequence, Tuple, TypeVar

import altair as alt
import pandas as pd

from data_processing import ParsedDataset, coerce_number
from time_axis import TimeMode, parse_date_value, raw_timestamp

T = TypeVar("T")

SERIES_PER_CHART = 3

PALETTE: Tuple[str, ...] = ("#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd")

CATEGORY_TITLES: Dict[str, str] = {
    "cpu": "CPU",
    "gpu": "GPU",
    "ram": "RAM",
    "other": "Other",
}

# Altair refuses inline datasets above 5000 rows by default.
MAX_CHART_POINTS = 5000


@dataclass(frozen=True)
class ChartSeries:
    key: str
    label: str
    color: str


@dataclass(frozen=True)
class ChartGroup:
    category: str
    title: str
    series: Tuple[ChartSeries, ...]

    @property
    def columns(self) -> List[str]:
        return [item.label for item in self.series]


def chunk_array(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive chunks of ``size``; the last may be short."""

    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def build_series(columns: Sequence[str]) -> Tuple[ChartSeries, ...]:
    return tuple(
        ChartSeries(key=f"series_{idx}", label=label, color=PALETTE[idx % len(PALETTE)])
        for idx, label in enumerate(columns)
    )


def build_chart_groups(
    dataset: ParsedDataset, series_per_chart: int = SERIES_PER_CHART
) -> Dict[str, List[ChartGroup]]:
    """Return chart groups per category, in CPU, GPU, RAM, Other order."""

    groups: Dict[str, List[ChartGroup]] = {}
    for category, columns in dataset.categories().items():
        title = CATEGORY_TITLES[category]
        groups[category] = [
            ChartGroup(
                category=category,
                title=f"{title} - Group {' / '.join(chunk)}",
                series=build_series(chunk),
            )
            for chunk in chunk_array(columns, series_per_chart)
        ]
    return groups


def build_chart_data(dataset: ParsedDataset, series: Sequence[ChartSeries]) -> pd.DataFrame:
    """Return one datum per row with ``index``, ``time``, ``rawTimestamp`` and series values.

    ``time`` holds epoch milliseconds when the dataset's time axis parsed and
    the row itself parses; otherwise it falls back to the 1-based row index.
    """

    has_time = dataset.time_mode != TimeMode.INDEX and dataset.time_key is not None
    records: List[Dict[str, object]] = []
    for position, row in enumerate(dataset.rows.to_dict("records"), start=1):
        datum: Dict[str, object] = {"index": position}
        raw = raw_timestamp(row, dataset.time_mode, dataset.date_key, dataset.time_key)
        if has_time:
            parsed = parse_date_value(raw) if raw not in (None, "") else None
            datum["time"] = parsed if dataset.time_parsed and parsed else position
        datum["rawTimestamp"] = None if raw is None else str(raw)
        for item in series:
            datum[item.key] = coerce_number(row.get(item.label))
        records.append(datum)

    columns = ["index"] + (["time"] if has_time else []) + ["rawTimestamp"]
    columns += [item.key for item in series]
    return pd.DataFrame.from_records(records, columns=columns)


def downsample_chart_data(data: pd.DataFrame, max_rows: int) -> pd.DataFrame:
    """Keep every n-th row (plus the last) so ``data`` fits in ``max_rows``."""

    if data is None or data.empty or len(data) <= max_rows:
        return data
    step = math.ceil(len(data) / max(max_rows - 1, 1))
    picked = list(range(0, len(data), step))
    if picked[-1] != len(data) - 1:
        picked.append(len(data) - 1)
    return data.iloc[picked].reset_index(drop=True)


def _to_local_datetime(ms: object) -> object:
    if isinstance(ms, (int, float)) and not isinstance(ms, bool):
        return datetime.fromtimestamp(ms / 1000)
    return pd.NaT


def build_chart(
    dataset: ParsedDataset, group: ChartGroup, max_points: int = MAX_CHART_POINTS
) -> alt.Chart:
    """Return a multi-line Altair chart for one chart group."""

    series = group.series
    data = build_chart_data(dataset, series)
    data = downsample_chart_data(data, max(max_points // max(len(series), 1), 2))

    rename = {item.key: item.label for item in series}
    long_df = data.melt(
        id_vars=[col for col in data.columns if col not in rename],
        value_vars=list(rename),
        var_name="SeriesKey",
        value_name="Value",
    )
    long_df["Series"] = long_df["SeriesKey"].map(rename)
    long_df = long_df.dropna(subset=["Value"])
    long_df["Value"] = long_df["Value"].astype(float)

    if dataset.time_parsed and "time" in long_df.columns:
        long_df["Timestamp"] = pd.to_datetime(long_df["time"].map(_to_local_datetime))
        x = alt.X("Timestamp:T", title="Time")
    else:
        x = alt.X("index:Q", title="Row")

    color_scale = alt.Scale(
        domain=[item.label for item in series],
        range=[item.color for item in series],
    )
    return (
        alt.Chart(long_df, title=group.title)
        .mark_line()
        .encode(
            x=x,
            y=alt.Y("Value:Q", title="Value", scale=alt.Scale(zero=False)),
            color=alt.Color(
                "Series:N",
                scale=color_scale,
                legend=alt.Legend(
                    title="Series",
                    orient="bottom",
                    direction="horizontal",
                    labelLimit=1000,
                ),
            ),
            tooltip=[
                alt.Tooltip("rawTimestamp:N", title="Timestamp"),
                alt.Tooltip("index:Q", title="Row"),
                alt.Tooltip("Series:N"),
                alt.Tooltip("Value:Q", format=".2f"),
            ],
        )
    )
