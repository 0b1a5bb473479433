import hashlib
from pathlib import Path
import sys
from typing import Optional

import streamlit as st

# Ensure imports work whether the app is executed as a module (e.g. via
# ``python -m hwmon_dashboard.app``) or as a script where the repository
# directory might not already be on ``sys.path``.
CURRENT_DIR = Path(__file__).resolve().parent

if __package__:
    from .charts import CATEGORY_TITLES, build_chart, build_chart_groups
    from .data_processing import CsvParseError, ParsedDataset, parse_csv_text
    from .session import ParseSession
    from .time_axis import TimeMode
else:
    if str(CURRENT_DIR) not in sys.path:
        sys.path.insert(0, str(CURRENT_DIR))
    from charts import CATEGORY_TITLES, build_chart, build_chart_groups
    from data_processing import CsvParseError, ParsedDataset, parse_csv_text
    from session import ParseSession
    from time_axis import TimeMode


MAX_DISPLAYED_WARNINGS = 4

TIME_MODE_LABELS = {
    TimeMode.DATE_TIME: "Date + time columns",
    TimeMode.SINGLE: "Single timestamp column",
    TimeMode.INDEX: "Row order (no time column)",
}


st.set_page_config(page_title="Hardware Monitor Dashboard", layout="wide", page_icon="🖥️")

st.sidebar.header("🖥️ Sensor Log Upload")
uploaded = st.sidebar.file_uploader(
    "Upload a hardware-monitoring CSV",
    type=["csv", "txt"],
    accept_multiple_files=False,
    key="csv_uploader",
)
st.sidebar.caption("Large CSVs supported · Data stays in memory during the session.")


@st.cache_data(show_spinner=False, max_entries=8)
def _parse_cached(file_name: str, file_bytes: bytes) -> ParsedDataset:
    text = file_bytes.decode("utf-8", errors="replace")
    return parse_csv_text(text, file_name=file_name)


def _upload_id(name: str, data: bytes) -> str:
    digest = hashlib.sha1(data).hexdigest()[:10]
    return f"{name}_{digest}"


def _session() -> ParseSession:
    if "parse_session" not in st.session_state:
        st.session_state["parse_session"] = ParseSession()
    return st.session_state["parse_session"]


session = _session()

if uploaded is not None:
    file_bytes = uploaded.getvalue()
    upload_id = _upload_id(uploaded.name, file_bytes)
    if st.session_state.get("upload_id") != upload_id:
        st.session_state["upload_id"] = upload_id
        ticket = session.begin()
        with st.spinner(f"Parsing {uploaded.name}..."):
            try:
                session.publish(ticket, _parse_cached(uploaded.name, file_bytes))
            except CsvParseError as exc:
                session.fail(ticket, exc)
elif st.session_state.pop("upload_id", None) is not None:
    # The uploader was cleared; stop showing the old file.
    session.clear()

if session.error is not None:
    st.sidebar.error(str(session.error))

dataset: Optional[ParsedDataset] = session.dataset
if dataset is None:
    st.title("Hardware Monitor Dashboard")
    if session.error is None:
        st.info("Upload a CSV export from your monitoring tool to begin.")
    st.stop()

if dataset.warnings:
    for msg in dataset.warnings[:MAX_DISPLAYED_WARNINGS]:
        st.sidebar.warning(msg)
    hidden = len(dataset.warnings) - MAX_DISPLAYED_WARNINGS
    if hidden > 0:
        st.sidebar.caption(f"{hidden} more warning(s) not shown.")

st.title(dataset.file_name or "Hardware Monitor Dashboard")

summary = st.columns(4)
summary[0].metric("Rows", f"{dataset.row_count:,}")
summary[1].metric("Numeric columns", len(dataset.numeric_columns))
summary[2].metric("Duration", dataset.duration_label or "—")
summary[3].metric("Last timestamp", dataset.last_timestamp_label or "—")

time_caption = TIME_MODE_LABELS.get(dataset.time_mode, dataset.time_mode)
if dataset.time_mode == TimeMode.DATE_TIME:
    time_caption += f": {dataset.date_key} + {dataset.time_key}"
elif dataset.time_mode == TimeMode.SINGLE:
    time_caption += f": {dataset.time_key}"
if dataset.time_mode != TimeMode.INDEX and not dataset.time_parsed:
    time_caption += " (timestamps not recognised; plotting by row)"
st.caption(f"Time axis: {time_caption}")

groups = build_chart_groups(dataset)
tabs = st.tabs([CATEGORY_TITLES[category] for category in groups])
for tab, (category, category_groups) in zip(tabs, groups.items()):
    with tab:
        if not category_groups:
            st.info("No numeric fields detected for this category.")
            continue
        for group in category_groups:
            count = len(group.series)
            st.markdown(f"#### {group.title}")
            st.caption(f"{count} metric{'s' if count > 1 else ''}")
            st.altair_chart(build_chart(dataset, group), use_container_width=True)

with st.expander("Detected columns"):
    categories = dataset.categories()
    for category, columns in categories.items():
        st.write(f"**{CATEGORY_TITLES[category]}:** {', '.join(columns) or '—'}")
    ignored = [h for h in dataset.headers if h not in dataset.numeric_columns]
    st.write(f"**Not charted:** {', '.join(ignored) or '—'}")
