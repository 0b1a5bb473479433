import csv
import io
import math
import os
import re
import warnings
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np
import pandas as pd

from time_axis import resolve_time_axis

# Debug toggler: set HWMON_DEBUG=1 to enable verbose parse logs
DEBUG = os.getenv("HWMON_DEBUG", "0") == "1"


def dprint(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


Scalar = Union[str, int, float, bool, None]

_BOM = "\ufeff"

DELIMITER_CANDIDATES: Tuple[str, ...] = (",", "\t", "|", ";")
DEFAULT_DELIMITER = ","
UNDETECTABLE_DELIMITER_MESSAGE = (
    "Unable to auto-detect delimiting character; defaulted to ','"
)
UNTERMINATED_QUOTE_MESSAGE = "Quoted field unterminated"
_DELIMITER_PREVIEW_LINES = 10

# Share of non-empty samples that must coerce to a number for a column to chart.
NUMERIC_RATIO_THRESHOLD = 0.6

# Values beyond this magnitude lose precision as floats and are kept as text.
_MAX_EXACT_FLOAT = 2 ** 53

_FLOAT_RE = re.compile(r"^\s*-?(\d+\.?|\.\d+|\d+\.\d+)([eE][-+]?\d+)?\s*$")
_LEADING_FLOAT_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
# Ragged rows are expected in these exports and are not worth a warning.
_FIELD_COUNT_RE = re.compile(
    r"(Expected \d+ fields|too (few|many) fields|Length of header or names)",
    re.IGNORECASE,
)


class CsvParseError(ValueError):
    """Raised when an uploaded CSV cannot produce a chartable dataset."""

    kind = "ParseError"


class EmptyFileError(CsvParseError):
    kind = "EmptyFile"


class NoDataError(CsvParseError):
    kind = "NoData"


class NoValidRowsError(CsvParseError):
    kind = "NoValidRows"


@dataclass(frozen=True)
class RawTable:
    """Headers and rows exactly as tokenized, before any time-axis logic.

    ``rows`` holds one column per header with object dtype. ``None`` marks a
    field missing from a short row while ``""`` marks a field that was present
    but empty.
    """

    headers: List[str]
    rows: pd.DataFrame
    warnings: List[str] = field(default_factory=list)


@dataclass
class CategoryMap:
    cpu: List[str] = field(default_factory=list)
    gpu: List[str] = field(default_factory=list)
    ram: List[str] = field(default_factory=list)
    other: List[str] = field(default_factory=list)

    def items(self) -> List[Tuple[str, List[str]]]:
        return [
            ("cpu", self.cpu),
            ("gpu", self.gpu),
            ("ram", self.ram),
            ("other", self.other),
        ]


@dataclass(frozen=True)
class ParsedDataset:
    """Chart-ready result of :func:`parse_csv_text`.

    Instances are never mutated; a new upload produces a new dataset.
    """

    file_name: str
    headers: List[str]
    rows: pd.DataFrame
    date_key: Optional[str]
    time_key: Optional[str]
    time_mode: str
    numeric_columns: List[str]
    last_timestamp: Union[int, str, None]
    last_timestamp_label: Optional[str]
    time_parsed: bool
    duration_label: Optional[str]
    warnings: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def categories(self) -> CategoryMap:
        return categorize_numeric_columns(self.headers, self.numeric_columns)


# ---------------------------------------------------------------------------
# Type coercion
# ---------------------------------------------------------------------------


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value == ""


def coerce_number(value: object) -> Optional[Union[int, float]]:
    """Return ``value`` as a finite number or ``None``.

    Strings may use a comma as the decimal separator ("12,5"). Like
    ``parseFloat`` only the leading numeric part of a string is read, so
    ``"45 W"`` becomes ``45.0``.
    """

    if _is_blank(value):
        return None
    if isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        normalized = value.replace(",", ".", 1)
        match = _LEADING_FLOAT_RE.match(normalized)
        if not match:
            return None
        try:
            parsed = float(match.group(1))
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _dynamic_type(value: object) -> Scalar:
    """Convert numeric-looking and boolean text the way the tokenizer sniffs types."""

    if not isinstance(value, str):
        return value
    if value in ("true", "TRUE"):
        return True
    if value in ("false", "FALSE"):
        return False
    if _FLOAT_RE.match(value):
        text = value.strip()
        number = float(text)
        if not -_MAX_EXACT_FLOAT < number < _MAX_EXACT_FLOAT:
            return value
        if re.fullmatch(r"-?\d+", text):
            return int(text)
        return number
    return value


# ---------------------------------------------------------------------------
# Tokenizer / row parser
# ---------------------------------------------------------------------------


def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith(_BOM) else text


def _unescape_quoted_header(text: str) -> str:
    """Undo the ad hoc quoting some exporters wrap around the whole header line."""

    lines = re.split(r"\r?\n", text)
    first = lines[0] if lines else ""
    if not (first.startswith('"') and "," in first):
        return text

    cleaned = re.sub(r'^"', "", first)
    cleaned = re.sub(r'"$', "", cleaned)
    cleaned = cleaned.replace('"""', '"').replace('""', "")
    dprint(f"[parse] unescaped quoted header: {first!r} -> {cleaned!r}")
    lines[0] = cleaned
    return "\n".join(lines)


def _guess_delimiter(lines: Sequence[str]) -> Optional[str]:
    """Return the delimiter giving the most consistent field counts, if any."""

    preview = [line for line in lines if line.strip()][:_DELIMITER_PREVIEW_LINES]
    if not preview:
        return None

    best: Optional[str] = None
    best_delta: Optional[float] = None
    best_avg = 0.0
    for delim in DELIMITER_CANDIDATES:
        counts = [line.count(delim) + 1 for line in preview]
        avg = sum(counts) / len(counts)
        if avg < 1.99:
            continue
        delta = float(np.mean([abs(c - counts[0]) for c in counts]))
        if (
            best_delta is None
            or delta < best_delta
            or (delta == best_delta and avg > best_avg)
        ):
            best, best_delta, best_avg = delim, delta, avg
    return best


def _field_count(line: str, delimiter: str) -> int:
    try:
        return max(len(next(csv.reader([line], delimiter=delimiter))), 1)
    except (StopIteration, csv.Error):
        return max(line.count(delimiter) + 1, 1)


def _tokenize(text: str, delimiter: str, width: int, messages: List[str]) -> pd.DataFrame:
    """Split text into a ``width``-column frame of raw strings."""

    def _fit_row(bad_line: List[str]) -> List[str]:
        # Ragged rows are expected noise; keep the leading fields.
        return bad_line[:width]

    kwargs = dict(
        engine="python",
        sep=delimiter,
        header=None,
        names=list(range(width)),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        on_bad_lines=_fit_row,
        index_col=False,
    )
    quotings = (csv.QUOTE_MINIMAL, csv.QUOTE_NONE)
    if text.count('"') % 2:
        # An unbalanced quote would fold every later line into a single cell.
        dprint("[parse] unbalanced quote, tokenizing with QUOTE_NONE")
        messages.append(UNTERMINATED_QUOTE_MESSAGE)
        quotings = (csv.QUOTE_NONE,)
    for quoting in quotings:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                df = pd.read_csv(io.StringIO(text), quoting=quoting, **kwargs)
            except (pd.errors.ParserError, csv.Error) as exc:
                dprint(f"[parse] tokenizer error with quoting={quoting}: {exc}")
                messages.append(str(exc))
                continue
        for item in caught:
            if issubclass(item.category, pd.errors.ParserWarning):
                messages.append(str(item.message))
        return df
    return pd.DataFrame(columns=list(range(width)))


def _normalize_cells(df: pd.DataFrame) -> pd.DataFrame:
    """Turn pandas NaN placeholders into ``None`` and drop fully blank rows."""

    df = df.astype(object).where(df.notna(), None)
    blank = df.apply(
        lambda col: col.map(lambda v: v is None or str(v).strip() == "")
    ).all(axis=1)
    return df.loc[~blank].reset_index(drop=True)


def _looks_like_header(cells: Iterable[object]) -> bool:
    present = [str(c).strip() for c in cells if c is not None and str(c).strip()]
    if not present:
        return False
    return not all(_FLOAT_RE.match(c) for c in present)


def _dedupe_headers(names: Sequence[str]) -> List[str]:
    """Suffix repeated names (``Temp``, ``Temp_1``, ...) so headers stay distinct."""

    seen: Set[str] = set()
    result: List[str] = []
    for name in names:
        candidate = name
        suffix = 0
        while candidate in seen:
            suffix += 1
            candidate = f"{name}_{suffix}"
        seen.add(candidate)
        result.append(candidate)
    return result


def _dedupe_messages(messages: Iterable[str]) -> List[str]:
    """Drop field-count complaints and repeated messages, keeping first-seen order."""

    kept = [msg for msg in messages if not _FIELD_COUNT_RE.search(msg)]
    return list(dict.fromkeys(kept))


def read_raw_table(text: str) -> RawTable:
    """Tokenize CSV text into a :class:`RawTable`.

    Raises
    ------
    EmptyFileError
        The text is blank.
    NoDataError
        Neither a header row nor headerless rows could be recovered.
    NoValidRowsError
        Every row was blank.
    """

    text = _strip_bom(text or "")
    if not text.strip():
        raise EmptyFileError("The file is empty.")

    text = _unescape_quoted_header(text)

    lines = re.split(r"\r?\n", text)
    while lines and not lines[0].strip():
        lines.pop(0)
    text = "\n".join(lines)

    messages: List[str] = []
    delimiter = _guess_delimiter(lines)
    if delimiter is None:
        delimiter = DEFAULT_DELIMITER
        messages.append(UNDETECTABLE_DELIMITER_MESSAGE)
    width = _field_count(lines[0], delimiter) if lines else 1
    dprint(f"[parse] delimiter={delimiter!r} width={width}")

    grid = _normalize_cells(_tokenize(text, delimiter, width, messages))
    if grid.empty:
        raise NoDataError("No data detected in the CSV.")

    first = grid.iloc[0].tolist()
    if _looks_like_header(first):
        keep = [
            (pos, str(name).strip())
            for pos, name in enumerate(first)
            if name is not None and str(name).strip()
        ]
        headers = _dedupe_headers([name for _, name in keep])
        body = grid.iloc[1:, [pos for pos, _ in keep]]
    else:
        dprint("[parse] no header row detected; synthesizing column names")
        headers = [f"Column {idx + 1}" for idx in range(grid.shape[1])]
        body = grid

    body = body.copy()
    body.columns = headers
    body = _normalize_cells(body)
    if body.empty:
        raise NoValidRowsError("No valid rows after parsing.")

    body = pd.DataFrame(
        {
            header: pd.Series([_dynamic_type(v) for v in body[header]], dtype=object)
            for header in headers
        },
        columns=headers,
    )
    dprint(f"[parse] headers={headers} rows={len(body)}")
    return RawTable(headers=headers, rows=body, warnings=_dedupe_messages(messages))


# ---------------------------------------------------------------------------
# Numeric detection & classification
# ---------------------------------------------------------------------------


def get_numeric_columns(
    headers: Sequence[str],
    rows: pd.DataFrame,
    threshold: float = NUMERIC_RATIO_THRESHOLD,
) -> List[str]:
    """Return the headers whose non-empty values are mostly numeric."""

    numeric: List[str] = []
    for header in headers:
        if header not in rows.columns:
            continue
        values = rows[header]
        present = values[~values.map(_is_blank)]
        sample_count = len(present)
        if sample_count == 0:
            continue
        numeric_count = int(present.map(lambda v: coerce_number(v) is not None).sum())
        ratio = numeric_count / sample_count
        dprint(f"[numeric] {header!r}: {numeric_count}/{sample_count} = {ratio:.2f}")
        if ratio >= threshold:
            numeric.append(header)
    return numeric


CATEGORY_RULES: Tuple[Tuple["re.Pattern[str]", str], ...] = (
    (re.compile(r"(cpu|core|package|tdp|vrm|socket)", re.IGNORECASE), "cpu"),
    (re.compile(r"(gpu|graphics|vram|rtx|gtx|radeon|nvidia|amd)", re.IGNORECASE), "gpu"),
    (re.compile(r"(ram|memory|mem|dimm|dram)", re.IGNORECASE), "ram"),
)


def classify_column(header: str) -> str:
    """Return the hardware bucket for a header; the first matching rule wins."""

    for pattern, bucket in CATEGORY_RULES:
        if pattern.search(header):
            return bucket
    return "other"


def categorize_columns(headers: Iterable[str]) -> CategoryMap:
    categories = CategoryMap()
    for header in headers:
        getattr(categories, classify_column(header)).append(header)
    return categories


def categorize_numeric_columns(
    headers: Iterable[str], numeric_columns: Iterable[str]
) -> CategoryMap:
    """Categorize all headers, then keep only the chartable ones."""

    numeric_set = set(numeric_columns)
    categorized = categorize_columns(headers)
    return CategoryMap(
        **{
            bucket: [col for col in columns if col in numeric_set]
            for bucket, columns in categorized.items()
        }
    )


# ---------------------------------------------------------------------------
# Pipeline entry points
# ---------------------------------------------------------------------------


def parse_csv_text(text: str, file_name: str = "") -> ParsedDataset:
    """Run the full inference pipeline over CSV text.

    Raises a :class:`CsvParseError` subclass instead of returning a partial
    dataset.
    """

    table = read_raw_table(text)
    axis = resolve_time_axis(table.headers, table.rows)
    if axis.rows.empty:
        raise NoValidRowsError("No valid data rows after filtering.")

    numeric_columns = [
        column
        for column in get_numeric_columns(table.headers, axis.rows)
        if column != axis.time_key
    ]
    dprint(
        f"[parse] {file_name or '<text>'}: mode={axis.time_mode} "
        f"time_key={axis.time_key!r} numeric={numeric_columns}"
    )

    return ParsedDataset(
        file_name=file_name,
        headers=list(table.headers),
        rows=axis.rows,
        date_key=axis.date_key,
        time_key=axis.time_key,
        time_mode=axis.time_mode,
        numeric_columns=numeric_columns,
        last_timestamp=axis.last_timestamp,
        last_timestamp_label=axis.last_timestamp_label,
        time_parsed=axis.time_parsed,
        duration_label=axis.duration_label,
        warnings=list(table.warnings),
    )


def _decode(raw: Union[bytes, str]) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw)


def parse_uploaded_file(file_obj) -> ParsedDataset:
    """Read a file-like object (``.read()`` and optional ``.name``) and parse it."""

    if hasattr(file_obj, "seek"):
        file_obj.seek(0)
    text = _decode(file_obj.read())
    name = getattr(file_obj, "name", "") or ""
    return parse_csv_text(text, file_name=str(name))
