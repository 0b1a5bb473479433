import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from data_processing import (
    categorize_columns,
    categorize_numeric_columns,
    classify_column,
)


def test_classify_column_examples():
    assert classify_column("GPU Temperature") == "gpu"
    assert classify_column("CPU Package Power") == "cpu"
    assert classify_column("Physical Memory Used") == "ram"
    assert classify_column("Fan Speed") == "other"


def test_classify_column_first_rule_wins():
    # Mentions both GPU and memory; the GPU rule is evaluated first.
    assert classify_column("GPU Memory Clock") == "gpu"
    # "Core" puts this in CPU even though it mentions the GPU.
    assert classify_column("GPU Core Clock") == "cpu"
    assert classify_column("nvidia vram usage") == "gpu"
    assert classify_column("DIMM Temp") == "ram"


def test_categorize_columns_is_a_total_partition():
    headers = [
        "Date",
        "Time",
        "Core Clocks (avg) [MHz]",
        "GPU Temperature [°C]",
        "Virtual Memory Committed [MB]",
        "Drive Temperature [°C]",
        "Fan Speed",
    ]
    categories = categorize_columns(headers)

    buckets = [column for _, columns in categories.items() for column in columns]
    assert sorted(buckets) == sorted(headers)
    assert len(buckets) == len(set(buckets))
    assert categories.cpu == ["Core Clocks (avg) [MHz]"]
    assert categories.gpu == ["GPU Temperature [°C]"]
    assert categories.ram == ["Virtual Memory Committed [MB]"]
    assert categories.other == ["Date", "Time", "Drive Temperature [°C]", "Fan Speed"]


def test_categorize_numeric_columns_keeps_header_order():
    headers = ["Time", "CPU Usage", "CPU Temp", "GPU Load", "Notes", "Fan"]
    numeric = ["Fan", "CPU Temp", "CPU Usage", "GPU Load"]

    categories = categorize_numeric_columns(headers, numeric)

    assert categories.cpu == ["CPU Usage", "CPU Temp"]
    assert categories.gpu == ["GPU Load"]
    assert categories.ram == []
    assert categories.other == ["Fan"]
