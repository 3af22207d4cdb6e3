"""CSV input/output for recorded location fixes and retained tracks."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Sequence

from earthlord.geo import distance_between
from earthlord.models import LocationFix, TrackPoint
from earthlord.timeutils import dt_from_epoch_ms

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("geoTime", "latitude", "longitude")


@dataclass(frozen=True, slots=True)
class CsvSummary:
    """Quick summary of CSV parsing."""

    rows_total: int
    rows_parsed: int
    rows_skipped: int
    fieldnames: Sequence[str]


def _parse_int(value: str) -> int:
    return int(value.strip())


def _parse_float(value: str) -> float:
    return float(value.strip())


def _check_fields(fieldnames: Sequence[str] | None) -> None:
    present = set(fieldnames or ())
    missing = [name for name in REQUIRED_FIELDS if name not in present]
    if missing:
        raise KeyError(f"CSV缺少必要字段：{missing}. 实际字段：{list(fieldnames or ())}")


def _fix_from_row(row: Mapping[str, str]) -> LocationFix:
    return LocationFix(
        latitude=_parse_float(row["latitude"]),
        longitude=_parse_float(row["longitude"]),
        # a missing accuracy counts as invalid, not as perfect
        horizontal_accuracy_m=_parse_float(row.get("horizontalAccuracy", "-1") or "-1"),
        timestamp_ms=_parse_int(row["geoTime"]),
    )


def iter_location_fixes(csv_path: str | Path) -> Iterator[LocationFix]:
    """Yield fixes from a recorded location CSV.

    Columns used: ``geoTime`` (epoch ms), ``latitude``, ``longitude`` and the
    optional ``horizontalAccuracy`` (meters). Other columns are ignored.

    Raises:
        KeyError: If a required column is missing.
    """

    p = Path(csv_path)
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            return
        _check_fields(reader.fieldnames)
        for row in reader:
            try:
                yield _fix_from_row(row)
            except (ValueError, TypeError, AttributeError):
                # 损坏/空行直接跳过
                continue


def load_location_fixes(csv_path: str | Path) -> tuple[list[LocationFix], CsvSummary]:
    """Load all fixes into memory, sorted by time.

    Returns:
        (fixes, summary)
    """

    p = Path(csv_path)
    rows_total = 0
    parsed: list[LocationFix] = []
    fieldnames: Sequence[str] = ()

    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or ()
        if fieldnames:
            _check_fields(fieldnames)
        for row in reader:
            rows_total += 1
            try:
                parsed.append(_fix_from_row(row))
            except (ValueError, TypeError, AttributeError):
                continue

    parsed.sort(key=lambda fx: fx.timestamp_ms)
    summary = CsvSummary(
        rows_total=rows_total,
        rows_parsed=len(parsed),
        rows_skipped=rows_total - len(parsed),
        fieldnames=fieldnames,
    )
    if summary.rows_skipped > 0:
        logger.warning("CSV中有 %s 行解析失败已跳过", summary.rows_skipped)
    return parsed, summary


def write_fixes_csv(fixes: Iterable[LocationFix], out_path: str | Path) -> int:
    """Write fixes in the recorded-location CSV format. Returns the row count."""

    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=["geoTime", "latitude", "longitude", "horizontalAccuracy"])
        w.writeheader()
        for fx in fixes:
            w.writerow(
                {
                    "geoTime": fx.timestamp_ms,
                    "latitude": f"{fx.latitude:.7f}",
                    "longitude": f"{fx.longitude:.7f}",
                    "horizontalAccuracy": f"{fx.horizontal_accuracy_m:.1f}",
                }
            )
            n += 1
    return n


def write_track_csv(points: Sequence[TrackPoint], out_path: str | Path, tz_name: str) -> None:
    """Export retained track points with local time and running distance."""

    p = Path(out_path)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(
            f,
            fieldnames=[
                "index",
                "time_local",
                "epoch_ms",
                "latitude",
                "longitude",
                "accuracy_m",
                "step_m",
                "cumulative_m",
            ],
        )
        w.writeheader()
        cumulative = 0.0
        for i, pt in enumerate(points):
            step = distance_between(points[i - 1], pt) if i > 0 else 0.0
            cumulative += step
            w.writerow(
                {
                    "index": i + 1,
                    "time_local": dt_from_epoch_ms(pt.timestamp_ms, tz_name).isoformat(sep=" "),
                    "epoch_ms": pt.timestamp_ms,
                    "latitude": pt.latitude,
                    "longitude": pt.longitude,
                    "accuracy_m": pt.accuracy_m,
                    "step_m": f"{step:.2f}",
                    "cumulative_m": f"{cumulative:.2f}",
                }
            )
