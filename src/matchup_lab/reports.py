"""Report output: decision dumps, evaluation tables (CSV and console)."""

from __future__ import annotations

import csv
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import IO, Any, List, Optional, Sequence

from .engine import Decision

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


# ============================================================================
# Decision logs
# ============================================================================


def decision_log_path(
    log_dir: Path,
    row_index: int,
    row_species: str,
    col_index: int,
    col_species: str,
    repetition: int,
    swap: int,
) -> Path:
    """Decision Logs/(i)Species-(j)Species_k_l.json"""
    return log_dir / f"({row_index}){row_species}-({col_index}){col_species}_{repetition}_{swap}.json"


def save_decision(decision: Decision, path: Path) -> Optional[Path]:
    """
    Dump the whole decision (tree included) as JSON.

    This is best effort: a failure is logged and swallowed.

    Returns:
        The written path, or None if writing failed.
    """
    try:
        path.write_text(decision.model_dump_json(), encoding="utf-8")
    except (OSError, ValueError) as e:
        logger.warning("failed to save decision data to %s: %s", path, e)
        return None
    return path


# ============================================================================
# Evaluation tables
# ============================================================================


def format_cell(value: float) -> str:
    """Round half away from zero to an integer string; NaN stays 'NaN'."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return str(int(math.copysign(math.floor(abs(value) + 0.5), value)))


def table_path(output_dir: Path, prefix: str, *params: Any, now: Optional[datetime] = None) -> Path:
    """Outputs/<prefix>_<param>_..._<YYYYmmddHHMMSS>.csv"""
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    parts = [prefix, *(str(p) for p in params), stamp]
    return output_dir / ("_".join(parts) + ".csv")


class EvalTableWriter:
    """
    CSV writer for a row-label x column-label matrix of numbers.

    The header goes out on open and each row as soon as it is written, so a
    run that dies half way still leaves the finished rows on disk.

        ,ColA,ColB
        RowA,12,-3
    """

    def __init__(self, path: Path, column_labels: Sequence[str]):
        self.path = path
        self.column_labels = list(column_labels)
        self._file: Optional[IO[str]] = None
        self._writer: Any = None
        self.rows_written = 0

    def open(self) -> "EvalTableWriter":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file, lineterminator="\n")
        self._writer.writerow(["", *self.column_labels])
        self._file.flush()
        return self

    def write_row(self, label: str, values: Sequence[float]) -> None:
        if self._file is None:
            raise RuntimeError("EvalTableWriter is not open")
        if len(values) != len(self.column_labels):
            raise ValueError(
                f"Row {label!r} has {len(values)} values, expected {len(self.column_labels)}"
            )
        self._writer.writerow([label, *(format_cell(v) for v in values)])
        self._file.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "EvalTableWriter":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def write_eval_table(
    table: Sequence[Sequence[float]],
    row_labels: Sequence[str],
    column_labels: Sequence[str],
    path: Path,
) -> Path:
    """Write a whole table at once."""
    if len(table) != len(row_labels):
        raise ValueError(f"{len(table)} rows but {len(row_labels)} row labels")
    with EvalTableWriter(path, column_labels) as writer:
        for label, row in zip(row_labels, table):
            writer.write_row(label, row)
    return path


def render_table(
    table: Sequence[Sequence[float]],
    row_labels: Sequence[str],
    column_labels: Sequence[str],
) -> str:
    """The table as console text, same layout as the CSV."""
    lines: List[str] = ["        ," + ",".join(column_labels)]
    for label, row in zip(row_labels, table):
        lines.append(",".join([label, *(format_cell(v) for v in row)]))
    return "\n".join(lines)
