"""Run tracker and summary report.

The tracker is an append-only CSV with one `name,STATUS,logpath` line per
finished job, written as soon as the job finishes. The summary is written
once at the end of the run.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import csv
import io
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple, Union

from repo_builder.schemas import JobOutcome, RunSummary

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def job_log_path(log_dir: Path, name: str, run_tag: str) -> Path:
    """Per-run, per-job log file."""
    return log_dir / f"{name}_{run_tag}.log"


def _csv_line(row: List[str]) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(row)
    return buf.getvalue()


@dataclass
class Report:
    """Rendered summary of a run."""
    summary: RunSummary
    summary_path: Path
    lines: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.summary.succeeded

    @property
    def failed(self) -> int:
        return self.summary.failed


class ReportWriter:
    """Writes the tracker and summary files of one run."""

    def __init__(self, log_dir: Union[str, Path], run_tag: str):
        self.log_dir = Path(log_dir)
        self.run_tag = run_tag
        self._lock = threading.Lock()

    @property
    def tracker_path(self) -> Path:
        return self.log_dir / f"build-tracker-{self.run_tag}.csv"

    @property
    def summary_path(self) -> Path:
        return self.log_dir / f"build-summary-{self.run_tag}.csv"

    def log_path(self, name: str) -> Path:
        return job_log_path(self.log_dir, name, self.run_tag)

    def append(self, outcome: JobOutcome) -> None:
        """
        Append one outcome to the tracker.

        The line goes out in a single write on an O_APPEND descriptor and is
        fsynced before returning, so concurrent appends never tear and a
        killed process still leaves every finished job on disk.
        """
        data = _csv_line([outcome.name, outcome.status, str(outcome.log_path)]).encode("utf-8")

        with self._lock:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.tracker_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                os.write(fd, data)
                os.fsync(fd)
            finally:
                os.close(fd)

    def read_tracker(self) -> List[Tuple[str, str, str]]:
        """Read tracker rows as (name, status, log_path).

        Raises:
            OSError: If the tracker cannot be read.
            UnicodeDecodeError, csv.Error: If the tracker is corrupted.
        """
        rows = []
        with open(self.tracker_path, newline="", encoding="utf-8") as f:
            for row in csv.reader(f):
                if len(row) != 3:
                    logger.warning(f"Ignoring malformed tracker line: {row}")
                    continue
                rows.append((row[0], row[1], row[2]))
        return rows

    def _ordered(self, summary: RunSummary, warnings: List[str]) -> Tuple[JobOutcome, ...]:
        try:
            rows = self.read_tracker()
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            warnings.append(f"Could not read tracker file {self.tracker_path}: {e}")
            return summary.outcomes

        by_name = {o.name: o for o in summary.outcomes}
        ordered = []
        for name, _status, _log in rows:
            outcome = by_name.pop(name, None)
            if outcome is not None:
                ordered.append(outcome)
        if by_name:
            warnings.append(f"Outcomes missing from tracker: {sorted(by_name)}")
            ordered.extend(o for o in summary.outcomes if o.name in by_name)
        return tuple(ordered)

    def finalize(self, summary: RunSummary) -> Report:
        """
        Write the summary file and return the rendered report.

        Outcomes are listed in tracker (completion) order. An unreadable
        tracker is reported in Report.warnings and the in-memory order is
        used instead.
        """
        warnings: List[str] = []
        summary = RunSummary(
            started_at=summary.started_at,
            finished_at=summary.finished_at,
            outcomes=self._ordered(summary, warnings),
        )

        rows = [
            ["Script Start Time", summary.started_at.strftime(TIME_FORMAT)],
            ["Script End Time", summary.finished_at.strftime(TIME_FORMAT)],
            ["---"],
            ["Status", "Repository", "Log File"],
        ]
        rows.extend([o.status, o.name, str(o.log_path)] for o in summary.outcomes)

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.summary_path, "w", newline="", encoding="utf-8") as f:
                csv.writer(f, lineterminator="\n").writerows(rows)
        except OSError as e:
            warnings.append(f"Could not write summary file {self.summary_path}: {e}")

        lines = []
        for o in summary.outcomes:
            badge = "[DONE]" if o.succeeded else "[FAIL]"
            lines.append(f"{badge} {o.name} - see log: {o.log_path}")

        for warning in warnings:
            logger.warning(warning)

        return Report(summary=summary, summary_path=self.summary_path, lines=lines, warnings=warnings)


def latest_summary(log_dir: Union[str, Path]) -> Union[Path, None]:
    """Most recent build-summary-*.csv in log_dir, or None."""
    candidates = sorted(Path(log_dir).glob("build-summary-*.csv"))
    return candidates[-1] if candidates else None
