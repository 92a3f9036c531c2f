"""Tests for the tracker and summary report."""

import threading
from datetime import datetime
from pathlib import Path

from repo_builder.report import ReportWriter, latest_summary
from repo_builder.schemas import FAIL, SUCCESS, JobOutcome, RunSummary


def _outcome(writer, name, status=SUCCESS):
    return JobOutcome(name=name, status=status, log_path=writer.log_path(name))


START = datetime(2025, 1, 2, 3, 4, 5)
END = datetime(2025, 1, 2, 3, 9, 0)


class TestTracker:
    """Tests for ReportWriter.append and read_tracker."""

    def test_paths(self, tmp_path):
        """Tracker, summary and log paths share the run tag."""
        writer = ReportWriter(tmp_path, "20250102_030405")
        assert writer.tracker_path == tmp_path / "build-tracker-20250102_030405.csv"
        assert writer.summary_path == tmp_path / "build-summary-20250102_030405.csv"
        assert writer.log_path("api") == tmp_path / "api_20250102_030405.log"

    def test_append_writes_line(self, tmp_path):
        """Each append adds one name,STATUS,logpath line."""
        writer = ReportWriter(tmp_path / "logs", "tag")
        writer.append(_outcome(writer, "api"))
        writer.append(_outcome(writer, "web", FAIL))

        lines = writer.tracker_path.read_text().splitlines()
        assert lines == [
            f"api,SUCCESS,{writer.log_path('api')}",
            f"web,FAIL,{writer.log_path('web')}",
        ]

    def test_concurrent_appends(self, tmp_path):
        """Appends from many threads never tear."""
        writer = ReportWriter(tmp_path, "tag")
        threads = [
            threading.Thread(target=writer.append, args=(_outcome(writer, f"job{i}"),))
            for i in range(40)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        rows = writer.read_tracker()
        assert len(rows) == 40
        assert sorted(r[0] for r in rows) == sorted(f"job{i}" for i in range(40))
        assert all(r[1] == SUCCESS for r in rows)


class TestFinalize:
    """Tests for ReportWriter.finalize."""

    def test_summary_file(self, tmp_path):
        """Summary has header lines then one line per outcome."""
        writer = ReportWriter(tmp_path, "tag")
        api, web = _outcome(writer, "api"), _outcome(writer, "web", FAIL)
        writer.append(api)
        writer.append(web)

        report = writer.finalize(RunSummary(START, END, (api, web)))

        assert writer.summary_path.read_text().splitlines() == [
            "Script Start Time,2025-01-02 03:04:05",
            "Script End Time,2025-01-02 03:09:00",
            "---",
            "Status,Repository,Log File",
            f"SUCCESS,api,{api.log_path}",
            f"FAIL,web,{web.log_path}",
        ]
        assert report.succeeded == 1
        assert report.failed == 1
        assert report.warnings == []
        assert report.lines == [
            f"[DONE] api - see log: {api.log_path}",
            f"[FAIL] web - see log: {web.log_path}",
        ]

    def test_tracker_order_wins(self, tmp_path):
        """Outcomes are reported in tracker order, not submission order."""
        writer = ReportWriter(tmp_path, "tag")
        first, second, third = (_outcome(writer, n) for n in ("a", "b", "c"))
        for outcome in (third, first, second):
            writer.append(outcome)

        report = writer.finalize(RunSummary(START, END, (first, second, third)))

        assert [o.name for o in report.summary.outcomes] == ["c", "a", "b"]

    def test_missing_tracker_is_warning(self, tmp_path):
        """An unreadable tracker is reported, not raised."""
        writer = ReportWriter(tmp_path, "tag")
        outcomes = (_outcome(writer, "a"), _outcome(writer, "b", FAIL))

        report = writer.finalize(RunSummary(START, END, outcomes))

        assert len(report.warnings) == 1
        assert "Could not read tracker" in report.warnings[0]
        assert [o.name for o in report.summary.outcomes] == ["a", "b"]
        assert writer.summary_path.exists()

    def test_corrupted_tracker_is_warning(self, tmp_path):
        """A tracker that is not valid UTF-8 is reported, not raised."""
        writer = ReportWriter(tmp_path, "tag")
        writer.tracker_path.write_bytes(b"\xff\xfe\x00garbage\n")
        outcomes = (_outcome(writer, "a"), _outcome(writer, "b", FAIL))

        report = writer.finalize(RunSummary(START, END, outcomes))

        assert "Could not read tracker" in report.warnings[0]
        assert [o.name for o in report.summary.outcomes] == ["a", "b"]
        assert report.lines[1] == f"[FAIL] b - see log: {outcomes[1].log_path}"

    def test_outcome_missing_from_tracker(self, tmp_path):
        """Outcomes absent from the tracker are appended with a warning."""
        writer = ReportWriter(tmp_path, "tag")
        a, b = _outcome(writer, "a"), _outcome(writer, "b")
        writer.append(b)

        report = writer.finalize(RunSummary(START, END, (a, b)))

        assert [o.name for o in report.summary.outcomes] == ["b", "a"]
        assert "missing from tracker" in report.warnings[0]


class TestLatestSummary:
    """Tests for latest_summary."""

    def test_picks_newest(self, tmp_path):
        """The lexically newest run tag wins."""
        for tag in ("20250101_000000", "20250301_000000", "20250201_000000"):
            (tmp_path / f"build-summary-{tag}.csv").write_text("x")
        assert latest_summary(tmp_path) == tmp_path / "build-summary-20250301_000000.csv"

    def test_none_when_empty(self, tmp_path):
        """No summaries gives None."""
        assert latest_summary(tmp_path) is None
        assert latest_summary(Path(tmp_path / "missing")) is None
