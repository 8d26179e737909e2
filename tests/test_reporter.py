"""Tests for run report formatting."""

import json

from bisync.sync.models import (
    PATH1,
    PATH2,
    Operation,
    RunReport,
    TransferResult,
)
from bisync.sync.reporter import (
    format_dry_run_preview,
    format_run_report,
    report_to_json,
)


def _result(op, side, path, success=True, **kwargs):
    return TransferResult(
        operation=op, side=side, path=path, success=success, **kwargs
    )


def _report(results=(), queues=None, **kwargs):
    return RunReport(
        session="local__a..local__b",
        results=list(results),
        queues=queues or {},
        started_at="2024-01-01T00:00:00+00:00",
        completed_at="2024-01-01T00:00:05+00:00",
        **kwargs,
    )


class TestFormatRunReport:
    """Tests for format_run_report()."""

    def test_sections_and_counts(self):
        report = _report(
            [
                _result(Operation.COPY, PATH2, "new.txt"),
                _result(Operation.COPY, PATH1, "theirs.txt"),
                _result(Operation.DELETE, PATH2, "gone.txt"),
                _result(
                    Operation.COPY, PATH2, "bad.txt", success=False, error="denied"
                ),
            ],
            queues={"renamed1": ["c.txt"], "renamed2": ["c.txt"]},
        )
        text = format_run_report(report)

        assert text.startswith("Bisync normal report for 'local__a..local__b'")
        assert "4 operations: 1 copied to Path1, 2 copied to Path2" in text
        assert "1 deleted, 1 conflicts, 1 errors" in text
        assert "Copied to Path2:\n  new.txt" in text
        assert "Deleted from Path2:\n  gone.txt" in text
        assert "Conflicts (renamed on both sides):\n  c.txt" in text
        assert "path2:bad.txt: denied" in text
        assert "No changes made." not in text

    def test_failed_copies_not_listed_as_copied(self):
        report = _report(
            [_result(Operation.COPY, PATH2, "bad", success=False, error="x")]
        )
        text = format_run_report(report)
        assert "Copied to Path2" not in text
        assert "Errors:" in text

    def test_nothing_done(self):
        text = format_run_report(_report(mode="resync", dry_run=True))
        assert "resync report" in text
        assert "(DRY RUN)" in text
        assert text.endswith("No changes made.")


class TestFormatDryRunPreview:
    """Tests for format_dry_run_preview()."""

    def test_groups_by_queue_in_execution_order(self):
        report = _report(
            dry_run=True,
            queues={
                "copy1to2": ["a", "b"],
                "delete1": ["old"],
                "renamed1": ["c"],
                "copy2to1": [],
            },
        )
        text = format_dry_run_preview(report)
        assert text.startswith("DRY RUN -- No changes will be made")
        assert "[COPY TO PATH2]\n  a\n  b" in text
        assert "[DELETE ON PATH1]\n  old" in text
        assert "[COPY TO PATH1]" not in text
        assert text.index("[RENAME ON PATH1]") < text.index("[COPY TO PATH2]")

    def test_nothing_to_do(self):
        text = format_dry_run_preview(_report(dry_run=True))
        assert text.endswith("No changes needed.")


class TestReportToJson:
    """Tests for report_to_json()."""

    def test_structure_is_serialisable(self):
        report = _report(
            [
                _result(Operation.RENAME, PATH1, "c..path1", source="c"),
                _result(
                    Operation.DELETE, PATH1, "x", success=False, error="busy"
                ),
            ],
            queues={"renamed1": ["c"]},
        )
        data = json.loads(json.dumps(report_to_json(report)))

        assert data["session"] == "local__a..local__b"
        assert data["mode"] == "normal"
        assert data["counts"]["total"] == 2
        assert data["counts"]["conflicts"] == 1
        assert data["counts"]["errors"] == 1
        assert data["results"][0] == {
            "operation": "rename",
            "side": "path1",
            "path": "c..path1",
            "success": True,
            "source": "c",
        }
        assert data["results"][1]["error"] == "busy"
