"""Run report formatting functions.

Provides human-readable and machine-readable output for bisync runs:

- ``format_run_report`` -- full post-run summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by queue.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import RunReport, TransferResult

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _section(
    lines: list[str], title: str, results: list[TransferResult]
) -> None:
    if not results:
        return
    lines.append(f"{title}:")
    for r in results:
        lines.append(f"  {r.path}")
    lines.append("")


def format_run_report(report: RunReport) -> str:
    """Format a complete run report as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: The completed run report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Bisync {report.mode} report for '{report.session}'"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"{len(report.results)} operations: "
        f"{len(report.copied_to_path1)} copied to Path1, "
        f"{len(report.copied_to_path2)} copied to Path2, "
        f"{len(report.deleted_from_path1) + len(report.deleted_from_path2)}"
        f" deleted, {len(report.conflicts)} conflicts, "
        f"{len(report.errors)} errors"
    )
    lines.append("")

    ok = [r for r in report.results if r.success]
    for title, results in (
        ("Copied to Path1", report.copied_to_path1),
        ("Copied to Path2", report.copied_to_path2),
        ("Deleted from Path1", report.deleted_from_path1),
        ("Deleted from Path2", report.deleted_from_path2),
    ):
        _section(lines, title, [r for r in results if r.success])

    if report.conflicts:
        lines.append("Conflicts (renamed on both sides):")
        for path in report.conflicts:
            lines.append(f"  {path}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.side}:{r.path}: {r.error}")
        lines.append("")

    if not ok and not report.errors:
        lines.append("No changes made.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------

_QUEUE_LABELS = [
    ("renamed1", "RENAME ON PATH1"),
    ("renamed2", "RENAME ON PATH2"),
    ("copy2to1", "COPY TO PATH1"),
    ("copy1to2", "COPY TO PATH2"),
    ("delete1", "DELETE ON PATH1"),
    ("delete2", "DELETE ON PATH2"),
    ("rename_skipped", "IDENTICAL, NOT RENAMED"),
    ("deleted_on_both", "DELETED ON BOTH"),
    ("kind_clash", "FILE/DIRECTORY CLASH, SKIPPED"),
]


def format_dry_run_preview(report: RunReport) -> str:
    """Format a dry-run preview grouped by queue.

    Args:
        report: A dry-run report (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Session: {report.session}")
    lines.append("")

    shown = False
    for name, label in _QUEUE_LABELS:
        paths = report.queues.get(name, [])
        if not paths:
            continue
        shown = True
        lines.append(f"[{label}]")
        for path in paths:
            lines.append(f"  {path}")
        lines.append("")

    if not shown:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: RunReport) -> dict:
    """Convert a run report to a structured dict for JSON serialisation.

    Args:
        report: The run report.

    Returns:
        Dict with session info, counts, queues and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "operation": r.operation.value,
            "side": r.side,
            "path": r.path,
            "success": r.success,
        }
        if r.source:
            entry["source"] = r.source
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "session": report.session,
        "mode": report.mode,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "copied_to_path1": len(report.copied_to_path1),
            "copied_to_path2": len(report.copied_to_path2),
            "deleted_from_path1": len(report.deleted_from_path1),
            "deleted_from_path2": len(report.deleted_from_path2),
            "conflicts": len(report.conflicts),
            "errors": len(report.errors),
        },
        "queues": report.queues,
        "results": results_list,
    }
