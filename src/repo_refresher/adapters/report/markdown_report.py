"""Markdown run report generator."""

from datetime import date
from typing import Sequence

from repo_refresher.core import RecordOutcome

_FLAGS = (
    ("icon_processed", "icon"),
    ("description_translated", "description"),
    ("readme_translated", "readme"),
    ("og_image_processed", "og image"),
    ("release_note_translated", "release note"),
)


def summarize(outcomes: Sequence[RecordOutcome]) -> dict[str, int]:
    """Count outcomes by result and by enrichment flag."""
    summary = {
        "total": len(outcomes),
        "updated": sum(1 for o in outcomes if o.meta.updated),
        "failed": sum(1 for o in outcomes if o.meta.error),
        "snapshots": sum(1 for o in outcomes if o.meta.snapshot_added),
    }
    for attr, _ in _FLAGS:
        summary[attr] = sum(1 for o in outcomes if getattr(o.meta, attr))
    return summary


class MarkdownReportGenerator:
    """Generate a markdown report from record outcomes."""

    def generate(self, outcomes: Sequence[RecordOutcome], run_date: date) -> str:
        title = f"# Repository refresh {run_date.isoformat()}"
        if not outcomes:
            return f"{title}\n\nNo records processed."

        summary = summarize(outcomes)
        lines = [
            title,
            "",
            f"Processed: {summary['total']} | Updated: {summary['updated']} | "
            f"Failed: {summary['failed']} | Snapshots: {summary['snapshots']}",
            "",
            "| Repository | Stars | Updated | Snapshot | "
            + " | ".join(label.title() for _, label in _FLAGS)
            + " | Time (ms) |",
            "|---|---:|:---:|:---:|" + ":---:|" * len(_FLAGS) + "---:|",
        ]
        for outcome in sorted(outcomes, key=lambda o: o.data.stars, reverse=True):
            lines.append(self._format_row(outcome))

        failed = [o for o in outcomes if o.meta.error]
        if failed:
            lines.extend(["", "## Failures", ""])
            for outcome in failed:
                lines.append(f"- {outcome.data.full_name}")

        lines.append("")
        return "\n".join(lines)

    def _format_row(self, outcome: RecordOutcome) -> str:
        meta = outcome.meta
        cells = [
            f"[{outcome.data.full_name}](https://github.com/{outcome.data.full_name})",
            str(outcome.data.stars),
            self._mark(meta.updated),
            self._mark(meta.snapshot_added),
            *(self._mark(getattr(meta, attr)) for attr, _ in _FLAGS),
            f"{meta.processing_time_ms:.0f}",
        ]
        return "| " + " | ".join(cells) + " |"

    def _mark(self, value: bool) -> str:
        return "✓" if value else "✗"
