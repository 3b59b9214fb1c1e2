"""Run report adapters."""

from repo_refresher.adapters.report.markdown_report import MarkdownReportGenerator, summarize

__all__ = ["MarkdownReportGenerator", "summarize"]
