"""CLI entry point for repo refresher."""

import asyncio
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

import typer

from repo_refresher.adapters.llm import ClaudeTranslator
from repo_refresher.adapters.notifications import WebhookDispatcher
from repo_refresher.adapters.report import MarkdownReportGenerator, summarize
from repo_refresher.adapters.sources import GitHubMetadataSource
from repo_refresher.adapters.storage import (
    LocalAssetStore,
    YamlRecordStore,
    YamlSnapshotStore,
    exclude_status,
)
from repo_refresher.config import Settings, get_settings
from repo_refresher.core import Record, RecordOutcome
from repo_refresher.use_cases import EnrichmentPipeline, RefreshService

app = typer.Typer(help="Refresh tracked GitHub repositories and notify webhook subscribers.")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_service(settings: Settings, no_webhook: bool = False) -> RefreshService:
    """Wire adapters from settings."""
    store = YamlRecordStore(settings.paths.records_dir)
    webhook_settings = settings.webhook_settings()
    notifier = WebhookDispatcher(webhook_settings) if (webhook_settings.enabled and not no_webhook) else None

    pipeline = EnrichmentPipeline(
        metadata_source=GitHubMetadataSource(settings.github_token, settings.github),
        asset_store=LocalAssetStore(settings.assets),
        translator=ClaudeTranslator(settings),
        persistence=store,
        snapshot_store=YamlSnapshotStore(settings.paths.snapshots_dir),
        notifier=notifier,
        task_name=settings.pipeline.task_name,
        step_timeout=settings.pipeline.step_timeout,
        icon_url_template=settings.pipeline.icon_url_template,
    )
    return RefreshService(
        source=store,
        pipeline=pipeline,
        exclude=exclude_status(settings.pipeline.excluded_status),
    )


def _print_outcome(outcome: RecordOutcome) -> None:
    meta = outcome.meta
    mark = "✓" if meta.updated else "✗"
    print(f"  {mark} {outcome.data.full_name} ★{outcome.data.stars} ({meta.processing_time_ms:.0f} ms)")


@app.command()
def run(
    config: Path = typer.Option(Path("config.yaml"), "--config", help="Path to YAML config"),
    report: Optional[Path] = typer.Option(None, "--report", help="Where to write the markdown report"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    no_webhook: bool = typer.Option(False, "--no-webhook", help="Disable webhook notifications"),
) -> None:
    """Refresh every tracked repository."""
    configure_logging(verbose)
    settings = get_settings(config)

    print("\n" + "=" * 70)
    print("REPO REFRESHER - update GitHub data")
    print("=" * 70)

    print("\nCredentials:")
    print(f"  {'✓' if settings.github_token else '✗'} GITHUB_TOKEN")
    print(f"  {'✓' if settings.anthropic_api_key else '✗'} ANTHROPIC_API_KEY (translations)")
    destinations = settings.webhook_settings().urls
    if no_webhook:
        print("  ⚠️  DAILY_WEBHOOK_URL - disabled by --no-webhook")
    elif destinations:
        print(f"  ✓ DAILY_WEBHOOK_URL - {len(destinations)} destination(s)")
    else:
        print("  ⚠️  DAILY_WEBHOOK_URL - not set (notifications disabled)")

    service = build_service(settings, no_webhook=no_webhook)

    print("\nRecords:")
    outcomes = asyncio.run(service.refresh_all(on_outcome=_print_outcome))

    summary = summarize(outcomes)
    print("\n" + "=" * 70)
    print(
        f"Processed {summary['total']}: {summary['updated']} updated, "
        f"{summary['failed']} failed, {summary['snapshots']} snapshots"
    )

    if report is None:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S")
        report = settings.paths.reports_dir / f"{timestamp}_refresh.md"
    report.parent.mkdir(parents=True, exist_ok=True)
    report.write_text(MarkdownReportGenerator().generate(outcomes, date.today()), encoding="utf-8")
    print(f"Report saved to {report}")


@app.command()
def track(
    full_name: str = typer.Argument(..., help="Repository as owner/name"),
    record_id: Optional[str] = typer.Option(None, "--id", help="Record id (defaults to owner/name)"),
    owner_id: Optional[int] = typer.Option(None, "--owner-id", help="GitHub owner id for the icon"),
    config: Path = typer.Option(Path("config.yaml"), "--config", help="Path to YAML config"),
) -> None:
    """Start tracking a repository."""
    owner, _, name = full_name.partition("/")
    if not owner or not name:
        raise typer.BadParameter("expected owner/name", param_hint="FULL_NAME")

    settings = get_settings(config)
    store = YamlRecordStore(settings.paths.records_dir)
    record = Record(
        id=record_id or full_name,
        owner=owner,
        name=name,
        owner_id=owner_id,
        created_at=datetime.now(timezone.utc),
    )
    path = store.add(record)
    print(f"Tracking {record.full_name} ({path})")


if __name__ == "__main__":
    app()
