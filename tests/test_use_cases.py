"""Tests for the enrichment pipeline and batch driver."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from repo_refresher.core import (
    DispatchResult,
    FatalFetchError,
    PersistenceError,
    ProcessingStatus,
    Record,
    RecordUpdateBuilder,
    RepoMetadata,
)
from repo_refresher.use_cases import RefreshService, build_outcome


def _icon_uploads(asset_store: Mock) -> list:
    return [c for c in asset_store.upload_from_url.call_args_list if c.args[1].startswith("icon/")]


@pytest.mark.asyncio
async def test_scenario_new_icon_and_description(make_pipeline, collaborators, record: Record) -> None:
    """Record without icon and release note gets icon, translation and snapshot."""
    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is True
    assert outcome.meta.error is False
    assert outcome.meta.icon_processed is True
    assert outcome.meta.description_translated is True
    assert outcome.meta.release_note_translated is False
    assert outcome.meta.readme_translated is False
    assert outcome.meta.og_image_processed is False
    assert outcome.meta.snapshot_added is True
    assert outcome.meta.processing_time_ms > 0
    assert outcome.data.full_name == "acme/widget"
    assert outcome.data.stars == 120

    asset_store = collaborators["asset_store"]
    asset_store.upload_from_url.assert_awaited_once_with(
        "https://avatars.githubusercontent.com/u/42?v=3&s=100", "icon/acme/widget/icon.png"
    )
    collaborators["translator"].translate_short.assert_awaited_once_with("A widget")
    collaborators["translator"].translate_release_note.assert_not_called()
    collaborators["translator"].translate_long.assert_not_called()
    collaborators["snapshot_store"].add.assert_awaited_once_with(
        "1",
        120,
        {"mentionable_users": 5, "watchers": 7, "pull_requests": 11, "releases": 2, "forks": 3},
    )


@pytest.mark.asyncio
async def test_update_written_once_with_merged_fields(make_pipeline, collaborators, record: Record) -> None:
    collaborators["metadata_source"].fetch_document.return_value = "# Readme"

    await make_pipeline().process(record)

    persistence = collaborators["persistence"]
    persistence.update.assert_awaited_once()
    record_id, fields = persistence.update.call_args.args
    assert record_id == "1"
    assert fields["stars"] == 120
    assert fields["contributor_count"] == 9
    assert fields["readme_content"] == "# Readme"
    assert fields["readme_content_zh"] == "# 自述文件"
    assert fields["description_zh"] == "一个小部件"
    assert fields["icon_url"] == "https://cdn.test/icon/acme/widget/icon.png"
    assert "updated_at" in fields
    with pytest.raises(TypeError):
        fields["stars"] = 0


@pytest.mark.asyncio
async def test_scenario_primary_fetch_network_error(make_pipeline, collaborators, record: Record) -> None:
    """Network error on primary fetch: failure outcome and one failure notification."""
    collaborators["metadata_source"].fetch_primary.side_effect = httpx.ConnectError("connection refused")

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is False
    assert outcome.meta.error is True
    assert outcome.meta.processing_time_ms > 0
    assert outcome.data.stars == 10
    assert outcome.data.full_name == "acme/widget"
    collaborators["persistence"].update.assert_not_called()
    collaborators["snapshot_store"].add.assert_not_called()
    collaborators["metadata_source"].fetch_contributor_count.assert_not_called()

    notifier = collaborators["notifier"]
    notifier.dispatch.assert_awaited_once()
    envelope = notifier.dispatch.call_args.args[0]
    assert envelope.task.success is False
    assert envelope.task.error_message
    assert envelope.record is record
    assert envelope.status == ProcessingStatus()


@pytest.mark.asyncio
async def test_primary_fetch_failure_keeps_cached_asset_flags(make_pipeline, collaborators) -> None:
    cached = Record(id="2", owner="acme", name="gadget", icon_url="https://cdn.test/icon.png")
    collaborators["metadata_source"].fetch_primary.side_effect = FatalFetchError("acme/gadget", "not found")

    outcome = await make_pipeline().process(cached)

    assert outcome.meta.error is True
    assert outcome.meta.icon_processed is True
    assert outcome.meta.og_image_processed is False


@pytest.mark.asyncio
async def test_primary_fetch_timeout_is_fatal(make_pipeline, collaborators, record: Record) -> None:
    async def slow_fetch(full_name: str) -> RepoMetadata:
        await asyncio.sleep(1)
        raise AssertionError("should have timed out")

    collaborators["metadata_source"].fetch_primary.side_effect = slow_fetch

    outcome = await make_pipeline(step_timeout=0.05).process(record)

    assert outcome.meta.updated is False
    assert outcome.meta.error is True
    envelope = collaborators["notifier"].dispatch.call_args.args[0]
    assert "timed out" in envelope.task.error_message


@pytest.mark.asyncio
async def test_missing_description_skips_translation(make_pipeline, collaborators, record: Record, metadata) -> None:
    collaborators["metadata_source"].fetch_primary.return_value = RepoMetadata(
        full_name="acme/widget", stars=120, description=None
    )

    outcome = await make_pipeline().process(record)

    assert outcome.meta.description_translated is False
    collaborators["translator"].translate_short.assert_not_called()


@pytest.mark.asyncio
async def test_cached_icon_is_not_uploaded_again(make_pipeline, collaborators) -> None:
    cached = Record(id="1", owner="acme", name="widget", owner_id=42, icon_url="https://cdn.test/icon.png")

    outcome = await make_pipeline().process(cached)

    assert outcome.meta.icon_processed is True
    assert _icon_uploads(collaborators["asset_store"]) == []


@pytest.mark.asyncio
async def test_cached_assets_are_idempotent_across_runs(make_pipeline, collaborators, metadata) -> None:
    collaborators["metadata_source"].fetch_primary.return_value = RepoMetadata(
        full_name="acme/widget", stars=120, open_graph_image_url="https://opengraph.test/widget.png"
    )
    cached = Record(
        id="1",
        owner="acme",
        name="widget",
        icon_url="https://cdn.test/icon.png",
        open_graph_image_oss_url="https://cdn.test/og.png",
    )
    pipeline = make_pipeline()

    first = await pipeline.process(cached)
    second = await pipeline.process(cached)

    assert first.meta.icon_processed is second.meta.icon_processed is True
    assert first.meta.og_image_processed is second.meta.og_image_processed is True
    collaborators["asset_store"].upload_from_url.assert_not_called()


@pytest.mark.asyncio
async def test_cover_image_uploaded_when_not_cached(make_pipeline, collaborators, record: Record) -> None:
    collaborators["metadata_source"].fetch_primary.return_value = RepoMetadata(
        full_name="acme/widget", stars=120, open_graph_image_url="https://opengraph.test/widget.png"
    )

    outcome = await make_pipeline().process(record)

    assert outcome.meta.og_image_processed is True
    collaborators["asset_store"].upload_from_url.assert_any_await(
        "https://opengraph.test/widget.png", "og-image/acme/widget/og-image.png"
    )


@pytest.mark.asyncio
async def test_step_failure_does_not_affect_siblings(make_pipeline, collaborators, record: Record) -> None:
    collaborators["metadata_source"].fetch_primary.return_value = RepoMetadata(
        full_name="acme/widget",
        stars=120,
        description="A widget",
        latest_release_description="Bug fixes",
    )
    collaborators["metadata_source"].fetch_document.return_value = "# Readme"
    collaborators["translator"].translate_short.side_effect = RuntimeError("quota exceeded")

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is True
    assert outcome.meta.description_translated is False
    assert outcome.meta.readme_translated is True
    assert outcome.meta.release_note_translated is True
    assert outcome.meta.icon_processed is True
    fields = collaborators["persistence"].update.call_args.args[1]
    assert "description_zh" not in fields


@pytest.mark.asyncio
async def test_enrichment_steps_run_concurrently(make_pipeline, collaborators, record: Record) -> None:
    """Icon upload waits for the release note translation, which is scheduled after it."""
    collaborators["metadata_source"].fetch_primary.return_value = RepoMetadata(
        full_name="acme/widget", stars=120, latest_release_description="Bug fixes"
    )
    release_translated = asyncio.Event()

    async def upload(url: str, path: str) -> str:
        await release_translated.wait()
        return f"https://cdn.test/{path}"

    async def translate_release_note(text: str) -> str:
        release_translated.set()
        return "错误修复"

    collaborators["asset_store"].upload_from_url.side_effect = upload
    collaborators["translator"].translate_release_note.side_effect = translate_release_note

    outcome = await make_pipeline(step_timeout=0.5).process(record)

    assert outcome.meta.icon_processed is True
    assert outcome.meta.release_note_translated is True


@pytest.mark.asyncio
async def test_contributor_count_failure_is_not_fatal(make_pipeline, collaborators, record: Record) -> None:
    collaborators["metadata_source"].fetch_contributor_count.side_effect = httpx.ReadTimeout("timeout")

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is True
    assert outcome.meta.error is False
    fields = collaborators["persistence"].update.call_args.args[1]
    assert "contributor_count" not in fields


@pytest.mark.asyncio
async def test_document_failure_skips_readme_translation(make_pipeline, collaborators, record: Record) -> None:
    collaborators["metadata_source"].fetch_document.side_effect = httpx.ConnectError("reset")

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is True
    assert outcome.meta.readme_translated is False
    collaborators["translator"].translate_long.assert_not_called()


@pytest.mark.asyncio
async def test_document_failure_keeps_stored_readme(make_pipeline, collaborators, record: Record) -> None:
    record.readme_content = "# existing readme"
    collaborators["metadata_source"].fetch_document.side_effect = httpx.ConnectError("reset")

    await make_pipeline().process(record)

    fields = collaborators["persistence"].update.call_args.args[1]
    assert "readme_content" not in fields
    envelope = collaborators["notifier"].dispatch.call_args.args[0]
    assert envelope.record.readme_content == "# existing readme"


@pytest.mark.asyncio
async def test_missing_document_clears_readme(make_pipeline, collaborators, record: Record) -> None:
    record.readme_content = "# removed upstream"

    await make_pipeline().process(record)

    fields = collaborators["persistence"].update.call_args.args[1]
    assert fields["readme_content"] is None


@pytest.mark.asyncio
async def test_snapshot_failure_is_logged_not_fatal(make_pipeline, collaborators, record: Record) -> None:
    collaborators["snapshot_store"].add.side_effect = OSError("disk full")

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is True
    assert outcome.meta.snapshot_added is False


@pytest.mark.asyncio
async def test_persistence_failure_notifies_with_merged_view(make_pipeline, collaborators, record: Record) -> None:
    collaborators["persistence"].update.side_effect = PersistenceError("database is locked")

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is False
    assert outcome.meta.error is True
    assert outcome.meta.icon_processed is True
    assert outcome.data.stars == 120
    collaborators["persistence"].read.assert_not_called()

    envelope = collaborators["notifier"].dispatch.call_args.args[0]
    assert envelope.record.stars == 120
    assert envelope.record.description_zh == "一个小部件"
    assert envelope.task.success is False
    assert "database is locked" in envelope.task.error_message


@pytest.mark.asyncio
async def test_persistence_affecting_no_rows_is_a_failure(make_pipeline, collaborators, record: Record) -> None:
    collaborators["persistence"].update.return_value = 0

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is False
    assert outcome.meta.error is True


@pytest.mark.asyncio
async def test_reread_record_is_notified(make_pipeline, collaborators, record: Record) -> None:
    stored = Record(id="1", owner="acme", name="widget", stars=121)
    collaborators["persistence"].read.return_value = stored

    outcome = await make_pipeline().process(record)

    envelope = collaborators["notifier"].dispatch.call_args.args[0]
    assert envelope.record is stored
    assert envelope.task.success is True
    assert envelope.task.error_message is None
    assert outcome.data.stars == 121


@pytest.mark.asyncio
async def test_reread_failure_falls_back_to_merged_view(make_pipeline, collaborators, record: Record) -> None:
    collaborators["persistence"].read.side_effect = PersistenceError("read failed")

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is True
    envelope = collaborators["notifier"].dispatch.call_args.args[0]
    assert envelope.record.stars == 120
    assert envelope.record.contributor_count == 9


@pytest.mark.asyncio
async def test_dispatch_failure_does_not_change_outcome(make_pipeline, collaborators, record: Record) -> None:
    collaborators["notifier"].dispatch.return_value = [
        DispatchResult(destination="https://hooks.test/a", success=False, error="HTTP 500"),
    ]

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is True
    assert outcome.meta.error is False


@pytest.mark.asyncio
async def test_notifier_exception_is_contained(make_pipeline, collaborators, record: Record) -> None:
    collaborators["notifier"].dispatch.side_effect = RuntimeError("boom")

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is True
    collaborators["notifier"].dispatch.assert_awaited_once()


@pytest.mark.asyncio
async def test_without_notifier(make_pipeline, record: Record) -> None:
    outcome = await make_pipeline(notifier=None).process(record)

    assert outcome.meta.updated is True


@pytest.mark.asyncio
async def test_unexpected_error_still_returns_outcome(make_pipeline, collaborators, record: Record) -> None:
    collaborators["metadata_source"].fetch_primary.return_value = None

    outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is False
    assert outcome.meta.error is True
    assert outcome.data.stars == 10
    collaborators["notifier"].dispatch.assert_awaited_once()


@pytest.mark.asyncio
async def test_late_unexpected_error_notifies_once(make_pipeline, collaborators, record: Record) -> None:
    with patch.object(RecordUpdateBuilder, "build", side_effect=RuntimeError("boom")):
        outcome = await make_pipeline().process(record)

    assert outcome.meta.updated is False
    assert outcome.meta.error is True
    collaborators["persistence"].update.assert_not_called()
    collaborators["notifier"].dispatch.assert_awaited_once()
    envelope = collaborators["notifier"].dispatch.call_args.args[0]
    assert envelope.task.success is False
    assert envelope.task.error_message == "boom"
    assert envelope.record is record


def test_build_outcome_ignores_dispatch_results(record: Record) -> None:
    outcome = build_outcome(
        record,
        ProcessingStatus(icon_processed=True),
        updated=True,
        error=False,
        snapshot_added=True,
        processing_time_ms=12.5,
        dispatch_results=[DispatchResult(destination="https://hooks.test/a", success=False, error="x")],
    )

    assert outcome.to_dict() == {
        "meta": {
            "updated": True,
            "processing_time_ms": 12.5,
            "error": False,
            "snapshot_added": True,
            "icon_processed": True,
            "description_translated": False,
            "readme_translated": False,
            "og_image_processed": False,
            "release_note_translated": False,
        },
        "data": {"stars": 10, "full_name": "acme/widget"},
    }


@pytest.mark.asyncio
async def test_refresh_service_one_outcome_per_record(make_pipeline, collaborators) -> None:
    records = [
        Record(id="1", owner="acme", name="widget"),
        Record(id="2", owner="acme", name="broken"),
        Record(id="3", owner="acme", name="old", status="deprecated"),
    ]
    source = Mock()
    source.iter_records.side_effect = lambda exclude=None: (
        r for r in records if exclude is None or not exclude(r)
    )

    async def fetch_primary(full_name: str) -> RepoMetadata:
        if full_name == "acme/broken":
            raise FatalFetchError(full_name, "not found")
        return RepoMetadata(full_name=full_name, stars=5)

    collaborators["metadata_source"].fetch_primary.side_effect = fetch_primary
    seen = []
    service = RefreshService(
        source=source,
        pipeline=make_pipeline(),
        exclude=lambda r: r.status == "deprecated",
    )

    outcomes = await service.refresh_all(on_outcome=seen.append)

    assert [o.data.full_name for o in outcomes] == ["acme/widget", "acme/broken"]
    assert [o.meta.updated for o in outcomes] == [True, False]
    assert seen == outcomes
