"""Shared fixtures."""

from typing import Callable
from unittest.mock import AsyncMock, Mock

import pytest

from repo_refresher.core import Record, RepoMetadata
from repo_refresher.use_cases import EnrichmentPipeline


@pytest.fixture
def record() -> Record:
    """Record without cached assets (scenario A)."""
    return Record(
        id="1",
        owner="acme",
        name="widget",
        owner_id=42,
        stars=10,
        description="A widget",
    )


@pytest.fixture
def metadata() -> RepoMetadata:
    return RepoMetadata(
        full_name="acme/widget",
        stars=120,
        description="A widget",
        owner_id=42,
        forks=3,
        watchers_count=7,
        mentionable_users_count=5,
        pull_requests_count=11,
        releases_count=2,
    )


@pytest.fixture
def collaborators(metadata: RepoMetadata) -> dict:
    """Mocked collaborators with every call succeeding."""
    metadata_source = AsyncMock()
    metadata_source.fetch_primary.return_value = metadata
    metadata_source.fetch_contributor_count.return_value = 9
    metadata_source.fetch_document.return_value = None

    asset_store = Mock()
    asset_store.path_for.side_effect = lambda kind, identifier, filename: f"{kind}/{identifier}/{filename}"
    asset_store.upload_from_url = AsyncMock(side_effect=lambda url, path: f"https://cdn.test/{path}")

    translator = AsyncMock()
    translator.translate_short.return_value = "一个小部件"
    translator.translate_long.return_value = "# 自述文件"
    translator.translate_release_note.return_value = "发布说明"

    persistence = AsyncMock()
    persistence.update.return_value = 1
    persistence.read.return_value = None

    snapshot_store = AsyncMock()
    snapshot_store.add.return_value = True

    notifier = AsyncMock()
    notifier.dispatch.return_value = []

    return {
        "metadata_source": metadata_source,
        "asset_store": asset_store,
        "translator": translator,
        "persistence": persistence,
        "snapshot_store": snapshot_store,
        "notifier": notifier,
    }


@pytest.fixture
def make_pipeline(collaborators: dict) -> Callable[..., EnrichmentPipeline]:
    def factory(**overrides) -> EnrichmentPipeline:
        kwargs = {**collaborators, "step_timeout": 1.0}
        kwargs.update(overrides)
        return EnrichmentPipeline(**kwargs)

    return factory
