"""Business logic use cases."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

from repo_refresher.core import (
    AssetStore,
    Completed,
    DispatchResult,
    Failed,
    FatalFetchError,
    MetadataSource,
    NotificationEnvelope,
    Notifier,
    OutcomeData,
    OutcomeMeta,
    Persistence,
    PersistenceError,
    ProcessingStatus,
    Record,
    RecordFilter,
    RecordOutcome,
    RecordSource,
    RecordUpdate,
    RecordUpdateBuilder,
    RepoMetadata,
    Skipped,
    SnapshotStore,
    StepFailure,
    StepResult,
    TaskMetadata,
    Translator,
)

logger = logging.getLogger(__name__)

DEFAULT_ICON_URL_TEMPLATE = "https://avatars.githubusercontent.com/u/{owner_id}?v=3&s=100"


def _describe(error: BaseException) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return str(error) or type(error).__name__


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


@dataclass(frozen=True)
class _RecordResult:
    """What gets reported for one record: the notified view and its flags."""

    record: Record
    status: ProcessingStatus
    updated: bool
    error_message: Optional[str] = None
    snapshot_added: bool = False


def build_outcome(
    record: Record,
    status: ProcessingStatus,
    *,
    updated: bool,
    error: bool,
    snapshot_added: bool,
    processing_time_ms: float,
    dispatch_results: Sequence[DispatchResult] = (),
) -> RecordOutcome:
    """Build the per-record outcome.

    Dispatch results are reported in logs only; they never change ``updated``
    or ``error``.
    """
    if dispatch_results:
        delivered = sum(1 for r in dispatch_results if r.success)
        logger.debug(
            "notification delivered to %d/%d destinations",
            delivered,
            len(dispatch_results),
            extra={"full_name": record.full_name},
        )
    return RecordOutcome(
        meta=OutcomeMeta(
            updated=updated,
            error=error,
            snapshot_added=snapshot_added,
            icon_processed=status.icon_processed,
            description_translated=status.description_translated,
            readme_translated=status.readme_translated,
            og_image_processed=status.og_image_processed,
            release_note_translated=status.release_note_translated,
            processing_time_ms=processing_time_ms,
        ),
        data=OutcomeData(stars=record.stars, full_name=record.full_name),
    )


class EnrichmentPipeline:
    """Refresh one record: fetch, enrich, snapshot, persist and notify.

    The pipeline keeps no per-record state on the instance, so one instance
    can process several records concurrently.
    """

    def __init__(
        self,
        metadata_source: MetadataSource,
        asset_store: AssetStore,
        translator: Translator,
        persistence: Persistence,
        snapshot_store: SnapshotStore,
        notifier: Optional[Notifier] = None,
        task_name: str = "update-github-data",
        step_timeout: float = 60.0,
        icon_url_template: str = DEFAULT_ICON_URL_TEMPLATE,
    ) -> None:
        self.metadata_source = metadata_source
        self.asset_store = asset_store
        self.translator = translator
        self.persistence = persistence
        self.snapshot_store = snapshot_store
        self.notifier = notifier
        self.task_name = task_name
        self.step_timeout = step_timeout
        self.icon_url_template = icon_url_template

    async def process(self, record: Record) -> RecordOutcome:
        """Process one record. Always returns an outcome, never raises."""
        started = time.perf_counter()
        logger.debug("processing record", extra={"full_name": record.full_name})
        try:
            result = await self._process(record)
        except Exception as e:
            logger.exception("unexpected error while processing record", extra={"full_name": record.full_name})
            result = self._failed(record, e)

        # exactly one notification per processed record
        dispatch_results = await self._notify(
            result.record,
            result.status,
            started,
            success=result.updated,
            error_message=result.error_message,
        )
        return build_outcome(
            result.record,
            result.status,
            updated=result.updated,
            error=not result.updated,
            snapshot_added=result.snapshot_added,
            processing_time_ms=_elapsed_ms(started),
            dispatch_results=dispatch_results,
        )

    async def _process(self, record: Record) -> _RecordResult:
        full_name = record.full_name

        # STEP 1: primary metadata, the only fatal step
        try:
            metadata = await self._call(self.metadata_source.fetch_primary(full_name))
        except Exception as e:
            error = e if isinstance(e, FatalFetchError) else FatalFetchError(full_name, _describe(e))
            return self._failed(record, error)

        if metadata.archived:
            logger.warning("repository is archived", extra={"full_name": full_name})

        # STEP 2-3
        contributors = await self._run_step(
            "contributor_count", full_name, lambda: self.metadata_source.fetch_contributor_count(full_name)
        )
        document_result = await self._run_step(
            "readme", full_name, lambda: self.metadata_source.fetch_document(full_name)
        )
        document = document_result.value if isinstance(document_result, Completed) else None

        # STEP 4-8 are independent of each other
        icon, description, readme, og_image, release_note = await asyncio.gather(
            self._process_icon(record, metadata),
            self._translate(
                "description", full_name, metadata.description, self.translator.translate_short
            ),
            self._translate("readme_translation", full_name, document, self.translator.translate_long),
            self._process_cover_image(record, metadata),
            self._translate(
                "release_note",
                full_name,
                metadata.latest_release_description,
                self.translator.translate_release_note,
            ),
        )
        status = ProcessingStatus.from_results(icon, description, readme, og_image, release_note)

        # STEP 9
        snapshot_added = await self._add_snapshot(record, metadata)

        # STEP 10-11
        update = (
            RecordUpdateBuilder(metadata)
            .contributor_count(contributors)
            .readme(document_result)
            .derived("icon_url", icon)
            .derived("description_zh", description)
            .derived("readme_content_zh", readme)
            .derived("open_graph_image_oss_url", og_image)
            .derived("latest_release_description_zh", release_note)
            .build(updated_at=datetime.now(timezone.utc))
        )
        merged = update.apply_to(record)
        persist_error = await self._persist(record, update)
        final = merged if persist_error is not None else await self._reread(record, merged)

        return _RecordResult(
            record=final,
            status=status,
            updated=persist_error is None,
            error_message=None if persist_error is None else str(persist_error),
            snapshot_added=snapshot_added,
        )

    def _failed(self, record: Record, error: BaseException) -> _RecordResult:
        """Failure path: report the unmodified record."""
        logger.error("failed to process record: %s", _describe(error), extra={"full_name": record.full_name})
        return _RecordResult(
            record=record,
            status=ProcessingStatus.from_cached(record),
            updated=False,
            error_message=_describe(error),
        )

    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self.step_timeout)

    async def _run_step(
        self, step: str, full_name: str, factory: Callable[[], Awaitable[Any]]
    ) -> StepResult:
        """Run one non-fatal step under the step timeout."""
        logger.debug("running step", extra={"full_name": full_name, "step": step})
        try:
            value = await self._call(factory())
        except Exception as e:
            failure = StepFailure(step, _describe(e))
            logger.warning("%s", failure, extra={"full_name": full_name, "step": step})
            return Failed(failure)
        logger.debug("step completed", extra={"full_name": full_name, "step": step})
        return Completed(value)

    async def _process_icon(self, record: Record, metadata: RepoMetadata) -> StepResult:
        if record.has_icon:
            return Skipped("icon already stored", satisfied=True)

        owner_id = record.owner_id or metadata.owner_id
        if owner_id is None:
            return Skipped("owner id unknown")

        source_url = self.icon_url_template.format(owner_id=owner_id)
        return await self._run_step(
            "icon", record.full_name, lambda: self._store_asset("icon", record.full_name, source_url, "icon.png")
        )

    async def _process_cover_image(self, record: Record, metadata: RepoMetadata) -> StepResult:
        if record.has_cover_image:
            return Skipped("cover image already stored", satisfied=True)
        if not metadata.open_graph_image_url:
            return Skipped("no cover image")

        source_url = metadata.open_graph_image_url
        return await self._run_step(
            "og_image",
            record.full_name,
            lambda: self._store_asset("og-image", record.full_name, source_url, "og-image.png"),
        )

    async def _store_asset(self, kind: str, full_name: str, source_url: str, filename: str) -> str:
        path = self.asset_store.path_for(kind, full_name, filename)
        return await self.asset_store.upload_from_url(source_url, path)

    async def _translate(
        self,
        step: str,
        full_name: str,
        text: Optional[str],
        translate: Callable[[str], Awaitable[str]],
    ) -> StepResult:
        if not text:
            return Skipped("nothing to translate")
        return await self._run_step(step, full_name, lambda: translate(text))

    async def _add_snapshot(self, record: Record, metadata: RepoMetadata) -> bool:
        try:
            added = await self._call(
                self.snapshot_store.add(record.id, metadata.stars, metadata.snapshot_metrics())
            )
        except Exception as e:
            logger.warning("snapshot not added: %s", _describe(e), extra={"full_name": record.full_name})
            return False
        logger.debug("snapshot added: %s", added, extra={"full_name": record.full_name})
        return bool(added)

    async def _persist(self, record: Record, update: RecordUpdate) -> Optional[PersistenceError]:
        """Write the update. Returns the error instead of raising it."""
        try:
            affected = await self._call(self.persistence.update(record.id, update.fields))
        except Exception as e:
            error = e if isinstance(e, PersistenceError) else PersistenceError(_describe(e))
        else:
            if affected:
                logger.debug("record updated", extra={"full_name": record.full_name})
                return None
            error = PersistenceError(f"record {record.id} not found")

        logger.warning(
            "persisting record failed, notifying with the local view: %s",
            error,
            extra={"full_name": record.full_name},
        )
        return error

    async def _reread(self, record: Record, merged: Record) -> Record:
        try:
            stored = await self._call(self.persistence.read(record.id))
        except Exception as e:
            logger.warning("re-reading record failed: %s", _describe(e), extra={"full_name": record.full_name})
            return merged
        return stored if stored is not None else merged

    async def _notify(
        self,
        record: Record,
        status: ProcessingStatus,
        started: float,
        success: bool,
        error_message: Optional[str] = None,
    ) -> list[DispatchResult]:
        if self.notifier is None:
            return []

        envelope = NotificationEnvelope(
            record=record,
            status=status,
            task=TaskMetadata(
                task_name=self.task_name,
                processed_at=datetime.now(timezone.utc),
                processing_time_ms=_elapsed_ms(started),
                success=success,
                error_message=error_message,
            ),
        )
        try:
            return await self.notifier.dispatch(envelope)
        except Exception:
            logger.exception("webhook dispatch raised", extra={"full_name": record.full_name})
            return []


class RefreshService:
    """Batch driver: refresh every tracked record, one at a time."""

    def __init__(
        self,
        source: RecordSource,
        pipeline: EnrichmentPipeline,
        exclude: Optional[RecordFilter] = None,
    ) -> None:
        self.source = source
        self.pipeline = pipeline
        self.exclude = exclude

    async def refresh_all(
        self, on_outcome: Optional[Callable[[RecordOutcome], None]] = None
    ) -> list[RecordOutcome]:
        """Refresh all records not matched by ``exclude``.

        Returns:
            One outcome per processed record, in source order.
        """
        outcomes: list[RecordOutcome] = []
        for record in self.source.iter_records(self.exclude):
            outcome = await self.pipeline.process(record)
            outcomes.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)
        return outcomes
