"""Core domain layer."""

from repo_refresher.core.entities import (
    Completed,
    DispatchResult,
    Failed,
    NotificationEnvelope,
    OutcomeData,
    OutcomeMeta,
    ProcessingStatus,
    Record,
    RecordOutcome,
    RecordUpdate,
    RecordUpdateBuilder,
    RepoMetadata,
    SigningMaterial,
    Skipped,
    Snapshot,
    StepResult,
    TaskMetadata,
    is_satisfied,
)
from repo_refresher.core.errors import (
    DispatchError,
    FatalFetchError,
    PersistenceError,
    RefreshError,
    StepFailure,
)
from repo_refresher.core.interfaces import (
    AssetStore,
    MetadataSource,
    Notifier,
    Persistence,
    RecordFilter,
    RecordSource,
    SnapshotStore,
    Translator,
)

__all__ = [
    "Record",
    "RepoMetadata",
    "Completed",
    "Skipped",
    "Failed",
    "StepResult",
    "is_satisfied",
    "ProcessingStatus",
    "RecordUpdate",
    "RecordUpdateBuilder",
    "Snapshot",
    "TaskMetadata",
    "NotificationEnvelope",
    "SigningMaterial",
    "DispatchResult",
    "OutcomeMeta",
    "OutcomeData",
    "RecordOutcome",
    "RefreshError",
    "FatalFetchError",
    "StepFailure",
    "PersistenceError",
    "DispatchError",
    "RecordSource",
    "RecordFilter",
    "MetadataSource",
    "AssetStore",
    "Translator",
    "Persistence",
    "SnapshotStore",
    "Notifier",
]
