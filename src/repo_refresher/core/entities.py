"""Core domain entities."""

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

_DATETIME_FIELDS = ("latest_release_published_at", "created_at", "updated_at")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Record:
    """Locally stored metadata of a tracked repository."""

    id: str
    owner: str
    name: str
    owner_id: Optional[int] = None
    status: str = "active"
    stars: int = 0
    description: Optional[str] = None
    description_zh: Optional[str] = None
    homepage: Optional[str] = None
    archived: bool = False
    contributor_count: Optional[int] = None
    forks: Optional[int] = None
    watchers_count: Optional[int] = None
    mentionable_users_count: Optional[int] = None
    pull_requests_count: Optional[int] = None
    releases_count: Optional[int] = None
    license_spdx_id: Optional[str] = None
    languages: list[str] = field(default_factory=list)
    icon_url: Optional[str] = None
    open_graph_image_url: Optional[str] = None
    open_graph_image_oss_url: Optional[str] = None
    uses_custom_open_graph_image: bool = False
    readme_content: Optional[str] = None
    readme_content_zh: Optional[str] = None
    latest_release_name: Optional[str] = None
    latest_release_tag_name: Optional[str] = None
    latest_release_published_at: Optional[datetime] = None
    latest_release_url: Optional[str] = None
    latest_release_description: Optional[str] = None
    latest_release_description_zh: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Record id cannot be empty")
        if not self.owner or not self.name:
            raise ValueError("Record owner and name cannot be empty")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def has_icon(self) -> bool:
        return bool(self.icon_url)

    @property
    def has_cover_image(self) -> bool:
        return bool(self.open_graph_image_oss_url)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in _DATETIME_FIELDS:
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "id" in values:
            values["id"] = str(values["id"])
        for key in _DATETIME_FIELDS:
            if key in values:
                values[key] = _parse_datetime(values[key])
        return cls(**values)

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))


@dataclass(frozen=True)
class RepoMetadata:
    """Primary metadata fetched from the repository host."""

    full_name: str
    stars: int
    description: Optional[str] = None
    homepage: Optional[str] = None
    archived: bool = False
    owner_id: Optional[int] = None
    open_graph_image_url: Optional[str] = None
    uses_custom_open_graph_image: bool = False
    forks: int = 0
    watchers_count: int = 0
    mentionable_users_count: int = 0
    pull_requests_count: int = 0
    releases_count: int = 0
    license_spdx_id: Optional[str] = None
    languages: tuple[str, ...] = ()
    latest_release_name: Optional[str] = None
    latest_release_tag_name: Optional[str] = None
    latest_release_published_at: Optional[datetime] = None
    latest_release_url: Optional[str] = None
    latest_release_description: Optional[str] = None

    def to_record_fields(self) -> dict[str, Any]:
        """Map metadata onto record columns."""
        return {
            "stars": self.stars,
            "description": self.description,
            "homepage": self.homepage,
            "archived": self.archived,
            "forks": self.forks,
            "watchers_count": self.watchers_count,
            "mentionable_users_count": self.mentionable_users_count,
            "pull_requests_count": self.pull_requests_count,
            "releases_count": self.releases_count,
            "license_spdx_id": self.license_spdx_id,
            "languages": list(self.languages),
            "open_graph_image_url": self.open_graph_image_url,
            "uses_custom_open_graph_image": self.uses_custom_open_graph_image,
            "latest_release_name": self.latest_release_name,
            "latest_release_tag_name": self.latest_release_tag_name,
            "latest_release_published_at": self.latest_release_published_at,
            "latest_release_url": self.latest_release_url,
            "latest_release_description": self.latest_release_description,
        }

    def snapshot_metrics(self) -> dict[str, int]:
        return {
            "mentionable_users": self.mentionable_users_count,
            "watchers": self.watchers_count,
            "pull_requests": self.pull_requests_count,
            "releases": self.releases_count,
            "forks": self.forks,
        }


@dataclass(frozen=True)
class Completed:
    """Step ran and produced a value."""

    value: Any = None


@dataclass(frozen=True)
class Skipped:
    """Step did not run.

    ``satisfied`` marks skips where the result already exists (cached asset).
    """

    reason: str
    satisfied: bool = False


@dataclass(frozen=True)
class Failed:
    """Step was attempted and failed."""

    error: BaseException


StepResult = Union[Completed, Skipped, Failed]


def is_satisfied(result: StepResult) -> bool:
    if isinstance(result, Completed):
        return True
    if isinstance(result, Skipped):
        return result.satisfied
    return False


@dataclass(frozen=True)
class ProcessingStatus:
    """Per-run status of the optional enrichment steps."""

    icon_processed: bool = False
    description_translated: bool = False
    readme_translated: bool = False
    og_image_processed: bool = False
    release_note_translated: bool = False

    @classmethod
    def from_results(
        cls,
        icon: StepResult,
        description: StepResult,
        readme: StepResult,
        og_image: StepResult,
        release_note: StepResult,
    ) -> "ProcessingStatus":
        return cls(
            icon_processed=is_satisfied(icon),
            description_translated=is_satisfied(description),
            readme_translated=is_satisfied(readme),
            og_image_processed=is_satisfied(og_image),
            release_note_translated=is_satisfied(release_note),
        )

    @classmethod
    def from_cached(cls, record: Record) -> "ProcessingStatus":
        """Status for a record that was not processed: only cached assets count."""
        return cls(
            icon_processed=record.has_icon,
            og_image_processed=record.has_cover_image,
        )

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


@dataclass(frozen=True)
class RecordUpdate:
    """Immutable partial update of a record."""

    fields: Mapping[str, Any]

    def apply_to(self, record: Record) -> Record:
        """Return the locally merged view of ``record`` with this update."""
        known = Record.field_names()
        return replace(record, **{k: v for k, v in self.fields.items() if k in known})


class RecordUpdateBuilder:
    """Collects step outputs and builds a single RecordUpdate."""

    def __init__(self, metadata: RepoMetadata) -> None:
        self._metadata = metadata
        self._contributor_count: Optional[int] = None
        self._readme: Optional[StepResult] = None
        self._derived: dict[str, Any] = {}

    def contributor_count(self, result: StepResult) -> "RecordUpdateBuilder":
        if isinstance(result, Completed) and result.value is not None:
            self._contributor_count = int(result.value)
        return self

    def readme(self, result: StepResult) -> "RecordUpdateBuilder":
        """Record the fetched README. Only a completed fetch is written, even when it found nothing."""
        if isinstance(result, Completed):
            self._readme = result
        return self

    def derived(self, column: str, result: StepResult) -> "RecordUpdateBuilder":
        """Record the value of a completed enrichment step under ``column``."""
        if isinstance(result, Completed) and result.value is not None:
            self._derived[column] = result.value
        return self

    def build(self, updated_at: datetime) -> RecordUpdate:
        values = self._metadata.to_record_fields()
        if self._contributor_count is not None:
            values["contributor_count"] = self._contributor_count
        if self._readme is not None:
            values["readme_content"] = self._readme.value
        values.update(self._derived)
        values["updated_at"] = updated_at
        return RecordUpdate(fields=MappingProxyType(values))


@dataclass(frozen=True)
class Snapshot:
    """Historical metric capture of a record."""

    record_id: str
    stars: int
    timestamp: datetime
    metrics: Mapping[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "stars": self.stars,
            "timestamp": self.timestamp.isoformat(),
            "metrics": dict(self.metrics),
        }


@dataclass(frozen=True)
class TaskMetadata:
    """Task information attached to a notification."""

    task_name: str
    processed_at: datetime
    processing_time_ms: float
    success: bool
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "task_name": self.task_name,
            "processed_at": self.processed_at.isoformat(),
            "processing_time_ms": round(self.processing_time_ms, 3),
            "success": self.success,
        }
        if self.error_message is not None:
            data["error_message"] = self.error_message
        return data


@dataclass(frozen=True)
class NotificationEnvelope:
    """Notification sent to webhook subscribers for one record."""

    record: Record
    status: ProcessingStatus
    task: TaskMetadata

    def to_payload(self) -> dict[str, Any]:
        payload = self.record.to_dict()
        payload["full_name"] = self.record.full_name
        payload["processing_status"] = self.status.to_dict()
        payload["task_metadata"] = self.task.to_dict()
        return payload


@dataclass(frozen=True)
class SigningMaterial:
    """Token and timestamp attached to each webhook request."""

    token: Optional[str]
    timestamp: str


@dataclass(frozen=True)
class DispatchResult:
    """Delivery result for one destination."""

    destination: str
    success: bool
    error: Optional[str] = None
    status_code: Optional[int] = None


@dataclass(frozen=True)
class OutcomeMeta:
    updated: bool
    processing_time_ms: float
    error: bool = False
    snapshot_added: bool = False
    icon_processed: bool = False
    description_translated: bool = False
    readme_translated: bool = False
    og_image_processed: bool = False
    release_note_translated: bool = False


@dataclass(frozen=True)
class OutcomeData:
    stars: int
    full_name: str


@dataclass(frozen=True)
class RecordOutcome:
    """Result of refreshing one record. Always produced, never raised."""

    meta: OutcomeMeta
    data: OutcomeData

    def to_dict(self) -> dict[str, Any]:
        return {"meta": asdict(self.meta), "data": asdict(self.data)}
