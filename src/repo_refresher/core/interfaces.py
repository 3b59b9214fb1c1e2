"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, Mapping, Optional

from repo_refresher.core.entities import (
    DispatchResult,
    NotificationEnvelope,
    Record,
    RepoMetadata,
)

RecordFilter = Callable[[Record], bool]


class RecordSource(ABC):
    """Interface for iterating tracked records."""

    @abstractmethod
    def iter_records(self, exclude: Optional[RecordFilter] = None) -> Iterator[Record]:
        """Yield records lazily, skipping those matching ``exclude``.

        Every call starts a new pass over the records.
        """
        pass


class MetadataSource(ABC):
    """Interface for fetching repository metadata."""

    @abstractmethod
    async def fetch_primary(self, full_name: str) -> RepoMetadata:
        """Fetch primary metadata. Raises FatalFetchError on failure."""
        pass

    @abstractmethod
    async def fetch_contributor_count(self, full_name: str) -> int:
        """Fetch the number of contributors."""
        pass

    @abstractmethod
    async def fetch_document(self, full_name: str) -> Optional[str]:
        """Fetch the README as markdown, None when absent."""
        pass


class AssetStore(ABC):
    """Interface for storing derived assets."""

    @abstractmethod
    def path_for(self, kind: str, identifier: str, filename: str) -> str:
        """Build the storage path of an asset."""
        pass

    @abstractmethod
    async def upload_from_url(self, source_url: str, path: str) -> str:
        """Copy a remote file into the store and return its public URL."""
        pass


class Translator(ABC):
    """Interface for text translation."""

    @abstractmethod
    async def translate_short(self, text: str) -> str:
        pass

    @abstractmethod
    async def translate_long(self, text: str) -> str:
        pass

    @abstractmethod
    async def translate_release_note(self, text: str) -> str:
        pass


class Persistence(ABC):
    """Interface for record storage."""

    @abstractmethod
    async def update(self, record_id: str, values: Mapping[str, Any]) -> int:
        """Apply ``values`` to the record and return the affected count."""
        pass

    @abstractmethod
    async def read(self, record_id: str) -> Optional[Record]:
        pass


class SnapshotStore(ABC):
    """Interface for historical metric snapshots."""

    @abstractmethod
    async def add(self, record_id: str, stars: int, metrics: Mapping[str, int]) -> bool:
        """Write one snapshot and report whether it was stored."""
        pass


class Notifier(ABC):
    """Interface for delivering record notifications."""

    @abstractmethod
    async def dispatch(self, envelope: NotificationEnvelope) -> list[DispatchResult]:
        pass
