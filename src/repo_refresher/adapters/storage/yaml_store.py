"""YAML file storage for tracked records and snapshots."""

import asyncio
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

import yaml

from repo_refresher.core import (
    PersistenceError,
    Persistence,
    Record,
    RecordFilter,
    RecordSource,
    Snapshot,
    SnapshotStore,
)

logger = logging.getLogger(__name__)


def exclude_status(status: str) -> RecordFilter:
    """Record filter excluding records in the given lifecycle state."""
    return lambda record: record.status == status


def _safe_name(value: str) -> str:
    safe = re.sub(r"[^\w.-]", "-", value)
    return re.sub(r"-+", "-", safe).strip("-")


def _as_datetime(value: Any) -> datetime:
    # safe_load already resolves ISO timestamps to datetime
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _to_yaml_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    return value


class YamlRecordStore(RecordSource, Persistence):
    """Store each tracked record as an individual YAML document."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def add(self, record: Record) -> Path:
        """Start tracking a record. Overwrites an existing document with the same id."""
        path = self._get_record_path(record.id)
        self._write(path, record.to_dict())
        return path

    def iter_records(self, exclude: Optional[RecordFilter] = None) -> Iterator[Record]:
        """Yield records sorted by id, one document at a time."""
        for path in sorted(self.storage_dir.glob("*.yaml")):
            try:
                record = Record.from_dict(self._load(path))
            except (yaml.YAMLError, TypeError, ValueError) as e:
                logger.warning("skipping unreadable record file %s: %s", path.name, e)
                continue
            if exclude is not None and exclude(record):
                continue
            yield record

    async def update(self, record_id: str, values: Mapping[str, Any]) -> int:
        """Merge ``values`` into the stored document.

        File I/O runs in a worker thread.

        Returns:
            1 when the record exists and was written, 0 when it does not exist.
        """
        return await asyncio.to_thread(self._update, record_id, dict(values))

    async def read(self, record_id: str) -> Optional[Record]:
        return await asyncio.to_thread(self._read, record_id)

    def _update(self, record_id: str, values: dict[str, Any]) -> int:
        path = self._get_record_path(record_id)
        if not path.exists():
            return 0

        try:
            data = self._load(path)
            known = Record.field_names()
            for key, value in values.items():
                if key in known:
                    data[key] = _to_yaml_value(value)
            self._write(path, data)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"Could not update record {record_id}: {e}") from e
        return 1

    def _read(self, record_id: str) -> Optional[Record]:
        path = self._get_record_path(record_id)
        if not path.exists():
            return None
        try:
            return Record.from_dict(self._load(path))
        except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not read record {record_id}: {e}") from e

    def _get_record_path(self, record_id: str) -> Path:
        return self.storage_dir / f"{_safe_name(record_id)}.yaml"

    def _load(self, path: Path) -> dict:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _write(self, path: Path, data: dict) -> None:
        tmp_path = path.with_suffix(".yaml.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, allow_unicode=True, default_flow_style=False, sort_keys=False)
        tmp_path.replace(path)


class YamlSnapshotStore(SnapshotStore):
    """Write one immutable YAML file per snapshot.

    Snapshots are not deduplicated: every call writes a new file.
    """

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    async def add(self, record_id: str, stars: int, metrics: Mapping[str, int]) -> bool:
        snapshot = Snapshot(
            record_id=record_id,
            stars=stars,
            timestamp=datetime.now(timezone.utc),
            metrics=dict(metrics),
        )
        await asyncio.to_thread(self._write, snapshot)
        return True

    def _write(self, snapshot: Snapshot) -> None:
        record_dir = self.storage_dir / _safe_name(snapshot.record_id)
        record_dir.mkdir(parents=True, exist_ok=True)
        path = record_dir / f"{snapshot.timestamp.strftime('%Y%m%dT%H%M%S%fZ')}.yaml"

        # "x" mode: an existing snapshot file is never rewritten
        with open(path, "x", encoding="utf-8") as f:
            yaml.safe_dump(snapshot.to_dict(), f, allow_unicode=True, default_flow_style=False, sort_keys=False)

    def list_snapshots(self, record_id: str) -> list[Snapshot]:
        """Snapshots of a record, oldest first."""
        record_dir = self.storage_dir / _safe_name(record_id)
        if not record_dir.exists():
            return []

        snapshots = []
        for path in sorted(record_dir.glob("*.yaml")):
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
            snapshots.append(
                Snapshot(
                    record_id=data["record_id"],
                    stars=data["stars"],
                    timestamp=_as_datetime(data["timestamp"]),
                    metrics=data.get("metrics") or {},
                )
            )
        return snapshots
