"""Storage adapters."""

from repo_refresher.adapters.storage.asset_store import LocalAssetStore
from repo_refresher.adapters.storage.yaml_store import (
    YamlRecordStore,
    YamlSnapshotStore,
    exclude_status,
)

__all__ = ["LocalAssetStore", "YamlRecordStore", "YamlSnapshotStore", "exclude_status"]
