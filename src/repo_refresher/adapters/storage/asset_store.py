"""Local asset storage for icons and cover images."""

from pathlib import Path

import httpx

from repo_refresher.config import AssetsConfig
from repo_refresher.core import AssetStore


class LocalAssetStore(AssetStore):
    """Download remote images into a directory served under a public base URL."""

    def __init__(self, config: AssetsConfig) -> None:
        self.root_dir = config.root_dir
        self.public_base_url = config.public_base_url.rstrip("/")
        self.download_timeout = config.download_timeout

    def path_for(self, kind: str, identifier: str, filename: str) -> str:
        """Build ``<kind>/<identifier>/<filename>``, e.g. ``icon/acme/widget/icon.png``."""
        parts = [kind, *[p for p in identifier.split("/") if p], filename]
        return "/".join(parts)

    async def upload_from_url(self, source_url: str, path: str) -> str:
        async with httpx.AsyncClient(timeout=self.download_timeout, follow_redirects=True) as client:
            response = await client.get(source_url)
            response.raise_for_status()

        if not response.content:
            raise ValueError(f"Empty response body from {source_url}")

        target = self.root_dir / Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(response.content)

        return f"{self.public_base_url}/{path}"
