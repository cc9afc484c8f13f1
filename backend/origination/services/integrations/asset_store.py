"""
Asset Store

Keeps uploaded client documents (national id card, picture) on local disk
under ASSETS_DIR and hands back the public URL they are served from.

Asset names follow <FIRST_NAME>_<12 hex chars><ext>, e.g. ABEBE_KEBEDE_1f2e3d4c5b6a.jpg
"""
import logging
import os
import re
import secrets
from pathlib import Path
from typing import Optional

from ... import config
from ...errors import UploadError
from ...models.dto import AssetFile

logger = logging.getLogger(__name__)


def asset_name(first_name: str, filename: str) -> str:
    prefix = re.sub(r"[^A-Z0-9]+", "_", (first_name or "").strip().upper()).strip("_") or "CLIENT"
    _, ext = os.path.splitext(os.path.basename((filename or "").replace("\\", "/")))
    ext = re.sub(r"[^a-z0-9.]", "", ext.lower())
    return f"{prefix}_{secrets.token_hex(6)}{ext}"


class LocalAssetStore:

    def __init__(self, root: Optional[Path] = None, base_url: Optional[str] = None, max_size: Optional[int] = None):
        self.root = Path(root or config.ASSETS_DIR)
        self.base_url = base_url if base_url is not None else config.ASSETS_URL
        self.max_size = max_size if max_size is not None else config.ASSETS_MAX_FILE_SIZE

    def store(self, asset: AssetFile, first_name: str) -> str:
        """Write the asset and return its URL. Raises UploadError."""
        if not asset.content:
            raise UploadError(f"Uploaded file {asset.filename} is empty")
        if len(asset.content) > self.max_size:
            raise UploadError(
                f"Uploaded file {asset.filename} exceeds the {self.max_size // 1024}KB limit"
            )

        name = asset_name(first_name, asset.filename)
        target = self._target(name)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            target.write_bytes(asset.content)
        except OSError as e:
            logger.error(f"Failed to store asset {name}: {e}")
            raise UploadError(f"Failed to store {asset.filename}: {e}")

        logger.info(f"Stored asset {name} ({len(asset.content)} bytes)")
        return f"{self.base_url.rstrip('/')}/{name}"

    def _target(self, name: str) -> Path:
        root = self.root.resolve()
        target = (root / name).resolve()
        if target.parent != root:
            raise UploadError(f"Asset name {name} resolves outside the asset folder")
        return target

    def path_for(self, url: str) -> Path:
        return self._target(url.rstrip("/").rsplit("/", 1)[-1])

    def remove(self, url: str) -> None:
        """Delete a stored asset. Missing files are ignored."""
        path = self.path_for(url)
        try:
            path.unlink()
            logger.info(f"Removed asset {path.name}")
        except FileNotFoundError:
            logger.debug(f"Asset {path.name} already gone")
