"""Asset storage abstraction with a local filesystem implementation"""

import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from core.logging import logger

FILE_SCHEME = "file"

CONTENT_TYPE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}


class AssetStorage(ABC):
    """Abstract object storage for generated and uploaded images"""

    @abstractmethod
    def upload(self, data: bytes, content_type: str = "image/png", key: Optional[str] = None) -> str:
        """Store bytes and return a URL that download() accepts"""
        pass

    @abstractmethod
    def download(self, url: str) -> bytes:
        pass

    @abstractmethod
    def delete(self, url: str) -> bool:
        """Remove an asset; returns False when it did not exist"""
        pass

    @abstractmethod
    def owns(self, url: str) -> bool:
        """True when the URL points into this storage"""
        pass


class LocalAssetStorage(AssetStorage):
    """Stores assets under a directory and addresses them with file:// URLs"""

    def __init__(self, root_dir: str):
        self.root = Path(root_dir).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != FILE_SCHEME:
            raise ValueError(f"Not a local asset URL: {url}")
        path = Path(parsed.path).resolve()
        if self.root not in path.parents and path != self.root:
            raise ValueError(f"Asset URL outside storage root: {url}")
        return path

    def upload(self, data: bytes, content_type: str = "image/png", key: Optional[str] = None) -> str:
        if key is None:
            key = f"{uuid.uuid4().hex}{CONTENT_TYPE_EXTENSIONS.get(content_type, '.bin')}"
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"✅ Asset stored: {key} ({len(data)} bytes)")
        return path.as_uri()

    def download(self, url: str) -> bytes:
        return self._path_for(url).read_bytes()

    def delete(self, url: str) -> bool:
        path = self._path_for(url)
        if not path.exists():
            logger.warning(f"⚠️ Asset not found for deletion: {url}")
            return False
        path.unlink()
        return True

    def owns(self, url: str) -> bool:
        try:
            self._path_for(url)
            return True
        except ValueError:
            return False


_storage: Optional[AssetStorage] = None


def get_asset_storage() -> AssetStorage:
    """Get or create the asset storage singleton"""
    global _storage
    if _storage is None:
        from config.settings import settings
        _storage = LocalAssetStorage(settings.ASSET_STORAGE_DIR)
    return _storage


def set_asset_storage(storage: AssetStorage) -> None:
    """Replace the storage singleton (tests, alternative backends)"""
    global _storage
    _storage = storage
