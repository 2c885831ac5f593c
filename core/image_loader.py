"""Image access: download by URL (http(s) or local storage) and decode with Pillow"""

from typing import Optional

import httpx
from PIL import Image

from config.settings import settings
from core.exceptions import ImageLoadException
from core.storage import AssetStorage, get_asset_storage
from utils.image_processing import load_image


class ImageLoader:
    """Fetches image bytes for scoring and pipeline stages"""

    def __init__(self, storage: Optional[AssetStorage] = None, timeout: Optional[float] = None):
        self._storage = storage
        self.timeout = timeout or settings.IMAGE_DOWNLOAD_TIMEOUT_SECONDS

    @property
    def storage(self) -> AssetStorage:
        if self._storage is None:
            self._storage = get_asset_storage()
        return self._storage

    async def fetch_bytes(self, url: str) -> bytes:
        """
        Download raw image bytes

        Raises:
            ImageLoadException: network failure, non-2xx status or unreadable file
        """
        if url.startswith("file://"):
            try:
                return self.storage.download(url)
            except (OSError, ValueError) as e:
                raise ImageLoadException(url, e)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise ImageLoadException(url, e)

    async def load(self, url: str) -> Image.Image:
        """Download and decode into an RGB image"""
        data = await self.fetch_bytes(url)
        try:
            return load_image(data)
        except (OSError, ValueError) as e:
            raise ImageLoadException(url, e)


_image_loader: Optional[ImageLoader] = None


def get_image_loader() -> ImageLoader:
    """Get or create the image loader singleton"""
    global _image_loader
    if _image_loader is None:
        _image_loader = ImageLoader()
    return _image_loader
