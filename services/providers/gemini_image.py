"""Text-to-image generation using Gemini 2.5 Flash Image"""

import base64
from typing import List, Optional

from PIL import Image

from config.settings import settings
from core.exceptions import ProviderException
from core.logging import logger
from core.storage import AssetStorage, get_asset_storage

MIME_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpeg", "image/webp": "webp"}


def decode_inline_image(data) -> bytes:
    """
    Normalize Gemini inline image data into raw image bytes

    The SDK normally returns raw bytes, but base64 text (as str or bytes)
    has been observed too.
    """
    if isinstance(data, str):
        return base64.b64decode(data)
    if isinstance(data, bytes):
        if data[:4] == b'\x89PNG' or data[:3] == b'\xff\xd8\xff':
            return data
        try:
            decoded_str = data.decode('utf-8')
        except UnicodeDecodeError:
            return data
        # iVBOR / /9j/ are the base64 prefixes of PNG / JPEG
        if decoded_str.startswith('iVBOR') or decoded_str.startswith('/9j/'):
            return base64.b64decode(decoded_str)
        return data
    return bytes(data)


class GeminiImageClient:
    """
    Generates an image with Gemini and stores it so it can be addressed by URL

    Reference images (e.g. a face) can be passed alongside the prompt.
    """

    def __init__(self, storage: Optional[AssetStorage] = None, model: Optional[str] = None):
        self._client = None
        self._storage = storage
        self.model = model or settings.GEMINI_IMAGE_MODEL

    @property
    def client(self):
        """Lazy load the Gemini client"""
        if self._client is None:
            from google import genai
            self._client = genai.Client(api_key=settings.GEMINI_API_KEY)
        return self._client

    @property
    def storage(self) -> AssetStorage:
        if self._storage is None:
            self._storage = get_asset_storage()
        return self._storage

    async def generate(
        self,
        prompt: str,
        negative_prompt: Optional[str] = None,
        reference_images: Optional[List[Image.Image]] = None,
        temperature: Optional[float] = None
    ) -> str:
        """
        Generate one image and return its storage URL

        Lower temperature keeps the output closer to the prompt.

        Raises:
            ProviderException: Gemini returned no image part
        """
        from google.genai import types

        text = prompt
        if negative_prompt:
            text += f"\n\nAvoid: {negative_prompt}"

        contents = [text, *(reference_images or [])]

        logger.info(f"🎨 Gemini image generation started ({self.model})")

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE", "TEXT"],
                temperature=temperature,
            )
        )

        result_image = None
        result_text = None
        candidates = response.candidates or []
        parts = candidates[0].content.parts if candidates and candidates[0].content else []
        for part in parts or []:
            if getattr(part, 'inline_data', None):
                result_image = part.inline_data
            elif getattr(part, 'text', None):
                result_text = part.text

        if result_image is None:
            logger.error("❌ Gemini did not return an image")
            raise ProviderException(
                "gemini-image",
                message=f"gemini-image returned no image: {result_text or 'empty response'}"
            )

        image_bytes = decode_inline_image(result_image.data)
        mime_type = result_image.mime_type or "image/png"

        url = self.storage.upload(image_bytes, content_type=mime_type)
        logger.info(f"✅ Gemini image stored ({MIME_EXTENSIONS.get(mime_type, 'png')}, {len(image_bytes)} bytes)")
        return url


_gemini_image_client: Optional[GeminiImageClient] = None


def get_gemini_image_client() -> GeminiImageClient:
    """Get or create the Gemini image client singleton"""
    global _gemini_image_client
    if _gemini_image_client is None:
        _gemini_image_client = GeminiImageClient()
    return _gemini_image_client
