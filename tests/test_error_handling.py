"""
Tests for error handling with specific exceptions
"""

import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from core.exceptions import (
    CircuitBreakerOpenException,
    DanglingReferenceException,
    ImageLoadException,
    LookbookException,
    PolicyExhaustedException,
    ProviderException,
    ProviderTimeoutException,
    ReferenceValidationException,
    ScoringDegradedException,
)
from core.image_loader import ImageLoader
from models.references import GarmentReference, StyleReference
from services.providers.gemini_image import GeminiImageClient, decode_inline_image
from services.providers.replicate_client import ReplicateClient


class TestExceptionHierarchy:
    """Test exception class hierarchy"""

    def test_everything_is_lookbook_exception(self):
        for exc in (
            ReferenceValidationException(),
            ProviderException("sdxl"),
            PolicyExhaustedException("style"),
            ScoringDegradedException("face"),
            DanglingReferenceException("garment", "g-1"),
            ImageLoadException("https://cdn.test/x.png"),
        ):
            assert isinstance(exc, LookbookException)

    def test_timeout_and_open_circuit_are_provider_errors(self):
        """Test that timeouts and open circuits take part in the fallback chain"""
        assert isinstance(ProviderTimeoutException("sdxl", 30), ProviderException)
        assert isinstance(CircuitBreakerOpenException("sdxl"), ProviderException)

    def test_exception_messages(self):
        """Test exception default messages"""
        assert "timed out after 30s" in ProviderTimeoutException("sdxl", 30).message
        assert "circuit open" in CircuitBreakerOpenException("sdxl").message
        assert ProviderException("sdxl", RuntimeError("503")).message == "sdxl generation failed: 503"
        assert DanglingReferenceException("garment", "g-1").message == "garment reference not found: g-1"

    def test_policy_exhausted_reports_last_error(self):
        errors = [ProviderException("controlnet-canny", RuntimeError("a")), ProviderException("sdxl", RuntimeError("b"))]
        exc = PolicyExhaustedException("style", errors)

        assert exc.errors == errors
        assert exc.message.endswith("sdxl generation failed: b")
        assert PolicyExhaustedException("garment").message == "No garment model was available to run"


class TestReferenceValidation:
    """Test malformed references are rejected at construction"""

    def test_malformed_palette(self):
        with pytest.raises(ReferenceValidationException) as exc_info:
            GarmentReference(
                id="g1", session_id="s1", reference_image_url="https://cdn.test/g.png",
                color_palette=["#12345"], color_names=["Navy"],
            )
        assert exc_info.value.field == "color_palette"

    def test_palette_and_names_must_align(self):
        with pytest.raises(ReferenceValidationException) as exc_info:
            GarmentReference(
                id="g1", session_id="s1", reference_image_url="https://cdn.test/g.png",
                color_palette=["#123456", "#654321"], color_names=["Navy"],
            )
        assert exc_info.value.field == "color_names"

    def test_missing_required_field(self):
        with pytest.raises(ReferenceValidationException):
            GarmentReference(id="g1", session_id="s1", reference_image_url="")

    def test_unknown_style_type(self):
        with pytest.raises(ReferenceValidationException):
            StyleReference(id="s", session_id="s1", type="WEATHER", name="x", prompt_template="y")

    def test_style_type_is_normalized(self):
        style = StyleReference(id="s", session_id="s1", type="mood", name="x", prompt_template="y")
        assert style.type.value == "MOOD"


def _replicate(handler):
    return ReplicateClient(
        api_token="token",
        api_url="https://replicate.test/v1/predictions",
        poll_interval=0,
        transport=httpx.MockTransport(handler),
    )


class TestReplicateClientErrorHandling:
    """Test Replicate REST error mapping"""

    @pytest.mark.asyncio
    async def test_successful_prediction_is_polled(self):
        """Test create + poll until succeeded"""
        requests = []

        def handler(request):
            requests.append(request)
            if request.method == "POST":
                body = json.loads(request.content)
                assert body["version"].startswith("39ed52")
                assert request.headers["Authorization"] == "Bearer token"
                return httpx.Response(201, json={
                    "id": "p1", "status": "starting",
                    "urls": {"get": "https://replicate.test/v1/predictions/p1"},
                })
            return httpx.Response(200, json={"id": "p1", "status": "succeeded", "output": ["https://cdn.test/p1.png"]})

        urls = await _replicate(handler).run("sdxl", {"prompt": "x"})

        assert urls == ["https://cdn.test/p1.png"]
        assert [r.method for r in requests] == ["POST", "GET"]

    @pytest.mark.asyncio
    async def test_unversioned_model_uses_model_endpoint(self):
        def handler(request):
            assert request.url.path == "/v1/models/yisol/oot-diffusion/predictions"
            return httpx.Response(201, json={"id": "p2", "status": "succeeded", "output": "https://cdn.test/p2.png"})

        assert await _replicate(handler).run("oot-diffusion", {}) == ["https://cdn.test/p2.png"]

    @pytest.mark.asyncio
    async def test_failed_prediction(self):
        def handler(request):
            return httpx.Response(201, json={"id": "p3", "status": "failed", "error": "NSFW content detected"})

        with pytest.raises(ProviderException) as exc_info:
            await _replicate(handler).run("sdxl", {})
        assert "NSFW content detected" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_http_error(self):
        def handler(request):
            return httpx.Response(422, json={"detail": "invalid input"})

        with pytest.raises(ProviderException) as exc_info:
            await _replicate(handler).run("sdxl", {})
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_missing_token(self):
        client = ReplicateClient(api_token="", transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        with pytest.raises(ProviderException):
            await client.run("sdxl", {})

    @pytest.mark.asyncio
    async def test_unknown_model(self):
        with pytest.raises(ProviderException):
            await _replicate(lambda r: httpx.Response(500)).run("dall-e", {})


class TestImageLoaderErrorHandling:
    @pytest.mark.asyncio
    async def test_missing_local_file(self, storage):
        loader = ImageLoader(storage=storage)
        with pytest.raises(ImageLoadException):
            await loader.load((storage.root / "nope.png").as_uri())

    @pytest.mark.asyncio
    async def test_undecodable_bytes(self, storage):
        url = storage.upload(b"not an image", key="garbage.png")
        with pytest.raises(ImageLoadException):
            await ImageLoader(storage=storage).load(url)


class TestGeminiImageErrorHandling:
    """Test Gemini image response handling"""

    def _client(self, storage, parts):
        response = Mock()
        response.candidates = [Mock(content=Mock(parts=parts))]
        client = GeminiImageClient(storage=storage, model="test-image-model")
        client._client = Mock()
        client._client.aio.models.generate_content = AsyncMock(return_value=response)
        return client

    @pytest.mark.asyncio
    async def test_no_image_part_raises(self, storage):
        text_part = Mock(inline_data=None, text="I can't draw that")
        client = self._client(storage, [text_part])

        with pytest.raises(ProviderException) as exc_info:
            await client.generate("a cat")
        assert "I can't draw that" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_image_part_is_stored(self, storage):
        png = b"\x89PNG\r\n\x1a\n" + b"0" * 16
        image_part = Mock(inline_data=Mock(data=png, mime_type="image/png"), text=None)
        client = self._client(storage, [image_part])

        url = await client.generate("a cat", negative_prompt="blurry")

        assert storage.download(url) == png
        contents = client._client.aio.models.generate_content.call_args.kwargs["contents"]
        assert contents[0].endswith("Avoid: blurry")

    def test_decode_inline_image(self):
        import base64
        png = b"\x89PNG\r\n\x1a\nrest"
        assert decode_inline_image(png) == png
        assert decode_inline_image(base64.b64encode(png)) == png
        assert decode_inline_image(base64.b64encode(png).decode()) == png
