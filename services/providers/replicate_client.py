"""Minimal async client for the Replicate predictions REST API"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from config.settings import settings
from core.exceptions import ProviderException
from core.logging import logger

# Backing model id -> Replicate model reference ("owner/name:version" or "owner/name")
REPLICATE_MODELS: Dict[str, str] = {
    "instant-id": "zsxkib/instant-id:bf53bfb798dc9e5f48543b6ae3d8ba8d91de9de8c0a439c8ec25d88a34eecf43",
    "photomaker": "tencentarc/photomaker:ddfc2b08d209f9fa8c1eca692712918bd449f695dabb4a958da31802a9570fe4",
    "idm-vton": "cuuupid/idm-vton:c871bb9b046607b680449ecbae55fd8c6d945e0a1948644bf2361b3d021d3ff4",
    "oot-diffusion": "yisol/oot-diffusion",
    "controlnet-canny": "jagilley/controlnet-canny:aff48af9c68d162388d230a2ab003f68d2638d88307bdaf1c2f1ac95079c9613",
    "sdxl": "stability-ai/sdxl:39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b",
}

TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}


class ReplicateClient:
    """
    Creates a prediction and polls it until it reaches a terminal status

    Versioned references go to the predictions endpoint; unversioned
    references go to the model's own predictions endpoint.
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        api_url: Optional[str] = None,
        poll_interval: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_token = api_token if api_token is not None else settings.REPLICATE_API_TOKEN
        self.api_url = (api_url or settings.REPLICATE_API_URL).rstrip("/")
        self.poll_interval = poll_interval if poll_interval is not None else settings.PROVIDER_POLL_INTERVAL_SECONDS
        self._transport = transport

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _create_request(self, model_ref: str, inputs: Dict[str, Any]):
        if ":" in model_ref:
            version = model_ref.split(":", 1)[1]
            return self.api_url, {"version": version, "input": inputs}

        # https://api.replicate.com/v1/predictions -> https://api.replicate.com/v1/models/<ref>/predictions
        base = self.api_url.rsplit("/predictions", 1)[0]
        return f"{base}/models/{model_ref}/predictions", {"input": inputs}

    async def run(self, model_id: str, inputs: Dict[str, Any]) -> List[str]:
        """
        Run a backing model and return its output URLs

        Args:
            model_id: Key of REPLICATE_MODELS
            inputs: Model-specific input payload

        Returns:
            List of output image URLs (a single-URL output is wrapped)

        Raises:
            ProviderException: HTTP failure, failed/canceled prediction or empty output
        """
        model_ref = REPLICATE_MODELS.get(model_id)
        if model_ref is None:
            raise ProviderException(model_id, message=f"No Replicate model configured for {model_id}")
        if not self.api_token:
            raise ProviderException(model_id, message="REPLICATE_API_TOKEN is not configured")

        url, payload = self._create_request(model_ref, inputs)

        async with httpx.AsyncClient(headers=self.headers, transport=self._transport) as client:
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                prediction = response.json()

                while prediction.get("status") not in TERMINAL_STATUSES:
                    await asyncio.sleep(self.poll_interval)
                    poll = await client.get(prediction["urls"]["get"])
                    poll.raise_for_status()
                    prediction = poll.json()
            except httpx.HTTPError as e:
                raise ProviderException(model_id, e)

        status = prediction.get("status")
        if status != "succeeded":
            error = prediction.get("error") or status
            logger.error(f"❌ Replicate prediction {prediction.get('id')} {status}: {error}")
            raise ProviderException(model_id, message=f"{model_id} generation failed: {error}")

        output = prediction.get("output")
        urls = output if isinstance(output, list) else [output]
        urls = [u for u in urls if u]
        if not urls:
            raise ProviderException(model_id, message=f"{model_id} returned no output")
        return urls


_replicate_client: Optional[ReplicateClient] = None


def get_replicate_client() -> ReplicateClient:
    """Get or create the Replicate client singleton"""
    global _replicate_client
    if _replicate_client is None:
        _replicate_client = ReplicateClient()
    return _replicate_client
