"""Standard family (no references): Gemini image, falling back to SDXL"""

from typing import Any, Dict, List, Optional, Sequence

from config.settings import settings
from models.generation import TuningParams
from services.providers.base import ProviderAdapter
from services.providers.gemini_image import GeminiImageClient, get_gemini_image_client

GEMINI_BASE_TEMPERATURE = 1.0
GEMINI_MIN_TEMPERATURE = 0.1
# Temperature drop per unit of guidance above the default
GEMINI_TEMPERATURE_PER_GUIDANCE = 0.3


def gemini_temperature(tuning: TuningParams) -> float:
    """Map guidance onto Gemini sampling temperature (more guidance, less randomness)"""
    offset = tuning.guidance_scale - settings.DEFAULT_GUIDANCE_SCALE
    temperature = GEMINI_BASE_TEMPERATURE - GEMINI_TEMPERATURE_PER_GUIDANCE * offset
    return round(min(GEMINI_BASE_TEMPERATURE, max(GEMINI_MIN_TEMPERATURE, temperature)), 2)


class StandardAdapter(ProviderAdapter):
    """Plain text-to-image generation"""

    family = "standard"
    models = ("gemini-image", "sdxl")

    def __init__(self, gemini: Optional[GeminiImageClient] = None, **kwargs):
        super().__init__(**kwargs)
        self._gemini = gemini

    @property
    def gemini(self) -> GeminiImageClient:
        if self._gemini is None:
            self._gemini = get_gemini_image_client()
        return self._gemini

    def provider_for(self, model_id: str) -> str:
        return "google" if model_id == "gemini-image" else "replicate"

    def model_order(self, tuning: TuningParams) -> Sequence[str]:
        # Gemini takes no step count, so a regeneration goes to SDXL first
        if tuning.is_regeneration:
            return ("sdxl", "gemini-image")
        return self.models

    def build_inputs(
        self,
        model_id: str,
        prompt: str,
        negative_prompt: str,
        reference: Any,
        tuning: TuningParams
    ) -> Dict[str, Any]:
        inputs = {
            "prompt": prompt,
            "negative_prompt": negative_prompt,
            "width": tuning.width,
            "height": tuning.height,
            "num_outputs": tuning.num_outputs,
            "guidance_scale": tuning.guidance_scale,
            "num_inference_steps": tuning.num_inference_steps,
            "scheduler": "K_EULER_ANCESTRAL",
        }
        if tuning.seed is not None:
            inputs["seed"] = tuning.seed
        return inputs

    async def call_model(
        self,
        model_id: str,
        prompt: str,
        negative_prompt: str,
        reference: Any,
        tuning: TuningParams
    ) -> List[str]:
        if model_id == "gemini-image":
            return [await self.gemini.generate(prompt, negative_prompt, temperature=gemini_temperature(tuning))]
        return await super().call_model(model_id, prompt, negative_prompt, reference, tuning)

    async def score(self, generated_image_url: str, reference: Any = None) -> float:
        return await self.scorer.score_general(generated_image_url)
