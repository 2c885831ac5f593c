"""Style-transfer family: ControlNet (canny) on a base image, falling back to SDXL"""

from typing import Any, Dict

from core.exceptions import ReferenceValidationException
from models.generation import TuningParams
from models.references import StyleReference
from services.providers.base import ProviderAdapter

CONTROLNET_CONDITIONING_SCALE = 0.75


class StyleAdapter(ProviderAdapter):
    """Applies a style reference; ControlNet keeps the structure of tuning.base_image_url"""

    family = "style"
    models = ("controlnet-canny", "sdxl")

    def requires_base_image(self, model_id: str) -> bool:
        return model_id == "controlnet-canny"

    def check_reference(self, reference: Any) -> None:
        if reference is not None and not isinstance(reference, StyleReference):
            raise ReferenceValidationException(
                "Style generation requires a style reference",
                field="style_ref"
            )

    def build_inputs(
        self,
        model_id: str,
        prompt: str,
        negative_prompt: str,
        reference: StyleReference,
        tuning: TuningParams
    ) -> Dict[str, Any]:
        if not negative_prompt and reference is not None:
            negative_prompt = reference.negative_prompt or ""

        inputs = {
            "prompt": prompt,
            "negative_prompt": negative_prompt,
            "num_outputs": tuning.num_outputs,
            "guidance_scale": tuning.guidance_scale,
            "num_inference_steps": tuning.num_inference_steps,
            "scheduler": "K_EULER_ANCESTRAL",
        }

        if model_id == "controlnet-canny":
            inputs["image"] = tuning.base_image_url
            inputs["controlnet_conditioning_scale"] = CONTROLNET_CONDITIONING_SCALE
        else:
            inputs["width"] = tuning.width
            inputs["height"] = tuning.height

        if tuning.seed is not None:
            inputs["seed"] = tuning.seed
        return inputs

    async def score(self, generated_image_url: str, reference: StyleReference) -> float:
        result = await self.scorer.score_style(generated_image_url, reference)
        return result.score
