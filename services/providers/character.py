"""Character-identity family: InstantID, falling back to PhotoMaker"""

from typing import Any, Dict

from core.exceptions import ReferenceValidationException
from models.generation import TuningParams
from models.references import CharacterReference
from services.providers.base import ProviderAdapter

INSTANT_ID_CONTROLNET_SCALE = 0.8
PHOTOMAKER_STYLE = "Photographic (Default)"
PHOTOMAKER_STYLE_STRENGTH = 20


class CharacterAdapter(ProviderAdapter):
    """Preserves a face across generations from the reference face image"""

    family = "character"
    models = ("instant-id", "photomaker")

    def check_reference(self, reference: Any) -> None:
        if not isinstance(reference, CharacterReference):
            raise ReferenceValidationException(
                "Character generation requires a character reference",
                field="character_ref"
            )

    def build_inputs(
        self,
        model_id: str,
        prompt: str,
        negative_prompt: str,
        reference: CharacterReference,
        tuning: TuningParams
    ) -> Dict[str, Any]:
        if model_id == "instant-id":
            inputs = {
                "image": reference.face_image_url,
                "prompt": prompt,
                "negative_prompt": negative_prompt,
                "num_outputs": tuning.num_outputs,
                "guidance_scale": tuning.guidance_scale,
                "num_inference_steps": tuning.num_inference_steps,
                "scheduler": "K_EULER_ANCESTRAL",
                # identity preservation strength
                "ip_adapter_scale": tuning.adapter_scale,
                "controlnet_conditioning_scale": INSTANT_ID_CONTROLNET_SCALE,
                "width": tuning.width,
                "height": tuning.height,
            }
        else:
            inputs = {
                "input_image": reference.face_image_url,
                "prompt": prompt,
                "negative_prompt": negative_prompt,
                "num_outputs": tuning.num_outputs,
                "guidance_scale": tuning.guidance_scale,
                "num_inference_steps": tuning.num_inference_steps,
                "style_name": PHOTOMAKER_STYLE,
                "style_strength_ratio": PHOTOMAKER_STYLE_STRENGTH,
            }

        if tuning.seed is not None:
            inputs["seed"] = tuning.seed
        return inputs

    async def score(self, generated_image_url: str, reference: CharacterReference) -> float:
        result = await self.scorer.score_face(generated_image_url, reference)
        return result.score
