"""Garment-fit family: IDM-VTON, falling back to OOTDiffusion"""

from typing import Any, Dict

from config.settings import settings
from core.exceptions import ReferenceValidationException
from models.generation import TuningParams
from models.references import GarmentReference
from services.providers.base import ProviderAdapter

# Try-on guidance at default tuning; moves with tuning.guidance_scale from there
TRYON_GUIDANCE_SCALE = 2.0
TRYON_MIN_GUIDANCE_SCALE = 1.0

IDM_CATEGORIES = {"upper_body", "lower_body", "dresses"}
OOT_CATEGORIES = {
    "upper_body": "upperbody",
    "lower_body": "lowerbody",
    "dresses": "dress",
}


def tryon_guidance(tuning: TuningParams) -> float:
    """Try-on guidance scale, offset from TRYON_GUIDANCE_SCALE by how far tuning departs from the default"""
    offset = tuning.guidance_scale - settings.DEFAULT_GUIDANCE_SCALE
    return max(TRYON_MIN_GUIDANCE_SCALE, round(TRYON_GUIDANCE_SCALE + offset, 2))


def tryon_category(category: str = None) -> str:
    """Map a garment category onto the try-on category set (default upper_body)"""
    if category:
        normalized = category.strip().lower().replace(" ", "_").replace("-", "_")
        if normalized in IDM_CATEGORIES:
            return normalized
        if normalized in ("dress", "dresses"):
            return "dresses"
        if normalized in ("pants", "trousers", "skirt", "shorts", "lower", "lowerbody"):
            return "lower_body"
    return "upper_body"


class GarmentAdapter(ProviderAdapter):
    """
    Virtual try-on of a garment reference onto a human image

    The human image is tuning.base_image_url; both models need it.
    """

    family = "garment"
    models = ("idm-vton", "oot-diffusion")

    def requires_base_image(self, model_id: str) -> bool:
        return True

    def check_reference(self, reference: Any) -> None:
        if not isinstance(reference, GarmentReference):
            raise ReferenceValidationException(
                "Garment generation requires a garment reference",
                field="garment_ref"
            )

    def build_inputs(
        self,
        model_id: str,
        prompt: str,
        negative_prompt: str,
        reference: GarmentReference,
        tuning: TuningParams
    ) -> Dict[str, Any]:
        category = tryon_category(reference.category)
        guidance_scale = tryon_guidance(tuning)

        if model_id == "idm-vton":
            inputs = {
                "human_img": tuning.base_image_url,
                "garm_img": reference.reference_image_url,
                "garment_des": reference.description or prompt or "fashion garment",
                "category": category,
                "num_inference_steps": tuning.num_inference_steps,
                "guidance_scale": guidance_scale,
            }
        else:
            inputs = {
                "model_image": tuning.base_image_url,
                "cloth_image": reference.reference_image_url,
                "category": OOT_CATEGORIES[category],
                "num_samples": tuning.num_outputs,
                "num_inference_steps": tuning.num_inference_steps,
                "guidance_scale": guidance_scale,
            }

        if tuning.seed is not None:
            inputs["seed"] = tuning.seed
        return inputs

    async def score(self, generated_image_url: str, reference: GarmentReference) -> float:
        result = await self.scorer.score_garment(generated_image_url, reference)
        return result.score
