"""
Generation job handler

Entry point a queue worker calls for one generation job: validate the
payload, resolve references, orchestrate, return a JSON-able result.
Job status bookkeeping stays with the queue.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from core.logging import logger, log_structured
from database.repository import ReferenceRepository
from models.generation import ModelSelection, TuningParams
from models.references import ReferenceKind, ReferenceSet
from services.generation_orchestrator import GenerationOrchestrator, default_tuning, get_orchestrator
from services.prompt_builder import PromptModifiers


# ========== Pydantic Models ==========
class ModifiersPayload(BaseModel):
    """Optional prompt modifiers"""
    style: Optional[str] = None
    lighting: Optional[str] = None
    mood: Optional[str] = None
    camera_angle: Optional[str] = None


class GenerationJobPayload(BaseModel):
    """Generation job as enqueued by the workflow layer"""
    session_id: str = Field(..., min_length=1, description="Session the references and history belong to")
    prompt: str = Field(..., min_length=1, description="User prompt")
    character_ref_id: Optional[str] = Field(default=None, description="Character reference ID")
    garment_ref_id: Optional[str] = Field(default=None, description="Garment reference ID")
    style_ref_id: Optional[str] = Field(default=None, description="Style reference ID")
    model: str = Field(default=ModelSelection.AUTO, description="'auto' or a pinned model id")
    num_inference_steps: Optional[int] = Field(default=None, ge=1, le=150)
    guidance_scale: Optional[float] = Field(default=None, gt=0, le=30)
    adapter_scale: Optional[float] = Field(default=None, ge=0, le=1)
    width: int = Field(default=1024, ge=64, le=2048)
    height: int = Field(default=1024, ge=64, le=2048)
    seed: Optional[int] = None
    base_image_url: Optional[str] = Field(default=None, description="Human image for garment-only try-on")
    modifiers: Optional[ModifiersPayload] = None
    step_number: Optional[int] = Field(default=None, ge=1)

    def to_tuning(self) -> TuningParams:
        defaults = default_tuning()
        return TuningParams(
            num_inference_steps=self.num_inference_steps or defaults.num_inference_steps,
            guidance_scale=self.guidance_scale or defaults.guidance_scale,
            adapter_scale=self.adapter_scale if self.adapter_scale is not None else defaults.adapter_scale,
            width=self.width,
            height=self.height,
            seed=self.seed,
            base_image_url=self.base_image_url,
        )

    def to_modifiers(self) -> Optional[PromptModifiers]:
        if self.modifiers is None:
            return None
        return PromptModifiers(**self.modifiers.model_dump())


def load_references(payload: GenerationJobPayload, references: ReferenceRepository) -> ReferenceSet:
    """
    Resolve the payload's reference ids

    Raises:
        DanglingReferenceException: an id does not resolve
    """
    def resolve(kind: ReferenceKind, reference_id: Optional[str]):
        return references.require(kind, reference_id) if reference_id else None

    return ReferenceSet(
        character=resolve(ReferenceKind.CHARACTER, payload.character_ref_id),
        garment=resolve(ReferenceKind.GARMENT, payload.garment_ref_id),
        style=resolve(ReferenceKind.STYLE, payload.style_ref_id),
    )


async def handle_generation_job(
    payload: Any,
    orchestrator: Optional[GenerationOrchestrator] = None,
    references: Optional[ReferenceRepository] = None
) -> Dict[str, Any]:
    """
    Run one generation job

    Args:
        payload: GenerationJobPayload or its dict form
        orchestrator: Defaults to the SQL-backed singleton
        references: Defaults to the orchestrator's reference repository

    Returns:
        OrchestrationResult.to_dict() plus session_id / step_number

    Raises:
        pydantic.ValidationError: malformed payload
        DanglingReferenceException: a reference id does not resolve
        LookbookException: anything orchestrate raises
    """
    if not isinstance(payload, GenerationJobPayload):
        payload = GenerationJobPayload.model_validate(payload)

    orchestrator = orchestrator or get_orchestrator()
    references = references or orchestrator.references
    if references is None:
        from database.sql_repository import SQLReferenceRepository
        references = SQLReferenceRepository()

    reference_set = load_references(payload, references)

    logger.info(f"🎨 Generation job: session={payload.session_id} step={payload.step_number} model={payload.model}")

    result = await orchestrator.orchestrate(
        payload.prompt,
        references=reference_set,
        tuning=payload.to_tuning(),
        selection=ModelSelection.parse(payload.model),
        modifiers=payload.to_modifiers(),
        session_id=payload.session_id,
        step_number=payload.step_number,
    )

    log_structured("generation_job_completed", {
        "session_id": payload.session_id,
        "step_number": payload.step_number,
        "history_id": result.history_id,
        "overall_score": result.score.overall,
        "was_regenerated": result.was_regenerated,
    })

    response = result.to_dict()
    response["session_id"] = payload.session_id
    response["step_number"] = payload.step_number
    return response
