"""
Reference-aware generation orchestration

Routes a request to a provider family by which references are present,
runs the character + garment pipeline as explicit stages, scores the
result, applies the quality policy and regenerates at most once with
stricter parameters. Only the kept attempt is written to history.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from config.settings import settings
from core.exceptions import (
    PolicyExhaustedException,
    ProviderException,
    ReferenceValidationException,
)
from core.logging import logger, log_structured
from database.repository import HistoryEntry, HistoryRepository, ReferenceRepository
from models.generation import (
    AdapterResult,
    ConsistencyMetadata,
    ConsistencyScore,
    GenerationAttempt,
    GenerationResult,
    ModelSelection,
    QualityCheckResult,
    TuningParams,
)
from models.references import ReferenceKind, ReferenceSet
from services.consistency_scoring import ConsistencyScoringEngine, get_scoring_engine
from services.prompt_builder import EnhancedPrompt, PromptModifiers, build_prompt, validate_prompt
from services.providers import CharacterAdapter, GarmentAdapter, ProviderAdapter, StandardAdapter, StyleAdapter
from services.quality_assurance import QualityAssurancePolicy, get_quality_policy, select_kept_attempt

MODEL_COSTS = {
    "instant-id": 0.10,
    "photomaker": 0.08,
    "idm-vton": 0.12,
    "oot-diffusion": 0.10,
    "controlnet-canny": 0.05,
    "sdxl": 0.04,
    "gemini-image": 0.04,
}
DEFAULT_MODEL_COST = 0.05

GARMENT_NO_BASE_IMAGE = "Garment-only generation needs a base human image; used standard generation"


def estimate_model_cost(model_used: str) -> float:
    """
    Estimated USD cost of a generation

    Combined pipeline names ("instant-id+idm-vton") sum their parts;
    unknown models cost DEFAULT_MODEL_COST.
    """
    parts = [m.strip() for m in model_used.split("+")]
    return round(sum(MODEL_COSTS.get(m, DEFAULT_MODEL_COST) for m in parts), 2)


@dataclass
class ModelRecommendation:
    primary: str
    fallback: List[str]
    estimated_cost: float

    def to_dict(self) -> Dict[str, Any]:
        return {"primary": self.primary, "fallback": list(self.fallback), "estimated_cost": self.estimated_cost}


def get_recommended_model(has_character: bool, has_garment: bool, has_style: bool) -> ModelRecommendation:
    """Primary model (or pipeline) and fallbacks for a reference combination"""
    if has_character and has_garment:
        primary = [CharacterAdapter.models[0], GarmentAdapter.models[0]]
        fallback = [CharacterAdapter.models[1], GarmentAdapter.models[1]]
        if has_style:
            primary.append(StyleAdapter.models[0])
            fallback.append(StyleAdapter.models[1])
        combined = "+".join(primary)
        return ModelRecommendation(combined, fallback, estimate_model_cost(combined))

    if has_character:
        models = CharacterAdapter.models
    elif has_garment:
        models = GarmentAdapter.models
    else:
        models = StandardAdapter.models

    return ModelRecommendation(models[0], list(models[1:]), estimate_model_cost(models[0]))


class Route(str, Enum):
    STANDARD = "standard"
    CHARACTER = "character"
    GARMENT = "garment"
    PIPELINE = "pipeline"


class PipelineStage(str, Enum):
    IDENTITY = "identity"
    GARMENT = "garment"
    STYLE = "style"


@dataclass
class OrchestrationResult:
    image_url: str
    score: ConsistencyScore
    was_regenerated: bool
    model_used: str
    provider: str
    cost_usd: float
    processing_time_ms: int
    quality_check: QualityCheckResult
    consistency_metadata: ConsistencyMetadata
    prompt: EnhancedPrompt
    history_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_url": self.image_url,
            "score": self.score.to_dict(),
            "was_regenerated": self.was_regenerated,
            "model_used": self.model_used,
            "provider": self.provider,
            "cost_usd": self.cost_usd,
            "processing_time_ms": self.processing_time_ms,
            "quality_check": self.quality_check.to_dict(),
            "consistency_metadata": self.consistency_metadata.to_dict(),
            "prompt": {
                "enhanced_prompt": self.prompt.enhanced_prompt,
                "negative_prompt": self.prompt.negative_prompt,
                "consistency_tags": list(self.prompt.consistency_tags),
            },
            "history_id": self.history_id,
        }


def default_tuning() -> TuningParams:
    return TuningParams(
        num_inference_steps=settings.DEFAULT_INFERENCE_STEPS,
        guidance_scale=settings.DEFAULT_GUIDANCE_SCALE,
        adapter_scale=settings.DEFAULT_ADAPTER_SCALE,
    )


class GenerationOrchestrator:
    """
    Generation entry point

    Collaborators are injected; anything not passed uses the default
    singleton (adapters, scoring engine, quality policy). History and
    reference repositories are optional: without them nothing is persisted.
    """

    def __init__(
        self,
        character: Optional[CharacterAdapter] = None,
        garment: Optional[GarmentAdapter] = None,
        style: Optional[StyleAdapter] = None,
        standard: Optional[StandardAdapter] = None,
        scorer: Optional[ConsistencyScoringEngine] = None,
        policy: Optional[QualityAssurancePolicy] = None,
        history: Optional[HistoryRepository] = None,
        references: Optional[ReferenceRepository] = None
    ):
        self.scorer = scorer or get_scoring_engine()
        self.character = character or CharacterAdapter(scorer=self.scorer)
        self.garment = garment or GarmentAdapter(scorer=self.scorer)
        self.style = style or StyleAdapter(scorer=self.scorer)
        self.standard = standard or StandardAdapter(scorer=self.scorer)
        self.policy = policy or get_quality_policy()
        self.history = history
        self.references = references

    # ========== Routing ==========

    @staticmethod
    def route(references: ReferenceSet, tuning: TuningParams) -> Tuple[Route, Optional[str]]:
        """
        Choose the generation strategy

        Returns:
            (route, degradation reason or None)
        """
        if references.has_character and references.has_garment:
            return Route.PIPELINE, None
        if references.has_character:
            return Route.CHARACTER, None
        if references.has_garment:
            if tuning.base_image_url:
                return Route.GARMENT, None
            return Route.STANDARD, GARMENT_NO_BASE_IMAGE
        return Route.STANDARD, None

    def _route_adapters(self, route: Route, references: ReferenceSet) -> List[ProviderAdapter]:
        if route == Route.PIPELINE:
            adapters = [self.character, self.garment]
            if references.has_style:
                adapters.append(self.style)
            return adapters
        return [{
            Route.STANDARD: self.standard,
            Route.CHARACTER: self.character,
            Route.GARMENT: self.garment,
        }[route]]

    @staticmethod
    def _selection_for(adapter: ProviderAdapter, selection: ModelSelection) -> ModelSelection:
        """A pinned model applies to the family that owns it; other families run auto"""
        if not selection.is_auto and selection.pinned_model in adapter.models:
            return selection
        return ModelSelection.auto()

    def _check_selection(self, adapters: List[ProviderAdapter], selection: ModelSelection) -> None:
        if selection.is_auto:
            return
        if not any(selection.pinned_model in adapter.models for adapter in adapters):
            known = sorted({m for adapter in adapters for m in adapter.models})
            raise ReferenceValidationException(
                f"Model '{selection.pinned_model}' cannot serve this request (expected one of {', '.join(known)})",
                field="model"
            )

    # ========== Generation ==========

    async def generate(
        self,
        prompt: EnhancedPrompt,
        references: ReferenceSet,
        tuning: TuningParams,
        selection: Optional[ModelSelection] = None
    ) -> GenerationResult:
        """
        Produce one image for the request (no scoring)

        Raises:
            ReferenceValidationException: pinned model cannot serve the route
            ProviderException: a pinned single-family call failed
            PolicyExhaustedException: an auto chain ran out
        """
        selection = selection or ModelSelection.auto()
        route, degradation_reason = self.route(references, tuning)
        adapters = self._route_adapters(route, references)
        self._check_selection(adapters, selection)

        if degradation_reason:
            logger.warning(f"⚠️ {degradation_reason}")
            log_structured("generation_degraded", {"route": route.value, "reason": degradation_reason})

        if route == Route.PIPELINE:
            return await self._run_pipeline(prompt, references, tuning, selection)

        adapter = adapters[0]
        reference = {
            Route.CHARACTER: references.character,
            Route.GARMENT: references.garment,
            Route.STANDARD: None,
        }[route]

        result = await adapter.generate(
            prompt.enhanced_prompt,
            prompt.negative_prompt,
            reference=reference,
            tuning=tuning,
            selection=self._selection_for(adapter, selection),
        )

        metadata = self._metadata(references, [route.value])
        if degradation_reason:
            metadata.degraded = True
            metadata.degradation_reason = degradation_reason

        return self._result(
            result.output_url,
            result.model_used,
            result.provider,
            result.processing_time_ms,
            metadata,
            garment_applied=route == Route.GARMENT,
        )

    async def _run_pipeline(
        self,
        prompt: EnhancedPrompt,
        references: ReferenceSet,
        tuning: TuningParams,
        selection: ModelSelection
    ) -> GenerationResult:
        """
        identity -> garment -> style, strictly sequential

        The identity stage must succeed. A garment or style stage failure
        returns the identity-stage image, marked degraded.
        """
        stages = [PipelineStage.IDENTITY, PipelineStage.GARMENT]
        if references.has_style:
            stages.append(PipelineStage.STYLE)

        stage_adapters = {
            PipelineStage.IDENTITY: (self.character, references.character),
            PipelineStage.GARMENT: (self.garment, references.garment),
            PipelineStage.STYLE: (self.style, references.style),
        }

        completed: List[Tuple[PipelineStage, AdapterResult]] = []
        current_image: Optional[str] = None

        for stage in stages:
            adapter, reference = stage_adapters[stage]
            stage_tuning = tuning if stage == PipelineStage.IDENTITY else replace(tuning, base_image_url=current_image)

            logger.info(f"🎨 Pipeline stage {len(completed) + 1}/{len(stages)}: {stage.value}")
            try:
                result = await adapter.generate(
                    prompt.enhanced_prompt,
                    prompt.negative_prompt,
                    reference=reference,
                    tuning=stage_tuning,
                    selection=self._selection_for(adapter, selection),
                )
            except (ProviderException, PolicyExhaustedException) as e:
                if stage == PipelineStage.IDENTITY:
                    raise
                return self._degraded_pipeline_result(references, completed, stage, e)

            completed.append((stage, result))
            current_image = result.output_url

        model_used = "+".join(r.model_used for _, r in completed)
        return self._result(
            current_image,
            model_used,
            "replicate",
            sum(r.processing_time_ms for _, r in completed),
            self._metadata(references, [s.value for s, _ in completed]),
        )

    def _degraded_pipeline_result(
        self,
        references: ReferenceSet,
        completed: List[Tuple[PipelineStage, AdapterResult]],
        failed_stage: PipelineStage,
        error: Exception
    ) -> GenerationResult:
        _, identity = completed[0]
        reason = f"{failed_stage.value} stage failed: {getattr(error, 'message', str(error))}"

        logger.warning(f"⚠️ Pipeline degraded to identity stage result ({reason})")
        log_structured("generation_degraded", {
            "route": Route.PIPELINE.value,
            "failed_stage": failed_stage.value,
            "reason": reason,
        })

        metadata = self._metadata(references, [PipelineStage.IDENTITY.value])
        metadata.degraded = True
        metadata.degradation_reason = reason

        return self._result(
            identity.output_url,
            identity.model_used,
            identity.provider,
            sum(r.processing_time_ms for _, r in completed),
            metadata,
        )

    @staticmethod
    def _metadata(references: ReferenceSet, stages: List[str]) -> ConsistencyMetadata:
        return ConsistencyMetadata(
            used_character_ref=references.has_character,
            used_garment_ref=references.has_garment,
            used_style_ref=references.has_style,
            stages_completed=stages,
        )

    @staticmethod
    def _result(
        image_url: str,
        model_used: str,
        provider: str,
        processing_time_ms: int,
        metadata: ConsistencyMetadata,
        garment_applied: bool = True
    ) -> GenerationResult:
        return GenerationResult(
            image_url=image_url,
            model_used=model_used,
            provider=provider,
            processing_time_ms=processing_time_ms,
            cost_usd=estimate_model_cost(model_used),
            consistency_metadata=metadata,
            garment_applied=garment_applied and metadata.used_garment_ref,
        )

    # ========== Scored attempts ==========

    async def _attempt(
        self,
        prompt: EnhancedPrompt,
        references: ReferenceSet,
        tuning: TuningParams,
        selection: ModelSelection
    ) -> GenerationAttempt:
        generation = await self.generate(prompt, references, tuning, selection)

        # a garment that never reached the image is not scored
        scored = references if generation.garment_applied else references.without_garment()

        score = await self.scorer.calculate_consistency_score(
            generation.image_url,
            character_ref=scored.character,
            garment_ref=scored.garment,
            style_ref=scored.style,
        )
        quality_check = self.policy.perform_quality_check(
            score,
            has_character=scored.has_character,
            has_garment=scored.has_garment,
            has_style=scored.has_style,
        )
        return GenerationAttempt(generation=generation, score=score, tuning=tuning, quality_check=quality_check)

    async def orchestrate(
        self,
        base_prompt: str,
        references: Optional[ReferenceSet] = None,
        tuning: Optional[TuningParams] = None,
        selection: Optional[ModelSelection] = None,
        modifiers: Optional[PromptModifiers] = None,
        session_id: Optional[str] = None,
        step_number: Optional[int] = None
    ) -> OrchestrationResult:
        """
        Generate, score, gate and (at most once) regenerate

        Args:
            base_prompt: User prompt
            references: Zero to three references
            tuning: Generation parameters (defaults from settings)
            selection: auto or pinned model
            modifiers: Extra prompt modifiers
            session_id: History session; nothing is persisted without it
            step_number: Workflow step recorded with the history row

        Returns:
            OrchestrationResult of the kept attempt

        Raises:
            ReferenceValidationException: invalid request, raised before any provider call
            ProviderException: pinned model failed on the first attempt
            PolicyExhaustedException: auto chain exhausted on the first attempt
        """
        if not base_prompt or not base_prompt.strip():
            raise ReferenceValidationException("Prompt is required", field="base_prompt")

        references = references or ReferenceSet()
        tuning = tuning or default_tuning()
        selection = selection or ModelSelection.auto()

        prompt = build_prompt(base_prompt, references, modifiers)
        validation = validate_prompt(base_prompt)
        if not validation.is_valid:
            logger.warning(f"⚠️ Prompt issues: {', '.join(validation.issues)}")

        log_structured("generation_started", {
            "session_id": session_id,
            "step_number": step_number,
            "has_character": references.has_character,
            "has_garment": references.has_garment,
            "has_style": references.has_style,
            "selection": str(selection),
        })

        first = await self._attempt(prompt, references, tuning, selection)

        second: Optional[GenerationAttempt] = None
        if first.quality_check.should_regenerate and not references.is_empty:
            escalated = tuning.escalated(
                extra_steps=settings.REGENERATION_EXTRA_STEPS,
                extra_guidance=settings.REGENERATION_EXTRA_GUIDANCE,
            )
            logger.info(
                f"🔄 Regenerating ({first.quality_check.regeneration_reason}): "
                f"steps {tuning.num_inference_steps}->{escalated.num_inference_steps}, "
                f"guidance {tuning.guidance_scale}->{escalated.guidance_scale}"
            )
            try:
                second = await self._attempt(prompt, references, escalated, selection)
            except (ProviderException, PolicyExhaustedException) as e:
                logger.error(f"❌ Regeneration failed, keeping first attempt: {e.message}")

        kept, was_regenerated = select_kept_attempt(first, second)

        log_structured("regeneration_decision", {
            "session_id": session_id,
            "regeneration_attempted": second is not None,
            "first_score": first.overall,
            "second_score": second.overall if second is not None else None,
            "was_regenerated": was_regenerated,
        })

        history_id = self._record(kept, was_regenerated, prompt, base_prompt, references, session_id, step_number)

        generation = kept.generation
        return OrchestrationResult(
            image_url=generation.image_url,
            score=kept.score,
            was_regenerated=was_regenerated,
            model_used=generation.model_used,
            provider=generation.provider,
            cost_usd=generation.cost_usd,
            processing_time_ms=generation.processing_time_ms,
            quality_check=kept.quality_check,
            consistency_metadata=generation.consistency_metadata,
            prompt=prompt,
            history_id=history_id,
        )

    def _record(
        self,
        kept: GenerationAttempt,
        was_regenerated: bool,
        prompt: EnhancedPrompt,
        base_prompt: str,
        references: ReferenceSet,
        session_id: Optional[str],
        step_number: Optional[int]
    ) -> Optional[str]:
        """Write the kept attempt once and bump reference usage counters"""
        if self.history is None or not session_id:
            return None

        generation = kept.generation
        entry = HistoryEntry(
            session_id=session_id,
            step_number=step_number,
            character_ref_id=references.character.id if references.character else None,
            garment_ref_id=references.garment.id if references.garment else None,
            style_ref_id=references.style.id if references.style else None,
            base_prompt=base_prompt,
            enhanced_prompt=prompt.enhanced_prompt,
            negative_prompt=prompt.negative_prompt,
            image_url=generation.image_url,
            consistency_score=kept.score.overall,
            face_sim_score=kept.score.face_score,
            garment_acc_score=kept.score.garment_score,
            style_match_score=kept.score.style_score,
            model_provider=generation.provider,
            model_name=generation.model_used,
            processing_time_ms=generation.processing_time_ms,
            api_cost_usd=generation.cost_usd,
            was_regenerated=was_regenerated,
            metadata={
                "consistency_metadata": generation.consistency_metadata.to_dict(),
                "quality_check": kept.quality_check.to_dict(),
                "score_breakdown": kept.score.breakdown.to_dict(),
                "degraded_axes": list(kept.score.degraded_axes),
                "tuning": {
                    "num_inference_steps": kept.tuning.num_inference_steps,
                    "guidance_scale": kept.tuning.guidance_scale,
                    "adapter_scale": kept.tuning.adapter_scale,
                },
                "consistency_tags": list(prompt.consistency_tags),
            },
        )
        history_id = self.history.append(entry)

        if self.references is not None:
            for kind, reference in (
                (ReferenceKind.CHARACTER, references.character),
                (ReferenceKind.GARMENT, references.garment),
                (ReferenceKind.STYLE, references.style),
            ):
                if reference is not None:
                    self.references.increment_usage(kind, reference.id)

        return history_id


_orchestrator: Optional[GenerationOrchestrator] = None


def get_orchestrator() -> GenerationOrchestrator:
    """Get or create the orchestrator singleton (SQL-backed history)"""
    global _orchestrator
    if _orchestrator is None:
        from database.sql_repository import SQLHistoryRepository, SQLReferenceRepository
        references = SQLReferenceRepository()
        _orchestrator = GenerationOrchestrator(
            history=SQLHistoryRepository(references=references),
            references=references,
        )
    return _orchestrator


async def orchestrate(
    base_prompt: str,
    references: Optional[ReferenceSet] = None,
    tuning: Optional[TuningParams] = None,
    selection: Optional[ModelSelection] = None,
    modifiers: Optional[PromptModifiers] = None,
    session_id: Optional[str] = None,
    step_number: Optional[int] = None
) -> OrchestrationResult:
    """Orchestrate with the default orchestrator"""
    return await get_orchestrator().orchestrate(
        base_prompt,
        references=references,
        tuning=tuning,
        selection=selection,
        modifiers=modifiers,
        session_id=session_id,
        step_number=step_number,
    )
