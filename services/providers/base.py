"""Provider adapter base: ordered backing models with an optional fallback chain"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from config.settings import settings
from core.exceptions import (
    LookbookException,
    PolicyExhaustedException,
    ProviderException,
    ProviderTimeoutException,
    ReferenceValidationException,
)
from core.logging import logger, log_structured
from models.generation import AdapterResult, ModelSelection, TuningParams
from services.circuit_breaker import guarded
from services.providers.replicate_client import ReplicateClient, get_replicate_client


class ProviderAdapter(ABC):
    """
    One provider family (character, garment, style, standard)

    Subclasses declare `family` and the ordered `models` list and translate
    a request into each backing model's input payload. The base class owns
    model selection, timeouts, circuit breaking and the fallback chain:

    - auto: try models in order, return the first success,
      raise PolicyExhaustedException when all fail
    - pinned: call only that model, its ProviderException propagates
    """

    family: str = ""
    models: Sequence[str] = ()

    def __init__(
        self,
        replicate: Optional[ReplicateClient] = None,
        timeout: Optional[float] = None,
        scorer=None
    ):
        self._replicate = replicate
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._scorer = scorer

    @property
    def replicate(self) -> ReplicateClient:
        if self._replicate is None:
            self._replicate = get_replicate_client()
        return self._replicate

    @property
    def scorer(self):
        if self._scorer is None:
            from services.consistency_scoring import get_scoring_engine
            self._scorer = get_scoring_engine()
        return self._scorer

    @property
    def primary_model(self) -> str:
        return self.models[0]

    def provider_for(self, model_id: str) -> str:
        return "replicate"

    def requires_base_image(self, model_id: str) -> bool:
        return False

    def model_order(self, tuning: TuningParams) -> Sequence[str]:
        """Order of the auto fallback chain for this request"""
        return self.models

    @abstractmethod
    def build_inputs(
        self,
        model_id: str,
        prompt: str,
        negative_prompt: str,
        reference: Any,
        tuning: TuningParams
    ) -> Dict[str, Any]:
        """Backing-model input payload for one call"""
        pass

    async def call_model(
        self,
        model_id: str,
        prompt: str,
        negative_prompt: str,
        reference: Any,
        tuning: TuningParams
    ) -> List[str]:
        """Invoke one backing model and return its output URLs"""
        inputs = self.build_inputs(model_id, prompt, negative_prompt, reference, tuning)
        return await self.replicate.run(model_id, inputs)

    def check_reference(self, reference: Any) -> None:
        """Raise ReferenceValidationException when the family cannot use the reference"""
        pass

    async def generate(
        self,
        prompt: str,
        negative_prompt: str,
        reference: Any = None,
        tuning: Optional[TuningParams] = None,
        selection: Optional[ModelSelection] = None
    ) -> AdapterResult:
        """
        Generate with this family's models

        Args:
            prompt: Enhanced positive prompt
            negative_prompt: Enhanced negative prompt
            reference: The family's reference (character/garment/style), or None
            tuning: Generation parameters
            selection: auto (fallback chain) or pinned (single model)

        Returns:
            AdapterResult of the first model that succeeded

        Raises:
            ReferenceValidationException: unknown pinned model, unusable reference,
                pinned model missing its base image
            ProviderException: pinned model failed
            PolicyExhaustedException: every model of an auto chain failed or was skipped
        """
        tuning = tuning or TuningParams()
        selection = selection or ModelSelection.auto()
        self.check_reference(reference)

        if not selection.is_auto:
            model_id = selection.pinned_model
            if model_id not in self.models:
                raise ReferenceValidationException(
                    f"Unknown {self.family} model '{model_id}' (expected one of {', '.join(self.models)})",
                    field="model"
                )
            if self.requires_base_image(model_id) and not tuning.base_image_url:
                raise ReferenceValidationException(
                    f"{model_id} requires a base image",
                    field="base_image_url"
                )
            return await self._run(model_id, prompt, negative_prompt, reference, tuning)

        errors: List[ProviderException] = []
        for model_id in self.model_order(tuning):
            if self.requires_base_image(model_id) and not tuning.base_image_url:
                logger.info(f"⚠️ Skipping {model_id}: no base image available")
                continue
            try:
                return await self._run(model_id, prompt, negative_prompt, reference, tuning)
            except ProviderException as e:
                errors.append(e)
                log_structured("provider_fallback", {
                    "family": self.family,
                    "failed_model": model_id,
                    "error": e.message,
                    "attempt": len(errors),
                })

        raise PolicyExhaustedException(self.family, errors)

    async def _run(
        self,
        model_id: str,
        prompt: str,
        negative_prompt: str,
        reference: Any,
        tuning: TuningParams
    ) -> AdapterResult:
        start = time.monotonic()
        try:
            async with guarded(model_id):
                output_urls = await asyncio.wait_for(
                    self.call_model(model_id, prompt, negative_prompt, reference, tuning),
                    timeout=self.timeout
                )
        except asyncio.TimeoutError:
            raise ProviderTimeoutException(model_id, self.timeout)
        except LookbookException:
            raise
        except Exception as e:
            raise ProviderException(model_id, e)

        if not output_urls:
            raise ProviderException(model_id, message=f"{model_id} returned no output")

        processing_time_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"✅ {self.family} generation succeeded with {model_id} ({processing_time_ms}ms)")

        return AdapterResult(
            output_urls=list(output_urls),
            model_used=model_id,
            processing_time_ms=processing_time_ms,
            provider=self.provider_for(model_id),
        )

    @abstractmethod
    async def score(self, generated_image_url: str, reference: Any) -> float:
        """Score a generated image against this family's reference (0-100)"""
        pass
