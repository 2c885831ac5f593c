"""Tests for the generation job handler"""

import pytest
from pydantic import ValidationError

from core.exceptions import DanglingReferenceException
from models.generation import ConsistencyScore
from services.generation_orchestrator import GenerationOrchestrator
from services.providers import CharacterAdapter, GarmentAdapter, StandardAdapter, StyleAdapter
from tests.conftest import FakeGemini, ScriptedScorer
from workers.generation_worker import GenerationJobPayload, handle_generation_job


@pytest.fixture
def orchestrator(replicate, history_repo, reference_repo):
    scorer = ScriptedScorer(ConsistencyScore(overall=88, face_score=88, garment_score=88))
    return GenerationOrchestrator(
        character=CharacterAdapter(replicate=replicate, scorer=scorer),
        garment=GarmentAdapter(replicate=replicate, scorer=scorer),
        style=StyleAdapter(replicate=replicate, scorer=scorer),
        standard=StandardAdapter(gemini=FakeGemini(), replicate=replicate, scorer=scorer),
        scorer=scorer,
        history=history_repo,
        references=reference_repo,
    )


class TestGenerationJobPayload:
    """Test payload validation"""

    def test_defaults(self):
        payload = GenerationJobPayload(session_id="session-1", prompt="portrait")

        tuning = payload.to_tuning()
        assert payload.model == "auto"
        assert tuning.num_inference_steps == 30
        assert tuning.guidance_scale == 7.5
        assert tuning.base_image_url is None
        assert payload.to_modifiers() is None

    def test_invalid_payload(self):
        with pytest.raises(ValidationError):
            GenerationJobPayload(session_id="session-1", prompt="")
        with pytest.raises(ValidationError):
            GenerationJobPayload(session_id="session-1", prompt="portrait", adapter_scale=1.5)


class TestHandleGenerationJob:
    """Test the job entry point end to end with fake providers"""

    @pytest.mark.asyncio
    async def test_job_with_references(self, orchestrator, reference_repo, character_ref, garment_ref, replicate):
        reference_repo.save(character_ref)
        reference_repo.save(garment_ref)

        result = await handle_generation_job({
            "session_id": "session-1",
            "prompt": "editorial portrait on a rooftop",
            "character_ref_id": "char-1",
            "garment_ref_id": "garment-1",
            "num_inference_steps": 35,
            "modifiers": {"mood": "confident"},
            "step_number": 3,
        }, orchestrator=orchestrator)

        assert result["model_used"] == "instant-id+idm-vton"
        assert result["score"]["overall"] == 88
        assert result["step_number"] == 3
        assert result["history_id"] is not None
        assert "confident mood" in result["prompt"]["enhanced_prompt"]
        assert replicate.inputs_for("instant-id")[0]["num_inference_steps"] == 35

    @pytest.mark.asyncio
    async def test_unknown_reference(self, orchestrator):
        with pytest.raises(DanglingReferenceException):
            await handle_generation_job(
                GenerationJobPayload(session_id="session-1", prompt="portrait", style_ref_id="missing"),
                orchestrator=orchestrator,
            )

    @pytest.mark.asyncio
    async def test_pinned_model_from_payload(self, orchestrator, reference_repo, character_ref, replicate):
        reference_repo.save(character_ref)

        result = await handle_generation_job({
            "session_id": "session-1",
            "prompt": "portrait in soft light",
            "character_ref_id": "char-1",
            "model": "photomaker",
        }, orchestrator=orchestrator)

        assert result["model_used"] == "photomaker"
        assert replicate.calls_for("instant-id") == 0
