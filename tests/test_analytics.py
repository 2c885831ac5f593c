"""Tests for generation history analytics"""

import pytest

from core.exceptions import ReferenceValidationException
from database.repository import HistoryEntry
from services.generation_analytics import GenerationAnalytics, find_common_values


def _record(history_repo, score, session_id="session-1", **overrides):
    values = dict(
        session_id=session_id,
        base_prompt="portrait",
        enhanced_prompt="portrait",
        negative_prompt="",
        image_url="https://cdn.test/out.png",
        consistency_score=score,
        model_provider="replicate",
        model_name="instant-id",
        processing_time_ms=1000,
        api_cost_usd=0.10,
        was_regenerated=False,
    )
    values.update(overrides)
    return history_repo.append(HistoryEntry(**values))


@pytest.fixture
def analytics(history_repo, reference_repo):
    return GenerationAnalytics(history_repo, references=reference_repo)


class TestGenerationAnalytics:
    """Test session-level aggregates"""

    def test_empty_session(self, analytics):
        result = analytics.get_generation_analytics("empty")
        assert result["total_generations"] == 0
        assert result["regeneration_rate"] == 0

    def test_averages_and_rates(self, analytics, history_repo):
        _record(history_repo, 80.0, face_sim_score=90.0, processing_time_ms=1000)
        _record(history_repo, 60.0, was_regenerated=True, processing_time_ms=3000, api_cost_usd=0.12)

        result = analytics.get_generation_analytics("session-1")

        assert result["total_generations"] == 2
        assert result["average_consistency_score"] == 70.0
        assert result["regeneration_rate"] == 0.5
        assert result["average_processing_time"] == 2000
        assert result["total_cost"] == 0.22

    def test_regeneration_rate_unit_matches_quality_metrics(self, analytics, history_repo):
        """Test that both views report the regeneration rate as a 0-1 fraction"""
        _record(history_repo, 80.0, was_regenerated=True)
        _record(history_repo, 75.0)
        _record(history_repo, 72.0)
        _record(history_repo, 90.0)

        summary = analytics.get_generation_analytics("session-1")
        metrics = analytics.get_quality_metrics("session-1")

        assert summary["regeneration_rate"] == 0.25
        assert summary["regeneration_rate"] == metrics["regeneration_rate"]

    def test_axis_average_ignores_missing_scores(self, analytics, history_repo):
        """Test that per-axis averages only count rows that have that axis"""
        _record(history_repo, 80.0, face_sim_score=90.0)
        _record(history_repo, 70.0)

        result = analytics.get_generation_analytics("session-1")

        assert result["average_face_score"] == 90.0
        assert result["average_garment_score"] == 0

    def test_quality_metrics(self, analytics, history_repo):
        _record(history_repo, 85.0)
        _record(history_repo, 65.0, was_regenerated=True)
        _record(history_repo, 75.0)
        _record(history_repo, 72.0)

        metrics = analytics.get_quality_metrics("session-1")

        assert metrics["total_generations"] == 4
        assert metrics["success_rate"] == 0.75
        assert metrics["regeneration_rate"] == 0.25
        assert metrics["average_consistency_score"] == 74


class TestHistoryAnalysis:
    """Test pattern detection over recent history"""

    def test_low_face_scores_flagged(self, analytics, history_repo):
        for _ in range(3):
            _record(history_repo, 62.0, face_sim_score=55.0, was_regenerated=True)

        analysis = analytics.analyze_generation_history("session-1")

        assert any("Face preservation" in p for p in analysis["patterns"])
        assert any("High regeneration rate" in p for p in analysis["patterns"])
        assert "Poor face similarity scores" in analysis["failure_factors"]

    def test_best_models_reported(self, analytics, history_repo):
        _record(history_repo, 88.0, model_name="photomaker")
        _record(history_repo, 86.0, model_name="photomaker")
        _record(history_repo, 84.0, model_name="instant-id")

        analysis = analytics.analyze_generation_history("session-1")

        assert analysis["success_factors"] == ["Models with best results: photomaker, instant-id"]
        assert "Prefer using photomaker for this session" in analysis["recommendations"]

    def test_quality_report(self, analytics, history_repo):
        _record(history_repo, 92.0)
        _record(history_repo, 90.0)

        report = analytics.generate_quality_report("session-1")

        assert report["overall_rating"] == "excellent"
        assert report["summary"].startswith("Generated 2 images with 100% success rate.")
        assert report["summary"].endswith("Total cost: $0.20.")

    def test_find_common_values(self):
        assert find_common_values(["a", "b", "a", "c", "b", "a", "d"]) == ["a", "b", "c"]


class TestFeedback:
    """Test user feedback processing"""

    def test_process_feedback(self, analytics, history_repo):
        history_id = _record(history_repo, 80.0)

        assert analytics.process_feedback(history_id, 5, "great", ["none"])
        assert history_repo.get(history_id)["user_rating"] == 5

    @pytest.mark.parametrize("rating", [0, 6, 3.5])
    def test_invalid_rating(self, analytics, rating):
        with pytest.raises(ReferenceValidationException):
            analytics.process_feedback("history-1", rating)

    def test_session_reference_stats(self, analytics, history_repo, reference_repo, character_ref, style_ref):
        reference_repo.save(character_ref)
        reference_repo.save(style_ref)
        _record(history_repo, 80.0)
        _record(history_repo, 70.0)

        stats = analytics.get_session_reference_stats("session-1")

        assert stats["character_count"] == 1
        assert stats["garment_count"] == 0
        assert stats["style_count"] == 1
        assert stats["total_generations"] == 2
        assert stats["average_consistency_score"] == 75.0
