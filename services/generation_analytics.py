"""
Generation history analytics

Aggregates over a session's generation history: score averages,
regeneration/success rates, cost, recurring patterns and a text report.
"""

from collections import Counter
from typing import Any, Dict, List, Optional

from core.exceptions import ReferenceValidationException
from core.logging import logger
from database.repository import HistoryRepository, ReferenceRepository
from services.quality_assurance import QualityAssurancePolicy, get_quality_policy

HISTORY_ANALYSIS_LIMIT = 50
HIGH_REGENERATION_RATE = 0.5
REPORT_REGENERATION_WARNING = 0.3


def _average(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _present(rows: List[Dict[str, Any]], key: str) -> List[float]:
    return [row[key] for row in rows if row.get(key) is not None]


def find_common_values(values: List[str], top_n: int = 3) -> List[str]:
    """Most frequent values, most frequent first (ties keep first-seen order)"""
    return [value for value, _ in Counter(values).most_common(top_n)]


class GenerationAnalytics:
    """Session-level statistics over generation history"""

    def __init__(
        self,
        history: HistoryRepository,
        references: Optional[ReferenceRepository] = None,
        policy: Optional[QualityAssurancePolicy] = None
    ):
        self.history = history
        self.references = references
        self.policy = policy or get_quality_policy()

    def get_generation_analytics(self, session_id: str) -> Dict[str, Any]:
        """
        Averages over scored generations of a session

        Returns:
            {
                "total_generations": int,
                "average_consistency_score": float,
                "average_face_score": float,
                "average_garment_score": float,
                "average_style_score": float,
                "regeneration_rate": float (0-1 fraction),
                "average_processing_time": int (ms),
                "total_cost": float
            }
        """
        rows = self.history.list_by_session(session_id, scored_only=True)
        if not rows:
            return {
                "total_generations": 0,
                "average_consistency_score": 0,
                "average_face_score": 0,
                "average_garment_score": 0,
                "average_style_score": 0,
                "regeneration_rate": 0,
                "average_processing_time": 0,
                "total_cost": 0,
            }

        total = len(rows)
        regenerations = sum(1 for row in rows if row["was_regenerated"])

        return {
            "total_generations": total,
            "average_consistency_score": round(_average(_present(rows, "consistency_score")), 2),
            "average_face_score": round(_average(_present(rows, "face_sim_score")), 2),
            "average_garment_score": round(_average(_present(rows, "garment_acc_score")), 2),
            "average_style_score": round(_average(_present(rows, "style_match_score")), 2),
            "regeneration_rate": round(regenerations / total, 2),
            "average_processing_time": round(_average(_present(rows, "processing_time_ms"))),
            "total_cost": round(sum(_present(rows, "api_cost_usd")), 2),
        }

    def get_quality_metrics(self, session_id: str) -> Dict[str, Any]:
        """
        Quality metrics of a session (rates as 0-1 fractions)

        success_rate counts scored generations at or above the acceptable
        overall threshold.
        """
        rows = self.history.list_by_session(session_id)
        if not rows:
            return {
                "average_consistency_score": 0,
                "average_face_score": 0,
                "average_garment_score": 0,
                "average_style_score": 0,
                "regeneration_rate": 0,
                "success_rate": 0,
                "total_generations": 0,
                "total_cost": 0,
            }

        scores = _present(rows, "consistency_score")
        acceptable = self.policy.thresholds.acceptable.overall
        success_rate = sum(1 for s in scores if s >= acceptable) / len(scores) if scores else 0.0
        regeneration_rate = sum(1 for row in rows if row["was_regenerated"]) / len(rows)

        return {
            "average_consistency_score": round(_average(scores)),
            "average_face_score": round(_average(_present(rows, "face_sim_score"))),
            "average_garment_score": round(_average(_present(rows, "garment_acc_score"))),
            "average_style_score": round(_average(_present(rows, "style_match_score"))),
            "regeneration_rate": round(regeneration_rate, 2),
            "success_rate": round(success_rate, 2),
            "total_generations": len(rows),
            "total_cost": round(sum(_present(rows, "api_cost_usd")), 2),
        }

    def analyze_generation_history(self, session_id: str) -> Dict[str, List[str]]:
        """
        Recurring patterns in the latest scored generations

        Returns:
            {"patterns": [...], "success_factors": [...],
             "failure_factors": [...], "recommendations": [...]}
        """
        rows = self.history.list_by_session(session_id, limit=HISTORY_ANALYSIS_LIMIT, scored_only=True)

        patterns: List[str] = []
        success_factors: List[str] = []
        failure_factors: List[str] = []
        recommendations: List[str] = []

        if not rows:
            return {
                "patterns": patterns,
                "success_factors": success_factors,
                "failure_factors": failure_factors,
                "recommendations": recommendations,
            }

        thresholds = self.policy.thresholds
        avg_score = _average(_present(rows, "consistency_score"))
        avg_face = _average(_present(rows, "face_sim_score"))
        avg_garment = _average(_present(rows, "garment_acc_score"))

        if avg_score < thresholds.acceptable.overall:
            patterns.append("Consistently low overall scores - may need better reference images")
        if 0 < avg_face < thresholds.acceptable.face:
            patterns.append("Face preservation struggling - character reference may be low quality")
            failure_factors.append("Poor face similarity scores")
            recommendations.append("Use higher quality face reference images with clear, well-lit faces")
        if 0 < avg_garment < thresholds.acceptable.garment:
            patterns.append("Garment accuracy issues - may need more detailed garment descriptions")
            failure_factors.append("Inconsistent garment rendering")
            recommendations.append("Provide more specific garment color and pattern descriptions")

        regeneration_rate = sum(1 for row in rows if row["was_regenerated"]) / len(rows)
        if regeneration_rate > HIGH_REGENERATION_RATE:
            patterns.append("High regeneration rate - prompts or references may need optimization")
            recommendations.append("Review and optimize prompts for better first-try success")

        successful = [row for row in rows if row["consistency_score"] >= thresholds.good.overall]
        common_models = find_common_values([row["model_name"] for row in successful if row.get("model_name")])
        if common_models:
            success_factors.append(f"Models with best results: {', '.join(common_models)}")
            recommendations.append(f"Prefer using {common_models[0]} for this session")

        return {
            "patterns": patterns,
            "success_factors": success_factors,
            "failure_factors": failure_factors,
            "recommendations": recommendations,
        }

    def generate_quality_report(self, session_id: str) -> Dict[str, Any]:
        """Metrics, history analysis, rating and a one-paragraph summary"""
        metrics = self.get_quality_metrics(session_id)
        analysis = self.analyze_generation_history(session_id)
        overall_rating = self.policy.get_quality_rating(metrics["average_consistency_score"])

        summary = (
            f"Generated {metrics['total_generations']} images with "
            f"{round(metrics['success_rate'] * 100)}% success rate. "
            f"Average consistency score: {metrics['average_consistency_score']}/100 ({overall_rating}). "
        )
        if metrics["regeneration_rate"] > REPORT_REGENERATION_WARNING:
            summary += (
                f"High regeneration rate ({round(metrics['regeneration_rate'] * 100)}%) "
                f"suggests room for optimization. "
            )
        summary += f"Total cost: ${metrics['total_cost']:.2f}."

        logger.info(f"📊 Quality report for session {session_id}: {overall_rating}")

        return {
            "metrics": metrics,
            "analysis": analysis,
            "overall_rating": overall_rating,
            "summary": summary,
        }

    def process_feedback(
        self,
        history_id: str,
        user_rating: int,
        user_feedback: Optional[str] = None,
        specific_issues: Optional[List[str]] = None
    ) -> bool:
        """
        Attach a user rating (1-5), free-text feedback and reported issues

        Raises:
            ReferenceValidationException: rating outside 1-5
        """
        if not isinstance(user_rating, int) or not 1 <= user_rating <= 5:
            raise ReferenceValidationException("Rating must be an integer between 1 and 5", field="user_rating")

        return self.history.update_feedback(history_id, user_rating, user_feedback, specific_issues)

    def get_session_reference_stats(self, session_id: str) -> Dict[str, Any]:
        """Reference counts and average consistency of a session"""
        if self.references is not None:
            refs = self.references.list_by_session(session_id)
        else:
            refs = {"character": [], "garment": [], "style": []}

        rows = self.history.list_by_session(session_id)
        scores = _present(rows, "consistency_score")

        return {
            "character_count": len(refs["character"]),
            "garment_count": len(refs["garment"]),
            "style_count": len(refs["style"]),
            "total_generations": len(rows),
            "average_consistency_score": _average(scores),
        }
