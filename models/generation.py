"""Value objects passed between the generation, scoring and QA stages"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from core.exceptions import ReferenceValidationException


@dataclass(frozen=True)
class ModelSelection:
    """
    Which backing model a provider family should use

    auto(): try the family's models in order (fallback chain enabled)
    pin(model_id): call exactly that model, never fall back
    """
    pinned_model: Optional[str] = None

    AUTO = "auto"

    @classmethod
    def auto(cls) -> "ModelSelection":
        return cls()

    @classmethod
    def pin(cls, model_id: str) -> "ModelSelection":
        if not model_id or model_id == cls.AUTO:
            raise ReferenceValidationException("A pinned model id is required", field="model")
        return cls(pinned_model=model_id)

    @classmethod
    def parse(cls, value: Optional[str]) -> "ModelSelection":
        """'auto' / None -> auto, anything else -> pinned"""
        if value is None or value == cls.AUTO:
            return cls.auto()
        return cls.pin(value)

    @property
    def is_auto(self) -> bool:
        return self.pinned_model is None

    def __str__(self) -> str:
        return self.AUTO if self.is_auto else f"pinned:{self.pinned_model}"


@dataclass(frozen=True)
class TuningParams:
    """Generation knobs shared by every provider family"""
    num_inference_steps: int = 30
    guidance_scale: float = 7.5
    adapter_scale: float = 0.8
    width: int = 1024
    height: int = 1024
    num_outputs: int = 1
    seed: Optional[int] = None
    # Human image used by garment-only try-on; absent means no base image is available
    base_image_url: Optional[str] = None
    # 1 for the first generation, incremented by escalated()
    attempt: int = 1

    @property
    def is_regeneration(self) -> bool:
        return self.attempt > 1

    def escalated(self, extra_steps: int = 10, extra_guidance: float = 1.0) -> "TuningParams":
        """Stricter parameters for a regeneration attempt"""
        if extra_steps <= 0 or extra_guidance <= 0:
            raise ValueError("Regeneration must raise both inference steps and guidance")
        return replace(
            self,
            num_inference_steps=self.num_inference_steps + extra_steps,
            guidance_scale=round(self.guidance_scale + extra_guidance, 2),
            adapter_scale=min(1.0, round(self.adapter_scale + 0.1, 2)),
            attempt=self.attempt + 1,
        )


@dataclass
class AdapterResult:
    """What a single provider family call produced"""
    output_urls: List[str]
    model_used: str
    processing_time_ms: int
    provider: str = "replicate"

    @property
    def output_url(self) -> str:
        return self.output_urls[0]


@dataclass
class ScoreBreakdown:
    """Diagnostic sub-metrics, not used for gating"""
    color_match: Optional[float] = None
    structural_similarity: Optional[float] = None
    feature_consistency: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            "color_match": self.color_match,
            "structural_similarity": self.structural_similarity,
            "feature_consistency": self.feature_consistency,
        }


@dataclass
class ConsistencyScore:
    """Overall score plus one score per supplied reference axis (all 0-100)"""
    overall: float
    face_score: Optional[float] = None
    garment_score: Optional[float] = None
    style_score: Optional[float] = None
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    degraded_axes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "face_score": self.face_score,
            "garment_score": self.garment_score,
            "style_score": self.style_score,
            "breakdown": self.breakdown.to_dict(),
            "degraded_axes": list(self.degraded_axes),
        }


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class IssueCategory(str, Enum):
    FACE = "face"
    GARMENT = "garment"
    STYLE = "style"
    OVERALL = "overall"


@dataclass
class QualityIssue:
    severity: IssueSeverity
    category: IssueCategory
    description: str
    score: float
    threshold: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "category": self.category.value,
            "description": self.description,
            "score": self.score,
            "threshold": self.threshold,
        }


@dataclass
class QualityCheckResult:
    passed: bool
    issues: List[QualityIssue]
    recommendations: List[str]
    should_regenerate: bool
    regeneration_reason: Optional[str] = None

    @property
    def critical_issues(self) -> List[QualityIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.CRITICAL]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "issues": [i.to_dict() for i in self.issues],
            "recommendations": list(self.recommendations),
            "should_regenerate": self.should_regenerate,
            "regeneration_reason": self.regeneration_reason,
        }


@dataclass
class ConsistencyMetadata:
    """Which reference kinds the request carried, and how the pipeline actually ran"""
    used_character_ref: bool
    used_garment_ref: bool
    used_style_ref: bool
    degraded: bool = False
    degradation_reason: Optional[str] = None
    stages_completed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "used_character_ref": self.used_character_ref,
            "used_garment_ref": self.used_garment_ref,
            "used_style_ref": self.used_style_ref,
            "degraded": self.degraded,
            "degradation_reason": self.degradation_reason,
            "stages_completed": list(self.stages_completed),
        }


@dataclass
class GenerationResult:
    """Final image of one orchestrated generation call (possibly multi-stage)"""
    image_url: str
    model_used: str
    provider: str
    processing_time_ms: int
    cost_usd: float
    consistency_metadata: ConsistencyMetadata
    # False when the garment never reached the image (garment-only without a base image)
    garment_applied: bool = True


@dataclass
class GenerationAttempt:
    """One scored attempt; only the kept attempt becomes a history row"""
    generation: GenerationResult
    score: ConsistencyScore
    tuning: TuningParams
    quality_check: Optional[QualityCheckResult] = None

    @property
    def overall(self) -> float:
        return self.score.overall
