"""Quality gating and regeneration policy for generated images"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from core.logging import log_structured
from models.generation import (
    ConsistencyScore,
    GenerationAttempt,
    IssueCategory,
    IssueSeverity,
    QualityCheckResult,
    QualityIssue,
)


@dataclass(frozen=True)
class TierThresholds:
    overall: float
    face: float
    garment: float
    style: float


@dataclass(frozen=True)
class QualityThresholds:
    """Score thresholds per tier; immutable once built"""
    critical: TierThresholds
    acceptable: TierThresholds
    good: TierThresholds
    excellent: TierThresholds

    @classmethod
    def default(cls) -> "QualityThresholds":
        return cls(
            critical=TierThresholds(overall=60, face=50, garment=55, style=50),
            acceptable=TierThresholds(overall=70, face=65, garment=68, style=65),
            good=TierThresholds(overall=80, face=78, garment=80, style=75),
            excellent=TierThresholds(overall=90, face=88, garment=90, style=85),
        )


# (category, description, recommendations) per severity
CRITICAL_FINDINGS = {
    IssueCategory.OVERALL: (
        "Overall consistency score is critically low",
        ["Regenerate with higher guidance scale and more inference steps"],
    ),
    IssueCategory.FACE: (
        "Face consistency is critically low - character identity not preserved",
        ["Try using PhotoMaker instead of InstantID", "Increase IP adapter scale"],
    ),
    IssueCategory.GARMENT: (
        "Garment accuracy is critically low - colors or patterns incorrect",
        ["Try OOTDiffusion instead of IDM-VTON", "Enhance garment description in prompt"],
    ),
    IssueCategory.STYLE: (
        "Style consistency is critically low - lighting/mood incorrect",
        ["Use ControlNet for better style transfer", "Strengthen style keywords in prompt"],
    ),
}

BELOW_ACCEPTABLE_FINDINGS = {
    IssueCategory.OVERALL: (
        "Overall consistency score is below acceptable threshold",
        ["Consider regenerating or adjusting prompt"],
    ),
    IssueCategory.FACE: (
        "Face consistency is below acceptable - partial identity loss",
        ["Adjust controlnet conditioning scale"],
    ),
    IssueCategory.GARMENT: (
        "Garment accuracy is below acceptable - some details missing",
        ["Add more color keywords to prompt"],
    ),
    IssueCategory.STYLE: (
        "Style consistency is below acceptable",
        ["Adjust lighting parameters"],
    ),
}

OVERALL_REGENERATION_REASON = "Overall consistency below acceptable threshold"


class QualityAssurancePolicy:
    """
    Decides pass/fail and regeneration from a consistency score

    Thresholds are injected at construction; the policy holds no other state.
    """

    def __init__(self, thresholds: Optional[QualityThresholds] = None):
        self.thresholds = thresholds or QualityThresholds.default()

    def _check_axis(
        self,
        category: IssueCategory,
        score: Optional[float],
        issues: List[QualityIssue],
        recommendations: List[str]
    ) -> None:
        if score is None:
            return

        axis = category.value
        critical = getattr(self.thresholds.critical, axis)
        acceptable = getattr(self.thresholds.acceptable, axis)

        if score < critical:
            description, advice = CRITICAL_FINDINGS[category]
            issues.append(QualityIssue(IssueSeverity.CRITICAL, category, description, score, critical))
            recommendations.extend(advice)
        elif score < acceptable:
            # style: minor, others: major
            severity = IssueSeverity.MINOR if category == IssueCategory.STYLE else IssueSeverity.MAJOR
            description, advice = BELOW_ACCEPTABLE_FINDINGS[category]
            issues.append(QualityIssue(severity, category, description, score, acceptable))
            recommendations.extend(advice)

    def perform_quality_check(
        self,
        score: ConsistencyScore,
        has_character: bool,
        has_garment: bool,
        has_style: bool
    ) -> QualityCheckResult:
        """
        Check a score against the thresholds

        Args:
            score: Consistency score of the generated image
            has_character / has_garment / has_style: which references were used;
                an axis is only checked when its reference was used and scored

        Returns:
            QualityCheckResult; passed iff no critical issue, should_regenerate iff
            any critical issue or overall below the acceptable threshold
        """
        issues: List[QualityIssue] = []
        recommendations: List[str] = []

        self._check_axis(IssueCategory.OVERALL, score.overall, issues, recommendations)
        if has_character:
            self._check_axis(IssueCategory.FACE, score.face_score, issues, recommendations)
        if has_garment:
            self._check_axis(IssueCategory.GARMENT, score.garment_score, issues, recommendations)
        if has_style:
            self._check_axis(IssueCategory.STYLE, score.style_score, issues, recommendations)

        critical = [i for i in issues if i.severity == IssueSeverity.CRITICAL]
        should_regenerate = bool(critical) or score.overall < self.thresholds.acceptable.overall

        regeneration_reason = None
        if should_regenerate:
            if critical:
                regeneration_reason = f"Critical issues: {', '.join(i.category.value for i in critical)}"
            else:
                regeneration_reason = OVERALL_REGENERATION_REASON

        result = QualityCheckResult(
            passed=not critical,
            issues=issues,
            recommendations=recommendations,
            should_regenerate=should_regenerate,
            regeneration_reason=regeneration_reason,
        )

        log_structured("quality_check", {
            "overall": score.overall,
            "passed": result.passed,
            "issue_count": len(issues),
            "should_regenerate": should_regenerate,
            "reason": regeneration_reason,
        })
        return result

    def get_quality_rating(self, score: float) -> str:
        """poor / fair / good / excellent from the overall thresholds"""
        if score >= self.thresholds.excellent.overall:
            return "excellent"
        if score >= self.thresholds.good.overall:
            return "good"
        if score >= self.thresholds.acceptable.overall:
            return "fair"
        return "poor"


def select_kept_attempt(
    first: GenerationAttempt,
    second: Optional[GenerationAttempt]
) -> Tuple[GenerationAttempt, bool]:
    """
    Pick the attempt to keep

    The regenerated attempt wins only with a strictly greater overall score;
    ties keep the original.

    Returns:
        (kept attempt, was_regenerated)
    """
    if second is not None and second.overall > first.overall:
        return second, True
    return first, False


_policy: Optional[QualityAssurancePolicy] = None


def get_quality_policy() -> QualityAssurancePolicy:
    """Get or create the default policy singleton"""
    global _policy
    if _policy is None:
        _policy = QualityAssurancePolicy()
    return _policy


def perform_quality_check(
    score: ConsistencyScore,
    has_character: bool,
    has_garment: bool,
    has_style: bool
) -> QualityCheckResult:
    return get_quality_policy().perform_quality_check(score, has_character, has_garment, has_style)


def get_quality_rating(score: float) -> str:
    return get_quality_policy().get_quality_rating(score)
