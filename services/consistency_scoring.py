"""
Consistency scoring engine

Scores a generated image against each supplied reference on an independent
axis (face, garment, style) and combines the present axes into an overall
score. Axes run concurrently; a failing axis is replaced by a neutral score
and never aborts the others.
"""

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from core.exceptions import ScoringDegradedException
from core.image_loader import ImageLoader, get_image_loader
from core.logging import logger, log_structured
from models.generation import ConsistencyScore, ScoreBreakdown
from models.references import CharacterReference, GarmentReference, StyleReference
from utils.image_processing import (
    extract_dominant_colors,
    measure_brightness_contrast,
    palette_similarity,
    rgb_to_hex,
)

# Substituted when an axis cannot be scored
NEUTRAL_SCORES = {"face": 75, "garment": 80, "style": 82}

AXIS_WEIGHTS = {"face": 0.40, "garment": 0.35, "style": 0.25}

GARMENT_COLOR_WEIGHT = 0.6
GARMENT_STRUCTURE_WEIGHT = 0.4

STYLE_LIGHTING_WEIGHT = 0.35
STYLE_HARMONY_WEIGHT = 0.35
STYLE_COMPOSITION_WEIGHT = 0.30

# Lighting / color harmony without anything to compare against
UNSPECIFIED_MATCH_SCORE = 85

# Overall score bounds when no reference was supplied
GENERAL_QUALITY_FLOOR = 85
GENERAL_QUALITY_CEILING = 100

SAMPLED_COLOR_COUNT = 8
COMPARE_SIZE = (64, 64)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


# ========== Scoring primitives (pluggable) ==========

class FaceSimilarity(ABC):
    """Face similarity between a generated image and a face reference, in [0, 100]"""

    @abstractmethod
    def similarity(self, generated: Image.Image, reference: Image.Image) -> float:
        pass


class StructuralSimilarity(ABC):
    """Structural / pattern similarity between two images, in [0, 100]"""

    @abstractmethod
    def similarity(self, generated: Image.Image, reference: Image.Image) -> float:
        pass


class Composition(ABC):
    """Composition quality of a single image, in [0, 100]"""

    @abstractmethod
    def score(self, image: Image.Image) -> float:
        pass


class HistogramFaceSimilarity(FaceSimilarity):
    """
    Center-crop color histogram intersection

    A stand-in until a face-embedding model is wired in: it compares the
    central region, where portrait faces sit, of both images.
    """

    BINS = 16

    def _histogram(self, image: Image.Image) -> np.ndarray:
        w, h = image.size
        crop = image.crop((w // 4, h // 4, w * 3 // 4, h * 3 // 4)).resize(COMPARE_SIZE)
        pixels = np.asarray(crop.convert("RGB"), dtype=np.float64).reshape(-1, 3)
        hist, _ = np.histogramdd(pixels, bins=self.BINS, range=[(0, 256)] * 3)
        return hist.ravel() / hist.sum()

    def similarity(self, generated: Image.Image, reference: Image.Image) -> float:
        intersection = np.minimum(self._histogram(generated), self._histogram(reference)).sum()
        return _clamp(float(intersection) * 100)


class GlobalSSIM(StructuralSimilarity):
    """Single-window SSIM on downscaled grayscale images, negative values clamp to 0"""

    C1 = (0.01 * 255) ** 2
    C2 = (0.03 * 255) ** 2

    def _gray(self, image: Image.Image) -> np.ndarray:
        return np.asarray(image.convert("L").resize(COMPARE_SIZE), dtype=np.float64)

    def similarity(self, generated: Image.Image, reference: Image.Image) -> float:
        x = self._gray(generated)
        y = self._gray(reference)

        mu_x, mu_y = x.mean(), y.mean()
        var_x, var_y = x.var(), y.var()
        cov = ((x - mu_x) * (y - mu_y)).mean()

        ssim = ((2 * mu_x * mu_y + self.C1) * (2 * cov + self.C2)) / (
            (mu_x ** 2 + mu_y ** 2 + self.C1) * (var_x + var_y + self.C2)
        )
        return _clamp(float(ssim) * 100)


class CenterWeightedComposition(Composition):
    """
    Scores how close the visual mass (gradient energy) sits to the frame center

    A centered subject scores 100, mass pushed to a corner scores 60.
    """

    def score(self, image: Image.Image) -> float:
        gray = np.asarray(image.convert("L").resize(COMPARE_SIZE), dtype=np.float64)
        gy, gx = np.gradient(gray)
        energy = np.hypot(gx, gy)
        total = energy.sum()
        if total == 0:
            return 80.0

        rows, cols = np.indices(energy.shape)
        cy = (energy * rows).sum() / total / (energy.shape[0] - 1)
        cx = (energy * cols).sum() / total / (energy.shape[1] - 1)

        # 0 at center, 1 at a corner
        offset = np.hypot(cx - 0.5, cy - 0.5) / np.hypot(0.5, 0.5)
        return _clamp(100 - 40 * float(offset))


# ========== Axis results ==========

@dataclass
class AxisResult:
    """Score of one axis plus the diagnostic sub-metrics it produced"""
    score: float
    color_match: Optional[float] = None
    structural_similarity: Optional[float] = None
    feature_consistency: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)


def score_lighting(lighting_setup: Optional[str], brightness: float, contrast: float) -> float:
    """
    Match measured brightness/contrast against keywords of a lighting descriptor

    Base 70 plus per-keyword bonuses, capped at 100. No descriptor scores 85.
    """
    if not lighting_setup:
        return UNSPECIFIED_MATCH_SCORE

    lighting = lighting_setup.lower()
    score = 70

    if "soft" in lighting:
        if 100 < brightness < 180:
            score += 10
        if contrast < 60:
            score += 10

    if "dramatic" in lighting:
        if contrast > 70:
            score += 15

    if "high-key" in lighting or "high key" in lighting:
        if brightness > 180:
            score += 15
        if contrast < 50:
            score += 10

    if "natural" in lighting:
        if 110 < brightness < 170:
            score += 10
        if 40 < contrast < 70:
            score += 10

    return min(100, score)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores (Python's round() goes to even)"""
    return int(math.floor(value + 0.5))


def combine_axes(axis_scores: Dict[str, float]) -> int:
    """Weighted average of the present axes, weights renormalized to sum to 1"""
    if not axis_scores:
        raise ValueError("At least one axis score is required")
    total_weight = sum(AXIS_WEIGHTS[axis] for axis in axis_scores)
    weighted = sum(score * AXIS_WEIGHTS[axis] for axis, score in axis_scores.items())
    return round_half_up(weighted / total_weight)


class ConsistencyScoringEngine:
    """Scores generated images against character, garment and style references"""

    def __init__(
        self,
        image_loader: Optional[ImageLoader] = None,
        face_similarity: Optional[FaceSimilarity] = None,
        structural_similarity: Optional[StructuralSimilarity] = None,
        composition: Optional[Composition] = None
    ):
        self._image_loader = image_loader
        self.face_similarity = face_similarity or HistogramFaceSimilarity()
        self.structural_similarity = structural_similarity or GlobalSSIM()
        self.composition = composition or CenterWeightedComposition()

    @property
    def image_loader(self) -> ImageLoader:
        if self._image_loader is None:
            self._image_loader = get_image_loader()
        return self._image_loader

    # CPU-bound image work below runs in a worker thread so the axes overlap

    def _compare_garment(
        self,
        generated: Image.Image,
        reference: Image.Image,
        expected: List[str]
    ) -> Tuple[float, float]:
        if not expected:
            expected = [rgb_to_hex(*c) for c in extract_dominant_colors(reference, SAMPLED_COLOR_COUNT)]

        sampled = extract_dominant_colors(generated, SAMPLED_COLOR_COUNT)
        color_score = palette_similarity(expected, sampled)
        structure_score = _clamp(self.structural_similarity.similarity(generated, reference))
        return color_score, structure_score

    def _analyse_style(self, generated: Image.Image, style_ref: StyleReference):
        brightness, contrast = measure_brightness_contrast(generated)
        lighting = score_lighting(style_ref.lighting_setup, brightness, contrast)

        dominant = extract_dominant_colors(generated, SAMPLED_COLOR_COUNT)
        if style_ref.color_palette:
            harmony = palette_similarity(style_ref.color_palette, dominant)
        else:
            harmony = UNSPECIFIED_MATCH_SCORE

        composition = _clamp(self.composition.score(generated))
        return brightness, contrast, lighting, dominant, harmony, composition

    async def score_face(self, generated_image_url: str, character_ref: CharacterReference) -> AxisResult:
        """
        Face axis

        Raises:
            ScoringDegradedException: images could not be loaded or compared
        """
        try:
            generated, reference = await asyncio.gather(
                self.image_loader.load(generated_image_url),
                self.image_loader.load(character_ref.face_image_url),
            )
            similarity = await asyncio.to_thread(self.face_similarity.similarity, generated, reference)
            score = round(_clamp(similarity), 2)
        except ScoringDegradedException:
            raise
        except Exception as e:
            raise ScoringDegradedException("face", e)

        return AxisResult(score=score, feature_consistency=score)

    async def score_garment(self, generated_image_url: str, garment_ref: GarmentReference) -> AxisResult:
        """
        Garment axis: 60% palette similarity + 40% structural similarity

        An empty declared palette is replaced by the reference image's own
        dominant colors.

        Raises:
            ScoringDegradedException: images could not be loaded or compared
        """
        try:
            generated, reference = await asyncio.gather(
                self.image_loader.load(generated_image_url),
                self.image_loader.load(garment_ref.reference_image_url),
            )

            color_score, structure_score = await asyncio.to_thread(
                self._compare_garment, generated, reference, list(garment_ref.color_palette)
            )
        except ScoringDegradedException:
            raise
        except Exception as e:
            raise ScoringDegradedException("garment", e)

        overall = round_half_up(GARMENT_COLOR_WEIGHT * color_score + GARMENT_STRUCTURE_WEIGHT * structure_score)
        return AxisResult(
            score=overall,
            color_match=round(color_score),
            structural_similarity=round(structure_score),
            details={"color_difference": round(100 - color_score, 2)},
        )

    async def score_style(self, generated_image_url: str, style_ref: StyleReference) -> AxisResult:
        """
        Style axis: 35% lighting + 35% color harmony + 30% composition

        Raises:
            ScoringDegradedException: image could not be loaded or analysed
        """
        try:
            generated = await self.image_loader.load(generated_image_url)
            brightness, contrast, lighting, dominant, harmony, composition = await asyncio.to_thread(
                self._analyse_style, generated, style_ref
            )
        except ScoringDegradedException:
            raise
        except Exception as e:
            raise ScoringDegradedException("style", e)

        overall = round_half_up(
            STYLE_LIGHTING_WEIGHT * lighting +
            STYLE_HARMONY_WEIGHT * harmony +
            STYLE_COMPOSITION_WEIGHT * composition
        )
        return AxisResult(
            score=overall,
            color_match=round(harmony),
            structural_similarity=round(composition),
            details={
                "lighting_score": round(lighting),
                "dominant_colors": [rgb_to_hex(*c) for c in dominant],
                "brightness": round(brightness),
                "contrast": round(contrast),
            },
        )

    async def score_general(self, generated_image_url: str) -> int:
        """
        Non-penalizing image-quality heuristic used when no reference is supplied

        Well-exposed, contrasted images score up to 100; the floor is 85,
        which is also returned when the image cannot be analysed.
        """
        try:
            image = await self.image_loader.load(generated_image_url)
            brightness, contrast = await asyncio.to_thread(measure_brightness_contrast, image)
        except Exception as e:
            logger.warning(f"⚠️ General quality heuristic unavailable: {e}")
            return GENERAL_QUALITY_FLOOR

        exposure = 1 - min(abs(brightness - 128) / 128, 1)
        contrast_fit = min(contrast / 25, 1)
        bonus = (GENERAL_QUALITY_CEILING - GENERAL_QUALITY_FLOOR) * (exposure + contrast_fit) / 2
        return int(_clamp(round_half_up(GENERAL_QUALITY_FLOOR + bonus), GENERAL_QUALITY_FLOOR, GENERAL_QUALITY_CEILING))

    async def _axis_or_neutral(self, axis: str, coro) -> AxisResult:
        try:
            return await coro
        except ScoringDegradedException as e:
            neutral = NEUTRAL_SCORES[axis]
            log_structured("scoring_degraded", {
                "axis": axis,
                "error": e.message,
                "neutral_score": neutral,
            })
            result = AxisResult(score=neutral, details={"degraded": True})
            if axis == "face":
                result.feature_consistency = neutral
            elif axis == "garment":
                result.color_match = neutral
            return result

    async def calculate_consistency_score(
        self,
        generated_image_url: str,
        character_ref: Optional[CharacterReference] = None,
        garment_ref: Optional[GarmentReference] = None,
        style_ref: Optional[StyleReference] = None
    ) -> ConsistencyScore:
        """
        Score a generated image against every supplied reference

        Args:
            generated_image_url: Image to score
            character_ref: Face axis reference (optional)
            garment_ref: Garment axis reference (optional)
            style_ref: Style axis reference (optional)

        Returns:
            ConsistencyScore; per-axis scores are present iff the reference was
            supplied, overall is the renormalized weighted average of them
        """
        axes: List[str] = []
        tasks = []
        if character_ref is not None:
            axes.append("face")
            tasks.append(self._axis_or_neutral("face", self.score_face(generated_image_url, character_ref)))
        if garment_ref is not None:
            axes.append("garment")
            tasks.append(self._axis_or_neutral("garment", self.score_garment(generated_image_url, garment_ref)))
        if style_ref is not None:
            axes.append("style")
            tasks.append(self._axis_or_neutral("style", self.score_style(generated_image_url, style_ref)))

        if not axes:
            overall = await self.score_general(generated_image_url)
            return ConsistencyScore(overall=overall)

        results: Dict[str, AxisResult] = dict(zip(axes, await asyncio.gather(*tasks)))

        breakdown = ScoreBreakdown()
        if "face" in results:
            breakdown.feature_consistency = results["face"].feature_consistency
        if "garment" in results:
            breakdown.color_match = results["garment"].color_match
            breakdown.structural_similarity = results["garment"].structural_similarity
        if "style" in results:
            if breakdown.color_match is None:
                breakdown.color_match = results["style"].color_match
            if breakdown.structural_similarity is None:
                breakdown.structural_similarity = results["style"].structural_similarity

        score = ConsistencyScore(
            overall=combine_axes({axis: result.score for axis, result in results.items()}),
            face_score=results["face"].score if "face" in results else None,
            garment_score=results["garment"].score if "garment" in results else None,
            style_score=results["style"].score if "style" in results else None,
            breakdown=breakdown,
            degraded_axes=[axis for axis, result in results.items() if result.details.get("degraded")],
        )

        logger.info(
            f"📊 Consistency score: overall={score.overall} "
            f"face={score.face_score} garment={score.garment_score} style={score.style_score}"
        )
        return score


_scoring_engine: Optional[ConsistencyScoringEngine] = None


def get_scoring_engine() -> ConsistencyScoringEngine:
    """Get or create the scoring engine singleton"""
    global _scoring_engine
    if _scoring_engine is None:
        _scoring_engine = ConsistencyScoringEngine()
    return _scoring_engine


async def calculate_consistency_score(
    generated_image_url: str,
    character_ref: Optional[CharacterReference] = None,
    garment_ref: Optional[GarmentReference] = None,
    style_ref: Optional[StyleReference] = None
) -> ConsistencyScore:
    """Score with the default engine"""
    return await get_scoring_engine().calculate_consistency_score(
        generated_image_url, character_ref, garment_ref, style_ref
    )
