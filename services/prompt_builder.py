"""Consistency-aware prompt builder (template based, no model calls)"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.references import CharacterReference, GarmentReference, StyleReference, ReferenceSet


CHARACTER_ANCHORS = ["consistent character", "same person", "identical face"]
CHARACTER_NEGATIVES = ["different face", "different person", "wrong identity"]

GARMENT_ANCHORS = ["consistent clothing", "same outfit"]
GARMENT_NEGATIVES = ["different clothing", "wrong colors", "inconsistent outfit"]

DEFAULT_NEGATIVES = [
    "inconsistent style",
    "different person",
    "wrong colors",
    "poor quality",
    "blurry",
    "distorted",
    "artifacts",
]

CONFLICTING_TERMS = [
    ("day", "night"),
    ("bright", "dark"),
    ("happy", "sad"),
]

QUALITY_DESCRIPTORS = re.compile(r"\b(professional|high-quality|detailed|cinematic)\b", re.IGNORECASE)
COMPLEXITY_DESCRIPTORS = re.compile(
    r"\b(vibrant|beautiful|stunning|professional|high-quality|detailed)\b", re.IGNORECASE
)
KEYWORD_STOP_WORDS = {"with", "and", "the", "for", "that"}

MIN_PROMPT_LENGTH = 10
MAX_PROMPT_LENGTH = 1000


@dataclass(frozen=True)
class PromptModifiers:
    """Free-form modifiers appended after the reference blocks"""
    style: Optional[str] = None
    lighting: Optional[str] = None
    mood: Optional[str] = None
    camera_angle: Optional[str] = None


@dataclass
class EnhancedPrompt:
    enhanced_prompt: str
    negative_prompt: str
    prompt_breakdown: Dict[str, str]
    consistency_tags: List[str] = field(default_factory=list)


@dataclass
class PromptValidation:
    is_valid: bool
    issues: List[str]
    suggestions: List[str]


class ConsistencyPromptBuilder:
    """
    Builds generation prompts that carry reference data for consistency
    across repeated generations.

    Block order is fixed: base, character, garment, style, modifiers.
    Negative order is fixed: character, garment, style, generic defaults.
    """

    @staticmethod
    def build_prompt(
        base_prompt: str,
        character_ref: Optional[CharacterReference] = None,
        garment_ref: Optional[GarmentReference] = None,
        style_ref: Optional[StyleReference] = None,
        modifiers: Optional[PromptModifiers] = None
    ) -> EnhancedPrompt:
        """
        Build a consistency-enhanced prompt from references

        Args:
            base_prompt: User prompt (not validated here, see validate_prompt)
            character_ref: Identity anchor (optional)
            garment_ref: Clothing anchor (optional)
            style_ref: Aesthetic anchor (optional)
            modifiers: Extra style/lighting/mood/camera hints (optional)

        Returns:
            EnhancedPrompt with positive/negative prompts, breakdown and tags
        """
        base = base_prompt.strip()
        prompt_parts: List[str] = [base]
        negative_parts: List[str] = []
        tags: List[str] = []
        breakdown: Dict[str, str] = {"base": base}

        if character_ref is not None:
            injection = ConsistencyPromptBuilder._character_injection(character_ref)
            prompt_parts.append(injection)
            breakdown["character_injection"] = injection
            tags.append("character-consistent")
            negative_parts.append(", ".join(CHARACTER_NEGATIVES))

        if garment_ref is not None:
            injection = ConsistencyPromptBuilder._garment_injection(garment_ref)
            prompt_parts.append(injection)
            breakdown["garment_injection"] = injection
            tags.append("garment-consistent")
            negative_parts.append(", ".join(GARMENT_NEGATIVES))

        if style_ref is not None:
            prompt_parts.append(style_ref.prompt_template)
            breakdown["style_injection"] = style_ref.prompt_template
            tags.append("style-consistent")
            if style_ref.negative_prompt:
                negative_parts.append(style_ref.negative_prompt)

        if modifiers is not None:
            injection = ConsistencyPromptBuilder._modifier_injection(modifiers)
            if injection:
                prompt_parts.append(injection)
                breakdown["additional_injection"] = injection

        negative_parts.extend(DEFAULT_NEGATIVES)

        return EnhancedPrompt(
            enhanced_prompt=", ".join(prompt_parts),
            negative_prompt=", ".join(negative_parts),
            prompt_breakdown=breakdown,
            consistency_tags=tags,
        )

    @staticmethod
    def _character_injection(character_ref: CharacterReference) -> str:
        parts = list(CHARACTER_ANCHORS)

        main_colors = character_ref.color_names[:2]
        if main_colors:
            parts.append(f"{' and '.join(main_colors)} tones")

        if character_ref.description:
            parts.append(character_ref.description)

        return ", ".join(parts)

    @staticmethod
    def _garment_injection(garment_ref: GarmentReference) -> str:
        parts = list(GARMENT_ANCHORS)

        if garment_ref.category:
            parts.append(garment_ref.category)
        if garment_ref.color_names:
            parts.append(f"{' and '.join(garment_ref.color_names[:3])} colors")
        if garment_ref.primary_color:
            parts.append(f"primarily {garment_ref.primary_color}")
        if garment_ref.fabric_texture:
            parts.append(f"{garment_ref.fabric_texture} fabric")
        if garment_ref.pattern:
            parts.append(f"{garment_ref.pattern} pattern")
        if garment_ref.style:
            parts.append(f"{garment_ref.style} style")
        if garment_ref.description:
            parts.append(garment_ref.description)

        return ", ".join(parts)

    @staticmethod
    def _modifier_injection(modifiers: PromptModifiers) -> str:
        parts = []
        if modifiers.style:
            parts.append(f"{modifiers.style} style")
        if modifiers.lighting:
            parts.append(f"{modifiers.lighting} lighting")
        if modifiers.mood:
            parts.append(f"{modifiers.mood} mood")
        if modifiers.camera_angle:
            parts.append(f"{modifiers.camera_angle} camera angle")
        return ", ".join(parts)

    @staticmethod
    def validate_prompt(prompt: str) -> PromptValidation:
        """
        Advisory prompt check; never blocks generation

        Returns:
            PromptValidation with issues and improvement suggestions
        """
        issues: List[str] = []
        suggestions: List[str] = []

        if len(prompt) < MIN_PROMPT_LENGTH:
            issues.append("Prompt too short")
            suggestions.append("Add more descriptive details")

        if len(prompt) > MAX_PROMPT_LENGTH:
            issues.append("Prompt too long")
            suggestions.append("Simplify and focus on key elements")

        if not re.search(r"\w", prompt):
            issues.append("No valid words found")

        lowered = prompt.lower()
        for first, second in CONFLICTING_TERMS:
            if first in lowered and second in lowered:
                issues.append(f"Conflicting terms: {first} and {second}")
                suggestions.append(f"Choose either {first} or {second}")

        if not QUALITY_DESCRIPTORS.search(prompt):
            suggestions.append("Consider adding quality descriptors (professional, high-quality, etc.)")

        return PromptValidation(is_valid=not issues, issues=issues, suggestions=suggestions)

    @staticmethod
    def extract_keywords(prompt: str) -> List[str]:
        """Unique lower-cased keywords (longer than 3 chars) in first-seen order"""
        words = [w for w in re.split(r"[,.\s]+", prompt.lower()) if len(w) > 3]
        words = [w for w in words if w not in KEYWORD_STOP_WORDS]
        return list(dict.fromkeys(words))

    @staticmethod
    def calculate_complexity(prompt: str) -> int:
        """Prompt complexity score (0-100)"""
        words = len(prompt.split())
        commas = prompt.count(",")
        descriptors = len(COMPLEXITY_DESCRIPTORS.findall(prompt))

        word_score = min(words / 50, 1) * 40
        structure_score = min(commas / 10, 1) * 30
        descriptor_score = min(descriptors / 5, 1) * 30

        return round(word_score + structure_score + descriptor_score)


def build_prompt(
    base_prompt: str,
    references: Optional[ReferenceSet] = None,
    modifiers: Optional[PromptModifiers] = None
) -> EnhancedPrompt:
    """Build a prompt from a ReferenceSet"""
    references = references or ReferenceSet()
    return ConsistencyPromptBuilder.build_prompt(
        base_prompt,
        character_ref=references.character,
        garment_ref=references.garment,
        style_ref=references.style,
        modifiers=modifiers,
    )


def validate_prompt(prompt: str) -> PromptValidation:
    return ConsistencyPromptBuilder.validate_prompt(prompt)
