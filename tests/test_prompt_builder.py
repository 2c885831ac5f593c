"""Tests for the consistency prompt builder"""

from models.references import ReferenceSet
from services.prompt_builder import (
    ConsistencyPromptBuilder,
    DEFAULT_NEGATIVES,
    PromptModifiers,
    build_prompt,
    validate_prompt,
)


class TestBuildPrompt:
    """Test prompt assembly from references"""

    def test_no_references_keeps_base_prompt(self):
        """Test that a reference-free prompt is just the base plus default negatives"""
        result = build_prompt("  a city street at dusk  ")

        assert result.enhanced_prompt == "a city street at dusk"
        assert result.negative_prompt == ", ".join(DEFAULT_NEGATIVES)
        assert result.consistency_tags == []
        assert result.prompt_breakdown == {"base": "a city street at dusk"}

    def test_garment_injection(self, garment_ref):
        """Test that garment category, colors and primary color are injected"""
        result = build_prompt("model walking", ReferenceSet(garment=garment_ref))

        assert "consistent clothing, same outfit" in result.enhanced_prompt
        assert "upper_body" in result.enhanced_prompt
        assert "Navy and Gray colors" in result.enhanced_prompt
        assert "primarily #1A2B4C" in result.enhanced_prompt
        assert "wool fabric" in result.enhanced_prompt
        assert result.consistency_tags == ["garment-consistent"]

        negative = result.negative_prompt
        assert negative.index("different clothing") < negative.index("inconsistent style")

    def test_character_injection_uses_first_two_color_names(self, character_ref):
        """Test that character injection carries anchors, two color names and description"""
        result = build_prompt("portrait", ReferenceSet(character=character_ref))

        injection = result.prompt_breakdown["character_injection"]
        assert injection.startswith("consistent character, same person, identical face")
        assert "Black and Beige tones" in injection
        assert "White" not in injection
        assert injection.endswith("short black hair")

    def test_block_order(self, character_ref, garment_ref, style_ref):
        """Test the fixed order base, character, garment, style, modifiers"""
        result = build_prompt(
            "editorial shot",
            ReferenceSet(character=character_ref, garment=garment_ref, style=style_ref),
            PromptModifiers(mood="calm", camera_angle="low"),
        )

        prompt = result.enhanced_prompt
        positions = [
            prompt.index("editorial shot"),
            prompt.index("consistent character"),
            prompt.index("consistent clothing"),
            prompt.index("soft studio lighting"),
            prompt.index("calm mood"),
        ]
        assert positions == sorted(positions)
        assert result.consistency_tags == ["character-consistent", "garment-consistent", "style-consistent"]

    def test_negative_order(self, character_ref, garment_ref, style_ref):
        """Test that negatives run character, garment, style, then defaults"""
        result = build_prompt(
            "editorial shot",
            ReferenceSet(character=character_ref, garment=garment_ref, style=style_ref),
        )

        negative = result.negative_prompt
        assert negative.startswith("different face, different person, wrong identity")
        assert negative.index("different clothing") < negative.index("harsh shadows")
        assert negative.index("harsh shadows") < negative.index("inconsistent style")

    def test_modifiers_only_present_fields(self):
        """Test that only the supplied modifiers are rendered"""
        result = build_prompt("beach", modifiers=PromptModifiers(lighting="golden hour"))

        assert result.enhanced_prompt == "beach, golden hour lighting"
        assert result.prompt_breakdown["additional_injection"] == "golden hour lighting"


class TestPromptValidation:
    """Test advisory prompt validation"""

    def test_short_prompt_is_flagged(self):
        result = validate_prompt("cat")
        assert not result.is_valid
        assert "Prompt too short" in result.issues

    def test_conflicting_terms(self):
        """Test that day/night conflicts are reported"""
        result = validate_prompt("a professional photo of a street by day and night")
        assert "Conflicting terms: day and night" in result.issues
        assert "Choose either day or night" in result.suggestions

    def test_quality_descriptor_suggestion(self):
        result = validate_prompt("a woman standing near a fountain")
        assert result.is_valid
        assert any("quality descriptors" in s for s in result.suggestions)

    def test_keywords_and_complexity(self):
        keywords = ConsistencyPromptBuilder.extract_keywords("The model with a red coat, red scarf")
        assert keywords == ["model", "coat", "scarf"]

        assert ConsistencyPromptBuilder.calculate_complexity("") == 0
        assert 0 < ConsistencyPromptBuilder.calculate_complexity("stunning, detailed, vibrant portrait") <= 100
