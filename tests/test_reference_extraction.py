"""Tests for building references from uploaded images"""

import pytest

from models.references import StyleReferenceType
from services.reference_extraction import (
    ReferenceExtractor,
    generate_prompt_suggestions,
    suggest_reference_type,
)
from tests.conftest import make_image_bytes, make_split_image_bytes


@pytest.fixture
def extractor(storage):
    return ReferenceExtractor(storage=storage)


class TestReferenceExtraction:
    """Test upload + palette extraction per reference kind"""

    def test_character_reference(self, extractor, storage):
        data = make_image_bytes((26, 43, 76), size=(480, 640), fmt="JPEG")

        extraction = extractor.extract_character_reference(data, "alice.jpg")

        assert "/characters/" in extraction.face_image_url
        assert extraction.face_image_url.endswith("/alice.jpg")
        assert extraction.thumbnail_url.endswith("/thumb_alice.jpg")
        assert storage.download(extraction.face_image_url) == data
        assert extraction.visual_features["image_metadata"]["width"] == 480
        assert len(extraction.visual_features["color_names"]) == len(extraction.visual_features["dominant_colors"])

        reference = extraction.to_reference("session-1", name="Alice")
        assert reference.session_id == "session-1"
        assert reference.face_image_url == extraction.face_image_url
        assert reference.color_names == extraction.visual_features["color_names"]

    def test_garment_reference(self, extractor):
        data = make_split_image_bytes((255, 0, 0), (0, 0, 128))

        extraction = extractor.extract_garment_reference(data, "jacket.png")

        assert extraction.category == "clothing"
        assert extraction.primary_color == extraction.color_palette[0]
        assert set(extraction.color_palette) == {"#FF0000", "#000080"}
        assert len(extraction.color_names) == len(extraction.color_palette)

        reference = extraction.to_reference("session-1", fabric_texture="denim")
        assert reference.fabric_texture == "denim"
        assert reference.color_palette == extraction.color_palette

    def test_same_filename_does_not_overwrite(self, extractor, storage):
        """Test that two uploads named alike keep separate assets"""
        first_data = make_image_bytes((255, 0, 0))
        second_data = make_image_bytes((0, 0, 255))

        first = extractor.extract_character_reference(first_data, "front.png")
        second = extractor.extract_character_reference(second_data, "front.png")

        assert first.face_image_url != second.face_image_url
        assert first.thumbnail_url != second.thumbnail_url
        assert storage.download(first.face_image_url) == first_data
        assert storage.download(second.face_image_url) == second_data

    def test_garment_category_override(self, extractor):
        extraction = extractor.extract_garment_reference(make_image_bytes(), "skirt.png", category="lower_body")
        assert extraction.category == "lower_body"

    def test_style_reference(self, extractor):
        data = make_image_bytes((240, 230, 220), size=(1600, 900))

        extraction = extractor.extract_style_reference(data, "beach.png", StyleReferenceType.LOCATION)

        assert "/styles/" in extraction.reference_image_url
        assert extraction.reference_image_url.endswith("/beach.png")
        assert "high-key lighting" in extraction.prompt_suggestions
        assert "consistent background" in extraction.prompt_suggestions

        reference = extraction.to_reference("session-1", "Beach", StyleReferenceType.LOCATION)
        assert reference.prompt_template == ", ".join(extraction.prompt_suggestions)


class TestPromptSuggestions:
    """Test palette-derived prompt fragments"""

    def test_dark_cool_palette(self):
        suggestions = generate_prompt_suggestions(["#101020", "#202040"], ["Dark Navy", "Dark Navy"], StyleReferenceType.MOOD)

        assert suggestions == [
            "dark navy tones",
            "cool color palette",
            "low-key lighting",
            "moody and dramatic",
            "consistent emotional tone",
        ]

    def test_balanced_warm_palette_is_capped(self):
        suggestions = generate_prompt_suggestions(["#C06040"], ["Brown"], StyleReferenceType.STYLE)

        assert suggestions[:3] == ["brown tones", "warm color palette", "balanced lighting"]
        assert len(suggestions) == 5

    def test_empty_palette(self):
        suggestions = generate_prompt_suggestions([], [], StyleReferenceType.LIGHTING)
        assert suggestions[0] == "neutral tones"
        assert "balanced lighting" in suggestions


class TestSuggestReferenceType:
    def test_portrait_prefers_character(self):
        result = suggest_reference_type(make_image_bytes(size=(700, 1000)))
        assert result["suggested_types"][0] == "CHARACTER"

    def test_wide_image_prefers_style(self):
        result = suggest_reference_type(make_image_bytes(size=(1600, 900)))
        assert result["suggested_types"][0] in ("STYLE", "LOCATION")
        assert result["confidence"]["CHARACTER"] == 0.3
