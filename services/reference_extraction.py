"""Build reference data (palette, color names, metadata) from uploaded images"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.logging import logger
from core.storage import AssetStorage, get_asset_storage
from models.references import (
    CharacterReference,
    GarmentReference,
    StyleReference,
    StyleReferenceType,
)
from utils.image_processing import (
    create_thumbnail,
    extract_dominant_colors,
    get_color_names_from_palette,
    get_image_metadata,
    hex_to_rgb,
    load_image,
    rgb_to_hex,
)

CHARACTER_PALETTE_SIZE = 5
GARMENT_PALETTE_SIZE = 8
STYLE_PALETTE_SIZE = 6
DEFAULT_GARMENT_CATEGORY = "clothing"
MAX_PROMPT_SUGGESTIONS = 5

TYPE_SUGGESTIONS = {
    StyleReferenceType.LOCATION: ["consistent background", "same environment"],
    StyleReferenceType.LIGHTING: ["consistent lighting setup", "same mood"],
    StyleReferenceType.STYLE: ["consistent artistic style", "same aesthetic"],
    StyleReferenceType.MOOD: ["consistent emotional tone"],
}


@dataclass
class CharacterExtraction:
    face_image_url: str
    thumbnail_url: str
    visual_features: Dict[str, Any]

    def to_reference(
        self,
        session_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        reference_id: Optional[str] = None
    ) -> CharacterReference:
        return CharacterReference(
            id=reference_id or str(uuid.uuid4()),
            session_id=session_id,
            face_image_url=self.face_image_url,
            name=name,
            description=description,
            visual_features=self.visual_features,
        )


@dataclass
class GarmentExtraction:
    reference_image_url: str
    thumbnail_url: str
    color_palette: List[str]
    color_names: List[str]
    primary_color: Optional[str]
    category: str

    def to_reference(
        self,
        session_id: str,
        description: Optional[str] = None,
        reference_id: Optional[str] = None,
        **attributes
    ) -> GarmentReference:
        """attributes: fabric_texture / pattern / style"""
        return GarmentReference(
            id=reference_id or str(uuid.uuid4()),
            session_id=session_id,
            reference_image_url=self.reference_image_url,
            category=self.category,
            color_palette=list(self.color_palette),
            color_names=list(self.color_names),
            primary_color=self.primary_color,
            description=description,
            **attributes
        )


@dataclass
class StyleExtraction:
    reference_image_url: str
    thumbnail_url: str
    color_palette: List[str]
    prompt_suggestions: List[str] = field(default_factory=list)

    def to_reference(
        self,
        session_id: str,
        name: str,
        reference_type: StyleReferenceType,
        prompt_template: Optional[str] = None,
        reference_id: Optional[str] = None,
        **attributes
    ) -> StyleReference:
        """A missing prompt template is built from the suggestions"""
        return StyleReference(
            id=reference_id or str(uuid.uuid4()),
            session_id=session_id,
            type=reference_type,
            name=name,
            prompt_template=prompt_template or ", ".join(self.prompt_suggestions),
            color_palette=list(self.color_palette),
            reference_image_url=self.reference_image_url,
            **attributes
        )


def extract_palette(image_data: bytes, count: int) -> List[str]:
    """Dominant colors as hex, most dominant first"""
    image = load_image(image_data)
    return [rgb_to_hex(*c) for c in extract_dominant_colors(image, count)]


def detect_garment_category(color_palette: List[str], color_names: List[str]) -> str:
    # TODO: classify from the image (CLIP) instead of returning the generic category
    return DEFAULT_GARMENT_CATEGORY


def generate_prompt_suggestions(
    color_palette: List[str],
    color_names: List[str],
    reference_type: StyleReferenceType
) -> List[str]:
    """
    Prompt fragments from a palette

    Dominant color tone, warm/cool palette, lighting key from mean brightness,
    then type-specific anchors; at most MAX_PROMPT_SUGGESTIONS.
    """
    suggestions: List[str] = []

    dominant_name = color_names[0].lower() if color_names else "neutral"
    suggestions.append(f"{dominant_name} tones")

    rgb = [hex_to_rgb(c) for c in color_palette]
    is_warm = any(r > b and r > g for r, g, b in rgb)
    suggestions.append("warm color palette" if is_warm else "cool color palette")

    avg_brightness = sum((r + g + b) / 3 for r, g, b in rgb) / len(rgb) if rgb else 128
    if avg_brightness > 180:
        suggestions.extend(["high-key lighting", "bright and airy"])
    elif avg_brightness < 80:
        suggestions.extend(["low-key lighting", "moody and dramatic"])
    else:
        suggestions.append("balanced lighting")

    suggestions.extend(TYPE_SUGGESTIONS.get(StyleReferenceType(reference_type), []))
    return suggestions[:MAX_PROMPT_SUGGESTIONS]


def suggest_reference_type(image_data: bytes) -> Dict[str, Any]:
    """
    Guess which reference kind an image is best suited for

    Portrait aspect ratios favour CHARACTER, wide ones STYLE/LOCATION,
    colorful images GARMENT.
    """
    metadata = get_image_metadata(image_data)
    colors = extract_palette(image_data, CHARACTER_PALETTE_SIZE)

    aspect_ratio = (metadata["width"] or 1) / (metadata["height"] or 1)
    confidence = {
        "CHARACTER": 0.7 if 0.6 < aspect_ratio < 0.8 else 0.3,
        "GARMENT": 0.6 if len(colors) >= 3 else 0.4,
    }
    wide = aspect_ratio > 1.2
    confidence["STYLE"] = 0.7 if wide else 0.4
    confidence["LOCATION"] = 0.7 if wide else 0.4

    suggested = [kind for kind, _ in sorted(confidence.items(), key=lambda item: item[1], reverse=True)]
    return {"suggested_types": suggested, "confidence": confidence}


class ReferenceExtractor:
    """Stores an upload plus its thumbnail and extracts reference data from it"""

    def __init__(self, storage: Optional[AssetStorage] = None):
        self._storage = storage

    @property
    def storage(self) -> AssetStorage:
        if self._storage is None:
            self._storage = get_asset_storage()
        return self._storage

    def _store(self, image_data: bytes, folder: str, filename: str):
        # one directory per upload so equal filenames never overwrite each other
        prefix = f"{folder}/{uuid.uuid4().hex}"
        name = filename.replace("\\", "/").rsplit("/", 1)[-1]

        thumbnail = create_thumbnail(image_data, 300, 300)
        image_url = self.storage.upload(image_data, content_type="image/jpeg", key=f"{prefix}/{name}")
        thumbnail_url = self.storage.upload(thumbnail, content_type="image/jpeg", key=f"{prefix}/thumb_{name}")
        return image_url, thumbnail_url

    def extract_character_reference(self, image_data: bytes, filename: str) -> CharacterExtraction:
        image_url, thumbnail_url = self._store(image_data, "characters", filename)

        dominant_colors = extract_palette(image_data, CHARACTER_PALETTE_SIZE)
        visual_features = {
            "dominant_colors": dominant_colors,
            "color_names": get_color_names_from_palette(dominant_colors),
            "image_metadata": get_image_metadata(image_data),
        }

        logger.info(f"✅ Character reference extracted: {filename}")
        return CharacterExtraction(image_url, thumbnail_url, visual_features)

    def extract_garment_reference(
        self,
        image_data: bytes,
        filename: str,
        category: Optional[str] = None
    ) -> GarmentExtraction:
        image_url, thumbnail_url = self._store(image_data, "garments", filename)

        palette = extract_palette(image_data, GARMENT_PALETTE_SIZE)
        names = get_color_names_from_palette(palette)

        logger.info(f"✅ Garment reference extracted: {filename} ({len(palette)} colors)")
        return GarmentExtraction(
            reference_image_url=image_url,
            thumbnail_url=thumbnail_url,
            color_palette=palette,
            color_names=names,
            primary_color=palette[0] if palette else None,
            category=category or detect_garment_category(palette, names),
        )

    def extract_style_reference(
        self,
        image_data: bytes,
        filename: str,
        reference_type: StyleReferenceType = StyleReferenceType.STYLE
    ) -> StyleExtraction:
        image_url, thumbnail_url = self._store(image_data, "styles", filename)

        palette = extract_palette(image_data, STYLE_PALETTE_SIZE)
        names = get_color_names_from_palette(palette)

        logger.info(f"✅ Style reference extracted: {filename}")
        return StyleExtraction(
            reference_image_url=image_url,
            thumbnail_url=thumbnail_url,
            color_palette=palette,
            prompt_suggestions=generate_prompt_suggestions(palette, names, reference_type),
        )
