"""Reference anchors: character, garment and style"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from core.exceptions import ReferenceValidationException

HEX_COLOR_PATTERN = re.compile(r"^#?[0-9a-fA-F]{6}$")


def _require(value: Optional[str], field_name: str, kind: str) -> None:
    if value is None or not str(value).strip():
        raise ReferenceValidationException(
            f"{kind} reference is missing required field '{field_name}'",
            field=field_name
        )


def validate_palette(palette: List[str], field_name: str = "color_palette") -> None:
    """Raise if any entry is not a 6-digit hex color"""
    for color in palette:
        if not isinstance(color, str) or not HEX_COLOR_PATTERN.match(color):
            raise ReferenceValidationException(
                f"Malformed color '{color}' in {field_name}",
                field=field_name
            )


class StyleReferenceType(str, Enum):
    """Closed set of style reference kinds"""
    STYLE = "STYLE"
    LOCATION = "LOCATION"
    LIGHTING = "LIGHTING"
    MOOD = "MOOD"


class ReferenceKind(str, Enum):
    CHARACTER = "character"
    GARMENT = "garment"
    STYLE = "style"


@dataclass(frozen=True)
class CharacterReference:
    """Identity anchor. The face image never changes; edits create a new reference."""
    id: str
    session_id: str
    face_image_url: str
    body_image_url: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    # {"dominant_colors": [...], "color_names": [...], "image_metadata": {...}}
    visual_features: Optional[Dict[str, Any]] = None
    usage_count: int = 0

    def __post_init__(self):
        _require(self.id, "id", "Character")
        _require(self.face_image_url, "face_image_url", "Character")

    @property
    def color_names(self) -> List[str]:
        if not self.visual_features:
            return []
        names = self.visual_features.get("color_names")
        return list(names) if isinstance(names, (list, tuple)) else []


@dataclass(frozen=True)
class GarmentReference:
    """Appearance anchor for clothing. palette[i] is named by color_names[i]."""
    id: str
    session_id: str
    reference_image_url: str
    category: Optional[str] = None
    color_palette: List[str] = field(default_factory=list)
    color_names: List[str] = field(default_factory=list)
    primary_color: Optional[str] = None
    fabric_texture: Optional[str] = None
    pattern: Optional[str] = None
    style: Optional[str] = None
    description: Optional[str] = None
    usage_count: int = 0

    def __post_init__(self):
        _require(self.id, "id", "Garment")
        _require(self.reference_image_url, "reference_image_url", "Garment")
        validate_palette(self.color_palette)
        if len(self.color_palette) != len(self.color_names):
            raise ReferenceValidationException(
                f"Garment palette has {len(self.color_palette)} colors "
                f"but {len(self.color_names)} color names",
                field="color_names"
            )
        if self.primary_color:
            validate_palette([self.primary_color], field_name="primary_color")


@dataclass(frozen=True)
class StyleReference:
    """Aesthetic anchor. The prompt template is injected verbatim into prompts."""
    id: str
    session_id: str
    type: StyleReferenceType
    name: str
    prompt_template: str
    negative_prompt: Optional[str] = None
    color_palette: List[str] = field(default_factory=list)
    lighting_setup: Optional[str] = None
    mood: Optional[str] = None
    camera_angle: Optional[str] = None
    reference_image_url: Optional[str] = None
    usage_count: int = 0

    def __post_init__(self):
        _require(self.id, "id", "Style")
        _require(self.name, "name", "Style")
        _require(self.prompt_template, "prompt_template", "Style")
        if not isinstance(self.type, StyleReferenceType):
            try:
                object.__setattr__(self, "type", StyleReferenceType(str(self.type).upper()))
            except ValueError:
                raise ReferenceValidationException(
                    f"Unknown style reference type '{self.type}'",
                    field="type"
                )
        validate_palette(self.color_palette)


@dataclass(frozen=True)
class ReferenceSet:
    """Zero to three references supplied for one generation request"""
    character: Optional[CharacterReference] = None
    garment: Optional[GarmentReference] = None
    style: Optional[StyleReference] = None

    @property
    def has_character(self) -> bool:
        return self.character is not None

    @property
    def has_garment(self) -> bool:
        return self.garment is not None

    @property
    def has_style(self) -> bool:
        return self.style is not None

    @property
    def is_empty(self) -> bool:
        return not (self.has_character or self.has_garment or self.has_style)

    def without_garment(self) -> "ReferenceSet":
        return ReferenceSet(character=self.character, garment=None, style=self.style)
