"""
Image and color utilities

Color math used by scoring and reference extraction:
- hex <-> RGB conversion
- Euclidean RGB distance and palette similarity
- dominant color extraction (adaptive palette quantization)
- brightness / contrast / color temperature analysis
"""

import io
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
from PIL import Image, ImageOps

RGB = Tuple[int, int, int]

# sqrt(255^2 * 3): distance between black and white
MAX_RGB_DISTANCE = math.sqrt(255 ** 2 * 3)

ANALYSIS_SIZE = (200, 200)

NAMED_COLORS = [
    ("Black", (0, 0, 0)),
    ("White", (255, 255, 255)),
    ("Red", (255, 0, 0)),
    ("Green", (0, 255, 0)),
    ("Blue", (0, 0, 255)),
    ("Yellow", (255, 255, 0)),
    ("Cyan", (0, 255, 255)),
    ("Magenta", (255, 0, 255)),
    ("Orange", (255, 165, 0)),
    ("Purple", (128, 0, 128)),
    ("Pink", (255, 192, 203)),
    ("Brown", (165, 42, 42)),
    ("Gray", (128, 128, 128)),
    ("Navy", (0, 0, 128)),
    ("Beige", (245, 245, 220)),
]


@dataclass
class ImageStyleAnalysis:
    """Measured style properties of an image"""
    dominant_colors: List[str]
    brightness: float   # 0-255 mean of (r+g+b)/3
    contrast: float     # 0-100, std-dev of brightness relative to 255
    color_temperature: str  # "warm", "cool", "neutral"


def hex_to_rgb(hex_color: str) -> RGB:
    """
    Convert a hex color to an RGB tuple

    Examples:
        >>> hex_to_rgb("#1A2B4C")
        (26, 43, 76)
    """
    value = hex_color.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Invalid hex color: {hex_color}")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def rgb_to_hex(r: float, g: float, b: float) -> str:
    """
    Convert RGB components to an upper-case hex color

    Examples:
        >>> rgb_to_hex(255, 0, 128)
        "#FF0080"
    """
    return "#" + "".join(f"{int(round(c)):02X}" for c in (r, g, b))


def color_distance(color1: Sequence[float], color2: Sequence[float]) -> float:
    """Euclidean distance between two RGB colors"""
    return math.sqrt(
        (color1[0] - color2[0]) ** 2 +
        (color1[1] - color2[1]) ** 2 +
        (color1[2] - color2[2]) ** 2
    )


def distance_to_similarity(distance: float) -> float:
    """Map an RGB distance onto a 0-100 similarity percentage"""
    similarity = 100 * (1 - distance / MAX_RGB_DISTANCE)
    return max(0.0, min(100.0, similarity))


def palette_similarity(expected_colors: Sequence[str], sampled_colors: Sequence[RGB]) -> float:
    """
    Similarity between a declared palette and colors sampled from an image

    Each expected color is matched with its nearest sampled color; the mean of
    those distances is normalized against MAX_RGB_DISTANCE and inverted.

    Args:
        expected_colors: Declared hex palette
        sampled_colors: RGB colors sampled from the generated image

    Returns:
        Similarity percentage in [0, 100]
    """
    if not expected_colors or not sampled_colors:
        raise ValueError("Both palettes must contain at least one color")

    expected_rgb = [hex_to_rgb(c) for c in expected_colors]
    total_distance = 0.0
    for expected in expected_rgb:
        total_distance += min(color_distance(expected, sampled) for sampled in sampled_colors)

    return distance_to_similarity(total_distance / len(expected_rgb))


def load_image(image_data: bytes) -> Image.Image:
    """Decode bytes into an RGB Pillow image (EXIF orientation applied)"""
    image = Image.open(io.BytesIO(image_data))
    image = ImageOps.exif_transpose(image)
    return image.convert("RGB")


def extract_dominant_colors(image: Image.Image, count: int = 5) -> List[RGB]:
    """
    Extract dominant colors ordered by pixel share

    Uses Pillow's adaptive palette quantization on a downscaled copy.
    """
    small = image.convert("RGB").resize((64, 64))
    paletted = small.convert("P", palette=Image.ADAPTIVE, colors=count)
    palette = paletted.getpalette()
    color_counts = sorted(paletted.getcolors(), reverse=True)

    colors: List[RGB] = []
    for _, index in color_counts[:count]:
        colors.append((palette[index * 3], palette[index * 3 + 1], palette[index * 3 + 2]))
    return colors


def _brightness_array(image: Image.Image) -> np.ndarray:
    small = image.convert("RGB").copy()
    small.thumbnail(ANALYSIS_SIZE)
    pixels = np.asarray(small, dtype=np.float64)
    return pixels.mean(axis=2)


def measure_brightness_contrast(image: Image.Image) -> Tuple[float, float]:
    """
    Mean brightness (0-255) and contrast (0-100)

    Contrast is the standard deviation of per-pixel brightness relative to 255.
    """
    brightness = _brightness_array(image)
    mean = float(brightness.mean())
    contrast = float(brightness.std()) / 255 * 100
    return mean, contrast


def color_temperature(colors: Sequence[RGB]) -> str:
    """Classify a set of colors as warm, cool or neutral"""
    if not colors:
        return "neutral"
    warmth = sum((r - b) / 255 for r, _, b in colors) / len(colors)
    if warmth > 0.2:
        return "warm"
    if warmth < -0.2:
        return "cool"
    return "neutral"


def analyze_image_style(image: Image.Image, color_count: int = 5) -> ImageStyleAnalysis:
    """Measure brightness, contrast, dominant colors and temperature of an image"""
    brightness, contrast = measure_brightness_contrast(image)
    dominant = extract_dominant_colors(image, color_count)
    return ImageStyleAnalysis(
        dominant_colors=[rgb_to_hex(*c) for c in dominant],
        brightness=round(brightness, 2),
        contrast=round(contrast, 2),
        color_temperature=color_temperature(dominant),
    )


def get_color_name(r: int, g: int, b: int) -> str:
    """
    Nearest basic color name, prefixed with Dark/Light for extreme brightness

    Examples:
        >>> get_color_name(10, 10, 120)
        "Dark Navy"
    """
    closest = min(NAMED_COLORS, key=lambda item: color_distance((r, g, b), item[1]))[0]

    brightness = (r + g + b) / 3
    if brightness < 50:
        return f"Dark {closest}"
    if brightness > 200:
        return f"Light {closest}"
    return closest


def get_color_names_from_palette(hex_colors: Sequence[str]) -> List[str]:
    """Color names in the same order as the palette"""
    return [get_color_name(*hex_to_rgb(c)) for c in hex_colors]


def create_thumbnail(image_data: bytes, width: int = 300, height: int = 300) -> bytes:
    """Center-cropped JPEG thumbnail"""
    image = load_image(image_data)
    thumbnail = ImageOps.fit(image, (width, height), centering=(0.5, 0.5))
    buffer = io.BytesIO()
    thumbnail.save(buffer, format="JPEG", quality=85)
    return buffer.getvalue()


def get_image_metadata(image_data: bytes) -> Dict[str, Any]:
    """Dimensions, format and size of an encoded image"""
    with Image.open(io.BytesIO(image_data)) as image:
        return {
            "width": image.width,
            "height": image.height,
            "format": (image.format or "unknown").lower(),
            "mode": image.mode,
            "has_alpha": "A" in image.getbands(),
            "size": len(image_data),
        }
