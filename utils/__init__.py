"""
Utility helpers (color and image processing)
"""

from .image_processing import (
    hex_to_rgb,
    rgb_to_hex,
    color_distance,
    palette_similarity,
    get_color_name,
    get_color_names_from_palette,
)

__all__ = [
    'hex_to_rgb',
    'rgb_to_hex',
    'color_distance',
    'palette_similarity',
    'get_color_name',
    'get_color_names_from_palette',
]
