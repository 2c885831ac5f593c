"""Provider adapters (one per generation family)"""

from services.providers.base import ProviderAdapter
from services.providers.character import CharacterAdapter
from services.providers.garment import GarmentAdapter
from services.providers.style import StyleAdapter
from services.providers.standard import StandardAdapter

FAMILY_MODELS = {
    adapter.family: tuple(adapter.models)
    for adapter in (CharacterAdapter, GarmentAdapter, StyleAdapter, StandardAdapter)
}

__all__ = [
    "ProviderAdapter",
    "CharacterAdapter",
    "GarmentAdapter",
    "StyleAdapter",
    "StandardAdapter",
    "FAMILY_MODELS",
]
