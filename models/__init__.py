"""
Domain value objects

References (character / garment / style) and the types passed between
generation, scoring and quality assurance.
"""

from models.references import (
    CharacterReference,
    GarmentReference,
    StyleReference,
    StyleReferenceType,
    ReferenceSet,
)
from models.generation import (
    ModelSelection,
    TuningParams,
    ConsistencyScore,
    QualityCheckResult,
    GenerationResult,
)

__all__ = [
    "CharacterReference",
    "GarmentReference",
    "StyleReference",
    "StyleReferenceType",
    "ReferenceSet",
    "ModelSelection",
    "TuningParams",
    "ConsistencyScore",
    "QualityCheckResult",
    "GenerationResult",
]
