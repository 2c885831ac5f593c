"""Abstract repository interfaces for references and generation history"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from core.exceptions import DanglingReferenceException
from models.references import (
    CharacterReference,
    GarmentReference,
    ReferenceKind,
    StyleReference,
)

AnyReference = Union[CharacterReference, GarmentReference, StyleReference]


@dataclass
class HistoryEntry:
    """The kept attempt of one orchestrated generation, as written to history"""
    session_id: str
    base_prompt: str
    enhanced_prompt: str
    negative_prompt: str
    image_url: str
    consistency_score: float
    model_provider: str
    model_name: str
    processing_time_ms: int
    api_cost_usd: float
    was_regenerated: bool
    step_number: Optional[int] = None
    character_ref_id: Optional[str] = None
    garment_ref_id: Optional[str] = None
    style_ref_id: Optional[str] = None
    face_sim_score: Optional[float] = None
    garment_acc_score: Optional[float] = None
    style_match_score: Optional[float] = None
    model_version: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ReferenceRepository(ABC):
    """
    Read-mostly view over the three reference kinds

    References are created at session setup; afterwards only usage counters
    change here.
    """

    @abstractmethod
    def get_character(self, reference_id: str) -> Optional[CharacterReference]:
        pass

    @abstractmethod
    def get_garment(self, reference_id: str) -> Optional[GarmentReference]:
        pass

    @abstractmethod
    def get_style(self, reference_id: str) -> Optional[StyleReference]:
        pass

    @abstractmethod
    def list_by_session(self, session_id: str) -> Dict[str, List[AnyReference]]:
        """
        All references of a session

        Returns:
            {"character": [...], "garment": [...], "style": [...]}
        """
        pass

    @abstractmethod
    def save(self, reference: AnyReference) -> str:
        """Insert a new reference and return its id"""
        pass

    @abstractmethod
    def increment_usage(self, kind: ReferenceKind, reference_id: str) -> bool:
        pass

    @abstractmethod
    def delete(self, kind: ReferenceKind, reference_id: str) -> bool:
        """Delete a reference; history rows keep its (now dangling) id"""
        pass

    def get(self, kind: ReferenceKind, reference_id: str) -> Optional[AnyReference]:
        getters = {
            ReferenceKind.CHARACTER: self.get_character,
            ReferenceKind.GARMENT: self.get_garment,
            ReferenceKind.STYLE: self.get_style,
        }
        return getters[ReferenceKind(kind)](reference_id)

    def require(self, kind: ReferenceKind, reference_id: str) -> AnyReference:
        """
        Like get(), but a missing reference is an error

        Raises:
            DanglingReferenceException: no reference with that id
        """
        reference = self.get(kind, reference_id)
        if reference is None:
            raise DanglingReferenceException(ReferenceKind(kind).value, reference_id)
        return reference


class HistoryRepository(ABC):
    """Append-only generation history plus the queries analytics needs"""

    @abstractmethod
    def append(self, entry: HistoryEntry) -> Optional[str]:
        """
        Persist one history row

        Returns:
            Record ID if successful, None otherwise
        """
        pass

    @abstractmethod
    def get(self, history_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve one history row with its references resolved

        Dangling reference ids resolve to None instead of failing the read.
        """
        pass

    @abstractmethod
    def list_by_session(
        self,
        session_id: str,
        limit: Optional[int] = None,
        scored_only: bool = False
    ) -> List[Dict[str, Any]]:
        """History rows of a session, newest first"""
        pass

    @abstractmethod
    def update_feedback(
        self,
        history_id: str,
        user_rating: int,
        user_feedback: Optional[str] = None,
        reported_issues: Optional[List[str]] = None
    ) -> bool:
        pass
