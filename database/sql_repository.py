"""SQLAlchemy implementations of ReferenceRepository and HistoryRepository"""

import uuid
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from core.exceptions import DanglingReferenceException
from core.logging import logger, log_structured
from database.connection import get_db_session
from database.models import (
    CharacterReferenceRecord,
    GarmentReferenceRecord,
    GenerationHistory,
    StyleReferenceRecord,
)
from database.repository import AnyReference, HistoryEntry, HistoryRepository, ReferenceRepository
from models.references import (
    CharacterReference,
    GarmentReference,
    ReferenceKind,
    StyleReference,
    StyleReferenceType,
)

SessionFactory = Callable[[], Optional[Session]]

RECORD_TYPES = {
    ReferenceKind.CHARACTER: CharacterReferenceRecord,
    ReferenceKind.GARMENT: GarmentReferenceRecord,
    ReferenceKind.STYLE: StyleReferenceRecord,
}


def _to_character(record: CharacterReferenceRecord) -> CharacterReference:
    return CharacterReference(
        id=record.id,
        session_id=record.session_id,
        face_image_url=record.face_image_url,
        body_image_url=record.body_image_url,
        name=record.name,
        description=record.description,
        visual_features=record.visual_features,
        usage_count=record.usage_count or 0,
    )


def _to_garment(record: GarmentReferenceRecord) -> GarmentReference:
    return GarmentReference(
        id=record.id,
        session_id=record.session_id,
        reference_image_url=record.reference_image_url,
        category=record.category,
        color_palette=list(record.color_palette or []),
        color_names=list(record.color_names or []),
        primary_color=record.primary_color,
        fabric_texture=record.fabric_texture,
        pattern=record.pattern,
        style=record.style,
        description=record.description,
        usage_count=record.usage_count or 0,
    )


def _to_style(record: StyleReferenceRecord) -> StyleReference:
    return StyleReference(
        id=record.id,
        session_id=record.session_id,
        type=StyleReferenceType(record.type),
        name=record.name,
        prompt_template=record.prompt_template,
        negative_prompt=record.negative_prompt,
        color_palette=list(record.color_palette or []),
        lighting_setup=record.lighting_setup,
        mood=record.mood,
        camera_angle=record.camera_angle,
        reference_image_url=record.reference_image_url,
        usage_count=record.usage_count or 0,
    )


class SQLReferenceRepository(ReferenceRepository):
    """SQL implementation of ReferenceRepository"""

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory or get_db_session

    def _get_record(self, kind: ReferenceKind, reference_id: str):
        db = self._session_factory()
        if not db:
            logger.warning("⚠️ No database connection - reference lookup skipped")
            return None
        try:
            return db.query(RECORD_TYPES[kind]).filter(RECORD_TYPES[kind].id == reference_id).first()
        finally:
            db.close()

    def get_character(self, reference_id: str) -> Optional[CharacterReference]:
        record = self._get_record(ReferenceKind.CHARACTER, reference_id)
        return _to_character(record) if record else None

    def get_garment(self, reference_id: str) -> Optional[GarmentReference]:
        record = self._get_record(ReferenceKind.GARMENT, reference_id)
        return _to_garment(record) if record else None

    def get_style(self, reference_id: str) -> Optional[StyleReference]:
        record = self._get_record(ReferenceKind.STYLE, reference_id)
        return _to_style(record) if record else None

    def list_by_session(self, session_id: str) -> Dict[str, List[AnyReference]]:
        result: Dict[str, List[AnyReference]] = {"character": [], "garment": [], "style": []}
        db = self._session_factory()
        if not db:
            return result

        try:
            converters = {
                ReferenceKind.CHARACTER: _to_character,
                ReferenceKind.GARMENT: _to_garment,
                ReferenceKind.STYLE: _to_style,
            }
            for kind, record_type in RECORD_TYPES.items():
                records = db.query(record_type).filter(
                    record_type.session_id == session_id
                ).order_by(record_type.created_at.desc()).all()
                result[kind.value] = [converters[kind](r) for r in records]
            return result
        finally:
            db.close()

    def save(self, reference: AnyReference) -> Optional[str]:
        """
        Insert a new reference

        Returns:
            Reference ID if successful, None otherwise
        """
        db = self._session_factory()
        if not db:
            logger.warning("⚠️ No database connection - reference not saved")
            return None

        if isinstance(reference, CharacterReference):
            kind = ReferenceKind.CHARACTER
            record = CharacterReferenceRecord(
                id=reference.id,
                session_id=reference.session_id,
                name=reference.name,
                description=reference.description,
                face_image_url=reference.face_image_url,
                body_image_url=reference.body_image_url,
                visual_features=reference.visual_features,
                usage_count=reference.usage_count,
            )
        elif isinstance(reference, GarmentReference):
            kind = ReferenceKind.GARMENT
            record = GarmentReferenceRecord(
                id=reference.id,
                session_id=reference.session_id,
                reference_image_url=reference.reference_image_url,
                category=reference.category,
                color_palette=list(reference.color_palette),
                color_names=list(reference.color_names),
                primary_color=reference.primary_color,
                fabric_texture=reference.fabric_texture,
                pattern=reference.pattern,
                style=reference.style,
                description=reference.description,
                usage_count=reference.usage_count,
            )
        elif isinstance(reference, StyleReference):
            kind = ReferenceKind.STYLE
            record = StyleReferenceRecord(
                id=reference.id,
                session_id=reference.session_id,
                type=reference.type.value,
                name=reference.name,
                prompt_template=reference.prompt_template,
                negative_prompt=reference.negative_prompt,
                color_palette=list(reference.color_palette),
                lighting_setup=reference.lighting_setup,
                mood=reference.mood,
                camera_angle=reference.camera_angle,
                reference_image_url=reference.reference_image_url,
                usage_count=reference.usage_count,
            )
        else:
            raise TypeError(f"Unsupported reference type: {type(reference).__name__}")

        try:
            db.add(record)
            db.commit()
            logger.info(f"✅ {kind.value} reference saved (ID: {record.id})")
            return record.id
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Reference save failed: {str(e)}")
            return None
        finally:
            db.close()

    def increment_usage(self, kind: ReferenceKind, reference_id: str) -> bool:
        db = self._session_factory()
        if not db:
            return False

        record_type = RECORD_TYPES[ReferenceKind(kind)]
        try:
            updated = db.query(record_type).filter(record_type.id == reference_id).update(
                {record_type.usage_count: record_type.usage_count + 1},
                synchronize_session=False
            )
            db.commit()
            return updated > 0
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Usage increment failed for {reference_id}: {str(e)}")
            return False
        finally:
            db.close()

    def delete(self, kind: ReferenceKind, reference_id: str) -> bool:
        db = self._session_factory()
        if not db:
            return False

        record_type = RECORD_TYPES[ReferenceKind(kind)]
        try:
            deleted = db.query(record_type).filter(record_type.id == reference_id).delete()
            db.commit()
            return deleted > 0
        finally:
            db.close()


def _history_to_dict(record: GenerationHistory) -> Dict[str, Any]:
    return {
        "id": record.id,
        "session_id": record.session_id,
        "step_number": record.step_number,
        "character_ref_id": record.character_ref_id,
        "garment_ref_id": record.garment_ref_id,
        "style_ref_id": record.style_ref_id,
        "base_prompt": record.base_prompt,
        "enhanced_prompt": record.enhanced_prompt,
        "negative_prompt": record.negative_prompt,
        "consistency_score": record.consistency_score,
        "face_sim_score": record.face_sim_score,
        "garment_acc_score": record.garment_acc_score,
        "style_match_score": record.style_match_score,
        "model_provider": record.model_provider,
        "model_name": record.model_name,
        "model_version": record.model_version,
        "processing_time_ms": record.processing_time_ms,
        "api_cost_usd": record.api_cost_usd,
        "image_url": record.image_url,
        "was_regenerated": bool(record.was_regenerated),
        "user_rating": record.user_rating,
        "user_feedback": record.user_feedback,
        "metadata": dict(record.metadata_json or {}),
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }


class SQLHistoryRepository(HistoryRepository):
    """SQL implementation of HistoryRepository"""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        references: Optional[ReferenceRepository] = None
    ):
        self._session_factory = session_factory or get_db_session
        self.references = references or SQLReferenceRepository(self._session_factory)

    def append(self, entry: HistoryEntry) -> Optional[str]:
        db = self._session_factory()
        if not db:
            logger.warning("⚠️ No database connection - history not saved")
            return None

        try:
            record = GenerationHistory(
                id=str(uuid.uuid4()),
                session_id=entry.session_id,
                step_number=entry.step_number,
                character_ref_id=entry.character_ref_id,
                garment_ref_id=entry.garment_ref_id,
                style_ref_id=entry.style_ref_id,
                base_prompt=entry.base_prompt,
                enhanced_prompt=entry.enhanced_prompt,
                negative_prompt=entry.negative_prompt,
                consistency_score=entry.consistency_score,
                face_sim_score=entry.face_sim_score,
                garment_acc_score=entry.garment_acc_score,
                style_match_score=entry.style_match_score,
                model_provider=entry.model_provider,
                model_name=entry.model_name,
                model_version=entry.model_version,
                processing_time_ms=entry.processing_time_ms,
                api_cost_usd=entry.api_cost_usd,
                image_url=entry.image_url,
                was_regenerated=entry.was_regenerated,
                metadata_json=entry.metadata,
            )
            db.add(record)
            db.commit()

            log_structured("generation_recorded", {
                "record_id": record.id,
                "session_id": entry.session_id,
                "model": entry.model_name,
                "consistency_score": entry.consistency_score,
                "was_regenerated": entry.was_regenerated,
            })
            return record.id

        except Exception as e:
            db.rollback()
            logger.error(f"❌ History save failed: {str(e)}")
            return None
        finally:
            db.close()

    def _resolve(self, kind: ReferenceKind, reference_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not reference_id:
            return None
        try:
            return asdict(self.references.require(kind, reference_id))
        except DanglingReferenceException as e:
            logger.warning(f"⚠️ Dangling history reference: {e.message}")
            return None

    def get(self, history_id: str) -> Optional[Dict[str, Any]]:
        db = self._session_factory()
        if not db:
            return None

        try:
            record = db.query(GenerationHistory).filter(GenerationHistory.id == history_id).first()
            if not record:
                return None
            result = _history_to_dict(record)
        finally:
            db.close()

        result["character_ref"] = self._resolve(ReferenceKind.CHARACTER, result["character_ref_id"])
        result["garment_ref"] = self._resolve(ReferenceKind.GARMENT, result["garment_ref_id"])
        result["style_ref"] = self._resolve(ReferenceKind.STYLE, result["style_ref_id"])
        return result

    def list_by_session(
        self,
        session_id: str,
        limit: Optional[int] = None,
        scored_only: bool = False
    ) -> List[Dict[str, Any]]:
        db = self._session_factory()
        if not db:
            return []

        try:
            query = db.query(GenerationHistory).filter(GenerationHistory.session_id == session_id)
            if scored_only:
                query = query.filter(GenerationHistory.consistency_score.isnot(None))
            query = query.order_by(GenerationHistory.created_at.desc())
            if limit:
                query = query.limit(limit)
            return [_history_to_dict(r) for r in query.all()]
        finally:
            db.close()

    def update_feedback(
        self,
        history_id: str,
        user_rating: int,
        user_feedback: Optional[str] = None,
        reported_issues: Optional[List[str]] = None
    ) -> bool:
        db = self._session_factory()
        if not db:
            return False

        try:
            record = db.query(GenerationHistory).filter(GenerationHistory.id == history_id).first()
            if not record:
                logger.warning(f"⚠️ History record not found: {history_id}")
                return False

            metadata = dict(record.metadata_json or {})
            metadata["user_reported_issues"] = list(reported_issues or [])

            record.user_rating = user_rating
            record.user_feedback = user_feedback
            record.metadata_json = metadata
            db.commit()

            logger.info(f"✅ Feedback saved (ID: {history_id}, rating: {user_rating})")
            return True

        except Exception as e:
            db.rollback()
            logger.error(f"❌ Feedback save failed: {str(e)}")
            return False
        finally:
            db.close()
