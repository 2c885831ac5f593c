"""Tests for the SQL reference and history repositories"""

import pytest

from core.exceptions import DanglingReferenceException
from database.connection import get_db_session, init_database
from database.repository import HistoryEntry
from database.sql_repository import SQLHistoryRepository, SQLReferenceRepository
from models.references import ReferenceKind


def _entry(session_id="session-1", score=80.0, **overrides):
    values = dict(
        session_id=session_id,
        base_prompt="portrait",
        enhanced_prompt="portrait, consistent character",
        negative_prompt="blurry",
        image_url="https://cdn.test/out.png",
        consistency_score=score,
        model_provider="replicate",
        model_name="instant-id",
        processing_time_ms=1200,
        api_cost_usd=0.10,
        was_regenerated=False,
    )
    values.update(overrides)
    return HistoryEntry(**values)


class TestReferenceRepository:
    """Test reference storage"""

    def test_save_and_get(self, reference_repo, character_ref, garment_ref, style_ref):
        assert reference_repo.save(character_ref) == "char-1"
        assert reference_repo.save(garment_ref) == "garment-1"
        assert reference_repo.save(style_ref) == "style-1"

        garment = reference_repo.get_garment("garment-1")
        assert garment == garment_ref

        style = reference_repo.get(ReferenceKind.STYLE, "style-1")
        assert style.type == style_ref.type
        assert style.prompt_template == style_ref.prompt_template

    def test_missing_reference(self, reference_repo):
        assert reference_repo.get_character("nope") is None
        with pytest.raises(DanglingReferenceException) as exc_info:
            reference_repo.require(ReferenceKind.CHARACTER, "nope")
        assert exc_info.value.reference_kind == "character"

    def test_list_by_session(self, reference_repo, character_ref, garment_ref):
        reference_repo.save(character_ref)
        reference_repo.save(garment_ref)

        refs = reference_repo.list_by_session("session-1")

        assert [r.id for r in refs["character"]] == ["char-1"]
        assert [r.id for r in refs["garment"]] == ["garment-1"]
        assert refs["style"] == []
        assert reference_repo.list_by_session("other") == {"character": [], "garment": [], "style": []}

    def test_increment_usage(self, reference_repo, garment_ref):
        reference_repo.save(garment_ref)

        assert reference_repo.increment_usage(ReferenceKind.GARMENT, "garment-1")
        assert reference_repo.increment_usage(ReferenceKind.GARMENT, "garment-1")
        assert reference_repo.get_garment("garment-1").usage_count == 2
        assert not reference_repo.increment_usage(ReferenceKind.GARMENT, "missing")

    def test_no_database_connection(self, character_ref):
        repo = SQLReferenceRepository(lambda: None)
        assert repo.save(character_ref) is None
        assert repo.get_character("char-1") is None
        assert not repo.increment_usage(ReferenceKind.CHARACTER, "char-1")


class TestHistoryRepository:
    """Test generation history persistence"""

    def test_append_and_get(self, history_repo, reference_repo, character_ref):
        reference_repo.save(character_ref)

        history_id = history_repo.append(_entry(character_ref_id="char-1", face_sim_score=82.0, metadata={"k": "v"}))
        row = history_repo.get(history_id)

        assert row["consistency_score"] == 80.0
        assert row["face_sim_score"] == 82.0
        assert row["metadata"] == {"k": "v"}
        assert row["character_ref"]["face_image_url"] == character_ref.face_image_url
        assert row["garment_ref"] is None

    def test_dangling_reference_resolves_to_none(self, history_repo, reference_repo, garment_ref):
        """Test that deleting a reference does not break history reads"""
        reference_repo.save(garment_ref)
        history_id = history_repo.append(_entry(garment_ref_id="garment-1"))

        assert reference_repo.delete(ReferenceKind.GARMENT, "garment-1")
        row = history_repo.get(history_id)

        assert row["garment_ref_id"] == "garment-1"
        assert row["garment_ref"] is None

    def test_list_by_session_filters(self, history_repo):
        history_repo.append(_entry(score=70.0))
        history_repo.append(_entry(score=90.0))
        history_repo.append(_entry(score=None))
        history_repo.append(_entry(session_id="session-2"))

        assert len(history_repo.list_by_session("session-1")) == 3
        assert len(history_repo.list_by_session("session-1", scored_only=True)) == 2
        assert len(history_repo.list_by_session("session-1", limit=1)) == 1

    def test_update_feedback(self, history_repo):
        history_id = history_repo.append(_entry(metadata={"degraded_axes": []}))

        assert history_repo.update_feedback(history_id, 4, "nice", ["hands"])
        row = history_repo.get(history_id)

        assert row["user_rating"] == 4
        assert row["user_feedback"] == "nice"
        assert row["metadata"]["user_reported_issues"] == ["hands"]
        assert row["metadata"]["degraded_axes"] == []
        assert not history_repo.update_feedback("missing", 4)

    def test_no_database_connection(self):
        repo = SQLHistoryRepository(lambda: None)
        assert repo.append(_entry()) is None
        assert repo.list_by_session("session-1") == []


class TestConnection:
    def test_init_in_memory_database(self):
        assert init_database("sqlite:///:memory:")
        session = get_db_session()
        assert session is not None
        session.close()

    def test_init_without_url(self, monkeypatch):
        from config.settings import settings
        monkeypatch.setattr(settings, "DATABASE_URL", None)
        assert not init_database()
