"""Pytest configuration and fixtures for testing"""

import os
import tempfile

# Set environment variables BEFORE importing application modules
os.environ.setdefault("GEMINI_API_KEY", "test_api_key_123456")
os.environ.setdefault("REPLICATE_API_TOKEN", "test_replicate_token")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ASSET_STORAGE_DIR", tempfile.mkdtemp(prefix="lookbook-assets-"))
os.environ.setdefault("PROVIDER_POLL_INTERVAL_SECONDS", "0")

import io
from typing import Dict, List

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.image_loader import ImageLoader
from core.storage import LocalAssetStorage
from database.models import Base
from database.sql_repository import SQLHistoryRepository, SQLReferenceRepository
from models.generation import ConsistencyScore
from models.references import (
    CharacterReference,
    GarmentReference,
    StyleReference,
    StyleReferenceType,
)
from services import circuit_breaker


# ========== Image helpers ==========
def make_image_bytes(color=(255, 255, 255), size=(64, 64), fmt="PNG") -> bytes:
    """Encode a solid-color image"""
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_split_image_bytes(left, right, size=(64, 64)) -> bytes:
    """Encode an image whose left half is one color and right half another"""
    img = Image.new("RGB", size, color=left)
    img.paste(Image.new("RGB", (size[0] // 2, size[1]), color=right), (size[0] // 2, 0))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def storage(tmp_path):
    """Local asset storage rooted in a temp directory"""
    return LocalAssetStorage(str(tmp_path / "assets"))


@pytest.fixture
def image_loader(storage):
    return ImageLoader(storage=storage, timeout=5)


@pytest.fixture
def store_image(storage):
    """Store a solid-color image and return its file:// URL"""
    def _store(color=(255, 255, 255), size=(64, 64), key=None):
        return storage.upload(make_image_bytes(color, size), content_type="image/png", key=key)
    return _store


# ========== Test Database Setup ==========
@pytest.fixture(scope="function")
def session_factory():
    """Session factory bound to a fresh in-memory database"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def reference_repo(session_factory):
    return SQLReferenceRepository(session_factory)


@pytest.fixture
def history_repo(session_factory, reference_repo):
    return SQLHistoryRepository(session_factory, references=reference_repo)


# ========== Reference fixtures ==========
@pytest.fixture
def character_ref():
    return CharacterReference(
        id="char-1",
        session_id="session-1",
        face_image_url="https://cdn.test/faces/alice.png",
        name="Alice",
        description="short black hair",
        visual_features={"color_names": ["Black", "Beige", "White"]},
    )


@pytest.fixture
def garment_ref():
    return GarmentReference(
        id="garment-1",
        session_id="session-1",
        reference_image_url="https://cdn.test/garments/jacket.png",
        category="upper_body",
        color_palette=["#1A2B4C", "#808080"],
        color_names=["Navy", "Gray"],
        primary_color="#1A2B4C",
        fabric_texture="wool",
    )


@pytest.fixture
def style_ref():
    return StyleReference(
        id="style-1",
        session_id="session-1",
        type=StyleReferenceType.LIGHTING,
        name="Studio soft",
        prompt_template="soft studio lighting, neutral backdrop",
        negative_prompt="harsh shadows",
        lighting_setup="soft",
    )


# ========== Fake external services ==========
class ScriptedReplicate:
    """
    Stands in for ReplicateClient

    outcomes maps a model id to a list of URLs, an exception instance, or a
    list of those consumed one call at a time.
    """

    def __init__(self, outcomes: Dict[str, object] = None):
        self.outcomes = dict(outcomes or {})
        self.calls: List[tuple] = []

    def calls_for(self, model_id: str) -> int:
        return sum(1 for called, _ in self.calls if called == model_id)

    def inputs_for(self, model_id: str) -> List[dict]:
        return [inputs for called, inputs in self.calls if called == model_id]

    async def run(self, model_id, inputs):
        self.calls.append((model_id, inputs))
        outcome = self.outcomes.get(model_id, [f"https://cdn.test/out/{model_id}.png"])
        if isinstance(outcome, tuple):
            queue = list(outcome)
            current = queue.pop(0)
            self.outcomes[model_id] = tuple(queue) if queue else current
            outcome = current
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeGemini:
    """Stands in for GeminiImageClient"""

    def __init__(self, url="https://cdn.test/out/gemini.png", error=None):
        self.url = url
        self.error = error
        self.calls = 0
        self.temperatures = []

    async def generate(self, prompt, negative_prompt=None, reference_images=None, temperature=None):
        self.calls += 1
        self.temperatures.append(temperature)
        if self.error is not None:
            raise self.error
        return self.url


class ScriptedScorer:
    """Returns pre-built ConsistencyScores in order and records what was scored"""

    def __init__(self, *scores: ConsistencyScore):
        self.scores = list(scores)
        self.calls: List[dict] = []

    async def calculate_consistency_score(self, generated_image_url, character_ref=None, garment_ref=None, style_ref=None):
        self.calls.append({
            "url": generated_image_url,
            "character_ref": character_ref,
            "garment_ref": garment_ref,
            "style_ref": style_ref,
        })
        if len(self.scores) > 1:
            return self.scores.pop(0)
        return self.scores[0]


@pytest.fixture
def replicate():
    return ScriptedReplicate()


@pytest.fixture
def gemini():
    return FakeGemini()


@pytest.fixture(autouse=True)
def reset_breakers():
    """Fresh per-model circuit breakers for every test"""
    circuit_breaker._breakers.clear()
    yield
    circuit_breaker._breakers.clear()
