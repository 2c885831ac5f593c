"""SQLAlchemy database models for references and generation history"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, Boolean, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CharacterReferenceRecord(Base):
    """Identity anchor; face_image_url is never updated"""
    __tablename__ = "character_references"

    id = Column(String(36), primary_key=True)
    session_id = Column(String(36), index=True, nullable=False)
    name = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    face_image_url = Column(String(1000), nullable=False)
    body_image_url = Column(String(1000), nullable=True)
    visual_features = Column(JSON, nullable=True)
    usage_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GarmentReferenceRecord(Base):
    """Clothing anchor; color_names[i] names color_palette[i]"""
    __tablename__ = "garment_references"

    id = Column(String(36), primary_key=True)
    session_id = Column(String(36), index=True, nullable=False)
    name = Column(String(200), nullable=True)
    reference_image_url = Column(String(1000), nullable=False)
    category = Column(String(50), nullable=True)
    color_palette = Column(JSON, default=list)
    color_names = Column(JSON, default=list)
    primary_color = Column(String(7), nullable=True)
    fabric_texture = Column(String(100), nullable=True)
    pattern = Column(String(100), nullable=True)
    style = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    usage_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StyleReferenceRecord(Base):
    """Aesthetic anchor (STYLE / LOCATION / LIGHTING / MOOD)"""
    __tablename__ = "style_references"

    id = Column(String(36), primary_key=True)
    session_id = Column(String(36), index=True, nullable=False)
    type = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    prompt_template = Column(Text, nullable=False)
    negative_prompt = Column(Text, nullable=True)
    color_palette = Column(JSON, default=list)
    lighting_setup = Column(String(200), nullable=True)
    mood = Column(String(100), nullable=True)
    camera_angle = Column(String(100), nullable=True)
    reference_image_url = Column(String(1000), nullable=True)
    usage_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GenerationHistory(Base):
    """
    One kept generation attempt

    Reference ids are plain columns: deleting a reference leaves them dangling
    and reads resolve them softly.
    """
    __tablename__ = "generation_history"

    id = Column(String(36), primary_key=True)
    session_id = Column(String(36), index=True, nullable=False)
    step_number = Column(Integer, nullable=True)

    character_ref_id = Column(String(36), nullable=True)
    garment_ref_id = Column(String(36), nullable=True)
    style_ref_id = Column(String(36), nullable=True)

    base_prompt = Column(Text, nullable=False)
    enhanced_prompt = Column(Text, nullable=False)
    negative_prompt = Column(Text, nullable=True)

    consistency_score = Column(Float, nullable=True)
    face_sim_score = Column(Float, nullable=True)
    garment_acc_score = Column(Float, nullable=True)
    style_match_score = Column(Float, nullable=True)

    model_provider = Column(String(50), nullable=True)
    model_name = Column(String(200), nullable=True)
    model_version = Column(String(100), nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    api_cost_usd = Column(Float, nullable=True)
    image_url = Column(String(1000), nullable=True)

    was_regenerated = Column(Boolean, default=False, nullable=False)

    # User feedback
    user_rating = Column(Integer, nullable=True)
    user_feedback = Column(Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
