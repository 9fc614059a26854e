"""SQLAlchemy ORM models for the Doro property catalog.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from doro_platform.infra.database import Base


# ---------------------------------------------------------------------------
# Property catalog
# ---------------------------------------------------------------------------


class PropertyProject(Base):
    """A residential development listed in the catalog."""

    __tablename__ = "property_projects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_name = Column(String(255), nullable=False)
    developer = Column(String(255))
    address = Column(Text)
    district = Column(String(50), index=True)  # "01".."28"
    postal_code = Column(String(10))
    property_type = Column(String(50), index=True)  # Private Condo, Executive Condo, Landed House
    tenure = Column(String(50))
    total_units = Column(Integer)
    price_range_min = Column(Float)
    price_range_max = Column(Float)
    sales_status = Column(String(20), default="Available", index=True)  # Available, Sold out, Coming Soon
    launch_date = Column(Date, nullable=True)
    top_date = Column(Date, nullable=True)
    completion_status = Column(String(20), default="BUC")  # BUC, TOP soon, Completed
    source_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    unit_mix = relationship(
        "PropertyUnitMix", back_populates="project", cascade="all, delete-orphan"
    )
    visual_assets = relationship(
        "VisualAsset", back_populates="project", cascade="all, delete-orphan"
    )


class PropertyUnitMix(Base):
    """One unit type within a project (e.g. 3-bedroom premium)."""

    __tablename__ = "property_unit_mix"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("property_projects.id"), nullable=False, index=True)
    unit_type = Column(String(100), nullable=False)
    bedrooms = Column(Integer, nullable=True)
    size_min_sqft = Column(Integer)
    size_max_sqft = Column(Integer)
    price_min = Column(Float)
    price_max = Column(Float)
    units_available = Column(Integer)
    units_total = Column(Integer)
    last_updated = Column(DateTime, default=func.now())

    project = relationship("PropertyProject", back_populates="unit_mix")


class VisualAsset(Base):
    """Floor plan, brochure, site plan or photo attached to a project."""

    __tablename__ = "visual_assets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("property_projects.id"), nullable=False, index=True)
    asset_type = Column(String(50), nullable=False)  # floor_plan, brochure, image, site_plan
    file_name = Column(String(255), nullable=False)
    public_url = Column(Text)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())

    project = relationship("PropertyProject", back_populates="visual_assets")
    ai_visual_analysis = relationship(
        "VisualAnalysis", back_populates="visual_asset", cascade="all, delete-orphan"
    )


class VisualAnalysis(Base):
    """Vision-model analysis of a visual asset (room count, layout, features)."""

    __tablename__ = "ai_visual_analysis"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    visual_asset_id = Column(String(36), ForeignKey("visual_assets.id"), nullable=False, index=True)
    analysis_type = Column(String(50), nullable=False, default="floor_plan_analysis")
    confidence_score = Column(Float)
    extracted_data = Column(JSON, default=dict)
    room_count = Column(Integer)
    layout_type = Column(String(100))
    square_footage = Column(Integer)
    key_features = Column(JSON, default=list)
    summary = Column(Text)
    created_at = Column(DateTime, default=func.now())

    visual_asset = relationship("VisualAsset", back_populates="ai_visual_analysis")
