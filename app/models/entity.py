"""Catalog entity model (restaurants, hotels, malls, attractions, schools, fitness)."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONPayload, StringUUID, TimestampMixin


class CatalogEntity(Base, TimestampMixin):
    """One catalog item being enriched by the extraction pipeline.

    ``extraction_status`` and ``failed_step`` are derived from
    ``extraction_progress``; only the progress store writes them.
    """

    __tablename__ = "catalog_entities"
    __table_args__ = (
        UniqueConstraint("entity_type", "place_id", name="uq_catalog_entities_type_place"),
        Index("ix_catalog_entities_type_status", "entity_type", "extraction_status"),
    )

    id: Mapped[str] = mapped_column(StringUUID(), primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    place_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Extraction state
    extraction_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    extraction_progress: Mapped[dict[str, Any]] = mapped_column(
        JSONPayload, default=dict, nullable=False
    )
    failed_step: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Provider payloads and derived fields
    data: Mapped[dict[str, Any]] = mapped_column(JSONPayload, default=dict, nullable=False)

    # Review flag, owned by admin tooling
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<CatalogEntity {self.entity_type}:{self.id} ({self.extraction_status})>"
