"""SQLAlchemy models — Plant."""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Boolean, Date, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from growstage.models.base import Base


class Plant(Base):
    __tablename__ = "plants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    growth_stage: Mapped[str] = mapped_column(String(30), nullable=False, default="germination")
    planted_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Set when the engine moves the plant to a new stage; clock origin for that stage
    stage_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    strain_type: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Relationships
    tasks: Mapped[list["Task"]] = relationship(  # noqa: F821
        "Task", back_populates="plant", cascade="all, delete-orphan"
    )
    metrics: Mapped[list["PlantMetrics"]] = relationship(  # noqa: F821
        "PlantMetrics", back_populates="plant", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Plant {self.name!r} stage={self.growth_stage!r}>"
