"""SQLAlchemy models — PlantMetrics snapshots."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from growstage.models.base import Base


class PlantMetrics(Base):
    """Point-in-time plant reading. Every measurement is optional."""

    __tablename__ = "plant_metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    plant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("plants.id"), nullable=False, index=True
    )
    health_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Negative values mean overdue by that many days
    next_watering_days: Mapped[float | None] = mapped_column(Float, nullable=True)
    next_feeding_days: Mapped[float | None] = mapped_column(Float, nullable=True)
    ph_level: Mapped[float | None] = mapped_column(Float, nullable=True)
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    vpd: Mapped[float | None] = mapped_column(Float, nullable=True)
    vpd_optimal: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    plant: Mapped["Plant"] = relationship("Plant", back_populates="metrics")  # noqa: F821

    def __repr__(self) -> str:
        return f"<PlantMetrics plant={self.plant_id} health={self.health_percentage!r} at={self.recorded_at}>"
