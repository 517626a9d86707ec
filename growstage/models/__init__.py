"""Models package — imports all models for metadata discovery."""

from growstage.models.base import Base, create_session_factory
from growstage.models.plant import Plant
from growstage.models.task import Task
from growstage.models.metrics import PlantMetrics

__all__ = ["Base", "create_session_factory", "Plant", "Task", "PlantMetrics"]
