"""GrowStage error types."""

from dataclasses import dataclass


class GrowStageError(Exception):
    """Base class for engine errors."""


class ConfigurationError(GrowStageError):
    """Stage, template or rule configuration is invalid. Not recoverable."""


class UnknownStageError(ConfigurationError, KeyError):
    """A lookup referenced a stage the stage model does not define."""

    def __init__(self, stage):
        self.stage = stage
        super().__init__(f"Unknown growth stage: {stage!r}")

    def __str__(self) -> str:
        return self.args[0]


class UnknownTaskTypeError(ConfigurationError, KeyError):
    """A lookup referenced a task type missing from the urgency matrix."""

    def __init__(self, stage, task_type):
        self.stage = stage
        self.task_type = task_type
        super().__init__(f"No urgency configured for task type {task_type!r} in stage {stage!r}")

    def __str__(self) -> str:
        return self.args[0]


class PlantDataError(GrowStageError, ValueError):
    """A single plant record is malformed. Recovered per plant."""


@dataclass(frozen=True)
class EntityError:
    """A per-plant or per-task failure recorded in a batch result."""

    entity: str
    entity_id: str
    phase: str
    message: str

    def as_dict(self) -> dict:
        return {"entity": self.entity, "entity_id": self.entity_id, "phase": self.phase, "message": self.message}
