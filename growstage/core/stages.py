"""GrowStage Stage Model — ordered growth stages, durations and urgency matrix."""

import logging
from collections.abc import Mapping
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

import yaml

from growstage.core.errors import ConfigurationError, UnknownStageError, UnknownTaskTypeError

logger = logging.getLogger("growstage.stages")

_DEFAULT_STAGES_FILE = Path(__file__).parent.parent / "knowledge" / "stages.yaml"


class GrowthStage(str, Enum):
    GERMINATION = "germination"
    SEEDLING = "seedling"
    VEGETATIVE = "vegetative"
    PRE_FLOWER = "pre_flower"
    FLOWERING = "flowering"
    LATE_FLOWERING = "late_flowering"
    HARVEST = "harvest"
    CURING = "curing"


# Declaration order is the lifecycle order
STAGE_ORDER: tuple[GrowthStage, ...] = tuple(GrowthStage)


class TaskType(str, Enum):
    WATERING = "watering"
    FEEDING = "feeding"
    INSPECTION = "inspection"
    PRUNING = "pruning"
    TRAINING = "training"
    HARVEST = "harvest"
    TRANSPLANT = "transplant"
    DEFOLIATION = "defoliation"
    FLUSHING = "flushing"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.LOW: 0, Priority.MEDIUM: 1, Priority.HIGH: 2, Priority.CRITICAL: 3}


def parse_stage(value: "GrowthStage | str") -> GrowthStage:
    """Coerce a stage name to GrowthStage, raising UnknownStageError."""
    try:
        return GrowthStage(value)
    except ValueError:
        raise UnknownStageError(value) from None


def parse_task_type(value: "TaskType | str") -> TaskType | None:
    """Coerce a task type name; None for names outside the TaskType set."""
    try:
        return TaskType(value)
    except ValueError:
        return None


class StageModel:
    """Immutable stage configuration: durations and task urgency per stage.

    Pure lookups. Unknown stages are programmer errors and raise
    UnknownStageError; a missing task type raises UnknownTaskTypeError.
    """

    def __init__(
        self,
        durations: Mapping[GrowthStage | str, int],
        urgency: Mapping[GrowthStage | str, Mapping[TaskType | str, float]],
    ):
        self._durations = MappingProxyType(self._validate_durations(durations))
        self._urgency = MappingProxyType(self._validate_urgency(urgency))
        self._next = MappingProxyType({
            stage: STAGE_ORDER[i + 1] if i + 1 < len(STAGE_ORDER) else None
            for i, stage in enumerate(STAGE_ORDER)
        })

    @staticmethod
    def _validate_durations(durations) -> dict[GrowthStage, int]:
        result = {}
        for key, days in durations.items():
            stage = parse_stage(key)
            if not isinstance(days, int) or isinstance(days, bool) or days < 0:
                raise ConfigurationError(f"Duration for {stage.value!r} must be a non-negative int, got {days!r}")
            if days == 0:
                logger.warning(f"Stage {stage.value!r} has a zero-day duration — progress will read as complete")
            result[stage] = days
        missing = [s.value for s in STAGE_ORDER if s not in result]
        if missing:
            raise ConfigurationError(f"Missing durations for stages: {missing}")
        return result

    @staticmethod
    def _validate_urgency(urgency) -> dict[GrowthStage, Mapping[TaskType, float]]:
        result = {}
        for key, row in urgency.items():
            stage = parse_stage(key)
            parsed = {}
            for task_key, value in (row or {}).items():
                task_type = parse_task_type(task_key)
                if task_type is None:
                    raise ConfigurationError(f"Unknown task type {task_key!r} in urgency row for {stage.value!r}")
                value = float(value)
                if not 0.0 <= value <= 1.0:
                    raise ConfigurationError(f"Urgency {stage.value}/{task_type.value} out of [0, 1]: {value}")
                parsed[task_type] = value
            result[stage] = MappingProxyType(parsed)
        missing = [s.value for s in STAGE_ORDER if s not in result]
        if missing:
            raise ConfigurationError(f"Missing urgency rows for stages: {missing}")
        return result

    @classmethod
    def from_yaml(cls, path: str | Path) -> "StageModel":
        """Load a stage model from a YAML file with a top-level `stages` list."""
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text())
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load stage model from {path}: {e}") from e
        if not data or "stages" not in data:
            raise ConfigurationError(f"Stage model {path} has no 'stages' list")

        durations = {}
        urgency = {}
        for entry in data["stages"]:
            name = entry.get("name")
            durations[name] = entry.get("duration_days")
            urgency[name] = entry.get("urgency", {})
        model = cls(durations, urgency)
        logger.info(f"Stage model loaded from {path.name}: {len(durations)} stages")
        return model

    @classmethod
    def default(cls) -> "StageModel":
        """Return the packaged stage model."""
        return _load_default()

    def duration_days(self, stage: GrowthStage | str) -> int:
        """Expected number of days a plant spends in a stage."""
        return self._durations[parse_stage(stage)]

    def next_stage(self, stage: GrowthStage | str) -> GrowthStage | None:
        """Next stage in the lifecycle, or None at the terminal stage."""
        return self._next[parse_stage(stage)]

    def is_terminal(self, stage: GrowthStage | str) -> bool:
        return self.next_stage(stage) is None

    def base_urgency(self, stage: GrowthStage | str, task_type: TaskType | str) -> float:
        """Base urgency in [0, 1] of a task type during a stage."""
        stage = parse_stage(stage)
        row = self._urgency[stage]
        parsed = parse_task_type(task_type)
        if parsed is None or parsed not in row:
            raise UnknownTaskTypeError(stage.value, task_type)
        return row[parsed]


@lru_cache(maxsize=1)
def _load_default() -> StageModel:
    return StageModel.from_yaml(_DEFAULT_STAGES_FILE)
