"""GrowStage Stage Task Templates — loads per-stage task templates from YAML."""

import logging
import math
from datetime import datetime, time, timedelta, timezone
from pathlib import Path

import yaml

from growstage.core.clock import as_utc
from growstage.core.errors import ConfigurationError
from growstage.core.stages import GrowthStage, Priority, TaskType, parse_stage

logger = logging.getLogger("growstage.templates")

_DEFAULT_TEMPLATES_FILE = Path(__file__).parent.parent / "knowledge" / "task_templates.yaml"

STRAIN_CADENCE_TASKS = {TaskType.WATERING, TaskType.FEEDING, TaskType.INSPECTION}
DEFAULT_FREQUENCY_DAYS = 7
DEFAULT_ESTIMATED_MINUTES = 30


class StageTaskTemplates:
    """Generates stage-appropriate tasks for a plant entering a stage.

    Tasks are returned as unsaved dicts so the caller can persist them in the
    same transaction as the stage change.
    """

    def __init__(self, templates_file: str | Path | None = None, horizon_days: int = 7):
        self.templates_file = Path(templates_file) if templates_file else _DEFAULT_TEMPLATES_FILE
        self.horizon_days = horizon_days
        self._task_types: dict[str, dict] = {}
        self._strains: dict[str, dict] = {}
        self._stages: dict[str, dict] = {}
        self._descriptions: dict[str, dict] = {}
        self._load()

    def _load(self) -> None:
        try:
            data = yaml.safe_load(self.templates_file.read_text())
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load task templates {self.templates_file}: {e}") from e
        if not data:
            raise ConfigurationError(f"Task templates file {self.templates_file} is empty")

        self._task_types = data.get("task_types", {})
        self._strains = data.get("strains", {})
        self._stages = data.get("stages", {})
        self._descriptions = data.get("descriptions", {})

        if "unknown" not in self._strains:
            raise ConfigurationError("Task templates need an 'unknown' strain fallback")
        for stage_name, stage_info in self._stages.items():
            parse_stage(stage_name)
            try:
                for task_name in stage_info.get("recommended_tasks", []):
                    TaskType(task_name)
                for priority in stage_info.get("priorities", {}).values():
                    Priority(priority)
            except ValueError as e:
                raise ConfigurationError(f"Invalid template for stage {stage_name!r}: {e}") from e

        logger.info(f"Task templates loaded: {len(self._stages)} stages, {len(self._strains)} strain profiles")

    def recommended_tasks(self, stage: GrowthStage | str) -> list[TaskType]:
        stage = parse_stage(stage)
        info = self._stages.get(stage.value, {})
        return [TaskType(t) for t in info.get("recommended_tasks", [])]

    def template_priority(self, stage: GrowthStage | str, task_type: TaskType | str) -> Priority:
        """Priority a freshly generated task starts with; medium when unspecified."""
        stage = parse_stage(stage)
        priorities = self._stages.get(stage.value, {}).get("priorities", {})
        return Priority(priorities.get(TaskType(task_type).value, Priority.MEDIUM.value))

    def strain_profile(self, strain_type: str | None) -> dict:
        key = (strain_type or "unknown").lower()
        return self._strains.get(key, self._strains["unknown"])

    def cadence_days(self, task_type: TaskType | str, stage: GrowthStage | str, strain_type: str | None = None) -> int:
        """Days between generated occurrences of a task."""
        task_type = TaskType(task_type)
        stage = parse_stage(stage)
        profile = self.strain_profile(strain_type)
        if task_type in STRAIN_CADENCE_TASKS:
            base = profile.get(task_type.value, DEFAULT_FREQUENCY_DAYS)
        else:
            base = self._task_types.get(task_type.value, {}).get("frequency_days", DEFAULT_FREQUENCY_DAYS)
        modifier = profile.get("stage_modifiers", {}).get(stage.value, 1) or 1
        # Half-up rounding
        return max(1, math.floor(base / modifier + 0.5))

    def title_for(self, task_type: TaskType | str, plant_name: str) -> str:
        pattern = self._task_types.get(TaskType(task_type).value, {}).get("title", "Care for {plant}")
        return pattern.format(plant=plant_name)

    def describe(self, task_type: TaskType | str, stage: GrowthStage | str) -> str:
        task_type = TaskType(task_type)
        stage = parse_stage(stage)
        text = self._descriptions.get(task_type.value, {}).get(stage.value)
        return text or f"Perform {task_type.value} task for plant in {stage.value} stage."

    def estimated_minutes(self, task_type: TaskType | str) -> int:
        return self._task_types.get(TaskType(task_type).value, {}).get("estimated_minutes", DEFAULT_ESTIMATED_MINUTES)

    def generate_tasks_for_stage(self, plant, stage: GrowthStage | str, now: datetime) -> list[dict]:
        """Build the recurring tasks for `stage` over the scheduling horizon."""
        stage = parse_stage(stage)
        start = datetime.combine(as_utc(now).date(), time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=self.horizon_days)
        strain_type = getattr(plant, "strain_type", None)

        tasks = []
        for task_type in self.recommended_tasks(stage):
            cadence = self.cadence_days(task_type, stage, strain_type)
            due = start
            while due <= end:
                tasks.append({
                    "plant_id": plant.id,
                    "user_id": plant.user_id,
                    "title": self.title_for(task_type, plant.name),
                    "description": self.describe(task_type, stage),
                    "task_type": task_type.value,
                    "due_date": due,
                    "status": "pending",
                    "priority": self.template_priority(stage, task_type).value,
                    "estimated_duration": self.estimated_minutes(task_type),
                    "auto_generated": True,
                    "source": "stage_template",
                })
                due += timedelta(days=cadence)

        logger.info(f"Generated {len(tasks)} template tasks for {plant.name} in {stage.value} stage")
        return tasks
