"""GrowStage Milestone Tracker — stage progress, transition readiness, celebrations."""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime

from growstage.core.clock import days_between
from growstage.core.stages import GrowthStage, Priority, StageModel, TaskType, parse_stage

logger = logging.getLogger("growstage.milestones")

READY_THRESHOLD_PCT = 80.0
ALMOST_DONE_PCT = 90.0


def stage_clock_origin(plant) -> date | datetime:
    """Start of the plant's current stage: last engine transition, else planting."""
    return getattr(plant, "stage_started_at", None) or plant.planted_date


@dataclass(frozen=True)
class MilestoneProgress:
    current_stage: GrowthStage
    next_stage: GrowthStage | None
    progress_percentage: float
    days_in_stage: int
    expected_days_in_stage: int
    is_ready_for_transition: bool
    reasons: tuple[str, ...] = field(default_factory=tuple)


class MilestoneTracker:
    """Computes how far a plant is through its current stage.

    Deterministic and side-effect free: transition detection and celebration
    text both read the same MilestoneProgress for a plant within one run.
    """

    def __init__(self, stage_model: StageModel, streak_threshold: int = 5):
        self.stage_model = stage_model
        self.streak_threshold = streak_threshold

    def compute_progress(
        self,
        stage: GrowthStage | str,
        clock_origin: date | datetime,
        now: datetime,
    ) -> MilestoneProgress:
        """Progress through `stage` given when its clock started."""
        stage = parse_stage(stage)
        expected = self.stage_model.duration_days(stage)
        next_stage = self.stage_model.next_stage(stage)

        # An origin in the future counts as day zero
        days_elapsed = max(0, math.floor(days_between(clock_origin, now)))

        if expected <= 0:
            days_in_stage = 0
            progress = 100.0
        else:
            days_in_stage = min(days_elapsed, expected)
            progress = min(100.0, days_in_stage / expected * 100)

        ready = progress >= READY_THRESHOLD_PCT and next_stage is not None

        reasons = []
        if progress >= ALMOST_DONE_PCT:
            reasons.append(f"Plant is {round(progress)}% through {stage.value} stage")
        if ready:
            reasons.append(f"Ready to transition to {next_stage.value} stage")
        if stage == GrowthStage.LATE_FLOWERING and progress >= 70:
            reasons.append("Approaching harvest window - monitor trichomes closely")
        if stage == GrowthStage.HARVEST:
            reasons.append("Harvest milestone reached - celebrate your grow!")

        logger.debug(f"Milestone progress: {progress:.1f}% through {stage.value} ({days_in_stage}/{expected} days)")

        return MilestoneProgress(
            current_stage=stage,
            next_stage=next_stage,
            progress_percentage=progress,
            days_in_stage=days_in_stage,
            expected_days_in_stage=expected,
            is_ready_for_transition=ready,
            reasons=tuple(reasons),
        )

    def progress_for_plant(self, plant, now: datetime) -> MilestoneProgress:
        return self.compute_progress(plant.growth_stage, stage_clock_origin(plant), now)

    def stage_celebration(self, plant_name: str, progress: MilestoneProgress) -> str | None:
        """The stage-specific celebration line, if the stage has one."""
        stage = progress.current_stage
        pct = progress.progress_percentage
        if stage == GrowthStage.FLOWERING and pct >= 50:
            return f"🌸 {plant_name} is halfway through flowering - buds are developing nicely!"
        if stage == GrowthStage.HARVEST:
            return f"🏆 Harvest time for {plant_name} - congratulations on your successful grow!"
        if stage == GrowthStage.CURING and pct >= 75:
            return f"✨ {plant_name} is almost ready - curing is nearly complete!"
        return None

    def celebrations(self, plant_name: str, progress: MilestoneProgress) -> list[str]:
        """All milestone celebrations for a plant's current progress."""
        messages = []
        if progress.is_ready_for_transition and progress.next_stage:
            messages.append(f"🎉 {plant_name} is ready to transition to {progress.next_stage.value} stage!")
        if 75 <= progress.progress_percentage < 80:
            messages.append(f"🌟 {plant_name} is 75% through {progress.current_stage.value} stage!")
        stage_line = self.stage_celebration(plant_name, progress)
        if stage_line:
            messages.append(stage_line)
        return messages

    def task_completion_celebrations(self, recent_completed: list, completed_this_week: int) -> list[str]:
        """Celebrations for recently completed tasks and weekly streaks."""
        messages = []
        for task in recent_completed:
            if task.task_type == TaskType.HARVEST.value:
                messages.append(f"🎊 Harvest completed for {task.title}! Time to celebrate your hard work!")
            elif task.task_type == TaskType.TRANSPLANT.value:
                messages.append("🌱 Successfully transplanted! Your plant has more room to grow!")
            elif task.task_type == TaskType.INSPECTION.value and task.priority == Priority.CRITICAL.value:
                messages.append("✅ Critical inspection completed - great job staying on top of plant health!")

        if completed_this_week >= self.streak_threshold:
            messages.append(
                f"🔥 Amazing! You've completed {completed_this_week} tasks this week - you're on fire!"
            )
        return messages
