"""GrowStage Priority Scorer — multi-factor task urgency scoring.

Four sub-scores in [0, 1] are combined into a weighted score and banded into
a discrete priority:

    growth stage   0.3   base urgency of the task type in the stage, +0.2 when
                         the plant is ready for its next stage
    health         0.3   health percentage, overdue watering/feeding
    environmental  0.2   pH, VPD, temperature
    time           0.2   distance to the due date

A health or environmental sub-score of 0.9 or more forces `critical`.
The scorer is a pure function of its inputs.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from growstage.core.clock import days_between
from growstage.core.milestones import MilestoneProgress
from growstage.core.errors import UnknownTaskTypeError
from growstage.core.stages import GrowthStage, Priority, StageModel, TaskType, parse_stage, parse_task_type

logger = logging.getLogger("growstage.priority")

WEIGHTS = {"growth": 0.3, "health": 0.3, "environmental": 0.2, "time": 0.2}
PRIORITY_BANDS = ((0.8, Priority.CRITICAL), (0.6, Priority.HIGH), (0.4, Priority.MEDIUM))
OVERRIDE_THRESHOLD = 0.9
DEFAULT_URGENCY = 0.3
TRANSITION_BOOST = 0.2

PH_RANGE = (5.5, 7.0)
TEMPERATURE_RANGE = (15.0, 30.0)


class ReasonCode(str, Enum):
    STAGE_TRANSITION = "stage_transition"
    HEALTH_CRITICAL = "health_critical"
    HEALTH_LOW = "health_low"
    HEALTH_MODERATE = "health_moderate"
    WATERING_OVERDUE = "watering_overdue"
    FEEDING_OVERDUE = "feeding_overdue"
    PH_OUT_OF_RANGE = "ph_out_of_range"
    VPD_SUBOPTIMAL = "vpd_suboptimal"
    TEMPERATURE_STRESS = "temperature_stress"
    TASK_OVERDUE = "task_overdue"
    TASK_DUE_SOON = "task_due_soon"


_REASON_TEMPLATES = {
    ReasonCode.STAGE_TRANSITION: "Stage transition approaching - increased {task_type} priority",
    ReasonCode.HEALTH_CRITICAL: "Critical health ({value:g}%) - urgent attention needed",
    ReasonCode.HEALTH_LOW: "Low health ({value:g}%) - high priority care needed",
    ReasonCode.HEALTH_MODERATE: "Moderate health ({value:g}%) - increased care priority",
    ReasonCode.WATERING_OVERDUE: "Watering overdue by {value:g} days",
    ReasonCode.FEEDING_OVERDUE: "Nutrients overdue by {value:g} days",
    ReasonCode.PH_OUT_OF_RANGE: "pH out of range ({value:g}) - immediate attention needed",
    ReasonCode.VPD_SUBOPTIMAL: "VPD suboptimal ({value} kPa) - environmental adjustment needed",
    ReasonCode.TEMPERATURE_STRESS: "Temperature stress ({value:g}°C) - urgent environmental control",
    ReasonCode.TASK_OVERDUE: "Task overdue - time-sensitive priority",
    ReasonCode.TASK_DUE_SOON: "Task due soon - time-sensitive priority",
}

# Used when the reading behind a reason is absent
_BARE_TEMPLATES = {
    ReasonCode.VPD_SUBOPTIMAL: "VPD suboptimal - environmental adjustment needed",
}


@dataclass(frozen=True)
class Reason:
    code: ReasonCode
    params: tuple[tuple[str, object], ...] = ()

    @property
    def message(self) -> str:
        params = dict(self.params)
        if not params and self.code in _BARE_TEMPLATES:
            return _BARE_TEMPLATES[self.code]
        return _REASON_TEMPLATES[self.code].format(**params)

    def as_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


def _reason(code: ReasonCode, **params) -> Reason:
    return Reason(code, tuple(sorted(params.items())))


@dataclass(frozen=True)
class PriorityFactors:
    growth_stage_urgency: float
    health_urgency: float
    environmental_urgency: float
    time_urgency: float
    weighted_score: float
    final_priority: Priority
    reasons: tuple[Reason, ...]

    @property
    def reasoning(self) -> list[str]:
        """Human-readable reasons, in rule order."""
        return [r.message for r in self.reasons]

    @property
    def overridden(self) -> bool:
        return self.health_urgency >= OVERRIDE_THRESHOLD or self.environmental_urgency >= OVERRIDE_THRESHOLD


def priority_for_score(score: float) -> Priority:
    for threshold, priority in PRIORITY_BANDS:
        if score >= threshold:
            return priority
    return Priority.LOW


def parse_due_date(value) -> datetime | date | None:
    """Accept datetime, date or ISO string; None when missing or unparseable."""
    if value is None or isinstance(value, (datetime, date)):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def time_urgency(due_date, now: datetime) -> float:
    """Urgency from due-date proximity. Missing or invalid due dates score 0.3."""
    due = parse_due_date(due_date)
    if due is None:
        logger.debug(f"Missing or invalid due date {due_date!r} — using default time urgency")
        return DEFAULT_URGENCY
    days = days_between(now, due)
    if days < 0:
        return 1.0
    if days < 1:
        return 0.9
    if days < 2:
        return 0.7
    if days < 7:
        return 0.5
    return 0.3


class PriorityScorer:
    """Scores a task from stage, latest metrics, milestone progress and due date."""

    def __init__(self, stage_model: StageModel):
        self.stage_model = stage_model

    def score(
        self,
        stage: GrowthStage | str,
        task_type: TaskType | str,
        snapshot,
        milestone: MilestoneProgress,
        due_date,
        now: datetime,
    ) -> PriorityFactors:
        stage = parse_stage(stage)
        parsed = parse_task_type(task_type)
        if parsed is None:
            raise UnknownTaskTypeError(stage.value, task_type)
        task_type = parsed
        reasons: list[Reason] = []

        growth = self._growth_stage_urgency(stage, task_type, milestone, reasons)
        health = self._health_urgency(task_type, snapshot, reasons)
        environmental = self._environmental_urgency(snapshot, reasons)
        timing = time_urgency(due_date, now)
        if timing > 0.7:
            code = ReasonCode.TASK_OVERDUE if timing >= 1.0 else ReasonCode.TASK_DUE_SOON
            reasons.append(_reason(code))

        weighted = round(
            growth * WEIGHTS["growth"]
            + health * WEIGHTS["health"]
            + environmental * WEIGHTS["environmental"]
            + timing * WEIGHTS["time"],
            6,
        )
        final = priority_for_score(weighted)

        # A single severe physiological signal is never diluted
        if health >= OVERRIDE_THRESHOLD or environmental >= OVERRIDE_THRESHOLD:
            final = Priority.CRITICAL

        logger.debug(
            f"Priority factors for {task_type.value} in {stage.value}: growth={growth:.2f}, health={health:.2f}, "
            f"env={environmental:.2f}, time={timing:.2f} → {final.value}"
        )

        return PriorityFactors(
            growth_stage_urgency=growth,
            health_urgency=health,
            environmental_urgency=environmental,
            time_urgency=timing,
            weighted_score=weighted,
            final_priority=final,
            reasons=tuple(reasons),
        )

    def _growth_stage_urgency(self, stage, task_type, milestone, reasons) -> float:
        urgency = self.stage_model.base_urgency(stage, task_type)
        if milestone is not None and milestone.is_ready_for_transition:
            urgency = min(1.0, round(urgency + TRANSITION_BOOST, 6))
            reasons.append(_reason(ReasonCode.STAGE_TRANSITION, task_type=task_type.value))
        return urgency

    def _health_urgency(self, task_type, snapshot, reasons) -> float:
        urgency = DEFAULT_URGENCY
        if snapshot is None:
            return urgency

        health_pct = getattr(snapshot, "health_percentage", None)
        if health_pct is not None:
            if health_pct < 30:
                urgency = max(urgency, 1.0)
                reasons.append(_reason(ReasonCode.HEALTH_CRITICAL, value=health_pct))
            elif health_pct < 50:
                urgency = max(urgency, 0.8)
                reasons.append(_reason(ReasonCode.HEALTH_LOW, value=health_pct))
            elif health_pct < 70:
                urgency = max(urgency, 0.6)
                reasons.append(_reason(ReasonCode.HEALTH_MODERATE, value=health_pct))

        watering = getattr(snapshot, "next_watering_days", None)
        if task_type == TaskType.WATERING and watering is not None and watering <= 0:
            urgency = max(urgency, 0.9)
            reasons.append(_reason(ReasonCode.WATERING_OVERDUE, value=abs(watering)))

        feeding = getattr(snapshot, "next_feeding_days", None)
        if task_type == TaskType.FEEDING and feeding is not None and feeding <= 0:
            urgency = max(urgency, 0.8)
            reasons.append(_reason(ReasonCode.FEEDING_OVERDUE, value=abs(feeding)))

        return urgency

    def _environmental_urgency(self, snapshot, reasons) -> float:
        urgency = DEFAULT_URGENCY
        if snapshot is None:
            return urgency

        ph = getattr(snapshot, "ph_level", None)
        if ph is not None and (ph < PH_RANGE[0] or ph > PH_RANGE[1]):
            urgency = max(urgency, 0.9)
            reasons.append(_reason(ReasonCode.PH_OUT_OF_RANGE, value=ph))

        if getattr(snapshot, "vpd_optimal", None) is False:
            urgency = max(urgency, 0.6)
            vpd = getattr(snapshot, "vpd", None)
            params = {"value": vpd} if vpd is not None else {}
            reasons.append(_reason(ReasonCode.VPD_SUBOPTIMAL, **params))

        temperature = getattr(snapshot, "temperature", None)
        if temperature is not None and (temperature < TEMPERATURE_RANGE[0] or temperature > TEMPERATURE_RANGE[1]):
            urgency = max(urgency, 0.8)
            reasons.append(_reason(ReasonCode.TEMPERATURE_STRESS, value=temperature))

        return urgency
