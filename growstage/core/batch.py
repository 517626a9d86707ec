"""GrowStage Batch Scheduler — one full engine pass over every active plant."""

import logging
import os
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from growstage.core.clock import utcnow
from growstage.core.config import Settings
from growstage.core.errors import ConfigurationError, EntityError
from growstage.core.health import HealthAlert, HealthAnalyzer
from growstage.core.memory import PlantStore
from growstage.core.milestones import MilestoneProgress, MilestoneTracker
from growstage.core.priority import PriorityScorer, Reason
from growstage.core.stages import Priority, StageModel, TaskType, parse_task_type
from growstage.core.templates import StageTaskTemplates
from growstage.core.transitions import StageChangeHook, TransitionOrchestrator, TransitionRecord, plant_stage

logger = logging.getLogger("growstage.batch")

EMERGENCY_TASK_MINUTES = 30


@dataclass(frozen=True)
class TaskPriorityUpdate:
    task_id: uuid.UUID
    plant_id: uuid.UUID
    old_priority: str
    new_priority: Priority
    reasons: tuple[Reason, ...]
    reason: str = "Growth stage-based priority update"

    @property
    def urgency_factors(self) -> list[str]:
        return [r.message for r in self.reasons]

    def as_dict(self) -> dict:
        return {
            "task_id": str(self.task_id),
            "plant_id": str(self.plant_id),
            "old_priority": self.old_priority,
            "new_priority": self.new_priority.value,
            "reason": self.reason,
            "urgency_factors": [r.as_dict() for r in self.reasons],
        }


@dataclass
class PlantOutcome:
    plant_id: uuid.UUID
    transition: TransitionRecord | None = None
    alerts: list[HealthAlert] = field(default_factory=list)
    priority_updates: list[TaskPriorityUpdate] = field(default_factory=list)
    celebrations: list[str] = field(default_factory=list)
    errors: list[EntityError] = field(default_factory=list)


@dataclass
class BatchResult:
    transitions: list[TransitionRecord] = field(default_factory=list)
    health_alerts: list[HealthAlert] = field(default_factory=list)
    priority_updates: list[TaskPriorityUpdate] = field(default_factory=list)
    celebrations: list[str] = field(default_factory=list)
    emergency_tasks: list = field(default_factory=list)
    errors: list[EntityError] = field(default_factory=list)
    skipped_plant_ids: list[uuid.UUID] = field(default_factory=list)
    plants_processed: int = 0

    def merge(self, outcome: PlantOutcome) -> None:
        if outcome.transition:
            self.transitions.append(outcome.transition)
        self.health_alerts.extend(outcome.alerts)
        self.priority_updates.extend(outcome.priority_updates)
        self.celebrations.extend(outcome.celebrations)
        self.errors.extend(outcome.errors)
        self.plants_processed += 1

    def summary(self) -> dict:
        return {
            "plants_processed": self.plants_processed,
            "transitions": len(self.transitions),
            "health_alerts": len(self.health_alerts),
            "priority_updates": len(self.priority_updates),
            "celebrations": len(self.celebrations),
            "emergency_tasks": len(self.emergency_tasks),
            "errors": len(self.errors),
            "skipped_plants": len(self.skipped_plant_ids),
        }

    def as_dict(self) -> dict:
        return {
            "summary": self.summary(),
            "transitions": [t.as_dict() for t in self.transitions],
            "health_alerts": [
                {
                    "plant_id": str(a.plant_id),
                    "plant_name": a.plant_name,
                    "severity": a.severity.value,
                    "message": a.message,
                    "recommended_actions": list(a.recommended_actions),
                }
                for a in self.health_alerts
            ],
            "priority_updates": [u.as_dict() for u in self.priority_updates],
            "celebrations": list(self.celebrations),
            "emergency_tasks": [str(t.id) for t in self.emergency_tasks],
            "errors": [e.as_dict() for e in self.errors],
            "skipped_plant_ids": [str(p) for p in self.skipped_plant_ids],
        }


def emergency_title(alert: HealthAlert) -> str:
    return f"🚨 Emergency: {alert.message}"


def emergency_description(alert: HealthAlert) -> str:
    return (
        "Critical health issue detected. Immediate attention required.\n\n"
        "Recommended actions:\n" + "\n".join(alert.recommended_actions)
    )


class BatchScheduler:
    """Top-level engine entry point.

    Per plant, in order: transition detection and persistence, health
    analysis, milestone progress on the (possibly new) stage, task
    re-scoring, celebrations. Plants run in parallel on a bounded pool;
    emergency tasks are created once every plant has finished.
    A failing plant or task is logged and recorded, never fatal.
    Configuration errors abort the run.
    """

    def __init__(
        self,
        store: PlantStore,
        stage_model: StageModel,
        templates: StageTaskTemplates,
        health_analyzer: HealthAnalyzer | None = None,
        metrics=None,
        max_workers: int | None = None,
        on_stage_change: StageChangeHook | None = None,
        clock=utcnow,
        celebration_lookback: timedelta = timedelta(hours=24),
        streak_window: timedelta = timedelta(days=7),
        streak_threshold: int = 5,
    ):
        self.store = store
        self.metrics = metrics or store
        self.stage_model = stage_model
        self.tracker = MilestoneTracker(stage_model, streak_threshold=streak_threshold)
        self.scorer = PriorityScorer(stage_model)
        self.health = health_analyzer or HealthAnalyzer()
        self.orchestrator = TransitionOrchestrator(store, self.tracker, templates, on_stage_change)
        self.max_workers = max_workers or os.cpu_count() or 1
        self.clock = clock
        self.celebration_lookback = celebration_lookback
        self.streak_window = streak_window

    # ── Full run ──────────────────────────────────────────────────────────────

    def run_all(self, now: datetime | None = None, cancel_event: threading.Event | None = None) -> BatchResult:
        """Run every phase across all active plants and aggregate the results."""
        now = now or self.clock()
        result = BatchResult()
        plants = self._active_plants()
        if not plants:
            logger.info("No active plants — skipping run")
            return result

        self.orchestrator.begin_run()
        logger.info(f"Running growth stage integration for {len(plants)} plants ({self.max_workers} workers)")

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="growstage") as pool:
            futures = [(plant, pool.submit(self._process_plant, plant, now, cancel_event)) for plant in plants]
            for plant, future in futures:
                outcome = future.result()
                if outcome is None:
                    result.skipped_plant_ids.append(plant.id)
                else:
                    result.merge(outcome)

        if result.skipped_plant_ids:
            logger.info(f"Run cancelled — {len(result.skipped_plant_ids)} plants skipped")

        # Alerts only come from plants that finished
        tasks, errors = self._create_emergency_tasks(result.health_alerts, now)
        result.emergency_tasks.extend(tasks)
        result.errors.extend(errors)

        logger.info(f"Growth stage integration completed: {result.summary()}")
        return result

    def _active_plants(self) -> list:
        seen = set()
        plants = []
        for plant in self.store.get_active_plants():
            if plant.id in seen:
                continue
            seen.add(plant.id)
            plants.append(plant)
        return plants

    def _process_plant(self, plant, now: datetime, cancel_event: threading.Event | None) -> PlantOutcome | None:
        if cancel_event is not None and cancel_event.is_set():
            return None

        outcome = PlantOutcome(plant_id=plant.id)

        # 1. Transition first: scoring depends on the persisted stage
        stage_ok = True
        try:
            record = self.orchestrator.transition_plant(plant, now)
            if record:
                outcome.transition = record
                plant = self.store.get_plant(plant.id) or plant
        except ConfigurationError:
            raise
        except Exception as e:
            stage_ok = False
            self._record_error(outcome.errors, "plant", plant, "transition", e)

        # 2. Health
        snapshot = None
        try:
            snapshot = self.metrics.get_latest_snapshot(plant.id)
            outcome.alerts = self.health.analyze(plant, snapshot)
        except ConfigurationError:
            raise
        except Exception as e:
            self._record_error(outcome.errors, "plant", plant, "health", e)

        if not stage_ok:
            return outcome

        # 3-5. Milestones, priorities, celebrations
        try:
            progress = self.tracker.progress_for_plant(plant, now)
            outcome.priority_updates = self._update_plant_priorities(plant, progress, snapshot, now, outcome.errors)
            outcome.celebrations = self._plant_celebrations(plant, progress, now)
        except ConfigurationError:
            raise
        except Exception as e:
            self._record_error(outcome.errors, "plant", plant, "milestones", e)

        return outcome

    @staticmethod
    def _record_error(errors: list, entity: str, obj, phase: str, exc: Exception) -> None:
        name = getattr(obj, "name", None) or getattr(obj, "title", "")
        logger.error(f"Error in {phase} for {entity} {name} ({obj.id}): {exc}", exc_info=True)
        errors.append(EntityError(entity, str(obj.id), phase, str(exc)))

    # ── Priorities ────────────────────────────────────────────────────────────

    def _update_plant_priorities(
        self,
        plant,
        progress: MilestoneProgress,
        snapshot,
        now: datetime,
        errors: list,
    ) -> list[TaskPriorityUpdate]:
        """Re-score a plant's pending tasks; apply changed priorities in one transaction."""
        stage = plant_stage(plant)
        changes: list[TaskPriorityUpdate] = []
        for task in self.store.get_pending_tasks(plant.id):
            # Emergency tasks stay critical until completed
            if task.source == "emergency":
                continue
            task_type = parse_task_type(task.task_type)
            if task_type is None:
                logger.warning(f"Task {task.id} has unknown task type {task.task_type!r} — not re-scored")
                errors.append(EntityError("task", str(task.id), "priority", f"unknown task type {task.task_type!r}"))
                continue
            factors = self.scorer.score(stage, task_type, snapshot, progress, task.due_date, now)
            if factors.final_priority.value != task.priority:
                changes.append(TaskPriorityUpdate(
                    task_id=task.id,
                    plant_id=plant.id,
                    old_priority=task.priority,
                    new_priority=factors.final_priority,
                    reasons=factors.reasons,
                ))

        if not changes:
            return []

        try:
            with self.store.atomic() as tx:
                for change in changes:
                    tx.update_task(change.task_id, _set_priority(change.new_priority))
        except Exception as e:
            self._record_error(errors, "plant", plant, "priority_update", e)
            return []

        logger.info(f"Updated {len(changes)} task priorities for {plant.name}")
        return changes

    # ── Celebrations ──────────────────────────────────────────────────────────

    def _plant_celebrations(self, plant, progress: MilestoneProgress, now: datetime) -> list[str]:
        messages = self.tracker.celebrations(plant.name, progress)
        recent = self.store.get_completed_tasks_since(plant.id, now - self.celebration_lookback)
        this_week = self.store.get_completed_tasks_since(plant.id, now - self.streak_window)
        messages.extend(self.tracker.task_completion_celebrations(recent, len(this_week)))
        return messages

    # ── Emergency tasks ───────────────────────────────────────────────────────

    def _create_emergency_tasks(self, alerts: list[HealthAlert], now: datetime) -> tuple[list, list[EntityError]]:
        created = []
        errors: list[EntityError] = []
        for alert in alerts:
            if not alert.is_critical:
                continue
            title = emergency_title(alert)
            try:
                plant = self.store.get_plant(alert.plant_id)
                if plant is None:
                    raise LookupError(f"Plant {alert.plant_id} not found")
                with self.store.atomic() as tx:
                    if tx.find_pending_task(alert.plant_id, title):
                        logger.debug(f"Emergency task already pending for {alert.plant_name}: {alert.message}")
                        continue
                    task = tx.create_task({
                        "plant_id": alert.plant_id,
                        "user_id": plant.user_id,
                        "title": title,
                        "description": emergency_description(alert),
                        "task_type": TaskType.INSPECTION.value,
                        "due_date": now,
                        "status": "pending",
                        "priority": Priority.CRITICAL.value,
                        "estimated_duration": EMERGENCY_TASK_MINUTES,
                        "auto_generated": True,
                        "source": "emergency",
                    })
                created.append(task)
            except Exception as e:
                logger.error(f"Failed to create emergency task for plant {alert.plant_name} ({alert.plant_id}): {e}", exc_info=True)
                errors.append(EntityError("plant", str(alert.plant_id), "emergency_task", str(e)))

        logger.info(f"Created {len(created)} emergency tasks")
        return created, errors

    # ── Individual phases ─────────────────────────────────────────────────────
    # Each returns (results, errors) like TransitionOrchestrator.run.

    def monitor_transitions(self, now: datetime | None = None) -> tuple[list[TransitionRecord], list[EntityError]]:
        """Detect and persist stage transitions for all active plants."""
        return self.orchestrator.run(self._active_plants(), now or self.clock())

    def analyze_health(self, plant_ids: list | None = None) -> tuple[list[HealthAlert], list[EntityError]]:
        """Health alerts for all active plants, or the given subset."""
        alerts = []
        errors: list[EntityError] = []
        for plant in self._select(plant_ids):
            try:
                alerts.extend(self.health.analyze(plant, self.metrics.get_latest_snapshot(plant.id)))
            except ConfigurationError:
                raise
            except Exception as e:
                self._record_error(errors, "plant", plant, "health", e)
        logger.info(f"Generated {len(alerts)} plant health alerts")
        return alerts, errors

    def update_all_task_priorities(
        self, now: datetime | None = None
    ) -> tuple[list[TaskPriorityUpdate], list[EntityError]]:
        """Re-score every pending task; returns only the priorities that changed."""
        now = now or self.clock()
        updates = []
        errors: list[EntityError] = []
        for plant in self._active_plants():
            try:
                plant_stage(plant)
                progress = self.tracker.progress_for_plant(plant, now)
                snapshot = self.metrics.get_latest_snapshot(plant.id)
                updates.extend(self._update_plant_priorities(plant, progress, snapshot, now, errors))
            except ConfigurationError:
                raise
            except Exception as e:
                self._record_error(errors, "plant", plant, "priority", e)
        logger.info(f"Updated {len(updates)} task priorities")
        return updates, errors

    def track_milestones(
        self, plant_ids: list | None = None, now: datetime | None = None
    ) -> tuple[list[str], list[EntityError]]:
        """Milestone and task-completion celebrations."""
        now = now or self.clock()
        celebrations = []
        errors: list[EntityError] = []
        for plant in self._select(plant_ids):
            try:
                plant_stage(plant)
                progress = self.tracker.progress_for_plant(plant, now)
                celebrations.extend(self._plant_celebrations(plant, progress, now))
            except ConfigurationError:
                raise
            except Exception as e:
                self._record_error(errors, "plant", plant, "milestones", e)
        logger.info(f"Generated {len(celebrations)} milestone celebrations")
        return celebrations, errors

    def create_emergency_tasks(
        self, alerts: list[HealthAlert], now: datetime | None = None
    ) -> tuple[list, list[EntityError]]:
        """One critical inspection task per critical alert not already pending."""
        return self._create_emergency_tasks(alerts, now or self.clock())

    def _select(self, plant_ids: list | None) -> list:
        plants = self._active_plants()
        if plant_ids:
            wanted = set(plant_ids)
            plants = [p for p in plants if p.id in wanted]
        return plants


def _set_priority(priority: Priority):
    def mutate(task) -> None:
        task.priority = priority.value
    return mutate


def build_batch_scheduler(settings: Settings, session_factory) -> BatchScheduler:
    """Wire a BatchScheduler from settings."""
    stage_model = (
        StageModel.from_yaml(settings.stage_model_path) if settings.stage_model_path else StageModel.default()
    )
    templates = StageTaskTemplates(settings.task_templates_path, horizon_days=settings.template_horizon_days)
    return BatchScheduler(
        store=PlantStore(session_factory),
        stage_model=stage_model,
        templates=templates,
        health_analyzer=HealthAnalyzer(settings.health_rules_dir),
        max_workers=settings.max_workers,
        celebration_lookback=timedelta(hours=settings.celebration_lookback_hours),
        streak_window=timedelta(days=settings.streak_window_days),
        streak_threshold=settings.streak_threshold,
    )
