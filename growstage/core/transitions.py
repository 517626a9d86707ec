"""GrowStage Transition Orchestrator — forward-only growth stage state machine."""

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from growstage.core.errors import ConfigurationError, EntityError, PlantDataError
from growstage.core.memory import PlantStore, StoreTransaction
from growstage.core.milestones import MilestoneTracker, stage_clock_origin
from growstage.core.stages import GrowthStage
from growstage.core.templates import StageTaskTemplates

logger = logging.getLogger("growstage.transitions")

# (transaction, plant, old_stage, new_stage); runs inside the transition's transaction
StageChangeHook = Callable[[StoreTransaction, object, GrowthStage, GrowthStage], None]


@dataclass(frozen=True)
class TransitionRecord:
    plant_id: uuid.UUID
    plant_name: str
    old_stage: GrowthStage
    new_stage: GrowthStage
    transition_date: datetime
    triggered_tasks: tuple
    celebration_message: str

    def as_dict(self) -> dict:
        return {
            "plant_id": str(self.plant_id),
            "plant_name": self.plant_name,
            "old_stage": self.old_stage.value,
            "new_stage": self.new_stage.value,
            "transition_date": self.transition_date.isoformat(),
            "triggered_tasks": [str(t.id) for t in self.triggered_tasks],
            "celebration_message": self.celebration_message,
        }


def plant_stage(plant) -> GrowthStage:
    """Current stage of a plant record, raising PlantDataError when malformed."""
    try:
        return GrowthStage(plant.growth_stage)
    except ValueError:
        raise PlantDataError(f"Plant {plant.id} has unknown growth stage {plant.growth_stage!r}") from None


class TransitionOrchestrator:
    """Moves plants forward one stage at a time when their stage is complete enough.

    A transition persists the new stage, lets the stage-change hook adjust
    existing tasks, and creates the next stage's template tasks, all in one
    transaction. A plant fires at most once per run.
    """

    def __init__(
        self,
        store: PlantStore,
        tracker: MilestoneTracker,
        templates: StageTaskTemplates,
        on_stage_change: StageChangeHook | None = None,
    ):
        self.store = store
        self.tracker = tracker
        self.templates = templates
        self.on_stage_change = on_stage_change
        self._lock = threading.Lock()
        self._claimed: set = set()

    def begin_run(self) -> None:
        """Forget which plants fired in the previous run."""
        with self._lock:
            self._claimed.clear()

    def _claim(self, plant_id) -> bool:
        with self._lock:
            if plant_id in self._claimed:
                return False
            self._claimed.add(plant_id)
            return True

    def detect_transition(self, plant, now: datetime) -> GrowthStage | None:
        """Return the stage a plant should move to now, or None."""
        stage = plant_stage(plant)
        progress = self.tracker.compute_progress(stage, stage_clock_origin(plant), now)
        if progress.is_ready_for_transition:
            return progress.next_stage
        return None

    def transition_plant(self, plant, now: datetime) -> TransitionRecord | None:
        """Detect and persist a transition for one plant."""
        old_stage = plant_stage(plant)
        new_stage = self.detect_transition(plant, now)
        if new_stage is None or new_stage == old_stage:
            return None

        if not self._claim(plant.id):
            logger.info(f"Plant {plant.name} ({plant.id}) already transitioned this run — skipping")
            return None

        logger.info(f"Plant {plant.name} ready for transition: {old_stage.value} → {new_stage.value}")
        with self.store.atomic() as tx:
            tx.update_plant_stage(plant.id, new_stage.value, now)
            if self.on_stage_change:
                self.on_stage_change(tx, plant, old_stage, new_stage)
            created = [
                tx.create_task(data)
                for data in self.templates.generate_tasks_for_stage(plant, new_stage, now)
            ]

        # The new stage starts its clock now
        progress = self.tracker.compute_progress(new_stage, now, now)
        celebration = (
            self.tracker.stage_celebration(plant.name, progress)
            or f"🌱 {plant.name} has progressed to {new_stage.value} stage!"
        )

        return TransitionRecord(
            plant_id=plant.id,
            plant_name=plant.name,
            old_stage=old_stage,
            new_stage=new_stage,
            transition_date=now,
            triggered_tasks=tuple(created),
            celebration_message=celebration,
        )

    def run(self, plants: list, now: datetime) -> tuple[list[TransitionRecord], list[EntityError]]:
        """Process every plant; one bad plant never stops the loop."""
        self.begin_run()
        records: list[TransitionRecord] = []
        errors: list[EntityError] = []
        for plant in plants:
            try:
                record = self.transition_plant(plant, now)
                if record:
                    records.append(record)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.error(f"Error processing plant {plant.name} ({plant.id}): {e}", exc_info=True)
                errors.append(EntityError("plant", str(plant.id), "transition", str(e)))

        logger.info(f"Processed {len(records)} growth stage transitions across {len(plants)} plants")
        return records, errors
