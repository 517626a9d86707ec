"""GrowStage Memory — record store and metrics provider over SQLAlchemy."""

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from growstage.models.metrics import PlantMetrics
from growstage.models.plant import Plant
from growstage.models.task import Task

logger = logging.getLogger("growstage.memory")


class StoreTransaction:
    """Writes bound to one session. Committed or rolled back as a unit."""

    def __init__(self, session: Session):
        self.session = session

    def update_plant_stage(self, plant_id: uuid.UUID, new_stage: str, changed_at: datetime) -> Plant:
        plant = self.session.get(Plant, plant_id)
        if plant is None:
            raise LookupError(f"Plant {plant_id} not found")
        plant.growth_stage = new_stage
        plant.stage_started_at = changed_at
        plant.updated_at = datetime.now(timezone.utc)
        return plant

    def create_task(self, data: dict) -> Task:
        task = Task(**data)
        self.session.add(task)
        return task

    def update_task(self, task_id: uuid.UUID, mutator: Callable[[Task], None]) -> Task:
        task = self.session.get(Task, task_id)
        if task is None:
            raise LookupError(f"Task {task_id} not found")
        mutator(task)
        task.updated_at = datetime.now(timezone.utc)
        return task

    def find_pending_task(self, plant_id: uuid.UUID, title: str) -> Task | None:
        return self.session.scalars(
            select(Task).where(
                Task.plant_id == plant_id,
                Task.status == "pending",
                Task.title == title,
            )
        ).first()


class PlantStore:
    """Database operations for GrowStage.

    All persistence goes through this class. Reads return detached rows.
    Also serves as the default metrics provider.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _session(self) -> Session:
        return self.session_factory()

    @contextmanager
    def atomic(self) -> Iterator[StoreTransaction]:
        """Run writes in one transaction; rollback on any exception."""
        with self._session() as session:
            tx = StoreTransaction(session)
            try:
                yield tx
                session.flush()
                # Detach everything the transaction touched
                touched = list(session.identity_map.values())
                session.commit()
            except Exception:
                session.rollback()
                raise
            for obj in touched:
                session.expunge(obj)

    # ── Plant operations ──────────────────────────────────────────────────────

    def create_plant(self, data: dict) -> Plant:
        with self._session() as session:
            plant = Plant(**data)
            session.add(plant)
            session.commit()
            session.refresh(plant)
            session.expunge(plant)
            logger.info(f"Created plant: {plant.id} ({plant.name})")
            return plant

    def get_plant(self, plant_id: uuid.UUID) -> Plant | None:
        with self._session() as session:
            plant = session.get(Plant, plant_id)
            if plant:
                session.expunge(plant)
            return plant

    def get_active_plants(self) -> list[Plant]:
        with self._session() as session:
            plants = session.scalars(
                select(Plant).where(Plant.is_active.is_(True)).order_by(Plant.created_at)
            ).all()
            for p in plants:
                session.expunge(p)
            return list(plants)

    # ── Task operations ───────────────────────────────────────────────────────

    def create_task(self, data: dict) -> Task:
        with self.atomic() as tx:
            return tx.create_task(data)

    def get_task(self, task_id: uuid.UUID) -> Task | None:
        with self._session() as session:
            task = session.get(Task, task_id)
            if task:
                session.expunge(task)
            return task

    def get_pending_tasks(self, plant_id: uuid.UUID) -> list[Task]:
        with self._session() as session:
            tasks = session.scalars(
                select(Task)
                .where(Task.plant_id == plant_id, Task.status == "pending")
                .order_by(Task.due_date.asc())
            ).all()
            for t in tasks:
                session.expunge(t)
            return list(tasks)

    def get_completed_tasks_since(self, plant_id: uuid.UUID, since: datetime) -> list[Task]:
        with self._session() as session:
            tasks = session.scalars(
                select(Task)
                .where(
                    Task.plant_id == plant_id,
                    Task.status == "completed",
                    Task.updated_at >= since,
                )
                .order_by(Task.updated_at.desc())
            ).all()
            for t in tasks:
                session.expunge(t)
            return list(tasks)

    def complete_task(self, task_id: uuid.UUID) -> Task:
        def _complete(task: Task) -> None:
            task.status = "completed"
            task.completed_at = datetime.now(timezone.utc)

        with self.atomic() as tx:
            return tx.update_task(task_id, _complete)

    # ── Metrics operations ────────────────────────────────────────────────────

    def add_snapshot(self, data: dict) -> PlantMetrics:
        with self._session() as session:
            snapshot = PlantMetrics(**data)
            session.add(snapshot)
            session.commit()
            session.refresh(snapshot)
            session.expunge(snapshot)
            return snapshot

    def get_latest_snapshot(self, plant_id: uuid.UUID) -> PlantMetrics | None:
        with self._session() as session:
            snapshot = session.scalars(
                select(PlantMetrics)
                .where(PlantMetrics.plant_id == plant_id, PlantMetrics.is_deleted.is_(False))
                .order_by(PlantMetrics.recorded_at.desc())
                .limit(1)
            ).first()
            if snapshot:
                session.expunge(snapshot)
            return snapshot
