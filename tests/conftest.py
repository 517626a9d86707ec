"""
Shared test fixtures for the GrowStage test suite.

Provides:
- A SQLite-backed PlantStore on a fresh tmp_path database per test
- The packaged stage model, task templates and health analyzer
- A thread-safe in-memory store for multi-worker batch tests
- Helpers for seeding plants, tasks and metrics snapshots
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from growstage.core.health import HealthAnalyzer
from growstage.core.memory import PlantStore
from growstage.core.stages import StageModel
from growstage.core.templates import StageTaskTemplates
from growstage.models import Base, create_session_factory

# Keep test output clean
logging.getLogger("growstage").setLevel(logging.WARNING)


def days_ago(now: datetime, days: int):
    """Planting date `days` calendar days before `now`."""
    return (now - timedelta(days=days)).date()


# ========================== Database Fixtures ==============================


@pytest.fixture()
def session_factory(tmp_path):
    """Fresh SQLite database with all tables created."""
    engine, SessionFactory = create_session_factory(f"sqlite:///{tmp_path / 'growstage.db'}")
    Base.metadata.create_all(bind=engine)
    yield SessionFactory
    engine.dispose()


@pytest.fixture()
def store(session_factory):
    return PlantStore(session_factory)


@pytest.fixture()
def now():
    return datetime.now(timezone.utc).replace(microsecond=0)


# ========================== Engine Fixtures ================================


@pytest.fixture()
def stage_model():
    return StageModel.default()


@pytest.fixture()
def templates():
    return StageTaskTemplates()


@pytest.fixture()
def health_analyzer():
    return HealthAnalyzer()


# ========================== Seeding Helpers ================================


@pytest.fixture()
def make_plant(store, now):
    """Create a plant `age_days` into `stage` (counted from planting)."""

    def _make(name="Blue Dream", stage="vegetative", age_days=10, **extra):
        data = {
            "name": name,
            "user_id": "user-1",
            "growth_stage": stage,
            "planted_date": days_ago(now, age_days),
            "strain_type": "hybrid",
        }
        data.update(extra)
        return store.create_plant(data)

    return _make


@pytest.fixture()
def make_task(store, now):
    def _make(plant, task_type="watering", priority="medium", due_in_days=3, **extra):
        data = {
            "plant_id": plant.id,
            "user_id": plant.user_id,
            "title": f"{task_type.title()} {plant.name}",
            "task_type": task_type,
            "priority": priority,
            "due_date": now + timedelta(days=due_in_days),
            "status": "pending",
        }
        data.update(extra)
        return store.create_task(data)

    return _make


# ========================== In-memory Store ================================


class FakeTransaction:
    """Buffers writes; applied by FakeStore only when the block exits cleanly."""

    def __init__(self, store):
        self.store = store
        self.ops = []

    def update_plant_stage(self, plant_id, new_stage, changed_at):
        if plant_id in self.store.fail_writes_for:
            raise RuntimeError("database is locked")
        self.ops.append(("stage", plant_id, new_stage, changed_at))

    def create_task(self, data):
        if data["plant_id"] in self.store.fail_writes_for:
            raise RuntimeError("database is locked")
        task = SimpleNamespace(**{"id": uuid.uuid4(), "completed_at": None, "updated_at": None, "source": "user", **data})
        self.ops.append(("create", task))
        return task

    def update_task(self, task_id, mutator):
        task = self.store.tasks[task_id]
        if task.plant_id in self.store.fail_writes_for:
            raise RuntimeError("database is locked")
        self.ops.append(("update", task_id, mutator))
        return task

    def find_pending_task(self, plant_id, title):
        with self.store.lock:
            for task in self.store.tasks.values():
                if task.plant_id == plant_id and task.status == "pending" and task.title == title:
                    return copy.copy(task)
        return None


class FakeStore:
    """Thread-safe in-memory record store and metrics provider."""

    def __init__(self):
        self.lock = threading.Lock()
        self.plants = {}
        self.tasks = {}
        self.snapshots = {}
        self.fail_writes_for = set()
        self.commits = 0
        self.task_updates = 0

    def add_plant(self, now, name, stage="seedling", age_days=13, **extra):
        plant = SimpleNamespace(
            id=uuid.uuid4(),
            name=name,
            user_id="user-1",
            growth_stage=stage,
            planted_date=days_ago(now, age_days),
            stage_started_at=None,
            strain_type="unknown",
            is_active=True,
        )
        for key, value in extra.items():
            setattr(plant, key, value)
        self.plants[plant.id] = plant
        return plant

    def add_task(self, plant, task_type="watering", priority="medium", due_date=None, **extra):
        task = SimpleNamespace(
            id=uuid.uuid4(),
            plant_id=plant.id,
            user_id=plant.user_id,
            title=f"{task_type} {plant.name}",
            task_type=task_type,
            priority=priority,
            status="pending",
            due_date=due_date,
            source="user",
            completed_at=None,
            updated_at=None,
        )
        for key, value in extra.items():
            setattr(task, key, value)
        self.tasks[task.id] = task
        return task

    def get_active_plants(self):
        with self.lock:
            return [copy.copy(p) for p in self.plants.values() if p.is_active]

    def get_plant(self, plant_id):
        with self.lock:
            plant = self.plants.get(plant_id)
            return copy.copy(plant) if plant else None

    def get_pending_tasks(self, plant_id):
        with self.lock:
            return [
                copy.copy(t) for t in self.tasks.values()
                if t.plant_id == plant_id and t.status == "pending"
            ]

    def get_completed_tasks_since(self, plant_id, since):
        with self.lock:
            return [
                copy.copy(t) for t in self.tasks.values()
                if t.plant_id == plant_id and t.status == "completed" and t.updated_at and t.updated_at >= since
            ]

    def get_latest_snapshot(self, plant_id):
        return self.snapshots.get(plant_id)

    @contextmanager
    def atomic(self):
        tx = FakeTransaction(self)
        yield tx
        with self.lock:
            for op in tx.ops:
                if op[0] == "stage":
                    _, plant_id, new_stage, changed_at = op
                    self.plants[plant_id].growth_stage = new_stage
                    self.plants[plant_id].stage_started_at = changed_at
                elif op[0] == "create":
                    self.tasks[op[1].id] = op[1]
                else:
                    _, task_id, mutator = op
                    mutator(self.tasks[task_id])
                    self.task_updates += 1
            self.commits += 1


@pytest.fixture()
def fake_store():
    return FakeStore()


def snapshot(**readings):
    """Metrics snapshot with every reading absent unless given."""
    fields = {
        "health_percentage": None,
        "next_watering_days": None,
        "next_feeding_days": None,
        "ph_level": None,
        "temperature": None,
        "vpd": None,
        "vpd_optimal": None,
    }
    fields.update(readings)
    return SimpleNamespace(**fields)
