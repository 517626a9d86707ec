from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from growstage.core.milestones import MilestoneTracker, stage_clock_origin
from growstage.core.stages import GrowthStage, StageModel, TaskType

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def tracker(stage_model):
    return MilestoneTracker(stage_model, streak_threshold=5)


def test_vegetative_halfway_is_not_ready(tracker):
    progress = tracker.compute_progress("vegetative", NOW - timedelta(days=15), NOW)
    assert progress.progress_percentage == 50.0
    assert progress.days_in_stage == 15
    assert progress.expected_days_in_stage == 30
    assert progress.is_ready_for_transition is False
    assert progress.reasons == ()


def test_vegetative_past_duration_is_ready_for_pre_flower(tracker):
    progress = tracker.compute_progress("vegetative", date(2024, 4, 27), NOW)
    assert progress.progress_percentage == 100.0
    assert progress.days_in_stage == 30
    assert progress.is_ready_for_transition is True
    assert progress.next_stage == GrowthStage.PRE_FLOWER
    assert progress.reasons == (
        "Plant is 100% through vegetative stage",
        "Ready to transition to pre_flower stage",
    )


def test_ready_at_eighty_percent(tracker):
    assert not tracker.compute_progress("vegetative", NOW - timedelta(days=23), NOW).is_ready_for_transition
    assert tracker.compute_progress("vegetative", NOW - timedelta(days=24), NOW).is_ready_for_transition


def test_terminal_stage_is_never_ready(tracker):
    progress = tracker.compute_progress("curing", NOW - timedelta(days=60), NOW)
    assert progress.progress_percentage == 100.0
    assert progress.next_stage is None
    assert progress.is_ready_for_transition is False


def test_future_origin_counts_as_day_zero(tracker):
    progress = tracker.compute_progress("seedling", NOW + timedelta(days=3), NOW)
    assert progress.days_in_stage == 0
    assert progress.progress_percentage == 0.0


def test_progress_is_monotonic_in_time(tracker):
    origin = NOW - timedelta(days=5)
    values = [
        tracker.compute_progress("flowering", origin, NOW + timedelta(hours=6 * i)).progress_percentage
        for i in range(300)
    ]
    assert values == sorted(values)
    assert values[-1] == 100.0


def test_zero_duration_stage_reads_complete():
    durations = {stage: 10 for stage in GrowthStage}
    durations[GrowthStage.HARVEST] = 0
    model = StageModel(durations, {stage: {"watering": 0.5} for stage in GrowthStage})
    progress = MilestoneTracker(model).compute_progress("harvest", NOW, NOW)
    assert progress.progress_percentage == 100.0
    assert progress.is_ready_for_transition is True
    assert progress.next_stage == GrowthStage.CURING


def test_stage_specific_reasons(tracker):
    late = tracker.compute_progress("late_flowering", NOW - timedelta(days=10), NOW)
    assert "Approaching harvest window - monitor trichomes closely" in late.reasons

    harvest = tracker.compute_progress("harvest", NOW, NOW)
    assert "Harvest milestone reached - celebrate your grow!" in harvest.reasons


def test_clock_origin_prefers_stage_start():
    started = datetime(2024, 5, 20, tzinfo=timezone.utc)
    plant = SimpleNamespace(planted_date=date(2024, 1, 1), stage_started_at=started)
    assert stage_clock_origin(plant) == started
    plant.stage_started_at = None
    assert stage_clock_origin(plant) == date(2024, 1, 1)


def test_identical_inputs_identical_progress(tracker):
    origin = NOW - timedelta(days=40)
    assert tracker.compute_progress("flowering", origin, NOW) == tracker.compute_progress("flowering", origin, NOW)


class TestCelebrations:
    def test_ready_and_flowering_halfway(self, tracker):
        progress = tracker.compute_progress("flowering", NOW - timedelta(days=50), NOW)
        assert tracker.celebrations("Blue Dream", progress) == [
            "🎉 Blue Dream is ready to transition to late_flowering stage!",
            "🌸 Blue Dream is halfway through flowering - buds are developing nicely!",
        ]

    def test_seventy_five_percent(self, tracker):
        progress = tracker.compute_progress("vegetative", NOW - timedelta(days=23), NOW)
        assert tracker.celebrations("OG Kush", progress) == ["🌟 OG Kush is 75% through vegetative stage!"]

    def test_nothing_early_in_stage(self, tracker):
        progress = tracker.compute_progress("seedling", NOW - timedelta(days=2), NOW)
        assert tracker.celebrations("OG Kush", progress) == []

    def test_stage_celebration_only_for_special_stages(self, tracker):
        harvest = tracker.compute_progress("harvest", NOW, NOW)
        assert tracker.stage_celebration("Haze", harvest) == (
            "🏆 Harvest time for Haze - congratulations on your successful grow!"
        )
        curing = tracker.compute_progress("curing", NOW - timedelta(days=18), NOW)
        assert tracker.stage_celebration("Haze", curing) == "✨ Haze is almost ready - curing is nearly complete!"
        vegetative = tracker.compute_progress("vegetative", NOW, NOW)
        assert tracker.stage_celebration("Haze", vegetative) is None

    def test_task_completion(self, tracker):
        completed = [
            SimpleNamespace(task_type=TaskType.HARVEST.value, title="Harvest Haze", priority="high"),
            SimpleNamespace(task_type=TaskType.TRANSPLANT.value, title="Transplant Haze", priority="medium"),
            SimpleNamespace(task_type=TaskType.INSPECTION.value, title="Inspect Haze", priority="critical"),
            SimpleNamespace(task_type=TaskType.INSPECTION.value, title="Inspect Haze", priority="low"),
        ]
        messages = tracker.task_completion_celebrations(completed, completed_this_week=4)
        assert messages == [
            "🎊 Harvest completed for Harvest Haze! Time to celebrate your hard work!",
            "🌱 Successfully transplanted! Your plant has more room to grow!",
            "✅ Critical inspection completed - great job staying on top of plant health!",
        ]

    def test_weekly_streak(self, tracker):
        messages = tracker.task_completion_celebrations([], completed_this_week=6)
        assert messages == ["🔥 Amazing! You've completed 6 tasks this week - you're on fire!"]
