"""Tests for CompositionBuilder - slot walking and row emission."""

import pytest
from pydantic import TypeAdapter
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.models import Owner
from src.domains.catalog.builder import CompositionBuilder
from src.domains.catalog.memo import CloneMemo
from src.domains.catalog.models import ContentKind, Exercise, ExerciseScheme, Workout
from src.domains.catalog.repository import ContentRepository
from src.domains.catalog.resolver import OwnershipResolver
from src.domains.catalog.schemas import PlanSlot

plan_slots = TypeAdapter(list[PlanSlot])


@pytest.fixture
def builder(db_session: AsyncSession, fake_storage) -> CompositionBuilder:
    """Builder over a fresh resolver."""
    return CompositionBuilder(OwnershipResolver(ContentRepository(db_session), CloneMemo(), fake_storage))


def sets(exercise_id: int, set_count: int = 3, reps: int = 10) -> dict:
    return {"id": exercise_id, "is_rest": False, "type": "Sets", "set": set_count, "rep": reps}


def inline(*exercises: dict, **slot) -> dict:
    return {"is_rest": False, "workout": {"title": "Inline", "exercises": list(exercises)}, **slot}


class TestPlanRows:
    """PlanWorkout row emission."""

    async def test_rest_day_has_no_workout(self, builder, coach: Owner):
        composition = await builder.build(plan_slots.validate_python([{"is_rest": True, "week": 1}]), coach)

        assert composition.plan_workouts == [
            {"workout_id": None, "is_rest": True, "phase": None, "week": 1, "day": None, "sort_index": 1}
        ]
        assert composition.workout_exercises == []

    async def test_sort_defaults_to_position(self, builder, catalog, coach: Owner):
        workout = await catalog.workout(coach)
        slots = plan_slots.validate_python(
            [
                {"is_rest": False, "workout_id": workout.id},
                {"is_rest": True, "sort": 9},
                {"is_rest": False, "workout_id": workout.id},
            ]
        )

        composition = await builder.build(slots, coach)

        assert [row["sort_index"] for row in composition.plan_workouts] == [1, 9, 3]

    async def test_plan_workout_id_becomes_row_id(self, builder, coach: Owner):
        slots = plan_slots.validate_python([{"is_rest": True, "plan_workout_id": 17}])

        composition = await builder.build(slots, coach)

        assert composition.plan_workouts[0]["id"] == 17

    async def test_owned_workout_emits_only_the_junction_row(self, builder, catalog, coach: Owner):
        exercise = await catalog.exercise(coach)
        workout = await catalog.workout(
            coach,
            rows=[{"exercise_id": exercise.id, "scheme": ExerciseScheme.SETS, "sets": 3, "reps": 5}],
        )

        composition = await builder.build(
            plan_slots.validate_python([{"is_rest": False, "workout_id": workout.id}]), coach
        )

        assert composition.plan_workouts[0]["workout_id"] == workout.id
        assert composition.plan_workouts[0]["is_rest"] is False
        assert composition.workout_exercises == []
        assert await catalog.count(Workout) == 1


class TestInlineWorkouts:
    """Inline workouts are staged for the caller and their slots resolved."""

    async def test_superset_members_share_a_group(self, builder, catalog, coach: Owner):
        a = await catalog.exercise(coach, title="A")
        b = await catalog.exercise(coach, title="B")
        c = await catalog.exercise(coach, title="C")
        d = await catalog.exercise(coach, title="D")

        composition = await builder.build(
            plan_slots.validate_python(
                [inline(sets(a.id), {"superset": [sets(b.id), sets(c.id), sets(d.id)]})]
            ),
            coach,
        )

        rows = composition.workout_exercises
        assert [row["exercise_id"] for row in rows] == [a.id, b.id, c.id, d.id]
        assert [row["sort_index"] for row in rows] == [1, 2, 3, 4]
        assert [row["superset_group"] for row in rows] == [None, 1, 1, 1]

    async def test_each_superset_gets_the_next_group(self, builder, catalog, coach: Owner):
        a = await catalog.exercise(coach, title="A")
        b = await catalog.exercise(coach, title="B")

        composition = await builder.build(
            plan_slots.validate_python(
                [inline({"superset": [sets(a.id), sets(b.id)]}, {"superset": [sets(b.id), sets(a.id)]})]
            ),
            coach,
        )

        assert [row["superset_group"] for row in composition.workout_exercises] == [1, 1, 2, 2]

    async def test_rest_and_staggered_rows(self, builder, catalog, coach: Owner):
        a = await catalog.exercise(coach)

        composition = await builder.build(
            plan_slots.validate_python(
                [
                    inline(
                        {"id": a.id, "type": "Sets", "set": 2, "is_stag": True, "repsArray": [10, 8]},
                        {"is_rest": True, "rest_min": 1, "rest_sec": 30},
                    )
                ]
            ),
            coach,
        )

        staggered, rest = composition.workout_exercises
        assert staggered["is_staggered"] is True
        assert staggered["stagger_schedule"] == [{"set": 1, "reps": 10}, {"set": 2, "reps": 8}]
        assert staggered["sets"] == 2
        assert rest["is_rest"] is True and rest["exercise_id"] is None
        assert (rest["rest_minutes"], rest["rest_seconds"]) == (1, 30)

    async def test_inline_workout_belongs_to_caller(self, builder, catalog, db_session, coach: Owner):
        a = await catalog.exercise(coach)

        composition = await builder.build(plan_slots.validate_python([inline(sets(a.id))]), coach)

        workout_id = composition.plan_workouts[0]["workout_id"]
        workout = await ContentRepository(db_session).get(ContentKind.WORKOUT, workout_id)
        assert workout.title == "Inline"
        assert workout.owner_id == coach.owner_id
        assert workout.parent_id is None
        assert composition.workout_exercises[0]["workout_id"] == workout_id

    async def test_foreign_exercise_used_twice_is_cloned_once(
        self, builder, catalog, coach: Owner, other_coach: Owner
    ):
        """Idempotent reuse across two workouts of one plan."""
        foreign = await catalog.exercise(other_coach)

        composition = await builder.build(
            plan_slots.validate_python([inline(sets(foreign.id)), inline(sets(foreign.id, 5, 5))]),
            coach,
        )

        clone_ids = {row["exercise_id"] for row in composition.workout_exercises}
        assert len(clone_ids) == 1
        assert foreign.id not in clone_ids
        assert await catalog.count(Exercise, Exercise.parent_id == foreign.id) == 1

    async def test_cloned_exercise_video_link_is_collected(
        self, builder, catalog, coach: Owner, other_coach: Owner
    ):
        video = await catalog.video(other_coach)
        foreign = await catalog.exercise(other_coach, video=video)

        composition = await builder.build(plan_slots.validate_python([inline(sets(foreign.id))]), coach)

        assert len(composition.exercise_videos) == 1
        assert composition.exercise_videos[0]["exercise_id"] == composition.workout_exercises[0]["exercise_id"]
        assert builder.resolver.staged_links == []


class TestWorkoutReplay:
    """A freshly cloned workout has its source rows replayed."""

    async def test_foreign_workout_rows_are_replayed(self, builder, foreign_workout, coach: Owner):
        source = foreign_workout["workout"]

        composition = await builder.build(
            plan_slots.validate_python([{"is_rest": False, "workout_id": source.id}]), coach
        )

        clone_id = composition.plan_workouts[0]["workout_id"]
        assert clone_id != source.id
        rows = composition.workout_exercises
        assert len(rows) == 2
        assert all(row["workout_id"] == clone_id for row in rows)
        assert {row["exercise_id"] for row in rows}.isdisjoint(
            {foreign_workout["squat"].id, foreign_workout["lunge"].id}
        )
        assert (rows[0]["sets"], rows[0]["reps"], rows[0]["rest_seconds"]) == (3, 8, 90)
        assert (rows[1]["minutes"], rows[1]["seconds"]) == (1, 30)
        assert len(composition.exercise_videos) == 1

    async def test_superset_groups_are_renumbered(self, builder, catalog, coach: Owner, other_coach: Owner):
        a = await catalog.exercise(other_coach, title="A")
        b = await catalog.exercise(other_coach, title="B")
        source = await catalog.workout(
            other_coach,
            rows=[
                {"exercise_id": a.id, "scheme": ExerciseScheme.SETS, "sets": 3, "reps": 10, "superset_group": 7},
                {"exercise_id": b.id, "scheme": ExerciseScheme.SETS, "sets": 3, "reps": 10, "superset_group": 7},
                {"exercise_id": None, "rest_minutes": 2},
                {"exercise_id": a.id, "scheme": ExerciseScheme.SETS, "sets": 2, "reps": 6, "superset_group": 3},
                {"exercise_id": b.id, "scheme": ExerciseScheme.SETS, "sets": 2, "reps": 6, "superset_group": 3},
            ],
        )

        composition = await builder.build(
            plan_slots.validate_python([{"is_rest": False, "workout_id": source.id}]), coach
        )

        rows = composition.workout_exercises
        assert [row["superset_group"] for row in rows] == [1, 1, None, 2, 2]
        assert [row["sort_index"] for row in rows] == [1, 2, 3, 4, 5]
        assert rows[2]["is_rest"] is True and rows[2]["exercise_id"] is None
        # Two exercises, each cloned once despite appearing twice
        assert len({row["exercise_id"] for row in rows if row["exercise_id"]}) == 2
        assert await catalog.count(Exercise, Exercise.owner_id == coach.owner_id) == 2

    async def test_stagger_schedule_is_copied(self, builder, catalog, coach: Owner, other_coach: Owner):
        a = await catalog.exercise(other_coach)
        schedule = [{"set": 1, "reps": 12}, {"set": 2, "reps": 10}]
        source = await catalog.workout(
            other_coach,
            rows=[
                {
                    "exercise_id": a.id,
                    "scheme": ExerciseScheme.SETS,
                    "sets": 2,
                    "is_staggered": True,
                    "stagger_schedule": schedule,
                }
            ],
        )

        composition = await builder.build(
            plan_slots.validate_python([{"is_rest": False, "workout_id": source.id}]), coach
        )

        row = composition.workout_exercises[0]
        assert row["is_staggered"] is True
        assert row["stagger_schedule"] == schedule

    async def test_workout_referenced_twice_is_replayed_once(self, builder, foreign_workout, coach: Owner):
        source_id = foreign_workout["workout"].id

        composition = await builder.build(
            plan_slots.validate_python(
                [
                    {"is_rest": False, "workout_id": source_id, "day": 1},
                    {"is_rest": False, "workout_id": source_id, "day": 3},
                ]
            ),
            coach,
        )

        first, second = composition.plan_workouts
        assert first["workout_id"] == second["workout_id"]
        assert len(composition.workout_exercises) == 2

    async def test_replay_workout_into_target(self, builder, db_session, foreign_workout, coach: Owner):
        source = await ContentRepository(db_session).get_workout_graph(foreign_workout["workout"].id)

        composition = await builder.replay_workout(source, 999, coach)

        assert [row["workout_id"] for row in composition.workout_exercises] == [999, 999]
        assert composition.plan_workouts == []
        assert len(composition) == 3
