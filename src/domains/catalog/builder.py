"""Composition of plan and workout slots into flat row specs.

The builder walks plan slots (or an existing plan / workout being cloned),
resolves every workout and exercise reference through the resolver and
emits plain dicts ready for bulk insert. It never writes junction rows
itself; new Workout/Exercise/Video rows are staged by the resolver.
"""
from dataclasses import dataclass, field

import structlog

from src.core.models import Owner
from src.domains.catalog.models import (
    ContentKind,
    Plan,
    Workout,
    WorkoutExercise,
)
from src.domains.catalog.resolver import OwnershipResolver
from src.domains.catalog.schemas import (
    ExerciseSlot,
    InlineWorkout,
    PlainSlot,
    PlanSlot,
    RestDay,
    RestSlot,
    StaggeredSlot,
    SupersetSlot,
    WorkoutRef,
)

logger = structlog.get_logger(__name__)

# Columns copied verbatim when a workout's slots are replayed into a clone
_PRESCRIPTION_COLUMNS = (
    "scheme",
    "minutes",
    "seconds",
    "sets",
    "reps",
    "rest_minutes",
    "rest_seconds",
    "is_staggered",
)


@dataclass
class Composition:
    """Rows produced by one build, grouped by target table."""

    plan_workouts: list[dict] = field(default_factory=list)
    workout_exercises: list[dict] = field(default_factory=list)
    exercise_videos: list[dict] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.plan_workouts) + len(self.workout_exercises) + len(self.exercise_videos)


def _prescription(slot: RestSlot | PlainSlot | StaggeredSlot) -> dict:
    return {
        "scheme": slot.scheme,
        "minutes": slot.minutes,
        "seconds": slot.seconds,
        "sets": slot.sets,
        "reps": slot.reps,
        "rest_minutes": slot.rest_minutes,
        "rest_seconds": slot.rest_seconds,
    }


class CompositionBuilder:
    """Turns nested slots into PlanWorkout / WorkoutExercise / ExerciseVideo rows."""

    def __init__(self, resolver: OwnershipResolver):
        self.resolver = resolver
        self.repository = resolver.repository

    async def build(self, slots: list[PlanSlot], owner: Owner) -> Composition:
        """Resolve every plan slot for ``owner``.

        Plan rows carry no ``plan_id``; the writer fills it in. Rows for slots
        naming a ``plan_workout_id`` keep it as ``id`` so they overwrite the
        existing row.
        """
        composition = Composition()

        for position, slot in enumerate(slots, start=1):
            if isinstance(slot, RestDay):
                workout_id = None
            elif isinstance(slot, WorkoutRef):
                workout_id = await self._resolve_workout(slot.workout_id, owner, composition)
            elif isinstance(slot, InlineWorkout):
                workout_id = await self._compose_inline(slot, owner, composition)
            else:
                raise TypeError(f"Unknown plan slot: {type(slot).__name__}")

            composition.plan_workouts.append(self._plan_row(slot, workout_id, position))

        self._collect_links(composition)
        logger.debug(
            "composition_built",
            plan_workouts=len(composition.plan_workouts),
            workout_exercises=len(composition.workout_exercises),
            exercise_videos=len(composition.exercise_videos),
        )
        return composition

    async def replay_workout(self, source: Workout, target_id: int, owner: Owner) -> Composition:
        """Rows that rebuild ``source``'s slots inside the clone ``target_id``."""
        composition = Composition()
        await self._replay_rows(source.exercises, target_id, owner, composition)
        self._collect_links(composition)
        return composition

    def slots_from_plan(self, plan: Plan) -> list[PlanSlot]:
        """Existing plan rows expressed as request slots, for cloning."""
        slots: list[PlanSlot] = []
        for pw in plan.plan_workouts:
            common = {
                "phase": pw.phase,
                "week": pw.week,
                "day": pw.day,
                "sort": pw.sort_index,
            }
            if pw.is_rest or pw.workout_id is None:
                slots.append(RestDay(is_rest=True, **common))
            else:
                slots.append(WorkoutRef(is_rest=False, workout_id=pw.workout_id, **common))
        return slots

    async def _resolve_workout(self, workout_id: int, owner: Owner, composition: Composition) -> int:
        resolution = await self.resolver.resolve(ContentKind.WORKOUT, workout_id, owner)
        if resolution.created:
            # A new clone is empty until the source's slots are replayed into it
            await self._replay_rows(resolution.source.exercises, resolution.entity_id, owner, composition)
        return resolution.entity_id

    async def _compose_inline(self, slot: InlineWorkout, owner: Owner, composition: Composition) -> int:
        workout = await self.repository.stage(
            Workout(
                title=slot.workout.title,
                description=slot.workout.description,
                owner_id=owner.owner_id,
                owner_role=owner.owner_role,
            )
        )
        await self._emit_exercise_slots(slot.workout.exercises, workout.id, owner, composition)
        return workout.id

    async def _emit_exercise_slots(
        self,
        slots: list[ExerciseSlot],
        workout_id: int,
        owner: Owner,
        composition: Composition,
    ) -> None:
        sort_index = 0
        group = 0

        for slot in slots:
            if isinstance(slot, SupersetSlot):
                group += 1
                for member in slot.members:
                    sort_index += 1
                    composition.workout_exercises.append(
                        await self._exercise_row(member, workout_id, owner, sort_index, group)
                    )
            elif isinstance(slot, RestSlot):
                sort_index += 1
                composition.workout_exercises.append(
                    {
                        "workout_id": workout_id,
                        "exercise_id": None,
                        "is_rest": True,
                        **_prescription(slot),
                        "is_staggered": False,
                        "stagger_schedule": None,
                        "superset_group": None,
                        "sort_index": sort_index,
                    }
                )
            elif isinstance(slot, (PlainSlot, StaggeredSlot)):
                sort_index += 1
                composition.workout_exercises.append(
                    await self._exercise_row(slot, workout_id, owner, sort_index, None)
                )
            else:
                raise TypeError(f"Unknown exercise slot: {type(slot).__name__}")

    async def _exercise_row(
        self,
        slot: PlainSlot | StaggeredSlot,
        workout_id: int,
        owner: Owner,
        sort_index: int,
        group: int | None,
    ) -> dict:
        resolution = await self.resolver.resolve(ContentKind.EXERCISE, slot.exercise_id, owner)
        staggered = isinstance(slot, StaggeredSlot)
        return {
            "workout_id": workout_id,
            "exercise_id": resolution.entity_id,
            "is_rest": False,
            **_prescription(slot),
            "is_staggered": staggered,
            "stagger_schedule": slot.stagger_schedule if staggered else None,
            "superset_group": group,
            "sort_index": sort_index,
        }

    async def _replay_rows(
        self,
        rows: list[WorkoutExercise],
        workout_id: int,
        owner: Owner,
        composition: Composition,
    ) -> None:
        groups: dict[int, int] = {}

        for sort_index, row in enumerate(rows, start=1):
            group = None
            if row.superset_group is not None:
                # Renumber from 1 in traversal order
                group = groups.setdefault(row.superset_group, len(groups) + 1)

            exercise_id = None
            if not row.is_rest and row.exercise_id is not None:
                resolution = await self.resolver.resolve(ContentKind.EXERCISE, row.exercise_id, owner)
                exercise_id = resolution.entity_id

            replayed = {column: getattr(row, column) for column in _PRESCRIPTION_COLUMNS}
            composition.workout_exercises.append(
                {
                    "workout_id": workout_id,
                    "exercise_id": exercise_id,
                    "is_rest": exercise_id is None,
                    **replayed,
                    "stagger_schedule": [dict(entry) for entry in row.stagger_schedule]
                    if row.stagger_schedule
                    else None,
                    "superset_group": group,
                    "sort_index": sort_index,
                }
            )

    def _plan_row(self, slot: PlanSlot, workout_id: int | None, position: int) -> dict:
        row = {
            "workout_id": workout_id,
            "is_rest": workout_id is None,
            "phase": slot.phase,
            "week": slot.week,
            "day": slot.day,
            "sort_index": slot.sort if slot.sort is not None else position,
        }
        if slot.plan_workout_id is not None:
            row["id"] = slot.plan_workout_id
        return row

    def _collect_links(self, composition: Composition) -> None:
        composition.exercise_videos.extend(self.resolver.staged_links)
        self.resolver.staged_links.clear()
