"""Read access to catalog content and ownership lookups."""
from datetime import date

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.models import Owner
from src.domains.catalog.models import (
    ContentKind,
    Exercise,
    Plan,
    PlanAssignment,
    PlanWorkout,
    Video,
    Workout,
    WorkoutExercise,
)

MODELS: dict[ContentKind, type[Video] | type[Exercise] | type[Workout]] = {
    ContentKind.VIDEO: Video,
    ContentKind.EXERCISE: Exercise,
    ContentKind.WORKOUT: Workout,
}


class ContentRepository:
    """Async lookups on the active session.

    New rows are staged on the same session, so they become visible to later
    lookups in the operation and disappear with it on rollback.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(
        self,
        kind: ContentKind,
        entity_id: int,
        include_deleted: bool = False,
        refresh: bool = False,
    ) -> Video | Exercise | Workout | None:
        """Get a video, exercise or workout by ID (live rows only by default)."""
        model = MODELS[kind]
        query = select(model).where(model.id == entity_id)
        if not include_deleted:
            query = query.where(model.deleted_at.is_(None))
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_owned_clone(
        self,
        kind: ContentKind,
        source_id: int,
        owner: Owner,
    ) -> Video | Exercise | Workout | None:
        """Live clone of ``source_id`` held by ``owner``, if any."""
        model = MODELS[kind]
        result = await self.db.execute(
            select(model)
            .where(
                model.parent_id == source_id,
                model.owner_id == owner.owner_id,
                model.owner_role == owner.owner_role,
                model.deleted_at.is_(None),
            )
            .order_by(model.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_plan(self, plan_id: int, refresh: bool = False) -> Plan | None:
        """Get a live plan with its full graph loaded.

        Pass ``refresh`` after rows were written behind the ORM's back (bulk
        inserts) so already-loaded collections are replaced.
        """
        query = (
            select(Plan)
            .where(Plan.id == plan_id, Plan.deleted_at.is_(None))
            .options(
                selectinload(Plan.plan_workouts)
                .selectinload(PlanWorkout.workout)
                .selectinload(Workout.exercises)
                .joinedload(WorkoutExercise.exercise)
                .selectinload(Exercise.videos)
            )
        )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_workout_graph(self, workout_id: int, refresh: bool = False) -> Workout | None:
        """Get a live workout with its exercise slots, exercises and videos."""
        query = (
            select(Workout)
            .where(Workout.id == workout_id, Workout.deleted_at.is_(None))
            .options(
                selectinload(Workout.exercises)
                .joinedload(WorkoutExercise.exercise)
                .selectinload(Exercise.videos)
            )
        )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def plan_workout_ids(self, plan_id: int) -> set[int]:
        """IDs of the slots currently attached to a plan."""
        result = await self.db.execute(
            select(PlanWorkout.id).where(PlanWorkout.plan_id == plan_id)
        )
        return set(result.scalars().all())

    async def find_overlapping_assignment(
        self,
        start_date: date,
        end_date: date,
        user_id: int | None = None,
        organization_id: int | None = None,
    ) -> PlanAssignment | None:
        """First assignment of the user/organization whose dates overlap the range."""
        query = select(PlanAssignment).where(
            or_(
                PlanAssignment.start_date.between(start_date, end_date),
                PlanAssignment.end_date.between(start_date, end_date),
                and_(
                    PlanAssignment.start_date <= start_date,
                    PlanAssignment.end_date >= end_date,
                ),
            )
        )
        if user_id is not None:
            query = query.where(PlanAssignment.user_id == user_id)
        else:
            query = query.where(PlanAssignment.organization_id == organization_id)

        result = await self.db.execute(query.order_by(PlanAssignment.start_date).limit(1))
        return result.scalar_one_or_none()

    async def stage(self, entity):
        """Add a new row to the session and flush it to obtain its ID."""
        self.db.add(entity)
        await self.db.flush()
        return entity
