"""Atomic persistence of a composed plan graph."""
from collections.abc import Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from typing import TypeVar

import structlog
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.domains.catalog.builder import Composition
from src.domains.catalog.exceptions import CloneConflictError, PersistenceFailureError
from src.domains.catalog.models import (
    CompletedWorkout,
    ExerciseVideo,
    Plan,
    PlanWorkout,
    WorkoutExercise,
)
from src.domains.catalog.repository import ContentRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _is_clone_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    # PostgreSQL names the index, SQLite lists its columns
    return "_clone_owner" in message or (
        "UNIQUE constraint failed" in message and ".parent_id" in message
    )


class GraphWriter:
    """Writes plan graphs inside one transaction on the given session."""

    def __init__(self, db: AsyncSession, repository: ContentRepository | None = None):
        self.db = db
        self.repository = repository or ContentRepository(db)
        self._rollback_hooks: list[Callable[[], Awaitable[None]]] = []

    def on_rollback(self, hook: Callable[[], Awaitable[None]]) -> None:
        """Run ``hook`` after the transaction rolls back, to undo work done outside the database."""
        self._rollback_hooks.append(hook)

    async def _rollback(self) -> None:
        await self.db.rollback()
        for hook in self._rollback_hooks:
            await hook()

    @asynccontextmanager
    async def transaction(self):
        """Commit on success, roll back on any error.

        Database errors surface as ``PersistenceFailureError`` (a duplicate
        clone as ``CloneConflictError``); other exceptions propagate unchanged.
        Rollback hooks run after every rollback.
        """
        try:
            yield self
            await self.db.commit()
        except IntegrityError as e:
            await self._rollback()
            if _is_clone_conflict(e):
                raise CloneConflictError("A clone of this content was created concurrently") from e
            raise PersistenceFailureError(f"Integrity violation: {e.orig}") from e
        except SQLAlchemyError as e:
            await self._rollback()
            raise PersistenceFailureError(f"Database error: {e}") from e
        except BaseException:
            await self._rollback()
            raise

    async def persist(
        self,
        plan: Plan,
        composition: Composition,
        deleted_ids: Iterable[int] = (),
    ) -> Plan:
        """Write the plan row, apply deletions, then the junction rows.

        Returns the plan reloaded with its full graph.
        """
        self.db.add(plan)
        await self.db.flush()

        deleted_ids = list(deleted_ids)
        if deleted_ids:
            await self.delete_plan_workouts(plan.id, deleted_ids)

        plan_rows = [{**row, "plan_id": plan.id} for row in composition.plan_workouts]
        new_rows = [row for row in plan_rows if "id" not in row]
        existing_rows = [row for row in plan_rows if "id" in row]

        await self._insert(PlanWorkout, new_rows)
        await self._upsert(PlanWorkout, existing_rows)
        await self.persist_rows(composition)

        logger.info(
            "plan_graph_persisted",
            plan_id=plan.id,
            inserted=len(new_rows),
            upserted=len(existing_rows),
            deleted=len(deleted_ids),
            workout_exercises=len(composition.workout_exercises),
            exercise_videos=len(composition.exercise_videos),
        )
        return await self.repository.get_plan(plan.id, refresh=True)

    async def persist_rows(self, composition: Composition) -> None:
        """Insert the workout-exercise and exercise-video rows of a composition."""
        await self._insert(WorkoutExercise, composition.workout_exercises)
        await self._insert(ExerciseVideo, composition.exercise_videos)

    async def delete_plan_workouts(self, plan_id: int, plan_workout_ids: list[int]) -> None:
        """Delete plan slots (scoped to the plan) and the completion logs pointing at them."""
        owned = select(PlanWorkout.id).where(
            PlanWorkout.plan_id == plan_id,
            PlanWorkout.id.in_(plan_workout_ids),
        )
        await self.db.execute(
            delete(CompletedWorkout).where(CompletedWorkout.plan_workout_id.in_(owned))
        )
        await self.db.execute(
            delete(PlanWorkout).where(
                PlanWorkout.plan_id == plan_id,
                PlanWorkout.id.in_(plan_workout_ids),
            )
        )

    async def _insert(self, model, rows: list[dict]) -> None:
        if not rows:
            return
        await self.db.execute(insert(model), rows)

    async def _upsert(self, model, rows: list[dict]) -> None:
        """Insert-or-replace by primary key."""
        if not rows:
            return

        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        else:
            # Rows were checked to exist; a bulk UPDATE by primary key suffices
            await self.db.execute(update(model), rows)
            return

        stmt = dialect_insert(model.__table__).values(rows)
        replaced = {column: stmt.excluded[column] for column in rows[0] if column != "id"}
        replaced["updated_at"] = func.now()
        await self.db.execute(
            stmt.on_conflict_do_update(index_elements=["id"], set_=replaced)
        )


async def with_clone_retry(operation: str, attempt: Callable[[], Awaitable[T]]) -> T:
    """Run ``attempt``, running it again when a concurrent clone wins the race.

    Each attempt must open its own transaction and memo.
    """
    attempts = 1 + max(settings.CLONE_RETRY_ATTEMPTS, 0)
    for number in range(1, attempts + 1):
        try:
            return await attempt()
        except CloneConflictError:
            if number == attempts:
                raise
            logger.warning("clone_conflict_retry", operation=operation, attempt=number)
