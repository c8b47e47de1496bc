"""Single-entity clone and delete operations for videos, exercises and workouts."""
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.models import Owner
from src.core.storage import StorageService, storage_service
from src.domains.catalog.builder import Composition, CompositionBuilder
from src.domains.catalog.exceptions import ConflictAlreadyOwnedError, NotFoundError
from src.domains.catalog.memo import CloneMemo
from src.domains.catalog.models import (
    CompletedWorkout,
    ContentKind,
    Exercise,
    ExerciseVideo,
    PlanWorkout,
    Video,
    VideoSourceKind,
    Workout,
    WorkoutExercise,
)
from src.domains.catalog.repository import ContentRepository
from src.domains.catalog.resolver import OwnershipResolver
from src.domains.catalog.writer import GraphWriter, with_clone_retry

logger = structlog.get_logger(__name__)


class CatalogService:
    """Explicit clone requests and soft deletes with their cascades.

    Unlike plan composition, an explicit clone of content the caller already
    owns (or already holds a live clone of) is refused.
    """

    def __init__(self, db: AsyncSession, storage: StorageService = storage_service):
        self.db = db
        self.storage = storage
        self.repository = ContentRepository(db)

    async def _load_live(self, kind: ContentKind, entity_id: int):
        entity = await self.repository.get(kind, entity_id)
        if entity is None:
            raise NotFoundError(kind.value, entity_id)
        return entity

    async def _ensure_cloneable(self, kind: ContentKind, source, owner: Owner) -> None:
        if source.is_owned_by(owner):
            raise ConflictAlreadyOwnedError(kind.value, source.id)
        existing = await self.repository.find_owned_clone(kind, source.id, owner)
        if existing is not None:
            raise ConflictAlreadyOwnedError(kind.value, source.id, existing.id)

    # Clone operations

    async def clone_video(self, video_id: int, owner: Owner) -> Video:
        """Clone a video (and its stored media) for ``owner``."""

        async def attempt() -> Video:
            resolver = OwnershipResolver(self.repository, CloneMemo(), self.storage)
            writer = GraphWriter(self.db, self.repository)
            writer.on_rollback(resolver.discard_copied_media)
            async with writer.transaction():
                source = await self._load_live(ContentKind.VIDEO, video_id)
                await self._ensure_cloneable(ContentKind.VIDEO, source, owner)
                clone = await resolver.clone(
                    ContentKind.VIDEO,
                    source,
                    owner,
                    title=f"{source.title} - Copy",
                )
                clone = await self.repository.get(ContentKind.VIDEO, clone.id, refresh=True)
            return clone

        clone = await with_clone_retry("clone_video", attempt)
        logger.info("video_cloned", video_id=video_id, clone_id=clone.id, owner_id=owner.owner_id)
        return clone

    async def clone_exercise(self, exercise_id: int, owner: Owner) -> Exercise:
        """Clone an exercise for ``owner``, resolving its video one level down."""

        async def attempt() -> Exercise:
            resolver = OwnershipResolver(self.repository, CloneMemo(), self.storage)
            writer = GraphWriter(self.db, self.repository)
            writer.on_rollback(resolver.discard_copied_media)
            async with writer.transaction():
                source = await self._load_live(ContentKind.EXERCISE, exercise_id)
                await self._ensure_cloneable(ContentKind.EXERCISE, source, owner)
                clone = await resolver.clone(ContentKind.EXERCISE, source, owner)
                await writer.persist_rows(Composition(exercise_videos=list(resolver.staged_links)))
                clone = await self.repository.get(ContentKind.EXERCISE, clone.id, refresh=True)
            return clone

        clone = await with_clone_retry("clone_exercise", attempt)
        logger.info("exercise_cloned", exercise_id=exercise_id, clone_id=clone.id, owner_id=owner.owner_id)
        return clone

    async def clone_workout(self, workout_id: int, owner: Owner) -> Workout:
        """Clone a workout for ``owner``; its exercises resolve like plan slots do."""

        async def attempt() -> Workout:
            resolver = OwnershipResolver(self.repository, CloneMemo(), self.storage)
            builder = CompositionBuilder(resolver)
            writer = GraphWriter(self.db, self.repository)
            writer.on_rollback(resolver.discard_copied_media)
            async with writer.transaction():
                source = await self.repository.get_workout_graph(workout_id)
                if source is None:
                    raise NotFoundError(ContentKind.WORKOUT.value, workout_id)
                await self._ensure_cloneable(ContentKind.WORKOUT, source, owner)
                clone = await resolver.clone(ContentKind.WORKOUT, source, owner)
                composition = await builder.replay_workout(source, clone.id, owner)
                await writer.persist_rows(composition)
                clone = await self.repository.get_workout_graph(clone.id, refresh=True)
            return clone

        clone = await with_clone_retry("clone_workout", attempt)
        logger.info("workout_cloned", workout_id=workout_id, clone_id=clone.id, owner_id=owner.owner_id)
        return clone

    # Delete operations

    async def delete_video(self, video_id: int) -> None:
        """Soft delete a video and unlink it from exercises.

        Stored media is removed once no other live video points at it.
        """
        writer = GraphWriter(self.db, self.repository)
        async with writer.transaction():
            video = await self._load_live(ContentKind.VIDEO, video_id)
            await self.db.execute(delete(ExerciseVideo).where(ExerciseVideo.video_id == video.id))
            video.deleted_at = datetime.now(timezone.utc)

            orphaned = []
            if video.source_kind == VideoSourceKind.FILE:
                for ref in (video.file_ref, video.thumbnail_ref):
                    if ref and not await self._media_shared(ref, video.id):
                        orphaned.append(ref)

        for ref in orphaned:
            await self.storage.delete_file(ref)
        logger.info("video_deleted", video_id=video_id, media_removed=len(orphaned))

    async def _media_shared(self, ref: str, video_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(Video.id)).where(
                Video.id != video_id,
                Video.deleted_at.is_(None),
                (Video.file_ref == ref) | (Video.thumbnail_ref == ref),
            )
        )
        return result.scalar_one() > 0

    async def delete_exercise(self, exercise_id: int) -> None:
        """Soft delete an exercise with its workout slots, completion logs and video links."""
        writer = GraphWriter(self.db, self.repository)
        async with writer.transaction():
            exercise = await self._load_live(ContentKind.EXERCISE, exercise_id)
            await self.db.execute(
                delete(CompletedWorkout).where(CompletedWorkout.exercise_id == exercise.id)
            )
            await self.db.execute(
                delete(CompletedWorkout).where(
                    CompletedWorkout.workout_exercise_id.in_(
                        select(WorkoutExercise.id).where(WorkoutExercise.exercise_id == exercise.id)
                    )
                )
            )
            await self.db.execute(delete(WorkoutExercise).where(WorkoutExercise.exercise_id == exercise.id))
            await self.db.execute(delete(ExerciseVideo).where(ExerciseVideo.exercise_id == exercise.id))
            exercise.deleted_at = datetime.now(timezone.utc)

        logger.info("exercise_deleted", exercise_id=exercise_id)

    async def delete_workout(self, workout_id: int) -> None:
        """Soft delete a workout with its plan slots, completion logs and exercise slots."""
        writer = GraphWriter(self.db, self.repository)
        async with writer.transaction():
            workout = await self._load_live(ContentKind.WORKOUT, workout_id)
            await self.db.execute(
                delete(CompletedWorkout).where(CompletedWorkout.workout_id == workout.id)
            )
            await self.db.execute(
                delete(CompletedWorkout).where(
                    CompletedWorkout.plan_workout_id.in_(
                        select(PlanWorkout.id).where(PlanWorkout.workout_id == workout.id)
                    )
                )
            )
            await self.db.execute(delete(PlanWorkout).where(PlanWorkout.workout_id == workout.id))
            await self.db.execute(delete(WorkoutExercise).where(WorkoutExercise.workout_id == workout.id))
            workout.deleted_at = datetime.now(timezone.utc)

        logger.info("workout_deleted", workout_id=workout_id)
