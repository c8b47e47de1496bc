"""Plan operations: create, update and clone with ownership-aware cloning."""
import asyncio
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.core.models import Owner
from src.core.storage import StorageService, storage_service
from src.domains.catalog.builder import CompositionBuilder
from src.domains.catalog.exceptions import NotFoundError, ValidationFailedError
from src.domains.catalog.memo import CloneMemo
from src.domains.catalog.models import (
    CompletedWorkout,
    Plan,
    PlanAssignment,
    PlanKind,
    PlanWorkout,
)
from src.domains.catalog.repository import ContentRepository
from src.domains.catalog.resolver import OwnershipResolver
from src.domains.catalog.schemas import PlanAssignmentCreate, PlanCreate, PlanSlot, PlanUpdate
from src.domains.catalog.writer import GraphWriter, with_clone_retry
from src.domains.notifications.dispatch import notify_plan_assigned

logger = structlog.get_logger(__name__)

# Keeps fire-and-forget dispatch tasks alive until they finish
_background_tasks: set[asyncio.Task] = set()


def _log_dispatch_result(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("assignment_notification_failed", error=str(exc), type=type(exc).__name__)


class PlanService:
    """Service for plan composition.

    Every mutating call runs in a single transaction with its own clone memo,
    and is retried when a concurrent operation created the same clone first.
    """

    def __init__(self, db: AsyncSession, storage: StorageService = storage_service):
        self.db = db
        self.storage = storage
        self.repository = ContentRepository(db)

    def _pipeline(self) -> tuple[CompositionBuilder, GraphWriter]:
        # Fresh memo per attempt
        resolver = OwnershipResolver(self.repository, CloneMemo(), self.storage)
        writer = GraphWriter(self.db, self.repository)
        writer.on_rollback(resolver.discard_copied_media)
        return CompositionBuilder(resolver), writer

    # Queries

    async def get_plan(self, plan_id: int) -> Plan:
        """Get a live plan with its full graph.

        Raises:
            NotFoundError: If the plan does not exist or was deleted
        """
        plan = await self.repository.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("plan", plan_id)
        return plan

    # Composition

    async def create_plan(self, request: PlanCreate, owner: Owner) -> Plan:
        """Create a plan owned by ``owner`` from the request's slots.

        Foreign workouts and exercises are cloned once each; the caller's own
        content is referenced as is.
        """

        async def attempt() -> Plan:
            builder, writer = self._pipeline()
            async with writer.transaction():
                self._check_slot_ids(request.workouts, existing_ids=set())
                plan = Plan(
                    title=request.title,
                    kind=request.kind,
                    phase_count=request.phase_count,
                    week_count=request.week_count,
                    visibility=request.visibility,
                    owner_id=owner.owner_id,
                    owner_role=owner.owner_role,
                )
                composition = await builder.build(request.workouts, owner)
                plan = await writer.persist(plan, composition)
            return plan

        plan = await with_clone_retry("create_plan", attempt)
        logger.info(
            "plan_created",
            plan_id=plan.id,
            owner_id=owner.owner_id,
            owner_role=owner.owner_role.value,
            slots=len(plan.plan_workouts),
        )
        return plan

    async def update_plan(self, plan_id: int, request: PlanUpdate, owner: Owner) -> Plan:
        """Update a plan's fields and slots.

        Rows in ``deleted_ids`` (and their completion logs) go first; slots
        naming a ``plan_workout_id`` overwrite that row, the rest are appended.
        The plan keeps its original owner.
        """

        async def attempt() -> Plan:
            builder, writer = self._pipeline()
            async with writer.transaction():
                plan = await self.get_plan(plan_id)
                existing_ids = await self.repository.plan_workout_ids(plan.id)
                self._check_slot_ids(request.workouts, existing_ids, request.deleted_ids)

                if request.title is not None:
                    plan.title = request.title
                if request.kind is not None:
                    plan.kind = request.kind
                if request.phase_count is not None:
                    plan.phase_count = request.phase_count
                if request.week_count is not None:
                    plan.week_count = request.week_count
                if request.visibility is not None:
                    plan.visibility = request.visibility

                if plan.kind == PlanKind.PROGRAM and (plan.phase_count is None or plan.week_count is None):
                    raise ValidationFailedError(
                        "Program plans require phase_count and week_count",
                        field="type",
                    )

                composition = await builder.build(request.workouts, owner)
                plan = await writer.persist(plan, composition, deleted_ids=request.deleted_ids)
            return plan

        plan = await with_clone_retry("update_plan", attempt)
        logger.info(
            "plan_updated",
            plan_id=plan.id,
            owner_id=owner.owner_id,
            deleted=len(request.deleted_ids),
            slots=len(plan.plan_workouts),
        )
        return plan

    async def clone_plan(self, plan_id: int, owner: Owner) -> Plan:
        """Copy a plan for ``owner``, replaying every slot as create_plan would."""

        async def attempt() -> Plan:
            builder, writer = self._pipeline()
            async with writer.transaction():
                source = await self.get_plan(plan_id)
                plan = Plan(
                    title=source.title,
                    kind=source.kind,
                    phase_count=source.phase_count,
                    week_count=source.week_count,
                    visibility=source.visibility,
                    owner_id=owner.owner_id,
                    owner_role=owner.owner_role,
                    parent_id=source.id,
                )
                composition = await builder.build(builder.slots_from_plan(source), owner)
                plan = await writer.persist(plan, composition)
            return plan

        plan = await with_clone_retry("clone_plan", attempt)
        logger.info(
            "plan_cloned",
            plan_id=plan.id,
            source_id=plan_id,
            owner_id=owner.owner_id,
            owner_role=owner.owner_role.value,
        )
        return plan

    async def delete_plan(self, plan_id: int) -> None:
        """Soft delete a plan, removing its assignments, completion logs and slots."""
        writer = GraphWriter(self.db, self.repository)
        async with writer.transaction():
            plan = await self.get_plan(plan_id)
            await self.db.execute(delete(PlanAssignment).where(PlanAssignment.plan_id == plan.id))
            await self.db.execute(delete(CompletedWorkout).where(CompletedWorkout.plan_id == plan.id))
            await self.db.execute(delete(PlanWorkout).where(PlanWorkout.plan_id == plan.id))
            plan.deleted_at = datetime.now(timezone.utc)

        logger.info("plan_deleted", plan_id=plan_id)

    # Assignment

    async def assign_plan(
        self,
        plan_id: int,
        request: PlanAssignmentCreate,
        owner: Owner,
    ) -> tuple[list[PlanAssignment], bool]:
        """Assign a plan to users and organizations for a date range.

        Returns the new assignments and whether a notification was queued.
        Notification delivery happens in the background and never affects the
        assignment itself.

        Raises:
            NotFoundError: If the plan does not exist
            ValidationFailedError: If a target already has a plan in that range
        """
        writer = GraphWriter(self.db, self.repository)
        async with writer.transaction():
            plan = await self.get_plan(plan_id)
            targets = [(user_id, None) for user_id in request.user_ids]
            targets += [(None, org_id) for org_id in request.organization_ids]

            assignments = []
            for user_id, organization_id in targets:
                clash = await self.repository.find_overlapping_assignment(
                    request.start_date,
                    request.end_date,
                    user_id=user_id,
                    organization_id=organization_id,
                )
                if clash is not None:
                    target = f"User {user_id}" if user_id is not None else f"Organization {organization_id}"
                    raise ValidationFailedError(
                        f"{target} is already assigned a plan within the given date range: "
                        f"{clash.start_date} to {clash.end_date}",
                        field="user_ids" if user_id is not None else "organization_ids",
                    )
                assignments.append(
                    PlanAssignment(
                        plan_id=plan.id,
                        user_id=user_id,
                        organization_id=organization_id,
                        start_date=request.start_date,
                        end_date=request.end_date,
                        assigned_by=owner.owner_id,
                        assigner=owner.owner_role,
                    )
                )
            self.db.add_all(assignments)
            await self.db.flush()

        logger.info("plan_assigned", plan_id=plan.id, assignments=len(assignments))
        queued = self._queue_assignment_notification(plan, targets)
        return assignments, queued

    def _queue_assignment_notification(
        self,
        plan: Plan,
        targets: list[tuple[int | None, int | None]],
    ) -> bool:
        if not settings.push_enabled:
            logger.info("assignment_notification_skipped", plan_id=plan.id, reason="push_disabled")
            return False

        try:
            task = asyncio.create_task(notify_plan_assigned(plan.id, plan.title, targets))
        except RuntimeError as e:
            logger.error("assignment_notification_failed", plan_id=plan.id, error=str(e))
            return False

        _background_tasks.add(task)
        task.add_done_callback(_log_dispatch_result)
        return True

    # Validation

    def _check_slot_ids(
        self,
        slots: list[PlanSlot],
        existing_ids: set[int],
        deleted_ids: list[int] | None = None,
    ) -> None:
        """Slots may only overwrite rows of this plan that are not being deleted."""
        deleted = set(deleted_ids or [])
        seen: set[int] = set()
        for index, slot in enumerate(slots):
            if slot.plan_workout_id is None:
                continue
            field = f"workouts.{index}.plan_workout_id"
            if slot.plan_workout_id not in existing_ids:
                raise ValidationFailedError(
                    f"Plan workout {slot.plan_workout_id} does not belong to this plan",
                    field=field,
                )
            if slot.plan_workout_id in deleted:
                raise ValidationFailedError(
                    f"Plan workout {slot.plan_workout_id} is both updated and deleted",
                    field=field,
                )
            if slot.plan_workout_id in seen:
                raise ValidationFailedError(
                    f"Plan workout {slot.plan_workout_id} appears more than once",
                    field=field,
                )
            seen.add(slot.plan_workout_id)
