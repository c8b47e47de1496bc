"""Catalog endpoints: plan composition plus single-entity clone and delete."""
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.database import get_db
from src.domains.auth.dependencies import CurrentOwner
from src.domains.catalog.catalog_service import CatalogService
from src.domains.catalog.plan_service import PlanService
from src.domains.catalog.schemas import (
    AssignPlanResponse,
    ExerciseResponse,
    PlanAssignmentCreate,
    PlanAssignmentResponse,
    PlanCreate,
    PlanResponse,
    PlanUpdate,
    VideoResponse,
    WorkoutResponse,
)

router = APIRouter()


# Plans

@router.post("/plans", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    request: PlanCreate,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanResponse:
    """Create a plan, cloning any foreign workouts and exercises it references."""
    plan = await PlanService(db).create_plan(request, current_owner)
    return PlanResponse.model_validate(plan)


@router.get("/plans/{plan_id}", response_model=PlanResponse)
async def get_plan(
    plan_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanResponse:
    """Get a plan with its full graph."""
    plan = await PlanService(db).get_plan(plan_id)
    return PlanResponse.model_validate(plan)


@router.put("/plans/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    request: PlanUpdate,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanResponse:
    """Update a plan: deletions first, then upsert of the given slots."""
    plan = await PlanService(db).update_plan(plan_id, request, current_owner)
    return PlanResponse.model_validate(plan)


@router.delete("/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(
    plan_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Soft delete a plan."""
    await PlanService(db).delete_plan(plan_id)


@router.post("/plans/{plan_id}/clone", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def clone_plan(
    plan_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PlanResponse:
    """Copy a plan for the current owner."""
    plan = await PlanService(db).clone_plan(plan_id, current_owner)
    return PlanResponse.model_validate(plan)


@router.post("/plans/{plan_id}/assign", response_model=AssignPlanResponse, status_code=status.HTTP_201_CREATED)
async def assign_plan(
    plan_id: int,
    request: PlanAssignmentCreate,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AssignPlanResponse:
    """Assign a plan to users and/or organizations."""
    assignments, queued = await PlanService(db).assign_plan(plan_id, request, current_owner)
    return AssignPlanResponse(
        assignments=[PlanAssignmentResponse.model_validate(a) for a in assignments],
        notification_queued=queued,
    )


# Workouts

@router.post("/workouts/{workout_id}/clone", response_model=WorkoutResponse, status_code=status.HTTP_201_CREATED)
async def clone_workout(
    workout_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> WorkoutResponse:
    """Clone a workout for the current owner."""
    workout = await CatalogService(db).clone_workout(workout_id, current_owner)
    return WorkoutResponse.model_validate(workout)


@router.delete("/workouts/{workout_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workout(
    workout_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Soft delete a workout."""
    await CatalogService(db).delete_workout(workout_id)


# Exercises

@router.post("/exercises/{exercise_id}/clone", response_model=ExerciseResponse, status_code=status.HTTP_201_CREATED)
async def clone_exercise(
    exercise_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ExerciseResponse:
    """Clone an exercise (and its video) for the current owner."""
    exercise = await CatalogService(db).clone_exercise(exercise_id, current_owner)
    return ExerciseResponse.model_validate(exercise)


@router.delete("/exercises/{exercise_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exercise(
    exercise_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Soft delete an exercise."""
    await CatalogService(db).delete_exercise(exercise_id)


# Videos

@router.post("/videos/{video_id}/clone", response_model=VideoResponse, status_code=status.HTTP_201_CREATED)
async def clone_video(
    video_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> VideoResponse:
    """Clone a video for the current owner."""
    video = await CatalogService(db).clone_video(video_id, current_owner)
    return VideoResponse.model_validate(video)


@router.delete("/videos/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    video_id: int,
    current_owner: CurrentOwner,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Soft delete a video."""
    await CatalogService(db).delete_video(video_id)
