"""Central import of all domain models.

This file imports all models to ensure they are registered with SQLAlchemy's
metadata before any database operations (like creating tables or migrations).
"""

# Catalog domain
from src.domains.catalog.models import (
    CompletedWorkout,
    ContentKind,
    Exercise,
    ExerciseScheme,
    ExerciseVideo,
    Plan,
    PlanAssignment,
    PlanKind,
    PlanWorkout,
    Video,
    VideoSourceKind,
    Workout,
    WorkoutExercise,
)

__all__ = [
    # Catalog
    "CompletedWorkout",
    "ContentKind",
    "Exercise",
    "ExerciseScheme",
    "ExerciseVideo",
    "Plan",
    "PlanAssignment",
    "PlanKind",
    "PlanWorkout",
    "Video",
    "VideoSourceKind",
    "Workout",
    "WorkoutExercise",
]
