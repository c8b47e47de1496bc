"""Catalog content models: videos, exercises, workouts, plans and their slots."""
import enum
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.config.database import Base
from src.core.models import (
    IDMixin,
    OwnerRole,
    OwnershipMixin,
    SoftDeleteMixin,
    TimestampMixin,
)


class ContentKind(str, enum.Enum):
    """Entity kinds the clone engine can resolve."""

    WORKOUT = "workout"
    EXERCISE = "exercise"
    VIDEO = "video"


class VideoSourceKind(str, enum.Enum):
    """Where a video's media lives."""

    FILE = "file"
    URL = "url"


class PlanKind(str, enum.Enum):
    """Plan scheduling style."""

    ON_DEMAND = "On Demand"
    PROGRAM = "Program"


class ExerciseScheme(str, enum.Enum):
    """How an exercise slot is prescribed."""

    DURATION = "Duration"
    SETS = "Sets"


def _live_clone_index(table: str) -> Index:
    # One live clone per (source, owner)
    return Index(
        f"uq_{table}_clone_owner",
        "parent_id",
        "uploaded_by",
        "uploader",
        unique=True,
        sqlite_where=text("deleted_at IS NULL"),
        postgresql_where=text("deleted_at IS NULL"),
    )


class Video(Base, IDMixin, TimestampMixin, SoftDeleteMixin, OwnershipMixin):
    """Video backing an exercise, either an uploaded file or an external URL."""

    __tablename__ = "videos"
    __table_args__ = (_live_clone_index("videos"),)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    source_kind: Mapped[VideoSourceKind] = mapped_column(
        Enum(VideoSourceKind, name="video_source_kind_enum", values_callable=lambda x: [e.value for e in x]),
        default=VideoSourceKind.URL,
        nullable=False,
    )
    file_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    thumbnail_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    def __repr__(self) -> str:
        return f"<Video {self.id} {self.title}>"


class ExerciseVideo(Base, IDMixin):
    """Link between an exercise and its video."""

    __tablename__ = "exercise_video"

    exercise_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("exercises.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    video_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )


class Exercise(Base, IDMixin, TimestampMixin, SoftDeleteMixin, OwnershipMixin):
    """Exercise, optionally demonstrated by a video."""

    __tablename__ = "exercises"
    __table_args__ = (_live_clone_index("exercises"),)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    # Relationships (links are written through ExerciseVideo rows)
    videos: Mapped[list["Video"]] = relationship(
        "Video",
        secondary="exercise_video",
        order_by="ExerciseVideo.id",
        lazy="selectin",
        viewonly=True,
    )

    @property
    def video(self) -> Video | None:
        """The linked video; only the first live link is meaningful."""
        for video in self.videos:
            if video.deleted_at is None:
                return video
        return None

    def __repr__(self) -> str:
        return f"<Exercise {self.id} {self.title}>"


class Workout(Base, IDMixin, TimestampMixin, SoftDeleteMixin, OwnershipMixin):
    """Workout made of ordered exercise slots."""

    __tablename__ = "workouts"
    __table_args__ = (_live_clone_index("workouts"),)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    exercises: Mapped[list["WorkoutExercise"]] = relationship(
        "WorkoutExercise",
        back_populates="workout",
        order_by="WorkoutExercise.sort_index",
        lazy="selectin",
        passive_deletes=True,  # Let DB handle CASCADE DELETE
    )

    def __repr__(self) -> str:
        return f"<Workout {self.id} {self.title}>"


class WorkoutExercise(Base, IDMixin, TimestampMixin):
    """Exercise slot inside a workout (or a rest slot)."""

    __tablename__ = "workout_exercises"

    workout_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("workouts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    exercise_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("exercises.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_rest: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    scheme: Mapped[ExerciseScheme | None] = mapped_column(
        Enum(ExerciseScheme, name="exercise_scheme_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=True,
    )
    minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sets: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rest_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rest_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_staggered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    stagger_schedule: Mapped[list[dict] | None] = mapped_column(JSON, nullable=True)  # [{"set": 1, "reps": 12}, ...]
    superset_group: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sort_index: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Relationships
    workout: Mapped["Workout"] = relationship(
        "Workout",
        back_populates="exercises",
    )
    exercise: Mapped["Exercise | None"] = relationship("Exercise", lazy="joined")

    def __repr__(self) -> str:
        return f"<WorkoutExercise workout={self.workout_id} exercise={self.exercise_id}>"


class Plan(Base, IDMixin, TimestampMixin, SoftDeleteMixin, OwnershipMixin):
    """Training plan made of ordered workout slots."""

    __tablename__ = "plans"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[PlanKind] = mapped_column(
        "type",
        Enum(PlanKind, name="plan_kind_enum", values_callable=lambda x: [e.value for e in x]),
        default=PlanKind.ON_DEMAND,
        nullable=False,
    )
    phase_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    week_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Relationships
    plan_workouts: Mapped[list["PlanWorkout"]] = relationship(
        "PlanWorkout",
        back_populates="plan",
        order_by="PlanWorkout.sort_index",
        lazy="selectin",
        passive_deletes=True,
    )

    @property
    def total_weeks(self) -> int:
        """Highest week reached in each phase, summed over phases."""
        max_week_by_phase: dict[int | None, int] = {}
        for pw in self.plan_workouts:
            if pw.week is None:
                continue
            current = max_week_by_phase.get(pw.phase, 0)
            max_week_by_phase[pw.phase] = max(current, pw.week)
        return sum(max_week_by_phase.values())

    def __repr__(self) -> str:
        return f"<Plan {self.id} {self.title}>"


class PlanWorkout(Base, IDMixin, TimestampMixin):
    """Workout slot inside a plan (or a rest day)."""

    __tablename__ = "plan_workouts"

    plan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workout_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("workouts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_rest: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    phase: Mapped[int | None] = mapped_column(Integer, nullable=True)
    week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sort_index: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Relationships
    plan: Mapped["Plan"] = relationship("Plan", back_populates="plan_workouts")
    workout: Mapped["Workout | None"] = relationship("Workout", lazy="selectin")

    def __repr__(self) -> str:
        return f"<PlanWorkout plan={self.plan_id} workout={self.workout_id}>"


class CompletedWorkout(Base, IDMixin, TimestampMixin):
    """Completion log written when a user finishes a plan slot."""

    __tablename__ = "user_completed_workouts"

    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    plan_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    plan_workout_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("plan_workouts.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    workout_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    workout_exercise_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("workout_exercises.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    exercise_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PlanAssignment(Base, IDMixin, TimestampMixin):
    """Plan scheduled for a user or a whole organization."""

    __tablename__ = "plan_assignments"

    plan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    organization_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    assigned_by: Mapped[int] = mapped_column(Integer, nullable=False)
    assigner: Mapped[OwnerRole] = mapped_column(
        Enum(OwnerRole, name="owner_role_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PlanAssignment plan={self.plan_id} user={self.user_id} org={self.organization_id}>"
