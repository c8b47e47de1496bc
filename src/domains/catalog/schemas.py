"""Catalog schemas for request/response validation.

Plan and exercise slots arrive in a loosely shaped JSON format. They are
narrowed here into closed variant types so the builder never has to
inspect optional fields:

- plan slots: ``RestDay | WorkoutRef | InlineWorkout``
- exercise slots: ``RestSlot | PlainSlot | StaggeredSlot | SupersetSlot``
"""
from datetime import date, datetime
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from src.core.models import OwnerRole, Visibility
from src.domains.catalog.models import ExerciseScheme, PlanKind, VideoSourceKind


def _normalize_scheme(value: Any) -> Any:
    # Clients send "duration", "Duration" or "DURATION"
    if isinstance(value, str):
        return value.strip().capitalize()
    return value


_flag = TypeAdapter(bool)


def _coerce_flag(value: Any) -> Any:
    # "0", "false" and 0 are False, as for any bool field
    try:
        return _flag.validate_python(value)
    except ValidationError:
        return value


def _flag_of(data: dict, key: str) -> bool | None:
    """Wire flag as the variant would parse it, None when it is not a boolean."""
    value = data.get(key)
    if value is None:
        return False
    value = _coerce_flag(value)
    return value if isinstance(value, bool) else None


# Exercise slots

class StaggerEntry(BaseModel):
    """Rep target for one set of a staggered exercise."""

    set: int = Field(ge=1)
    reps: int = Field(ge=0, validation_alias=AliasChoices("reps", "rep"))


class _Prescription(BaseModel):
    """Numeric prescription shared by every exercise slot."""

    scheme: ExerciseScheme | None = Field(None, alias="type")
    minutes: int | None = Field(None, alias="min", ge=0)
    seconds: int | None = Field(None, alias="sec", ge=0)
    sets: int | None = Field(None, alias="set", ge=1)
    reps: int | None = Field(None, alias="rep", ge=0)
    rest_minutes: int | None = Field(None, alias="rest_min", ge=0)
    rest_seconds: int | None = Field(None, alias="rest_sec", ge=0)

    class Config:
        populate_by_name = True

    normalize_type = field_validator("scheme", mode="before")(_normalize_scheme)


class RestSlot(_Prescription):
    """Rest period between exercises."""

    kind: ClassVar[str] = "rest"

    is_rest: Literal[True] = True

    coerce_rest = field_validator("is_rest", mode="before")(_coerce_flag)

    @model_validator(mode="before")
    @classmethod
    def _reject_reference(cls, data: Any) -> Any:
        if isinstance(data, dict) and (data.get("id") is not None or data.get("exercise") is not None):
            raise ValueError("Rest slots cannot reference an exercise")
        return data


class _ExerciseRef(_Prescription):
    exercise_id: int = Field(alias="id")
    is_rest: Literal[False] = False
    scheme: ExerciseScheme = Field(alias="type")

    coerce_rest = field_validator("is_rest", mode="before")(_coerce_flag)

    @model_validator(mode="before")
    @classmethod
    def _lift_exercise_ref(cls, data: Any) -> Any:
        # {"exercise": {"id": 5}} is accepted as well as {"id": 5}
        if isinstance(data, dict) and data.get("id") is None and isinstance(data.get("exercise"), dict):
            data = {**data, "id": data["exercise"].get("id")}
        return data


class PlainSlot(_ExerciseRef):
    """Single exercise prescribed by duration or by sets x reps."""

    kind: ClassVar[str] = "plain"

    is_staggered: bool = Field(False, alias="is_stag")

    @model_validator(mode="after")
    def _apply_scheme(self) -> "PlainSlot":
        if self.scheme == ExerciseScheme.DURATION:
            if self.minutes is None or self.seconds is None:
                raise ValueError("Duration exercises require min and sec")
            self.sets = None
            self.reps = None
        else:
            if self.sets is None or self.reps is None:
                raise ValueError("Sets exercises require set and rep")
            self.minutes = None
            self.seconds = None
        return self


class StaggeredSlot(_ExerciseRef):
    """Exercise whose rep target changes from set to set."""

    kind: ClassVar[str] = "staggered"

    is_staggered: bool = Field(True, alias="is_stag")
    reps_array: list[int | StaggerEntry] = Field(alias="repsArray", min_length=1)

    @model_validator(mode="after")
    def _check_schedule(self) -> "StaggeredSlot":
        if self.scheme != ExerciseScheme.SETS:
            raise ValueError("Staggered exercises must use the Sets type")
        if self.sets is None:
            raise ValueError("Staggered exercises require set")
        if len(self.reps_array) != self.sets:
            raise ValueError(
                f"repsArray has {len(self.reps_array)} entries but set is {self.sets}"
            )
        self.minutes = None
        self.seconds = None
        return self

    @property
    def stagger_schedule(self) -> list[dict]:
        """Schedule as stored: ordered ``{"set", "reps"}`` dicts."""
        schedule = []
        for position, entry in enumerate(self.reps_array, start=1):
            if isinstance(entry, StaggerEntry):
                schedule.append({"set": entry.set, "reps": entry.reps})
            else:
                schedule.append({"set": position, "reps": entry})
        return schedule


def _member_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        staggered = _flag_of(value, "is_stag")
        if staggered is None:
            return None
        return "staggered" if staggered else "plain"
    return value.kind


SupersetMember = Annotated[
    Union[
        Annotated[PlainSlot, Tag("plain")],
        Annotated[StaggeredSlot, Tag("staggered")],
    ],
    Discriminator(_member_kind),
]


class SupersetSlot(BaseModel):
    """Exercises performed back to back."""

    kind: ClassVar[str] = "superset"

    members: list[SupersetMember] = Field(alias="superset", min_length=2)

    class Config:
        populate_by_name = True


def _exercise_slot_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        if value.get("superset") is not None:
            return "superset"
        is_rest, staggered = _flag_of(value, "is_rest"), _flag_of(value, "is_stag")
        if is_rest is None or staggered is None:
            return None
        if is_rest:
            return "rest"
        if staggered:
            return "staggered"
        return "plain"
    return value.kind


ExerciseSlot = Annotated[
    Union[
        Annotated[RestSlot, Tag("rest")],
        Annotated[PlainSlot, Tag("plain")],
        Annotated[StaggeredSlot, Tag("staggered")],
        Annotated[SupersetSlot, Tag("superset")],
    ],
    Discriminator(_exercise_slot_kind),
]


# Plan slots

class _PlanSlot(BaseModel):
    plan_workout_id: int | None = None  # Existing row to overwrite (update only)
    is_rest: bool
    phase: int | None = Field(None, ge=1)
    week: int | None = Field(None, ge=1)
    day: int | None = Field(None, ge=1)
    sort: int | None = Field(None, ge=0)

    coerce_rest = field_validator("is_rest", mode="before")(_coerce_flag)


class RestDay(_PlanSlot):
    """Rest day in the plan schedule."""

    kind: ClassVar[str] = "rest"

    is_rest: Literal[True]

    @model_validator(mode="before")
    @classmethod
    def _reject_reference(cls, data: Any) -> Any:
        if isinstance(data, dict) and (data.get("workout_id") is not None or data.get("workout") is not None):
            raise ValueError("Rest days cannot reference a workout")
        return data


class WorkoutRef(_PlanSlot):
    """Reference to an existing workout, own or foreign."""

    kind: ClassVar[str] = "ref"

    is_rest: Literal[False]
    workout_id: int


class InlineWorkoutBody(BaseModel):
    """Workout composed directly inside the plan request."""

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    exercises: list[ExerciseSlot] = Field(min_length=1)


class InlineWorkout(_PlanSlot):
    """Fresh workout owned by the caller."""

    kind: ClassVar[str] = "inline"

    is_rest: Literal[False]
    workout: InlineWorkoutBody


def _plan_slot_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        is_rest = _flag_of(value, "is_rest")
        if is_rest is None:
            return None
        if is_rest:
            return "rest"
        if value.get("workout_id") is None and value.get("workout") is not None:
            return "inline"
        return "ref"
    return value.kind


PlanSlot = Annotated[
    Union[
        Annotated[RestDay, Tag("rest")],
        Annotated[WorkoutRef, Tag("ref")],
        Annotated[InlineWorkout, Tag("inline")],
    ],
    Discriminator(_plan_slot_kind),
]


# Plan schemas

def _normalize_visibility(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class PlanCreate(BaseModel):
    """Create plan request."""

    title: str = Field(min_length=1, max_length=255)
    kind: PlanKind = Field(PlanKind.ON_DEMAND, alias="type")
    phase_count: int | None = Field(None, ge=1)
    week_count: int | None = Field(None, ge=1)
    visibility: Visibility = Field(Visibility.PUBLIC, alias="visibility_type")
    workouts: list[PlanSlot] = []

    class Config:
        populate_by_name = True

    normalize_visibility = field_validator("visibility", mode="before")(_normalize_visibility)

    @model_validator(mode="after")
    def _check_program_shape(self) -> "PlanCreate":
        if self.kind == PlanKind.PROGRAM and (self.phase_count is None or self.week_count is None):
            raise ValueError("Program plans require phase_count and week_count")
        return self


class PlanUpdate(BaseModel):
    """Update plan request.

    Slots carrying ``plan_workout_id`` overwrite that row in place; slots
    without one are appended. Rows listed in ``deleted_ids`` are removed
    (with their completion logs) before anything is written.
    """

    title: str | None = Field(None, min_length=1, max_length=255)
    kind: PlanKind | None = Field(None, alias="type")
    phase_count: int | None = Field(None, ge=1)
    week_count: int | None = Field(None, ge=1)
    visibility: Visibility | None = Field(None, alias="visibility_type")
    workouts: list[PlanSlot] = []
    deleted_ids: list[int] = []

    class Config:
        populate_by_name = True

    normalize_visibility = field_validator("visibility", mode="before")(_normalize_visibility)


class PlanAssignmentCreate(BaseModel):
    """Assign a plan to users and/or organizations."""

    user_ids: list[int] = []
    organization_ids: list[int] = []
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _check_targets(self) -> "PlanAssignmentCreate":
        if not self.user_ids and not self.organization_ids:
            raise ValueError("At least one user or organization is required")
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


# Responses

class _OwnedResponse(BaseModel):
    id: int
    owner_id: int
    owner_role: OwnerRole
    parent_id: int | None = None
    visibility: Visibility
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class VideoResponse(_OwnedResponse):
    """Video response."""

    title: str
    source_kind: VideoSourceKind
    file_ref: str | None = None
    url: str | None = None
    duration_seconds: int | None = None
    thumbnail_ref: str | None = None
    tags: list[str] = []


class ExerciseResponse(_OwnedResponse):
    """Exercise response."""

    title: str
    description: str | None = None
    tags: list[str] = []
    video: VideoResponse | None = None


class WorkoutExerciseResponse(BaseModel):
    """Exercise slot response."""

    id: int
    exercise_id: int | None = None
    is_rest: bool
    scheme: ExerciseScheme | None = None
    minutes: int | None = None
    seconds: int | None = None
    sets: int | None = None
    reps: int | None = None
    rest_minutes: int | None = None
    rest_seconds: int | None = None
    is_staggered: bool = False
    stagger_schedule: list[dict] | None = None
    superset_group: int | None = None
    sort_index: int
    exercise: ExerciseResponse | None = None

    class Config:
        from_attributes = True


class WorkoutResponse(_OwnedResponse):
    """Workout response."""

    title: str
    description: str | None = None
    exercises: list[WorkoutExerciseResponse] = []


class PlanWorkoutResponse(BaseModel):
    """Plan slot response."""

    id: int
    workout_id: int | None = None
    is_rest: bool
    phase: int | None = None
    week: int | None = None
    day: int | None = None
    sort_index: int
    workout: WorkoutResponse | None = None

    class Config:
        from_attributes = True


class PlanResponse(_OwnedResponse):
    """Plan response with its full graph."""

    title: str
    kind: PlanKind
    phase_count: int | None = None
    week_count: int | None = None
    total_weeks: int
    plan_workouts: list[PlanWorkoutResponse] = []


class PlanAssignmentResponse(BaseModel):
    """Plan assignment response."""

    id: int
    plan_id: int
    user_id: int | None = None
    organization_id: int | None = None
    start_date: date
    end_date: date

    class Config:
        from_attributes = True


class AssignPlanResponse(BaseModel):
    """Result of assigning a plan."""

    assignments: list[PlanAssignmentResponse]
    notification_queued: bool
