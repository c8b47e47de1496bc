"""Test configuration and fixtures for CoachLib API."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config.database import Base, get_db
from src.core.models import Owner, OwnerRole
from src.domains.catalog.models import ExerciseScheme
from src.main import create_app

# Test database URL - use SQLite in-memory for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for tests."""
    return "asyncio"


@pytest.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
    )

    # Import all models to register them
    from src.domains import models  # noqa: F401

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture(scope="function")
async def client(test_engine, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    app = create_app()

    # Override the database dependency
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# =============================================================================
# Owners
# =============================================================================


@pytest.fixture
def coach() -> Owner:
    """Coach acting on the catalog."""
    return Owner(owner_id=10, owner_role=OwnerRole.COACH)


@pytest.fixture
def other_coach() -> Owner:
    """Coach who owns the foreign content."""
    return Owner(owner_id=20, owner_role=OwnerRole.COACH)


@pytest.fixture
def admin() -> Owner:
    """Platform admin sharing the coach's numeric id (separate namespace)."""
    return Owner(owner_id=10, owner_role=OwnerRole.ADMIN)


def owner_headers(owner: Owner) -> dict[str, str]:
    """Gateway headers for the given owner."""
    return {"X-Owner-Id": str(owner.owner_id), "X-Owner-Role": owner.owner_role.value}


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def fake_storage() -> MagicMock:
    """Storage service double that pretends every copy succeeds."""
    storage = MagicMock()

    async def copy_file(url: str, file_type: str, owner_id: int) -> str:
        return f"/uploads/{file_type}/{owner_id}/copy-of-{url.rsplit('/', 1)[-1]}"

    storage.copy_file = AsyncMock(side_effect=copy_file)
    storage.delete_file = AsyncMock(return_value=True)
    return storage


# =============================================================================
# Content factory
# =============================================================================


class CatalogFactory:
    """Writes catalog rows straight to the database.

    Every helper commits and detaches what it created, so the code under
    test always loads content fresh from the database.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, *entities):
        self.db.add_all(entities)
        await self.db.commit()
        self.db.expunge_all()
        return entities[0] if len(entities) == 1 else entities

    async def video(self, owner: Owner, **fields):
        from src.domains.catalog.models import Video, VideoSourceKind

        values = {
            "title": "Squat demo",
            "source_kind": VideoSourceKind.URL,
            "url": "https://videos.example.com/squat.mp4",
            "tags": ["legs"],
        }
        values.update(fields)
        return await self._save(
            Video(owner_id=owner.owner_id, owner_role=owner.owner_role, **values)
        )

    async def exercise(self, owner: Owner, video=None, **fields):
        from src.domains.catalog.models import Exercise, ExerciseVideo

        values = {"title": "Back squat", "description": "Barbell squat", "tags": ["legs"]}
        values.update(fields)
        exercise = Exercise(owner_id=owner.owner_id, owner_role=owner.owner_role, **values)
        self.db.add(exercise)
        await self.db.flush()
        if video is not None:
            self.db.add(ExerciseVideo(exercise_id=exercise.id, video_id=video.id))
        return await self._save(exercise)

    async def workout(self, owner: Owner, rows: list[dict] | None = None, **fields):
        """Workout with exercise rows; each row dict feeds a WorkoutExercise."""
        from src.domains.catalog.models import Workout, WorkoutExercise

        values = {"title": "Leg day", "description": "Lower body"}
        values.update(fields)
        workout = Workout(owner_id=owner.owner_id, owner_role=owner.owner_role, **values)
        self.db.add(workout)
        await self.db.flush()
        for sort_index, row in enumerate(rows or [], start=1):
            self.db.add(
                WorkoutExercise(
                    workout_id=workout.id,
                    is_rest=row.get("exercise_id") is None,
                    sort_index=sort_index,
                    **row,
                )
            )
        return await self._save(workout)

    async def plan(self, owner: Owner, slots: list[dict] | None = None, **fields):
        """Plan with slot rows; each slot dict feeds a PlanWorkout."""
        from src.domains.catalog.models import Plan, PlanWorkout

        values = {"title": "Strength block"}
        values.update(fields)
        plan = Plan(owner_id=owner.owner_id, owner_role=owner.owner_role, **values)
        self.db.add(plan)
        await self.db.flush()
        for sort_index, slot in enumerate(slots or [], start=1):
            self.db.add(
                PlanWorkout(
                    plan_id=plan.id,
                    is_rest=slot.get("workout_id") is None,
                    sort_index=sort_index,
                    **slot,
                )
            )
        return await self._save(plan)

    async def count(self, model, *criteria) -> int:
        result = await self.db.execute(select(func.count(model.id)).where(*criteria))
        return result.scalar_one()

    async def rows(self, model, *criteria, order_by=None) -> list:
        query = select(model).where(*criteria).execution_options(populate_existing=True)
        query = query.order_by(order_by if order_by is not None else model.id)
        result = await self.db.execute(query)
        return list(result.scalars().unique().all())


@pytest.fixture
def catalog(db_session: AsyncSession) -> CatalogFactory:
    """Factory for catalog content."""
    return CatalogFactory(db_session)


@pytest.fixture
async def foreign_workout(catalog: CatalogFactory, other_coach: Owner):
    """Workout W7 of another coach: two exercises, only the first with a video."""
    video = await catalog.video(other_coach)
    squat = await catalog.exercise(other_coach, video=video, title="Back squat")
    lunge = await catalog.exercise(other_coach, title="Walking lunge")
    workout = await catalog.workout(
        other_coach,
        rows=[
            {"exercise_id": squat.id, "scheme": ExerciseScheme.SETS, "sets": 3, "reps": 8, "rest_seconds": 90},
            {"exercise_id": lunge.id, "scheme": ExerciseScheme.DURATION, "minutes": 1, "seconds": 30},
        ],
    )
    return {"workout": workout, "video": video, "squat": squat, "lunge": lunge}
