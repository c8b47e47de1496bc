"""Ownership-aware reference resolution.

Given a source id and the acting owner, a reference resolves to:

1. the source itself, when the owner already owns it;
2. the owner's earlier live clone of it (``parent_id == source_id``);
3. a fresh clone, created now and linked to ``source_id`` directly.

Every outcome is memoised for the rest of the operation, so a source
referenced many times is looked up once and cloned at most once.
"""
from dataclasses import dataclass

import structlog
from sqlalchemy import inspect as sa_inspect

from src.core.models import Owner
from src.core.storage import StorageError, StorageService, storage_service
from src.domains.catalog.exceptions import NotFoundError
from src.domains.catalog.memo import CloneMemo
from src.domains.catalog.models import (
    ContentKind,
    Exercise,
    Video,
    VideoSourceKind,
    Workout,
)
from src.domains.catalog.repository import ContentRepository

logger = structlog.get_logger(__name__)

# Attributes a clone never inherits from its source
_NOT_COPIED = {
    "id",
    "created_at",
    "updated_at",
    "deleted_at",
    "parent_id",
    "owner_id",
    "owner_role",
}


@dataclass
class Resolution:
    """Outcome of resolving one reference.

    ``source`` is the row ``source_id`` named; it is ``None`` when the answer
    came from the memo. When ``created`` is true, ``entity_id`` is a brand-new
    clone whose dependents (a workout's slots) still have to be written.
    """

    entity_id: int
    created: bool
    source: Video | Exercise | Workout | None = None


def copy_scalars(source, owner: Owner, **overrides):
    """New unsaved row of the same model carrying the source's column values."""
    model = type(source)
    values = {}
    for attr in sa_inspect(model).column_attrs:
        if attr.key in _NOT_COPIED:
            continue
        value = getattr(source, attr.key)
        values[attr.key] = list(value) if isinstance(value, list) else value
    values.update(overrides)
    return model(
        **values,
        owner_id=owner.owner_id,
        owner_role=owner.owner_role,
        parent_id=source.id,
    )


class OwnershipResolver:
    """Resolves workout, exercise and video references for one operation."""

    def __init__(
        self,
        repository: ContentRepository,
        memo: CloneMemo,
        storage: StorageService = storage_service,
    ):
        self.repository = repository
        self.memo = memo
        self.storage = storage
        # exercise_video rows for freshly cloned exercises
        self.staged_links: list[dict] = []
        # Media copied to storage for clones of this operation
        self.copied_media: list[str] = []

    async def resolve(self, kind: ContentKind, source_id: int, owner: Owner) -> Resolution:
        """Resolve ``source_id`` to the entity ``owner`` should reference.

        Raises:
            NotFoundError: If the source does not exist or was deleted
        """
        cached = self.memo.lookup(kind, source_id)
        if cached is not None:
            return Resolution(entity_id=cached, created=False)

        source = await self.repository.get(kind, source_id)
        if source is None:
            raise NotFoundError(kind.value, source_id)

        if source.is_owned_by(owner):
            self.memo.remember(kind, source_id, source.id)
            return Resolution(entity_id=source.id, created=False, source=source)

        existing = await self.repository.find_owned_clone(kind, source_id, owner)
        if existing is not None:
            self.memo.remember(kind, source_id, existing.id)
            return Resolution(entity_id=existing.id, created=False, source=source)

        clone = await self.clone(kind, source, owner)
        return Resolution(entity_id=clone.id, created=True, source=source)

    async def clone(self, kind: ContentKind, source, owner: Owner, **overrides):
        """Clone ``source`` for ``owner`` unconditionally and memoise it.

        Exercise clones also resolve their video and stage the link; workout
        clones come back empty, their slots are replayed by the builder.
        """
        clone = copy_scalars(source, owner, **overrides)

        if kind == ContentKind.VIDEO and source.source_kind == VideoSourceKind.FILE:
            await self._copy_media(source, clone, owner)

        await self.repository.stage(clone)
        self.memo.remember(kind, source.id, clone.id, created=True)

        if kind == ContentKind.EXERCISE and source.video is not None:
            video = await self.resolve(ContentKind.VIDEO, source.video.id, owner)
            self.staged_links.append({"exercise_id": clone.id, "video_id": video.entity_id})

        logger.info(
            "entity_cloned",
            kind=kind.value,
            source_id=source.id,
            clone_id=clone.id,
            owner_id=owner.owner_id,
            owner_role=owner.owner_role.value,
        )
        return clone

    async def _copy_media(self, source: Video, clone: Video, owner: Owner) -> None:
        # A failed copy leaves the clone without media; the operation goes on
        for attr, folder in (("file_ref", "videos"), ("thumbnail_ref", "thumbnails")):
            ref = getattr(source, attr)
            if not ref:
                continue
            try:
                copied = await self.storage.copy_file(ref, folder, owner.owner_id)
            except StorageError as e:
                logger.warning(
                    "video_media_copy_failed",
                    video_id=source.id,
                    field=attr,
                    error=str(e),
                )
                setattr(clone, attr, None)
                continue
            self.copied_media.append(copied)
            setattr(clone, attr, copied)

    async def discard_copied_media(self) -> None:
        """Delete the media copied so far; for use when the operation rolls back."""
        for ref in self.copied_media:
            if not await self.storage.delete_file(ref):
                logger.warning("video_media_cleanup_failed", ref=ref)
        if self.copied_media:
            logger.info("video_media_discarded", count=len(self.copied_media))
        self.copied_media = []
