"""Per-operation memo of resolved references."""
from src.domains.catalog.models import ContentKind


class CloneMemo:
    """Maps ``(kind, source_id)`` to the id it resolved to within one operation.

    Every outcome is remembered (reuse of an owned row, reuse of an earlier
    clone, fresh clone) so each source is looked up at most once and cloned
    at most once per operation. Create one per transaction and drop it when
    the transaction ends.
    """

    def __init__(self) -> None:
        self._resolved: dict[tuple[ContentKind, int], int] = {}
        self._created: dict[tuple[ContentKind, int], int] = {}

    def lookup(self, kind: ContentKind, source_id: int) -> int | None:
        return self._resolved.get((kind, source_id))

    def remember(self, kind: ContentKind, source_id: int, entity_id: int, created: bool = False) -> None:
        key = (kind, source_id)
        self._resolved[key] = entity_id
        if created:
            self._created[key] = entity_id

    def clones(self, kind: ContentKind | None = None) -> dict[int, int]:
        """``source_id -> clone_id`` for clones made during this operation."""
        return {
            source_id: clone_id
            for (k, source_id), clone_id in self._created.items()
            if kind is None or k == kind
        }

    def clear(self) -> None:
        self._resolved.clear()
        self._created.clear()

    def __contains__(self, key: tuple[ContentKind, int]) -> bool:
        return key in self._resolved

    def __len__(self) -> int:
        return len(self._resolved)
