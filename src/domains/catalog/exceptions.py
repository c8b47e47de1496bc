"""Catalog error taxonomy.

Raised by the resolver, builder, writer and services; mapped to HTTP
responses by the handlers in ``src.core.exceptions``.
"""
from fastapi import status


class CatalogError(Exception):
    """Base exception for catalog operations."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, detail: list[dict] | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or []


class NotFoundError(CatalogError):
    """Referenced plan, workout, exercise or video does not exist (or was deleted)."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, kind: str, entity_id: int):
        super().__init__(f"{kind.capitalize()} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class ValidationFailedError(CatalogError):
    """Malformed or incomplete slot data."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, field: str | None = None):
        detail = [{"loc": field.split("."), "msg": message}] if field else None
        super().__init__(message, detail)
        self.field = field


class ConflictAlreadyOwnedError(CatalogError):
    """Single-entity clone requested on content the caller already owns or has cloned."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, kind: str, entity_id: int, existing_id: int | None = None):
        if existing_id is None or existing_id == entity_id:
            message = f"{kind.capitalize()} {entity_id} is already yours"
        else:
            message = f"{kind.capitalize()} {entity_id} already cloned as {existing_id}"
        super().__init__(message)
        self.kind = kind
        self.entity_id = entity_id
        self.existing_id = existing_id


class PersistenceFailureError(CatalogError):
    """Transaction could not commit; nothing from the operation was kept."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class CloneConflictError(PersistenceFailureError):
    """A concurrent operation created the same clone first."""
