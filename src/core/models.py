"""Shared model mixins."""
import enum
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, func
from sqlalchemy.orm import Mapped, mapped_column


class OwnerRole(str, enum.Enum):
    """Ownership namespaces for catalog content."""

    ADMIN = "admin"
    COACH = "coach"


class Visibility(str, enum.Enum):
    """Content visibility."""

    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class Owner:
    """Ownership namespace acting on the catalog."""

    owner_id: int
    owner_role: OwnerRole


class IDMixin:
    """Integer autoincrement primary key."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    """Created/updated timestamps maintained by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class SoftDeleteMixin:
    """Rows are hidden rather than removed."""

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class OwnershipMixin:
    """Owner namespace plus the single-hop link to the clone source."""

    owner_id: Mapped[int] = mapped_column("uploaded_by", Integer, nullable=False, index=True)
    owner_role: Mapped[OwnerRole] = mapped_column(
        "uploader",
        Enum(OwnerRole, name="owner_role_enum", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    visibility: Mapped[Visibility] = mapped_column(
        "visibility_type",
        Enum(Visibility, name="visibility_enum", values_callable=lambda x: [e.value for e in x]),
        default=Visibility.PUBLIC,
        nullable=False,
    )

    # Row this one was cloned from, same table
    parent_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    def is_owned_by(self, owner: Owner) -> bool:
        return self.owner_id == owner.owner_id and OwnerRole(self.owner_role) == owner.owner_role
