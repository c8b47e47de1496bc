"""Acting-owner resolution.

Authentication happens upstream; the gateway forwards the resolved owner
as ``X-Owner-Id`` / ``X-Owner-Role`` headers.
"""
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.core.models import Owner, OwnerRole
from src.core.observability import set_owner_context


async def get_current_owner(
    x_owner_id: Annotated[int | None, Header()] = None,
    x_owner_role: Annotated[str | None, Header()] = None,
) -> Owner:
    """Build the acting owner from gateway headers."""
    if x_owner_id is None or not x_owner_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing owner headers",
        )

    try:
        role = OwnerRole(x_owner_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown owner role: {x_owner_role}",
        )

    set_owner_context(x_owner_id, role.value)
    return Owner(owner_id=x_owner_id, owner_role=role)


CurrentOwner = Annotated[Owner, Depends(get_current_owner)]
