"""Admin token verification for the maintenance API."""

import secrets
from typing import Annotated, Optional

from fastapi import Header

from partkeeper.config import settings
from partkeeper.core.exceptions import AuthenticationError


def verify_admin_token(provided: Optional[str], expected: str) -> bool:
    """Compare tokens in constant time. An empty expected token never matches."""
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def require_admin(
    x_admin_token: Annotated[Optional[str], Header()] = None,
) -> None:
    """FastAPI dependency guarding destructive maintenance endpoints.

    Raises:
        AuthenticationError: If the header is missing, wrong, or no admin
            token is configured.
    """
    if not verify_admin_token(x_admin_token, settings.admin_token):
        raise AuthenticationError("Invalid or missing admin token")
