"""FastAPI dependency injection functions."""

import hmac
import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header

from src.api.middleware.error_handler import APIError, AuthenticationError, AuthorizationError
from src.core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class StaffContext:
    """Context for a back-office caller."""

    staff_id: str | None = None


async def require_staff(
    x_admin_key: Annotated[str, Header(description="Back-office API key")] = "",
    x_staff_id: Annotated[str | None, Header(description="Acting staff member")] = None,
) -> StaffContext:
    """Authorize a staff request by its ``X-Admin-Key`` header.

    Args:
        x_admin_key: The X-Admin-Key header value.
        x_staff_id: Optional X-Staff-Id header, recorded on cancellations and refunds.

    Returns:
        StaffContext: The acting staff member.

    Raises:
        AuthenticationError: 401 if the key is missing.
        AuthorizationError: 403 if the key does not match.
        APIError: 500 if no admin key is configured.
    """
    settings = get_settings()
    if not settings.admin_api_key:
        logger.error("ADMIN_API_KEY is not configured; rejecting staff request")
        raise APIError("Staff API is not configured")

    if not x_admin_key:
        raise AuthenticationError("Admin key required")

    if not hmac.compare_digest(x_admin_key.encode("utf-8"), settings.admin_api_key.encode("utf-8")):
        raise AuthorizationError("Invalid admin key")

    return StaffContext(staff_id=x_staff_id or None)


# Type alias for dependency injection
StaffAuth = Annotated[StaffContext, Depends(require_staff)]
