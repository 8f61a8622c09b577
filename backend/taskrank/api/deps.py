"""Reusable FastAPI dependencies for owner scoping and service access.

Authentication happens upstream; by the time a request reaches this service
the caller's identity is forwarded in the ``X-Owner-Id`` header. Every task
route is scoped to that owner and never sees another owner's records.
"""

from __future__ import annotations

import re

from fastapi import Header, HTTPException, Request, status

from taskrank.core.config import settings
from taskrank.services.tasks.service import TaskService

OWNER_ID_HEADER = "X-Owner-Id"

_VALID_OWNER_ID = re.compile(r"^[A-Za-z0-9_.:@-]{1,128}$")


def normalize_owner_id(raw_owner_id: str | None) -> str:
    """Strip and validate an owner id taken from request headers."""
    normalized = (raw_owner_id or "").strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing required {OWNER_ID_HEADER} header.",
        )
    if not _VALID_OWNER_ID.fullmatch(normalized):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Owner id contains invalid characters.",
        )
    return normalized


def get_owner_id(
    x_owner_id: str | None = Header(default=None, alias=OWNER_ID_HEADER),
) -> str:
    """Resolve the request's owner scope."""
    return normalize_owner_id(x_owner_id)


def get_task_service(request: Request) -> TaskService:
    """Return the process-wide task service built at startup."""
    service = getattr(request.app.state, "task_service", None)
    if not isinstance(service, TaskService):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Task service is not initialized.",
        )
    return service


def get_primary_list_limit() -> int | None:
    """Maximum active primary tasks per owner; ``None`` disables the check."""
    return settings.primary_list_limit
