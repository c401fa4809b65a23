"""
Shared-secret gate for admin endpoints.
"""

import secrets
from typing import Optional

from fastapi import Header, Query, Request

from ..core.errors import AdminUnauthorized
from util.logging import logger


def require_admin(
    request: Request,
    x_admin_key: Optional[str] = Header(default=None),
    admin_key: Optional[str] = Query(default=None, alias="adminKey"),
) -> None:
    """
    FastAPI dependency: accept the X-Admin-Key header or adminKey query parameter.

    With no ADMIN_KEY configured the gate is open and every access is logged.
    """
    expected = request.app.state.settings.admin_key
    path = request.url.path
    if not expected:
        logger.log_admin_access(path, True, "ADMIN_KEY not configured")
        return

    supplied = x_admin_key or admin_key or ""
    if not secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        logger.log_admin_access(path, False, "key missing or invalid")
        raise AdminUnauthorized()

    logger.log_admin_access(path, True)
