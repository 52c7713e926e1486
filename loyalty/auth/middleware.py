"""
Authentication middleware guarding the admin API.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from loyalty.auth.jwt import get_token_from_cookie, verify_token

logger = logging.getLogger(__name__)

PROTECTED_PREFIX = "/api/admin"
STAFF_ROLE_NAMES = ("admin", "manager")


def _denied(status_code: int, code: str, message: str) -> Response:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Rejects unauthenticated or non-staff requests to /api/admin/*.

    Finer checks (admin-only mutations) are done by route dependencies.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        path = request.url.path

        if not path.startswith(PROTECTED_PREFIX):
            return await call_next(request)

        token = get_token_from_cookie(request)
        payload = verify_token(token) if token else None

        if not payload:
            return _denied(401, "not_authenticated", "Not authenticated")

        if payload.get("role") not in STAFF_ROLE_NAMES:
            logger.warning(f"Role '{payload.get('role')}' denied access to {path}")
            return _denied(403, "forbidden", "Access denied")

        return await call_next(request)
