"""
Shared-secret guard for the submission endpoints.

POST /generate and /upload require an X-Worker-Secret header matching the
configured secret. The front end attaches it when forwarding user requests.
Polling, health and metrics stay public.
"""

import secrets

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


class WorkerAuthMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated requests to the submission endpoints."""

    PROTECTED_PATHS = {"/generate", "/upload"}

    def __init__(self, app, secret: str = "", environment: str = "development"):
        super().__init__(app)
        self.secret = secret
        self.environment = environment

    async def dispatch(self, request: Request, call_next):
        if request.url.path not in self.PROTECTED_PATHS:
            return await call_next(request)

        if not self.secret:
            # In development without the secret set, allow all traffic
            if self.environment == "development":
                return await call_next(request)
            return JSONResponse(
                status_code=500,
                content={"error": "Server misconfiguration", "details": "WORKER_SHARED_SECRET not configured"},
            )

        # Constant-time compare avoids timing attacks
        provided = request.headers.get("X-Worker-Secret", "")
        if not secrets.compare_digest(provided, self.secret):
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "details": "Invalid or missing worker secret"},
            )

        return await call_next(request)
