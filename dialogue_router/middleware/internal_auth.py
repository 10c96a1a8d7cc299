from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from dialogue_router.core.config import AppConfig, logger

PUBLIC_PATHS = {"/health", "/docs", "/openapi.json", "/redoc", "/favicon.ico"}


class InternalAuthMiddleware(BaseHTTPMiddleware):
    """Проверка заголовка X-Internal-Auth для всех непубличных путей."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)
        auth = request.headers.get("x-internal-auth")
        if auth != AppConfig.INTERNAL_API_KEY:
            logger.warning(f"[dialogue-router][AUTH_FAIL] Unauthorized request to {request.url.path}")
            return JSONResponse(status_code=401, content={"detail": "unauthorized"})
        return await call_next(request)
