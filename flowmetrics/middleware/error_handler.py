import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Last-resort handler for the metrics and queue APIs.

    Webhook ingress reports its own 4xx codes; anything that still escapes a
    route is logged with its exception type and answered with a 500 body.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(
                "api_request_failed",
                method=request.method,
                path=request.url.path,
                error_type=type(exc).__name__,
            )
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})
