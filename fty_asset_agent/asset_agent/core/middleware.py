"""
FastAPI middleware logging HTTP requests of the asset agent API.
"""
import time
import uuid
from typing import Any, Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from asset_agent.core.config import settings
from asset_agent.core.logger import app_logger, clear_request_context, set_request_context


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request/response pair with a generated request_id, which is
    also returned in the X-Request-ID header.
    """

    SENSITIVE_HEADERS = {"authorization", "cookie", "x-api-key"}

    EXCLUDED_PATHS = {"/", "/health", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id, method=request.method, path=str(request.url.path))

        start_time = time.perf_counter()
        path = request.url.path
        is_excluded = path in self.EXCLUDED_PATHS

        if not is_excluded:
            self._log_request(request, request_id)

        response: Optional[Response] = None
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as exc:
            app_logger.exception(
                "Request failed with exception",
                extra={"request_id": request_id, "path": path, "exception_type": type(exc).__name__},
            )
            raise
        finally:
            if not is_excluded and response is not None:
                self._log_response(request, response, request_id, (time.perf_counter() - start_time) * 1000)
            clear_request_context()

    def _log_request(self, request: Request, request_id: str) -> None:
        log_func = app_logger.debug if settings.ENVIRONMENT in ("dev", "uat") else app_logger.info
        log_func(
            "API Request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": str(request.url.path),
                "query_params": dict(request.query_params) or None,
                "headers": self._sanitize_headers(dict(request.headers)),
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

    def _log_response(self, request: Request, response: Response, request_id: str, process_time_ms: float) -> None:
        status_code = response.status_code
        if status_code >= 500:
            log_func = app_logger.error
        elif status_code >= 400:
            log_func = app_logger.warning
        else:
            log_func = app_logger.debug if settings.ENVIRONMENT in ("dev", "uat") else app_logger.info

        log_func(
            "API Response",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": str(request.url.path),
                "status_code": status_code,
                "process_time_ms": round(process_time_ms, 2),
            },
        )

    def _sanitize_headers(self, headers: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: "<redacted>" if key.lower() in self.SENSITIVE_HEADERS else value
            for key, value in headers.items()
        }
