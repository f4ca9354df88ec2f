# app/core/middleware.py
"""Request tracing and logging middleware"""
import uuid
import time
import logging
from starlette.requests import Request

logger = logging.getLogger(__name__)

# Load balancer health checks, not worth a log line each
QUIET_PATHS = ("/health",)


async def correlation_id_middleware(request: Request, call_next):
    """Add correlation ID to all requests for tracing"""
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    request.state.correlation_id = correlation_id

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    """Log every scheduling request with its status and duration"""
    if request.url.path.startswith(QUIET_PATHS):
        return await call_next(request)

    start_time = time.perf_counter()
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
    log = logger.warning if response.status_code >= 500 else logger.info
    log(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"in {duration_ms}ms [{correlation_id}]",
        extra={
            "correlation_id": correlation_id,
            "method": request.method,
            "url": str(request.url),
            "client": request.client.host if request.client else "unknown",
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        }
    )

    return response
