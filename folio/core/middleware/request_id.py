import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from folio.core.logging import request_id_ctx_var, latency_bucket_ms
from folio.core.metrics import http_requests_total, normalize_path


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the lifetime of the request, echo it back and count the request."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        duration_ms = (time.perf_counter() - start) * 1000

        response.headers[self.header_name] = rid
        status = getattr(response, "status_code", 0)
        http_requests_total.inc(
            {"method": request.method, "path": normalize_path(request.url.path), "status": str(status)}
        )
        logging.getLogger("folio").info(
            "request.complete",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "status": status,
                "latency_bucket": latency_bucket_ms(duration_ms),
            },
        )
        return response
