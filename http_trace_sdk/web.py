"""
FastAPI integration.

``TraceMiddleware`` opens a debug request for every incoming request, so the
outgoing HTTP calls made while handling it are collected, and stores the
resolved payload when the response is ready. The payload API serves stored
requests as JSON.
"""

import re
from typing import Any, Dict

from fastapi import APIRouter, FastAPI, HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from http_trace_sdk.collector import TraceCollector
from http_trace_sdk.common.errors import RequestNotFoundError
from http_trace_sdk.common.logger import get_logger
from http_trace_sdk.storage import Storage

logger = get_logger(__name__)

TRACE_ID_HEADER = "X-Http-Trace-Id"


class TraceMiddleware(BaseHTTPMiddleware):
    """
    Collects outgoing HTTP calls per incoming request.

    Each request gets its own collection scope, so concurrent requests served
    by the same process don't see each other's calls.
    """

    def __init__(self, app: ASGIApp, collector: TraceCollector):
        super().__init__(app)
        self.collector = collector
        self.path_prefix = collector.config.web.path_prefix
        self.ignored_paths = [re.compile(p) for p in collector.config.web.ignored_paths]

    def _is_traced(self, path: str) -> bool:
        if path == self.path_prefix or path.startswith(self.path_prefix + "/"):
            return False
        return not any(pattern.search(path) for pattern in self.ignored_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not self._is_traced(path):
            return await call_next(request)

        uri = f"{path}?{request.url.query}" if request.url.query else path
        debug_request = self.collector.start_request(request.method, uri, isolate=True)
        request.state.debug_request = debug_request

        try:
            response = await call_next(request)
        except Exception:
            self.collector.finish_request(debug_request, status=500)
            raise

        self.collector.finish_request(debug_request, status=response.status_code)
        response.headers[TRACE_ID_HEADER] = debug_request.id
        return response


def _summary(request: Any) -> Dict[str, Any]:
    return {
        "id": request.id,
        "time": request.time,
        "method": request.method,
        "uri": request.uri,
        "response_status": request.response_status,
        "response_duration": request.response_duration,
        "http_requests": len(request.http_requests),
    }


def create_router(storage: Storage, prefix: str = "/__trace") -> APIRouter:
    """
    Build the payload API.

    Routes:
        GET    {prefix}            summaries of stored requests
        GET    {prefix}/latest     most recent request
        GET    {prefix}/{id}       one request
        DELETE {prefix}            remove all stored requests
    """
    router = APIRouter(prefix=prefix)

    @router.get("")
    async def list_requests():
        return {"requests": [_summary(r) for r in storage.all()]}

    @router.get("/latest")
    async def latest_request():
        request = storage.latest()
        if request is None:
            raise HTTPException(status_code=404, detail="No requests stored")
        return request.to_dict()

    @router.get("/{request_id}")
    async def get_request(request_id: str):
        try:
            return storage.find(request_id).to_dict()
        except RequestNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @router.delete("")
    async def clean_requests():
        storage.clean()
        logger.info("Cleaned stored debug requests")
        return {"status": "cleaned"}

    return router


def install(app: FastAPI, collector: TraceCollector) -> FastAPI:
    """Add the middleware and the payload API to an application."""
    app.add_middleware(TraceMiddleware, collector=collector)
    app.include_router(create_router(collector.storage, collector.config.web.path_prefix))
    return app


def create_app(storage: Storage, prefix: str = "/__trace") -> FastAPI:
    """Standalone application serving stored requests."""
    app = FastAPI(title="HTTP Trace Viewer")
    app.include_router(create_router(storage, prefix))
    return app
