"""Request id propagation and RFC 9457 problem+json rendering."""

import time
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from shared.exceptions import ProblemDetailError

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128
PROBLEM_JSON = "application/problem+json"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = structlog.get_logger()


def _incoming_request_id(request: Request) -> str:
    rid = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if not rid or len(rid) > MAX_REQUEST_ID_LENGTH:
        return str(uuid4())
    return rid


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind X-Request-ID to the context, echo it back and log one line per request.

    A missing or oversized header is replaced with a fresh UUID v4.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]):
        rid = _incoming_request_id(request)
        token = request_id_var.set(rid)
        structlog.contextvars.bind_contextvars(request_id=rid)
        started = time.monotonic()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            logger.debug(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - started) * 1000, 1),
            )
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
            request_id_var.reset(token)


def _problem(request: Request, status: int, body: dict) -> JSONResponse:
    body["instance"] = request.url.path
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_JSON)


async def problem_detail_handler(request: Request, exc: ProblemDetailError) -> JSONResponse:
    if exc.status >= 500:
        logger.warning("request_failed", title=exc.title, status=exc.status, detail=exc.detail)
    body: dict = {
        "type": exc.type_uri,
        "title": exc.title,
        "status": exc.status,
        "detail": exc.detail,
    }
    if exc.violations:
        body["violations"] = exc.violations
    return _problem(request, exc.status, body)


def _violation(err: dict) -> dict:
    # drop the "body"/"query" prefix pydantic puts on request locations
    field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query"))
    return {
        "field": field or "(root)",
        "message": err.get("msg", "Validation error"),
        "constraint": err.get("type", "validation"),
    }


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    violations = [_violation(err) for err in exc.errors()]
    return _problem(
        request,
        422,
        {
            "type": "https://api.sleepdebt.local/problems/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": f"Request contains {len(violations)} validation error(s)",
            "violations": violations,
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Error"
    return _problem(
        request,
        exc.status_code,
        {"type": "about:blank", "title": detail, "status": exc.status_code, "detail": detail},
    )


def install_problem_handlers(app: FastAPI) -> None:
    """Route every error the app can raise through problem+json."""
    app.add_exception_handler(ProblemDetailError, problem_detail_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
