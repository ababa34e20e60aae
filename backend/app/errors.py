"""
Problem-details error envelope for the scheduling API.

Every error leaves the API as ``{type, title, status, detail, instance}``
plus a machine-readable ``code``. Conflicts carry what a client needs to
recover: the lesson holding the slot, or the version it should re-read.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)

PROBLEM_BASE = "/problems"

# Codes with a dedicated problem type; everything else is about:blank
PROBLEM_TYPES: Dict[str, str] = {
    "BOOKING_CONFLICT": f"{PROBLEM_BASE}/booking-conflict",
    "OPTIMISTIC_LOCK_CONFLICT": f"{PROBLEM_BASE}/stale-version",
    "TRANSIENT_STORE_ERROR": f"{PROBLEM_BASE}/store-unavailable",
    "validation_error": f"{PROBLEM_BASE}/validation",
}

# Detail keys promoted to the top level of the problem body
_PROMOTED_DETAILS = ("conflicting_lesson_id", "conflicting_slot_id", "current_version")


def _title_from_status(status_code: int) -> str:
    mapping = {
        400: "Bad Request",
        404: "Not Found",
        409: "Conflict",
        422: "Unprocessable Entity",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return mapping.get(status_code, "Error")


def _problem(
    *,
    status: int,
    title: Optional[str] = None,
    detail: Optional[Any] = None,
    instance: Optional[str] = None,
    code: Optional[str] = None,
    errors: Optional[Any] = None,
) -> Dict[str, Any]:
    problem: Dict[str, Any] = {
        "type": PROBLEM_TYPES.get(code or "", "about:blank"),
        "title": title or _title_from_status(status),
        "status": status,
        "detail": detail or "",
        "instance": instance or "",
    }
    if code:
        problem["code"] = code
    if errors is not None:
        problem["errors"] = errors
        if isinstance(errors, dict):
            for key in _PROMOTED_DETAILS:
                if key in errors:
                    problem[key] = errors[key]
    return problem


def _parse_detail(detail: Any) -> tuple[Optional[str], Optional[str], Optional[Any]]:
    """Split an HTTPException detail into (message, code, errors)."""
    if isinstance(detail, dict):
        code = detail.get("code") if isinstance(detail.get("code"), str) else None
        message = detail.get("message") or detail.get("detail")
        detail_text = message if isinstance(message, str) else None
        errors = detail.get("details") or detail.get("errors")
        return detail_text, code, errors
    if isinstance(detail, str):
        return detail, None, None
    if detail is None:
        return None, None, None
    return str(detail), None, None


def _http_problem_response(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail_text, code, errors = _parse_detail(exc.detail)
    problem = _problem(
        status=exc.status_code,
        detail=detail_text,
        instance=request.url.path,
        code=code,
        errors=jsonable_encoder(errors) if errors is not None else None,
    )
    if exc.status_code >= 500:
        logger.warning(
            f"{request.method} {request.url.path} failed with {exc.status_code}: {detail_text}",
            extra={"code": code, "path": request.url.path},
        )
    return JSONResponse(
        problem,
        status_code=exc.status_code,
        media_type="application/json",
        headers=getattr(exc, "headers", None),
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        return _http_problem_response(request, exc.to_http_exception())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return _http_problem_response(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _http_problem_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        detail_list = jsonable_encoder(exc.errors())
        problem = _problem(
            status=422,
            detail=detail_list,
            instance=request.url.path,
            code="validation_error",
            errors=detail_list,
        )
        return JSONResponse(problem, status_code=422, media_type="application/json")

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled error on {request.method} {request.url.path}: {exc}",
            exc_info=True,
            extra={"path": request.url.path},
        )
        problem = _problem(
            status=500,
            detail="Internal Server Error",
            instance=request.url.path,
            code="internal_server_error",
        )
        return JSONResponse(problem, status_code=500, media_type="application/json")
