from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

log = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTPException rendered as ``{"error": detail, "code": code, **extra}``."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        *,
        code: str | None = None,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.code = code
        self.extra = extra or {}


class ProviderError(ApiError):
    """A remote provider call failed. ``upstream_status`` is None for transport errors."""

    def __init__(
        self,
        detail: str,
        *,
        upstream_status: int | None = None,
        upstream_code: str | None = None,
        status_code: int = 502,
        code: str = "PROVIDER_ERROR",
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(status_code, detail, code=code, extra=extra)
        self.upstream_status = upstream_status
        self.upstream_code = upstream_code

    @property
    def is_not_found(self) -> bool:
        return self.upstream_status == 404 or "not found" in self.detail.lower()

    @property
    def is_already_exists(self) -> bool:
        return self.upstream_status == 409 or "already exists" in self.detail.lower()


def bad_request(detail: str, code: str | None = None, **extra: Any) -> ApiError:
    return ApiError(400, detail, code=code, extra=extra)


def unauthorized(detail: str = "Unauthorized", code: str | None = None) -> ApiError:
    return ApiError(401, detail, code=code)


def not_found(detail: str = "Not found") -> ApiError:
    return ApiError(404, detail, code="NOT_FOUND")


def internal_error(detail: str = "Internal server error", code: str | None = None, **extra: Any) -> ApiError:
    return ApiError(500, detail, code=code, extra=extra)


def gateway_timeout(detail: str = "Gateway timeout", code: str | None = None, **extra: Any) -> ApiError:
    return ApiError(504, detail, code=code, extra=extra)


def service_unavailable(detail: str = "Service unavailable") -> ApiError:
    return ApiError(503, detail, code="SERVICE_UNAVAILABLE")


def _error_body(detail: Any, code: str | None, extra: dict[str, Any]) -> dict[str, Any]:
    body: dict[str, Any] = {"error": detail}
    if code:
        body["code"] = code
    body.update(extra)
    return body


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = getattr(exc, "code", None)
    extra = getattr(exc, "extra", None) or {}
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail, code, extra),
        headers=getattr(exc, "headers", None),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    return JSONResponse(
        status_code=400,
        content=_error_body("Missing required fields", "VALIDATION_ERROR", {"fields": fields}),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("http.unhandled_error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
