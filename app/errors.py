from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger


class RejectedTransition(Exception):
    """A status change or cancellation that violates a lifecycle guard."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class UpstreamFailure(Exception):
    """The HMS API rejected a call or could not be reached."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @property
    def http_status(self) -> int:
        # 4xx are mirrored to the caller, anything else is a bad gateway
        if 400 <= self.status_code < 500:
            return self.status_code
        return status.HTTP_502_BAD_GATEWAY


def upstream_message(payload: object, fallback: str) -> str:
    """
    Pull a user-facing message out of an upstream error payload.
    Accepts both `{"data": {"message": ...}}` and `{"message": ...}` shapes.
    """
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        if payload.get("message"):
            return str(payload["message"])
    return fallback


async def _rejected_transition_handler(
    request: Request, exc: RejectedTransition
) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def _upstream_failure_handler(
    request: Request, exc: UpstreamFailure
) -> JSONResponse:
    logger.warning(
        "Upstream failure on {} {}: {} {}",
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RejectedTransition, _rejected_transition_handler)  # type: ignore[arg-type]
    app.add_exception_handler(UpstreamFailure, _upstream_failure_handler)  # type: ignore[arg-type]
