import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chronicle.ai.errors import SynthesisError
from chronicle.jobs.errors import AuthorizationError, JobConflictError, NotFoundError

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Serialize exception instances explicitly to avoid leaking non-serializable objects.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build a safe error payload that avoids leaking internal details to clients."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  request_id = _request_id(request)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  request_id = _request_id(request)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  from chronicle.config import get_settings

  settings = get_settings()
  request_id = _request_id(request)
  # Do not expose `exc.detail` of 5xx errors to callers.
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))


async def not_found_exception_handler(request: Request, exc: NotFoundError) -> JSONResponse:
  """Map missing jobs and books to 404."""
  request_id = _request_id(request)
  logger.info("Not found request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_payload(str(exc) or "Not found", request_id=request_id))


async def authorization_exception_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
  """Map ownership violations to 403 without revealing the record owner."""
  request_id = _request_id(request)
  logger.warning("Forbidden request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=_error_payload("Forbidden", request_id=request_id))


async def conflict_exception_handler(request: Request, exc: JobConflictError) -> JSONResponse:
  """Map state conflicts (active job, non-failed delete) to 409."""
  request_id = _request_id(request)
  logger.info("Conflict request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_payload(str(exc), request_id=request_id))


async def synthesis_exception_handler(request: Request, exc: SynthesisError) -> JSONResponse:
  """Map a failed single-entry generation to 502 without echoing provider diagnostics."""
  request_id = _request_id(request)
  logger.error("Content generation failed request_id=%s path=%s error=%s", request_id, request.url.path, exc)
  return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=_error_payload("Content generation failed. Try again.", request_id=request_id))
