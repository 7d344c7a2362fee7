from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from chronicle import __version__
from chronicle.ai.errors import SynthesisError
from chronicle.api.routes import books, jobs
from chronicle.config import get_settings
from chronicle.core.exceptions import (
  authorization_exception_handler,
  conflict_exception_handler,
  global_exception_handler,
  http_exception_handler,
  not_found_exception_handler,
  request_validation_exception_handler,
  synthesis_exception_handler,
)
from chronicle.core.lifespan import lifespan
from chronicle.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from chronicle.jobs.errors import AuthorizationError, JobConflictError, NotFoundError

settings = get_settings()

app = FastAPI(title="Chronicle", version=__version__, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(NotFoundError, not_found_exception_handler)
app.add_exception_handler(AuthorizationError, authorization_exception_handler)
app.add_exception_handler(JobConflictError, conflict_exception_handler)
app.add_exception_handler(SynthesisError, synthesis_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(books.router, prefix="/v1/books", tags=["books"])
app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
