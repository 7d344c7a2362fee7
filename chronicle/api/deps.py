"""Shared FastAPI dependencies for the job store, the tick driver and its synthesizer."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from chronicle.ai.synthesizer import ContentSynthesizer
from chronicle.jobs.driver import GenerationDriver
from chronicle.storage.jobs_repo import GenerationJobsRepository

logger = logging.getLogger(__name__)


def get_jobs_repo(request: Request) -> GenerationJobsRepository:
  """Return the process-wide job store wired in the lifespan."""
  return request.app.state.jobs_repo


def get_generation_driver(request: Request) -> GenerationDriver:
  """Return the process-wide tick driver, or 503 when content generation is not configured."""
  driver = getattr(request.app.state, "driver", None)
  if driver is None:
    logger.warning("Advance requested but content generation is not configured")
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Content generation is not configured.")
  return driver


def get_content_synthesizer(request: Request) -> ContentSynthesizer:
  """Return the synthesizer behind the tick driver for single-page edits, or 503 when generation is not configured."""
  driver = getattr(request.app.state, "driver", None)
  if driver is None:
    logger.warning("Entry generation requested but content generation is not configured")
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Content generation is not configured.")
  return driver.synthesizer
