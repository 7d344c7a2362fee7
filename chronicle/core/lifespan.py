import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from chronicle.ai.synthesizer import build_content_synthesizer
from chronicle.config import Settings
from chronicle.core.database import dispose_engine
from chronicle.core.firebase import initialize_firebase
from chronicle.core.logging import initialize_logging
from chronicle.jobs.driver import DriverConfig, GenerationDriver
from chronicle.notifications.factory import build_notification_service
from chronicle.storage.factory import build_jobs_repo
from chronicle.storage.jobs_repo import GenerationJobsRepository
from chronicle.utils.ids import generate_worker_id

logger = logging.getLogger("chronicle.core.lifespan")


def build_driver(settings: Settings, *, repo: GenerationJobsRepository, worker_id: str) -> GenerationDriver | None:
  """Wire the tick driver; None when content generation is not configured."""
  try:
    synthesizer = build_content_synthesizer(api_key=settings.gemini_api_key, text_model=settings.text_model, image_model=settings.image_model)
  except ValueError as exc:
    logger.warning("Content generation disabled: %s", exc)
    return None

  config = DriverConfig(worker_id=worker_id, max_retries=settings.max_retries, lock_timeout=timedelta(seconds=settings.lock_timeout_seconds))
  return GenerationDriver(repo=repo, synthesizer=synthesizer, notifier=build_notification_service(settings), config=config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging and wire per-process collaborators onto app.state."""
  from chronicle.config import get_settings

  settings = get_settings()
  initialize_logging(settings)
  initialize_firebase()

  # One lease identity per process; every tick from this process uses it.
  worker_id = settings.worker_id or generate_worker_id()
  repo = build_jobs_repo(settings)

  app.state.worker_id = worker_id
  app.state.jobs_repo = repo
  app.state.driver = build_driver(settings, repo=repo, worker_id=worker_id)
  logger.info("Startup complete worker_id=%s store=%s generation_enabled=%s", worker_id, type(repo).__name__, app.state.driver is not None)

  try:
    yield
  finally:
    await dispose_engine()
    logger.info("Shutdown complete worker_id=%s", worker_id)
