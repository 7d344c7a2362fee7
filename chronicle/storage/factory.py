"""Repository selection based on configuration."""

from __future__ import annotations

import logging

from chronicle.config import Settings
from chronicle.storage.jobs_repo import GenerationJobsRepository
from chronicle.storage.memory_jobs_repo import InMemoryGenerationJobsRepository
from chronicle.storage.postgres_jobs_repo import PostgresGenerationJobsRepository

logger = logging.getLogger(__name__)


def build_jobs_repo(settings: Settings) -> GenerationJobsRepository:
  """Return the Postgres repository when a DSN is configured, otherwise an in-process store."""
  if settings.pg_dsn:
    return PostgresGenerationJobsRepository()

  logger.warning("CHRONICLE_PG_DSN is not set; using the in-memory job store. State is lost on restart.")
  return InMemoryGenerationJobsRepository()
