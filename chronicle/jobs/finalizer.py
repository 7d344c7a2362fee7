"""Turn twelve months of accumulated entries into a completed book."""

from __future__ import annotations

import logging
from datetime import datetime

from chronicle.ai.synthesizer import ContentSynthesizer
from chronicle.jobs.calendar import sort_entries_by_calendar
from chronicle.jobs.models import BookEntry, BookRecord, GenerationJobRecord
from chronicle.notifications.contracts import BookNotifier
from chronicle.storage.jobs_repo import GenerationJobsRepository

logger = logging.getLogger(__name__)


class Finalizer:
  """Sorts entries, adds a cover and commits the book and job as complete."""

  def __init__(self, *, repo: GenerationJobsRepository, synthesizer: ContentSynthesizer, notifier: BookNotifier) -> None:
    self._repo = repo
    self._synthesizer = synthesizer
    self._notifier = notifier

  async def finalize(self, job: GenerationJobRecord, book: BookRecord, entries: list[BookEntry], *, worker_id: str, now: datetime) -> GenerationJobRecord:
    """Commit the finished book. Raises LeaseLostError when the lease moved; nothing is written then."""
    sorted_entries = sort_entries_by_calendar(entries)
    cover_image_url = await self._resolve_cover(book)

    completed = await self._repo.commit_finalization(job.job_id, worker_id=worker_id, expected_version=job.version, sorted_entries=sorted_entries, cover_image_url=cover_image_url, now=now)
    logger.info("Job %s completed: book %s has %s entries (cover=%s)", job.job_id, book.book_id, len(sorted_entries), cover_image_url is not None)

    try:
      await self._notifier.notify_book_complete(to_address=book.owner_email, book_id=book.book_id, name=book.preferences.name, entry_count=len(sorted_entries))
    except Exception as exc:  # noqa: BLE001
      logger.error("Completion notification failed for book %s: %s", book.book_id, exc, exc_info=True)

    return completed

  async def _resolve_cover(self, book: BookRecord) -> str | None:
    # A re-finalization after a crash keeps the cover the book already has.
    if book.generation_status == "complete" and book.cover_image_url:
      return book.cover_image_url

    try:
      cover = await self._synthesizer.synthesize_cover(book.preferences)
    except Exception as exc:  # noqa: BLE001
      logger.error("Cover generation failed for book %s; completing without a cover: %s", book.book_id, exc)
      return None

    if cover is None:
      logger.warning("Cover generation returned no image for book %s", book.book_id)
      return None
    return cover.as_data_url()
