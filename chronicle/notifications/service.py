"""Notification orchestration for book generation events."""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool

from chronicle.notifications.contracts import BookNotifier, EmailNotification, EmailSender, NotificationProviderError
from chronicle.notifications.template_renderer import render_email_template

logger = logging.getLogger(__name__)


class NotificationService(BookNotifier):
  """Dispatches best-effort email notifications; delivery problems are logged, never raised."""

  def __init__(self, *, email_sender: EmailSender, email_enabled: bool, app_base_url: str) -> None:
    self._email_sender = email_sender
    self._email_enabled = email_enabled
    self._app_base_url = app_base_url.rstrip("/")

  async def send_email_template(self, *, to_address: str, to_name: str | None, template_id: str, placeholders: dict) -> bool:
    """Render and send a templated email. Returns True when the provider accepted it."""
    # Avoid sending notifications when the feature is not configured.
    if not self._email_enabled:
      return False

    try:
      # Render inside the try block so template errors are contained too.
      subject, text_body, html_body = render_email_template(template_id=template_id, placeholders=placeholders)
      notification = EmailNotification(to_address=to_address, to_name=to_name, subject=subject, text=text_body, html=html_body)
      send_result = await run_in_threadpool(self._email_sender.send, notification)

    except NotificationProviderError as exc:
      logger.error("Email notification delivery failed (provider error) template_id=%s: %s", template_id, exc)
      return False

    except Exception as exc:  # noqa: BLE001
      logger.error("Email notification delivery failed template_id=%s: %s", template_id, exc, exc_info=True)
      return False

    logger.info("Email notification sent template_id=%s provider=%s message_id=%s", template_id, send_result.get("provider"), send_result.get("message_id"))
    return True

  async def notify_book_complete(self, *, to_address: str | None, book_id: str, name: str, entry_count: int = 365) -> None:
    """Notify the owner that their book finished generating."""
    if not to_address:
      logger.info("Skipping completion email for book %s: owner has no contact address", book_id)
      return

    placeholders = {"name": name, "book_url": f"{self._app_base_url}?book={book_id}", "entry_count": entry_count}
    await self.send_email_template(to_address=to_address, to_name=None, template_id="book_complete_v1", placeholders=placeholders)

  async def notify_book_failed(self, *, to_address: str | None, name: str) -> None:
    """Notify the owner that generation failed permanently."""
    if not to_address:
      logger.info("Skipping failure email for %s: owner has no contact address", name)
      return

    placeholders = {"name": name, "library_url": f"{self._app_base_url}/my-books"}
    await self.send_email_template(to_address=to_address, to_name=None, template_id="book_failed_v1", placeholders=placeholders)
