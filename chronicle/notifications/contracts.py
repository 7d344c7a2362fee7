"""Contracts for outbound notification delivery."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class EmailNotification:
  """Represents an email notification payload."""

  to_address: str
  to_name: str | None
  subject: str
  text: str
  html: str


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when a specific provider (e.g. MailerSend) returns a delivery error."""


class EmailSender(Protocol):
  """Delivery contract for sending email notifications."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    """Send an email notification synchronously and return provider identifiers."""


class BookNotifier(Protocol):
  """Terminal-state notifications for book generation. Implementations never raise."""

  async def notify_book_complete(self, *, to_address: str | None, book_id: str, name: str, entry_count: int = 365) -> None:
    """Tell the owner their book is ready."""

  async def notify_book_failed(self, *, to_address: str | None, name: str) -> None:
    """Tell the owner their book could not be generated."""
