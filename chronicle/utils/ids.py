"""Identifier utilities."""

from __future__ import annotations

import secrets
import socket
import string
import uuid


def generate_book_id() -> str:
  """Return a new book identifier."""
  return str(uuid.uuid4())


def generate_job_id() -> str:
  """Return a new generation job identifier."""
  return str(uuid.uuid4())


def generate_nanoid(size: int = 16) -> str:
  """Return a short non-sequential id suitable for public references."""
  alphabet = string.ascii_letters + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(size))


def generate_worker_id() -> str:
  """Return a lease owner identity for this process.

  The hostname prefix only helps operators read lease columns; uniqueness comes from the random suffix.
  """
  host = socket.gethostname().split(".", 1)[0] or "worker"
  return f"{host}-{generate_nanoid(12)}"
