"""Error taxonomy for generation jobs.

Lease contention and terminal job failure are reported as tick results, not raised.
"""

from __future__ import annotations


class JobError(Exception):
  """Base class for generation job errors."""


class NotFoundError(JobError):
  """Raised when a requested job or book does not exist."""


class JobNotFoundError(NotFoundError):
  """Raised when a generation job does not exist."""


class BookNotFoundError(NotFoundError):
  """Raised when a book does not exist."""


class EntryNotFoundError(NotFoundError):
  """Raised when a book has no entry at the requested position."""


class AuthorizationError(JobError):
  """Raised when the caller does not own the requested record."""


class JobAccessDeniedError(AuthorizationError):
  """Raised when the caller is not the owner of a generation job."""


class JobConflictError(JobError):
  """Raised when an operation is not allowed in the job's current state."""


class BookConflictError(JobConflictError):
  """Raised when a book edit is not allowed in the book's state or lost a race with another edit."""


class LeaseLostError(JobError):
  """Raised when a commit finds the lease no longer belongs to this worker."""
