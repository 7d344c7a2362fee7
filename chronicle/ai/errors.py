"""Errors raised by content synthesis."""

from __future__ import annotations


class SynthesisError(Exception):
  """Raised when the generation provider fails or returns unusable content for a unit of work."""
