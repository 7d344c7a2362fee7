"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from chronicle.core.exceptions import _error_payload, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Validation errors stay JSON-serializable and never echo the raw request payload."""
  errors = [{"type": "value_error", "loc": ("body", "birth_month"), "msg": "Value error, Unknown month: 'Smarch'.", "input": "Smarch", "ctx": {"error": ValueError("Unknown month: 'Smarch'."), "input": "Smarch"}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: Unknown month: 'Smarch'."
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body", "birth_month"]


def test_error_payload_attaches_request_id_when_present() -> None:
  assert _error_payload("Forbidden", request_id="req-1") == {"detail": "Forbidden", "requestId": "req-1"}
  assert _error_payload("Forbidden") == {"detail": "Forbidden"}
