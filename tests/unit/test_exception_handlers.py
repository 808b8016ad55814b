"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from textbook_engine.core.exceptions import _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Validation errors stay JSON-serializable and never echo the submitted prompt."""
  errors = [{"type": "value_error", "loc": ("body", "prompt"), "msg": "Value error, prompt too long.", "input": {"prompt": "secret topic"}, "ctx": {"error": ValueError("prompt too long."), "input": {"prompt": "secret topic"}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: prompt too long."
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body", "prompt"]
