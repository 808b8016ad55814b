"""Error types raised by model calls and outline handling."""

from __future__ import annotations


class ModelCallError(RuntimeError):
  """Base class for failures talking to the language-model endpoint."""


class TransientCallError(ModelCallError):
  """Network, rate-limit or upstream 5xx failure; retried until attempts run out."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


class MalformedResponseError(ModelCallError):
  """Response body could not be parsed as JSON."""


class EmptyCompletionError(ModelCallError):
  """Response parsed but carried no `choices[0].message.content`."""


class SectionGenerationError(ModelCallError):
  """Section content could not be produced after retries."""


class OutlineValidationError(ValueError):
  """The model's outline reply does not have the required shape."""


class OutlineParseError(OutlineValidationError):
  """The outline reply is not valid JSON or lacks `title` / `chapters`."""
