"""Custom exceptions for the Paperless-NGX metadata enricher."""

from __future__ import annotations


class EnricherError(Exception):
    """Base exception for all enricher errors."""


class ConfigError(EnricherError):
    """Configuration is invalid or missing."""


class PaperlessAPIError(EnricherError):
    """Paperless-NGX API returned an error."""

    def __init__(self, message: str, status_code: int | None = None, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class LLMError(EnricherError):
    """LLM endpoint returned an error or unexpected response."""


class BackendUnavailable(LLMError):
    """LLM client cannot be constructed or the backend is unreachable."""


class LLMTimeoutError(BackendUnavailable):
    """LLM request timed out."""


class InvalidResponseShape(LLMError):
    """Backend replied, but without the expected message/content field."""


class BudgetExceeded(EnricherError):
    """The prompt alone consumes the whole token budget."""

    def __init__(self, message: str, prompt_tokens: int = 0, max_tokens: int = 0):
        self.prompt_tokens = prompt_tokens
        self.max_tokens = max_tokens
        super().__init__(message)


class MalformedModelOutput(EnricherError):
    """Model output could not be parsed as JSON, even after sanitizing."""


class ExternalDataValidationFailure(EnricherError):
    """External context data could not be sized or truncated."""


class AnalysisFailed(EnricherError):
    """Analysis returned the degraded result with an error; nothing was written."""

    def __init__(self, message: str, doc_id: int | None = None):
        self.doc_id = doc_id
        super().__init__(message)
