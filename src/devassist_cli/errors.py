"""Error taxonomy for analysis orchestration.

Validation and rate-limit errors surface immediately, backend errors are
retried with a fallback model, parse errors never leave the response parser.
"""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for all devassist errors."""


class ValidationError(AssistantError):
    """Request is malformed, empty, or too large. Never retried."""


class RateLimitExceeded(AssistantError):
    """The rate limiter rejected the request. Never retried."""


class BackendError(AssistantError):
    """Error communicating with an AI backend (transient, retryable)."""


class ParseError(AssistantError):
    """AI output could not be decoded into a result."""


class AnalysisFailure(AssistantError):
    """Terminal failure: no analyzer available or all attempts exhausted."""
