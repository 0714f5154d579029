"""
Engine-wide exception hierarchy.

Services and assistants raise these types; blueprints map them to HTTP
status codes once. Provider and parse failures are recovered locally by
the assistants (rule-based fallback) and executor failures are folded
into a failed ActionExecutionResult, so only NotFoundError and
ValidationError normally reach the HTTP layer.

Usage:
    from compliance_engine.core.exceptions import NotFoundError, ProviderError

    raise NotFoundError(resource="Action", resource_id="act-1")
    raise ProviderError("HTTP 503 from provider", provider="glm", status_code=503)
"""


class DecisionEngineError(Exception):
    """Base class for every error raised by the decision engine."""


class NotFoundError(DecisionEngineError):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Action", "AIConfig").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(DecisionEngineError):
    """Raised when input is well-formed but violates a domain rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ProviderError(DecisionEngineError):
    """Text-generation provider call failed.

    Covers missing credentials, unsupported provider kinds, non-2xx
    responses, timeouts, connection errors and empty completions. The
    error shape is the same for every provider kind.

    Args:
        message: What went wrong.
        provider: Provider kind that was called ("glm", "openai", "gemini").
        status_code: HTTP status when the provider answered, else None.
        retryable: True for timeouts, 429 and 5xx answers.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class ParseError(DecisionEngineError):
    """Provider reply could not be decoded into the expected shape."""


class UnsupportedActionTypeError(DecisionEngineError):
    def __init__(self, action_type) -> None:
        self.action_type = getattr(action_type, "value", action_type)
        super().__init__(f"Unsupported action type: {self.action_type}")


class ActionNotFoundError(NotFoundError):
    """Raised when an action id is not present in the Action Store."""

    def __init__(self, action_id: str) -> None:
        self.resource = "Action"
        self.resource_id = action_id
        DecisionEngineError.__init__(self, "Action not found")


class ExecutionError(DecisionEngineError):
    """A type-specific action handler failed."""
