"""Error taxonomy for provider routing and generation runs."""

from typing import Optional


class BuildableError(Exception):
    """Base class for all Buildable errors."""


class ConfigurationError(BuildableError):
    """The process is misconfigured. Raised at startup, never per request."""


class NoConfiguredProvider(ConfigurationError):
    """No provider with credentials is routed for a task type."""

    def __init__(self, task: str):
        self.task = task
        super().__init__(f"No configured provider for task: {task}")


class ProviderError(BuildableError):
    """
    A single provider call failed.

    Adapters translate SDK exceptions into one of the subclasses below so the
    execution engine can decide whether the failure is retryable.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.provider = provider
        self.model = model
        self.status_code = status_code
        super().__init__(message)


class ProviderRateLimited(ProviderError):
    """Throttling (429, quota, too many requests). Retried in place."""


class ProviderUnavailable(ProviderError):
    """Provider is down, overloaded or returned an unexpected error."""


class ProviderAuthError(ProviderError):
    """Credentials were rejected (401/403)."""


class AllProvidersExhausted(BuildableError):
    """Every candidate for a task failed."""

    def __init__(self, task: str, last_error: Optional[BaseException] = None):
        self.task = task
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"All providers exhausted for task {task}{detail}")


class ResponseParseError(BuildableError):
    """
    Model output did not match the expected schema.

    ``tokens_used`` and ``cost`` describe the call that produced the output,
    which is billed even though its result is unusable.
    """

    def __init__(self, what: str, detail: str, raw: str = "", tokens_used: int = 0, cost: float = 0.0):
        self.what = what
        self.raw = raw
        self.tokens_used = tokens_used
        self.cost = cost
        super().__init__(f"Failed to parse {what}: {detail}")


class PerFileGenerationError(BuildableError):
    """Generating a single file failed. Isolated to that file."""

    def __init__(self, path: str, cause: BaseException):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to generate {path}: {cause}")


class RunCancelled(BuildableError):
    """The session was cancelled (or otherwise finalized) while running."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} was cancelled")


class InvalidTransition(BuildableError):
    """A session status change that the state machine does not allow."""

    def __init__(self, current: str, new: str):
        self.current = current
        self.new = new
        super().__init__(f"Invalid session status transition: {current} -> {new}")
