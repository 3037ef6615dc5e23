# taskrecall/domain/errors.py
#
# Low-level components raise the narrow errors below. Only the search
# orchestrator and the HTTP layer translate them into client-facing failures.


class TaskRecallError(Exception):
    """Base class for every error raised by the package."""


class InvalidInput(TaskRecallError):
    """Caller error: empty text, malformed vector, unknown enum value."""


class Unauthorized(TaskRecallError):
    """Missing or invalid credentials, or an owner that is not the caller."""


class NotFound(TaskRecallError):
    """The referenced row does not exist or belongs to another owner."""


class ProviderError(TaskRecallError):
    """An upstream model call failed. Callers decide whether to retry."""


class ProviderUnavailable(ProviderError):
    """Network failure, timeout, or non-2xx response from the provider."""


class ProviderMalformedResponse(ProviderError):
    """The provider answered, but not with a usable payload."""


class SearchUnavailable(TaskRecallError):
    """Generic search failure surfaced instead of provider internals."""

    def __init__(self, message: str = "Search is temporarily unavailable."):
        super().__init__(message)
