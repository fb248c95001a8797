"""Exception hierarchy shared by the service layers.

Every error carries an HTTP status code so the API layer can turn anything
that escapes a request into a JSON envelope without a lookup table.
"""

from __future__ import annotations


class ChatServiceError(Exception):
    """Base class for errors raised by the Agent Chat service."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        if status_code is not None:
            self.status_code = status_code
        self.message = message
        super().__init__(message)


class InputValidationError(ChatServiceError):
    """Malformed caller input.  Never retried."""

    status_code = 400


class NotFoundError(ChatServiceError):
    """A session or agent referenced by the caller does not exist."""

    status_code = 404


class ServiceUnavailableError(ChatServiceError):
    """Shared dependencies are not wired yet (the app is still starting)."""

    status_code = 503


class ConfigurationError(ChatServiceError):
    """A required setting is absent at the moment it is needed."""


class EmbeddingError(ChatServiceError):
    """The embedding provider failed to vectorise the query."""


class VectorStoreError(ChatServiceError):
    """Raised by the vector backend client for a non-2xx response.

    ``http_status`` and ``code`` are the backend's own values (PostgREST
    error codes such as ``PGRST202``), not the status this service answers
    with.
    """

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        code: str | None = None,
    ):
        self.http_status = http_status
        self.code = code
        super().__init__(message)


class KnowledgeBaseUnavailable(ChatServiceError):
    """The similarity search function is not provisioned (or not configured)."""


class KnowledgeBaseQueryError(ChatServiceError):
    """The similarity search failed for a reason worth retrying later."""


class ProviderError(ChatServiceError):
    """The completion provider failed; the turn is aborted."""


class PersistenceError(ChatServiceError):
    """The relational store failed; the turn is aborted."""
