"""Exceptions raised by the Jitsu Console client.

Not-found is not an error: ``read`` and ``read_workspace`` return ``None`` for both
missing and soft-deleted rows.
"""


class ConsoleClientError(Exception):
    """Base class for all client errors."""


class ConfigurationError(ConsoleClientError):
    """Raised when a required setting (credentials, database URL) is absent."""


class AuthenticationError(ConsoleClientError):
    """Raised when the credential exchange fails or the session is persistently rejected."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MissingCredentialsError(ConfigurationError, AuthenticationError):
    """Raised when username or password is not configured."""

    def __init__(self, message: str = "no authentication configured: set username/password"):
        AuthenticationError.__init__(self, message)


class TransportError(ConsoleClientError):
    """Raised when a request cannot be completed (connection error, timeout)."""

    def __init__(self, method: str, url: str, message: str):
        super().__init__(f"{method} {url} failed: {message}")
        self.method = method
        self.url = url


class APIError(ConsoleClientError):
    """Raised for any unexpected non-2xx response."""

    def __init__(self, method: str, url: str, status_code: int, body: str, hint: str | None = None):
        message = f"{method} {url} returned {status_code}: {body}"
        if hint:
            message = f"{hint}: {message}"
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body


class ProtocolError(ConsoleClientError):
    """Raised when a response body does not have the expected shape."""


class ReconcileError(ConsoleClientError):
    """Raised when hard-deleting a soft-deleted row fails at the database."""


class ConflictError(ConsoleClientError):
    """Raised when a soft-delete collision could not be recovered."""


class RollbackError(ConsoleClientError):
    """Raised when the second phase of a two-phase create fails.

    The newly-created resource is deleted before this is raised; ``rolled_back``
    tells whether that compensation succeeded.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str,
        original: Exception,
        rollback_error: Exception | None = None,
    ):
        if rollback_error is None:
            message = f"{original}. Rolled back newly-created {resource} {resource_id!r}."
        else:
            message = f"{original}. Rollback failed for {resource} {resource_id!r}: {rollback_error}"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id
        self.original = original
        self.rollback_error = rollback_error

    @property
    def rolled_back(self) -> bool:
        return self.rollback_error is None
