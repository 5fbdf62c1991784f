"""Async client core for the Jitsu Console configuration API."""

__version__ = "0.1.0"

from .client import ConsoleClient  # noqa: E402
from .errors import (  # noqa: E402
    APIError,
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    ConsoleClientError,
    MissingCredentialsError,
    ProtocolError,
    ReconcileError,
    RollbackError,
    TransportError,
)
from .reconciler import SoftDeleteReconciler, TableKind  # noqa: E402
from .session import SessionManager  # noqa: E402

__all__ = [
    "__version__",
    "ConsoleClient",
    "SessionManager",
    "SoftDeleteReconciler",
    "TableKind",
    # Errors
    "ConsoleClientError",
    "ConfigurationError",
    "AuthenticationError",
    "MissingCredentialsError",
    "TransportError",
    "APIError",
    "ProtocolError",
    "ReconcileError",
    "ConflictError",
    "RollbackError",
]
