"""
Preflight domain exceptions.

These exceptions are transport-agnostic and should be caught by the server
layer to convert into appropriate HTTP responses.
"""


class CoreError(Exception):
    """Base exception for all preflight errors."""

    pass


class NotFoundError(CoreError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class PreflightError(CoreError):
    """Raised when the classifier could not produce metadata for a batch."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class OracleError(CoreError):
    """Raised when a suggestion or explanation request fails."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class PersistenceError(CoreError):
    """Raised when a settings file could not be read for update or written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to update {path}: {reason}")
