"""Custom exceptions for detection sessions."""


class SessionError(Exception):
    """Base session exception."""


class SessionClosedError(SessionError):
    """Raised when an operation needs a session that has already closed."""


class SessionNotFoundError(SessionError):
    """Raised when a session does not exist in the registry."""


class SessionAlreadyExistsError(SessionError):
    """Raised when attempting to create a session id that is already in use."""


class ResourceLimitExceededError(SessionError):
    """Raised when max concurrent sessions is reached."""
