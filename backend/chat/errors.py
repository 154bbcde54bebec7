"""
Exception taxonomy for the messaging layer.

ChatError subclasses are "expected" failures: the session handler turns them
into an error frame on the caller's own connection (and the REST API into an
HTTPException) without touching storage. Anything else is a backend failure
and is logged and surfaced as a 500.
"""


class ChatError(Exception):
    """Base class for client-facing messaging errors."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """Request is missing required fields or carries invalid values."""
    status_code = 400


class AuthenticationError(ChatError):
    """Caller identity could not be established (token or connection)."""
    status_code = 401


class AuthorizationError(ChatError):
    """Caller is not a party to the addressed conversation."""
    status_code = 403


class UnknownEventTypeError(ChatError):
    """Domain event type is not one of the known shift events."""
    status_code = 400


class StaleConnectionError(Exception):
    """
    The remote end of a WebSocket connection is gone (GoneException).

    Not a ChatError: callers reclassify it as cleanup work and unregister
    the connection instead of reporting it to anyone.
    """

    def __init__(self, connection_id: str):
        super().__init__(f"Connection gone: {connection_id}")
        self.connection_id = connection_id
