"""Custom exceptions for the adapter."""


class AdapterError(Exception):
    """Base error for the adapter."""


class InvalidToolDefinition(AdapterError):
    """A tool specification could not be turned into a valid tool definition."""

    def __init__(self, name: str, message: str):
        super().__init__(f'Invalid tool definition for "{name}": {message}')
        self.name = name


class SessionConflictError(AdapterError):
    """A transport was registered under a session id that is already in use."""


class TransportClosedError(AdapterError):
    """A message was delivered to a transport whose stream is already closed."""
