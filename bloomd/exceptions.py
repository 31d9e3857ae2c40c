"""
Exception hierarchy for the bloomd client.

All errors raised by this package inherit from BloomdError so callers can
catch every client failure with a single except clause. Nothing here is
retried internally; errors are raised to the caller as soon as they occur.
"""
from typing import Optional


class BloomdError(Exception):
    """
    Base exception for all bloomd client errors.
    """
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Network errors

class ConnectionError(BloomdError):
    """
    Socket level failure: dial, write, read, timeout or premature EOF.

    The connection that raised it is left unhealthy and is not reconnected.
    """
    pass


class ConnectionRefusedError(ConnectionError):
    """Server actively refused the connection (ECONNREFUSED)."""
    pass


class ConnectionTimeoutError(ConnectionError):
    """Connection attempt timed out."""
    pass


class SendError(ConnectionError):
    """Failed to write a command to the socket."""
    pass


class ReceiveError(ConnectionError):
    """Failed to read a response from the socket."""
    pass


class ReceiveTimeoutError(ReceiveError):
    """Timed out waiting for a response line."""
    pass


class ConnectionClosedError(ReceiveError):
    """Peer closed the connection before a full line arrived."""
    pass


# Protocol errors

class ProtocolError(BloomdError):
    """
    Response stream did not have the expected shape.

    After a ProtocolError the position of the stream is unknown; block-mode
    callers should close the connection rather than keep using it.
    """
    pass


class IncompleteBlockError(ProtocolError):
    """Stream ended before the END sentinel of a block."""
    pass


class MalformedLineError(ProtocolError):
    """A response line could not be split or parsed into the expected fields."""
    pass


# Server replies

class RemoteError(BloomdError):
    """
    Server replied with text the caller cannot interpret in context.

    The exact reply is kept on ``response``.
    """
    def __init__(self, message: str, response: str, details: Optional[dict] = None):
        super().__init__(message, {"response": response, **(details or {})})
        self.response = response


class FilterNotFoundError(RemoteError):
    """Server replied 'Filter does not exist'."""
    pass


# Caller errors

class InvalidArgument(BloomdError):
    """
    Caller-side precondition violated.

    Always raised before anything is written to the socket.
    """
    pass
