"""
Error taxonomy shared by the codec, the server sessions and the client.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure kinds, spelled the way they appear in ERROR messages."""
    MALFORMED_FRAME = 'MalformedFrame'
    FRAME_TOO_LARGE = 'FrameTooLarge'
    PAYLOAD_TOO_LARGE = 'PayloadTooLarge'
    QUEUE_FULL = 'QueueFull'
    CONNECTION_CLOSED = 'ConnectionClosed'
    HANDSHAKE_INVALID = 'HandshakeInvalid'


class ChatError(Exception):
    """
    A common superclass for all
    exceptions raised by the chat service.
    """
    kind: ErrorKind = None


class MalformedFrame(ChatError):
    """Bytes do not parse as a frame or payload."""
    kind = ErrorKind.MALFORMED_FRAME


class FrameTooLarge(ChatError):
    """Declared frame length exceeds the configured maximum."""
    kind = ErrorKind.FRAME_TOO_LARGE


class PayloadTooLarge(ChatError):
    """Declared or actual content size exceeds the configured maximum."""
    kind = ErrorKind.PAYLOAD_TOO_LARGE


class QueueFull(ChatError):
    """A recipient's outbound queue is saturated."""
    kind = ErrorKind.QUEUE_FULL


class ConnectionClosed(ChatError):
    """The peer closed the connection or the transport failed."""
    kind = ErrorKind.CONNECTION_CLOSED


class HandshakeInvalid(ChatError):
    """The first message did not carry a usable display name."""
    kind = ErrorKind.HANDSHAKE_INVALID
