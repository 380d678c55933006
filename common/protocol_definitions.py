"""
Protocol definitions for the chat relay service.

This module defines the message structures exchanged between client and server
components. The binary layout lives in common.codec.
"""

import dataclasses
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from common.constants import MessageKind, MAX_DISPLAY_NAME_LENGTH
from common.errors import ErrorKind, HandshakeInvalid


@dataclass(frozen=True)
class TextPayload:
    """UTF-8 text; used by TEXT, SYSTEM_NOTICE and ERROR messages."""
    text: str


@dataclass(frozen=True)
class FilePayload:
    """File content together with its original filename."""
    filename: str
    content: bytes


@dataclass(frozen=True)
class ImagePayload:
    """Encoded image content together with its decoded pixel dimensions."""
    width: int
    height: int
    content: bytes


Payload = Union[TextPayload, FilePayload, ImagePayload]

KIND_PAYLOADS = {
    MessageKind.TEXT: TextPayload,
    MessageKind.FILE: FilePayload,
    MessageKind.IMAGE: ImagePayload,
    MessageKind.SYSTEM_NOTICE: TextPayload,
    MessageKind.ERROR: TextPayload,
}


@dataclass(frozen=True)
class Message:
    """
    The unit of communication.

    ``sender`` and ``timestamp`` are stamped by the server on ingress; a
    client submission leaves them empty. ``timestamp`` is milliseconds since
    the Unix epoch.
    """
    kind: MessageKind
    payload: Payload
    sender: str = ''
    timestamp: int = 0

    def __post_init__(self):
        kind = MessageKind(self.kind)
        object.__setattr__(self, 'kind', kind)
        expected = KIND_PAYLOADS[kind]
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"{kind.name} message needs {expected.__name__}, got {type(self.payload).__name__}"
            )
        if self.timestamp < 0:
            raise ValueError("timestamp must not be negative")

    @property
    def content_size(self) -> int:
        """Size in bytes of the user content carried by this message."""
        if isinstance(self.payload, TextPayload):
            return len(self.payload.text.encode('utf-8'))
        return len(self.payload.content)

    @property
    def text(self) -> Optional[str]:
        if isinstance(self.payload, TextPayload):
            return self.payload.text
        return None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        """The ErrorKind named by an ERROR message, if it names a known one."""
        if self.kind is not MessageKind.ERROR:
            return None
        name = self.payload.text.split(':', 1)[0].strip()
        try:
            return ErrorKind(name)
        except ValueError:
            return None

    @property
    def sent_at(self) -> Optional[datetime]:
        if not self.timestamp:
            return None
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def stamp_message(message: Message, sender: str, timestamp: int = None) -> Message:
    """Return a copy of message attributed to sender at the ingress time."""
    return dataclasses.replace(
        message,
        sender=sender,
        timestamp=now_millis() if timestamp is None else timestamp,
    )


def create_text_message(text: str) -> Message:
    """Create a text message."""
    return Message(MessageKind.TEXT, TextPayload(text))


def create_file_message(filename: str, content: bytes) -> Message:
    """Create a file message."""
    return Message(MessageKind.FILE, FilePayload(filename, bytes(content)))


def create_image_message(width: int, height: int, content: bytes) -> Message:
    """Create an image message."""
    return Message(MessageKind.IMAGE, ImagePayload(width, height, bytes(content)))


def create_system_notice(text: str) -> Message:
    """Create a server notice stamped with the current time."""
    return Message(MessageKind.SYSTEM_NOTICE, TextPayload(text), timestamp=now_millis())


def create_error_message(error_kind: ErrorKind, detail: str = '') -> Message:
    """Create an error message naming error_kind."""
    text = error_kind.value if not detail else f"{error_kind.value}: {detail}"
    return Message(MessageKind.ERROR, TextPayload(text), timestamp=now_millis())


def validate_display_name(name: str) -> str:
    """Return the cleaned display name or raise HandshakeInvalid."""
    name = name.strip()
    if not name:
        raise HandshakeInvalid("display name is empty")
    if len(name) > MAX_DISPLAY_NAME_LENGTH:
        raise HandshakeInvalid(f"display name longer than {MAX_DISPLAY_NAME_LENGTH} characters")
    if not name.isprintable():
        raise HandshakeInvalid("display name contains control characters")
    return name
