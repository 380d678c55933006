"""
Wire protocol codec.

Frame layout (network byte order)::

    [u32 length][payload]
    payload = [u8 kind][kind fields][optional envelope trailer]

    TEXT / SYSTEM_NOTICE / ERROR   [u32 length][UTF-8 bytes]
    FILE                           [u32 name length][name][u64 length][content]
    IMAGE                          [u32 width][u32 height][u64 length][content]
    envelope trailer               [u32 sender length][sender][u64 timestamp ms]

The trailer is only written for messages that carry a sender or timestamp,
so a client submission is exactly the kind header plus its fields.
"""

import asyncio
import struct
from typing import Optional

from common.constants import (
    MessageKind, FRAME_HEADER_SIZE, FRAME_HEADROOM, READ_CHUNK_SIZE,
    DEFAULT_MAX_FRAME_SIZE, DEFAULT_MAX_PAYLOAD_SIZE
)
from common.errors import MalformedFrame, FrameTooLarge, PayloadTooLarge, ConnectionClosed
from common.protocol_definitions import Message, TextPayload, FilePayload, ImagePayload

_LENGTH = struct.Struct('!I')
_KIND = struct.Struct('!B')
_BLOB_LENGTH = struct.Struct('!Q')
_IMAGE_HEADER = struct.Struct('!IIQ')

_TEXT_KINDS = (MessageKind.TEXT, MessageKind.SYSTEM_NOTICE, MessageKind.ERROR)

MAX_FRAME_LENGTH = 0xFFFFFFFF


class _Cursor:
    """Sequential reader over a payload body."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, count: int) -> bytes:
        if count > self.remaining:
            raise MalformedFrame(f"payload truncated: need {count} bytes, {self.remaining} left")
        chunk = self.data[self.offset:self.offset + count]
        self.offset += count
        return bytes(chunk)

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.take(fmt.size))


def _utf8(data: bytes, field: str) -> str:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedFrame(f"{field} is not valid UTF-8") from e


def frame_limit_for(max_payload_size: int) -> int:
    """Frame cap that leaves room for headers around max_payload_size bytes of content."""
    return max(DEFAULT_MAX_FRAME_SIZE, max_payload_size + FRAME_HEADROOM)

def _check_content(length: int, max_payload_size: Optional[int]):
    if max_payload_size is not None and length > max_payload_size:
        raise PayloadTooLarge(f"content is {length} bytes, limit is {max_payload_size}")


def encode_payload(message: Message) -> bytes:
    """Serialize message without its length prefix."""
    kind = message.kind
    payload = message.payload
    parts = [_KIND.pack(kind)]

    try:
        if kind in _TEXT_KINDS:
            data = payload.text.encode('utf-8')
            parts += [_LENGTH.pack(len(data)), data]
        elif kind is MessageKind.FILE:
            name = payload.filename.encode('utf-8')
            parts += [_LENGTH.pack(len(name)), name, _BLOB_LENGTH.pack(len(payload.content)), payload.content]
        elif kind is MessageKind.IMAGE:
            parts += [_IMAGE_HEADER.pack(payload.width, payload.height, len(payload.content)), payload.content]
        else:
            raise ValueError(f"cannot encode message kind {kind!r}")

        if message.sender or message.timestamp:
            sender = message.sender.encode('utf-8')
            parts += [_LENGTH.pack(len(sender)), sender, _BLOB_LENGTH.pack(message.timestamp)]
    except struct.error as e:
        raise ValueError(f"field out of range for {kind.name} message: {e}") from e

    return b''.join(parts)


def encode(message: Message) -> bytes:
    """Serialize message into a complete length-prefixed frame."""
    body = encode_payload(message)
    if len(body) > MAX_FRAME_LENGTH:
        raise ValueError(f"payload of {len(body)} bytes does not fit a frame")
    return _LENGTH.pack(len(body)) + body


def decode_payload(body: bytes, max_payload_size: Optional[int] = None) -> Message:
    """Parse a payload body (the bytes after the length prefix)."""
    if not body:
        raise MalformedFrame("empty payload")

    cursor = _Cursor(body)
    (kind_byte,) = cursor.unpack(_KIND)
    try:
        kind = MessageKind(kind_byte)
    except ValueError:
        raise MalformedFrame(f"unknown message kind {kind_byte}") from None

    if kind in _TEXT_KINDS:
        (length,) = cursor.unpack(_LENGTH)
        _check_content(length, max_payload_size)
        payload = TextPayload(_utf8(cursor.take(length), 'text'))
    elif kind is MessageKind.FILE:
        (name_length,) = cursor.unpack(_LENGTH)
        filename = _utf8(cursor.take(name_length), 'filename')
        (length,) = cursor.unpack(_BLOB_LENGTH)
        _check_content(length, max_payload_size)
        payload = FilePayload(filename, cursor.take(length))
    elif kind is MessageKind.IMAGE:
        width, height, length = cursor.unpack(_IMAGE_HEADER)
        _check_content(length, max_payload_size)
        payload = ImagePayload(width, height, cursor.take(length))
    else:
        raise MalformedFrame(f"no decoder for message kind {kind.name}")

    sender, timestamp = '', 0
    if cursor.remaining:
        (sender_length,) = cursor.unpack(_LENGTH)
        sender = _utf8(cursor.take(sender_length), 'sender')
        (timestamp,) = cursor.unpack(_BLOB_LENGTH)
        if cursor.remaining:
            raise MalformedFrame(f"{cursor.remaining} trailing bytes after payload")

    return Message(kind, payload, sender, timestamp)


def decode(frame: bytes, max_frame_size: Optional[int] = None,
           max_payload_size: Optional[int] = None) -> Message:
    """Parse exactly one complete frame."""
    if len(frame) < FRAME_HEADER_SIZE:
        raise MalformedFrame("frame shorter than its length prefix")
    (length,) = _LENGTH.unpack_from(frame)
    if max_frame_size is not None and length > max_frame_size:
        raise FrameTooLarge(f"declared frame length {length} exceeds limit {max_frame_size}")
    carried = len(frame) - FRAME_HEADER_SIZE
    if carried != length:
        raise MalformedFrame(f"frame declares {length} payload bytes but carries {carried}")
    return decode_payload(frame[FRAME_HEADER_SIZE:], max_payload_size)


def peek_content_length(body: bytes) -> Optional[int]:
    """
    Return the content length declared by the start of a payload body.

    Returns None while too few bytes are available, or when the kind byte is
    unknown (the full decode reports that).
    """
    if not body:
        return None
    kind = body[0]
    if kind in _TEXT_KINDS:
        if len(body) < 1 + _LENGTH.size:
            return None
        return _LENGTH.unpack_from(body, 1)[0]
    if kind == MessageKind.FILE:
        if len(body) < 1 + _LENGTH.size:
            return None
        name_length = _LENGTH.unpack_from(body, 1)[0]
        offset = 1 + _LENGTH.size + name_length
        if len(body) < offset + _BLOB_LENGTH.size:
            return None
        return _BLOB_LENGTH.unpack_from(body, offset)[0]
    if kind == MessageKind.IMAGE:
        if len(body) < 1 + _IMAGE_HEADER.size:
            return None
        return _IMAGE_HEADER.unpack_from(body, 1)[2]
    return None


class FrameDecoder:
    """
    Incremental frame reassembler.

    Bytes are pushed in with ``feed`` in chunks of any size; ``next_message``
    returns the next complete message or None when more bytes are needed.
    Oversized frames are rejected as soon as their length prefix (or content
    header) is visible, and their remaining bytes are discarded as they
    arrive, so the decoder stays aligned on frame boundaries afterwards.
    """

    def __init__(self, max_frame_size: Optional[int] = DEFAULT_MAX_FRAME_SIZE,
                 max_payload_size: Optional[int] = DEFAULT_MAX_PAYLOAD_SIZE):
        self.max_frame_size = max_frame_size
        self.max_payload_size = max_payload_size
        self._buffer = bytearray()
        self._frame_length: Optional[int] = None
        self._content_checked = False
        self._skip = 0

    @property
    def buffered(self) -> int:
        """Number of bytes currently held in memory."""
        return len(self._buffer)

    @property
    def discarding(self) -> int:
        """Bytes of a rejected frame still to be dropped."""
        return self._skip

    def feed(self, data: bytes):
        if self._skip:
            dropped = min(self._skip, len(data))
            self._skip -= dropped
            data = data[dropped:]
        self._buffer.extend(data)

    def next_message(self) -> Optional[Message]:
        if self._frame_length is None:
            if len(self._buffer) < FRAME_HEADER_SIZE:
                return None
            (length,) = _LENGTH.unpack_from(self._buffer)
            del self._buffer[:FRAME_HEADER_SIZE]
            if self.max_frame_size is not None and length > self.max_frame_size:
                self._discard(length)
                raise FrameTooLarge(f"declared frame length {length} exceeds limit {self.max_frame_size}")
            if length == 0:
                raise MalformedFrame("empty frame")
            self._frame_length = length
            self._content_checked = False

        if not self._content_checked and self.max_payload_size is not None:
            head = bytes(self._buffer[:min(self._frame_length, FRAME_HEADROOM)])
            declared = peek_content_length(head)
            if declared is not None:
                self._content_checked = True
                if declared > self.max_payload_size:
                    length, self._frame_length = self._frame_length, None
                    self._discard(length)
                    raise PayloadTooLarge(f"content is {declared} bytes, limit is {self.max_payload_size}")

        if len(self._buffer) < self._frame_length:
            return None

        body = bytes(self._buffer[:self._frame_length])
        del self._buffer[:self._frame_length]
        self._frame_length = None
        return decode_payload(body, self.max_payload_size)

    def _discard(self, count: int):
        dropped = min(count, len(self._buffer))
        del self._buffer[:dropped]
        self._skip = count - dropped


async def read_message(reader: asyncio.StreamReader, decoder: FrameDecoder) -> Message:
    """
    Read until decoder yields a complete message.

    Codec errors for one frame propagate and leave the decoder positioned on
    the next frame; a closed or failed stream raises ConnectionClosed.
    """
    while True:
        message = decoder.next_message()
        if message is not None:
            return message
        try:
            chunk = await reader.read(READ_CHUNK_SIZE)
        except (ConnectionError, OSError) as e:
            raise ConnectionClosed(f"read failed: {e}") from e
        if not chunk:
            raise ConnectionClosed("connection closed by peer")
        decoder.feed(chunk)


async def write_message(writer: asyncio.StreamWriter, message: Message):
    """Encode message and write it, waiting for the transport to drain."""
    try:
        writer.write(encode(message))
        await writer.drain()
    except (ConnectionError, OSError) as e:
        raise ConnectionClosed(f"write failed: {e}") from e
