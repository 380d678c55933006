"""
Chat client module.

This module is the client-side endpoint: it connects to the server, sends the
handshake, turns user input into protocol messages and yields what the
server relays back.
"""

import asyncio
import io
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from PIL import Image

from common.codec import FrameDecoder, read_message, write_message
from common.constants import (
    DEFAULT_HOST, DEFAULT_PORT, DEFAULT_MAX_PAYLOAD_SIZE, DEFAULT_MAX_FRAME_SIZE,
    QUIT_COMMAND, FILE_COMMAND, IMAGE_COMMAND
)
from common.errors import ChatError, ConnectionClosed, PayloadTooLarge
from common.protocol_definitions import (
    Message, create_text_message, create_file_message, create_image_message, validate_display_name
)
from client.utils.logger import logger

# Modes Pillow can write to PNG without conversion
PNG_MODES = ('1', 'L', 'LA', 'I', 'I;16', 'P', 'RGB', 'RGBA')


@dataclass(frozen=True)
class Disconnected:
    """Terminal event: the connection ended and no more messages will arrive."""
    reason: str


def is_quit_command(user_input: str) -> bool:
    return user_input.strip() == QUIT_COMMAND


def _command_argument(user_input: str, command: str) -> Optional[str]:
    stripped = user_input.strip()
    if stripped == command or stripped.startswith(command + ' '):
        return stripped[len(command):].strip()
    return None


class ChatClient:
    """Client-side chat endpoint."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, display_name: str = '',
                 max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE,
                 max_frame_size: int = DEFAULT_MAX_FRAME_SIZE):
        self.host = host
        self.port = port
        self.display_name = validate_display_name(display_name)
        self.max_payload_size = max_payload_size
        self.max_frame_size = max_frame_size

        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.decoder: Optional[FrameDecoder] = None
        self.connected = False

    async def connect(self):
        """Open the connection and send the handshake."""
        try:
            self.reader, self.writer = await asyncio.open_connection(self.host, self.port)
        except OSError as e:
            logger.log_connection(self.host, self.port, False)
            raise ConnectionClosed(f"cannot connect to {self.host}:{self.port}: {e}") from e

        logger.log_connection(self.host, self.port, True)
        # Inbound content was already bounded by the server; only the frame cap applies
        self.decoder = FrameDecoder(self.max_frame_size, None)
        self.connected = True

        logger.log_handshake(self.display_name)
        await self.send_message(create_text_message(self.display_name))

    def build_message(self, user_input: str) -> Message:
        """
        Turn one line of user input into a message.

        ``.file <path>`` sends a file, ``.image <path>`` sends an image
        converted to PNG, anything else is sent as text.
        """
        path = _command_argument(user_input, FILE_COMMAND)
        if path is not None:
            return self.build_file_message(path)
        path = _command_argument(user_input, IMAGE_COMMAND)
        if path is not None:
            return self.build_image_message(path)
        return create_text_message(user_input.rstrip('\r\n'))

    def build_file_message(self, path: Union[str, Path]) -> Message:
        path = Path(path).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"no such file: {path}")
        size = path.stat().st_size
        if size > self.max_payload_size:
            raise PayloadTooLarge(f"{path.name} is {size} bytes, limit is {self.max_payload_size}")
        return create_file_message(path.name, path.read_bytes())

    def build_image_message(self, path: Union[str, Path]) -> Message:
        path = Path(path).expanduser()
        with Image.open(path) as img:
            width, height = img.size
            if img.mode not in PNG_MODES:
                img = img.convert('RGBA')
            buffer = io.BytesIO()
            img.save(buffer, format='PNG')

        content = buffer.getvalue()
        if len(content) > self.max_payload_size:
            raise PayloadTooLarge(f"{path.name} is {len(content)} bytes as PNG, limit is {self.max_payload_size}")
        return create_image_message(width, height, content)

    async def send(self, user_input: str) -> Message:
        """Build a message from user input, send it and return it."""
        message = self.build_message(user_input)
        await self.send_message(message)
        return message

    async def send_message(self, message: Message):
        if not self.connected:
            raise ConnectionClosed("not connected to server")
        await write_message(self.writer, message)
        logger.log_sent(message.kind.name, message.content_size)

    async def receive(self) -> Message:
        """Wait for the next inbound message."""
        if not self.connected:
            raise ConnectionClosed("not connected to server")
        return await read_message(self.reader, self.decoder)

    async def messages(self) -> AsyncIterator[Union[Message, Disconnected]]:
        """
        Yield inbound messages for the current connection.

        The sequence ends with a single Disconnected event once the
        connection closes or fails. Reconnecting is left to the caller.
        """
        while True:
            try:
                message = await self.receive()
            except ConnectionClosed as e:
                self.connected = False
                yield Disconnected(str(e))
                return
            except ChatError as e:
                logger.warning(f"Discarded unreadable frame from server: {e}")
                continue
            yield message

    async def close(self):
        """Close the connection."""
        self.connected = False
        if self.writer is None:
            return
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing connection: {e}")
