#!/usr/bin/env python3
"""
Interactive terminal client.

Reads lines from stdin and sends them through a ChatClient; prints what the
server relays and saves received attachments.
"""

import asyncio
import sys
import threading
from typing import Union

from common.constants import MessageKind
from common.errors import ChatError
from common.protocol_definitions import Message
from client.chat.chat_client import ChatClient, Disconnected, is_quit_command
from client.files.file_client import AttachmentStore
from client.utils.config import ClientConfig
from client.utils.logger import logger


def format_message(message: Message, saved_to=None) -> str:
    """Render an inbound message as one line of terminal output."""
    stamp = message.sent_at.astimezone().strftime('%H:%M:%S') if message.sent_at else '--:--:--'
    kind = message.kind

    if kind is MessageKind.TEXT:
        return f"[{stamp}] {message.sender}: {message.payload.text}"
    elif kind is MessageKind.FILE:
        line = f"[{stamp}] {message.sender} sent file '{message.payload.filename}' ({message.content_size} bytes)"
    elif kind is MessageKind.IMAGE:
        payload = message.payload
        line = f"[{stamp}] {message.sender} sent image {payload.width}x{payload.height} ({message.content_size} bytes)"
    elif kind is MessageKind.SYSTEM_NOTICE:
        return f"[{stamp}] * {message.payload.text}"
    elif kind is MessageKind.ERROR:
        return f"[{stamp}] ! Server error: {message.payload.text}"
    else:
        raise ValueError(f"cannot render message kind {kind!r}")

    if saved_to is not None:
        line += f" -> saved to {saved_to}"
    return line


class InteractiveClient:
    """Terminal front end around a ChatClient."""

    def __init__(self, config: ClientConfig, output=None, input_stream=None):
        self.config = config
        self.client = ChatClient(config.host, config.port, config.display_name,
                                 config.max_payload_size, config.max_frame_size)
        self.attachments = AttachmentStore(config.download_dir)
        self.output = output or sys.stdout
        self.input_stream = input_stream or sys.stdin
        self.running = False

    def show(self, line: str):
        print(line, file=self.output, flush=True)

    def handle_event(self, event: Union[Message, Disconnected]):
        """Display one inbound event."""
        if isinstance(event, Disconnected):
            self.show(f"[INFO] Disconnected: {event.reason}")
            return

        saved_to = None
        if event.kind in (MessageKind.FILE, MessageKind.IMAGE):
            try:
                saved_to = self.attachments.save(event)
                logger.log_saved(event.kind.name, saved_to)
            except OSError as e:
                logger.log_error("saving attachment", e)
        self.show(format_message(event, saved_to))

    async def listen_for_messages(self):
        """Print inbound events until the connection ends."""
        async for event in self.client.messages():
            self.handle_event(event)
        self.running = False

    async def submit(self, user_input: str) -> bool:
        """Send one line of input; returns False when the user asked to quit."""
        if is_quit_command(user_input):
            return False
        if not user_input.strip():
            return True
        try:
            await self.client.send(user_input)
        except (OSError, ValueError, ChatError) as e:
            # Bad paths and oversized attachments are reported, the session continues
            self.show(f"[ERROR] {e}")
        return True

    def _read_input(self, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue):
        """Feed stdin lines into the event loop from a daemon thread."""
        try:
            for line in self.input_stream:
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, '')
        except RuntimeError:
            # event loop already closed
            return

    async def interactive_mode(self) -> int:
        """Run client with interactive chat input; returns the exit code."""
        try:
            await self.client.connect()
        except ChatError as e:
            logger.log_error("connection", e)
            self.show(f"[ERROR] {e}")
            return 1

        self.running = True
        listener_task = asyncio.create_task(self.listen_for_messages())
        self.show(f"[INFO] Connected as '{self.client.display_name}'. "
                  f"Type to chat, .file PATH, .image PATH, .quit to exit")

        lines: asyncio.Queue = asyncio.Queue()
        threading.Thread(
            target=self._read_input,
            args=(asyncio.get_running_loop(), lines),
            daemon=True
        ).start()

        try:
            while self.running:
                line_task = asyncio.ensure_future(lines.get())
                done, _ = await asyncio.wait({line_task, listener_task}, return_when=asyncio.FIRST_COMPLETED)
                if line_task not in done:
                    line_task.cancel()
                    break
                user_input = line_task.result()
                if not user_input:
                    break  # EOF
                if not await self.submit(user_input):
                    break
        finally:
            await self.client.close()
            if not listener_task.done():
                listener_task.cancel()
            try:
                await listener_task
            except asyncio.CancelledError:
                pass
            logger.info("Disconnected from server")

        return 0
