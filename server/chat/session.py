"""
Client session module.

One ClientSession owns one accepted connection. It runs an inbound task that
decodes frames and hands them to the dispatcher, and an outbound task that
drains the session's queue onto the socket.
"""

import asyncio
from enum import Enum
from typing import Optional

from common.codec import FrameDecoder, read_message, write_message
from common.constants import MessageKind
from common.errors import (
    MalformedFrame, FrameTooLarge, PayloadTooLarge, QueueFull, ConnectionClosed, HandshakeInvalid
)
from common.protocol_definitions import Message, create_error_message, validate_display_name
from server.utils.logger import logger


class SessionState(Enum):
    CONNECTING = 'connecting'
    ACTIVE = 'active'
    CLOSING = 'closing'
    CLOSED = 'closed'


_CLOSE = object()  # outbound sentinel: stop after flushing what is ahead of it


class ClientSession:
    """Server-side state and I/O loops for one client connection."""

    def __init__(self, session_id: int, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 registry, dispatcher, config):
        self.session_id = session_id
        self.reader = reader
        self.writer = writer
        self.registry = registry
        self.dispatcher = dispatcher
        self.config = config
        self.addr = writer.get_extra_info('peername')

        self.display_name: Optional[str] = None
        self.state = SessionState.CONNECTING
        self.close_reason: Optional[str] = None

        # The bound is enforced in enqueue() so the close sentinel always fits
        self.outbound: asyncio.Queue = asyncio.Queue()
        self.decoder = FrameDecoder(config.max_frame_size, config.max_payload_size)

        self._malformed_streak = 0
        self._reader_finished = False
        self._reader_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()

    @property
    def name(self) -> str:
        return self.display_name or f"session-{self.session_id}"

    @property
    def pending(self) -> int:
        """Number of messages waiting in the outbound queue."""
        return self.outbound.qsize()

    def enqueue(self, message: Message):
        """
        Queue message for delivery without blocking.

        Raises QueueFull when the outbound queue is saturated and
        ConnectionClosed once the session has started closing.
        """
        if self.state in (SessionState.CLOSING, SessionState.CLOSED):
            raise ConnectionClosed(f"session {self.session_id} is closing")
        if self.outbound.qsize() >= self.config.outbound_queue_size:
            raise QueueFull(f"session {self.session_id} has {self.outbound.qsize()} messages pending")
        self.outbound.put_nowait(message)

    async def run(self):
        """Run the session until its connection ends; always tears down."""
        self._reader_task = asyncio.current_task()
        self._writer_task = asyncio.create_task(self._write_loop())
        reason = "connection closed"

        try:
            await self._handshake()
            self.registry.register(self)
            self.state = SessionState.ACTIVE
            logger.log_handshake(self.display_name, self.session_id)
            await self.dispatcher.on_session_ready(self)
            await self._read_loop()
        except HandshakeInvalid as e:
            reason = f"handshake failed: {e}"
            logger.warning(f"Handshake from {self.addr} (session={self.session_id}) rejected: {e}")
            try:
                self.enqueue(create_error_message(e.kind, str(e)))
            except (QueueFull, ConnectionClosed):
                pass
        except ConnectionClosed as e:
            reason = str(e)
        except MalformedFrame as e:
            reason = f"too many malformed frames: {e}"
        except asyncio.CancelledError:
            if self.state in (SessionState.CONNECTING, SessionState.ACTIVE):
                raise
            # cancelled by close()
            reason = self.close_reason
        except Exception as e:
            logger.log_error(f"session {self.session_id}", e)
            reason = f"internal error: {e}"
        finally:
            self._reader_finished = True
            await self.close(reason)

    async def _handshake(self):
        """Wait for the first frame and take the display name from it."""
        try:
            message = await asyncio.wait_for(
                read_message(self.reader, self.decoder), self.config.handshake_timeout
            )
        except asyncio.TimeoutError:
            raise HandshakeInvalid(f"no handshake within {self.config.handshake_timeout}s") from None
        except (MalformedFrame, FrameTooLarge, PayloadTooLarge) as e:
            raise HandshakeInvalid(f"unreadable handshake: {e}") from e

        if message.kind is not MessageKind.TEXT:
            raise HandshakeInvalid(f"first message must be TEXT carrying the display name, got {message.kind.name}")
        self.display_name = validate_display_name(message.payload.text)

    async def _read_loop(self):
        while self.state is SessionState.ACTIVE:
            try:
                message = await read_message(self.reader, self.decoder)
            except (FrameTooLarge, PayloadTooLarge) as e:
                await self.dispatcher.handle_protocol_error(self, e)
                continue
            except MalformedFrame as e:
                self._malformed_streak += 1
                await self.dispatcher.handle_protocol_error(self, e)
                if self._malformed_streak >= self.config.max_consecutive_malformed:
                    raise
                continue

            self._malformed_streak = 0
            await self.dispatcher.handle_message(self, message)

    async def _write_loop(self):
        while True:
            message = await self.outbound.get()
            if message is _CLOSE:
                return
            try:
                await write_message(self.writer, message)
            except ConnectionClosed as e:
                logger.debug(f"Write to session={self.session_id} failed: {e}")
                await self.close(str(e))
                return

    async def close(self, reason: str = "closed") -> bool:
        """
        Tear the session down.

        Safe to call concurrently from the inbound task, the outbound task and
        the dispatcher: the first call performs the teardown and returns True,
        later calls wait for it to finish and return False.
        """
        current = asyncio.current_task()
        if self.state in (SessionState.CLOSING, SessionState.CLOSED):
            if current is not self._writer_task:
                await self._closed.wait()
            return False

        self.state = SessionState.CLOSING
        self.close_reason = reason
        was_registered = self.registry.deregister(self.session_id)

        # Flush what was already queued, best effort
        self.outbound.put_nowait(_CLOSE)
        if self._writer_task is not None and current is not self._writer_task:
            try:
                await asyncio.wait_for(self._writer_task, self.config.flush_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out flushing session={self.session_id}, discarding {self.pending} message(s)")

        try:
            self.writer.close()
            await asyncio.wait_for(self.writer.wait_closed(), self.config.flush_timeout)
        except asyncio.TimeoutError:
            self.writer.transport.abort()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Socket close for session={self.session_id} failed: {e}")

        # A reader already in its own teardown is waiting on _closed and must not be cancelled
        if (self._reader_task is not None and current is not self._reader_task
                and not self._reader_finished and not self._reader_task.done()):
            self._reader_task.cancel()

        self.state = SessionState.CLOSED
        self._closed.set()
        logger.log_disconnect(self.name, self.session_id, reason)
        await self.dispatcher.on_session_closed(self, was_registered)
        return True
