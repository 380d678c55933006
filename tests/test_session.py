#!/usr/bin/env python3
"""
Unit tests for server/chat/session.py

Covers:
- Bounded outbound queue
- Handshake acceptance and rejection
- Dispatch of inbound messages and protocol errors
- Idempotent teardown from concurrent callers
"""

import asyncio
import unittest
from unittest.mock import AsyncMock, Mock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.codec import encode, decode
from common.errors import QueueFull, ConnectionClosed, ErrorKind
from common.protocol_definitions import create_text_message, create_file_message
from server.chat.registry import SessionRegistry
from server.chat.session import ClientSession, SessionState
from server.utils.config import ServerConfig


class FakeWriter:
    """Collects written bytes in memory."""

    def __init__(self, fail_writes=False, close_delay=0):
        self.data = bytearray()
        self.closed = False
        self.fail_writes = fail_writes
        self.close_delay = close_delay
        self.transport = Mock()

    def write(self, data):
        if self.fail_writes:
            raise ConnectionResetError("peer reset")
        self.data.extend(data)

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        if self.close_delay:
            await asyncio.sleep(self.close_delay)

    def get_extra_info(self, name, default=None):
        if name == 'peername':
            return ('127.0.0.1', 50000)
        return default

    def frames(self):
        """Split the written bytes back into messages."""
        messages = []
        data = bytes(self.data)
        while data:
            length = int.from_bytes(data[:4], 'big')
            messages.append(decode(data[:4 + length]))
            data = data[4 + length:]
        return messages


def bad_frame():
    body = b'\x09garbage'
    return len(body).to_bytes(4, 'big') + body


class SessionTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.config = ServerConfig(host='127.0.0.1', port=0, outbound_queue_size=2)
        self.config.handshake_timeout = 1
        self.registry = SessionRegistry()
        self.ready = asyncio.Event()
        self.dispatcher = Mock()
        self.dispatcher.on_session_ready = AsyncMock(side_effect=lambda session: self.ready.set())
        self.dispatcher.handle_message = AsyncMock()
        self.dispatcher.handle_protocol_error = AsyncMock()
        self.dispatcher.on_session_closed = AsyncMock()

    def make_session(self, writer=None, session_id=1):
        self.reader = asyncio.StreamReader()
        self.writer = writer or FakeWriter()
        return ClientSession(session_id, self.reader, self.writer, self.registry, self.dispatcher, self.config)

    async def start(self, session, name="alice"):
        self.reader.feed_data(encode(create_text_message(name)))
        task = asyncio.create_task(session.run())
        await asyncio.wait_for(self.ready.wait(), 1)
        return task


class TestOutboundQueue(SessionTestCase):

    async def test_queue_full(self):
        session = self.make_session()
        session.enqueue(create_text_message("1"))
        session.enqueue(create_text_message("2"))
        with self.assertRaises(QueueFull):
            session.enqueue(create_text_message("3"))
        self.assertEqual(session.pending, 2)

    async def test_enqueue_after_close(self):
        session = self.make_session()
        await session.close("test")
        with self.assertRaises(ConnectionClosed):
            session.enqueue(create_text_message("late"))


class TestHandshake(SessionTestCase):

    async def test_valid_handshake_registers(self):
        session = self.make_session()
        task = await self.start(session, "  alice  ")

        self.assertEqual(session.display_name, "alice")
        self.assertIs(session.state, SessionState.ACTIVE)
        self.assertIs(self.registry.lookup(1), session)

        self.reader.feed_eof()
        await asyncio.wait_for(task, 1)
        self.assertIs(session.state, SessionState.CLOSED)
        self.assertNotIn(1, self.registry)
        self.dispatcher.on_session_closed.assert_awaited_once_with(session, True)

    async def test_non_text_first_frame_rejected(self):
        session = self.make_session()
        self.reader.feed_data(encode(create_file_message("a.txt", b"abc")))
        await asyncio.wait_for(session.run(), 1)

        self.assertIs(session.state, SessionState.CLOSED)
        self.assertEqual(len(self.registry), 0)
        self.dispatcher.on_session_ready.assert_not_awaited()
        self.dispatcher.on_session_closed.assert_awaited_once_with(session, False)

        # the rejection is reported before the socket closes
        [reply] = self.writer.frames()
        self.assertIs(reply.error_kind, ErrorKind.HANDSHAKE_INVALID)
        self.assertTrue(self.writer.closed)

    async def test_empty_name_rejected(self):
        session = self.make_session()
        self.reader.feed_data(encode(create_text_message("   ")))
        await asyncio.wait_for(session.run(), 1)
        [reply] = self.writer.frames()
        self.assertIs(reply.error_kind, ErrorKind.HANDSHAKE_INVALID)

    async def test_handshake_timeout(self):
        self.config.handshake_timeout = 0.05
        session = self.make_session()
        await asyncio.wait_for(session.run(), 1)
        self.assertIs(session.state, SessionState.CLOSED)
        [reply] = self.writer.frames()
        self.assertIs(reply.error_kind, ErrorKind.HANDSHAKE_INVALID)


class TestReadLoop(SessionTestCase):

    async def test_messages_dispatched_in_order(self):
        session = self.make_session()
        task = await self.start(session)
        self.reader.feed_data(encode(create_text_message("one")) + encode(create_text_message("two")))
        self.reader.feed_eof()
        await asyncio.wait_for(task, 1)

        texts = [call.args[1].text for call in self.dispatcher.handle_message.await_args_list]
        self.assertEqual(texts, ["one", "two"])

    async def test_malformed_frames_close_session(self):
        session = self.make_session()
        task = await self.start(session)
        self.reader.feed_data(bad_frame() * self.config.max_consecutive_malformed)
        await asyncio.wait_for(task, 1)

        self.assertEqual(self.dispatcher.handle_protocol_error.await_count, self.config.max_consecutive_malformed)
        self.assertIs(session.state, SessionState.CLOSED)
        self.assertIn("malformed", session.close_reason)

    async def test_valid_frame_resets_malformed_streak(self):
        session = self.make_session()
        task = await self.start(session)
        self.reader.feed_data(bad_frame() * 2 + encode(create_text_message("ok")) + bad_frame() * 2)
        self.reader.feed_eof()
        await asyncio.wait_for(task, 1)

        self.assertEqual(self.dispatcher.handle_protocol_error.await_count, 4)
        self.dispatcher.handle_message.assert_awaited_once()
        self.assertNotIn("malformed", session.close_reason)

    async def test_oversized_content_reported_and_skipped(self):
        self.config.max_payload_size = 10
        session = self.make_session()
        task = await self.start(session)
        self.reader.feed_data(encode(create_file_message("big", b"x" * 100)) + encode(create_text_message("after")))
        self.reader.feed_eof()
        await asyncio.wait_for(task, 1)

        [call] = self.dispatcher.handle_protocol_error.await_args_list
        self.assertIs(call.args[1].kind, ErrorKind.PAYLOAD_TOO_LARGE)
        self.dispatcher.handle_message.assert_awaited_once()


class TestClose(SessionTestCase):

    async def test_concurrent_close_is_idempotent(self):
        self.registry.deregister = Mock(wraps=self.registry.deregister)
        session = self.make_session()
        task = await self.start(session)

        results = await asyncio.gather(session.close("first"), session.close("second"))
        await asyncio.wait_for(task, 1)

        self.assertEqual(sorted(results), [False, True])
        self.assertEqual(session.close_reason, "first")
        self.registry.deregister.assert_called_once_with(1)
        self.dispatcher.on_session_closed.assert_awaited_once_with(session, True)

    async def test_queued_messages_flushed_on_close(self):
        session = self.make_session()
        task = await self.start(session)
        session.enqueue(create_text_message("goodbye"))
        await session.close("done")
        await asyncio.wait_for(task, 1)

        self.assertEqual([m.text for m in self.writer.frames()], ["goodbye"])

    async def test_write_failure_tears_down(self):
        session = self.make_session(writer=FakeWriter(fail_writes=True))
        task = await self.start(session)
        session.enqueue(create_text_message("lost"))
        await asyncio.wait_for(task, 1)

        self.assertIs(session.state, SessionState.CLOSED)
        self.assertNotIn(1, self.registry)
        self.dispatcher.on_session_closed.assert_awaited_once()

    async def test_write_failure_and_eof_together(self):
        """The reader already tearing itself down is not cancelled by the writer's close."""
        self.registry.deregister = Mock(wraps=self.registry.deregister)
        session = self.make_session(writer=FakeWriter(fail_writes=True, close_delay=0.05))
        task = await self.start(session)

        session.enqueue(create_text_message("lost"))
        self.reader.feed_eof()
        await asyncio.wait_for(task, 1)

        self.assertFalse(task.cancelled())
        self.assertIsNone(task.result())
        self.assertIs(session.state, SessionState.CLOSED)
        self.registry.deregister.assert_called_once_with(1)
        self.dispatcher.on_session_closed.assert_awaited_once_with(session, True)


if __name__ == '__main__':
    unittest.main()
