#!/usr/bin/env python3
"""
Unit tests for common/codec.py

Covers:
- Encoding and decoding of every message kind
- Incremental reassembly regardless of chunking
- Early rejection of oversized frames and content
- Malformed input
"""

import asyncio
import struct
import unittest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.codec import (
    FrameDecoder, encode, encode_payload, decode, decode_payload, peek_content_length, read_message
)
from common.constants import MessageKind
from common.errors import MalformedFrame, FrameTooLarge, PayloadTooLarge, ConnectionClosed, ErrorKind
from common.protocol_definitions import (
    Message, TextPayload, create_text_message, create_file_message, create_image_message,
    create_system_notice, create_error_message, stamp_message
)


def sample_messages():
    return [
        create_text_message("hello"),
        create_text_message(""),
        create_text_message("héllo wörld ✓"),
        create_file_message("notes.txt", b"line one\nline two\n"),
        create_file_message("empty.bin", b""),
        create_image_message(2, 3, b"\x89PNG fake"),
        create_system_notice("alice joined the chat"),
        create_error_message(ErrorKind.PAYLOAD_TOO_LARGE, "too big"),
        stamp_message(create_text_message("stamped"), "alice", 1700000000123),
        stamp_message(create_file_message("a.txt", b"abc"), "bob", 1),
    ]


class TestEncodeDecode(unittest.TestCase):
    """Whole-frame encoding and decoding."""

    def test_roundtrip_all_kinds(self):
        """Decoding an encoded message gives the same message back."""
        for message in sample_messages():
            with self.subTest(kind=message.kind.name, sender=message.sender):
                self.assertEqual(decode(encode(message)), message)

    def test_length_prefix(self):
        """The frame starts with the big-endian length of the rest."""
        frame = encode(create_text_message("hi"))
        (length,) = struct.unpack('!I', frame[:4])
        self.assertEqual(length, len(frame) - 4)
        # kind byte, u32 text length, text
        self.assertEqual(frame[4:], b'\x00' + struct.pack('!I', 2) + b'hi')

    def test_client_submission_has_no_trailer(self):
        body = encode_payload(create_file_message("x", b"12"))
        self.assertEqual(body, b'\x01' + struct.pack('!I', 1) + b'x' + struct.pack('!Q', 2) + b'12')

    def test_image_layout(self):
        body = encode_payload(create_image_message(640, 480, b"px"))
        self.assertEqual(body, b'\x02' + struct.pack('!IIQ', 640, 480, 2) + b'px')

    def test_unknown_kind(self):
        with self.assertRaises(MalformedFrame):
            decode_payload(b'\x09\x00\x00\x00\x00')

    def test_truncated_text(self):
        with self.assertRaises(MalformedFrame):
            decode_payload(b'\x00' + struct.pack('!I', 10) + b'short')

    def test_truncated_file_header(self):
        with self.assertRaises(MalformedFrame):
            decode_payload(b'\x01\x00\x00')

    def test_invalid_utf8(self):
        with self.assertRaises(MalformedFrame):
            decode_payload(b'\x00' + struct.pack('!I', 2) + b'\xff\xfe')

    def test_trailing_bytes(self):
        body = encode_payload(stamp_message(create_text_message("x"), "a", 5)) + b'junk'
        with self.assertRaises(MalformedFrame):
            decode_payload(body)

    def test_empty_payload(self):
        with self.assertRaises(MalformedFrame):
            decode_payload(b'')

    def test_length_mismatch(self):
        frame = encode(create_text_message("hello"))
        with self.assertRaises(MalformedFrame):
            decode(frame[:-1])
        with self.assertRaises(MalformedFrame):
            decode(frame + b'x')

    def test_decode_frame_too_large(self):
        frame = encode(create_text_message("x" * 100))
        with self.assertRaises(FrameTooLarge):
            decode(frame, max_frame_size=50)

    def test_decode_payload_too_large(self):
        frame = encode(create_file_message("big", b"x" * 100))
        with self.assertRaises(PayloadTooLarge):
            decode(frame, max_payload_size=99)
        # exactly at the limit is accepted
        self.assertEqual(decode(frame, max_payload_size=100).content_size, 100)

    def test_out_of_range_field(self):
        with self.assertRaises(ValueError):
            encode(create_image_message(2 ** 32, 1, b""))

    def test_peek_content_length(self):
        body = encode_payload(create_file_message("name.txt", b"x" * 42))
        self.assertEqual(peek_content_length(body), 42)
        self.assertIsNone(peek_content_length(body[:6]))
        self.assertIsNone(peek_content_length(b'\x07'))
        self.assertEqual(peek_content_length(encode_payload(create_text_message("abc"))), 3)


class TestFrameDecoder(unittest.TestCase):
    """Incremental reassembly."""

    def drain(self, decoder):
        messages = []
        while True:
            message = decoder.next_message()
            if message is None:
                return messages
            messages.append(message)

    def test_byte_by_byte_matches_whole_buffer(self):
        """Chunking never changes the decoded sequence."""
        messages = sample_messages()
        stream = b''.join(encode(m) for m in messages)

        whole = FrameDecoder()
        whole.feed(stream)
        self.assertEqual(self.drain(whole), messages)

        trickle = FrameDecoder()
        decoded = []
        for i in range(len(stream)):
            trickle.feed(stream[i:i + 1])
            decoded.extend(self.drain(trickle))
        self.assertEqual(decoded, messages)
        self.assertEqual(trickle.buffered, 0)

    def test_odd_chunk_sizes(self):
        messages = sample_messages()
        stream = b''.join(encode(m) for m in messages)
        for size in (2, 3, 7, 13):
            with self.subTest(chunk=size):
                decoder = FrameDecoder()
                decoded = []
                for i in range(0, len(stream), size):
                    decoder.feed(stream[i:i + size])
                    decoded.extend(self.drain(decoder))
                self.assertEqual(decoded, messages)

    def test_incomplete_frame_returns_none(self):
        decoder = FrameDecoder()
        decoder.feed(encode(create_text_message("hello"))[:-2])
        self.assertIsNone(decoder.next_message())

    def test_frame_too_large_rejected_on_prefix(self):
        """Only the length prefix is needed to reject an oversized frame."""
        decoder = FrameDecoder(max_frame_size=1024, max_payload_size=None)
        decoder.feed(struct.pack('!I', 10 * 1024 * 1024))
        with self.assertRaises(FrameTooLarge):
            decoder.next_message()
        self.assertEqual(decoder.buffered, 0)
        self.assertEqual(decoder.discarding, 10 * 1024 * 1024)

    def test_resync_after_frame_too_large(self):
        big = encode(create_text_message("x" * 300))
        small = create_text_message("after")
        decoder = FrameDecoder(max_frame_size=100, max_payload_size=None)
        decoder.feed(big[:50])
        with self.assertRaises(FrameTooLarge):
            decoder.next_message()
        decoder.feed(big[50:] + encode(small))
        self.assertEqual(decoder.next_message(), small)

    def test_payload_too_large_from_header(self):
        """Oversized content is rejected before the content itself arrives."""
        content = b"x" * 10000
        frame = encode(create_file_message("big.bin", content))
        decoder = FrameDecoder(max_frame_size=1024 * 1024, max_payload_size=5000)
        # prefix, kind, name length, name, u64 content length
        header_size = 4 + 1 + 4 + len("big.bin") + 8
        decoder.feed(frame[:header_size])
        with self.assertRaises(PayloadTooLarge):
            decoder.next_message()
        self.assertEqual(decoder.buffered, 0)

        follow = create_text_message("still in sync")
        decoder.feed(frame[header_size:])
        decoder.feed(encode(follow))
        self.assertEqual(decoder.next_message(), follow)

    def test_zero_length_frame(self):
        decoder = FrameDecoder()
        decoder.feed(struct.pack('!I', 0) + encode(create_text_message("next")))
        with self.assertRaises(MalformedFrame):
            decoder.next_message()
        self.assertEqual(decoder.next_message().text, "next")

    def test_malformed_frame_keeps_alignment(self):
        bad = b'\x09hello'
        decoder = FrameDecoder()
        decoder.feed(struct.pack('!I', len(bad)) + bad + encode(create_text_message("ok")))
        with self.assertRaises(MalformedFrame):
            decoder.next_message()
        self.assertEqual(decoder.next_message().text, "ok")


class TestStreamHelpers(unittest.IsolatedAsyncioTestCase):
    """read_message over an asyncio.StreamReader."""

    async def test_read_message(self):
        reader = asyncio.StreamReader()
        message = create_text_message("over the wire")
        reader.feed_data(encode(message))
        self.assertEqual(await read_message(reader, FrameDecoder()), message)

    async def test_eof_raises_connection_closed(self):
        reader = asyncio.StreamReader()
        reader.feed_data(encode(create_text_message("partial"))[:3])
        reader.feed_eof()
        with self.assertRaises(ConnectionClosed):
            await read_message(reader, FrameDecoder())


class TestMessage(unittest.TestCase):
    """Message construction rules."""

    def test_payload_must_match_kind(self):
        with self.assertRaises(ValueError):
            Message(MessageKind.FILE, TextPayload("nope"))

    def test_kind_coerced_from_int(self):
        self.assertIs(Message(0, TextPayload("x")).kind, MessageKind.TEXT)

    def test_error_kind(self):
        message = create_error_message(ErrorKind.QUEUE_FULL, "bob")
        self.assertEqual(message.text, "QueueFull: bob")
        self.assertIs(message.error_kind, ErrorKind.QUEUE_FULL)
        self.assertIsNone(create_text_message("QueueFull").error_kind)

    def test_content_size_counts_utf8_bytes(self):
        self.assertEqual(create_text_message("é").content_size, 2)


if __name__ == '__main__':
    unittest.main()
