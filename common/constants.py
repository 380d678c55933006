"""
Shared constants for the chat relay service.

This module contains all constants used across client and server components.
"""

from enum import IntEnum

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 9000

# Framing
FRAME_HEADER_SIZE = 4  # bytes for frame length header
READ_CHUNK_SIZE = 64 * 1024

# Size limits
DEFAULT_MAX_PAYLOAD_SIZE = 5 * 1024 * 1024  # 5 MB of user content per message
FRAME_HEADROOM = 64 * 1024  # room for kind headers, filename and sender trailer
DEFAULT_MAX_FRAME_SIZE = 64 * 1024 * 1024

# Sessions
DEFAULT_OUTBOUND_QUEUE_SIZE = 256
MAX_DISPLAY_NAME_LENGTH = 32
MAX_CONSECUTIVE_MALFORMED = 3

# Timeouts
HANDSHAKE_TIMEOUT = 10  # seconds
FLUSH_TIMEOUT = 5  # seconds to flush queued frames on teardown

# Downloads
DOWNLOAD_DIR = 'downloads'
FILES_SUBDIR = 'files'
IMAGES_SUBDIR = 'images'

# Client commands
QUIT_COMMAND = '.quit'
FILE_COMMAND = '.file'
IMAGE_COMMAND = '.image'


class MessageKind(IntEnum):
    """One-byte kind discriminant carried at the start of every payload."""
    TEXT = 0
    FILE = 1
    IMAGE = 2
    SYSTEM_NOTICE = 3
    ERROR = 4
