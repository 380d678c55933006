"""
Server configuration module.

This module handles server-side configuration settings.
"""

from common.codec import frame_limit_for
from common.constants import (
    DEFAULT_SERVER_HOST, DEFAULT_PORT, DEFAULT_MAX_PAYLOAD_SIZE, DEFAULT_OUTBOUND_QUEUE_SIZE,
    HANDSHAKE_TIMEOUT, FLUSH_TIMEOUT, MAX_CONSECUTIVE_MALFORMED
)


class ServerConfig:
    """Server configuration class."""
    
    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT,
                 max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE, max_frame_size: int = None,
                 outbound_queue_size: int = DEFAULT_OUTBOUND_QUEUE_SIZE):
        if max_payload_size <= 0:
            raise ValueError("max_payload_size must be positive")
        if outbound_queue_size <= 0:
            raise ValueError("outbound_queue_size must be positive")

        self.host = host
        self.port = port
        
        # Size limits: the frame cap only has to bound memory, the payload cap is the user-facing limit
        self.max_payload_size = max_payload_size
        self.max_frame_size = max_frame_size or frame_limit_for(max_payload_size)
        
        # Session settings
        self.outbound_queue_size = outbound_queue_size
        self.max_consecutive_malformed = MAX_CONSECUTIVE_MALFORMED
        self.handshake_timeout = HANDSHAKE_TIMEOUT
        self.flush_timeout = FLUSH_TIMEOUT
