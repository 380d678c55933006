"""
Client configuration module.

This module handles client-side configuration settings.
"""

from pathlib import Path

from common.codec import frame_limit_for
from common.constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_MAX_PAYLOAD_SIZE, DOWNLOAD_DIR


class ClientConfig:
    """Client configuration class."""
    
    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, display_name: str = None,
                 download_dir: str = DOWNLOAD_DIR, max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE):
        if max_payload_size <= 0:
            raise ValueError("max_payload_size must be positive")

        self.host = host
        self.port = port
        self.display_name = display_name
        
        # Attachments received from other users are written here
        self.download_dir = Path(download_dir)
        
        # Should match the server's --max-payload-size
        self.max_payload_size = max_payload_size
        self.max_frame_size = frame_limit_for(max_payload_size)
