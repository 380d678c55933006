#!/usr/bin/env python3
"""
Chat Relay Client - Main Entry Point

Usage:
    python main_client.py [--name NAME] [--host HOST] [--port PORT]

Inside the client:
    text          send a chat message
    .file PATH    send a file
    .image PATH   send an image (converted to PNG)
    .quit         leave
"""

import argparse
import asyncio
import logging
import sys

from common.constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_MAX_PAYLOAD_SIZE, DOWNLOAD_DIR
from common.errors import HandshakeInvalid
from common.protocol_definitions import validate_display_name
from client.main_client import InteractiveClient
from client.utils.config import ClientConfig
from client.utils.logger import logger

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Chat Relay Client')
    parser.add_argument('--name', type=str, default=None,
                        help='Display name (default: asked on startup)')
    parser.add_argument('--host', type=str, default=DEFAULT_HOST,
                        help=f'Server address (default: {DEFAULT_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'Server port (default: {DEFAULT_PORT})')
    parser.add_argument('--download-dir', type=str, default=DOWNLOAD_DIR,
                        help=f'Where received files and images are saved (default: {DOWNLOAD_DIR})')
    parser.add_argument('--max-payload-size', type=int, default=DEFAULT_MAX_PAYLOAD_SIZE,
                        help=f'Largest attachment accepted, should match the server (default: {DEFAULT_MAX_PAYLOAD_SIZE})')
    parser.add_argument('--log-level', type=str.upper, choices=LOG_LEVELS, default='WARNING',
                        help='Log verbosity (default: WARNING)')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logger.set_level(getattr(logging, args.log_level))

    name = args.name
    if not name:
        name = input("Enter display name: ").strip()
    try:
        name = validate_display_name(name)
    except HandshakeInvalid as e:
        print(f"[ERROR] {e}")
        return 2

    try:
        config = ClientConfig(args.host, args.port, name, args.download_dir, args.max_payload_size)
    except ValueError as e:
        print(f"[ERROR] {e}")
        return 2
    client = InteractiveClient(config)

    try:
        return asyncio.run(client.interactive_mode())
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
