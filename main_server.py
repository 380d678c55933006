#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

Usage:
    python main_server.py

Optional arguments:
    --host HOST               Bind address (default: 0.0.0.0)
    --port PORT               TCP port (default: 9000)
    --max-payload-size BYTES  Largest text/file/image content accepted (default: 5 MiB)
    --queue-size N            Outbound messages buffered per client (default: 256)
    --log-level LEVEL         DEBUG, INFO, WARNING or ERROR (default: INFO)
"""

import argparse
import asyncio
import logging
import sys

from common.constants import DEFAULT_SERVER_HOST, DEFAULT_PORT, DEFAULT_MAX_PAYLOAD_SIZE, DEFAULT_OUTBOUND_QUEUE_SIZE
from server.main_server import run_server
from server.utils.config import ServerConfig
from server.utils.logger import logger

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Chat Relay Server')
    parser.add_argument('--host', type=str, default=DEFAULT_SERVER_HOST,
                        help=f'Host to bind to (default: {DEFAULT_SERVER_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'TCP port (default: {DEFAULT_PORT})')
    parser.add_argument('--max-payload-size', type=int, default=DEFAULT_MAX_PAYLOAD_SIZE,
                        help=f'Maximum message content size in bytes (default: {DEFAULT_MAX_PAYLOAD_SIZE})')
    parser.add_argument('--queue-size', type=int, default=DEFAULT_OUTBOUND_QUEUE_SIZE,
                        help=f'Outbound queue length per client (default: {DEFAULT_OUTBOUND_QUEUE_SIZE})')
    parser.add_argument('--log-level', type=str.upper, choices=LOG_LEVELS, default='INFO',
                        help='Log verbosity (default: INFO)')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logger.set_level(getattr(logging, args.log_level))

    try:
        config = ServerConfig(
            host=args.host,
            port=args.port,
            max_payload_size=args.max_payload_size,
            outbound_queue_size=args.queue_size
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        return asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Server interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
