"""
Chat relay server.

The ChatServer binds the listening socket, spawns a ClientSession for every
accepted connection and routes each received message through the registry.
"""

import asyncio
import itertools
from typing import Dict, Optional

from common.constants import MessageKind
from common.errors import ChatError, MalformedFrame, PayloadTooLarge, QueueFull, ConnectionClosed
from common.protocol_definitions import (
    Message, stamp_message, create_system_notice, create_error_message
)
from server.chat.registry import SessionRegistry
from server.chat.session import ClientSession
from server.utils.config import ServerConfig
from server.utils.logger import logger

SHUTDOWN_NOTICE = "server shutting down"


class ChatServer:
    """Main server class: accepts connections and routes their messages."""

    def __init__(self, config: ServerConfig = None, registry: SessionRegistry = None):
        self.config = config or ServerConfig()
        self.registry = registry if registry is not None else SessionRegistry()
        self.server: Optional[asyncio.AbstractServer] = None

        # Every live session, including ones still handshaking; the registry only sees active ones
        self.sessions: Dict[int, ClientSession] = {}
        self.tasks: Dict[int, asyncio.Task] = {}

        self._session_ids = itertools.count(1)
        self._shutting_down = False
        self._stopped = asyncio.Event()

    @property
    def address(self) -> tuple:
        """The (host, port) the server is bound to."""
        return self.server.sockets[0].getsockname()[:2]

    async def start(self):
        """Bind the listening socket. Bind failures propagate to the caller."""
        self.server = await asyncio.start_server(
            self.handle_client,
            self.config.host,
            self.config.port
        )
        addr = ', '.join(str(sock.getsockname()) for sock in self.server.sockets)
        logger.log_listening(addr)

    async def serve_forever(self):
        """Accept connections until shutdown() completes."""
        if self.server is None:
            await self.start()
        await self._stopped.wait()

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle individual client connection."""
        if self._shutting_down:
            writer.close()
            return

        session_id = next(self._session_ids)
        session = ClientSession(session_id, reader, writer, self.registry, self, self.config)
        logger.log_connection(session.addr, session_id)

        self.sessions[session_id] = session
        self.tasks[session_id] = asyncio.current_task()
        try:
            await session.run()
        finally:
            self.sessions.pop(session_id, None)
            self.tasks.pop(session_id, None)

    async def on_session_ready(self, session: ClientSession):
        """Greet a session that completed its handshake and announce it to the others."""
        others = len(self.registry) - 1
        self.send_to(session.session_id, create_system_notice(
            f"Welcome {session.name}! You are session {session.session_id}; {others} other user(s) online."
        ))
        self.registry.broadcast(
            create_system_notice(f"{session.name} joined the chat"),
            exclude_session_id=session.session_id
        )

    async def handle_message(self, session: ClientSession, message: Message):
        """Route a message received from session."""
        kind = message.kind

        if kind is MessageKind.TEXT:
            self._relay(session, message)
        elif kind in (MessageKind.FILE, MessageKind.IMAGE):
            if message.content_size > self.config.max_payload_size:
                await self.handle_protocol_error(session, PayloadTooLarge(
                    f"{kind.name} content is {message.content_size} bytes, limit is {self.config.max_payload_size}"
                ))
                return
            self._relay(session, message)
        elif kind in (MessageKind.SYSTEM_NOTICE, MessageKind.ERROR):
            await self.handle_protocol_error(session, MalformedFrame(f"{kind.name} messages are server-only"))
        else:
            raise ValueError(f"no route for message kind {kind!r}")

    async def handle_protocol_error(self, session: ClientSession, error: ChatError):
        """Report a rejected frame to its originator only."""
        logger.log_rejected(session.session_id, error)
        self.send_to(session.session_id, create_error_message(error.kind, str(error)))

    async def on_session_closed(self, session: ClientSession, was_registered: bool):
        """Announce a departure once its session has been torn down."""
        if was_registered and not self._shutting_down:
            self.registry.broadcast(create_system_notice(f"{session.name} left the chat"))

    def send_to(self, session_id: int, message: Message) -> bool:
        """Deliver message to a single registered session."""
        session = self.registry.lookup(session_id)
        if session is None:
            return False
        return self._deliver(session, message)

    def _deliver(self, session: ClientSession, message: Message) -> bool:
        try:
            session.enqueue(message)
            return True
        except (QueueFull, ConnectionClosed) as e:
            logger.debug(f"Could not deliver {message.kind.name} to session={session.session_id}: {e}")
            return False

    def _relay(self, session: ClientSession, message: Message):
        """Stamp message with its sender and fan it out to every other session."""
        stamped = stamp_message(message, session.name)
        result = self.registry.broadcast(stamped, exclude_session_id=session.session_id)
        logger.log_relay(message.kind.name, session.name, session.session_id,
                         message.content_size, len(result.delivered))

        if result.dropped:
            logger.log_dropped(session.session_id, result.dropped)
            names = []
            for session_id in result.dropped:
                recipient = self.registry.lookup(session_id)
                names.append(recipient.name if recipient else f"session-{session_id}")
            self.send_to(session.session_id, create_system_notice(
                f"{message.kind.name} not delivered to {', '.join(names)}: outbound queue full"
            ))

    async def shutdown(self):
        """Stop accepting, notify everyone and wait for every session to close."""
        if self._shutting_down:
            await self._stopped.wait()
            return
        self._shutting_down = True
        logger.info("Server shutting down...")

        if self.server is not None:
            self.server.close()

        self.registry.broadcast(create_system_notice(SHUTDOWN_NOTICE))

        sessions = list(self.sessions.values())
        await asyncio.gather(*(s.close(SHUTDOWN_NOTICE) for s in sessions), return_exceptions=True)

        current = asyncio.current_task()
        tasks = [t for t in self.tasks.values() if t is not current]
        await asyncio.gather(*tasks, return_exceptions=True)

        if self.server is not None:
            await self.server.wait_closed()

        logger.info(f"Server stopped, {len(sessions)} session(s) closed")
        self._stopped.set()


async def run_server(config: ServerConfig, install_signal_handlers: bool = True) -> int:
    """
    Run a ChatServer until SIGINT/SIGTERM.

    Returns the process exit code: 0 after a clean shutdown, 1 when the
    listening socket cannot be bound.
    """
    server = ChatServer(config)
    try:
        await server.start()
    except OSError as e:
        logger.log_error(f"binding {config.host}:{config.port}", e)
        return 1

    if install_signal_handlers:
        import signal
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(server.shutdown()))
            except NotImplementedError:
                # Windows: KeyboardInterrupt ends asyncio.run instead
                pass

    await server.serve_forever()
    return 0
