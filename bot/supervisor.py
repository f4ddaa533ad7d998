from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Any, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.typing import Origin, Subprotocol

from bot.commands import CommandDispatcher
from bot.config import BotConfig, EndpointConfig
from bot.connection import BotConnection
from bot.emojis import EmojiTable
from bot.state import Session
from shared.log import get_logger

logger = get_logger(__name__)

SUBPROTOCOL = Subprotocol("guacamole")

# Errors that end a connection attempt without being a bug in the bot
TRANSPORT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    InvalidHandshake,
    InvalidURI,
    ConnectionClosed,
)

Connector = Callable[..., Any]


class Supervisor:
    """
    Runs one independent connection per configured VM.

    Endpoints share nothing but the read-only emoji table: a failure, a
    fatal handshake error or a close on one endpoint leaves the others
    running.
    """

    def __init__(
        self,
        config: BotConfig,
        emojis: EmojiTable,
        connect: Connector = websockets.connect,
    ) -> None:
        self.config = config
        self.emojis = emojis
        self.dispatcher = CommandDispatcher(config, emojis)
        self._connect = connect
        # Keyed by endpoint: two servers may both expose a node called "vm1"
        self.connections: Dict[EndpointConfig, BotConnection] = {}
        self._tasks: List[asyncio.Task] = []

    @property
    def sessions(self) -> Dict[EndpointConfig, Session]:
        return {endpoint: conn.session for endpoint, conn in self.connections.items()}

    async def run(self) -> None:
        """Start every endpoint and wait until all of them have finished."""
        self._tasks = [
            asyncio.create_task(self._run_endpoint(endpoint), name=f"vm:{endpoint.node_id}")
            for endpoint in self.config.endpoints
        ]
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for endpoint, result in zip(self.config.endpoints, results):
            if isinstance(result, asyncio.CancelledError):
                continue
            if isinstance(result, BaseException):
                logger.error(
                    f"Endpoint task crashed: {result!r}",
                    extra={"node": endpoint.node_id, "endpoint": endpoint.url},
                )

    async def stop(self) -> None:
        """Cancel every endpoint task and wait for their sockets to close."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError, Exception):
                await task

    async def _run_endpoint(self, endpoint: EndpointConfig) -> None:
        """Connect, run the handshake and chat loop, and retry per policy."""
        policy = self.config.reconnect
        attempt = 0
        while True:
            connection = await self._run_once(endpoint)
            if connection is not None and connection.session.fatal:
                logger.error(
                    f"Giving up on this VM: {connection.session.close_reason}",
                    extra={"node": endpoint.node_id},
                )
                return
            if connection is not None and connection.session.assigned_username is not None:
                # The handshake got somewhere; start backing off from scratch
                attempt = 0
            if not policy.enabled or attempt >= policy.max_retries:
                return
            delay = policy.delay(attempt)
            attempt += 1
            logger.info(
                f"Reconnecting in {delay}s (attempt {attempt}/{policy.max_retries})",
                extra={"node": endpoint.node_id},
            )
            await asyncio.sleep(delay)

    async def _run_once(self, endpoint: EndpointConfig) -> Optional[BotConnection]:
        ctx = {"node": endpoint.node_id, "endpoint": endpoint.url}
        try:
            websocket = await self._connect(
                endpoint.url,
                subprotocols=[SUBPROTOCOL],
                origin=Origin(endpoint.origin),
            )
        except TRANSPORT_ERRORS as e:
            logger.error(f"WebSocket error: {e}", extra=ctx)
            return None

        connection = BotConnection(websocket, endpoint, self.config, self.dispatcher)
        self.connections[endpoint] = connection
        try:
            await connection.start()
            await connection.run()
        except TRANSPORT_ERRORS as e:
            logger.error(f"WebSocket error: {e}", extra=ctx)
        finally:
            with suppress(Exception):
                await websocket.close()
            connection.mark_closed()
        return connection

    def status(self) -> List[Dict[str, Any]]:
        """Snapshot of every endpoint's session for reporting."""
        report = []
        for endpoint in self.config.endpoints:
            session = self.sessions.get(endpoint)
            report.append({
                "node_id": endpoint.node_id,
                "url": endpoint.url,
                "state": session.state.value if session else "not started",
                "username": session.assigned_username if session else None,
                "privilege": session.privilege.value if session else None,
            })
        return report
