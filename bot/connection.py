from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Optional, Sequence, Union

import websockets
from websockets.exceptions import ConnectionClosed

from bot.state import HandshakeState, PrivilegeLevel, Session
from shared.frame import Frame, decode, encode
from shared.log import get_logger, log_frame
from shared.opcodes import (
    ADMIN_LOGIN,
    CONNECT_FAILED,
    CONNECT_OK,
    LOGIN_OK,
    RENAME_OTHER,
    RENAME_SELF,
    Opcode,
)

if TYPE_CHECKING:
    from bot.commands import CommandDispatcher
    from bot.config import BotConfig, EndpointConfig

logger = get_logger(__name__)

# Type alias for frame handlers
FrameHandler = Callable[["BotConnection", Frame], Awaitable[None]]


class BotConnection:
    """
    One socket to one VM and the handshake that runs over it.

    Frames are handled one at a time in arrival order by ``run``; handlers
    only suspend while sending. The handshake is

        rename -> [auth -> login] -> connect -> [admin] -> ready

    where the bracketed steps depend on what the server asks for. A server may
    confirm our name and only then demand a login, so ``connect`` is held back
    (``awaiting_node_connect``) until the login succeeds.
    """

    def __init__(
        self,
        websocket: websockets.ClientConnection,
        endpoint: EndpointConfig,
        config: BotConfig,
        dispatcher: CommandDispatcher,
    ) -> None:
        self.websocket = websocket
        self.endpoint = endpoint
        self.config = config
        self.dispatcher = dispatcher
        self.session = Session(endpoint_address=endpoint.url, target_node_id=endpoint.node_id)

    @property
    def node_id(self) -> str:
        return self.endpoint.node_id

    @property
    def _ctx(self) -> Dict[str, str]:
        return {"node": self.node_id}

    # ========================================
    #           TRANSPORT
    # ========================================

    async def send(self, fields: Sequence[str]) -> None:
        """Encode and send one frame. Sends on a closed socket are dropped."""
        try:
            await self.websocket.send(encode(fields))
            log_frame(logger, "debug", "Sent frame", frame=list(fields), **self._ctx)
        except ConnectionClosed:
            logger.warning(f"Connection closed while sending {fields[0]}", extra=self._ctx)

    async def start(self) -> None:
        """Request our display name; the server answers with ``rename``."""
        logger.info(f"Connecting to VM, requesting username: {self.config.username}", extra=self._ctx)
        self.session.state = HandshakeState.NAME_PENDING
        await self.send([Opcode.RENAME.value, self.config.username])

    async def run(self) -> None:
        """Process inbound frames until the socket closes."""
        try:
            async for raw in self.websocket:
                await self.handle_message(raw)
                if self.session.is_closed:
                    break
        except ConnectionClosed as e:
            logger.info(f"Connection closed: {e}", extra=self._ctx)
        finally:
            self.mark_closed()

    async def handle_message(self, raw: Union[str, bytes]) -> None:
        frame = decode(raw)
        if not frame:
            return
        handler = FRAME_HANDLER_REGISTRY.get(Opcode.from_string(frame[0]))
        if handler is None:
            return
        try:
            await handler(self, frame)
        except Exception as e:
            logger.error(f"Failed to process inbound frame: {e}", extra={**self._ctx, "opcode": frame[0]})

    async def close(self, reason: str, *, fatal: bool = False, code: int = 1000) -> None:
        """Close the socket; a fatal close is never retried by the supervisor."""
        self.session.close_reason = reason
        self.session.fatal = self.session.fatal or fatal
        self.mark_closed()
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.error(f"Error closing connection: {e}", extra=self._ctx)

    def mark_closed(self) -> None:
        if self.session.state != HandshakeState.CLOSED:
            self.session.state = HandshakeState.CLOSED
            logger.info("Disconnected.", extra=self._ctx)

    # ========================================
    #           HANDSHAKE
    # ========================================

    async def _send_connect(self) -> None:
        self.session.state = HandshakeState.CONNECT_PENDING
        await self.send([Opcode.CONNECT.value, self.node_id])

    async def handle_nop(self, frame: Frame) -> None:
        await self.send([Opcode.NOP.value])

    async def handle_auth(self, frame: Frame) -> None:
        """The server requires account authentication before anything else."""
        if not self.config.uses_token:
            logger.error(
                "Server requires account authentication (bot token). "
                "Set authType to \"token\" and provide a valid botToken in config.",
                extra=self._ctx,
            )
            await self.close("account authentication required", fatal=True)
            return
        self.session.awaiting_authentication = True
        self.session.state = HandshakeState.AUTH_PENDING
        await self.send([Opcode.LOGIN.value, self.config.bot_token])

    async def handle_rename(self, frame: Frame) -> None:
        target = frame[1] if len(frame) > 1 else None
        if target == RENAME_OTHER:
            logger.debug("Another user renamed", extra=self._ctx)
            return
        if target != RENAME_SELF:
            return

        # rename 0 <status> <name>
        if len(frame) > 3:
            self.session.assigned_username = frame[3]
            logger.info(f"Username set to {frame[3]}", extra=self._ctx)
        if self.session.awaiting_authentication:
            self.session.awaiting_node_connect = True
            return
        await self._send_connect()

    async def handle_login(self, frame: Frame) -> None:
        if frame[1:2] != [LOGIN_OK]:
            reason = frame[2] if len(frame) > 2 and frame[2] else "Unknown error"
            logger.error(f"Bot token login failed: {reason}", extra=self._ctx)
            await self.close(f"login failed: {reason}", fatal=True)
            return

        self.session.awaiting_authentication = False
        self.session.authenticated = True
        if self.session.awaiting_node_connect:
            self.session.awaiting_node_connect = False
            await self.send([Opcode.CONNECT.value, self.node_id])
        # Logged-in accounts may use privileged commands
        self.session.elevate(PrivilegeLevel.ELEVATED)
        self.session.state = HandshakeState.READY
        logger.info("Logged in with bot token.", extra=self._ctx)

    async def handle_connect(self, frame: Frame) -> None:
        status = frame[1] if len(frame) > 1 else None
        if status == CONNECT_FAILED:
            logger.error(f"Server refused to connect to node {self.node_id}", extra=self._ctx)
            await self.close("node connect refused", fatal=True)
            return
        if status != CONNECT_OK:
            return

        if self.session.authenticated:
            self.session.elevate(PrivilegeLevel.ELEVATED)
        elif self.config.uses_password_elevation:
            logger.info(f"Logging in as {self.config.login_as}...", extra=self._ctx)
            self.session.elevate(PrivilegeLevel.PENDING)
            await self.send([Opcode.ADMIN.value, ADMIN_LOGIN, self.config.admin_password])
            # The server does not report elevation failures distinctly
            self.session.elevate(PrivilegeLevel.ELEVATED)
        self.session.state = HandshakeState.READY
        logger.info(f"Connected to node {self.node_id}", extra=self._ctx)

    # ========================================
    #           CHAT
    # ========================================

    async def handle_chat(self, frame: Frame) -> None:
        # chat <sender> <message>
        sender = frame[1] if len(frame) > 1 else ""
        message = frame[2] if len(frame) > 2 else ""
        if not sender or not message:
            return
        if not self.dispatcher.matches(message):
            return
        for reply in self.dispatcher.dispatch(sender, message, self.session.privilege):
            await self.send(reply)


FRAME_HANDLER_REGISTRY: Dict[Optional[Opcode], FrameHandler] = {
    Opcode.NOP: BotConnection.handle_nop,
    Opcode.AUTH: BotConnection.handle_auth,
    Opcode.RENAME: BotConnection.handle_rename,
    Opcode.LOGIN: BotConnection.handle_login,
    Opcode.CONNECT: BotConnection.handle_connect,
    Opcode.CHAT: BotConnection.handle_chat,
}
