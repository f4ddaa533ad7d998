from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class HandshakeState(str, Enum):
    """Where a connection is in the handshake."""
    OPENING = "opening"
    NAME_PENDING = "name_pending"
    AUTH_PENDING = "auth_pending"
    CONNECT_PENDING = "connect_pending"
    READY = "ready"
    CLOSED = "closed"


class PrivilegeLevel(str, Enum):
    NONE = "none"
    PENDING = "pending"
    ELEVATED = "elevated"

    @property
    def rank(self) -> int:
        return _PRIVILEGE_ORDER.index(self)


_PRIVILEGE_ORDER = [PrivilegeLevel.NONE, PrivilegeLevel.PENDING, PrivilegeLevel.ELEVATED]


@dataclass
class Session:
    """
    Per-endpoint state mutated only by the connection's frame handlers.

    ``awaiting_authentication`` is set while a token login is outstanding.
    ``awaiting_node_connect`` records that our name was confirmed during that
    window, so ``connect`` must be sent once the login succeeds.
    """
    endpoint_address: str
    target_node_id: str
    assigned_username: Optional[str] = None
    privilege: PrivilegeLevel = PrivilegeLevel.NONE
    state: HandshakeState = HandshakeState.OPENING
    awaiting_authentication: bool = False
    awaiting_node_connect: bool = False
    authenticated: bool = False
    close_reason: Optional[str] = None
    fatal: bool = False

    def elevate(self, level: PrivilegeLevel) -> None:
        """Raise the privilege level; lower levels are ignored."""
        if level.rank > self.privilege.rank:
            self.privilege = level

    @property
    def is_ready(self) -> bool:
        return self.state == HandshakeState.READY

    @property
    def is_closed(self) -> bool:
        return self.state == HandshakeState.CLOSED
