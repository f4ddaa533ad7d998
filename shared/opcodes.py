from __future__ import annotations

from enum import Enum
from typing import Optional


class Opcode(str, Enum):
    """Array protocol opcodes understood by the bot."""

    # Keep-alive, echoed back verbatim
    NOP = "nop"

    # Handshake
    AUTH = "auth"            # server demands account authentication
    RENAME = "rename"        # request / confirm a display name
    CONNECT = "connect"      # attach to a VM node
    LOGIN = "login"          # account login with a bot token
    ADMIN = "admin"          # staff elevation and staff-only actions

    # Informational, not acted on
    LIST = "list"
    ADDUSER = "adduser"

    CHAT = "chat"

    @classmethod
    def from_string(cls, value: str) -> Optional[Opcode]:
        """Return the matching opcode, or None for opcodes the bot ignores."""
        try:
            return cls(value)
        except ValueError:
            return None


# Positional status values carried in handshake responses
RENAME_SELF = "0"           # rename <0> <status> <name>: our own name was set
RENAME_OTHER = "1"          # rename <1> <old> <new>: someone else renamed
CONNECT_FAILED = "0"
CONNECT_OK = "1"
LOGIN_OK = "1"

# admin sub-commands
ADMIN_LOGIN = "2"           # admin 2 <password>
ADMIN_HTML_CHAT = "21"      # admin 21 <html>: broadcast raw HTML to chat
