from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from bot.config import BotConfig
from bot.emojis import EmojiTable
from bot.state import PrivilegeLevel
from shared.frame import Frame
from shared.opcodes import ADMIN_HTML_CHAT, Opcode
from shared.log import get_logger

logger = get_logger(__name__)

# ":name:" at the start of a message
_SHORTHAND_RE = re.compile(r'^:([a-zA-Z0-9_]+):')

_CARD_STYLE = "background:#222;color:#fff;padding:8px 12px;border-radius:8px;font-family:sans-serif;"
_LIST_STYLE = "margin:4px 0 0 16px;padding:0;"


@dataclass
class CommandContext:
    sender: str
    args: List[str]
    privilege: PrivilegeLevel


# Type alias for command functions
CommandHandler = Callable[["CommandDispatcher", CommandContext], List[Frame]]


@dataclass(frozen=True)
class Command:
    name: str
    handler: CommandHandler
    privileged: bool = False
    denial: str = ""


def chat_frame(text: str) -> Frame:
    return [Opcode.CHAT.value, text]


def html_frame(html: str) -> Frame:
    """Broadcast raw HTML to the VM chat (staff only)."""
    return [Opcode.ADMIN.value, ADMIN_HTML_CHAT, html]


class CommandDispatcher:
    """
    Turns chat messages into outbound frames.

    Messages that do not start with the configured prefix (or the ``:name:``
    shorthand, when enabled) are inert. Privileged commands answer with a
    denial in chat when the session is not elevated.
    """

    def __init__(self, config: BotConfig, emojis: EmojiTable) -> None:
        self.config = config
        self.emojis = emojis
        self.commands: Dict[str, Command] = dict(COMMAND_REGISTRY)

    @property
    def prefix(self) -> str:
        return self.config.prefix

    def _shorthand(self, message: str) -> Optional[str]:
        if not self.config.colon_emoji:
            return None
        match = _SHORTHAND_RE.match(message)
        return match.group(1) if match else None

    def matches(self, message: str) -> bool:
        if message.startswith(self.prefix):
            return True
        return self._shorthand(message) is not None

    def dispatch(self, sender: str, message: str, privilege: PrivilegeLevel) -> List[Frame]:
        shorthand = self._shorthand(message)
        if shorthand is not None:
            name, args = "emoji", [shorthand]
        elif message.startswith(self.prefix):
            words = message[len(self.prefix):].split()
            if not words:
                return []
            name, args = words[0].lower(), words[1:]
        else:
            return []

        command = self.commands.get(name)
        if command is None:
            return []
        if command.privileged and privilege != PrivilegeLevel.ELEVATED:
            logger.info(f"Denied {name!r} for {sender}: privilege is {privilege.value}")
            return [chat_frame(command.denial)]
        return command.handler(self, CommandContext(sender=sender, args=args, privilege=privilege))

    # ========================================
    #           COMMANDS
    # ========================================

    def cmd_help(self, ctx: CommandContext) -> List[Frame]:
        p = self.prefix
        html = (
            f"<div style='{_CARD_STYLE}'>"
            f"<b>EmojiBot Commands:</b><ul style='{_LIST_STYLE}'>"
            f"<li><b>{p}help</b> - Show this help</li>"
            f"<li><b>{p}emojilist</b> - List available emojis</li>"
            f"<li><b>{p}emoji &lt;name&gt;</b> - Send an emoji</li>"
            "</ul></div>"
        )
        return [html_frame(html)]

    def cmd_emojilist(self, ctx: CommandContext) -> List[Frame]:
        if not len(self.emojis):
            return [chat_frame("No emojis loaded.")]
        items = "".join(
            f"<li><b>{e.name}</b>: {e.description} "
            f"<img src='{e.file}' alt='{e.name}' style='height:20px;vertical-align:middle;'></li>"
            for e in self.emojis
        )
        html = (
            f"<div style='{_CARD_STYLE}'>"
            f"<b>Available Emojis:</b><ul style='{_LIST_STYLE}'>{items}</ul></div>"
        )
        return [html_frame(html)]

    def cmd_emoji(self, ctx: CommandContext) -> List[Frame]:
        if not ctx.args:
            return [chat_frame(f"Usage: {self.prefix}emoji <name>")]
        name = ctx.args[0]
        emoji = self.emojis.get(name)
        if emoji is None:
            return [chat_frame(f"Emoji not found. Use {self.prefix}emojilist to see available emojis.")]
        logger.info(f"Sending emoji {name!r} for {ctx.sender}")
        return [html_frame(f"<img src='{emoji.file}' alt='{emoji.name}' style='height:32px;'>")]


COMMAND_REGISTRY: Dict[str, Command] = {
    "help": Command("help", CommandDispatcher.cmd_help),
    "emojilist": Command("emojilist", CommandDispatcher.cmd_emojilist),
    "emoji": Command(
        "emoji",
        CommandDispatcher.cmd_emoji,
        privileged=True,
        denial="Emoji command requires admin/mod.",
    ),
}
