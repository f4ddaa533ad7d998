import asyncio
from typing import List, Optional

import pytest
from websockets.exceptions import ConnectionClosedOK

from bot.commands import CommandDispatcher
from bot.config import BotConfig, EndpointConfig
from bot.connection import BotConnection
from bot.emojis import Emoji, EmojiTable
from shared.frame import decode, encode


class DummyWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent_messages: list[str] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code
            self.close_reason = reason
            self._inbox.put_nowait(None)

    def feed(self, *frames: List[str]) -> None:
        """Queue frames as if the server had sent them."""
        for frame in frames:
            self._inbox.put_nowait(encode(frame))

    def feed_raw(self, raw) -> None:
        self._inbox.put_nowait(raw)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item

    @property
    def sent_frames(self) -> List[List[str]]:
        return [decode(m) for m in self.sent_messages]


def make_config(**overrides) -> BotConfig:
    values = dict(
        prefix="!",
        username="EmojiBot",
        endpoints=[EndpointConfig(url="ws://127.0.0.1:6004", node_id="vm1")],
        auth_type="password",
        admin_password="hunter2",
        bot_token="",
        login_as="admin",
        emojilist_url="",
        colon_emoji=False,
    )
    values.update(overrides)
    return BotConfig(**values)


SAMPLE_EMOJIS = [
    Emoji(name="smile", file="https://cdn.example.com/smile.png", description="A smile"),
    Emoji(name="party_parrot", file="https://cdn.example.com/parrot.gif", description="Party!"),
]


async def wait_for(predicate, timeout: float = 3.0) -> bool:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return False


@pytest.fixture
def emoji_table() -> EmojiTable:
    return EmojiTable(SAMPLE_EMOJIS)


@pytest.fixture
def dummy_ws() -> DummyWebSocket:
    return DummyWebSocket()


@pytest.fixture
def connection_factory(dummy_ws, emoji_table):
    """Build a BotConnection over the dummy socket with config overrides."""

    def build(**overrides) -> BotConnection:
        config = make_config(**overrides)
        dispatcher = CommandDispatcher(config, emoji_table)
        return BotConnection(dummy_ws, config.endpoints[0], config, dispatcher)

    return build
