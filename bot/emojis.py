from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Iterator, List, Mapping, Optional

import aiohttp

from shared.log import get_logger

logger = get_logger(__name__)

FETCH_TIMEOUT = aiohttp.ClientTimeout(total=15)


@dataclass(frozen=True)
class Emoji:
    name: str
    file: str           # absolute image URL
    description: str


class EmojiTable:
    """
    Read-only emoji lookup built once at startup and shared by every
    connection. Iteration follows the order the list was served in.
    """

    def __init__(self, emojis: Iterable[Emoji] = ()) -> None:
        entries = {}
        for emoji in emojis:
            entries.setdefault(emoji.name, emoji)
        self._by_name: Mapping[str, Emoji] = MappingProxyType(entries)

    def get(self, name: str) -> Optional[Emoji]:
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[Emoji]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    @classmethod
    def from_json(cls, data: Any) -> EmojiTable:
        """Build a table from the decoded JSON array, skipping bad entries."""
        if not isinstance(data, list):
            raise ValueError(f"emoji list must be a JSON array, got {type(data).__name__}")
        emojis: List[Emoji] = []
        for index, entry in enumerate(data):
            emoji = _parse_entry(entry)
            if emoji is None:
                logger.warning("Skipping malformed emoji entry #%d: %r", index, entry)
                continue
            emojis.append(emoji)
        return cls(emojis)


def _parse_entry(entry: Any) -> Optional[Emoji]:
    if not isinstance(entry, dict):
        return None
    name = entry.get("name")
    file = entry.get("file")
    description = entry.get("description", "")
    if not isinstance(name, str) or not name:
        return None
    if not isinstance(file, str) or not file:
        return None
    if not isinstance(description, str):
        description = str(description)
    return Emoji(name=name, file=file, description=description)


async def load_emoji_table(url: str, session: Optional[aiohttp.ClientSession] = None) -> EmojiTable:
    """
    Fetch the emoji list once. Any failure yields an empty table and a
    warning; it is never fatal.
    """
    if not url:
        logger.warning("No emojilistUrl configured; emoji commands will report no emojis")
        return EmojiTable()

    try:
        if session is None:
            async with aiohttp.ClientSession(timeout=FETCH_TIMEOUT) as own_session:
                table = await _fetch(own_session, url)
        else:
            table = await _fetch(session, url)
    except Exception as e:
        logger.warning(f"Failed to load emoji list from {url}: {e}")
        return EmojiTable()

    logger.info(f"Loaded {len(table)} emojis.")
    return table


async def _fetch(session: aiohttp.ClientSession, url: str) -> EmojiTable:
    async with session.get(url) as response:
        if response.status != 200:
            raise RuntimeError(f"HTTP {response.status}")
        data = await response.json(content_type=None)
    return EmojiTable.from_json(data)
