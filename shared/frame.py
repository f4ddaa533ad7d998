"""
Array protocol frame codec.

A frame is an ordered list of strings, opcode first:

    4.chat,5.hello;

Each element is ``<byte length>.<value>``; elements are joined with ``,`` and
the frame ends with ``;``. Lengths count UTF-8 bytes, not characters, so
values may contain any of the delimiter characters without escaping.
"""

from __future__ import annotations
from typing import Iterable, List, Union

Frame = List[str]

_COMMA = ord(",")


class FrameError(ValueError):
    """Raised when a frame cannot be encoded."""
    pass


def encode(fields: Iterable[str]) -> str:
    """Encode an ordered sequence of strings into one wire frame."""
    parts = []
    for field in fields:
        if not isinstance(field, str):
            raise FrameError(f"frame fields must be str, got {type(field).__name__}")
        parts.append(f"{len(field.encode('utf-8'))}.{field}")
    return ",".join(parts) + ";"


def decode(data: Union[str, bytes]) -> Frame:
    """
    Decode one wire frame into its fields.

    Never raises: malformed input yields the fully-specified elements that
    precede the point where scanning stopped (often an empty list). Scanning
    stops at the first ``;`` even if trailing bytes remain.
    """
    raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    fields: Frame = []
    i = 0
    end = len(raw)
    while i < end:
        dot = raw.find(b".", i)
        if dot == -1:
            break
        length_text = raw[i:dot]
        if not length_text.isdigit():
            break
        length = int(length_text)
        start = dot + 1
        stop = start + length
        if stop > end:
            break
        try:
            fields.append(raw[start:stop].decode("utf-8"))
        except UnicodeDecodeError:
            break
        # ';' ends the frame; anything but ',' means the rest is unusable
        if stop >= end or raw[stop] != _COMMA:
            break
        i = stop + 1
    return fields
