from __future__ import annotations
from urllib.parse import urlsplit

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================
"""
Helpers the config loader calls to decide whether a URL is well formed
before it is used.
"""

def is_ws_url(s: str) -> bool:
    """
    Accepts 'ws://host[:port]/path' and 'wss://...'.
    """
    try:
        parts = urlsplit(s)
        return parts.scheme in ("ws", "wss") and bool(parts.hostname)
    except Exception:
        return False

def is_http_url(s: str) -> bool:
    try:
        parts = urlsplit(s)
        return parts.scheme in ("http", "https") and bool(parts.hostname)
    except Exception:
        return False
