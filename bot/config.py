"""
Bot configuration.

The configuration file is JSON (``config.json``) or YAML (``config.yaml`` or
``config.yml``, parsed with PyYAML):

    prefix: "!"
    username: EmojiBot
    authType: password        # or "token"
    adminPassword: hunter2
    botToken: ""
    loginAs: admin            # or "mod"
    emojilistUrl: https://example.com/emojis.json
    colonEmoji: true
    vms:
      - url: wss://example.com/collab-vm/vm1
        nodeId: vm1
        origin: https://example.com
    reconnect:                # optional, off unless maxRetries > 0
      maxRetries: 0
      baseDelay: 1.0
      maxDelay: 60.0
    logLevel: INFO
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from shared.log import get_logger
from shared.utils import is_http_url, is_ws_url

logger = get_logger(__name__)

DEFAULT_ORIGIN = "https://computernewb.com"
CONFIG_ENV_VAR = "VMBOT_CONFIG"
CONFIG_FILENAMES: Tuple[str, ...] = ("config.json", "config.yaml", "config.yml")

AUTH_TYPES = ("password", "token")
LOGIN_ROLES = ("admin", "mod")


class ConfigError(Exception):
    """Raised when the configuration file is invalid."""
    pass


class ConfigNotFoundError(ConfigError):
    """Raised when no configuration file can be located."""
    pass


@dataclass(frozen=True)
class EndpointConfig:
    url: str
    node_id: str
    origin: str = DEFAULT_ORIGIN


@dataclass(frozen=True)
class ReconnectPolicy:
    max_retries: int = 0
    base_delay: float = 1.0
    max_delay: float = 60.0

    @property
    def enabled(self) -> bool:
        return self.max_retries > 0

    def delay(self, attempt: int) -> float:
        """Backoff before retry ``attempt`` (0-based): 1s, 2s, 4s... capped."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


@dataclass(frozen=True)
class BotConfig:
    prefix: str
    username: str
    endpoints: List[EndpointConfig]
    auth_type: str = "password"
    admin_password: str = ""
    bot_token: str = ""
    login_as: str = "admin"
    emojilist_url: str = ""
    colon_emoji: bool = False
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    log_level: str = "INFO"

    @property
    def uses_token(self) -> bool:
        return self.auth_type == "token" and bool(self.bot_token)

    @property
    def uses_password_elevation(self) -> bool:
        return self.auth_type == "password" and self.login_as in LOGIN_ROLES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BotConfig:
        """Build a config from the parsed file, validating every key."""
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a mapping")

        prefix = _require_str(data, "prefix")
        username = _require_str(data, "username")

        vms = data.get("vms")
        if not isinstance(vms, list) or not vms:
            raise ConfigError("'vms' must be a non-empty list")
        endpoints = [_parse_endpoint(i, vm) for i, vm in enumerate(vms)]
        seen = set()
        for i, endpoint in enumerate(endpoints):
            key = (endpoint.url, endpoint.node_id)
            if key in seen:
                raise ConfigError(f"vms[{i}] repeats {endpoint.node_id!r} at {endpoint.url}")
            seen.add(key)

        auth_type = data.get("authType", "password")
        if auth_type not in AUTH_TYPES:
            raise ConfigError(f"'authType' must be one of {AUTH_TYPES}, got {auth_type!r}")
        login_as = data.get("loginAs", "admin")
        if login_as not in LOGIN_ROLES:
            raise ConfigError(f"'loginAs' must be one of {LOGIN_ROLES}, got {login_as!r}")

        admin_password = _optional_str(data, "adminPassword")
        bot_token = _optional_str(data, "botToken")
        if auth_type == "token" and not bot_token:
            logger.warning("authType is 'token' but no botToken is set; servers requiring login will be dropped")

        emojilist_url = _optional_str(data, "emojilistUrl")
        if emojilist_url and not is_http_url(emojilist_url):
            raise ConfigError(f"'emojilistUrl' is not an http(s) URL: {emojilist_url!r}")

        colon_emoji = data.get("colonEmoji", False)
        if not isinstance(colon_emoji, bool):
            raise ConfigError("'colonEmoji' must be true or false")

        log_level = _optional_str(data, "logLevel") or "INFO"

        return cls(
            prefix=prefix,
            username=username,
            endpoints=endpoints,
            auth_type=auth_type,
            admin_password=admin_password,
            bot_token=bot_token,
            login_as=login_as,
            emojilist_url=emojilist_url,
            colon_emoji=colon_emoji,
            reconnect=_parse_reconnect(data.get("reconnect")),
            log_level=log_level.upper(),
        )


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"'{key}' is required and must be a non-empty string")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string")
    return value


def _parse_endpoint(index: int, vm: Any) -> EndpointConfig:
    if not isinstance(vm, dict):
        raise ConfigError(f"vms[{index}] must be a mapping")
    url = vm.get("url")
    if not isinstance(url, str) or not is_ws_url(url):
        raise ConfigError(f"vms[{index}].url must be a ws:// or wss:// URL")
    node_id = vm.get("nodeId")
    if not isinstance(node_id, str) or not node_id:
        raise ConfigError(f"vms[{index}].nodeId is required")
    origin = vm.get("origin") or DEFAULT_ORIGIN
    if not isinstance(origin, str):
        raise ConfigError(f"vms[{index}].origin must be a string")
    return EndpointConfig(url=url, node_id=node_id, origin=origin)


def _parse_reconnect(raw: Any) -> ReconnectPolicy:
    if raw is None:
        return ReconnectPolicy()
    if not isinstance(raw, dict):
        raise ConfigError("'reconnect' must be a mapping")
    try:
        policy = ReconnectPolicy(
            max_retries=int(raw.get("maxRetries", 0)),
            base_delay=float(raw.get("baseDelay", 1.0)),
            max_delay=float(raw.get("maxDelay", 60.0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid 'reconnect' settings: {e}") from e
    if policy.max_retries < 0 or policy.base_delay < 0 or policy.max_delay < 0:
        raise ConfigError("'reconnect' values must not be negative")
    return policy


def find_config_file(explicit: Optional[Path] = None, cwd: Optional[Path] = None) -> Path:
    """
    Locate the configuration file.

    Search order: the explicit path, ``$VMBOT_CONFIG``, then
    config.json / config.yaml / config.yml in the working directory.
    """
    if explicit is not None:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise ConfigNotFoundError(f"{path} not found")
        return path

    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        path = Path(env_path).expanduser()
        if not path.is_file():
            raise ConfigNotFoundError(f"{CONFIG_ENV_VAR} points to {path}, which does not exist")
        return path

    base = cwd or Path.cwd()
    for name in CONFIG_FILENAMES:
        path = base / name
        if path.is_file():
            return path
    raise ConfigNotFoundError(
        "config.json not found. Please copy config.example.json to config.json and fill it in."
    )


def load_config(path: Path) -> BotConfig:
    """Parse and validate the configuration file at ``path``."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
    except (json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError) as e:
        raise ConfigError(f"could not parse {path}: {e}") from e
    except OSError as e:
        raise ConfigNotFoundError(f"could not read {path}: {e}") from e
    config = BotConfig.from_dict(data)
    logger.info(f"Loaded configuration from {path} ({len(config.endpoints)} VM(s))")
    return config
