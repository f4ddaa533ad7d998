import json
from pathlib import Path

import pytest

from bot.config import (
    DEFAULT_ORIGIN,
    BotConfig,
    ConfigError,
    ConfigNotFoundError,
    find_config_file,
    load_config,
)

VALID = {
    "prefix": "!",
    "username": "EmojiBot",
    "authType": "token",
    "botToken": "tok",
    "loginAs": "mod",
    "emojilistUrl": "https://example.com/emojis.json",
    "colonEmoji": True,
    "vms": [
        {"url": "wss://example.com/collab-vm/vm1", "nodeId": "vm1"},
        {"url": "ws://127.0.0.1:6004", "nodeId": "vm2", "origin": "https://other.example"},
    ],
}


def write(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_json_config(tmp_path):
    config = load_config(write(tmp_path / "config.json", VALID))

    assert config.prefix == "!"
    assert config.uses_token is True
    assert config.uses_password_elevation is False
    assert config.colon_emoji is True
    assert [e.node_id for e in config.endpoints] == ["vm1", "vm2"]
    assert config.endpoints[0].origin == DEFAULT_ORIGIN
    assert config.endpoints[1].origin == "https://other.example"
    assert config.reconnect.enabled is False


def test_load_yaml_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "prefix: '?'\n"
        "username: Bot\n"
        "adminPassword: pw\n"
        "vms:\n"
        "  - url: ws://localhost:6004\n"
        "    nodeId: vm0\n"
        "reconnect:\n"
        "  maxRetries: 3\n"
        "  baseDelay: 0.5\n",
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.auth_type == "password"
    assert config.login_as == "admin"
    assert config.uses_password_elevation is True
    assert config.reconnect.max_retries == 3
    assert config.reconnect.delay(0) == 0.5
    assert config.reconnect.delay(2) == 2.0
    assert config.reconnect.delay(20) == 60.0


@pytest.mark.parametrize("key", ["prefix", "username", "vms"])
def test_missing_required_key(key):
    data = dict(VALID)
    del data[key]
    with pytest.raises(ConfigError, match=key):
        BotConfig.from_dict(data)


@pytest.mark.parametrize("key,value", [
    ("authType", "oauth"),
    ("loginAs", "owner"),
    ("colonEmoji", "yes"),
    ("emojilistUrl", "ftp://example.com/list"),
    ("vms", []),
    ("vms", [{"url": "http://example.com", "nodeId": "vm1"}]),
    ("vms", [{"url": "ws://example.com"}]),
    ("reconnect", {"maxRetries": -1}),
])
def test_invalid_values(key, value):
    data = dict(VALID, **{key: value})
    with pytest.raises(ConfigError):
        BotConfig.from_dict(data)


def test_unparseable_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_bad_reconnect_number_keeps_the_cause():
    with pytest.raises(ConfigError) as excinfo:
        BotConfig.from_dict(dict(VALID, reconnect={"maxRetries": "many"}))
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_non_utf8_file_is_a_config_error(tmp_path):
    path = tmp_path / "config.json"
    path.write_bytes(b'{"prefix": "\xff\xfe"}')
    with pytest.raises(ConfigError):
        load_config(path)


def test_duplicate_endpoint_is_rejected():
    vm = {"url": "ws://127.0.0.1:6004", "nodeId": "vm1"}
    with pytest.raises(ConfigError, match=r"vms\[1\]"):
        BotConfig.from_dict(dict(VALID, vms=[vm, dict(vm)]))


def test_same_node_id_on_different_servers_is_allowed():
    vms = [
        {"url": "ws://server-a.example/", "nodeId": "vm1"},
        {"url": "ws://server-b.example/", "nodeId": "vm1"},
    ]
    config = BotConfig.from_dict(dict(VALID, vms=vms))
    assert [e.url for e in config.endpoints] == ["ws://server-a.example/", "ws://server-b.example/"]


def test_find_config_prefers_explicit_path(tmp_path, monkeypatch):
    monkeypatch.delenv("VMBOT_CONFIG", raising=False)
    explicit = write(tmp_path / "custom.json", VALID)
    write(tmp_path / "config.json", VALID)
    assert find_config_file(explicit, cwd=tmp_path) == explicit


def test_find_config_uses_env_var(tmp_path, monkeypatch):
    path = write(tmp_path / "elsewhere.json", VALID)
    monkeypatch.setenv("VMBOT_CONFIG", str(path))
    assert find_config_file(cwd=tmp_path / "nowhere") == path


def test_find_config_searches_working_directory(tmp_path, monkeypatch):
    monkeypatch.delenv("VMBOT_CONFIG", raising=False)
    path = tmp_path / "config.yml"
    path.write_text("prefix: '!'\n", encoding="utf-8")
    assert find_config_file(cwd=tmp_path) == path


def test_find_config_raises_when_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("VMBOT_CONFIG", raising=False)
    with pytest.raises(ConfigNotFoundError):
        find_config_file(cwd=tmp_path)
    with pytest.raises(ConfigNotFoundError):
        find_config_file(tmp_path / "missing.json")
