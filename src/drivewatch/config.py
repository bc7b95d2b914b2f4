from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

ROOT_FOLDER_PLACEHOLDER = "FOLDER_TO_MONITOR_ID"

# Values shipped in the config template; a channel holding one is not configured.
PLACEHOLDERS = frozenset(
    {
        "DISCORD_WEBHOOK",
        "SLACK_WEBHOOK",
        "WEBHOOK_URL",
        "1234567890:ABC-EXAMPLE-TOKEN",
        "123456789",
    }
)

DEFAULT_CONFIG_PATH = Path("drivewatch.json")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ChannelConfig:
    """Settings for one notification channel.

    Discord, Slack and the generic webhook use webhook_url; Telegram uses
    bot_token and chat_id.
    """
    name: str
    enabled: bool = False
    webhook_url: str = ""
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class AppConfig:
    root_folder_id: str
    credentials_file: Path
    state_db: Path
    run_log: Path
    folder_cache_ttl_seconds: int
    poll_interval_minutes: int
    lease_ttl_seconds: int
    display_timezone: str
    channels: tuple[ChannelConfig, ...]


def is_placeholder(value: str) -> bool:
    return not value.strip() or value.strip() in PLACEHOLDERS


def resolve_secret(value: str) -> str:
    """Resolve 'env:NAME' references; missing variables resolve to ''."""
    if value.startswith("env:"):
        return os.environ.get(value[4:], "")
    return value


def default_config_path() -> Path:
    return Path(os.getenv("DRIVEWATCH_CONFIG", str(DEFAULT_CONFIG_PATH)))


def _expect_str(data: dict[str, Any], key: str, *, required: bool = True, default: str = "") -> str:
    value = data.get(key)
    if value is None and not required:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Config '{key}' must be a non-empty string.")
    return value.strip()


def _expect_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"Config '{key}' must be a positive integer.")
    return value


def _parse_channel(name: str, entry: Any) -> ChannelConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"Channel '{name}' must be an object.")
    enabled = entry.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ConfigError(f"Channel '{name}' field 'enabled' must be true or false.")

    fields: dict[str, str] = {}
    for key in ("webhook_url", "bot_token", "chat_id"):
        value = entry.get(key, "")
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)  # Telegram chat ids are often written as numbers
        if not isinstance(value, str):
            raise ConfigError(f"Channel '{name}' field '{key}' must be a string.")
        fields[key] = resolve_secret(value.strip())

    return ChannelConfig(name=name, enabled=enabled, **fields)


def parse_config(raw: Any, base_dir: Path | None = None) -> AppConfig:
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a JSON object.")
    base_dir = base_dir or Path.cwd()

    root_folder_id = _expect_str(raw, "root_folder_id")
    if root_folder_id == ROOT_FOLDER_PLACEHOLDER:
        raise ConfigError("Config 'root_folder_id' still holds the template placeholder.")

    def _path(key: str, default: str) -> Path:
        path = Path(_expect_str(raw, key, required=False, default=default))
        return path if path.is_absolute() else base_dir / path

    display_timezone = _expect_str(raw, "display_timezone", required=False, default="UTC")
    try:
        ZoneInfo(display_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown display_timezone '{display_timezone}'.") from exc

    notifications = raw.get("notifications", {})
    if not isinstance(notifications, dict):
        raise ConfigError("Config 'notifications' must be an object.")
    channels = tuple(_parse_channel(name, entry) for name, entry in notifications.items())

    return AppConfig(
        root_folder_id=root_folder_id,
        credentials_file=_path("credentials_file", "service-account.json"),
        state_db=_path("state_db", "drivewatch.db"),
        run_log=_path("run_log", "drivewatch_runs.jsonl"),
        folder_cache_ttl_seconds=_expect_int(raw, "folder_cache_ttl_seconds", 300),
        poll_interval_minutes=_expect_int(raw, "poll_interval_minutes", 5),
        lease_ttl_seconds=_expect_int(raw, "lease_ttl_seconds", 600),
        display_timezone=display_timezone,
        channels=channels,
    )


def load_config(path: Path) -> AppConfig:
    """Load config JSON; relative paths inside it resolve against its directory."""
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file is not valid JSON: {exc}") from exc
    return parse_config(raw, base_dir=path.resolve().parent)
