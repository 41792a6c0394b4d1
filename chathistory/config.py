from __future__ import annotations

import json
import os
import warnings
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/chathistory/config.json").expanduser()
DEFAULT_STORAGE_PATH = "~/.chathistory"

DEFAULT_FILE_PATTERNS = [
    "*.ts",
    "*.js",
    "*.tsx",
    "*.jsx",
    "*.py",
    "*.java",
    "*.cpp",
    "*.c",
    "*.html",
    "*.css",
    "*.scss",
    "*.md",
    "*.txt",
    "*.json",
]

CONFIG_ENV_OVERRIDES = {
    "storage_path": "CHATHISTORY_STORAGE_PATH",
    "auto_save.enabled": "CHATHISTORY_AUTOSAVE_ENABLED",
    "auto_save.interval": "CHATHISTORY_AUTOSAVE_INTERVAL",
    "auto_save.idle_timeout": "CHATHISTORY_AUTOSAVE_IDLE_TIMEOUT",
    "auto_save.watch_directories": "CHATHISTORY_AUTOSAVE_WATCH_DIRECTORIES",
    "auto_save.file_patterns": "CHATHISTORY_AUTOSAVE_FILE_PATTERNS",
    "viewer_host": "CHATHISTORY_VIEWER_HOST",
    "viewer_port": "CHATHISTORY_VIEWER_PORT",
}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("CHATHISTORY_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class AutoSaveConfig:
    enabled: bool = False
    # Minutes between ticks.
    interval: float = 5.0
    # Accepted but not acted on; sessions are not split after inactivity.
    idle_timeout: float = 30.0
    watch_directories: list[str] = field(default_factory=list)
    file_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_FILE_PATTERNS))


@dataclass
class ChatHistoryConfig:
    storage_path: str = DEFAULT_STORAGE_PATH
    viewer_host: str = "127.0.0.1"
    viewer_port: int = 38890
    auto_save: AutoSaveConfig = field(default_factory=AutoSaveConfig)

    def resolved_storage_path(self) -> Path:
        return Path(self.storage_path).expanduser()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_minutes(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        warnings.warn(f"Invalid number for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid number for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if parsed <= 0:
        warnings.warn(f"{key} must be positive: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_str_list(value: object, *, key: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        items: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                items.append(item.strip())
        return items
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    warnings.warn(f"Invalid list for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def load_config(path: Path | None = None) -> ChatHistoryConfig:
    cfg = _apply_dict(ChatHistoryConfig(), read_config_file(path))
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: ChatHistoryConfig, data: dict[str, Any]) -> ChatHistoryConfig:
    for key, value in data.items():
        if key in {"auto_save", "autoSave"}:
            if isinstance(value, dict):
                _apply_auto_save(cfg.auto_save, value)
            else:
                warnings.warn(f"Invalid object for {key}: {value!r}", RuntimeWarning, stacklevel=2)
            continue
        if key in {"storage_path", "storagePath"}:
            if isinstance(value, str) and value.strip():
                cfg.storage_path = value.strip()
            continue
        if key == "viewer_port":
            cfg.viewer_port = _parse_int(value, cfg.viewer_port, key=key)
            continue
        if key == "viewer_host" and isinstance(value, str):
            cfg.viewer_host = value
    return cfg


def _apply_auto_save(auto_save: AutoSaveConfig, data: dict[str, Any]) -> None:
    aliases = {
        "watchDirectories": "watch_directories",
        "filePatterns": "file_patterns",
        "idleTimeout": "idle_timeout",
    }
    for raw_key, value in data.items():
        key = aliases.get(raw_key, raw_key)
        if key == "enabled":
            auto_save.enabled = _coerce_bool(value, auto_save.enabled, key="auto_save.enabled")
        elif key in {"interval", "idle_timeout"}:
            setattr(
                auto_save,
                key,
                _parse_minutes(value, getattr(auto_save, key), key=f"auto_save.{key}"),
            )
        elif key in {"watch_directories", "file_patterns"}:
            parsed = _coerce_str_list(value, key=f"auto_save.{key}")
            if parsed is not None:
                setattr(auto_save, key, parsed)


def _apply_env(cfg: ChatHistoryConfig) -> ChatHistoryConfig:
    cfg.storage_path = os.getenv("CHATHISTORY_STORAGE_PATH", cfg.storage_path)
    cfg.viewer_host = os.getenv("CHATHISTORY_VIEWER_HOST", cfg.viewer_host)
    cfg.viewer_port = _parse_int(
        os.getenv("CHATHISTORY_VIEWER_PORT"), cfg.viewer_port, key="viewer_port"
    )

    auto_save = cfg.auto_save
    auto_save.enabled = _parse_bool(os.getenv("CHATHISTORY_AUTOSAVE_ENABLED"), auto_save.enabled)
    auto_save.interval = _parse_minutes(
        os.getenv("CHATHISTORY_AUTOSAVE_INTERVAL"), auto_save.interval, key="auto_save.interval"
    )
    auto_save.idle_timeout = _parse_minutes(
        os.getenv("CHATHISTORY_AUTOSAVE_IDLE_TIMEOUT"),
        auto_save.idle_timeout,
        key="auto_save.idle_timeout",
    )
    watch = _coerce_str_list(
        os.getenv("CHATHISTORY_AUTOSAVE_WATCH_DIRECTORIES"), key="auto_save.watch_directories"
    )
    if watch is not None:
        auto_save.watch_directories = watch
    patterns = _coerce_str_list(
        os.getenv("CHATHISTORY_AUTOSAVE_FILE_PATTERNS"), key="auto_save.file_patterns"
    )
    if patterns is not None:
        auto_save.file_patterns = patterns
    return cfg
