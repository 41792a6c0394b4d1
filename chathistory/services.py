from __future__ import annotations

from dataclasses import dataclass

from .autosave import AutoSaveScheduler
from .capture import ContentProvider, RecentFileProvider
from .config import ChatHistoryConfig, load_config
from .store import SessionStore


@dataclass
class Services:
    config: ChatHistoryConfig
    store: SessionStore
    autosave: AutoSaveScheduler


def build_services(
    config: ChatHistoryConfig | None = None,
    *,
    provider: ContentProvider | None = None,
    initialize: bool = True,
) -> Services:
    """Construct the store and scheduler once and hand them to consumers."""

    cfg = config or load_config()
    store = SessionStore(cfg.resolved_storage_path())
    if initialize:
        store.initialize()
    if provider is None:
        provider = RecentFileProvider(
            cfg.auto_save.watch_directories, cfg.auto_save.file_patterns
        )
    autosave = AutoSaveScheduler(store, cfg.auto_save, provider)
    return Services(config=cfg, store=store, autosave=autosave)
