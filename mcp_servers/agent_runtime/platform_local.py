from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from .storage import JsonKeyValueStore

_logger = logging.getLogger("mcp.agent_runtime.platform")


class _TabOpener(Protocol):
    def create_tab(self, url: str) -> Any: ...


class LocalPlatform:
    """PlatformServices for a local process.

    Storage is a JSON file, tabs are opened through the DOM bridge,
    notifications go to the log, and client credentials come from a JSON file
    mapping client id to a credential object.
    """

    def __init__(
        self,
        storage: JsonKeyValueStore,
        *,
        tabs: _TabOpener | None = None,
        credentials_path: str | Path | None = None,
    ) -> None:
        self.storage = storage
        self.tabs = tabs
        self.credentials_path = Path(credentials_path).expanduser() if credentials_path else None

    def storage_get(self, keys: str | list[str] | None) -> dict[str, Any]:
        return self.storage.get(keys)

    def storage_set(self, items: dict[str, Any]) -> None:
        self.storage.set(items)

    def create_tab(self, url: str) -> Any:
        if self.tabs is None:
            raise RuntimeError("Tab creation is not available")
        return self.tabs.create_tab(url)

    def notify(self, title: str, message: str) -> None:
        _logger.info("Notification: %s - %s", title, message)

    def credentials_for(self, client_id: str) -> dict[str, Any]:
        if self.credentials_path is None or not self.credentials_path.exists():
            return {}
        try:
            data = json.loads(self.credentials_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            _logger.warning("Unreadable credentials file: %s", exc)
            return {}
        creds = data.get(client_id) if isinstance(data, dict) else None
        return dict(creds) if isinstance(creds, dict) else {}
