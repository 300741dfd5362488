"""Disk persistence for definitions and platform key/value storage.

Design
- One JSON file per definition under `<definitions_dir>/agents|clients/<id>.json`.
- Atomic writes: write temp file then replace; files are chmod 600.
- Definitions are validated on save; corrupt files are skipped on list (fail-soft).
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from contextlib import suppress
from pathlib import Path
from typing import Any

from .definitions import AgentDefinition, validate_agent_dict, validate_client_dict
from .engine.errors import DefinitionError

_logger = logging.getLogger("mcp.agent_runtime.storage")

_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def _write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    with suppress(Exception):
        os.chmod(tmp, 0o600)
    tmp.replace(path)
    with suppress(Exception):
        os.chmod(path, 0o600)


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8", errors="replace"))


class DefinitionStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser()

    def _path(self, kind: str, definition_id: str) -> Path:
        if not isinstance(definition_id, str) or not _ID_RE.match(definition_id):
            raise DefinitionError(f"Invalid definition id: {definition_id!r}")
        return self.root / kind / f"{definition_id}.json"

    # Agents

    def save_agent(self, raw: dict[str, Any]) -> dict[str, Any]:
        errors = validate_agent_dict(raw)
        if errors:
            raise DefinitionError("Invalid agent definition: " + "; ".join(errors))
        record = dict(raw)
        # The stored flag always reflects the steps, whatever the caller sent.
        detected = AgentDefinition.from_dict({**raw, "containsJavaScript": False}).contains_raw_script
        record["containsJavaScript"] = detected
        _write_json_atomic(self._path("agents", raw["id"]), record)
        _logger.info("Saved agent %s", raw["id"])
        return record

    def load_agent(self, agent_id: str) -> dict[str, Any] | None:
        path = self._path("agents", agent_id)
        if not path.exists():
            return None
        return _read_json(path)

    def list_agents(self) -> list[dict[str, Any]]:
        return self._list("agents")

    def delete_agent(self, agent_id: str) -> bool:
        return self._delete(self._path("agents", agent_id))

    # Clients

    def save_client(self, raw: dict[str, Any]) -> dict[str, Any]:
        errors = validate_client_dict(raw)
        if errors:
            raise DefinitionError("Invalid client definition: " + "; ".join(errors))
        record = dict(raw)
        _write_json_atomic(self._path("clients", raw["id"]), record)
        _logger.info("Saved client %s", raw["id"])
        return record

    def load_client(self, client_id: str) -> dict[str, Any] | None:
        path = self._path("clients", client_id)
        if not path.exists():
            return None
        return _read_json(path)

    def list_clients(self) -> list[dict[str, Any]]:
        return self._list("clients")

    def delete_client(self, client_id: str) -> bool:
        return self._delete(self._path("clients", client_id))

    def _list(self, kind: str) -> list[dict[str, Any]]:
        folder = self.root / kind
        if not folder.is_dir():
            return []
        out = []
        for path in sorted(folder.glob("*.json")):
            try:
                data = _read_json(path)
            except (OSError, ValueError) as exc:
                _logger.warning("Skipping unreadable %s: %s", path.name, exc)
                continue
            if isinstance(data, dict):
                out.append(data)
        return out

    @staticmethod
    def _delete(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True


class JsonKeyValueStore:
    """Flat JSON object on disk, guarded by a lock."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = _read_json(self.path)
        except (OSError, ValueError) as exc:
            _logger.warning("Ignoring corrupt storage file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, keys: str | list[str] | None = None) -> dict[str, Any]:
        with self._lock:
            data = self._load()
        if keys is None:
            return data
        if isinstance(keys, str):
            keys = [keys]
        return {k: data[k] for k in keys if k in data}

    def set(self, items: dict[str, Any]) -> None:
        with self._lock:
            data = self._load()
            data.update(items)
            _write_json_atomic(self.path, data)
