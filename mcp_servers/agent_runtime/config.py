from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _repo_root() -> Path:
    # mcp_servers/agent_runtime/config.py -> repo root is parents[2]
    return Path(__file__).resolve().parents[2]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int, *, lo: int, hi: int) -> int:
    try:
        num = int(os.environ.get(name) or default)
    except Exception:
        return default
    return max(lo, min(num, hi))


def _env_float(name: str, default: float, *, lo: float, hi: float) -> float:
    try:
        num = float(os.environ.get(name) or default)
    except Exception:
        return default
    return max(lo, min(num, hi))


@dataclass
class RuntimeConfig:
    definitions_dir: str = field(default_factory=lambda: str(_repo_root() / "data" / "definitions"))
    storage_path: str = field(default_factory=lambda: str(_repo_root() / "data" / "storage.json"))
    credentials_path: str = field(default_factory=lambda: str(_repo_root() / "data" / "credentials.json"))
    allow_hosts: list[str] = field(default_factory=list)
    http_timeout: float = 10.0
    http_max_bytes: int = 1_000_000

    # Execution policy switches.
    allow_raw_script: bool = False
    strict_safe_mode: bool = False
    model_assisted_enabled: bool = True
    use_own_model_key: bool = False

    model_name: str = "gpt-4o-mini"
    model_max_tokens: int = 2048

    cdp_host: str = "127.0.0.1"
    cdp_port: int = 9222
    dom_timeout_ms: int = 5000

    wait_for_timeout_ms: int = 5000
    wait_for_poll_ms: int = 100
    while_max_iterations: int = 1000
    process_join_timeout: float = 2.0

    @classmethod
    def from_env(cls) -> RuntimeConfig:
        definitions_dir = os.environ.get("MCP_AGENT_DEFINITIONS_DIR")
        storage_path = os.environ.get("MCP_AGENT_STORAGE_PATH")
        credentials_path = os.environ.get("MCP_AGENT_CREDENTIALS_PATH")
        allow_raw = os.environ.get("MCP_ALLOW_HOSTS", "")
        allow_hosts = [host.strip().lower() for host in allow_raw.split(",") if host.strip() and host.strip() != "*"]
        defaults = cls()
        return cls(
            definitions_dir=expand_path(definitions_dir) if definitions_dir else defaults.definitions_dir,
            storage_path=expand_path(storage_path) if storage_path else defaults.storage_path,
            credentials_path=expand_path(credentials_path) if credentials_path else defaults.credentials_path,
            allow_hosts=allow_hosts,
            http_timeout=_env_float("MCP_HTTP_TIMEOUT", 10.0, lo=0.1, hi=300.0),
            http_max_bytes=_env_int("MCP_HTTP_MAX_BYTES", 1_000_000, lo=1024, hi=100_000_000),
            allow_raw_script=_env_bool("MCP_AGENT_ALLOW_RAW_SCRIPT", False),
            strict_safe_mode=_env_bool("MCP_AGENT_STRICT_SAFE_MODE", False),
            model_assisted_enabled=_env_bool("MCP_AGENT_MODEL_ASSISTED", True),
            use_own_model_key=_env_bool("MCP_AGENT_USE_OWN_MODEL_KEY", False),
            model_name=(os.environ.get("MCP_AGENT_MODEL") or defaults.model_name).strip(),
            model_max_tokens=_env_int("MCP_AGENT_MODEL_MAX_TOKENS", 2048, lo=64, hi=32_000),
            cdp_host=(os.environ.get("MCP_AGENT_CDP_HOST") or defaults.cdp_host).strip(),
            cdp_port=_env_int("MCP_AGENT_CDP_PORT", 9222, lo=1, hi=65535),
            dom_timeout_ms=_env_int("MCP_AGENT_DOM_TIMEOUT_MS", 5000, lo=100, hi=120_000),
            wait_for_timeout_ms=_env_int("MCP_AGENT_WAIT_FOR_TIMEOUT_MS", 5000, lo=100, hi=600_000),
            wait_for_poll_ms=_env_int("MCP_AGENT_WAIT_FOR_POLL_MS", 100, lo=10, hi=10_000),
            while_max_iterations=_env_int("MCP_AGENT_WHILE_MAX_ITERATIONS", 1000, lo=1, hi=1_000_000),
            process_join_timeout=_env_float("MCP_AGENT_PROCESS_JOIN_TIMEOUT", 2.0, lo=0.0, hi=60.0),
        )

    def is_host_allowed(self, host: str) -> bool:
        host = (host or "").strip().lower().rstrip(".")
        if not self.allow_hosts:
            return True
        for raw_allowed in self.allow_hosts:
            allowed = (raw_allowed or "").strip().lower().lstrip(".").rstrip(".")
            if not allowed:
                continue
            if host == allowed:
                return True
            if host.endswith("." + allowed):
                return True
        return False
