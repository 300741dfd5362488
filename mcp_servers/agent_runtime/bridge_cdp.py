"""DOM bridge over the Chrome DevTools Protocol.

Scripts run as async function bodies with `args` bound to a JSON-encoded
argument list. Named capabilities map to fixed scripts in `NAMED_SCRIPTS`;
nothing model-proposed ever becomes script source.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from typing import Any
from urllib.error import URLError
from urllib.request import urlopen

import websocket

from .collaborators import BridgeError, NamedCallResult
from .config import RuntimeConfig

_logger = logging.getLogger("mcp.agent_runtime.cdp")


def _http_get_json(url: str, timeout: float = 2.0) -> Any:
    """Fetch JSON from URL."""
    try:
        with urlopen(url, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (URLError, OSError, ValueError) as exc:
        raise BridgeError(str(exc)) from exc


_OVERLAY_SCAN = """
const p = args[0] || {};
const describe = (el) => ({
  tagName: el.tagName, id: el.id || '',
  className: typeof el.className === 'string' ? el.className : '',
});
const out = {
  url: location.href,
  title: document.title,
  scrollLocked: getComputedStyle(document.body).overflow === 'hidden',
};
if (p.find_overlays !== false) {
  out.overlays = Array.from(document.querySelectorAll('body *')).filter((el) => {
    const s = getComputedStyle(el);
    if (s.position !== 'fixed' && s.position !== 'sticky') return false;
    const z = parseInt(s.zIndex, 10);
    const r = el.getBoundingClientRect();
    return (z > 100 || r.width * r.height > innerWidth * innerHeight * 0.3) && s.display !== 'none';
  }).slice(0, 50).map((el) => Object.assign(describe(el), {
    zIndex: getComputedStyle(el).zIndex,
    text: (el.textContent || '').trim().slice(0, 200),
  }));
}
return out;
"""

_PAGE_TEXT = """
const p = args[0] || {};
const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT);
const nodes = [];
window.__agentTextNodes = [];
let node;
while ((node = walker.nextNode())) {
  const text = node.textContent.trim();
  if (!text) continue;
  const parent = node.parentElement;
  if (!parent || ['SCRIPT', 'STYLE', 'NOSCRIPT'].includes(parent.tagName)) continue;
  if (!p.include_hidden && parent.offsetParent === null) continue;
  const id = 'node_' + window.__agentTextNodes.length;
  window.__agentTextNodes.push(node);
  nodes.push({ id: id, text: text });
}
return { text_nodes: nodes };
"""

_REPLACE_TEXT = """
const p = args[0] || {};
const known = window.__agentTextNodes || [];
let replaced = 0;
for (const [id, text] of Object.entries(p.replacements || {})) {
  const node = known[parseInt(String(id).replace('node_', ''), 10)];
  if (node) { node.textContent = text; replaced++; }
}
return { replaced: replaced };
"""

_NATIVE_TRANSLATE = """
const p = args[0] || {};
if (!('Translator' in self)) return { success: false, error: 'Native translator unavailable' };
const translator = await Translator.create({
  sourceLanguage: p.source_language || document.documentElement.lang || 'en',
  targetLanguage: p.target_language,
});
const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT);
let node, count = 0;
while ((node = walker.nextNode())) {
  const text = node.textContent.trim();
  if (!text) continue;
  node.textContent = await translator.translate(node.textContent);
  count++;
}
return { success: true, translated_nodes: count, method: 'native' };
"""

NAMED_SCRIPTS: dict[str, str] = {
    "browser_remove_element": (
        "const p = args[0];\n"
        "const els = p.all ? Array.from(document.querySelectorAll(p.selector))"
        " : [document.querySelector(p.selector)].filter(Boolean);\n"
        "els.forEach(el => el.remove());\n"
        "return { removed: els.length };"
    ),
    "browser_click_element": (
        "const el = document.querySelector(args[0].selector);\n"
        "if (!el) throw new Error('Element not found: ' + args[0].selector);\n"
        "el.click();\nreturn { clicked: true };"
    ),
    "browser_modify_style": (
        "const els = document.querySelectorAll(args[0].selector);\n"
        "els.forEach(el => Object.assign(el.style, args[0].styles));\n"
        "return { modified: els.length };"
    ),
    "browser_restore_scroll": (
        "for (const el of [document.documentElement, document.body]) {\n"
        "  el.style.overflow = ''; el.style.position = ''; el.style.height = '';\n"
        "}\nreturn { restored: true };"
    ),
    "browser_get_element_text": (
        "const el = document.querySelector(args[0].selector);\nreturn el ? el.textContent : null;"
    ),
    "browser_scroll_to": (
        "const el = document.querySelector(args[0].selector);\n"
        "if (!el) throw new Error('Element not found: ' + args[0].selector);\n"
        "el.scrollIntoView({ behavior: args[0].behavior || 'auto' });\nreturn { scrolled: true };"
    ),
    "browser_fill_input": (
        "const el = document.querySelector(args[0].selector);\n"
        "if (!el) throw new Error('Element not found: ' + args[0].selector);\n"
        "el.value = args[0].value;\n"
        "el.dispatchEvent(new Event('input', { bubbles: true }));\n"
        "el.dispatchEvent(new Event('change', { bubbles: true }));\n"
        "return { filled: true };"
    ),
    "browser_inspect_page": _OVERLAY_SCAN,
    "browser_get_page_text": _PAGE_TEXT,
    "browser_replace_text": _REPLACE_TEXT,
    "browser_translate_page_native": _NATIVE_TRANSLATE,
}


def build_expression(script: str, args: list[Any] | None) -> str:
    payload = json.dumps(list(args or []), ensure_ascii=True)
    return f"(async (args) => {{\n{script}\n}})({payload})"


class CdpConnection:
    """One CDP websocket, request/response only (events are discarded)."""

    def __init__(self, ws_url: str, timeout: float = 5.0, *, connect: Callable[..., Any] | None = None):
        connect = connect or websocket.create_connection
        try:
            self.ws = connect(ws_url, timeout=timeout)
        except Exception as exc:  # noqa: BLE001
            raise BridgeError(f"CDP connect failed: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1

    def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        msg_id = self._next_id
        self._next_id += 1
        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params
        try:
            self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            raise BridgeError(str(exc)) from exc
        return self._recv_until(msg_id, timeout if timeout is not None else self.timeout)

    def _recv_until(self, expected_id: int, timeout: float) -> dict[str, Any]:
        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise BridgeError("CDP response timed out")
            try:
                self.ws.settimeout(min(0.5, remaining))
                raw = self.ws.recv()
            except Exception as exc:  # noqa: BLE001
                msg = str(exc).lower()
                if isinstance(exc, TimeoutError) or "timed out" in msg:
                    continue
                raise BridgeError(str(exc)) from exc

            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict) or data.get("id") != expected_id:
                continue
            if "error" in data:
                raise BridgeError(str(data["error"]))
            result = data.get("result")
            return result if isinstance(result, dict) else {}

    def close(self) -> None:
        try:
            self.ws.close()
        except Exception:  # noqa: BLE001
            _logger.debug("CDP close failed", exc_info=True)


class CdpDomBridge:
    """DomBridge backed by a Chrome instance started with --remote-debugging-port."""

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        connect: Callable[..., Any] | None = None,
        fetch_json: Callable[[str], Any] = _http_get_json,
    ) -> None:
        self.config = config
        self._connect = connect
        self._fetch_json = fetch_json
        self._lock = threading.RLock()
        self._conns: dict[str, CdpConnection] = {}

    def _base(self) -> str:
        return f"http://{self.config.cdp_host}:{self.config.cdp_port}"

    def _page_target(self, target_session: str | None) -> dict[str, Any]:
        targets = self._fetch_json(f"{self._base()}/json/list") or []
        pages = [t for t in targets if isinstance(t, dict) and t.get("webSocketDebuggerUrl")]
        if target_session:
            for t in pages:
                if t.get("id") == target_session:
                    return t
            raise BridgeError(f"Tab not found: {target_session}")
        for t in pages:
            if t.get("type") == "page":
                return t
        raise BridgeError("No page target available")

    def _connection(self, target_session: str | None) -> CdpConnection:
        key = target_session or ""
        conn = self._conns.get(key)
        if conn is None:
            target = self._page_target(target_session)
            timeout = self.config.dom_timeout_ms / 1000.0
            conn = CdpConnection(target["webSocketDebuggerUrl"], timeout, connect=self._connect)
            self._conns[key] = conn
        return conn

    def run(
        self,
        script: str,
        args: list[Any] | None = None,
        timeout_ms: int | None = None,
        target_session: str | None = None,
    ) -> Any:
        timeout = (timeout_ms or self.config.dom_timeout_ms) / 1000.0
        with self._lock:
            conn = self._connection(target_session)
            try:
                result = conn.send(
                    "Runtime.evaluate",
                    {
                        "expression": build_expression(script, args),
                        "returnByValue": True,
                        "awaitPromise": True,
                    },
                    timeout=timeout,
                )
            except BridgeError:
                # Drop the connection so the next call reconnects.
                self._conns.pop(target_session or "", None)
                conn.close()
                raise
        details = result.get("exceptionDetails")
        if details:
            exc = details.get("exception") if isinstance(details, dict) else None
            text = (exc or {}).get("description") or details.get("text") or "Script error"
            raise BridgeError(str(text))
        value = result.get("result")
        if not isinstance(value, dict) or value.get("type") == "undefined":
            return None
        return value.get("value")

    def call_named_capability(
        self, name: str, params: dict[str, Any], target_session: str | None = None
    ) -> NamedCallResult:
        script = NAMED_SCRIPTS.get(name)
        if script is None:
            return NamedCallResult(False, error=f"Unknown capability: {name}")
        try:
            data = self.run(script, [params], target_session=target_session)
        except BridgeError as exc:
            return NamedCallResult(False, error=str(exc))
        if isinstance(data, dict) and data.get("success") is False:
            return NamedCallResult(False, data=data, error=str(data.get("error") or "failed"))
        return NamedCallResult(True, data=data)

    def create_tab(self, url: str) -> dict[str, Any]:
        version = self._fetch_json(f"{self._base()}/json/version") or {}
        ws_url = version.get("webSocketDebuggerUrl")
        if not ws_url:
            raise BridgeError("CDP browser WebSocket URL not found")
        conn = CdpConnection(ws_url, self.config.dom_timeout_ms / 1000.0, connect=self._connect)
        try:
            result = conn.send("Target.createTarget", {"url": url})
        finally:
            conn.close()
        tab_id = result.get("targetId")
        if not tab_id:
            raise BridgeError("Failed to create browser tab")
        return {"id": tab_id, "url": url}

    def close(self) -> None:
        with self._lock:
            conns = list(self._conns.values())
            self._conns.clear()
        for conn in conns:
            conn.close()
