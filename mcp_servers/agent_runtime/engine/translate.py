from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from ..collaborators import DomBridge, ModelRequest, ModelResponse
from ..operations.prompts import TRANSLATION_SYSTEM_PROMPT, translation_prompt
from .errors import InterpreterError

_logger = logging.getLogger("mcp.agent_runtime.translate")

DEFAULT_STRATEGY = "native-then-llm"

STRATEGIES: dict[str, tuple[str, ...]] = {
    "native-only": ("native",),
    "llm-only": ("llm",),
    "google-only": ("google",),
    "native-then-llm": ("native", "llm"),
    "native-then-google": ("native", "google"),
    "llm-then-google": ("llm", "google"),
    "native-then-llm-then-google": ("native", "llm", "google"),
}

_LINE_RE = re.compile(r"^(.+?)\|\|\|(.+)$")

GOOGLE_WIDGET = """
if (document.querySelector('.goog-te-banner-frame')) {
  return { success: true, message: 'Translation already active' };
}
const existing = document.querySelector('#google_translate_element');
if (existing) existing.remove();
const container = document.createElement('div');
container.id = 'google_translate_element';
container.style.display = 'none';
document.body.appendChild(container);
const target = args[0];
const source = args[1];
window.googleTranslateElementInit = function() {
  new google.translate.TranslateElement(
    { pageLanguage: source, includedLanguages: target, autoDisplay: false },
    'google_translate_element'
  );
  setTimeout(() => {
    const select = document.querySelector('.goog-te-combo');
    if (select) {
      select.value = target;
      select.dispatchEvent(new Event('change'));
    }
  }, 1000);
};
const script = document.createElement('script');
script.src = '//translate.google.com/translate_a/element.js?cb=googleTranslateElementInit';
document.head.appendChild(script);
return { success: true, method: 'google' };
"""


def methods_for(strategy: str | None) -> tuple[str, ...]:
    return STRATEGIES.get(strategy or DEFAULT_STRATEGY, STRATEGIES[DEFAULT_STRATEGY])


def parse_translated_lines(content: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for line in (content or "").strip().splitlines():
        m = _LINE_RE.match(line.strip())
        if m:
            out[m.group(1)] = m.group(2)
    return out


class PageTranslator:
    """Tries translation methods in strategy order until one reports success."""

    def __init__(
        self,
        bridge: DomBridge,
        generate: Callable[[ModelRequest], ModelResponse] | None = None,
        *,
        timeout_ms: int = 5000,
    ) -> None:
        self.bridge = bridge
        self.generate = generate
        self.timeout_ms = timeout_ms

    def translate(
        self,
        target_language: str,
        source_language: str | None = None,
        strategy: str | None = None,
        target_session: str | None = None,
    ) -> dict[str, Any]:
        methods = methods_for(strategy)
        for method in methods:
            try:
                result = self._try(method, target_language, source_language, target_session)
            except Exception as exc:  # noqa: BLE001
                _logger.info("Translation method %s failed: %s", method, exc)
                continue
            if isinstance(result, dict) and result.get("success"):
                _logger.info("Translation succeeded using %s", method)
                return {**result, "method_used": method}
        return {
            "success": False,
            "error": "All translation methods failed",
            "attempted_methods": list(methods),
        }

    def _try(self, method: str, target: str, source: str | None, session: str | None) -> Any:
        if method == "native":
            params: dict[str, Any] = {"target_language": target}
            if source:
                params["source_language"] = source
            res = self.bridge.call_named_capability("browser_translate_page_native", params, session)
            if not res.success:
                raise InterpreterError(res.error or "native translation unavailable")
            return res.data
        if method == "llm":
            return self._translate_with_model(target, session)
        if method == "google":
            return self.bridge.run(GOOGLE_WIDGET, [target, source], self.timeout_ms, session)
        raise InterpreterError(f"Unknown translation method: {method}")

    def _translate_with_model(self, target: str, session: str | None) -> dict[str, Any]:
        if self.generate is None:
            raise InterpreterError("No model client configured")
        page = self.bridge.call_named_capability("browser_get_page_text", {"include_hidden": False}, session)
        nodes = page.data.get("text_nodes") if page.success and isinstance(page.data, dict) else None
        if not isinstance(nodes, list):
            raise InterpreterError("Failed to extract page text for model translation")
        if not nodes:
            return {"success": True, "translated_nodes": 0, "total_nodes": 0, "method": "llm", "message": "No text to translate"}

        lines = [f"{n.get('id')}|||{n.get('text')}" for n in nodes if isinstance(n, dict)]
        response = self.generate(
            ModelRequest(prompt=translation_prompt(target, lines), system_prompt=TRANSLATION_SYSTEM_PROMPT, max_tokens=4096)
        )
        replacements = parse_translated_lines(response.content)
        replaced = self.bridge.call_named_capability("browser_replace_text", {"replacements": replacements}, session)
        return {
            "success": True,
            "translated_nodes": len(replacements),
            "total_nodes": len(nodes),
            "method": "llm",
            "replaced_result": replaced.data,
        }
