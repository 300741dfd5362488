from __future__ import annotations

from mcp_servers.agent_runtime.collaborators import ModelResponse, NamedCallResult
from mcp_servers.agent_runtime.engine.translate import (
    GOOGLE_WIDGET,
    PageTranslator,
    methods_for,
    parse_translated_lines,
)


def test_parse_translated_lines_skips_noise() -> None:
    content = "t1|||Hallo\n  t2|||Welt  \nsome chatter\nt3||| a|||b\n"
    assert parse_translated_lines(content) == {"t1": "Hallo", "t2": "Welt", "t3": " a|||b"}
    assert parse_translated_lines("") == {}


def test_unknown_strategy_falls_back_to_default() -> None:
    assert methods_for("warp-speed") == ("native", "llm")
    assert methods_for(None) == ("native", "llm")
    assert methods_for("native-then-llm-then-google") == ("native", "llm", "google")


def test_native_success_short_circuits(bridge) -> None:
    bridge.named_results["browser_translate_page_native"] = NamedCallResult(True, {"success": True, "translated_nodes": 3})
    out = PageTranslator(bridge).translate("de", "en")
    assert out == {"success": True, "translated_nodes": 3, "method_used": "native"}
    assert bridge.named == [("browser_translate_page_native", {"target_language": "de", "source_language": "en"})]


def test_model_translation_replaces_text_nodes(bridge) -> None:
    bridge.named_results["browser_translate_page_native"] = NamedCallResult(False, error="no translator")
    bridge.named_results["browser_get_page_text"] = NamedCallResult(
        True, {"text_nodes": [{"id": "t0", "text": "Hello"}, {"id": "t1", "text": "World"}]}
    )
    bridge.named_results["browser_replace_text"] = lambda params: NamedCallResult(True, {"replaced": len(params["replacements"])})
    requests = []

    def generate(req):
        requests.append(req)
        return ModelResponse("t0|||Hallo\nt1|||Welt")

    out = PageTranslator(bridge, generate).translate("de")
    assert out["success"] is True
    assert out["method_used"] == "llm"
    assert out["translated_nodes"] == 2 and out["total_nodes"] == 2
    assert out["replaced_result"] == {"replaced": 2}
    assert "t0|||Hello" in requests[0].prompt
    assert bridge.named[-1] == ("browser_replace_text", {"replacements": {"t0": "Hallo", "t1": "Welt"}})


def test_google_strategy_injects_widget(bridge) -> None:
    bridge.run_handler = lambda script, args: {"success": True, "method": "google"}
    out = PageTranslator(bridge, timeout_ms=1234).translate("fr", "en", "google-only", "T7")
    assert out["method_used"] == "google"
    script, args, timeout_ms, session = bridge.runs[0]
    assert script == GOOGLE_WIDGET
    assert args == ["fr", "en"]
    assert (timeout_ms, session) == (1234, "T7")


def test_all_methods_failing_reports_attempts(bridge) -> None:
    bridge.named_results["browser_translate_page_native"] = NamedCallResult(False, error="no translator")
    out = PageTranslator(bridge).translate("de", strategy="native-then-llm")
    assert out == {
        "success": False,
        "error": "All translation methods failed",
        "attempted_methods": ["native", "llm"],
    }
