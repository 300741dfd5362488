from __future__ import annotations

import json

from mcp_servers.agent_runtime.collaborators import NamedCallResult
from mcp_servers.agent_runtime.engine import dom
from mcp_servers.agent_runtime.engine.results import ClientResult


def test_step_handlers_cover_every_step_type(make_interpreter) -> None:
    from mcp_servers.agent_runtime.definitions import STEP_TYPES

    interp = make_interpreter()
    assert set(interp._handlers) == set(STEP_TYPES.values())


def test_for_each_runs_body_in_order(make_interpreter, agent_dict, bridge) -> None:
    seen: list[str] = []
    bridge.run_handler = lambda script, args: seen.append(args[0]) or f"text-{args[0]}"
    agent = agent_dict(
        [
            {"type": "set", "variable": "items", "value": ["a", "b", "c"]},
            {
                "type": "forEach",
                "source": "items",
                "itemAs": "item",
                "do": [{"type": "getText", "target": "{{item}}"}],
                "saveAs": "texts",
            },
            {"type": "return", "value": "{{texts}}"},
        ]
    )
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success, res.error
    assert seen == ["a", "b", "c"]
    assert res.data == ["text-a", "text-b", "text-c"]


def test_for_each_over_non_array_fails(make_interpreter, agent_dict) -> None:
    agent = agent_dict(
        [
            {"type": "set", "variable": "items", "value": "abc"},
            {"type": "forEach", "source": "items", "itemAs": "i", "do": []},
        ]
    )
    res = make_interpreter().execute_capability(agent, "run")
    assert not res.success
    assert "not an array" in res.error


def test_return_inside_nested_body_ends_capability(make_interpreter, agent_dict, platform) -> None:
    agent = agent_dict(
        [
            {"type": "set", "variable": "items", "value": [1, 2, 3]},
            {
                "type": "forEach",
                "source": "items",
                "itemAs": "n",
                "do": [
                    {
                        "type": "if",
                        "condition": {"type": "equals", "left": "{{n}}", "right": 2},
                        "then": [{"type": "return", "value": "found {{n}}"}],
                    },
                    {"type": "notify", "title": "saw {{n}}"},
                ],
            },
            {"type": "notify", "title": "after loop"},
        ]
    )
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success
    assert res.data == "found 2"
    assert platform.notifications == [("saw 1", "")]


def test_last_step_value_is_result(make_interpreter, agent_dict) -> None:
    agent = agent_dict([{"type": "set", "variable": "x", "value": 5}, {"type": "get", "variable": "x"}])
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success and res.data == 5


def test_parameters_defaults_and_required(make_interpreter, agent_dict) -> None:
    agent = agent_dict(
        [{"type": "return", "value": "{{greeting}}, {{name}}"}],
        parameters=[
            {"name": "name", "type": "string", "required": True},
            {"name": "greeting", "type": "string", "default": "Hello"},
        ],
    )
    interp = make_interpreter()
    assert interp.execute_capability(agent, "run", {"name": "Ann"}).data == "Hello, Ann"
    missing = interp.execute_capability(agent, "run", {})
    assert not missing.success
    assert "Missing required parameters: name" in missing.error


def test_unknown_capability_and_step_type(make_interpreter, agent_dict) -> None:
    interp = make_interpreter()
    res = interp.execute_capability(agent_dict([]), "nope")
    assert not res.success and "nope" in res.error

    bad = interp.execute_capability(agent_dict([{"type": "teleport"}]), "run")
    assert not bad.success
    assert "Unknown action type: teleport" in bad.error


def test_while_loop_stops_at_cap(make_interpreter, agent_dict, caplog) -> None:
    agent = agent_dict(
        [
            {"type": "set", "variable": "flag", "value": True},
            {
                "type": "while",
                "condition": {"type": "exists", "target": "flag"},
                "do": [{"type": "set", "variable": "tick", "value": 1}],
                "saveAs": "runs",
            },
            {"type": "return", "value": "{{runs}}"},
        ]
    )
    with caplog.at_level("WARNING", logger="mcp.agent_runtime.interpreter"):
        res = make_interpreter(while_max_iterations=7).execute_capability(agent, "run")
    assert res.success
    assert len(res.data) == 7
    assert "max iterations" in caplog.text


def test_while_loop_until_condition_false(make_interpreter, agent_dict) -> None:
    agent = agent_dict(
        [
            {"type": "set", "variable": "step", "value": 0},
            {
                "type": "while",
                "condition": {"type": "not", "condition": {"type": "equals", "left": "{{step}}", "right": 2}},
                "do": [
                    {"type": "set", "variable": "step", "value": "{{next}}"},
                    {"type": "set", "variable": "next", "value": 2},
                ],
                "maxIterations": 10,
                "saveAs": "out",
            },
            {"type": "return", "value": "{{out}}"},
        ],
    )
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success
    # Pass one leaves "{{next}}" unresolved, pass two sees next == 2.
    assert res.data == [2, 2]


def test_wait_for_times_out(make_interpreter, agent_dict, bridge, clock) -> None:
    bridge.run_handler = lambda script, args: False
    agent = agent_dict([{"type": "waitFor", "selector": ".never", "timeout": 300}])
    res = make_interpreter(wait_for_poll_ms=100).execute_capability(agent, "run")
    assert not res.success
    assert "timed out" in res.error
    assert all(run[0] == dom.EXISTS for run in bridge.runs)
    assert 3 <= len(bridge.runs) <= 5
    assert clock.now >= 0.3


def test_wait_for_succeeds_when_element_appears(make_interpreter, agent_dict, bridge) -> None:
    answers = iter([False, False, True])
    bridge.run_handler = lambda script, args: next(answers)
    agent = agent_dict([{"type": "waitFor", "selector": ".late"}])
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success and res.data is True
    assert len(bridge.runs) == 3


def test_wait_sleeps(make_interpreter, agent_dict, clock) -> None:
    res = make_interpreter().execute_capability(agent_dict([{"type": "wait", "ms": 250}]), "run")
    assert res.success
    assert clock.sleeps == [0.25]


def test_dom_steps_pass_selectors_as_arguments(make_interpreter, agent_dict, bridge) -> None:
    bridge.run_handler = lambda script, args: True
    agent = agent_dict(
        [
            {"type": "click", "target": "button[title=\"it's\"]"},
            {"type": "setAttribute", "target": "#a", "attr": "data-x", "value": "{{config.lang}}"},
            {"type": "setValue", "target": "#q", "value": "hello"},
            {"type": "addStyle", "target": ".ad", "styles": {"display": "none"}},
        ]
    )
    res = make_interpreter().execute_capability(agent, "run", user_config={"lang": "de", "tabId": "T9"})
    assert res.success
    scripts = [r[0] for r in bridge.runs]
    assert scripts == [dom.CLICK, dom.SET_ATTRIBUTE, dom.SET_VALUE, dom.ADD_STYLE]
    assert bridge.runs[0][1] == ["button[title=\"it's\"]"]
    assert bridge.runs[1][1] == ["#a", "data-x", "de"]
    assert bridge.runs[3][1] == [".ad", {"display": "none"}]
    assert all(r[3] == "T9" for r in bridge.runs)


def test_remove_over_query_results_uses_descriptor_selectors(make_interpreter, agent_dict, bridge) -> None:
    def handler(script, args):
        if script == dom.QUERY_ALL:
            return [
                {"tagName": "DIV", "id": "promo", "className": "ad big"},
                {"tagName": "DIV", "id": "", "className": "ad small"},
                {"tagName": "ASIDE", "id": "", "className": ""},
            ]
        return True

    bridge.run_handler = handler
    agent = agent_dict(
        [
            {"type": "querySelectorAll", "selector": ".ad", "saveAs": "ads"},
            {"type": "forEach", "source": "ads", "itemAs": "ad", "do": [{"type": "remove", "target": "{{ad}}"}]},
        ]
    )
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success, res.error
    removed = [r[1][0] for r in bridge.runs if r[0] == dom.REMOVE_ONE]
    assert removed == ["#promo", ".ad", "aside"]


def test_remove_by_selector_removes_all_matches(make_interpreter, agent_dict, bridge) -> None:
    bridge.run_handler = lambda script, args: 4
    res = make_interpreter().execute_capability(agent_dict([{"type": "remove", "target": ".banner"}]), "run")
    assert res.success and res.data == 4
    assert bridge.runs[0][0] == dom.REMOVE_ALL


def test_raw_script_blocked_by_policy(make_interpreter, agent_dict, bridge) -> None:
    agent = agent_dict([{"type": "executeScript", "script": "return 1;"}])
    res = make_interpreter(allow_raw_script=False).execute_capability(agent, "run")
    assert not res.success
    assert "JavaScript execution is disabled" in res.error
    assert bridge.runs == []


def test_raw_script_runs_when_allowed(make_interpreter, agent_dict, bridge) -> None:
    bridge.run_handler = lambda script, args: args[0] * 2
    agent = agent_dict(
        [
            {"type": "set", "variable": "n", "value": 21},
            {"type": "executeScript", "script": "return args[0] * 2;", "args": ["n"], "timeout": 900},
        ]
    )
    res = make_interpreter(allow_raw_script=True).execute_capability(agent, "run")
    assert res.success and res.data == 42
    assert bridge.runs[0][2] == 900


def test_safe_agent_with_raw_script_rejected_before_steps(make_interpreter, agent_dict, bridge) -> None:
    agent = agent_dict(
        [{"type": "click", "target": ".x"}, {"type": "executeScript", "script": "return 1;"}],
        mode="safe",
    )
    res = make_interpreter(allow_raw_script=True).execute_capability(agent, "run")
    assert not res.success
    assert "misconfigured" in res.error
    assert bridge.runs == []


def test_notify_failure_is_swallowed(make_interpreter, agent_dict, platform) -> None:
    platform.fail_notify = True
    agent = agent_dict([{"type": "notify", "title": "hi"}, {"type": "return", "value": "done"}])
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success and res.data == "done"


def test_data_and_platform_steps(make_interpreter, agent_dict, platform) -> None:
    platform.store["theme"] = "dark"
    agent = agent_dict(
        [
            {"type": "set", "variable": "a", "value": {"x": 1, "y": 1}},
            {"type": "set", "variable": "b", "value": {"y": 2}},
            {"type": "merge", "sources": ["a", "{{b}}"], "saveAs": "m"},
            {"type": "set", "variable": "csv", "value": " A,B "},
            {"type": "transform", "source": "csv", "transform": {"type": "trim"}, "saveAs": "csv"},
            {"type": "transform", "source": "csv", "transform": {"type": "split", "delimiter": ","}, "saveAs": "parts"},
            {"type": "storage.get", "keys": ["theme"], "saveAs": "prefs"},
            {"type": "storage.set", "items": {"last": "{{parts}}"}},
            {"type": "tabs.create", "url": "https://example.com/?q={{config.q}}", "saveAs": "tab"},
            {"type": "return", "value": {"m": "{{m}}", "prefs": "{{prefs}}", "tab": "{{tab}}"}},
        ]
    )
    res = make_interpreter().execute_capability(agent, "run", user_config={"q": "x"})
    assert res.success, res.error
    assert res.data["m"] == {"x": 1, "y": 2}
    assert res.data["prefs"] == {"theme": "dark"}
    assert res.data["tab"]["url"] == "https://example.com/?q=x"
    assert platform.store["last"] == ["A", "B"]


def test_call_client_returns_data_even_on_failure(make_interpreter, agent_dict) -> None:
    calls = []

    def caller(client_id, method, params):
        calls.append((client_id, method, params))
        if method == "broken":
            return ClientResult.fail("HTTP 500: boom", status=500)
        return ClientResult(True, {"temp": 21}, status=200)

    agent = agent_dict(
        [
            {"type": "set", "variable": "city", "value": "London"},
            {"type": "callClient", "client": "weather", "method": "current", "params": {"q": "{{city}}"}, "saveAs": "w"},
            {"type": "callClient", "client": "weather", "method": "broken", "saveAs": "b"},
            {"type": "return", "value": {"w": "{{w}}", "b": "{{b}}"}},
        ]
    )
    res = make_interpreter(client_caller=caller).execute_capability(agent, "run")
    assert res.success
    assert calls[0] == ("weather", "current", {"q": "London"})
    assert res.data == {"w": {"temp": 21}, "b": None}


# ─── model-assisted steps ────────────────────────────────────────────────────


def _model_agent(agent_dict, actions, **llm):
    return agent_dict(actions, mode="model-assisted", llmConfig=llm or {})


def test_request_and_execute_validated_operations(make_interpreter, agent_dict, bridge, fake_model) -> None:
    proposal = json.dumps(
        [
            {"operation": "browser_click_element", "parameters": {"selector": "#accept"}, "priority": 2},
            {"operation": "browser_remove_element", "parameters": {"selector": ".overlay"}, "priority": 1},
            {"operation": "browser_execute_js", "parameters": {"code": "alert(1)"}},
        ]
    )
    model = fake_model("```json\n" + proposal + "\n```")
    agent = _model_agent(
        agent_dict,
        [
            {"type": "inspectPage", "saveAs": "page"},
            {"type": "callLLMForOperations", "goal": "close the cookie banner", "context": "page", "saveAs": "ops"},
            {"type": "executeSafeOperations", "operations": "ops", "saveAs": "summary"},
            {"type": "return", "value": "{{summary}}"},
        ],
        allowedOperations=["browser_click_element", "browser_remove_element", "browser_inspect_page"],
    )
    res = make_interpreter(model=model).execute_capability(agent, "run")
    assert res.success, res.error
    summary = res.data
    assert summary["totalOperations"] == 2
    assert summary["successful"] == 2
    assert [r["operation"] for r in summary["results"]] == ["browser_remove_element", "browser_click_element"]
    assert summary["rejected"][0]["operation"]["operation"] == "browser_execute_js"
    assert [n[0] for n in bridge.named] == ["browser_inspect_page", "browser_remove_element", "browser_click_element"]
    assert bridge.runs == []

    system_prompt = model.requests[0].system_prompt
    assert "browser_click_element" in system_prompt
    assert "browser_fill_input" not in system_prompt


def test_execute_operations_stop_on_error(make_interpreter, agent_dict, bridge) -> None:
    bridge.named_results["browser_click_element"] = NamedCallResult(False, error="Element not found")
    agent = _model_agent(
        agent_dict,
        [
            {
                "type": "set",
                "variable": "ops",
                "value": [
                    {"operation": "browser_click_element", "parameters": {"selector": "#a"}},
                    {"operation": "browser_restore_scroll"},
                ],
            },
            {"type": "executeSafeOperations", "operations": "ops", "stopOnError": True},
        ],
    )
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success
    assert res.data["executed"] == 1
    assert res.data["failed"] == 1
    assert res.data["results"][0]["error"] == "Element not found"


def test_execute_operations_all_invalid_does_not_fail(make_interpreter, agent_dict, bridge) -> None:
    agent = _model_agent(
        agent_dict,
        [
            {"type": "set", "variable": "ops", "value": [{"operation": "browser_execute_js"}, "junk"]},
            {"type": "executeSafeOperations", "operations": "ops", "validateFirst": False},
        ],
    )
    res = make_interpreter().execute_capability(agent, "run")
    assert res.success
    assert res.data["executed"] == 0
    assert len(res.data["rejected"]) == 2
    assert bridge.named == []


def test_analyze_with_model_and_call_budget(make_interpreter, agent_dict, fake_model) -> None:
    model = fake_model("first answer", "second answer")
    agent = _model_agent(
        agent_dict,
        [
            {"type": "set", "variable": "page", "value": {"title": "Shop"}},
            {"type": "analyzeWithLLM", "prompt": "Summarize", "context": "page", "saveAs": "a"},
            {"type": "analyzeWithLLM", "prompt": "Again", "saveAs": "b"},
        ],
        maxIterations=1,
        systemPrompt="You are terse.",
    )
    res = make_interpreter(model=model, use_own_model_key=True).execute_capability(agent, "run")
    assert not res.success
    assert "Model call limit reached" in res.error
    assert len(model.requests) == 1
    assert model.requests[0].system_prompt == "You are terse."
    assert "Shop" in model.requests[0].prompt
    assert model.own_flags == [True]


def test_model_assisted_disabled_in_settings(make_interpreter, agent_dict) -> None:
    agent = _model_agent(agent_dict, [{"type": "return", "value": 1}])
    res = make_interpreter(model_assisted_enabled=False).execute_capability(agent, "run")
    assert not res.success
    assert "disabled" in res.error


def test_translate_step_falls_back_to_model(make_interpreter, agent_dict, bridge, fake_model) -> None:
    bridge.named_results["browser_translate_page_native"] = NamedCallResult(False, error="unavailable")
    bridge.named_results["browser_get_page_text"] = NamedCallResult(
        True, {"text_nodes": [{"id": "node_0", "text": "Hallo"}, {"id": "node_1", "text": "Welt"}]}
    )
    model = fake_model("node_0|||Hello\nnode_1|||World\n")
    agent = _model_agent(agent_dict, [{"type": "translatePage", "targetLanguage": "en"}])
    res = make_interpreter(model=model).execute_capability(agent, "run")
    assert res.success, res.error
    assert res.data["method_used"] == "llm"
    assert res.data["translated_nodes"] == 2
    replace = [p for n, p in bridge.named if n == "browser_replace_text"]
    assert replace == [{"replacements": {"node_0": "Hello", "node_1": "World"}}]


def test_named_operations_target_the_configured_tab(make_interpreter, agent_dict, bridge, fake_model) -> None:
    bridge.named_results["browser_translate_page_native"] = NamedCallResult(True, {"success": True})
    agent = _model_agent(
        agent_dict,
        [
            {"type": "inspectPage", "saveAs": "page"},
            {
                "type": "set",
                "variable": "ops",
                "value": [{"operation": "browser_click_element", "parameters": {"selector": "#ok"}}],
            },
            {"type": "executeSafeOperations", "operations": "ops"},
            {"type": "translatePage", "targetLanguage": "de"},
        ],
    )
    res = make_interpreter(model=fake_model()).execute_capability(agent, "run", user_config={"tabId": "T4"})
    assert res.success, res.error
    assert [n[0] for n in bridge.named] == [
        "browser_inspect_page",
        "browser_click_element",
        "browser_translate_page_native",
    ]
    assert bridge.named_sessions == ["T4", "T4", "T4"]
