"""Step interpreter for agent capabilities.

`execute_capability` never raises: policy rejections, broken definitions and
collaborator failures all come back as a failed CapabilityResult. Inside, each
step class has exactly one handler in `AgentInterpreter._handlers`.

A `return` step ends the whole capability, however deeply it is nested in
if/forEach/while bodies. Inside a process body it ends only that run of the
body.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from ..collaborators import DomBridge, ModelClient, ModelRequest, ModelResponse, PlatformServices
from ..config import RuntimeConfig
from ..definitions import AgentDefinition
from ..definitions import steps as s
from ..operations.parser import parse_operations_from_response
from ..operations.prompts import (
    DEFAULT_ANALYSIS_SYSTEM_PROMPT,
    analysis_prompt,
    operations_system_prompt,
    operations_user_prompt,
)
from ..operations.validator import OperationValidator, SafeOperation
from ..policy import ExecutionPolicy
from . import dom
from .conditions import evaluate
from .context import ExecutionContext
from .errors import DefinitionError, InterpreterError, WaitTimeoutError
from .processes import Process, ProcessTable
from .results import CapabilityResult, ClientResult
from .transforms import apply as apply_transform
from .translate import PageTranslator
from .values import resolve, stringify, var_name

_logger = logging.getLogger("mcp.agent_runtime.interpreter")

# (client_id, capability_name, params) -> ClientResult
ClientCaller = Callable[[str, str, dict[str, Any]], ClientResult]


class _Returned(Exception):
    def __init__(self, value: Any) -> None:
        super().__init__("return")
        self.value = value


def _as_number(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise InterpreterError(f"{what} must be a number")
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError as exc:
        raise InterpreterError(f"{what} must be a number") from exc


class AgentInterpreter:
    def __init__(
        self,
        config: RuntimeConfig,
        *,
        bridge: DomBridge,
        model: ModelClient | None = None,
        platform: PlatformServices | None = None,
        policy: ExecutionPolicy | None = None,
        client_caller: ClientCaller | None = None,
        processes: ProcessTable | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.bridge = bridge
        self.model = model
        self.platform = platform
        self.policy = policy or ExecutionPolicy(config)
        self.client_caller = client_caller
        self.processes = processes or ProcessTable(config.process_join_timeout)
        self._sleep = sleep
        self._clock = clock
        self._handlers: dict[type[s.Step], Callable[[Any, ExecutionContext], Any]] = {
            s.QuerySelector: self._query_selector,
            s.QuerySelectorAll: self._query_selector_all,
            s.Click: self._click,
            s.Remove: self._remove,
            s.SetAttribute: self._set_attribute,
            s.GetAttribute: self._get_attribute,
            s.GetText: self._get_text,
            s.SetValue: self._set_value,
            s.AddStyle: self._add_style,
            s.ExecuteScript: self._execute_script,
            s.InspectPage: self._inspect_page,
            s.AnalyzeWithModel: self._analyze_with_model,
            s.RequestOperations: self._request_operations,
            s.ExecuteValidatedOperations: self._execute_validated_operations,
            s.CallClient: self._call_client,
            s.If: self._if,
            s.ForEach: self._for_each,
            s.While: self._while,
            s.Wait: self._wait,
            s.WaitFor: self._wait_for,
            s.Set: self._set,
            s.Get: self._get,
            s.TransformValue: self._transform,
            s.Merge: self._merge,
            s.StorageGet: self._storage_get,
            s.StorageSet: self._storage_set,
            s.TabsCreate: self._tabs_create,
            s.Notify: self._notify,
            s.TranslatePage: self._translate_page,
            s.StartProcess: self._start_process,
            s.StopProcess: self._stop_process,
            s.RegisterCleanup: self._register_cleanup,
            s.Return: self._return,
        }

    # Entry point

    def execute_capability(
        self,
        agent: AgentDefinition | dict[str, Any],
        capability_name: str,
        params: dict[str, Any] | None = None,
        user_config: Mapping[str, Any] | None = None,
    ) -> CapabilityResult:
        agent_id = agent.get("id") if isinstance(agent, dict) else agent.id
        try:
            if isinstance(agent, dict):
                agent = AgentDefinition.from_dict(agent)

            decision = self.policy.can_execute(agent)
            if not decision.allowed:
                _logger.info("Agent %s rejected by policy: %s", agent.id, decision.reason)
                return CapabilityResult.fail(decision.reason or "Execution not allowed")

            cap = agent.capability(capability_name)
            if cap is None:
                return CapabilityResult.fail(f'Capability "{capability_name}" not found in agent "{agent.id}"')

            ctx = ExecutionContext.create(agent, cap.bind_parameters(params), user_config)
            _logger.info("Running %s.%s", agent.id, cap.name)
            try:
                data = self.run_steps(cap.steps, ctx)
            except _Returned as ret:
                data = ret.value
            return CapabilityResult.ok(data)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("Agent %s.%s failed: %s", agent_id, capability_name, exc)
            return CapabilityResult.fail(str(exc) or type(exc).__name__)

    def run_steps(self, steps: tuple[s.Step, ...], ctx: ExecutionContext) -> Any:
        """Run a step list in order; its value is the value of the last step."""
        last = None
        for step in steps:
            last = self.run_step(step, ctx)
        return last

    def run_step(self, step: s.Step, ctx: ExecutionContext) -> Any:
        handler = self._handlers.get(type(step))
        if handler is None:
            raise DefinitionError(f"Unknown action type: {getattr(step, 'TYPE', type(step).__name__)}")
        value = handler(step, ctx)
        save_as = getattr(step, "save_as", None)
        if save_as:
            ctx.set(save_as, value)
        return value

    def stop_all_processes(self) -> list[str]:
        return self.processes.stop_all(self._run_cleanup)

    # DOM

    def _run_dom(self, script: str, args: list[Any], ctx: ExecutionContext) -> Any:
        return self.bridge.run(script, args, self.config.dom_timeout_ms, ctx.target_session)

    def _resolve_target(self, raw: Any, ctx: ExecutionContext) -> Any:
        target = resolve(raw, ctx)
        if isinstance(target, str) and ctx.has(var_name(target)):
            target = ctx.get(var_name(target))
        return target

    def _target(self, raw: Any, ctx: ExecutionContext) -> tuple[list[str], bool]:
        return dom.resolve_targets(self._resolve_target(raw, ctx))

    def _single_selector(self, raw: Any, ctx: ExecutionContext) -> str:
        selectors, _ = self._target(raw, ctx)
        if not selectors:
            raise InterpreterError("DOM step target resolved to no element")
        return selectors[0]

    def _query_selector(self, step: s.QuerySelector, ctx: ExecutionContext) -> Any:
        return self._run_dom(dom.QUERY_ONE, [stringify(resolve(step.selector, ctx))], ctx)

    def _query_selector_all(self, step: s.QuerySelectorAll, ctx: ExecutionContext) -> Any:
        return self._run_dom(dom.QUERY_ALL, [stringify(resolve(step.selector, ctx))], ctx)

    def _click(self, step: s.Click, ctx: ExecutionContext) -> Any:
        target = self._resolve_target(step.target, ctx)
        selectors, _ = dom.resolve_targets(target)
        results = [self._run_dom(dom.CLICK, [sel], ctx) for sel in selectors]
        if isinstance(target, list):
            return results
        return results[0] if results else False

    def _remove(self, step: s.Remove, ctx: ExecutionContext) -> Any:
        selectors, from_descriptors = self._target(step.target, ctx)
        if from_descriptors:
            # Descriptors stand for one element each.
            for sel in selectors:
                self._run_dom(dom.REMOVE_ONE, [sel], ctx)
            return True
        return self._run_dom(dom.REMOVE_ALL, [selectors[0]], ctx)

    def _set_attribute(self, step: s.SetAttribute, ctx: ExecutionContext) -> Any:
        sel = self._single_selector(step.target, ctx)
        attr = stringify(resolve(step.attr, ctx))
        value = stringify(resolve(step.value, ctx))
        return self._run_dom(dom.SET_ATTRIBUTE, [sel, attr, value], ctx)

    def _get_attribute(self, step: s.GetAttribute, ctx: ExecutionContext) -> Any:
        sel = self._single_selector(step.target, ctx)
        return self._run_dom(dom.GET_ATTRIBUTE, [sel, stringify(resolve(step.attr, ctx))], ctx)

    def _get_text(self, step: s.GetText, ctx: ExecutionContext) -> Any:
        return self._run_dom(dom.GET_TEXT, [self._single_selector(step.target, ctx)], ctx)

    def _set_value(self, step: s.SetValue, ctx: ExecutionContext) -> Any:
        sel = self._single_selector(step.target, ctx)
        return self._run_dom(dom.SET_VALUE, [sel, stringify(resolve(step.value, ctx))], ctx)

    def _add_style(self, step: s.AddStyle, ctx: ExecutionContext) -> Any:
        styles = resolve(step.styles, ctx)
        if not isinstance(styles, dict):
            raise InterpreterError("addStyle styles must be an object")
        sel = self._single_selector(step.target, ctx)
        return self._run_dom(dom.ADD_STYLE, [sel, styles], ctx)

    def _execute_script(self, step: s.ExecuteScript, ctx: ExecutionContext) -> Any:
        if not self.policy.is_raw_script_allowed():
            raise InterpreterError("JavaScript execution is disabled in settings")
        args = [ctx.get(var_name(name)) for name in step.args]
        timeout = step.timeout_ms or self.config.dom_timeout_ms
        return self.bridge.run(step.script, args, timeout, ctx.target_session)

    # Model assistance

    def _generate(self, request: ModelRequest, ctx: ExecutionContext) -> ModelResponse:
        if self.model is None:
            raise InterpreterError("No model client configured")
        mp = ctx.agent.model_policy
        limit = mp.max_iterations if mp is not None else None
        if limit is not None and ctx.model_calls >= limit:
            raise InterpreterError(f"Model call limit reached ({limit})")
        ctx.model_calls += 1
        return self.model.generate(request, self.config.use_own_model_key)

    def _context_data(self, ref: str | None, ctx: ExecutionContext) -> Any:
        return ctx.get(var_name(ref)) if ref else None

    def _inspect_page(self, step: s.InspectPage, ctx: ExecutionContext) -> Any:
        res = self.bridge.call_named_capability(
            "browser_inspect_page", {"find_overlays": step.find_overlays}, ctx.target_session
        )
        if not res.success:
            _logger.warning("inspectPage failed: %s", res.error)
        return res.data

    def _analyze_with_model(self, step: s.AnalyzeWithModel, ctx: ExecutionContext) -> str:
        mp = ctx.agent.model_policy
        system = (mp.system_prompt if mp is not None else None) or DEFAULT_ANALYSIS_SYSTEM_PROMPT
        prompt = analysis_prompt(stringify(resolve(step.prompt, ctx)), self._context_data(step.context, ctx))
        request = ModelRequest(prompt=prompt, system_prompt=system, max_tokens=self.config.model_max_tokens)
        return self._generate(request, ctx).content

    def _request_operations(self, step: s.RequestOperations, ctx: ExecutionContext) -> list[Any]:
        mp = ctx.agent.model_policy
        subset = step.allowed_operations or (mp.allowed_operations if mp is not None else None)
        allowed = OperationValidator(subset).allowed
        goal = stringify(resolve(step.goal, ctx))
        request = ModelRequest(
            prompt=operations_user_prompt(goal, self._context_data(step.context, ctx)),
            system_prompt=operations_system_prompt(allowed),
            max_tokens=self.config.model_max_tokens,
            temperature=mp.temperature if mp is not None else 0.0,
        )
        operations = parse_operations_from_response(self._generate(request, ctx).content)
        _logger.info("Model proposed %d operation(s)", len(operations))
        return operations

    def _execute_validated_operations(self, step: s.ExecuteValidatedOperations, ctx: ExecutionContext) -> dict:
        proposed = ctx.get(var_name(step.operations))
        if not isinstance(proposed, list):
            raise InterpreterError(f'Operations variable "{step.operations}" is not an array')
        mp = ctx.agent.model_policy
        validator = OperationValidator(mp.allowed_operations if mp is not None else None)

        rejected: list[dict[str, Any]] = []
        to_run: list[SafeOperation] = []
        if step.validate_first:
            batch = validator.validate_operations(proposed)
            to_run = batch.valid_operations
            rejected = batch.invalid_operations
        else:
            for op in proposed:
                checked = validator.validate_operation(op)
                if checked.valid and checked.operation is not None:
                    to_run.append(checked.operation)
                else:
                    rejected.append({"operation": op, "errors": checked.errors})

        results: list[dict[str, Any]] = []
        for op in to_run:
            try:
                res = self.bridge.call_named_capability(op.operation, dict(op.parameters), ctx.target_session)
                entry: dict[str, Any] = {"operation": op.operation, "success": bool(res.success)}
                if res.data is not None:
                    entry["result"] = res.data
                if res.error:
                    entry["error"] = res.error
                results.append(entry)
                if not res.success and step.stop_on_error:
                    break
            except Exception as exc:  # noqa: BLE001
                _logger.warning("Operation %s failed: %s", op.operation, exc)
                results.append({"operation": op.operation, "success": False, "error": str(exc)})
                if step.stop_on_error:
                    break

        successful = sum(1 for r in results if r["success"])
        return {
            "totalOperations": len(to_run),
            "executed": len(results),
            "successful": successful,
            "failed": len(results) - successful,
            "results": results,
            "rejected": rejected,
        }

    # Client call

    def _call_client(self, step: s.CallClient, ctx: ExecutionContext) -> Any:
        if self.client_caller is None:
            raise InterpreterError("No client registry configured for callClient")
        client_id = stringify(resolve(step.client, ctx))
        method = stringify(resolve(step.method, ctx))
        params = resolve(step.params, ctx) if step.params is not None else {}
        if not isinstance(params, dict):
            raise InterpreterError("callClient params must be an object")
        result = self.client_caller(client_id, method, params)
        if not result.success:
            _logger.warning("callClient %s.%s failed: %s", client_id, method, result.error)
        return result.data

    # Control flow

    def _if(self, step: s.If, ctx: ExecutionContext) -> Any:
        if evaluate(step.condition, ctx):
            return self.run_steps(step.then, ctx)
        if step.otherwise is not None:
            return self.run_steps(step.otherwise, ctx)
        return None

    def _for_each(self, step: s.ForEach, ctx: ExecutionContext) -> list[Any]:
        source = ctx.get(var_name(step.source))
        if not isinstance(source, list):
            raise InterpreterError(f'forEach source "{step.source}" is not an array')
        results = []
        for item in list(source):
            ctx.set(step.item_as, item)
            results.append(self.run_steps(step.body, ctx))
        return results

    def _while(self, step: s.While, ctx: ExecutionContext) -> list[Any]:
        cap = step.max_iterations or self.config.while_max_iterations
        results = []
        iterations = 0
        while iterations < cap and evaluate(step.condition, ctx):
            results.append(self.run_steps(step.body, ctx))
            iterations += 1
        if iterations >= cap:
            _logger.warning("While loop reached max iterations (%d)", cap)
        return results

    def _wait(self, step: s.Wait, ctx: ExecutionContext) -> None:
        ms = _as_number(resolve(step.ms, ctx), "wait ms")
        if ms > 0:
            self._sleep(ms / 1000.0)
        return None

    def _wait_for(self, step: s.WaitFor, ctx: ExecutionContext) -> bool:
        selector = stringify(resolve(step.selector, ctx))
        timeout_ms = step.timeout_ms or self.config.wait_for_timeout_ms
        deadline = self._clock() + timeout_ms / 1000.0
        while True:
            if self._run_dom(dom.EXISTS, [selector], ctx):
                return True
            if self._clock() >= deadline:
                break
            self._sleep(self.config.wait_for_poll_ms / 1000.0)
        raise WaitTimeoutError(f"waitFor timed out waiting for selector: {selector}")

    # Data

    def _set(self, step: s.Set, ctx: ExecutionContext) -> Any:
        value = resolve(step.value, ctx)
        ctx.set(step.variable, value)
        return value

    def _get(self, step: s.Get, ctx: ExecutionContext) -> Any:
        return ctx.get(var_name(step.variable))

    def _transform(self, step: s.TransformValue, ctx: ExecutionContext) -> Any:
        return apply_transform(ctx.get(var_name(step.source)), step.transform)

    def _merge(self, step: s.Merge, ctx: ExecutionContext) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for name in step.sources:
            value = ctx.get(var_name(name))
            if isinstance(value, dict):
                merged.update(value)
        return merged

    # Platform

    def _require_platform(self) -> PlatformServices:
        if self.platform is None:
            raise InterpreterError("No platform services configured")
        return self.platform

    def _storage_get(self, step: s.StorageGet, ctx: ExecutionContext) -> Any:
        return self._require_platform().storage_get(resolve(step.keys, ctx))

    def _storage_set(self, step: s.StorageSet, ctx: ExecutionContext) -> None:
        items = resolve(step.items, ctx)
        if not isinstance(items, dict):
            raise InterpreterError("storage.set items must be an object")
        self._require_platform().storage_set(items)
        return None

    def _tabs_create(self, step: s.TabsCreate, ctx: ExecutionContext) -> Any:
        return self._require_platform().create_tab(stringify(resolve(step.url, ctx)))

    def _notify(self, step: s.Notify, ctx: ExecutionContext) -> None:
        title = stringify(resolve(step.title, ctx))
        message = stringify(resolve(step.message, ctx))
        try:
            self._require_platform().notify(title, message)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("Notification failed: %s", exc)
        return None

    def _translate_page(self, step: s.TranslatePage, ctx: ExecutionContext) -> dict[str, Any]:
        source = resolve(step.source_language, ctx) if step.source_language else None
        translator = PageTranslator(
            self.bridge,
            (lambda req: self._generate(req, ctx)) if self.model is not None else None,
            timeout_ms=self.config.dom_timeout_ms,
        )
        return translator.translate(
            stringify(resolve(step.target_language, ctx)),
            stringify(source) if source else None,
            step.fallback_strategy,
            ctx.target_session,
        )

    # Processes

    def _run_body(self, steps: tuple[s.Step, ...], ctx: ExecutionContext) -> Any:
        try:
            return self.run_steps(steps, ctx)
        except _Returned as ret:
            return ret.value

    def _run_cleanup(self, proc: Process) -> None:
        self._run_body(proc.cleanup or (), proc.context)

    def _start_process(self, step: s.StartProcess, ctx: ExecutionContext) -> dict[str, Any]:
        pid = stringify(resolve(step.process_id, ctx))
        actions = step.actions
        self.processes.start(
            pid,
            ctx.fork(),
            lambda child: self._run_body(actions, child),
            interval_ms=step.interval_ms,
        )
        return {"processId": pid}

    def _stop_process(self, step: s.StopProcess, ctx: ExecutionContext) -> None:
        pid = stringify(resolve(step.process_id, ctx))
        if not self.processes.stop(pid, self._run_cleanup):
            _logger.info("stopProcess: no process %s", pid)
        return None

    def _register_cleanup(self, step: s.RegisterCleanup, ctx: ExecutionContext) -> None:
        pid = stringify(resolve(step.process_id, ctx))
        if not self.processes.set_cleanup(pid, step.actions):
            raise InterpreterError(f'Process "{pid}" is not running')
        return None

    def _return(self, step: s.Return, ctx: ExecutionContext) -> Any:
        raise _Returned(resolve(step.value, ctx))
