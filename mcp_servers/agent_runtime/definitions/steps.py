"""Step vocabulary of agent capabilities.

Each step is a frozen dataclass tagged by its wire `type`. The set is closed:
`parse_step` rejects unknown tags and the interpreter keeps one handler per
class in `STEP_TYPES`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from ..engine.errors import DefinitionError
from .conditions import Condition
from .transforms import Transform
from .wire import build, nested_fields, register_kind, wire


class Step:
    __slots__ = ()
    TYPE: ClassVar[str]
    RAW_SCRIPT: ClassVar[bool] = False


# DOM query / mutate


@dataclass(slots=True, frozen=True)
class QuerySelector(Step):
    TYPE: ClassVar[str] = "querySelector"
    selector: str = wire("selector", kind="str")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class QuerySelectorAll(Step):
    TYPE: ClassVar[str] = "querySelectorAll"
    selector: str = wire("selector", kind="str")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class Click(Step):
    TYPE: ClassVar[str] = "click"
    target: Any = wire("target")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class Remove(Step):
    TYPE: ClassVar[str] = "remove"
    target: Any = wire("target")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class SetAttribute(Step):
    TYPE: ClassVar[str] = "setAttribute"
    target: Any = wire("target")
    attr: str = wire("attr", kind="str")
    value: Any = wire("value")


@dataclass(slots=True, frozen=True)
class GetAttribute(Step):
    TYPE: ClassVar[str] = "getAttribute"
    target: Any = wire("target")
    attr: str = wire("attr", kind="str")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class GetText(Step):
    TYPE: ClassVar[str] = "getText"
    target: Any = wire("target")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class SetValue(Step):
    TYPE: ClassVar[str] = "setValue"
    target: Any = wire("target")
    value: Any = wire("value")


@dataclass(slots=True, frozen=True)
class AddStyle(Step):
    TYPE: ClassVar[str] = "addStyle"
    target: Any = wire("target")
    styles: Any = wire("styles")


# Raw script


@dataclass(slots=True, frozen=True)
class ExecuteScript(Step):
    TYPE: ClassVar[str] = "executeScript"
    RAW_SCRIPT: ClassVar[bool] = True
    script: str = wire("script", kind="str")
    args: tuple[str, ...] = wire("args", kind="names", default=())
    timeout_ms: int | None = wire("timeout", kind="int", default=None)
    save_as: str | None = wire("saveAs", kind="str", default=None)


# Model assistance


@dataclass(slots=True, frozen=True)
class InspectPage(Step):
    TYPE: ClassVar[str] = "inspectPage"
    find_overlays: bool = wire("findOverlays", kind="bool", default=True)
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class AnalyzeWithModel(Step):
    TYPE: ClassVar[str] = "analyzeWithLLM"
    prompt: str = wire("prompt", kind="str")
    context: str | None = wire("context", kind="str", default=None)
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class RequestOperations(Step):
    TYPE: ClassVar[str] = "callLLMForOperations"
    goal: str = wire("goal", kind="str")
    context: str | None = wire("context", kind="str", default=None)
    allowed_operations: tuple[str, ...] | None = wire("allowedOperations", kind="names", default=None)
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class ExecuteValidatedOperations(Step):
    TYPE: ClassVar[str] = "executeSafeOperations"
    operations: str = wire("operations", kind="str")
    validate_first: bool = wire("validateFirst", kind="bool", default=True)
    stop_on_error: bool = wire("stopOnError", kind="bool", default=False)
    save_as: str | None = wire("saveAs", kind="str", default=None)


# Client call


@dataclass(slots=True, frozen=True)
class CallClient(Step):
    TYPE: ClassVar[str] = "callClient"
    client: str = wire("client", kind="str")
    method: str = wire("method", kind="str")
    params: Any = wire("params", default=None)
    save_as: str | None = wire("saveAs", kind="str", default=None)


# Control flow


@dataclass(slots=True, frozen=True)
class If(Step):
    TYPE: ClassVar[str] = "if"
    condition: Condition = wire("condition", kind="condition")
    then: tuple[Step, ...] = wire("then", kind="steps", default=())
    otherwise: tuple[Step, ...] | None = wire("else", kind="steps", default=None)


@dataclass(slots=True, frozen=True)
class ForEach(Step):
    TYPE: ClassVar[str] = "forEach"
    source: str = wire("source", kind="str")
    item_as: str = wire("itemAs", kind="str")
    body: tuple[Step, ...] = wire("do", kind="steps", default=())
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class While(Step):
    TYPE: ClassVar[str] = "while"
    condition: Condition = wire("condition", kind="condition")
    body: tuple[Step, ...] = wire("do", kind="steps", default=())
    max_iterations: int | None = wire("maxIterations", kind="int", default=None)
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class Wait(Step):
    TYPE: ClassVar[str] = "wait"
    ms: Any = wire("ms")


@dataclass(slots=True, frozen=True)
class WaitFor(Step):
    TYPE: ClassVar[str] = "waitFor"
    selector: str = wire("selector", kind="str")
    timeout_ms: int | None = wire("timeout", kind="int", default=None)


# Data


@dataclass(slots=True, frozen=True)
class Set(Step):
    TYPE: ClassVar[str] = "set"
    variable: str = wire("variable", kind="str")
    value: Any = wire("value", default=None)


@dataclass(slots=True, frozen=True)
class Get(Step):
    TYPE: ClassVar[str] = "get"
    variable: str = wire("variable", kind="str")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class TransformValue(Step):
    TYPE: ClassVar[str] = "transform"
    source: str = wire("source", kind="str")
    transform: Transform = wire("transform", kind="transform")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class Merge(Step):
    TYPE: ClassVar[str] = "merge"
    sources: tuple[str, ...] = wire("sources", kind="names")
    save_as: str | None = wire("saveAs", kind="str", default=None)


# Platform


@dataclass(slots=True, frozen=True)
class StorageGet(Step):
    TYPE: ClassVar[str] = "storage.get"
    keys: Any = wire("keys")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class StorageSet(Step):
    TYPE: ClassVar[str] = "storage.set"
    items: Any = wire("items")


@dataclass(slots=True, frozen=True)
class TabsCreate(Step):
    TYPE: ClassVar[str] = "tabs.create"
    url: str = wire("url", kind="str")
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class Notify(Step):
    TYPE: ClassVar[str] = "notify"
    title: str = wire("title", kind="str")
    message: str = wire("message", kind="str", default="")


@dataclass(slots=True, frozen=True)
class TranslatePage(Step):
    TYPE: ClassVar[str] = "translatePage"
    target_language: str = wire("targetLanguage", kind="str")
    source_language: str | None = wire("sourceLanguage", kind="str", default=None)
    fallback_strategy: str = wire("fallbackStrategy", kind="str", default="native-then-llm")
    save_as: str | None = wire("saveAs", kind="str", default=None)


# Process lifecycle


@dataclass(slots=True, frozen=True)
class StartProcess(Step):
    TYPE: ClassVar[str] = "startProcess"
    process_id: str = wire("processId", kind="str")
    actions: tuple[Step, ...] = wire("actions", kind="steps", default=())
    interval_ms: int | None = wire("intervalMs", kind="int", default=None)
    save_as: str | None = wire("saveAs", kind="str", default=None)


@dataclass(slots=True, frozen=True)
class StopProcess(Step):
    TYPE: ClassVar[str] = "stopProcess"
    process_id: str = wire("processId", kind="str")


@dataclass(slots=True, frozen=True)
class RegisterCleanup(Step):
    TYPE: ClassVar[str] = "registerCleanup"
    process_id: str = wire("processId", kind="str")
    actions: tuple[Step, ...] = wire("actions", kind="steps", default=())


@dataclass(slots=True, frozen=True)
class Return(Step):
    TYPE: ClassVar[str] = "return"
    value: Any = wire("value", default=None)


STEP_TYPES: dict[str, type[Step]] = {
    cls.TYPE: cls
    for cls in (
        QuerySelector,
        QuerySelectorAll,
        Click,
        Remove,
        SetAttribute,
        GetAttribute,
        GetText,
        SetValue,
        AddStyle,
        ExecuteScript,
        InspectPage,
        AnalyzeWithModel,
        RequestOperations,
        ExecuteValidatedOperations,
        CallClient,
        If,
        ForEach,
        While,
        Wait,
        WaitFor,
        Set,
        Get,
        TransformValue,
        Merge,
        StorageGet,
        StorageSet,
        TabsCreate,
        Notify,
        TranslatePage,
        StartProcess,
        StopProcess,
        RegisterCleanup,
        Return,
    )
}

MODEL_STEPS: tuple[type[Step], ...] = (InspectPage, AnalyzeWithModel, RequestOperations, ExecuteValidatedOperations)


def parse_step(raw: Any, where: str = "step") -> Step:
    if not isinstance(raw, dict):
        raise DefinitionError(f"{where} must be an object")
    tag = raw.get("type")
    cls = STEP_TYPES.get(tag) if isinstance(tag, str) else None
    if cls is None:
        raise DefinitionError(f"Unknown action type: {tag}")
    return build(cls, raw, tag=tag)


def parse_steps(raw: Any, where: str = "actions") -> tuple[Step, ...]:
    if not isinstance(raw, list):
        raise DefinitionError(f"{where} must be a list")
    return tuple(parse_step(item, f"{where}[{i}]") for i, item in enumerate(raw))


register_kind("steps", parse_steps)


def iter_steps(steps: tuple[Step, ...]):
    """Yield every step, descending into nested bodies (if/else, loops, processes)."""
    for step in steps:
        yield step
        for body in nested_fields(step, "steps"):
            yield from iter_steps(body)


def contains_raw_script(steps: tuple[Step, ...]) -> bool:
    return any(step.RAW_SCRIPT for step in iter_steps(steps))
