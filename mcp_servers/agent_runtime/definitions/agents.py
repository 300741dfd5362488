from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from ..engine.errors import DefinitionError, InterpreterError
from .steps import Step, contains_raw_script, parse_steps

ExecutionMode = Literal["safe", "model-assisted", "unrestricted"]

_MODE_ALIASES: dict[str, ExecutionMode] = {
    "safe": "safe",
    "model-assisted": "model-assisted",
    "llm-assisted": "model-assisted",
    "unrestricted": "unrestricted",
}

PARAMETER_TYPES = {"string", "number", "boolean", "array", "object", "any"}

_MISSING = object()


@dataclass(slots=True, frozen=True)
class ParameterSpec:
    name: str
    type: str = "any"
    required: bool = False
    description: str = ""
    default: Any = _MISSING

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    @classmethod
    def from_dict(cls, raw: Any) -> ParameterSpec:
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
            raise DefinitionError("parameter must be an object with a name")
        ptype = raw.get("type") or "any"
        if ptype not in PARAMETER_TYPES:
            raise DefinitionError(f"parameter '{raw['name']}' has unknown type: {ptype}")
        return cls(
            name=raw["name"],
            type=ptype,
            required=bool(raw.get("required", False)),
            description=str(raw.get("description") or ""),
            default=raw["default"] if "default" in raw else _MISSING,
        )


@dataclass(slots=True, frozen=True)
class ModelPolicy:
    """How a model-assisted agent may use the model."""

    system_prompt: str | None = None
    allowed_operations: tuple[str, ...] | None = None
    temperature: float = 0.0
    max_iterations: int | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> ModelPolicy:
        if not isinstance(raw, dict):
            raise DefinitionError("llmConfig must be an object")
        allowed = raw.get("allowedOperations")
        if allowed is not None and (not isinstance(allowed, list) or not all(isinstance(a, str) for a in allowed)):
            raise DefinitionError("llmConfig.allowedOperations must be a list of strings")
        max_iter = raw.get("maxIterations")
        if max_iter is not None and (isinstance(max_iter, bool) or not isinstance(max_iter, int) or max_iter < 0):
            raise DefinitionError("llmConfig.maxIterations must be a non-negative integer")
        try:
            temperature = float(raw.get("temperature") or 0.0)
        except (TypeError, ValueError) as exc:
            raise DefinitionError("llmConfig.temperature must be a number") from exc
        return cls(
            system_prompt=raw.get("systemPrompt") if isinstance(raw.get("systemPrompt"), str) else None,
            allowed_operations=tuple(allowed) if allowed is not None else None,
            temperature=temperature,
            max_iterations=max_iter,
        )


@dataclass(slots=True, frozen=True)
class CapabilityDefinition:
    name: str
    steps: tuple[Step, ...]
    parameters: tuple[ParameterSpec, ...] = ()
    description: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> CapabilityDefinition:
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
            raise DefinitionError("capability must be an object with a name")
        name = raw["name"]
        params = raw.get("parameters") or []
        if not isinstance(params, list):
            raise DefinitionError(f"capability '{name}' parameters must be a list")
        return cls(
            name=name,
            steps=parse_steps(raw.get("actions") or [], f"{name}.actions"),
            parameters=tuple(ParameterSpec.from_dict(p) for p in params),
            description=str(raw.get("description") or ""),
        )

    def bind_parameters(self, params: dict[str, Any] | None) -> dict[str, Any]:
        """Apply declared defaults and enforce required parameters."""
        out = dict(params or {})
        missing = []
        for spec in self.parameters:
            if spec.name in out:
                continue
            if spec.has_default:
                out[spec.name] = spec.default
            elif spec.required:
                missing.append(spec.name)
        if missing:
            raise InterpreterError(f"Missing required parameters: {', '.join(missing)}")
        return out


@dataclass(slots=True, frozen=True)
class AgentDefinition:
    id: str
    name: str
    capabilities: tuple[CapabilityDefinition, ...]
    mode: ExecutionMode = "unrestricted"
    model_policy: ModelPolicy | None = None
    contains_raw_script: bool = False
    description: str = ""
    version: str = "1.0.0"
    tags: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, raw: Any) -> AgentDefinition:
        if not isinstance(raw, dict):
            raise DefinitionError("agent definition must be an object")
        agent_id = raw.get("id")
        if not isinstance(agent_id, str) or not agent_id.strip():
            raise DefinitionError("agent definition requires an id")
        mode_raw = raw.get("executionMode") or "unrestricted"
        mode = _MODE_ALIASES.get(str(mode_raw))
        if mode is None:
            raise DefinitionError(f"agent '{agent_id}' has unknown executionMode: {mode_raw}")
        caps_raw = raw.get("capabilities")
        if not isinstance(caps_raw, list):
            raise DefinitionError(f"agent '{agent_id}' capabilities must be a list")
        capabilities = tuple(CapabilityDefinition.from_dict(c) for c in caps_raw)
        names = [c.name for c in capabilities]
        if len(set(names)) != len(names):
            raise DefinitionError(f"agent '{agent_id}' has duplicate capability names")
        detected = any(contains_raw_script(c.steps) for c in capabilities)
        llm = raw.get("llmConfig")
        tags = raw.get("tags") or []
        return cls(
            id=agent_id,
            name=str(raw.get("name") or agent_id),
            capabilities=capabilities,
            mode=mode,
            model_policy=ModelPolicy.from_dict(llm) if llm is not None else None,
            contains_raw_script=bool(raw.get("containsJavaScript")) or detected,
            description=str(raw.get("description") or ""),
            version=str(raw.get("version") or "1.0.0"),
            tags=tuple(str(t) for t in tags) if isinstance(tags, list) else (),
        )

    def capability(self, name: str) -> CapabilityDefinition | None:
        for cap in self.capabilities:
            if cap.name == name:
                return cap
        return None

    def metadata(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "executionMode": self.mode,
            "containsJavaScript": self.contains_raw_script,
            "capabilities": [
                {
                    "name": c.name,
                    "description": c.description,
                    "parameters": [
                        {"name": p.name, "type": p.type, "required": p.required} for p in c.parameters
                    ],
                }
                for c in self.capabilities
            ],
        }
