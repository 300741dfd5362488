from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..definitions import AgentDefinition


@dataclass
class ExecutionContext:
    """Per-invocation state: the variable store plus read-only inputs.

    Lives for exactly one capability invocation. Background processes get a
    `fork()` so they never share the store with the invocation that started them.
    """

    agent: AgentDefinition
    variables: dict[str, Any] = field(default_factory=dict)
    user_config: Mapping[str, Any] = field(default_factory=dict)
    target_session: str | None = None
    model_calls: int = 0

    @classmethod
    def create(
        cls,
        agent: AgentDefinition,
        params: dict[str, Any] | None,
        user_config: Mapping[str, Any] | None,
    ) -> ExecutionContext:
        cfg = MappingProxyType(dict(user_config or {}))
        session = cfg.get("tabId")
        return cls(
            agent=agent,
            variables=dict(params or {}),
            user_config=cfg,
            target_session=str(session) if session is not None else None,
        )

    def has(self, name: str) -> bool:
        return name in self.variables

    def get(self, name: str) -> Any:
        return self.variables.get(name)

    def set(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def fork(self) -> ExecutionContext:
        return ExecutionContext(
            agent=self.agent,
            variables=dict(self.variables),
            user_config=self.user_config,
            target_session=self.target_session,
        )
