from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class CapabilityResult:
    """Outcome of one agent capability invocation."""

    success: bool
    data: Any | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> CapabilityResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> CapabilityResult:
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.success:
            out["data"] = self.data
        else:
            out["error"] = self.error
        return out


@dataclass(slots=True)
class ClientResult:
    """Outcome of one client capability invocation (HTTP status when known)."""

    success: bool
    data: Any | None = None
    error: str | None = None
    status: int | None = None

    @classmethod
    def fail(cls, error: str, *, status: int | None = None) -> ClientResult:
        return cls(success=False, error=error, status=status)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.success:
            out["data"] = self.data
        else:
            out["error"] = self.error
        if self.status is not None:
            out["status"] = self.status
        return out
