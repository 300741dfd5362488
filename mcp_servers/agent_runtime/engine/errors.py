"""Interpreter error hierarchy.

Everything raised from here signals a broken definition or a hard runtime
condition. Capability entry points catch these once and turn them into a
structured failure.
"""

from __future__ import annotations


class InterpreterError(Exception):
    pass


class DefinitionError(InterpreterError):
    """Malformed definition shape or unknown step/condition/transform tag."""


class ParseError(InterpreterError):
    """Numeric or structured parse transform could not represent its input."""


class WaitTimeoutError(InterpreterError):
    pass
