"""
stampvm.errors — structured exceptions for the contract sandbox.

The compiler and the runtime communicate failures via *typed exceptions* that
the executor converts into result envelopes. Every error carries a stable
machine `code`, a human `message` and a JSON-safe `context` mapping.

Hierarchy
---------
VmError (base)
 ├─ CompileError        : lint/compile rejection; carries the full violation list
 ├─ AssertionFailure    : an in-contract `assert` failed
 ├─ ReferenceViolation  : write through a read-only foreign view
 ├─ ResourceLimitError  : call depth, hash dimensionality, key size, int size
 ├─ StampsExhausted     : stamp budget reached zero
 ├─ ArithmeticFault     : division by zero, invalid numeric coercion
 ├─ ResolutionError     : missing/invalid contract, interface mismatch, non-exported call
 ├─ StateKeyError       : malformed key component (separator, unsupported type)
 ├─ EventSchemaError    : invalid LogEvent declaration or emission
 ├─ ArgumentError       : invocation arguments do not match the declared annotations
 └─ ExecutionFault      : any other fault raised by contract code

Runtime errors abort the whole top-level invocation; none of them can be caught
by contract code (there is no exception-handling construct in the sandbox).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence


class VmError(Exception):
    """
    Structured error used across the compiler and the runtime.

        VmError("simple message")
        VmError("message", code="some_code", context={...})

    Attributes:
        code: short machine-readable code string
        message: human-readable message
        context: optional extra fields for debugging / result envelopes
    """

    default_code = "vm_error"

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code: str = code or self.default_code
        self.message: str = str(message)
        self.context: Dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        if self.context:
            return f"{self.code}: {self.message} ({self.context})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": dict(self.context),
        }


# ------------------------------ compile time -------------------------------- #


@dataclass(frozen=True)
class Violation:
    """One lint finding: a machine-readable rule id plus a source location."""

    rule: str
    message: str
    lineno: Optional[int] = None
    col: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "message": self.message,
            "lineno": self.lineno,
            "col": self.col,
        }

    def __str__(self) -> str:
        where = f"line {self.lineno}" if self.lineno is not None else "<module>"
        return f"[{self.rule}] {where}: {self.message}"


class CompileError(VmError):
    """Raised when a contract is rejected by the linter or the compiler."""

    default_code = "compile_rejected"

    def __init__(self, violations: Sequence[Violation], *, contract: Optional[str] = None) -> None:
        self.violations: List[Violation] = list(violations)
        summary = "; ".join(str(v) for v in self.violations[:5])
        if len(self.violations) > 5:
            summary += f"; ... ({len(self.violations) - 5} more)"
        ctx: Dict[str, Any] = {"violations": [v.to_dict() for v in self.violations]}
        if contract is not None:
            ctx["contract"] = contract
        super().__init__(f"contract rejected: {summary}", context=ctx)

    @property
    def rules(self) -> List[str]:
        return [v.rule for v in self.violations]


# --------------------------------- runtime ---------------------------------- #


class AssertionFailure(VmError):
    default_code = "assertion_failed"


class ReferenceViolation(VmError):
    default_code = "reference_error"


class ResourceLimitError(VmError):
    default_code = "resource_limit"


class StampsExhausted(VmError):
    default_code = "stamps_exhausted"


class ArithmeticFault(VmError):
    default_code = "arithmetic_error"


class ResolutionError(VmError):
    default_code = "resolution_error"


class StateKeyError(VmError):
    default_code = "invalid_key"


class EventSchemaError(VmError):
    default_code = "event_invalid"


class ArgumentError(VmError):
    default_code = "invalid_argument"


class ExecutionFault(VmError):
    default_code = "execution_error"


# -------- helper utilities ---------------------------------------------------


def error_to_result_fields(err: VmError) -> Dict[str, Any]:
    """
    Map a VmError to canonical result fields.

    Returns:
        {
          "status": "OUT_OF_STAMPS" | "ASSERTION" | "REJECTED" | "ERROR",
          "error":  {code, message, context}
        }
    """
    if isinstance(err, StampsExhausted):
        status = "OUT_OF_STAMPS"
    elif isinstance(err, AssertionFailure):
        status = "ASSERTION"
    elif isinstance(err, CompileError):
        status = "REJECTED"
    else:
        status = "ERROR"
    return {"status": status, "error": err.to_dict()}


__all__ = [
    "VmError",
    "Violation",
    "CompileError",
    "AssertionFailure",
    "ReferenceViolation",
    "ResourceLimitError",
    "StampsExhausted",
    "ArithmeticFault",
    "ResolutionError",
    "StateKeyError",
    "EventSchemaError",
    "ArgumentError",
    "ExecutionFault",
    "error_to_result_fields",
]
