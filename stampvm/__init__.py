"""
stampvm — deterministic, stamp-metered sandbox for Python smart contracts.

This module exposes a tiny, stable façade over the internal compiler/runtime so
downstream tools can rely on a consistent API:

- __version__: semantic version of the package
- lint_source(source) -> list[Violation]
    Run the static linter and return every violation (empty when accepted).
- compile_source(name, source) -> CompiledContract
    Lint + compile; raises CompileError listing every violation.
- Executor
    Deploy and execute contracts atomically against a key/value store.

Heavy imports are lazy so `import stampvm` stays cheap.
"""

from __future__ import annotations

import importlib
from typing import Any, List

from .errors import CompileError, Violation, VmError
from .version import __version__


def version() -> str:
    """Return the stampvm semantic version string."""
    return __version__


def lint_source(source: str, **kwargs: Any) -> List[Violation]:
    """Every lint violation in `source` (empty list when the contract is accepted)."""
    linter = importlib.import_module(".compiler.linter", __name__)
    return linter.check(source, **kwargs)


def compile_source(name: str, source: str, **kwargs: Any):
    """Lint and compile `source` as contract `name`; see compile_contract."""
    contract = importlib.import_module(".compiler.contract", __name__)
    return contract.compile_contract(name, source, **kwargs)


_LAZY = {
    "Executor": ".runtime.executor",
    "ExecutionResult": ".runtime.executor",
    "BlockEnv": ".runtime.context",
    "MemoryStore": ".runtime.storage_api",
    "ContractRegistry": ".runtime.registry",
    "ExactDecimal": ".runtime.numeric",
    "VMConfig": ".config",
    "load_config": ".config",
}


def __getattr__(name: str) -> Any:  # pragma: no cover - thin dispatch
    target = _LAZY.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(importlib.import_module(target, __name__), name)


__all__ = [
    "__version__",
    "version",
    "lint_source",
    "compile_source",
    "CompileError",
    "Violation",
    "VmError",
] + sorted(_LAZY)
