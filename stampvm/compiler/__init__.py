"""
stampvm.compiler — static pipeline for contract sources.

  • builtins_allowlist — canonical allowlist of builtins and sealed names
  • symbols            — function table and state/event declarations
  • linter             — restriction checker + symbol/decorator validator
  • transform          — AST rewrites (decimal literals, exact division,
                         loop ticks, private renaming)
  • contract           — CompiledContract and compile_contract()

Submodules import lazily so `import stampvm.compiler` stays cheap.
"""
from __future__ import annotations

import importlib
from typing import Any

_SUBMODULES = {"builtins_allowlist", "symbols", "linter", "transform", "contract"}


def __getattr__(name: str) -> Any:  # pragma: no cover - thin dispatch
    if name in _SUBMODULES:
        return importlib.import_module(f"{__name__}.{name}")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list:  # pragma: no cover
    return sorted(list(globals().keys()) + list(_SUBMODULES))


def compile_source(name: str, source: str, **kwargs: Any):
    """Compile contract `source` under `name`; see contract.compile_contract."""
    from .contract import compile_contract

    return compile_contract(name, source, **kwargs)


def check_source(source: str, **kwargs: Any):
    """Return the list of lint violations for `source` without raising."""
    from .linter import check

    return check(source, **kwargs)


__all__ = sorted(_SUBMODULES) + ["compile_source", "check_source"]
