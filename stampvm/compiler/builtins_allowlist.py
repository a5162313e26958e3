"""
builtins_allowlist.py — canonical allowlist for builtins and pre-bound names

This module centralizes which Python builtins are reachable from contract code
and which sandbox names are injected into every contract scope. It is purposely
strict:
  • Only a small set of obviously pure/deterministic builtins is allowed.
  • No I/O, no time, no randomness, no reflection, no imports at all.
  • Capabilities (state, cross-contract calls, events, context) are pre-bound
    names; contracts never acquire them dynamically.

If you need to expand the allowlist, consider determinism (no process/global
state or system-time), resource bounds, and stamp predictability. Prefer adding
functionality as a pre-bound name instead of whitelisting Python stdlib.

Exposed API
-----------
- ALLOWED_BUILTINS: mapping of builtin name → BuiltinRule
- INTROSPECTION_BUILTINS: metaprogramming names, reported under their own rule
- BLOCKED_ATTRIBUTES: attribute names that lead to frames/format escapes
- PREBOUND_NAMES: names injected into every contract scope
- ORM_CONSTRUCTORS / EVENT_CONSTRUCTOR: declaration constructors
- DECORATORS / RESERVED_NAMES: names that cannot be bound by contracts
- ANNOTATION_TYPES: annotations accepted on exported parameters
- check_builtin_call(name, argc, kwarg_names): returns a message on violation
- is_allowed_builtin(name): bool
"""

from __future__ import annotations

import builtins as _py_builtins
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Sequence

# ------------------------------ Builtin rules ------------------------------- #


@dataclass(frozen=True)
class BuiltinRule:
    """Static call-shape constraints for a builtin.

    NOTE: We only validate arity and kwarg *names* here; value checks happen
    at runtime inside the builtin itself.
    """

    min_args: int = 0
    max_args: Optional[int] = None  # None = unbounded (but >= min_args)
    allowed_kwargs: FrozenSet[str] = frozenset()
    note: str = ""


def _rule(
    min_args: int,
    max_args: Optional[int],
    *,
    kwargs: Iterable[str] = (),
    note: str = "",
) -> BuiltinRule:
    return BuiltinRule(
        min_args=min_args,
        max_args=max_args,
        allowed_kwargs=frozenset(kwargs),
        note=note,
    )


# Deterministic, side-effect-free subset.
ALLOWED_BUILTINS: Dict[str, BuiltinRule] = {
    # Constructors / conversions
    "bool": _rule(0, 1),
    "int": _rule(0, 2, kwargs=("base",)),
    "str": _rule(0, 3, kwargs=("encoding", "errors")),
    "bytes": _rule(0, 3, kwargs=("encoding", "errors")),
    "bytearray": _rule(0, 3, kwargs=("encoding", "errors")),
    "dict": _rule(0, 1),
    "list": _rule(0, 1),
    "tuple": _rule(0, 1),
    "set": _rule(0, 1),
    "frozenset": _rule(0, 1),
    "ord": _rule(1, 1),
    "chr": _rule(1, 1),
    "hex": _rule(1, 1),
    "bin": _rule(1, 1),
    "oct": _rule(1, 1),
    # Arithmetic helpers
    "abs": _rule(1, 1),
    "divmod": _rule(2, 2),
    "pow": _rule(2, 3),
    "round": _rule(1, 2),
    "min": _rule(1, None, kwargs=("default",), note="No key= allowed."),
    "max": _rule(1, None, kwargs=("default",), note="No key= allowed."),
    "sum": _rule(1, 2, kwargs=("start",)),
    # Iterables
    "len": _rule(1, 1),
    "range": _rule(1, 3),
    "enumerate": _rule(1, 2, kwargs=("start",)),
    "zip": _rule(0, None),
    "reversed": _rule(1, 1),
    "sorted": _rule(1, 1, kwargs=("reverse",), note="No key= allowed; reverse=bool only."),
    "all": _rule(1, 1),
    "any": _rule(1, 1),
    # Type checks
    "isinstance": _rule(2, 2),
    "issubclass": _rule(2, 2),
}

# Constants that are always reachable.
ALLOWED_CONSTANTS: FrozenSet[str] = frozenset({"True", "False", "None"})

# Metaprogramming / introspection. Reported as `introspection` rather than a
# generic forbidden name so authors see why.
INTROSPECTION_BUILTINS: FrozenSet[str] = frozenset(
    {
        "eval",
        "exec",
        "compile",
        "getattr",
        "setattr",
        "delattr",
        "hasattr",
        "type",
        "dir",
        "vars",
        "id",
        "globals",
        "locals",
        "__import__",
        "__build_class__",
        "super",
        "object",
        "classmethod",
        "staticmethod",
        "property",
        "memoryview",
        "callable",
        "hash",  # nondeterministic across processes due to hash seed
        "breakpoint",
        "help",
    }
)

# Attribute names that reach frames, code objects or format-string traversal.
BLOCKED_ATTRIBUTES: FrozenSet[str] = frozenset(
    {
        "format",
        "format_map",
        "gi_frame",
        "gi_code",
        "cr_frame",
        "cr_code",
        "ag_frame",
        "ag_code",
        "f_globals",
        "f_locals",
        "f_builtins",
        "f_back",
        "f_code",
        "tb_frame",
        "tb_next",
        "mro",
    }
)

# ------------------------------ Sandbox names -------------------------------- #

ORM_CONSTRUCTORS: FrozenSet[str] = frozenset(
    {"Variable", "Hash", "ForeignVariable", "ForeignHash"}
)
EVENT_CONSTRUCTOR = "LogEvent"

# Names injected into every contract scope (the sealed capability set).
PREBOUND_NAMES: FrozenSet[str] = ORM_CONSTRUCTORS | frozenset(
    {
        EVENT_CONSTRUCTOR,
        "contracts",
        "Func",
        "Var",
        "ctx",
        "now",
        "block_num",
        "block_hash",
        "random",
        "decimal",
        "Any",
    }
)

EXPORT_DECORATOR = "export"
CONSTRUCT_DECORATOR = "construct"
DECORATORS: FrozenSet[str] = frozenset({EXPORT_DECORATOR, CONSTRUCT_DECORATOR})

RESERVED_NAMES: FrozenSet[str] = PREBOUND_NAMES | DECORATORS

# Annotations accepted on exported parameters.
ANNOTATION_TYPES: FrozenSet[str] = frozenset(
    {"int", "str", "bool", "dict", "list", "tuple", "bytes", "float", "decimal", "Any"}
)

# ORM/event keywords bound by the compiler, never by contract authors.
COMPILER_BOUND_KEYWORDS: FrozenSet[str] = frozenset({"contract", "name"})


def is_python_builtin(name: str) -> bool:
    return name in _py_builtins.__dict__


def is_allowed_builtin(name: str) -> bool:
    """Return True if `name` is in the allowlist (and not explicitly blocked)."""
    return name in ALLOWED_BUILTINS and name not in INTROSPECTION_BUILTINS


def check_builtin_call(name: str, argc: int, kwarg_names: Sequence[str]) -> Optional[str]:
    """Validate builtin call shape. Return a message on violation, else None."""
    rule = ALLOWED_BUILTINS.get(name)
    if rule is None:
        return f"use of builtin '{name}' is not allowed"

    if argc < rule.min_args:
        return f"builtin '{name}' expects at least {rule.min_args} argument(s), got {argc}"
    if rule.max_args is not None and argc > rule.max_args:
        return f"builtin '{name}' expects at most {rule.max_args} argument(s), got {argc}"

    unknown = [k for k in kwarg_names if k not in rule.allowed_kwargs]
    if unknown:
        allowed_s = ", ".join(sorted(rule.allowed_kwargs)) or "none"
        return f"builtin '{name}' got unsupported kwargs: {unknown}; allowed: {allowed_s}"
    return None


__all__ = [
    "BuiltinRule",
    "ALLOWED_BUILTINS",
    "ALLOWED_CONSTANTS",
    "INTROSPECTION_BUILTINS",
    "BLOCKED_ATTRIBUTES",
    "ORM_CONSTRUCTORS",
    "EVENT_CONSTRUCTOR",
    "PREBOUND_NAMES",
    "EXPORT_DECORATOR",
    "CONSTRUCT_DECORATOR",
    "DECORATORS",
    "RESERVED_NAMES",
    "ANNOTATION_TYPES",
    "COMPILER_BOUND_KEYWORDS",
    "is_python_builtin",
    "is_allowed_builtin",
    "check_builtin_call",
]
