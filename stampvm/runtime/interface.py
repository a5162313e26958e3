"""
stampvm.runtime.interface — explicit interface markers and argument checks.

Contracts describe what they need from another contract with markers:

    token = contracts.load('token')
    assert contracts.enforce_interface(token, [
        Func('transfer', args=('amount', 'to')),
        Var('balances', type=Hash),
    ])

A `Func` matches an *exported* function with the same name and exactly the
same parameter names in order. A `Var` matches a module-level state
declaration with the same name and kind. Nothing is checked implicitly: a
contract that never calls enforce/require gets no structural guarantee.

`check_arguments` validates invocation kwargs against the annotations
recorded by the compiler; it is used both at the host boundary and for
cross-contract calls.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from ..compiler.contract import CompiledContract
from ..compiler.symbols import FunctionSpec
from ..errors import ArgumentError, ResolutionError
from .numeric import ExactDecimal, coerce_argument


@dataclass(frozen=True, init=False)
class Func:
    name: str
    args: Tuple[str, ...] = ()

    def __init__(self, name: str, args: Sequence[str] = ()) -> None:
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "args", tuple(args))

    def matches(self, contract: CompiledContract) -> bool:
        spec = contract.exported_functions.get(self.name)
        return spec is not None and spec.param_names == self.args


@dataclass(frozen=True, init=False)
class Var:
    name: str
    kind: str

    def __init__(self, name: str, type: Any = "Variable") -> None:  # noqa: A002 - contract-facing keyword
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "kind", _kind_of(type))

    def matches(self, contract: CompiledContract) -> bool:
        return contract.symbols.state_kind(self.name) == self.kind


Requirement = Union[Func, Var]


def _kind_of(marker: Any) -> str:
    if isinstance(marker, str):
        return marker
    kind = getattr(marker, "state_kind", None)
    if isinstance(kind, str):
        return kind
    raise ResolutionError("Var type must be Variable, Hash, ForeignVariable or ForeignHash")


def missing_requirements(contract: CompiledContract, interface: Sequence[Any]) -> List[str]:
    """Names of the requirements `contract` does not satisfy."""
    if not isinstance(interface, (list, tuple)):
        raise ResolutionError("interface must be a list of Func/Var markers")
    missing: List[str] = []
    for req in interface:
        if not isinstance(req, (Func, Var)):
            raise ResolutionError("interface entries must be Func or Var markers")
        if not req.matches(contract):
            missing.append(req.name)
    return missing


# ----------------------------- arguments ----------------------------- #


def _accepts(annotation: str, value: Any) -> Tuple[bool, Any]:
    if annotation in (None, "Any"):
        return True, value
    if annotation == "int":
        return isinstance(value, int) and not isinstance(value, bool), value
    if annotation in ("float", "decimal"):
        if isinstance(value, ExactDecimal):
            return True, value
        if isinstance(value, int) and not isinstance(value, bool):
            return True, ExactDecimal(value)
        return False, value
    py = {"str": str, "bool": bool, "dict": dict, "list": list, "tuple": tuple, "bytes": bytes}.get(annotation)
    if py is None:
        return False, value
    if annotation == "tuple" and isinstance(value, list):
        # tuples come back from storage and wire formats as lists
        return True, tuple(value)
    return isinstance(value, py), value


def check_arguments(spec: FunctionSpec, kwargs: Mapping[str, Any], *, contract: str) -> Dict[str, Any]:
    """
    Validate kwargs against `spec` and return the coerced mapping.

    Raises:
        ArgumentError on missing/unexpected names or annotation mismatches
    """
    if not isinstance(kwargs, Mapping):
        raise ArgumentError("arguments must be a mapping of name → value")
    expected = list(spec.param_names)
    missing = [n for n in expected if n not in kwargs]
    unexpected = sorted(str(k) for k in kwargs if k not in expected)
    if missing or unexpected:
        raise ArgumentError(
            f"{contract}.{spec.name}: argument names do not match {spec.signature()}",
            context={"missing": missing, "unexpected": unexpected},
        )
    out: Dict[str, Any] = {}
    for p in spec.params:
        ok, value = _accepts(p.annotation, coerce_argument(kwargs[p.name]))
        if not ok:
            raise ArgumentError(
                f"{contract}.{spec.name}: '{p.name}' expects {p.annotation}, got {type(value).__name__}",
                context={"param": p.name, "expected": p.annotation, "got": type(value).__name__},
            )
        out[p.name] = value
    return out


__all__ = ["Func", "Var", "Requirement", "missing_requirements", "check_arguments"]
