"""
symbols.py — function table and state declarations of a contract unit.

This module is used by the linter and the transformer to:
  • Build the explicit function table {PRIVATE, EXPORTED, CONSTRUCTOR} during
    validation, so invocation dispatches by tag instead of inspecting runtime
    attributes.
  • Record module-level state declarations (ORM objects) and event schemas as
    an ordered descriptor that the runtime binds into each contract frame.

Design notes
------------
- Private and constructor functions are renamed with PRIVATE_PREFIX. Contract
  identifiers may not start with an underscore, so the prefixed names can never
  collide with, or be spelled by, contract code.
- The function signature string is stable and used by interface checks.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

PRIVATE_PREFIX = "__"


class FunctionTag(Enum):
    PRIVATE = "private"
    EXPORTED = "exported"
    CONSTRUCTOR = "constructor"


@dataclass(frozen=True)
class Param:
    name: str
    annotation: Optional[str] = None


@dataclass(frozen=True)
class FunctionSpec:
    name: str
    tag: FunctionTag
    params: Tuple[Param, ...] = ()
    lineno: Optional[int] = None

    @property
    def internal_name(self) -> str:
        """Name the function is bound to inside the compiled module."""
        if self.tag is FunctionTag.EXPORTED:
            return self.name
        return PRIVATE_PREFIX + self.name

    @property
    def param_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.params)

    def signature(self) -> str:
        """Human-readable signature like 'transfer(amount:int,to:str)'."""
        args = ",".join(f"{p.name}:{p.annotation or 'Any'}" for p in self.params)
        return f"{self.name}({args})"

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "tag": self.tag.value,
            "params": [{"name": p.name, "type": p.annotation} for p in self.params],
        }


@dataclass(frozen=True)
class StateDeclaration:
    """A module-level ORM declaration: `balances = Hash(default_value=0)`."""

    name: str
    kind: str  # Variable | Hash | ForeignVariable | ForeignHash
    lineno: Optional[int] = None

    @property
    def foreign(self) -> bool:
        return self.kind.startswith("Foreign")


@dataclass(frozen=True)
class EventDeclaration:
    """A module-level `LogEvent` declaration bound to `name`."""

    name: str
    lineno: Optional[int] = None


@dataclass
class ContractSymbols:
    """Ordered symbol table for one contract source unit."""

    functions: Dict[str, FunctionSpec] = field(default_factory=dict)
    state: List[StateDeclaration] = field(default_factory=list)
    events: List[EventDeclaration] = field(default_factory=list)

    def add_function(self, spec: FunctionSpec) -> None:
        self.functions[spec.name] = spec

    def by_tag(self, tag: FunctionTag) -> List[FunctionSpec]:
        return [f for f in self.functions.values() if f.tag is tag]

    @property
    def exported(self) -> Dict[str, FunctionSpec]:
        return {f.name: f for f in self.by_tag(FunctionTag.EXPORTED)}

    @property
    def private(self) -> Dict[str, FunctionSpec]:
        return {f.name: f for f in self.by_tag(FunctionTag.PRIVATE)}

    @property
    def constructor(self) -> Optional[FunctionSpec]:
        ctors = self.by_tag(FunctionTag.CONSTRUCTOR)
        return ctors[0] if ctors else None

    def renamed(self) -> Dict[str, str]:
        """contract-visible name → internal name, for non-exported functions."""
        return {
            f.name: f.internal_name
            for f in self.functions.values()
            if f.tag is not FunctionTag.EXPORTED
        }

    def state_names(self) -> List[str]:
        return [s.name for s in self.state]

    def state_kind(self, name: str) -> Optional[str]:
        for s in self.state:
            if s.name == name:
                return s.kind
        return None


__all__ = [
    "PRIVATE_PREFIX",
    "FunctionTag",
    "Param",
    "FunctionSpec",
    "StateDeclaration",
    "EventDeclaration",
    "ContractSymbols",
]
