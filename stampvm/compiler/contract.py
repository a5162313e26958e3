"""
contract.py — compiled contract unit.

`compile_contract(name, source)` runs the whole static pipeline:

    source ──lint──▶ (ast.Module, ContractSymbols) ──transform──▶ code object

and returns an immutable `CompiledContract`. Nothing here executes contract
code; binding the module into a sealed scope is the runtime's job
(`stampvm.runtime.scope`).

The code hash is sha3-256 over the *normalized* source (LF newlines, trailing
whitespace stripped, single trailing newline) so cosmetic whitespace changes do
not alter contract identity.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from types import CodeType
from typing import Any, Dict, List, Optional, Tuple

from ..config import VMConfig, load_config
from ..errors import CompileError
from .linter import lint
from .symbols import ContractSymbols, EventDeclaration, FunctionSpec, StateDeclaration
from .transform import transform


def normalize_source(source: str) -> str:
    lines = source.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    body = "\n".join(line.rstrip() for line in lines).strip("\n")
    return body + "\n"


def code_hash(source: str) -> bytes:
    return hashlib.sha3_256(normalize_source(source).encode("utf-8")).digest()


@dataclass(frozen=True)
class CompiledContract:
    name: str
    source: str
    code: CodeType = field(repr=False, compare=False)
    symbols: ContractSymbols = field(repr=False, compare=False)
    code_hash: bytes = b""

    @property
    def exported_functions(self) -> Dict[str, FunctionSpec]:
        return self.symbols.exported

    @property
    def private_functions(self) -> Dict[str, FunctionSpec]:
        return self.symbols.private

    @property
    def construct_function(self) -> Optional[FunctionSpec]:
        return self.symbols.constructor

    @property
    def state_declarations(self) -> List[StateDeclaration]:
        return list(self.symbols.state)

    @property
    def events(self) -> List[EventDeclaration]:
        return list(self.symbols.events)

    @property
    def code_hash_hex(self) -> str:
        return "0x" + self.code_hash.hex()

    def exported_signatures(self) -> Tuple[str, ...]:
        return tuple(sorted(f.signature() for f in self.exported_functions.values()))

    def describe(self) -> Dict[str, Any]:
        """JSON-friendly summary (used by tooling and tests)."""
        return {
            "name": self.name,
            "code_hash": self.code_hash_hex,
            "exported": [f.to_dict() for f in self.exported_functions.values()],
            "constructor": self.construct_function.to_dict() if self.construct_function else None,
            "state": [{"name": s.name, "kind": s.kind} for s in self.symbols.state],
            "events": [e.name for e in self.symbols.events],
        }


def compile_contract(
    name: str,
    source: str,
    *,
    config: Optional[VMConfig] = None,
) -> CompiledContract:
    """
    Lint, transform and compile `source` for contract `name`.

    Raises:
        CompileError with every lint violation (and the contract name in context).
    """
    cfg = config or load_config()
    filename = f"<contract:{name}>"
    try:
        result = lint(source, filename=filename, config=cfg)
    except CompileError as e:
        raise CompileError(e.violations, contract=name) from None

    tree = transform(result.tree, result.symbols)
    # dont_inherit: this module's __future__ flags must not leak into contracts.
    code = compile(tree, filename, "exec", dont_inherit=True)
    return CompiledContract(
        name=name,
        source=source,
        code=code,
        symbols=result.symbols,
        code_hash=code_hash(source),
    )


__all__ = ["CompiledContract", "compile_contract", "code_hash", "normalize_source"]
