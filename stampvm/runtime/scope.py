"""
stampvm.runtime.scope — sealed module globals for one linked contract.

Contracts cannot import anything. Every capability they may use is injected
here as a pre-bound name, and `__builtins__` is replaced by a dict holding only
the allow-listed builtins. Combined with the linter (which refuses
underscore-prefixed identifiers and frame-reaching attributes), the only way
out of the scope is through the objects placed in it.

Injected names
--------------
Variable, Hash, ForeignVariable, ForeignHash   ORM factories bound to the contract
LogEvent                                       event factory bound to the contract
contracts                                      cross-contract loader (caller = this contract)
Func, Var                                      interface markers
ctx, now, block_num, block_hash                invocation context
random                                         deterministic PRNG
decimal, Any                                   exact decimal type, wildcard annotation

Plus the compiler helpers listed in stampvm.compiler.transform.
"""
from __future__ import annotations

import builtins as _py_builtins
from typing import TYPE_CHECKING, Any, Dict

from ..compiler import builtins_allowlist as allow
from ..compiler import transform as tx
from .events_api import bind_event_factory
from .interface import Func, Var
from .loader import ContractLoader
from .numeric import (
    ExactDecimal,
    bounded_pow,
    checked_lshift,
    checked_mul,
    exact_div,
    exact_pow,
    make_decimal,
)
from .orm import bind_factories

if TYPE_CHECKING:  # pragma: no cover
    from ..compiler.contract import CompiledContract
    from .invocation import Invocation


def sealed_builtins() -> Dict[str, Any]:
    """The allow-listed builtins; `pow` routes through the bounded variant."""
    sealed = {name: getattr(_py_builtins, name) for name in allow.ALLOWED_BUILTINS}
    sealed["pow"] = bounded_pow
    return sealed


_SEALED_BUILTINS = sealed_builtins()


def build_scope(contract: "CompiledContract", inv: "Invocation") -> Dict[str, Any]:
    """Fresh globals for executing `contract` inside invocation `inv`."""
    env = inv.env
    scope: Dict[str, Any] = {
        "__builtins__": dict(_SEALED_BUILTINS),
        "__name__": contract.name,
    }
    scope.update(bind_factories(contract.name, inv.driver))
    scope[allow.EVENT_CONSTRUCTOR] = bind_event_factory(
        contract.name, ctx=inv.ctx, env=env, sink=inv.sink, config=inv.config
    )
    scope.update(
        {
            "contracts": ContractLoader(inv, contract.name),
            "Func": Func,
            "Var": Var,
            "ctx": inv.ctx,
            "now": env.now,
            "block_num": env.block_num,
            "block_hash": env.block_hash,
            "random": inv.random,
            "decimal": ExactDecimal,
            "Any": Any,
            # compiler helpers
            tx.DECIMAL_HELPER: make_decimal,
            tx.DIV_HELPER: exact_div,
            tx.POW_HELPER: exact_pow,
            tx.MUL_HELPER: checked_mul,
            tx.LSHIFT_HELPER: checked_lshift,
            tx.ASSERT_HELPER: inv.fail_assertion,
            tx.TICK_HELPER: inv.meter.tick,
        }
    )
    missing = allow.PREBOUND_NAMES - set(scope)
    if missing:  # pragma: no cover - guarded by tests
        raise RuntimeError(f"scope is missing pre-bound names: {sorted(missing)}")
    return scope


__all__ = ["build_scope", "sealed_builtins"]
