"""
stampvm.runtime.loader — the contract-visible `contracts` object.

    token = contracts.load('token')
    token.transfer(amount=10, to='bob')

    contracts.exists('token')                       -> bool
    contracts.enforce_interface(token, [Func(...)]) -> bool
    contracts.require_interface('token', [...])     -> None or ResolutionError

A `ContractHandle` only reaches *exported* functions. Calls go through the
invocation, which type-checks kwargs, pushes a call frame with
`caller = <invoking contract>` and `this = <target>`, and meters depth. The
signer never changes across hops.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Sequence, Union

from ..errors import ArgumentError, ResolutionError
from .interface import missing_requirements
from .registry import is_valid_name, validate_name

if TYPE_CHECKING:  # pragma: no cover
    from ..compiler.contract import CompiledContract
    from .invocation import Invocation


class ContractHandle:
    """Reference to a resolved contract; attribute access yields exported calls."""

    __slots__ = ("_inv", "_target", "_caller")

    def __init__(self, inv: "Invocation", target: "CompiledContract", caller: str) -> None:
        object.__setattr__(self, "_inv", inv)
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_caller", caller)

    def __getattr__(self, function: str) -> Callable[..., Any]:
        if function.startswith("_"):
            raise AttributeError(function)
        target = self._target
        if function not in target.exported_functions:
            raise ResolutionError(
                f"'{function}' is not an exported function of '{target.name}'",
                context={"contract": target.name, "function": function},
            )
        inv = self._inv
        caller = self._caller

        def call(*args: Any, **kwargs: Any) -> Any:
            if args:
                raise ArgumentError(
                    f"{target.name}.{function} takes keyword arguments only",
                    context={"positional": len(args)},
                )
            return inv.invoke(target.name, function, kwargs, caller=caller)

        return call

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("contract handles are read-only")

    def __repr__(self) -> str:
        return f"ContractHandle({self._target.name})"


class ContractLoader:
    """`contracts` as seen by one contract (the one whose scope holds it)."""

    __slots__ = ("_inv", "_caller")

    def __init__(self, inv: "Invocation", caller: str) -> None:
        self._inv = inv
        self._caller = caller

    def load(self, name: str) -> ContractHandle:
        validate_name(name)
        target = self._inv.resolve(name)
        return ContractHandle(self._inv, target, self._caller)

    def exists(self, name: str) -> bool:
        if not is_valid_name(name):
            return False
        return self._inv.has_contract(name)

    def _target(self, target: Union[ContractHandle, str]) -> "CompiledContract":
        if isinstance(target, ContractHandle):
            return object.__getattribute__(target, "_target")
        validate_name(target)
        return self._inv.resolve(target)

    def enforce_interface(self, target: Union[ContractHandle, str], interface: Sequence[Any]) -> bool:
        return not missing_requirements(self._target(target), interface)

    def require_interface(self, target: Union[ContractHandle, str], interface: Sequence[Any]) -> None:
        contract = self._target(target)
        missing = missing_requirements(contract, interface)
        if missing:
            raise ResolutionError(
                f"'{contract.name}' does not satisfy the required interface",
                code="interface_mismatch",
                context={"contract": contract.name, "missing": missing},
            )

    def __repr__(self) -> str:
        return f"contracts(caller={self._caller!r})"


__all__ = ["ContractHandle", "ContractLoader"]
