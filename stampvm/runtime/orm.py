"""
stampvm.runtime.orm — Variable, Hash and their read-only foreign projections.

Contracts declare state at module scope:

    owner    = Variable()
    balances = Hash(default_value=0)
    allowed  = Hash(default_value=0, declared_type=int)
    supply   = ForeignVariable(foreign_contract='token', foreign_name='supply')
    theirs   = ForeignHash(foreign_contract='token', foreign_name='balances')

The compiler injects `name='<binding>'`; the owning contract and the metered
state driver are bound by the scope factory (`bind_factories`). Contract code
therefore never names its own namespace.

Semantics
---------
- Reads of an unset key return a deep copy of the default (never raise).
- Writing None deletes the key.
- Only exact-key point lookups: no `in`, no iteration, no slices.
- `declared_type`, when given, is checked on every write.
- Foreign views route reads to another contract's slot; writes raise
  ReferenceViolation.

All store access goes through `StateDriver`, which meters every read and write
against the invocation's StampMeter and stages writes in its WriteBuffer.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Optional, Tuple

from ..config import VMConfig, load_config
from ..errors import ArgumentError, ReferenceViolation, StateKeyError, VmError
from .journal import WriteBuffer
from .metering import StampMeter
from .numeric import ExactDecimal
from .storage_api import decode_value, encode_value, make_key

_MISSING = object()

# Types accepted as `declared_type`.
DECLARABLE_TYPES: Tuple[type, ...] = (int, str, bool, dict, list, tuple, bytes, ExactDecimal)


# ----------------------------- driver ----------------------------- #


class StateDriver:
    """Metered access to the invocation's write buffer."""

    __slots__ = ("_buffer", "_meter", "_cfg")

    def __init__(self, buffer: WriteBuffer, meter: StampMeter, *, config: Optional[VMConfig] = None) -> None:
        self._buffer = buffer
        self._meter = meter
        self._cfg = config or load_config()

    @property
    def config(self) -> VMConfig:
        return self._cfg

    def get(self, key: str) -> Any:
        raw = self._buffer.get(key)
        self._meter.charge_read(key, len(raw) if raw is not None else 0)
        if raw is None:
            return _MISSING
        return decode_value(raw)

    def set(self, key: str, value: Any) -> None:
        if value is None:
            self._meter.charge_write(key, 0)
            self._buffer.delete(key)
            return
        data = encode_value(value)
        self._meter.charge_write(key, len(data))
        self._buffer.set(key, data)


# ----------------------------- helpers ----------------------------- #


def _check_declared_type(declared_type: Any) -> Optional[type]:
    if declared_type is None:
        return None
    if declared_type not in DECLARABLE_TYPES:
        raise ArgumentError(
            "declared_type must be one of int, str, bool, dict, list, tuple, bytes, decimal",
            code="type_mismatch",
        )
    return declared_type


def _type_ok(value: Any, declared: type) -> bool:
    if declared is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, declared)


def _unsupported(what: str) -> VmError:
    return VmError(f"{what} is not supported on state objects", code="unsupported_operation")


def _parts(key: Any) -> Tuple[Any, ...]:
    if isinstance(key, slice):
        raise _unsupported("slicing")
    parts = key if isinstance(key, tuple) else (key,)
    if not parts:
        raise StateKeyError("hash key needs at least one component")
    for p in parts:
        if isinstance(p, slice):
            raise _unsupported("slicing")
    return parts


class _StateBase:
    __slots__ = ("_contract", "_name", "_driver", "_default", "_type")

    def __init__(
        self,
        contract: str,
        name: str,
        driver: StateDriver,
        default_value: Any = None,
        declared_type: Any = None,
    ) -> None:
        self._contract = contract
        self._name = name
        self._driver = driver
        self._default = default_value
        self._type = _check_declared_type(declared_type)

    def _read(self, key: str) -> Any:
        value = self._driver.get(key)
        if value is _MISSING:
            return copy.deepcopy(self._default)
        return value

    def _write(self, key: str, value: Any) -> None:
        if value is not None and self._type is not None and not _type_ok(value, self._type):
            raise ArgumentError(
                f"'{self._name}' expects {self._type.__name__}, got {type(value).__name__}",
                code="type_mismatch",
                context={"state": self._name},
            )
        self._driver.set(key, value)

    def __contains__(self, item: Any) -> bool:
        raise _unsupported("membership testing")

    def __iter__(self):
        raise _unsupported("iteration")

    def __len__(self) -> int:
        raise _unsupported("len()")

    def __bool__(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._contract}.{self._name})"


# ----------------------------- local state ----------------------------- #


class Variable(_StateBase):
    __slots__ = ()

    def _key(self) -> str:
        return make_key(self._contract, self._name, config=self._driver.config)

    def get(self) -> Any:
        return self._read(self._key())

    def set(self, value: Any) -> None:
        self._write(self._key(), value)


class Hash(_StateBase):
    __slots__ = ()

    def _key(self, key: Any) -> str:
        return make_key(self._contract, self._name, *_parts(key), config=self._driver.config)

    def __getitem__(self, key: Any) -> Any:
        return self._read(self._key(key))

    def __setitem__(self, key: Any, value: Any) -> None:
        self._write(self._key(key), value)

    def __delitem__(self, key: Any) -> None:
        self._write(self._key(key), None)


# ----------------------------- foreign views ----------------------------- #


class ForeignVariable(Variable):
    """Read-only view of another contract's Variable."""

    __slots__ = ()

    def __init__(
        self,
        contract: str,
        name: str,
        driver: StateDriver,
        *,
        foreign_contract: str,
        foreign_name: str,
        default_value: Any = None,
    ) -> None:
        super().__init__(foreign_contract, foreign_name, driver, default_value=default_value)

    def set(self, value: Any) -> None:
        raise ReferenceViolation(
            f"cannot write to foreign variable {self._contract}.{self._name}",
            context={"target": f"{self._contract}.{self._name}"},
        )


class ForeignHash(Hash):
    """Read-only view of another contract's Hash."""

    __slots__ = ()

    def __init__(
        self,
        contract: str,
        name: str,
        driver: StateDriver,
        *,
        foreign_contract: str,
        foreign_name: str,
        default_value: Any = None,
    ) -> None:
        super().__init__(foreign_contract, foreign_name, driver, default_value=default_value)

    def __setitem__(self, key: Any, value: Any) -> None:
        raise ReferenceViolation(
            f"cannot write to foreign hash {self._contract}.{self._name}",
            context={"target": f"{self._contract}.{self._name}"},
        )

    def __delitem__(self, key: Any) -> None:
        self.__setitem__(key, None)


# ----------------------------- scope factories ----------------------------- #


def bind_factories(contract: str, driver: StateDriver) -> Dict[str, Callable[..., Any]]:
    """
    Contract-visible constructors with the owning contract and driver bound.

    `name` is injected by the compiler for module-level declarations.
    """

    def variable(default_value: Any = None, declared_type: Any = None, *, name: str) -> Variable:
        return Variable(contract, name, driver, default_value=default_value, declared_type=declared_type)

    def hash_(default_value: Any = None, declared_type: Any = None, *, name: str) -> Hash:
        return Hash(contract, name, driver, default_value=default_value, declared_type=declared_type)

    def foreign_variable(*, foreign_contract: str, foreign_name: str, default_value: Any = None, name: str) -> ForeignVariable:
        return ForeignVariable(
            contract, name, driver,
            foreign_contract=foreign_contract, foreign_name=foreign_name, default_value=default_value,
        )

    def foreign_hash(*, foreign_contract: str, foreign_name: str, default_value: Any = None, name: str) -> ForeignHash:
        return ForeignHash(
            contract, name, driver,
            foreign_contract=foreign_contract, foreign_name=foreign_name, default_value=default_value,
        )

    factories = {
        "Variable": variable,
        "Hash": hash_,
        "ForeignVariable": foreign_variable,
        "ForeignHash": foreign_hash,
    }
    # Lets interface markers (`Var(..., type=Hash)`) recover the declaration kind.
    for kind, fn in factories.items():
        fn.state_kind = kind  # type: ignore[attr-defined]
    return factories


__all__ = [
    "StateDriver",
    "Variable",
    "Hash",
    "ForeignVariable",
    "ForeignHash",
    "bind_factories",
    "DECLARABLE_TYPES",
]
