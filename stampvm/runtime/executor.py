"""
stampvm.runtime.executor — deploy and execute contracts atomically.

Design goals
------------
- One entry point per request: `deploy(...)` and `execute(...)`.
- Whole-invocation atomicity: every write and every event of a request is
  applied on success and dropped on any error, nested calls included.
- Stamps are reported as used even when the request fails.
- Every failure surfaces as a VmError subclass inside the result envelope;
  Python-level faults raised by contract code are mapped here.

Public API
----------
Executor(store=None, registry=None, config=None, environment=None)
    .deploy(name, source, *, signer, environment=None, stamps=None, constructor_args=None)
    .execute(contract, function, kwargs=None, *, signer, caller=None, environment=None, stamps=None)
    .read_state(contract, name, *parts) -> Any     # host-side, unmetered
ExecutionResult(status, result, error, events, stamps_used, writes)
"""

from __future__ import annotations

import decimal
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..compiler.contract import CompiledContract, compile_contract
from ..config import VMConfig, load_config
from ..errors import (
    ArgumentError,
    ArithmeticFault,
    ExecutionFault,
    ResolutionError,
    ResourceLimitError,
    VmError,
    error_to_result_fields,
)
from .context import BlockEnv
from .events_api import EventRecord
from .invocation import Invocation
from .metering import StampMeter
from .registry import ContractRegistry, validate_name
from .storage_api import KeyValueStore, MemoryStore, decode_value, make_key

log = logging.getLogger(__name__)

STATUS_SUCCESS = "SUCCESS"

EnvLike = Union[BlockEnv, Mapping[str, Any], None]


@dataclass
class ExecutionResult:
    status: str
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    events: List[EventRecord] = field(default_factory=list)
    stamps_used: int = 0
    writes: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def error_code(self) -> Optional[str]:
        return self.error["code"] if self.error else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "result": self.result,
            "error": self.error,
            "events": [e.to_dict() for e in self.events],
            "stamps_used": self.stamps_used,
            "writes": dict(self.writes),
        }


def map_exception(exc: BaseException) -> VmError:
    """Normalize anything raised under an invocation into a VmError."""
    if isinstance(exc, VmError):
        return exc
    if isinstance(exc, RecursionError):
        return ResourceLimitError("call depth exceeds the interpreter stack", context={"cause": "recursion"})
    if isinstance(exc, (ZeroDivisionError, decimal.DecimalException, OverflowError)):
        return ArithmeticFault(f"{type(exc).__name__}: {exc}")
    return ExecutionFault(f"{type(exc).__name__}: {exc}", context={"type": type(exc).__name__})


class Executor:
    def __init__(
        self,
        *,
        store: Optional[KeyValueStore] = None,
        registry: Optional[ContractRegistry] = None,
        config: Optional[VMConfig] = None,
        environment: EnvLike = None,
    ) -> None:
        self.store: KeyValueStore = store if store is not None else MemoryStore()
        self.registry = registry if registry is not None else ContractRegistry()
        self.config = config or load_config()
        self.environment = self._env(environment) if environment is not None else BlockEnv()

    # ------------------------------ public API ------------------------------ #

    def deploy(
        self,
        name: str,
        source: str,
        *,
        signer: str,
        environment: EnvLike = None,
        stamps: Optional[int] = None,
        constructor_args: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionResult:
        """Lint, compile, run the constructor and register `name` atomically."""
        budget = self._budget(stamps)
        holder: Dict[str, Any] = {}

        def run() -> Any:
            env = self._env(environment)
            meter = StampMeter(limit=budget, config=self.config)
            holder["meter"] = meter
            validate_name(name)
            if name in self.registry:
                raise ResolutionError(f"contract '{name}' already exists", code="contract_exists")
            meter.charge_deploy(len(source.encode("utf-8")) if isinstance(source, str) else 0)

            compiled = compile_contract(name, source, config=self.config)
            ctor = compiled.construct_function
            inv = Invocation(
                registry=self.registry,
                store=self.store,
                config=self.config,
                env=env,
                signer=signer,
                stamps=budget,
                entry=(name, ctor.name if ctor else ""),
                submission=compiled,
                meter=meter,
            )
            holder["inv"] = inv
            if ctor is not None:
                inv.invoke(name, ctor.name, constructor_args or {}, caller=signer, constructor=True)
            else:
                if constructor_args:
                    raise ArgumentError(f"'{name}' has no constructor but constructor_args were given")
                inv.deploy_module(caller=signer)
            return compiled

        res = self._run(run, holder)
        if res.ok:
            compiled: CompiledContract = res.result
            self.registry.register(compiled)
            res.result = compiled.describe()
            log.info("executor: deployed %s stamps=%d", name, res.stamps_used)
        else:
            log.info("executor: deploy of %s failed status=%s code=%s", name, res.status, res.error_code)
        return res

    def execute(
        self,
        contract: str,
        function: str,
        kwargs: Optional[Mapping[str, Any]] = None,
        *,
        signer: str,
        caller: Optional[str] = None,
        environment: EnvLike = None,
        stamps: Optional[int] = None,
    ) -> ExecutionResult:
        """Invoke an exported function; commit on success, discard otherwise."""
        budget = self._budget(stamps)
        holder: Dict[str, Any] = {}

        def run() -> Any:
            env = self._env(environment)
            inv = Invocation(
                registry=self.registry,
                store=self.store,
                config=self.config,
                env=env,
                signer=signer,
                stamps=budget,
                entry=(contract, function),
            )
            holder["inv"] = inv
            holder["meter"] = inv.meter
            return inv.invoke(contract, function, kwargs or {}, caller=caller or signer)

        res = self._run(run, holder)
        log.debug(
            "executor: %s.%s status=%s stamps=%d events=%d",
            contract,
            function,
            res.status,
            res.stamps_used,
            len(res.events),
        )
        return res

    def read_state(self, contract: str, name: str, *parts: Any) -> Any:
        """Committed value at (contract, name, *parts), or None when unset."""
        raw = self.store.get(make_key(contract, name, *parts, config=self.config))
        return None if raw is None else decode_value(raw)

    # ------------------------------ internals ------------------------------ #

    def _run(self, body: Callable[[], Any], holder: Dict[str, Any]) -> ExecutionResult:
        old_limit = sys.getrecursionlimit()
        # Each contract-level call costs a handful of interpreter frames.
        sys.setrecursionlimit(max(old_limit, self.config.max_call_depth * 6 + 2000))
        try:
            result = body()
        except Exception as e:  # noqa: BLE001 - every fault becomes a result envelope
            err = map_exception(e)
            inv = holder.get("inv")
            meter = holder.get("meter")
            if inv is not None:
                inv.buffer.discard()
            fields = error_to_result_fields(err)
            return ExecutionResult(
                status=fields["status"],
                error=fields["error"],
                stamps_used=meter.used if meter is not None else 0,
            )
        finally:
            sys.setrecursionlimit(old_limit)

        inv = holder["inv"]
        writes = {k: (None if v is None else decode_value(v)) for k, v in inv.buffer.mutations()}
        inv.buffer.commit()
        return ExecutionResult(
            status=STATUS_SUCCESS,
            result=result,
            events=inv.events(),
            stamps_used=inv.meter.used,
            writes=writes,
        )

    def _budget(self, stamps: Optional[int]) -> int:
        return self.config.default_stamps if stamps is None else stamps

    def _env(self, environment: EnvLike) -> BlockEnv:
        if environment is None:
            return self.environment
        if isinstance(environment, BlockEnv):
            return environment
        return BlockEnv.from_dict(dict(environment))


__all__ = ["Executor", "ExecutionResult", "map_exception", "STATUS_SUCCESS"]
