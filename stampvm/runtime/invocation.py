"""
stampvm.runtime.invocation — state of one top-level invocation.

An Invocation owns everything that must live and die with a single
deploy/execute request:

  • StampMeter   – budget and call depth
  • WriteBuffer  – staged writes (committed or discarded by the executor)
  • EventSink    – emitted records (dropped on abort)
  • call frames  – backing the contract-visible `ctx`
  • linked scopes – one sealed module namespace per contract touched
  • PRNG         – seeded from block facts, signer and entry

Each contract is linked lazily on first use: its compiled module code runs
once inside a fresh sealed scope and every function it defines is wrapped so
that calling it (internally or across contracts) enters a metered frame.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..compiler.contract import CompiledContract
from ..compiler.symbols import FunctionSpec, FunctionTag
from ..config import VMConfig
from ..errors import AssertionFailure, ResolutionError
from .context import BlockEnv, CallFrame, ContextView
from .events_api import EventSink
from .interface import check_arguments
from .journal import WriteBuffer
from .metering import StampMeter
from .orm import StateDriver
from .random_api import from_invocation
from .registry import ContractRegistry
from .scope import build_scope
from .storage_api import KeyValueStore

log = logging.getLogger(__name__)


class Invocation:
    def __init__(
        self,
        *,
        registry: ContractRegistry,
        store: KeyValueStore,
        config: VMConfig,
        env: BlockEnv,
        signer: str,
        stamps: int,
        entry: Tuple[str, str],
        submission: Optional[CompiledContract] = None,
        meter: Optional[StampMeter] = None,
    ) -> None:
        self.registry = registry
        self.config = config
        self.env = env
        self.signer = signer
        self.meter = meter if meter is not None else StampMeter(limit=stamps, config=config)
        self.buffer = WriteBuffer(store)
        self.driver = StateDriver(self.buffer, self.meter, config=config)
        self.sink = EventSink()
        self.frames: List[CallFrame] = []
        self.submission = submission
        self.ctx = ContextView(
            self.frames,
            signer=signer,
            submission_name=submission.name if submission is not None else None,
        )
        self.random = from_invocation(
            block_hash=env.block_hash,
            block_num=env.block_num,
            signer=signer,
            entry_contract=entry[0],
            entry_function=entry[1],
        )
        self._scopes: Dict[str, Dict[str, Any]] = {}

    # ----------------------------- resolution ----------------------------- #

    def resolve(self, name: str) -> CompiledContract:
        if self.submission is not None and name == self.submission.name:
            return self.submission
        return self.registry.resolve(name)

    def has_contract(self, name: str) -> bool:
        if self.submission is not None and name == self.submission.name:
            return True
        return name in self.registry

    # ------------------------------- linking ------------------------------- #

    def link(self, contract: CompiledContract) -> Dict[str, Any]:
        """Execute the module body of `contract` once and return its scope."""
        scope = self._scopes.get(contract.name)
        if scope is not None:
            return scope
        scope = build_scope(contract, self)
        # Cache first so module-level code that loads itself does not recurse.
        self._scopes[contract.name] = scope
        exec(contract.code, scope)  # noqa: S102 - sealed scope, linted code

        deploying = self.submission is not None and self.submission.name == contract.name
        for spec in contract.symbols.functions.values():
            fn = scope[spec.internal_name]
            if spec.tag is FunctionTag.CONSTRUCTOR and not deploying:
                scope[spec.internal_name] = self._constructor_guard(contract.name)
            else:
                scope[spec.internal_name] = self._metered(fn)
        log.debug("invocation: linked %s (%d functions)", contract.name, len(contract.symbols.functions))
        return scope

    def _metered(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        meter = self.meter

        def call(*args: Any, **kwargs: Any) -> Any:
            meter.enter_call()
            try:
                return fn(*args, **kwargs)
            finally:
                meter.exit_call()

        return call

    @staticmethod
    def _constructor_guard(contract: str) -> Callable[..., Any]:
        def guard(*args: Any, **kwargs: Any) -> Any:
            raise ResolutionError(
                f"the constructor of '{contract}' only runs at deployment",
                context={"contract": contract},
            )

        return guard

    # ------------------------------- calling ------------------------------- #

    def invoke(
        self,
        contract: str,
        function: str,
        kwargs: Optional[Mapping[str, Any]],
        *,
        caller: str,
        constructor: bool = False,
    ) -> Any:
        """
        Call an exported function (or, when `constructor` is set, the
        constructor of the contract being deployed) under a new call frame.
        """
        target = self.resolve(contract)
        spec = self._entry_spec(target, function, constructor=constructor)
        args = check_arguments(spec, kwargs or {}, contract=target.name)

        self.frames.append(CallFrame(contract=target.name, function=spec.name, caller=caller))
        try:
            scope = self.link(target)
            return scope[spec.internal_name](**args)
        finally:
            self.frames.pop()

    @staticmethod
    def _entry_spec(target: CompiledContract, function: str, *, constructor: bool) -> FunctionSpec:
        if constructor:
            spec = target.construct_function
            if spec is None or spec.name != function:
                raise ResolutionError(f"'{target.name}' has no constructor '{function}'")
            return spec
        spec = target.exported_functions.get(function)
        if spec is None:
            raise ResolutionError(
                f"'{function}' is not an exported function of '{target.name}'",
                context={"contract": target.name, "function": function},
            )
        return spec

    def deploy_module(self, *, caller: str) -> None:
        """Link the contract being deployed inside its own frame (no constructor)."""
        if self.submission is None:
            raise ResolutionError("no contract is being deployed")
        self.frames.append(CallFrame(contract=self.submission.name, function="", caller=caller))
        try:
            self.link(self.submission)
        finally:
            self.frames.pop()

    # ------------------------------- helpers ------------------------------- #

    def fail_assertion(self, message: Any = None) -> None:
        text = "assertion failed" if message is None else str(message)
        frame = self.frames[-1] if self.frames else None
        raise AssertionFailure(
            text,
            context={"contract": frame.contract, "function": frame.function} if frame else {},
        )

    def events(self) -> List[Any]:
        return list(self.sink.records)


__all__ = ["Invocation"]
