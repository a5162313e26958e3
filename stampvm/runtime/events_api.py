"""
stampvm.runtime.events_api — declared event schemas and validated emission.

Contracts declare events at module scope and emit them by calling the
declaration with a mapping:

    Transfer = LogEvent('Transfer', {
        'sender': {'type': str, 'idx': True},
        'amount': {'type': (int, decimal)},
    })
    Transfer({'sender': ctx.caller, 'amount': 5})

Schema rules (checked at declaration, EventSchemaError otherwise)
-----------------------------------------------------------------
- the event name is an identifier of at most MAX_EVENT_NAME_BYTES bytes;
- every param is `{'type': T or (T, ...), 'idx': bool}` with T drawn from
  EVENT_TYPES (`float` is accepted as a spelling of decimal);
- at most `max_indexed_params` params are indexed.

Emission rules
--------------
- exactly the declared params are supplied, each matching its type;
- each value is snapshotted into fresh containers before it is checked, so
  later mutation by the contract cannot alter or grow an emitted record;
- the serialized form of every value (`str()` of non-bytes, UTF-8) is at most
  `max_event_value_bytes`;
- records are appended to the invocation's EventSink in emission order and
  are dropped with the sink when the invocation aborts.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..config import VMConfig, load_config
from ..errors import EventSchemaError
from .context import BlockEnv, ContextView
from .numeric import ExactDecimal

log = logging.getLogger(__name__)

MAX_EVENT_NAME_BYTES = 64

# Names must be identifier-like: letters/underscore, then letters/digits/underscore.
_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Declarable param types. `float` is accepted as a spelling of decimal.
EVENT_TYPES: Tuple[Any, ...] = (str, int, bool, ExactDecimal, float, dict, list, bytes, Any)
_SPEC_KEYS = frozenset({"type", "idx"})


def _fail(message: str, where: str, **extra: Any) -> EventSchemaError:
    ctx: Dict[str, Any] = {"where": where}
    ctx.update(extra)
    return EventSchemaError(message, context=ctx)


@dataclass(frozen=True)
class EventParam:
    name: str
    types: Tuple[Any, ...]
    indexed: bool = False

    def accepts(self, value: Any) -> bool:
        for t in self.types:
            if t is Any:
                return True
            if t is int:
                if isinstance(value, int) and not isinstance(value, bool):
                    return True
            elif t is float or t is ExactDecimal:
                if isinstance(value, ExactDecimal):
                    return True
            elif isinstance(value, t):
                return True
        return False

    def type_names(self) -> List[str]:
        out = []
        for t in self.types:
            if t is Any:
                out.append("Any")
            elif t is ExactDecimal or t is float:
                out.append("decimal")
            else:
                out.append(t.__name__)
        return out


@dataclass(frozen=True)
class EventRecord:
    """One emitted event, as returned in ExecutionResult.events."""

    contract: str
    event: str
    signer: str
    caller: str
    indexed: Dict[str, Any]
    data: Dict[str, Any]
    timestamp: int
    block_num: int
    sequence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract": self.contract,
            "event": self.event,
            "signer": self.signer,
            "caller": self.caller,
            "indexed": {k: _jsonable(v) for k, v in self.indexed.items()},
            "data": {k: _jsonable(v) for k, v in self.data.items()},
            "timestamp": self.timestamp,
            "block_num": self.block_num,
            "sequence": self.sequence,
        }


def _jsonable(v: Any) -> Any:
    if isinstance(v, ExactDecimal):
        return str(v)
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    return v


def _serialized_size(value: Any) -> int:
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    return len(str(value).encode("utf-8"))


_SCALARS = (type(None), bool, int, str, bytes, ExactDecimal)


def _snapshot(value: Any, active: Optional[set] = None) -> Any:
    """Copy `value` into containers the emitting contract holds no reference to."""
    if isinstance(value, _SCALARS):
        return value
    if not isinstance(value, (list, tuple, dict, set, frozenset)):
        raise TypeError(type(value).__name__)
    active = active if active is not None else set()
    if id(value) in active:
        raise TypeError("cyclic container")
    active.add(id(value))
    try:
        if isinstance(value, dict):
            return {_snapshot(k, active): _snapshot(v, active) for k, v in value.items()}
        if isinstance(value, list):
            return [_snapshot(v, active) for v in value]
        if isinstance(value, tuple):
            return tuple(_snapshot(v, active) for v in value)
        return frozenset(_snapshot(v, active) for v in value)
    finally:
        active.discard(id(value))


@dataclass
class EventSink:
    """Ordered per-invocation record buffer. Dropped wholesale on abort."""

    records: List[EventRecord] = field(default_factory=list)

    def append(self, record: EventRecord) -> None:
        self.records.append(record)

    @property
    def next_sequence(self) -> int:
        return len(self.records)

    def drain(self) -> List[EventRecord]:
        out = list(self.records)
        self.records.clear()
        return out

    def clear(self) -> None:
        self.records.clear()


# ----------------------------- schema ----------------------------- #


def _check_event_name(name: Any) -> str:
    if not isinstance(name, str):
        raise _fail("event name must be str", "name_type")
    if not name:
        raise _fail("event name must be non-empty", "name_empty")
    if len(name.encode("utf-8")) > MAX_EVENT_NAME_BYTES:
        raise _fail("event name too long", "name_length", len=len(name))
    if not _KEY_RE.match(name):
        raise _fail("event name has invalid characters", "name_grammar", event=name)
    return name


def _check_types(pname: str, raw: Any) -> Tuple[Any, ...]:
    types = raw if isinstance(raw, tuple) else (raw,)
    if not types:
        raise _fail(f"param '{pname}' declares no type", "param_type", param=pname)
    for t in types:
        if t not in EVENT_TYPES:
            raise _fail(
                f"param '{pname}' has unsupported type",
                "param_type",
                param=pname,
                type=getattr(t, "__name__", repr(t)),
            )
    return types


def parse_schema(params: Any, *, max_indexed: int) -> Tuple[EventParam, ...]:
    """Validate a `{name: {'type': T, 'idx': bool}}` mapping into EventParams."""
    if not isinstance(params, Mapping):
        raise _fail("event params must be a mapping", "params_type")
    out: List[EventParam] = []
    for pname, spec in params.items():
        if not isinstance(pname, str) or not _KEY_RE.match(pname):
            raise _fail("event param name must be an identifier", "param_name", param=str(pname))
        if not isinstance(spec, Mapping) or "type" not in spec:
            raise _fail(f"param '{pname}' must be a mapping with a 'type'", "param_spec", param=pname)
        unknown = set(spec) - _SPEC_KEYS
        if unknown:
            raise _fail(
                f"param '{pname}' has unknown keys",
                "param_spec",
                param=pname,
                keys=sorted(str(k) for k in unknown),
            )
        idx = spec.get("idx", False)
        if not isinstance(idx, bool):
            raise _fail(f"param '{pname}' idx must be bool", "param_idx", param=pname)
        out.append(EventParam(name=pname, types=_check_types(pname, spec["type"]), indexed=idx))

    indexed = sum(1 for p in out if p.indexed)
    if indexed > max_indexed:
        raise _fail(
            f"too many indexed params: {indexed} > {max_indexed}",
            "indexed_count",
            indexed=indexed,
            max=max_indexed,
        )
    return tuple(out)


# ----------------------------- LogEvent ----------------------------- #


class LogEvent:
    """
    A declared event. Calling it with a mapping emits one record:

        Transfer = LogEvent('Transfer', {'to': {'type': str, 'idx': True},
                                         'amount': {'type': int}})
        Transfer({'to': 'bob', 'amount': 10})
    """

    __slots__ = ("_contract", "_event", "_params", "_ctx", "_env", "_sink", "_cfg")

    def __init__(
        self,
        contract: str,
        event: Any,
        params: Any,
        *,
        ctx: ContextView,
        env: BlockEnv,
        sink: EventSink,
        config: Optional[VMConfig] = None,
    ) -> None:
        self._cfg = config or load_config()
        self._contract = contract
        self._event = _check_event_name(event)
        self._params = parse_schema(params, max_indexed=self._cfg.max_indexed_params)
        self._ctx = ctx
        self._env = env
        self._sink = sink

    @property
    def event(self) -> str:
        return self._event

    def signature(self) -> Dict[str, List[str]]:
        return {p.name: p.type_names() for p in self._params}

    def __call__(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            raise _fail("event data must be a mapping", "data_type", event=self._event)

        declared = {p.name for p in self._params}
        supplied = set(data.keys())
        missing = sorted(declared - supplied)
        extra = sorted(str(k) for k in supplied - declared)
        if missing or extra:
            raise _fail(
                f"event '{self._event}' params mismatch",
                "params_mismatch",
                event=self._event,
                missing=missing,
                unexpected=extra,
            )

        indexed: Dict[str, Any] = {}
        payload: Dict[str, Any] = {}
        limit = self._cfg.max_event_value_bytes
        for p in self._params:
            try:
                value = _snapshot(data[p.name])
            except TypeError as e:
                raise _fail(
                    f"param '{p.name}' of '{self._event}' is not plain data",
                    "value_type",
                    event=self._event,
                    param=p.name,
                    py_type=str(e),
                ) from None
            if not p.accepts(value):
                raise _fail(
                    f"param '{p.name}' of '{self._event}' expects {'/'.join(p.type_names())}",
                    "value_type",
                    event=self._event,
                    param=p.name,
                    py_type=type(value).__name__,
                )
            size = _serialized_size(value)
            if size > limit:
                raise _fail(
                    f"param '{p.name}' of '{self._event}' is too large",
                    "value_size",
                    event=self._event,
                    param=p.name,
                    size=size,
                    max=limit,
                )
            (indexed if p.indexed else payload)[p.name] = value

        record = EventRecord(
            contract=self._contract,
            event=self._event,
            signer=self._ctx.signer,
            caller=self._ctx.caller,
            indexed=indexed,
            data=payload,
            timestamp=self._env.now,
            block_num=self._env.block_num,
            sequence=self._sink.next_sequence,
        )
        self._sink.append(record)
        log.debug("events: %s.%s seq=%d", self._contract, self._event, record.sequence)

    def __repr__(self) -> str:
        return f"LogEvent({self._contract}.{self._event})"


def bind_event_factory(
    contract: str,
    *,
    ctx: ContextView,
    env: BlockEnv,
    sink: EventSink,
    config: Optional[VMConfig] = None,
):
    """Contract-visible `LogEvent` with contract, context and sink bound."""

    def log_event(event: Any, params: Any = None, *, name: Optional[str] = None) -> LogEvent:
        return LogEvent(contract, event, params if params is not None else {}, ctx=ctx, env=env, sink=sink, config=config)

    return log_event


__all__ = [
    "EventParam",
    "EventRecord",
    "EventSink",
    "LogEvent",
    "parse_schema",
    "bind_event_factory",
    "EVENT_TYPES",
    "MAX_EVENT_NAME_BYTES",
]
