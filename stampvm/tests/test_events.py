from __future__ import annotations

from typing import Any

import pytest

from stampvm.errors import EventSchemaError
from stampvm.runtime.context import BlockEnv, CallFrame, ContextView
from stampvm.runtime.events_api import EventSink, LogEvent, bind_event_factory, parse_schema
from stampvm.runtime.numeric import ExactDecimal

# --- helpers -----------------------------------------------------------------


def _env():
    frames = [CallFrame(contract="token", function="transfer", caller="alice")]
    ctx = ContextView(frames, signer="alice")
    env = BlockEnv(now=1_700_000_000, block_num=42)
    return ctx, env, EventSink()


def _event(name="Transfer", params=None):
    ctx, env, sink = _env()
    params = params if params is not None else {
        "to": {"type": str, "idx": True},
        "amount": {"type": int},
    }
    return LogEvent("token", name, params, ctx=ctx, env=env, sink=sink), sink


def _where(ei) -> str:
    return ei.value.context["where"]


# --- schema --------------------------------------------------------------------


def test_schema_parses_types_and_indexing():
    params = parse_schema(
        {"to": {"type": str, "idx": True}, "amount": {"type": (int, ExactDecimal)}},
        max_indexed=3,
    )
    assert [(p.name, p.indexed) for p in params] == [("to", True), ("amount", False)]
    assert params[1].type_names() == ["int", "decimal"]


def test_four_indexed_params_are_rejected():
    spec = {n: {"type": int, "idx": True} for n in "abcd"}
    with pytest.raises(EventSchemaError) as ei:
        parse_schema(spec, max_indexed=3)
    assert ei.value.code == "event_invalid"
    assert _where(ei) == "indexed_count"


@pytest.mark.parametrize(
    "params,where",
    [
        ([("a", int)], "params_type"),
        ({"a": int}, "param_spec"),
        ({"a": {"idx": True}}, "param_spec"),
        ({"a": {"type": int, "size": 3}}, "param_spec"),
        ({"a": {"type": set}}, "param_type"),
        ({"a": {"type": ()}}, "param_type"),
        ({"a": {"type": int, "idx": 1}}, "param_idx"),
        ({"1a": {"type": int}}, "param_name"),
    ],
)
def test_malformed_schemas(params, where):
    with pytest.raises(EventSchemaError) as ei:
        parse_schema(params, max_indexed=3)
    assert _where(ei) == where


@pytest.mark.parametrize("name,where", [("", "name_empty"), (5, "name_type"), ("has space", "name_grammar"), ("x" * 65, "name_length")])
def test_event_names(name, where):
    with pytest.raises(EventSchemaError) as ei:
        _event(name=name)
    assert _where(ei) == where


# --- emission ------------------------------------------------------------------


def test_emission_records_context():
    event, sink = _event()
    event({"to": "bob", "amount": 5})
    event({"to": "carol", "amount": 6})
    first, second = sink.records
    assert first.contract == "token"
    assert first.event == "Transfer"
    assert first.indexed == {"to": "bob"}
    assert first.data == {"amount": 5}
    assert (first.signer, first.caller) == ("alice", "alice")
    assert (first.timestamp, first.block_num) == (1_700_000_000, 42)
    assert (first.sequence, second.sequence) == (0, 1)


@pytest.mark.parametrize(
    "data,where",
    [
        ({"to": "bob"}, "params_mismatch"),
        ({"to": "bob", "amount": 1, "memo": "x"}, "params_mismatch"),
        ({"to": "bob", "amount": "5"}, "value_type"),
        ({"to": "bob", "amount": True}, "value_type"),
        ({"to": 7, "amount": 5}, "value_type"),
        ({"to": "b" * 1025, "amount": 5}, "value_size"),
        (["bob", 5], "data_type"),
    ],
)
def test_invalid_emissions(data, where):
    event, sink = _event()
    with pytest.raises(EventSchemaError) as ei:
        event(data)
    assert _where(ei) == where
    assert sink.records == []


def test_value_at_size_limit_is_accepted():
    event, sink = _event()
    event({"to": "b" * 1024, "amount": 5})
    assert len(sink.records) == 1


def test_decimal_and_any_params():
    event, sink = _event(
        "Priced",
        {"price": {"type": ExactDecimal}, "legacy": {"type": float}, "extra": {"type": Any}},
    )
    event({"price": ExactDecimal("1.5"), "legacy": ExactDecimal(2), "extra": [1, 2]})
    record = sink.records[0].to_dict()
    assert record["data"] == {"price": "1.5", "legacy": "2", "extra": [1, 2]}
    with pytest.raises(EventSchemaError):
        event({"price": 1, "legacy": ExactDecimal(2), "extra": None})


def test_bound_factory_ignores_compiler_name():
    ctx, env, sink = _env()
    factory = bind_event_factory("token", ctx=ctx, env=env, sink=sink)
    event = factory("Ping", {"n": {"type": int}}, name="Ping")
    event({"n": 1})
    assert event.event == "Ping"
    assert event.signature() == {"n": ["int"]}
    assert sink.drain()[0].data == {"n": 1}
    assert sink.records == []


def test_emitted_values_are_snapshots():
    event, sink = _event("Batch", {"items": {"type": list}, "meta": {"type": dict}})
    items = [1, [2]]
    meta = {"tags": ["a"]}
    event({"items": items, "meta": meta})
    items.append("x" * 1000)
    items[1].append(3)
    meta["tags"].append("b")
    record = sink.records[0]
    assert record.data == {"items": [1, [2]], "meta": {"tags": ["a"]}}
    assert record.data["items"] is not items


@pytest.mark.parametrize("value", [object(), bytearray(b"x"), {1, object()}])
def test_non_plain_values_are_rejected(value):
    event, sink = _event("Loose", {"extra": {"type": Any}})
    with pytest.raises(EventSchemaError) as ei:
        event({"extra": value})
    assert _where(ei) == "value_type"
    assert sink.records == []


def test_cyclic_values_are_rejected():
    event, sink = _event("Loose", {"extra": {"type": Any}})
    loop = []
    loop.append(loop)
    with pytest.raises(EventSchemaError) as ei:
        event({"extra": loop})
    assert _where(ei) == "value_type"
