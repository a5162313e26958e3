from __future__ import annotations

import pytest

from stampvm.runtime.interface import Func, Var, check_arguments, missing_requirements
from stampvm.compiler.contract import compile_contract
from stampvm.errors import ArgumentError, ResolutionError
from stampvm.runtime.numeric import ExactDecimal
from stampvm.tests.conftest import TOKEN_SRC, dedent

ECHO_SRC = """
@export
def whoami():
    return [ctx.caller, ctx.signer, ctx.this]
"""

PROXY_SRC = """
calls = Variable(default_value=0)

@export
def relay():
    calls.set(calls.get() + 1)
    return contracts.load('echo').whoami()

@export
def pay(amount: int, to: str):
    contracts.load('token').transfer(amount=amount, to=to)

@export
def has_token_shape():
    token = contracts.load('token')
    return contracts.enforce_interface(token, [
        Func('transfer', args=('amount', 'to')),
        Func('balance_of', args=('account',)),
        Var('balances', type=Hash),
        Var('owner', type=Variable),
    ])

@export
def wrong_shape():
    return contracts.enforce_interface('token', [Func('transfer', args=('to', 'amount'))])

@export
def demand_shape():
    contracts.require_interface('token', [Func('mint', args=('amount',)), Var('balances', type=Hash)])
    return True

@export
def poke_private():
    return contracts.load('token').seed(amount=1)

@export
def positional():
    return contracts.load('token').balance_of('alice')

@export
def lookup(name: str):
    return contracts.exists(name)

@export
def call_missing():
    return contracts.load('nowhere').anything()
"""

READER_SRC = """
theirs = ForeignHash(foreign_contract='token', foreign_name='balances', default_value=0)
their_owner = ForeignVariable(foreign_contract='token', foreign_name='owner')

@export
def peek(account: str):
    return [theirs[account], their_owner.get()]

@export
def steal():
    theirs['alice'] = 0
"""


@pytest.fixture()
def world(deploy, token):
    deploy("echo", ECHO_SRC)
    deploy("proxy", PROXY_SRC)
    deploy("reader", READER_SRC)


# --- call frames -----------------------------------------------------------------


def test_caller_changes_per_hop_and_signer_never_does(executor, world):
    direct = executor.execute("echo", "whoami", signer="alice")
    assert direct.result == ["alice", "alice", "echo"]

    hop = executor.execute("proxy", "relay", signer="alice")
    assert hop.ok, hop.error
    assert hop.result == ["proxy", "alice", "echo"]
    assert hop.writes == {"proxy.calls": 1}


def test_cross_contract_transfer_uses_the_calling_contract(executor, world, store):
    before = store.snapshot()
    res = executor.execute("proxy", "pay", {"amount": 5, "to": "bob"}, signer="alice")
    # proxy holds no tokens; the callee sees ctx.caller == 'proxy'
    assert res.status == "ASSERTION"
    assert store.snapshot() == before

    fund = executor.execute("token", "transfer", {"amount": 20, "to": "proxy"}, signer="alice")
    assert fund.ok
    res = executor.execute("proxy", "pay", {"amount": 5, "to": "bob"}, signer="alice")
    assert res.ok, res.error
    (event,) = res.events
    assert event.contract == "token"
    assert event.caller == "proxy"
    assert event.signer == "alice"
    assert event.indexed == {"sender": "proxy", "to": "bob"}
    assert executor.read_state("token", "balances", "proxy") == 15


def test_failure_in_callee_rolls_back_caller_writes(executor, world, store):
    before = store.snapshot()
    res = executor.execute("proxy", "pay", {"amount": 10**9, "to": "bob"}, signer="alice")
    assert res.status == "ASSERTION"
    assert res.error["context"]["contract"] == "token"
    assert store.snapshot() == before


# --- interfaces -------------------------------------------------------------------


def test_enforce_interface(executor, world):
    assert executor.execute("proxy", "has_token_shape", signer="alice").result is True
    assert executor.execute("proxy", "wrong_shape", signer="alice").result is False


def test_require_interface_names_what_is_missing(executor, world):
    res = executor.execute("proxy", "demand_shape", signer="alice")
    assert res.error_code == "interface_mismatch"
    assert res.error["context"]["missing"] == ["mint"]


def test_only_exported_functions_are_reachable(executor, world):
    assert executor.execute("proxy", "poke_private", signer="alice").error_code == "resolution_error"
    assert executor.execute("proxy", "call_missing", signer="alice").error_code == "resolution_error"


def test_cross_contract_calls_are_keyword_only(executor, world):
    assert executor.execute("proxy", "positional", signer="alice").error_code == "invalid_argument"


def test_exists(executor, world):
    assert executor.execute("proxy", "lookup", {"name": "token"}, signer="a").result is True
    assert executor.execute("proxy", "lookup", {"name": "nowhere"}, signer="a").result is False
    assert executor.execute("proxy", "lookup", {"name": "Bad Name"}, signer="a").result is False


# --- foreign state ----------------------------------------------------------------


def test_foreign_reads(executor, world):
    res = executor.execute("reader", "peek", {"account": "alice"}, signer="bob")
    assert res.result == [100, "alice"]
    res = executor.execute("reader", "peek", {"account": "zed"}, signer="bob")
    assert res.result == [0, "alice"]


def test_foreign_write_is_a_reference_error(executor, world, store):
    before = store.snapshot()
    res = executor.execute("reader", "steal", signer="mallory")
    assert res.status == "ERROR"
    assert res.error_code == "reference_error"
    assert res.writes == {}
    assert store.snapshot() == before


# --- host-side interface helpers ---------------------------------------------------


def test_markers_against_compiled_contract():
    compiled = compile_contract("token", dedent(TOKEN_SRC))
    assert missing_requirements(compiled, [Func("transfer", args=["amount", "to"])]) == []
    assert missing_requirements(compiled, [Func("transfer"), Var("supply"), Var("balances", type="Variable")]) == [
        "transfer",
        "balances",
    ]
    with pytest.raises(ResolutionError):
        missing_requirements(compiled, Func("transfer"))
    with pytest.raises(ResolutionError):
        missing_requirements(compiled, ["transfer"])
    with pytest.raises(ResolutionError):
        Var("x", type=int)


def test_check_arguments_coerces_by_annotation():
    src = dedent(
        """
        @export
        def f(a: decimal, b: tuple, c: Any, d: bytes):
            return a
        """
    )
    spec = compile_contract("args", src).exported_functions["f"]
    out = check_arguments(spec, {"a": 2, "b": [1, 2], "c": object, "d": b"x"}, contract="args")
    assert out["a"] == ExactDecimal(2) and isinstance(out["a"], ExactDecimal)
    assert out["b"] == (1, 2)
    with pytest.raises(ArgumentError):
        check_arguments(spec, {"a": "2", "b": (), "c": 1, "d": b""}, contract="args")
    with pytest.raises(ArgumentError):
        check_arguments(spec, [("a", 1)], contract="args")
