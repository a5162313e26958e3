from __future__ import annotations

import pytest

from stampvm.errors import ArgumentError
from stampvm.runtime.context import BlockEnv, CallFrame, ContextError, ContextView, to_hex
from stampvm.runtime.numeric import ExactDecimal
from stampvm.runtime.random_api import DRBG, from_invocation

# --- helpers -----------------------------------------------------------------


def _rng(**over):
    args = dict(
        block_hash="0x" + "11" * 32,
        block_num=7,
        signer="alice",
        entry_contract="lotto",
        entry_function="draw",
    )
    args.update(over)
    return from_invocation(**args)


# --- PRNG ----------------------------------------------------------------------


def test_same_facts_same_stream():
    a, b = _rng(), _rng()
    assert [a.getrandbits(64) for _ in range(8)] == [b.getrandbits(64) for _ in range(8)]


@pytest.mark.parametrize(
    "field,value",
    [
        ("block_hash", "0x" + "22" * 32),
        ("block_num", 8),
        ("signer", "bob"),
        ("entry_contract", "other"),
        ("entry_function", "pick"),
    ],
)
def test_every_fact_feeds_the_seed(field, value):
    assert _rng().getrandbits(128) != _rng(**{field: value}).getrandbits(128)


def test_reseed_changes_the_stream():
    a, b = _rng(), _rng()
    b.seed("round-2")
    assert a.getrandbits(64) != b.getrandbits(64)
    c = _rng()
    c.seed(None)
    assert c.getrandbits(64) == _rng().getrandbits(64)


def test_drbg_reads_are_exact_and_chunk_independent():
    one = DRBG.new(b"seed")
    two = DRBG.new(b"seed")
    assert one.read(100) == two.read(40) + two.read(60)
    assert len(DRBG.new(b"x").read(0)) == 0


def test_ranges():
    r = _rng()
    for _ in range(200):
        assert 1 <= r.randint(1, 6) <= 6
    assert r.randint(5, 5) == 5
    value = r.random()
    assert isinstance(value, ExactDecimal)
    assert 0 <= value < 1
    assert r.getrandbits(0) == 0


def test_choice_and_shuffle():
    r = _rng()
    items = list(range(20))
    assert r.choice(items) in items
    shuffled = list(items)
    r.shuffle(shuffled)
    assert sorted(shuffled) == items

    again = list(items)
    _rng().shuffle(again)
    fresh = list(items)
    _rng().shuffle(fresh)
    assert again == fresh


@pytest.mark.parametrize(
    "call",
    [
        lambda r: r.randint(6, 1),
        lambda r: r.randint(1.5, 2),
        lambda r: r.choice([]),
        lambda r: r.choice({1, 2}),
        lambda r: r.shuffle((1, 2)),
        lambda r: r.getrandbits(-1),
        lambda r: r.seed([1]),
    ],
)
def test_invalid_requests(call):
    with pytest.raises(ArgumentError):
        call(_rng())


def test_contract_draws_are_reproducible(executor, deploy):
    deploy(
        "lotto",
        """
        @export
        def draw(n: int):
            return [random.randint(1, 49) for i in range(n)]
        """,
    )
    env = {"block_hash": "0x" + "ab" * 32, "block_num": 3}
    first = executor.execute("lotto", "draw", {"n": 6}, signer="alice", environment=env)
    second = executor.execute("lotto", "draw", {"n": 6}, signer="alice", environment=env)
    other = executor.execute("lotto", "draw", {"n": 6}, signer="bob", environment=env)
    assert first.ok
    assert first.result == second.result
    assert first.result != other.result


# --- context -------------------------------------------------------------------


def test_block_env_validation():
    env = BlockEnv(now=5, block_num=1, block_hash=b"\x01" * 32)
    assert env.block_hash == "0x" + "01" * 32
    assert BlockEnv.from_dict(env.to_dict()) == env
    with pytest.raises(ContextError):
        BlockEnv(now=-1)
    with pytest.raises(ContextError):
        BlockEnv(block_num=True)
    with pytest.raises(ContextError):
        BlockEnv(block_hash="0xabc")
    with pytest.raises(ContextError):
        to_hex("zz")


def test_context_view_tracks_frames():
    frames = []
    ctx = ContextView(frames, signer="alice", submission_name="token")
    with pytest.raises(ArgumentError):
        ctx.caller
    frames.append(CallFrame("proxy", "relay", "alice"))
    frames.append(CallFrame("echo", "whoami", "proxy"))
    assert (ctx.caller, ctx.this, ctx.signer) == ("proxy", "echo", "alice")
    assert ctx.entry == ("proxy", "relay")
    assert ctx.submission_name == "token"
    with pytest.raises(AttributeError):
        ctx.signer = "mallory"
    with pytest.raises(AttributeError):
        ctx.extra = 1
