# -*- coding: utf-8 -*-
"""
Property tests for the stampvm runtime primitives.

1) storage keys     — layout, dimensionality and byte caps
2) ORM Hash         — unset reads return the default; writes are observed
                      through the buffer and never touch the store early
3) stamp metering   — the ledger never exceeds its limit; exhaustion is
                      raised exactly when a charge reaches the limit
4) exact decimals   — addition/subtraction and negation are exact, products
                      floor, integer growth is width-capped
5) executor         — identical inputs give identical results
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, List

import pytest
from hypothesis import settings

from stampvm.errors import ArithmeticFault, ResourceLimitError, StampsExhausted
from stampvm.runtime.executor import Executor
from stampvm.runtime.journal import WriteBuffer
from stampvm.runtime.metering import StampMeter
from stampvm.runtime.numeric import MAX_INT_BITS, ExactDecimal, checked_lshift, checked_mul, decimal_value
from stampvm.runtime.orm import Hash, StateDriver
from stampvm.runtime.storage_api import MemoryStore, make_key

from . import DECIMALS, given, key_parts, st, storable

MAX_DIMS = 16
MAX_KEY_BYTES = 1024


def _render(part: Any) -> str:
    if isinstance(part, bool):
        return "true" if part else "false"
    return str(part)


# -----------------------------------------------------------------------------
# 1) storage keys
# -----------------------------------------------------------------------------


@given(key_parts(min_size=1, max_size=MAX_DIMS + 4))
def test_key_layout_and_caps(parts: List[Any]):
    expected = "token.balances:" + ":".join(_render(p) for p in parts)
    too_many = len(parts) > MAX_DIMS
    too_long = len(expected.encode("utf-8")) > MAX_KEY_BYTES
    if too_many or too_long:
        with pytest.raises(ResourceLimitError):
            make_key("token", "balances", *parts)
    else:
        assert make_key("token", "balances", *parts) == expected


# -----------------------------------------------------------------------------
# 2) ORM Hash
# -----------------------------------------------------------------------------


def _hash(default: Any):
    store = MemoryStore()
    buf = WriteBuffer(store)
    driver = StateDriver(buf, StampMeter(limit=10**12))
    return Hash("c", "h", driver, default_value=default), buf, store


@given(key_parts(min_size=1, max_size=4), storable())
def test_unset_reads_return_default(parts: List[Any], default: Any):
    h, buf, _ = _hash(default)
    assert h[tuple(parts)] == default
    assert len(buf) == 0


@given(key_parts(min_size=1, max_size=4), storable())
def test_writes_are_read_back_and_staged(parts: List[Any], value: Any):
    h, buf, store = _hash(None)
    h[tuple(parts)] = value
    assert h[tuple(parts)] == value
    assert len(store) == 0
    buf.commit()
    assert len(store) == 1


# -----------------------------------------------------------------------------
# 3) stamp metering
# -----------------------------------------------------------------------------


@given(st.integers(min_value=0, max_value=500), st.lists(st.integers(min_value=0, max_value=50), max_size=40))
def test_meter_never_exceeds_limit(limit: int, charges: List[int]):
    m = StampMeter(limit=limit)
    total = 0
    for amount in charges:
        if total + amount >= limit:
            with pytest.raises(StampsExhausted):
                m.charge(amount)
            assert m.used == limit
            break
        m.charge(amount)
        total += amount
        assert m.used == total
    assert m.used <= limit


# -----------------------------------------------------------------------------
# 4) exact decimals
# -----------------------------------------------------------------------------


@given(DECIMALS, DECIMALS)
def test_addition_is_exact(a: ExactDecimal, b: ExactDecimal):
    assert (a + b) - b == a
    assert decimal_value(a + b) == decimal_value(a) + decimal_value(b)


@given(DECIMALS, DECIMALS)
def test_products_round_toward_negative_infinity(a: ExactDecimal, b: ExactDecimal):
    exact = decimal_value(a) * decimal_value(b)
    got = decimal_value(a * b)
    assert got <= exact
    assert exact - got < Decimal("1e-30")


@given(st.integers(min_value=-(10**60), max_value=10**60), st.integers(min_value=0, max_value=30))
def test_negation_and_abs_never_round(digits: int, scale: int):
    d = ExactDecimal(f"{digits}E-{scale}")
    assert (-d) + d == 0
    assert abs(-d) == abs(d)
    assert decimal_value(abs(d)) == decimal_value(d).copy_abs()


@given(st.integers(min_value=0, max_value=5000), st.integers(min_value=0, max_value=5000))
def test_integer_growth_is_width_capped(bits: int, shift: int):
    x = (1 << bits) | 1
    if bits + 1 + shift > MAX_INT_BITS:
        with pytest.raises(ArithmeticFault):
            checked_lshift(x, shift)
    else:
        assert checked_lshift(x, shift) == x << shift
    try:
        product = checked_mul(x, x)
    except ArithmeticFault:
        assert (x * x).bit_length() > MAX_INT_BITS
    else:
        assert product == x * x
        assert product.bit_length() <= MAX_INT_BITS


@given(DECIMALS, DECIMALS)
def test_ordering_matches_decimal(a: ExactDecimal, b: ExactDecimal):
    assert (a < b) == (decimal_value(a) < decimal_value(b))
    assert (a == b) == (decimal_value(a) == decimal_value(b))


# -----------------------------------------------------------------------------
# 5) executor determinism
# -----------------------------------------------------------------------------

LEDGER_SRC = """
totals = Hash(default_value=0)

@export
def add(who: str, amount: int):
    assert amount >= 0, 'negative'
    totals[who] += amount
    return totals[who]
"""


def _replay(ops):
    ex = Executor(store=MemoryStore())
    out = [ex.deploy("ledger", LEDGER_SRC, signer="root").to_dict()]
    for who, amount in ops:
        out.append(ex.execute("ledger", "add", {"who": who, "amount": amount}, signer=who).to_dict())
    return out


@settings(max_examples=25)
@given(
    st.lists(
        st.tuples(st.sampled_from(["alice", "bob", "carol"]), st.integers(min_value=-5, max_value=1000)),
        max_size=8,
    )
)
def test_replays_are_identical(ops):
    assert _replay(ops) == _replay(ops)
