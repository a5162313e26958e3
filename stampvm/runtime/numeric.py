"""
stampvm.runtime.numeric — exact decimal arithmetic for contracts.

Contracts never see binary floating point. The compiler rewrites every float
literal into `decimal('<literal>')` and routes `/`, `**`, `*` and `<<` through
the helpers below, so `int / int` also lands here.

Rules
-----
- Fixed context: DECIMAL_PRECISION significant digits, traps on invalid
  operation, division by zero and overflow.
- `+` and `-` are exact; a result that would need rounding is a fault.
- `*` and `/` are quantized to DECIMAL_PLACES fractional digits with
  ROUND_FLOOR.
- Division by zero, invalid string input, NaN/Infinity and integer results
  of `*`, `<<` or `**` wider than MAX_INT_BITS raise `ArithmeticFault`.
- Sequence repetition (`[0] * n`, `"ab" * n`) is capped at MAX_REPEAT_ITEMS
  elements and raises `ResourceLimitError` beyond it.
- Host-supplied Python floats are coerced through their shortest `repr`, never
  through the binary value.

Public API
----------
ExactDecimal(value)
make_decimal(value) -> ExactDecimal           # float-literal helper
decimal_value(x) -> decimal.Decimal           # host-side unwrap
exact_div(a, b)                               # `/`
exact_pow(a, b)                               # `**`
checked_mul(a, b)                             # `*`
checked_lshift(a, b)                          # `<<`
bounded_pow(base, exp, mod=None)              # the contract-visible `pow`
coerce_argument(value)                        # floats → ExactDecimal, recursive
"""

from __future__ import annotations

import decimal
from decimal import Decimal
from typing import Any, Callable, Optional

from ..errors import ArithmeticFault, ResourceLimitError

# Part of the arithmetic semantics, so fixed rather than configurable.
DECIMAL_PRECISION = 96
DECIMAL_PLACES = 30
MAX_INT_BITS = 4096
MAX_REPEAT_ITEMS = 65_536

_CONTEXT = decimal.Context(
    prec=DECIMAL_PRECISION,
    rounding=decimal.ROUND_FLOOR,
    traps=[decimal.InvalidOperation, decimal.DivisionByZero, decimal.Overflow],
)
# Addition/subtraction must not round.
_EXACT_CONTEXT = decimal.Context(
    prec=DECIMAL_PRECISION,
    rounding=decimal.ROUND_FLOOR,
    traps=[
        decimal.InvalidOperation,
        decimal.DivisionByZero,
        decimal.Overflow,
        decimal.Inexact,
    ],
)
_QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)


def _guard(fn: Callable[..., Decimal], *args: Any) -> Decimal:
    try:
        return fn(*args)
    except (decimal.DecimalException, ZeroDivisionError) as e:
        raise ArithmeticFault(
            f"decimal operation failed: {type(e).__name__}",
            context={"op": getattr(fn, "__name__", "op")},
        ) from None


def _quantize(d: Decimal) -> Decimal:
    return _guard(lambda v: v.quantize(_QUANTUM, rounding=decimal.ROUND_FLOOR, context=_CONTEXT), d)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, ExactDecimal):
        return value._value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return _parse(repr(value))
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ArithmeticFault("decimal value must be finite", context={"value": str(value)})
        return value
    if isinstance(value, str):
        return _parse(value)
    raise ArithmeticFault(
        f"cannot convert {type(value).__name__} to decimal",
        context={"type": type(value).__name__},
    )


def _parse(text: str) -> Decimal:
    try:
        d = Decimal(text.strip())
    except decimal.InvalidOperation:
        raise ArithmeticFault("invalid decimal literal", context={"value": text[:64]}) from None
    if not d.is_finite():
        raise ArithmeticFault("decimal value must be finite", context={"value": text[:64]})
    return d


def _is_operand(value: Any) -> bool:
    return isinstance(value, (ExactDecimal, int, float, Decimal))


class ExactDecimal:
    """Immutable decimal number under the sandbox's fixed context."""

    __slots__ = ("_value",)

    def __init__(self, value: Any = 0) -> None:
        object.__setattr__(self, "_value", _to_decimal(value))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ExactDecimal is immutable")

    # --- conversions ---------------------------------------------------------

    def __str__(self) -> str:
        d = self._value.normalize(_CONTEXT)
        if d == 0:
            return "0"
        return f"{d:f}"

    def __repr__(self) -> str:
        return f"decimal('{self}')"

    def __int__(self) -> int:
        return int(self._value)

    def __float__(self) -> float:
        # Host-side convenience only; contracts cannot reach float().
        return float(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)

    def __hash__(self) -> int:
        return hash(self._value)

    # --- arithmetic ----------------------------------------------------------

    def __add__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return _wrap(_guard(_EXACT_CONTEXT.add, self._value, _to_decimal(other)))

    def __radd__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return _wrap(_guard(_EXACT_CONTEXT.add, _to_decimal(other), self._value))

    def __sub__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return _wrap(_guard(_EXACT_CONTEXT.subtract, self._value, _to_decimal(other)))

    def __rsub__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return _wrap(_guard(_EXACT_CONTEXT.subtract, _to_decimal(other), self._value))

    def __mul__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return _wrap(_quantize(_guard(_CONTEXT.multiply, self._value, _to_decimal(other))))

    __rmul__ = __mul__

    def __truediv__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return _wrap(_quantize(_guard(_CONTEXT.divide, self._value, _to_decimal(other))))

    def __rtruediv__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return _wrap(_quantize(_guard(_CONTEXT.divide, _to_decimal(other), self._value)))

    def __floordiv__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        q = _guard(_CONTEXT.divide, self._value, _to_decimal(other))
        return _wrap(_guard(lambda v: v.to_integral_value(rounding=decimal.ROUND_FLOOR, context=_CONTEXT), q))

    def __rfloordiv__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return ExactDecimal(other) // self

    def __mod__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        # Python semantics: result takes the sign of the divisor.
        return self - (self // other) * other

    def __rmod__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return ExactDecimal(other) % self

    def __pow__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return exact_pow(self, other)

    def __rpow__(self, other: Any) -> "ExactDecimal":
        if not _is_operand(other):
            return NotImplemented
        return exact_pow(other, self)

    def __neg__(self) -> "ExactDecimal":
        return _wrap(self._value.copy_negate())

    def __pos__(self) -> "ExactDecimal":
        return self

    def __abs__(self) -> "ExactDecimal":
        return _wrap(self._value.copy_abs())

    def __round__(self, ndigits: Optional[int] = None) -> Any:
        if ndigits is None:
            return int(_guard(lambda v: v.to_integral_value(rounding=decimal.ROUND_HALF_EVEN, context=_CONTEXT), self._value))
        quantum = Decimal(1).scaleb(-int(ndigits))
        return _wrap(_guard(lambda v: v.quantize(quantum, rounding=decimal.ROUND_HALF_EVEN, context=_CONTEXT), self._value))

    # --- comparisons ---------------------------------------------------------

    def _cmp_value(self, other: Any) -> Optional[Decimal]:
        if isinstance(other, bool) or not _is_operand(other):
            return None
        return _to_decimal(other)

    def __eq__(self, other: Any) -> bool:
        v = self._cmp_value(other)
        if v is None:
            return NotImplemented
        return self._value == v

    def __ne__(self, other: Any) -> bool:
        v = self._cmp_value(other)
        if v is None:
            return NotImplemented
        return self._value != v

    def __lt__(self, other: Any) -> bool:
        v = self._cmp_value(other)
        if v is None:
            return NotImplemented
        return self._value < v

    def __le__(self, other: Any) -> bool:
        v = self._cmp_value(other)
        if v is None:
            return NotImplemented
        return self._value <= v

    def __gt__(self, other: Any) -> bool:
        v = self._cmp_value(other)
        if v is None:
            return NotImplemented
        return self._value > v

    def __ge__(self, other: Any) -> bool:
        v = self._cmp_value(other)
        if v is None:
            return NotImplemented
        return self._value >= v

    # --- pickling/copy -------------------------------------------------------

    def __reduce__(self):
        return (ExactDecimal, (str(self),))

    def __copy__(self) -> "ExactDecimal":
        return self

    def __deepcopy__(self, memo: Any) -> "ExactDecimal":
        return self


def _wrap(d: Decimal) -> ExactDecimal:
    out = ExactDecimal.__new__(ExactDecimal)
    object.__setattr__(out, "_value", d)
    return out


# ----------------------------- helpers ----------------------------- #


def make_decimal(value: Any = 0) -> ExactDecimal:
    """Literal helper target: decimal('1.5'), decimal(3), decimal(x)."""
    return ExactDecimal(value)


def decimal_value(value: ExactDecimal) -> Decimal:
    """Host-side access to the underlying decimal.Decimal."""
    return value._value


def _check_int_size(value: int) -> int:
    if value.bit_length() > MAX_INT_BITS:
        raise ArithmeticFault(
            "integer result too large",
            context={"bits": value.bit_length(), "max_bits": MAX_INT_BITS},
        )
    return value


def exact_div(a: Any, b: Any) -> Any:
    """`a / b` with exact-decimal semantics for every numeric pairing."""
    if _is_operand(a) and _is_operand(b):
        return ExactDecimal(a) / ExactDecimal(b)
    # Non-numeric operands keep their own `/` (and usually raise TypeError).
    return a / b


def exact_pow(a: Any, b: Any) -> Any:
    """`a ** b`; integer results are size-capped, decimals take integer exponents."""
    if isinstance(a, int) and isinstance(b, int):
        if b < 0:
            if a == 0:
                raise ArithmeticFault("zero cannot be raised to a negative power")
            return ExactDecimal(1) / ExactDecimal(exact_pow(a, -b))
        if a not in (0, 1, -1) and (abs(a).bit_length() - 1) * b > MAX_INT_BITS:
            raise ArithmeticFault(
                "integer result too large",
                context={"max_bits": MAX_INT_BITS},
            )
        return _check_int_size(a ** b)

    if _is_operand(a) and _is_operand(b):
        base = _to_decimal(a)
        exp = _to_decimal(b)
        if exp != exp.to_integral_value():
            raise ArithmeticFault("decimal powers require an integer exponent")
        n = int(exp)
        if abs(n) > MAX_INT_BITS:
            raise ArithmeticFault("exponent too large", context={"exp": n})
        if n < 0:
            return ExactDecimal(1) / exact_pow(_wrap(base), -n)
        return _wrap(_quantize(_guard(_CONTEXT.power, base, Decimal(n))))

    return a ** b


def _is_int(value: Any) -> bool:
    return isinstance(value, int)


def _repeat_count(seq: Any, n: int) -> int:
    return len(seq) * max(n, 0)


def checked_mul(a: Any, b: Any) -> Any:
    """`a * b`; integer products are size-capped, sequence repetition is bounded."""
    if _is_int(a) and _is_int(b):
        if a and b and a.bit_length() + b.bit_length() - 1 > MAX_INT_BITS:
            raise ArithmeticFault(
                "integer result too large",
                context={"max_bits": MAX_INT_BITS},
            )
        return _check_int_size(a * b)
    if isinstance(a, (str, bytes, list, tuple)) and _is_int(b):
        count = _repeat_count(a, b)
    elif isinstance(b, (str, bytes, list, tuple)) and _is_int(a):
        count = _repeat_count(b, a)
    else:
        return a * b
    if count > MAX_REPEAT_ITEMS:
        raise ResourceLimitError(
            "sequence repetition too large",
            context={"items": count, "max_items": MAX_REPEAT_ITEMS},
        )
    return a * b


def checked_lshift(a: Any, b: Any) -> Any:
    """`a << b` on integers with the same width cap as `*` and `**`."""
    if _is_int(a) and _is_int(b):
        if b < 0:
            raise ArithmeticFault("negative shift count", context={"shift": b})
        if a and a.bit_length() + b > MAX_INT_BITS:
            raise ArithmeticFault(
                "integer result too large",
                context={"max_bits": MAX_INT_BITS},
            )
    return a << b


def bounded_pow(base: Any, exp: Any, mod: Any = None) -> Any:
    """Contract-visible `pow`: modular form is native, the rest routes to exact_pow."""
    if mod is None:
        return exact_pow(base, exp)
    if not all(isinstance(x, int) for x in (base, exp, mod)):
        raise ArithmeticFault("three-argument pow requires integers")
    if mod == 0:
        raise ArithmeticFault("pow() modulus cannot be zero")
    return pow(base, exp, mod)


def coerce_argument(value: Any) -> Any:
    """Host boundary: replace floats/Decimals with ExactDecimal, recursively."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (float, Decimal)):
        return ExactDecimal(value)
    if isinstance(value, list):
        return [coerce_argument(v) for v in value]
    if isinstance(value, tuple):
        return tuple(coerce_argument(v) for v in value)
    if isinstance(value, dict):
        return {k: coerce_argument(v) for k, v in value.items()}
    return value


__all__ = [
    "ExactDecimal",
    "make_decimal",
    "decimal_value",
    "exact_div",
    "exact_pow",
    "checked_mul",
    "checked_lshift",
    "bounded_pow",
    "coerce_argument",
    "DECIMAL_PRECISION",
    "DECIMAL_PLACES",
    "MAX_INT_BITS",
    "MAX_REPEAT_ITEMS",
]
