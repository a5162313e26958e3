"""
stampvm.runtime.random_api — deterministic PRNG exposed to contracts as `random`.

Purpose
-------
Contracts sometimes want cheap pseudo-randomness (lotteries in tests, shuffles
in games). This module derives bytes from invocation facts using SHA3-256 in
counter mode with domain separation. It is **not** a source of unpredictable
randomness: anyone who knows the block hash can reproduce every draw.

Design
------
- Counter-mode DRBG over SHA3-256 with explicit domain tags.
- Seed = block_hash | block_num | signer | entry contract | entry function.
- `random.seed(extra)` re-derives the state with a contract-supplied value.
- Pure, reproducible and side-effect free (no OS randomness).

Contract API
------------
random.seed(extra=None)
random.randint(a, b)      # inclusive, unbiased
random.choice(seq)
random.shuffle(lst)       # in place
random.getrandbits(k)
random.random()           # decimal in [0, 1)
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..errors import ArgumentError
from .numeric import ExactDecimal

_DOMAIN_INIT = b"stampvm/random/init/v1"
_DOMAIN_BLOCK = b"stampvm/random/block/v1"
_DOMAIN_RESEED = b"stampvm/random/reseed/v1"
_MAX_REQUEST = 1 << 16  # bytes per call
_MAX_BITS = 4096


def _sha3(data: bytes, *, domain: bytes) -> bytes:
    return hashlib.sha3_256(domain + b"\x00" + data).digest()


def _ensure_int(x: object, name: str, *, min_: int = 0, max_: Optional[int] = None) -> int:
    if not isinstance(x, int) or isinstance(x, bool):
        raise ArgumentError(f"{name} must be int, got {type(x).__name__}")
    if x < min_:
        raise ArgumentError(f"{name} must be >= {min_} (got {x})")
    if max_ is not None and x > max_:
        raise ArgumentError(f"{name} must be <= {max_} (got {x})")
    return x


def _encode_extra(extra: Any) -> bytes:
    if isinstance(extra, (bytes, bytearray)):
        return b"b:" + bytes(extra)
    if isinstance(extra, bool):
        return b"z:" + (b"1" if extra else b"0")
    if isinstance(extra, (int, str, ExactDecimal)):
        return f"{type(extra).__name__[0]}:{extra}".encode("utf-8")
    raise ArgumentError(f"cannot seed from {type(extra).__name__}")


@dataclass
class DRBG:
    """
    Deterministic PRNG over SHA3-256 in counter mode.

    state   = SHA3-256(_DOMAIN_INIT, seed)
    block_i = SHA3-256(_DOMAIN_BLOCK, state || LE64(counter))
    """

    _state: bytes
    _counter: int = 0
    _buf: bytes = b""
    _pos: int = 0

    @staticmethod
    def new(seed: bytes) -> "DRBG":
        return DRBG(_state=_sha3(bytes(seed), domain=_DOMAIN_INIT))

    def _refill(self) -> None:
        block = _sha3(self._state + self._counter.to_bytes(8, "little"), domain=_DOMAIN_BLOCK)
        self._counter += 1
        self._buf = block
        self._pos = 0

    def read(self, n: int) -> bytes:
        """Return exactly n bytes deterministically."""
        _ensure_int(n, "n", min_=0, max_=_MAX_REQUEST)
        out = bytearray()
        while n > 0:
            if self._pos >= len(self._buf):
                self._refill()
            take = min(n, len(self._buf) - self._pos)
            out += self._buf[self._pos : self._pos + take]
            self._pos += take
            n -= take
        return bytes(out)

    def reseed(self, extra: bytes) -> None:
        self._state = _sha3(self._state + b"|" + extra, domain=_DOMAIN_RESEED)
        self._counter = 0
        self._buf = b""
        self._pos = 0

    def getrandbits(self, k: int) -> int:
        _ensure_int(k, "k", min_=0, max_=_MAX_BITS)
        if k == 0:
            return 0
        nbytes = (k + 7) // 8
        x = int.from_bytes(self.read(nbytes), "little")
        return x >> (nbytes * 8 - k)

    def randbelow(self, n: int) -> int:
        """Unbiased integer in [0, n) by rejection sampling."""
        n = _ensure_int(n, "n", min_=1)
        k = n.bit_length()
        while True:
            x = self.getrandbits(k)
            if x < n:
                return x


class ContractRandom:
    """The contract-visible `random` object."""

    __slots__ = ("_drbg",)

    def __init__(self, drbg: DRBG) -> None:
        self._drbg = drbg

    def seed(self, extra: Any = None) -> None:
        if extra is not None:
            self._drbg.reseed(_encode_extra(extra))

    def getrandbits(self, k: int) -> int:
        return self._drbg.getrandbits(k)

    def randint(self, a: int, b: int) -> int:
        a = _ensure_int(a, "a", min_=-(1 << _MAX_BITS))
        b = _ensure_int(b, "b", min_=a)
        return a + self._drbg.randbelow(b - a + 1)

    def choice(self, seq: Sequence[Any]) -> Any:
        if not isinstance(seq, (list, tuple, str, bytes)) or len(seq) == 0:
            raise ArgumentError("choice() needs a non-empty list, tuple, str or bytes")
        return seq[self._drbg.randbelow(len(seq))]

    def shuffle(self, items: list) -> None:
        if not isinstance(items, list):
            raise ArgumentError("shuffle() needs a list")
        # Fisher-Yates
        for i in range(len(items) - 1, 0, -1):
            j = self._drbg.randbelow(i + 1)
            items[i], items[j] = items[j], items[i]

    def random(self) -> ExactDecimal:
        return ExactDecimal(self._drbg.getrandbits(64)) / ExactDecimal(1 << 64)


def from_invocation(
    *,
    block_hash: str,
    block_num: int,
    signer: str,
    entry_contract: str,
    entry_function: str,
) -> ContractRandom:
    """Build the invocation PRNG from its deterministic facts."""
    seed = "|".join(
        [block_hash, str(block_num), signer, entry_contract, entry_function]
    ).encode("utf-8")
    return ContractRandom(DRBG.new(seed))


__all__ = ["DRBG", "ContractRandom", "from_invocation"]
