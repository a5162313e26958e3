"""
stampvm.runtime.context — BlockEnv, call frames and the contract-visible `ctx`.

BlockEnv carries the only time/chain facts a contract may read: `now`,
`block_num` and `block_hash`. They are pure data, validated on construction and
constant for a whole top-level invocation.

`ctx` is a read-only view over the invocation's call-frame stack:

    ctx.caller           account or contract that invoked the current function
    ctx.signer           account that signed the top-level invocation (never changes)
    ctx.this             contract whose code is currently running
    ctx.entry            (contract, function) first invoked
    ctx.submission_name  contract being deployed while its constructor runs, else None

This module does not expose wall-clock time or any other non-deterministic
source.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import ArgumentError

ZERO_HASH = "0x" + "00" * 32


# ----------------------------- helpers ----------------------------- #


class ContextError(ArgumentError):
    """Validation or coercion failure for BlockEnv."""

    default_code = "invalid_environment"


def _strip_0x(s: str) -> str:
    return s[2:] if s.startswith(("0x", "0X")) else s


def to_hex(value: Union[bytes, bytearray, memoryview, str]) -> str:
    """Normalize bytes or a hex string to 0x-prefixed lowercase hex."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        h = _strip_0x(value.strip()).lower()
        if len(h) % 2 != 0:
            raise ContextError(f"hex string must have even length, got {len(h)}")
        try:
            bytes.fromhex(h)
        except ValueError:
            raise ContextError(f"invalid hex string: {value!r}") from None
        return "0x" + h
    raise ContextError(f"cannot convert type {type(value).__name__} to hex")


def _require_non_negative_int(name: str, v: Any) -> int:
    if not isinstance(v, int) or isinstance(v, bool):
        raise ContextError(f"{name} must be int, got {type(v).__name__}")
    if v < 0:
        raise ContextError(f"{name} must be non-negative, got {v}")
    return v


# ----------------------------- models ------------------------------ #


@dataclass(frozen=True)
class BlockEnv:
    """
    Deterministic per-invocation environment.

    Fields
    ------
    now:        Consensus timestamp (seconds since epoch or chain-defined unit).
    block_num:  Block height (0-based).
    block_hash: Block hash as 0x-prefixed hex.
    """

    now: int = 0
    block_num: int = 0
    block_hash: str = ZERO_HASH

    def __post_init__(self) -> None:
        object.__setattr__(self, "now", _require_non_negative_int("now", self.now))
        object.__setattr__(self, "block_num", _require_non_negative_int("block_num", self.block_num))
        object.__setattr__(self, "block_hash", to_hex(self.block_hash))

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BlockEnv":
        return cls(
            now=_require_non_negative_int("now", d.get("now", 0)),
            block_num=_require_non_negative_int("block_num", d.get("block_num", 0)),
            block_hash=d.get("block_hash", ZERO_HASH),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CallFrame:
    contract: str
    function: str
    caller: str


class ContextView:
    """Contract-visible `ctx`. Reads the live frame stack of its invocation."""

    __slots__ = ("_frames", "_signer", "_submission")

    def __init__(self, frames: List[CallFrame], *, signer: str, submission_name: Optional[str] = None) -> None:
        self._frames = frames
        self._signer = signer
        self._submission = submission_name

    def _top(self) -> CallFrame:
        if not self._frames:
            raise ArgumentError("no active call frame", code="no_frame")
        return self._frames[-1]

    @property
    def caller(self) -> str:
        return self._top().caller

    @property
    def signer(self) -> str:
        return self._signer

    @property
    def this(self) -> str:
        return self._top().contract

    @property
    def entry(self) -> Tuple[str, str]:
        if not self._frames:
            raise ArgumentError("no active call frame", code="no_frame")
        first = self._frames[0]
        return (first.contract, first.function)

    @property
    def submission_name(self) -> Optional[str]:
        return self._submission

    def __setattr__(self, name: str, value: Any) -> None:
        if name in ContextView.__slots__:
            object.__setattr__(self, name, value)
            return
        raise AttributeError("ctx is read-only")

    def __repr__(self) -> str:
        return f"ctx(this={self.this!r}, caller={self.caller!r}, signer={self._signer!r})"


__all__ = ["ContextError", "to_hex", "BlockEnv", "CallFrame", "ContextView", "ZERO_HASH"]
