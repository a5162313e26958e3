"""
stampvm.runtime.metering — deterministic stamp metering and call depth.

- Stamps are charged *before* the metered operation takes effect.
- A charge that would leave zero or fewer stamps consumes the whole budget and
  raises StampsExhausted; the ledger never goes negative.
- Call depth is tracked here too: every contract function call (internal or
  cross-contract) enters a frame and pays `call_cost`.

Schedule (see VMConfig):
    read   = read_cost_per_byte  × (key bytes + value bytes)
    write  = write_cost_per_byte × (key bytes + value bytes)
    call   = call_cost
    loop   = loop_cost per iteration
    deploy = deploy_cost_per_byte × source bytes
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from ..config import VMConfig, load_config
from ..errors import ResourceLimitError, StampsExhausted, VmError


@dataclass(frozen=True)
class StampSnapshot:
    used: int
    depth: int


class StampMeter:
    """
    Stamp ledger for one top-level invocation.

        meter = StampMeter(limit=100_000)
        meter.charge_read("token.balances:alice", 2)
        meter.enter_call()
        ...
        meter.exit_call()
    """

    __slots__ = ("_limit", "_used", "_depth", "_max_depth", "_cfg", "_by_kind")

    def __init__(self, *, limit: int, config: Optional[VMConfig] = None) -> None:
        self._limit = self._require_int_ge(limit, 0, "limit")
        self._used = 0
        self._depth = 0
        self._cfg = config or load_config()
        self._max_depth = self._cfg.max_call_depth
        self._by_kind: Dict[str, int] = {}

    # -------------------------- properties -------------------------- #

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def used(self) -> int:
        return self._used

    @property
    def remaining(self) -> int:
        return self._limit - self._used

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def exhausted(self) -> bool:
        return self._used >= self._limit

    def breakdown(self) -> Dict[str, int]:
        """Stamps used per charge kind (read/write/call/loop/deploy)."""
        return dict(self._by_kind)

    # --------------------------- charging --------------------------- #

    def charge(self, amount: int, *, kind: str = "misc") -> None:
        amt = self._require_int_ge(amount, 0, "charge amount")
        if self._used + amt >= self._limit:
            shortfall = self._used + amt - self._limit
            self._by_kind[kind] = self._by_kind.get(kind, 0) + (self._limit - self._used)
            self._used = self._limit
            raise StampsExhausted(
                f"out of stamps while charging {kind}",
                context={"kind": kind, "amount": amt, "limit": self._limit, "shortfall": shortfall},
            )
        self._used += amt
        self._by_kind[kind] = self._by_kind.get(kind, 0) + amt

    def charge_read(self, key: str, value_len: int) -> None:
        cost = self._cfg.read_cost_per_byte * (len(key.encode("utf-8")) + value_len)
        self.charge(cost, kind="read")

    def charge_write(self, key: str, value_len: int) -> None:
        cost = self._cfg.write_cost_per_byte * (len(key.encode("utf-8")) + value_len)
        self.charge(cost, kind="write")

    def tick(self) -> bool:
        """One loop iteration. Returns True so it can guard comprehension clauses."""
        self.charge(self._cfg.loop_cost, kind="loop")
        return True

    def charge_deploy(self, source_bytes: int) -> None:
        self.charge(self._cfg.deploy_cost_per_byte * source_bytes, kind="deploy")

    # ---------------------------- depth ----------------------------- #

    def enter_call(self) -> None:
        if self._depth + 1 > self._max_depth:
            raise ResourceLimitError(
                f"call depth exceeds {self._max_depth}",
                context={"max_depth": self._max_depth},
            )
        self.charge(self._cfg.call_cost, kind="call")
        self._depth += 1

    def exit_call(self) -> None:
        if self._depth == 0:
            raise VmError("call depth underflow", code="depth_underflow")
        self._depth -= 1

    # ------------------------ checkpoints --------------------------- #

    def snapshot(self) -> StampSnapshot:
        return StampSnapshot(self._used, self._depth)

    # --------------------------- helpers ---------------------------- #

    @staticmethod
    def _require_int_ge(v: int, lb: int, name: str) -> int:
        if not isinstance(v, int) or isinstance(v, bool):
            raise VmError(f"{name} must be int, got {type(v).__name__}")
        if v < lb:
            raise VmError(f"{name} must be >= {lb}, got {v}")
        return v

    def __repr__(self) -> str:  # pragma: no cover
        return f"StampMeter(limit={self._limit}, used={self._used}, depth={self._depth})"


__all__ = ["StampMeter", "StampSnapshot"]
