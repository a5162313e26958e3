"""
stampvm.config — structural limits and the stamp schedule.

This module centralizes configuration for the deterministic contract sandbox.
It has NO third-party deps and is safe to import very early.

Configuration precedence:
  1) Environment variables (STAMPVM_*)
  2) Hardcoded safe defaults below

Key env vars:
  - STAMPVM_MAX_SOURCE_BYTES       (int)   default: 131_072
  - STAMPVM_MAX_CALL_DEPTH         (int)   default: 1024
  - STAMPVM_MAX_KEY_BYTES          (int)   default: 1024
  - STAMPVM_MAX_HASH_DIMENSIONS    (int)   default: 16
  - STAMPVM_MAX_EVENT_VALUE_BYTES  (int)   default: 1024
  - STAMPVM_MAX_INDEXED_PARAMS     (int)   default: 3
  - STAMPVM_READ_COST_PER_BYTE     (int)   default: 1
  - STAMPVM_WRITE_COST_PER_BYTE    (int)   default: 25
  - STAMPVM_CALL_COST              (int)   default: 10
  - STAMPVM_LOOP_COST              (int)   default: 1
  - STAMPVM_DEPLOY_COST_PER_BYTE   (int)   default: 2
  - STAMPVM_DEFAULT_STAMPS         (int)   default: 1_000_000

Decimal precision, rounding places and the integer width cap are part of the
arithmetic semantics and live as constants in stampvm.runtime.numeric.

The structural limits (key size, hash dimensionality, call depth, indexed event
params) are consensus-affecting; only lower them for local experiments.

Usage:
    from stampvm.config import load_config
    cfg = load_config()
    small = cfg.with_overrides(max_call_depth=64)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any, Dict

# ----------------------------- helpers ---------------------------------------


def _env_int(name: str, default: int, *, min_v: int, max_v: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw, 0)
    except ValueError:
        return default
    if v < min_v:
        return min_v
    if v > max_v:
        return max_v
    return v


# ------------------------------- config --------------------------------------


@dataclass(frozen=True)
class VMConfig:
    # Structural limits (enforced by linter/ORM/metering/events)
    max_source_bytes: int
    max_call_depth: int
    max_key_bytes: int
    max_hash_dimensions: int
    max_event_value_bytes: int
    max_indexed_params: int

    # Stamp schedule
    read_cost_per_byte: int
    write_cost_per_byte: int
    call_cost: int
    loop_cost: int
    deploy_cost_per_byte: int
    default_stamps: int

    def with_overrides(self, **changes: Any) -> "VMConfig":
        """Return a copy with selected fields replaced (tests, local tooling)."""
        return replace(self, **changes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "max_source_bytes": self.max_source_bytes,
            "max_call_depth": self.max_call_depth,
            "max_key_bytes": self.max_key_bytes,
            "max_hash_dimensions": self.max_hash_dimensions,
            "max_event_value_bytes": self.max_event_value_bytes,
            "max_indexed_params": self.max_indexed_params,
            "read_cost_per_byte": self.read_cost_per_byte,
            "write_cost_per_byte": self.write_cost_per_byte,
            "call_cost": self.call_cost,
            "loop_cost": self.loop_cost,
            "deploy_cost_per_byte": self.deploy_cost_per_byte,
            "default_stamps": self.default_stamps,
        }


@lru_cache(maxsize=1)
def load_config() -> VMConfig:
    """
    Build and cache a VMConfig from environment + safe defaults.
    """
    return VMConfig(
        max_source_bytes=_env_int("STAMPVM_MAX_SOURCE_BYTES", 131_072, min_v=1_024, max_v=8_388_608),
        max_call_depth=_env_int("STAMPVM_MAX_CALL_DEPTH", 1024, min_v=8, max_v=1024),
        max_key_bytes=_env_int("STAMPVM_MAX_KEY_BYTES", 1024, min_v=64, max_v=1024),
        max_hash_dimensions=_env_int("STAMPVM_MAX_HASH_DIMENSIONS", 16, min_v=1, max_v=16),
        max_event_value_bytes=_env_int("STAMPVM_MAX_EVENT_VALUE_BYTES", 1024, min_v=64, max_v=1024),
        max_indexed_params=_env_int("STAMPVM_MAX_INDEXED_PARAMS", 3, min_v=0, max_v=3),
        read_cost_per_byte=_env_int("STAMPVM_READ_COST_PER_BYTE", 1, min_v=1, max_v=1_000),
        write_cost_per_byte=_env_int("STAMPVM_WRITE_COST_PER_BYTE", 25, min_v=2, max_v=10_000),
        call_cost=_env_int("STAMPVM_CALL_COST", 10, min_v=0, max_v=100_000),
        loop_cost=_env_int("STAMPVM_LOOP_COST", 1, min_v=0, max_v=10_000),
        deploy_cost_per_byte=_env_int("STAMPVM_DEPLOY_COST_PER_BYTE", 2, min_v=0, max_v=10_000),
        default_stamps=_env_int("STAMPVM_DEFAULT_STAMPS", 1_000_000, min_v=1, max_v=10**12),
    )


__all__ = ["VMConfig", "load_config"]
