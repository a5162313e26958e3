# -*- coding: utf-8 -*-
"""
tests.property package bootstrap.

Shared configuration for property-based tests (Hypothesis) of the stampvm
runtime, kept lightweight so importing this package has no external deps
beyond Hypothesis and stampvm itself.

What this does on import:
- Registers a few named Hypothesis profiles (dev/ci/fast/stress).
- Selects the active profile using HYPOTHESIS_PROFILE, otherwise "ci" on CI
  (CI env var present/truthy) and "dev" locally.
- Exposes strategies for storage key components and storable values.

Usage in tests:
    from tests.property import given, key_parts, storable

    @given(key_parts(max_size=16))
    def test_something(parts):
        ...

Environment knobs:
- HYPOTHESIS_PROFILE=dev|ci|fast|stress
- CI=true (auto-pick the 'ci' profile if HYPOTHESIS_PROFILE not set)
"""
from __future__ import annotations

import os
from typing import Final, Tuple

from hypothesis import HealthCheck, Verbosity, given, settings
from hypothesis import strategies as st

from stampvm.runtime.numeric import ExactDecimal

# ---- profile registry --------------------------------------------------------


def _hc(*items: HealthCheck) -> Tuple[HealthCheck, ...]:
    return items


# Deadlines are off: executor-level properties compile and run contracts.
settings.register_profile(
    "dev",
    settings(
        max_examples=100,
        deadline=None,
        suppress_health_check=_hc(
            HealthCheck.too_slow,
            HealthCheck.filter_too_much,
            HealthCheck.function_scoped_fixture,
        ),
        verbosity=Verbosity.normal,
        derandomize=False,
    ),
)

settings.register_profile(
    "ci",
    settings(
        max_examples=200,
        deadline=None,
        suppress_health_check=_hc(
            HealthCheck.too_slow,
            HealthCheck.filter_too_much,
            HealthCheck.function_scoped_fixture,
        ),
        verbosity=Verbosity.verbose,
        derandomize=True,
    ),
)

settings.register_profile(
    "fast",
    settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=_hc(HealthCheck.too_slow, HealthCheck.function_scoped_fixture),
        verbosity=Verbosity.normal,
        derandomize=False,
    ),
)

settings.register_profile(
    "stress",
    settings(
        max_examples=1000,
        deadline=None,
        suppress_health_check=_hc(
            HealthCheck.too_slow,
            HealthCheck.filter_too_much,
            HealthCheck.function_scoped_fixture,
        ),
        verbosity=Verbosity.normal,
        derandomize=True,
    ),
)


def _env_truthy(name: str) -> bool:
    v = os.getenv(name)
    return (v or "").lower() not in ("", "0", "false", "no", "off")


_active: Final[str] = os.getenv("HYPOTHESIS_PROFILE") or (
    "ci" if _env_truthy("CI") else "dev"
)
settings.load_profile(_active)

# ---- strategies --------------------------------------------------------------

# Key components: separator-free text, ints and bools.
_SAFE_TEXT = st.text(
    alphabet=st.characters(exclude_characters=".:", exclude_categories=("Cs",)),
    min_size=1,
    max_size=24,
)
KEY_PART = st.one_of(_SAFE_TEXT, st.integers(min_value=-(10**12), max_value=10**12), st.booleans())

DECIMALS = st.decimals(
    min_value=-(10**12), max_value=10**12, allow_nan=False, allow_infinity=False, places=6
).map(ExactDecimal)

SCALARS = st.one_of(
    st.integers(min_value=-(2**128), max_value=2**128),
    st.text(max_size=32),
    st.binary(max_size=32),
    st.booleans(),
    DECIMALS,
)


def key_parts(min_size: int = 1, max_size: int = 16):
    return st.lists(KEY_PART, min_size=min_size, max_size=max_size)


def storable():
    """Values a contract may write: scalars, lists and str-keyed dicts of them."""
    return st.recursive(
        SCALARS,
        lambda children: st.one_of(
            st.lists(children, max_size=4),
            st.dictionaries(st.text(max_size=8), children, max_size=4),
        ),
        max_leaves=12,
    )


def is_ci() -> bool:
    return _env_truthy("CI")


def active_profile() -> str:
    return _active


__all__ = [
    "st",
    "given",
    "is_ci",
    "active_profile",
    "KEY_PART",
    "DECIMALS",
    "key_parts",
    "storable",
]
