"""stampvm.version — package version.

`__version__` is the installed distribution's version when stampvm is
installed, and BASE_VERSION for a source checkout. STAMPVM_VERSION overrides
both (release tooling, reproducible test runs).
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import metadata as importlib_metadata
from typing import Optional

# Bump on consensus-affecting changes (lint rules, stamp schedule, key layout).
BASE_VERSION = "0.3.0"


def _pkg_metadata_version(dist_name: str = "stampvm") -> Optional[str]:
    try:
        v = importlib_metadata.version(dist_name)
    except importlib_metadata.PackageNotFoundError:
        return None
    return v or None


@lru_cache(maxsize=1)
def compute_version() -> str:
    """STAMPVM_VERSION, else installed metadata, else BASE_VERSION."""
    return os.getenv("STAMPVM_VERSION") or _pkg_metadata_version() or BASE_VERSION


__version__ = compute_version()

__all__ = ["__version__", "BASE_VERSION", "compute_version"]
