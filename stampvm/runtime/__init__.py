"""
stampvm runtime package

Host-facing APIs of the metered sandbox: the executor, the key/value store
interface, the stamp meter, the state ORM and the event sink.

Convenience re-exports live here so callers can do:

    from stampvm.runtime import Executor, MemoryStore, BlockEnv
    from stampvm.runtime import orm, events, storage   # module namespaces

Notes
-----
- All code that can affect determinism is behind explicit APIs.
- No wall-clock I/O or system randomness is exposed here.
- Contract code never imports anything; capabilities are pre-bound names
  (see stampvm.runtime.scope).
"""

from __future__ import annotations

from ..version import __version__  # re-export
from . import events_api as events
from . import numeric as numeric
from . import orm as orm
from . import random_api as random
from . import storage_api as storage
from .context import BlockEnv
from .executor import ExecutionResult, Executor
from .journal import WriteBuffer
from .metering import StampMeter
from .numeric import ExactDecimal
from .registry import ContractRegistry
from .storage_api import KeyValueStore, MemoryStore, make_key

__all__ = [
    "__version__",
    # Core classes
    "Executor",
    "ExecutionResult",
    "StampMeter",
    "WriteBuffer",
    "ContractRegistry",
    "BlockEnv",
    "ExactDecimal",
    "KeyValueStore",
    "MemoryStore",
    "make_key",
    # Namespaces (modules)
    "events",
    "numeric",
    "orm",
    "random",
    "storage",
]
