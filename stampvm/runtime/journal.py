"""
stampvm.runtime.journal — per-invocation write buffer over a KeyValueStore.

Every ORM write of a top-level invocation is staged here. Reads consult the
buffer first and fall through to the base store, so a contract observes its own
writes while the store stays untouched until `commit()`. Any abort simply calls
`discard()`; nothing ever reached the store.

Key properties
--------------
- Pure Python, no I/O beyond the base store's get/set/delete.
- Explicit deletion markers (`None`) so "deleted in this invocation" shadows a
  stored value.
- Deterministic commit order (sorted by key).
- Single layer: rollback granularity is the whole top-level invocation.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from ..errors import VmError
from .storage_api import KeyValueStore

log = logging.getLogger(__name__)

_MISSING = object()


class WriteBuffer:
    def __init__(self, base: KeyValueStore) -> None:
        self._base = base
        self._staged: Dict[str, Optional[bytes]] = {}
        self._closed = False

    # --- reads ---------------------------------------------------------------

    def get(self, key: str) -> Optional[bytes]:
        staged = self._staged.get(key, _MISSING)
        if staged is not _MISSING:
            return staged  # type: ignore[return-value]
        return self._base.get(key)

    # --- writes --------------------------------------------------------------

    def set(self, key: str, value: Optional[bytes]) -> None:
        """Stage `value` for `key`; None stages a deletion."""
        self._ensure_open()
        self._staged[key] = None if value is None else bytes(value)

    def delete(self, key: str) -> None:
        self.set(key, None)

    # --- inspection ----------------------------------------------------------

    def mutations(self) -> List[Tuple[str, Optional[bytes]]]:
        """Staged changes in commit order."""
        return sorted(self._staged.items())

    def __len__(self) -> int:
        return len(self._staged)

    @property
    def closed(self) -> bool:
        return self._closed

    # --- lifecycle -----------------------------------------------------------

    def commit(self) -> int:
        """Apply staged changes to the base store. Returns the number applied."""
        self._ensure_open()
        changes = self.mutations()
        for key, value in changes:
            if value is None:
                self._base.delete(key)
            else:
                self._base.set(key, value)
        self._staged.clear()
        self._closed = True
        log.debug("journal: committed %d change(s)", len(changes))
        return len(changes)

    def discard(self) -> int:
        """Drop staged changes. Returns the number dropped."""
        dropped = len(self._staged)
        self._staged.clear()
        self._closed = True
        if dropped:
            log.debug("journal: discarded %d change(s)", dropped)
        return dropped

    def _ensure_open(self) -> None:
        if self._closed:
            raise VmError("write buffer already closed", code="journal_closed")


__all__ = ["WriteBuffer"]
