"""
stampvm.runtime.registry — in-memory registry of deployed contracts.

Contracts are registered by name only after their constructor succeeded, so a
name present here always resolves to a fully initialized contract.
"""
from __future__ import annotations

import logging
import re
import threading
from typing import Dict, List, Optional

from ..compiler.contract import CompiledContract
from ..errors import ResolutionError

log = logging.getLogger(__name__)

MAX_NAME_LEN = 64
_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_]*$")


def validate_name(name: object) -> str:
    """Return `name` if it is a legal contract name, else raise ResolutionError."""
    if not isinstance(name, str):
        raise ResolutionError("contract name must be str", context={"type": type(name).__name__})
    if len(name) > MAX_NAME_LEN or not _NAME_RE.match(name):
        raise ResolutionError(
            "invalid contract name (lowercase letters, digits, underscore; no leading underscore)",
            context={"name": name[:MAX_NAME_LEN]},
        )
    return name


def is_valid_name(name: object) -> bool:
    return isinstance(name, str) and len(name) <= MAX_NAME_LEN and bool(_NAME_RE.match(name))


class ContractRegistry:
    def __init__(self) -> None:
        self._contracts: Dict[str, CompiledContract] = {}
        self._lock = threading.RLock()

    def register(self, contract: CompiledContract) -> None:
        name = validate_name(contract.name)
        with self._lock:
            if name in self._contracts:
                raise ResolutionError(f"contract '{name}' already exists", code="contract_exists")
            self._contracts[name] = contract
        log.info("registry: registered %s code_hash=%s", name, contract.code_hash_hex)

    def resolve(self, name: str) -> CompiledContract:
        validate_name(name)
        with self._lock:
            contract = self._contracts.get(name)
        if contract is None:
            raise ResolutionError(f"contract '{name}' does not exist", context={"name": name})
        return contract

    def get(self, name: str) -> Optional[CompiledContract]:
        with self._lock:
            return self._contracts.get(name)

    def remove(self, name: str) -> CompiledContract:
        with self._lock:
            contract = self._contracts.pop(name, None)
        if contract is None:
            raise ResolutionError(f"contract '{name}' does not exist", context={"name": name})
        log.info("registry: removed %s", name)
        return contract

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._contracts

    def __len__(self) -> int:
        with self._lock:
            return len(self._contracts)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._contracts)


__all__ = ["ContractRegistry", "validate_name", "is_valid_name", "MAX_NAME_LEN"]
