"""
stampvm.runtime.storage_api — key/value store interface, key layout and value codec.

Design goals
------------
- Deterministic: keys are composed from a fixed textual layout; values are
  canonical CBOR so byte lengths (and therefore stamp costs) are stable.
- Simple default: in-process memory store for local runs & tests.
- Pluggable: a tiny store protocol so the host can back it with a real state DB.
- Safe: strict key-length and dimensionality caps, separator-free components.

Key layout
----------
    "{contract}.{name}"                      # Variable / ForeignVariable
    "{contract}.{name}:{p1}:{p2}:...:{pN}"   # Hash / ForeignHash, 1 ≤ N ≤ 16

Components may be str, int or bool. They must not contain the separators
'.' or ':'; the composed key must fit in max_key_bytes (UTF-8).

Value encoding
--------------
Canonical CBOR via cbor2. ExactDecimal values are carried under a private tag
(DECIMAL_TAG) as their plain string form; tuples round-trip as lists.

Public API
----------
- KeyValueStore (Protocol): get(key) -> bytes | None, set(key, value), delete(key)
- MemoryStore: thread-safe dict-backed store
- make_key(contract, name, *parts, config=None) -> str
- encode_value(value) -> bytes / decode_value(data) -> Any
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterator, Optional, Protocol, Tuple, runtime_checkable

import cbor2

from ..config import VMConfig, load_config
from ..errors import ExecutionFault, ResourceLimitError, StateKeyError
from .numeric import ExactDecimal

NAMESPACE_SEP = "."
PART_SEP = ":"
_SEPARATORS = (NAMESPACE_SEP, PART_SEP)

# Private-use CBOR tag for ExactDecimal (payload: plain decimal string).
DECIMAL_TAG = 39001


# ---------------------------- Store API ---------------------------- #


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal store interface consumed by the journal."""

    def get(self, key: str) -> Optional[bytes]: ...
    def set(self, key: str, value: bytes) -> None: ...
    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Thread-safe in-memory store for local runs and tests."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None) -> None:
        self._data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def items(self) -> Iterator[Tuple[str, bytes]]:
        with self._lock:
            return iter(sorted(self._data.items()))

    def snapshot(self) -> Dict[str, bytes]:
        """Copy of the raw contents (useful to assert 'no mutation' in tests)."""
        with self._lock:
            return dict(self._data)


# --------------------------- Key layout --------------------------- #


def _render_part(part: Any) -> str:
    # bool before int: bool is an int subclass
    if isinstance(part, bool):
        return "true" if part else "false"
    if isinstance(part, int):
        return str(part)
    if isinstance(part, str):
        return part
    raise StateKeyError(
        f"unsupported key component type: {type(part).__name__}",
        context={"type": type(part).__name__},
    )


def _check_component(text: str, *, what: str) -> None:
    for sep in _SEPARATORS:
        if sep in text:
            raise StateKeyError(
                f"{what} must not contain separator {sep!r}",
                context={"component": text[:64], "separator": sep},
            )


def make_key(contract: str, name: str, *parts: Any, config: Optional[VMConfig] = None) -> str:
    """
    Compose and validate a storage key.

    Components are rendered untagged, so 1 and "1" (or True and "true") name
    the same slot.

    Raises:
        StateKeyError       bad component type or separator inside a component
        ResourceLimitError  too many dimensions, or key longer than max_key_bytes
    """
    cfg = config or load_config()
    if not contract or not name:
        raise StateKeyError("contract and name must be non-empty")
    _check_component(contract, what="contract name")
    _check_component(name, what="state name")

    if len(parts) > cfg.max_hash_dimensions:
        raise ResourceLimitError(
            f"too many key dimensions: {len(parts)} > {cfg.max_hash_dimensions}",
            context={"dimensions": len(parts), "max": cfg.max_hash_dimensions},
        )

    rendered = []
    for p in parts:
        text = _render_part(p)
        _check_component(text, what="key component")
        rendered.append(text)

    key = f"{contract}{NAMESPACE_SEP}{name}"
    if rendered:
        key = key + PART_SEP + PART_SEP.join(rendered)

    size = len(key.encode("utf-8"))
    if size > cfg.max_key_bytes:
        raise ResourceLimitError(
            f"key too long: {size} > {cfg.max_key_bytes} bytes",
            context={"bytes": size, "max": cfg.max_key_bytes},
        )
    return key


# --------------------------- Value codec --------------------------- #


def _encode_default(encoder: Any, value: Any) -> None:
    if isinstance(value, ExactDecimal):
        encoder.encode(cbor2.CBORTag(DECIMAL_TAG, str(value)))
        return
    raise ExecutionFault(
        f"value of type {type(value).__name__} cannot be stored",
        code="invalid_value",
        context={"type": type(value).__name__},
    )


def _tag_hook(decoder: Any, tag: cbor2.CBORTag) -> Any:
    if tag.tag == DECIMAL_TAG:
        return ExactDecimal(tag.value)
    return tag


def encode_value(value: Any) -> bytes:
    """Canonical CBOR bytes for a storable value."""
    try:
        return cbor2.dumps(value, canonical=True, default=_encode_default)
    except cbor2.CBOREncodeError as e:
        raise ExecutionFault(
            f"value cannot be stored: {e}",
            code="invalid_value",
        ) from None


def decode_value(data: bytes) -> Any:
    return cbor2.loads(data, tag_hook=_tag_hook)


__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "make_key",
    "encode_value",
    "decode_value",
    "DECIMAL_TAG",
    "NAMESPACE_SEP",
    "PART_SEP",
]
