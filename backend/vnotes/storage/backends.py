"""Key-value stores the persistence engine writes snapshots into.

Two tiers exist:

- ``FileStore``: durable, one JSON file per key, atomic full-replace writes
- ``MemoryStore``: ephemeral, lives as long as the host process

``select_backend`` probes both and orders the writable ones, durable first.
"""
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from vnotes.errors import StorageUnavailable

logger = logging.getLogger(__name__)

_PROBE_KEY = "__vnotes_probe__"
_PROBE_VALUE = b"probe"


class StorageTier(str, Enum):
    DURABLE = "durable"
    EPHEMERAL = "ephemeral"


@runtime_checkable
class KeyValueStore(Protocol):
    tier: StorageTier

    def probe(self) -> bool: ...

    def read(self, key: str) -> Optional[bytes]: ...

    def write(self, key: str, data: bytes) -> None: ...

    def remove(self, key: str) -> None: ...


def _safe_key_path(base_dir: Path, key: str) -> Path:
    # keys become file names inside base_dir
    if not key or key.startswith(".") or ".." in key or "/" in key or "\\" in key:
        raise StorageUnavailable(f"Invalid storage key: {key!r}", key=key, tier=StorageTier.DURABLE.value)
    return base_dir / f"{key}.json"


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)


def _probe(store: "KeyValueStore") -> bool:
    try:
        store.write(_PROBE_KEY, _PROBE_VALUE)
        ok = store.read(_PROBE_KEY) == _PROBE_VALUE
        store.remove(_PROBE_KEY)
    except (StorageUnavailable, OSError) as exc:
        logger.warning("Probe of %s store failed: %s", store.tier.value, exc)
        return False
    return ok


class FileStore:
    tier = StorageTier.DURABLE

    def __init__(self, base_dir: Path, quota_bytes: Optional[int] = None):
        self.base_dir = base_dir
        self.quota_bytes = quota_bytes

    def path_for(self, key: str) -> Path:
        return _safe_key_path(self.base_dir, key)

    def probe(self) -> bool:
        return _probe(self)

    def read(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageUnavailable("Failed to read from disk", key=key, tier=self.tier.value, original_error=exc) from exc

    def write(self, key: str, data: bytes) -> None:
        if self.quota_bytes is not None and len(data) > self.quota_bytes:
            raise StorageUnavailable("Storage quota exceeded", key=key, tier=self.tier.value)
        try:
            _atomic_write_bytes(self.path_for(key), data)
        except OSError as exc:
            raise StorageUnavailable("Failed to write to disk", key=key, tier=self.tier.value, original_error=exc) from exc

    def remove(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailable("Failed to remove from disk", key=key, tier=self.tier.value, original_error=exc) from exc


class MemoryStore:
    tier = StorageTier.EPHEMERAL

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, bytes] = {}

    def probe(self) -> bool:
        return _probe(self)

    def read(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def write(self, key: str, data: bytes) -> None:
        if self.quota_bytes is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(data) > self.quota_bytes:
                raise StorageUnavailable("Storage quota exceeded", key=key, tier=self.tier.value)
        self._data[key] = bytes(data)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class StorageBackend:
    """The writable tiers in preference order."""

    def __init__(self, tiers: list[KeyValueStore]):
        self.tiers = tiers

    @property
    def available(self) -> bool:
        return bool(self.tiers)

    @property
    def primary(self) -> KeyValueStore:
        if not self.tiers:
            raise StorageUnavailable("No writable storage tier")
        return self.tiers[0]

    @property
    def durable(self) -> bool:
        return self.available and self.primary.tier is StorageTier.DURABLE


def select_backend(
    durable: Optional[KeyValueStore],
    ephemeral: Optional[KeyValueStore],
) -> StorageBackend:
    tiers = [store for store in (durable, ephemeral) if store is not None and store.probe()]
    if not tiers:
        logger.error("Neither durable nor ephemeral storage is writable")
    elif tiers[0].tier is not StorageTier.DURABLE:
        logger.warning("Durable storage unavailable, falling back to ephemeral storage")
    else:
        logger.info("Using durable storage with %d fallback tier(s)", len(tiers) - 1)
    return StorageBackend(tiers)
