"""Snapshot persistence for the note set.

The whole set is written as one versioned envelope under a single key.
Every write is read back and compared byte for byte before it counts; a
failing tier hands over to the next one and the caller learns which tier
actually holds the data.
"""
import asyncio
import json
import logging
import threading
import uuid
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Optional

from vnotes.config import NoteLimits
from vnotes.errors import PersistenceVerifyFailed, StorageError, StorageUnavailable
from vnotes.models.notes import Note, NotesEnvelope, format_timestamp, utc_now
from vnotes.storage.backends import KeyValueStore, StorageBackend, StorageTier
from vnotes.storage.change_feed import ChangeFeed, StorageEvent, Subscription
from vnotes.storage.validator import parse_note

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_INTERVAL = 30.0


def extract_candidates(payload: Any) -> Optional[list]:
    """Accept an envelope ``{"notes": [...]}`` or a legacy bare array."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("notes"), list):
        return payload["notes"]
    return None


def clean_notes(candidates: list, limits: NoteLimits) -> tuple[list[Note], int]:
    """Validate and de-duplicate records; returns (notes, dropped)."""
    notes: list[Note] = []
    seen: set[str] = set()
    dropped = 0
    for candidate in candidates:
        note = parse_note(candidate, limits)
        if note is None or note.id in seen:
            dropped += 1
            continue
        seen.add(note.id)
        notes.append(note)
    return notes, dropped


class PersistenceEngine:
    def __init__(
        self,
        backend: StorageBackend,
        key: str = "vnotes-data",
        *,
        feed: Optional[ChangeFeed] = None,
        limits: Optional[NoteLimits] = None,
        autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
        origin: Optional[str] = None,
    ):
        self.backend = backend
        self.key = key
        self.feed = feed
        self.limits = limits or NoteLimits()
        self.autosave_interval = autosave_interval
        self.origin = origin or uuid.uuid4().hex
        self.closed = False

        self._writing = False
        self._mutating = 0
        self._pending_sync = False
        self._source: Optional[Callable[[], Sequence[Note]]] = None
        self._on_reload: Optional[Callable[[list[Note]], None]] = None
        self._on_saved: Optional[Callable[[StorageTier], None]] = None
        self._io_lock = threading.Lock()
        self._subscription: Optional[Subscription] = None
        self._shutdown: Optional[asyncio.Event] = None
        self._autosave_task: Optional[asyncio.Task] = None

    # ── Snapshot ─────────────────────────────────────────────

    def snapshot(self, notes: Sequence[Note]) -> NotesEnvelope:
        return NotesEnvelope(notes=list(notes), last_modified=format_timestamp(utc_now()))

    @staticmethod
    def serialize(envelope: NotesEnvelope) -> bytes:
        return envelope.model_dump_json(by_alias=True).encode("utf-8")

    def _write_verified(self, store: KeyValueStore, data: bytes) -> None:
        store.write(self.key, data)
        if store.read(self.key) != data:
            raise PersistenceVerifyFailed(self.key, tier=store.tier.value)

    def _prepare(self, notes: Sequence[Note]) -> bytes:
        if self.closed:
            raise StorageUnavailable("Persistence engine is closed", key=self.key)
        if not self.backend.available:
            raise StorageUnavailable("No writable storage tier", key=self.key)
        return self.serialize(self.snapshot(notes))

    def _write_tiers(self, data: bytes) -> StorageTier:
        # may run on a worker thread; touches the stores only
        last_error: Optional[StorageError] = None
        with self._io_lock:
            for store in self.backend.tiers:
                try:
                    self._write_verified(store, data)
                except StorageError as exc:
                    logger.warning("Save to %s storage failed: %s", store.tier.value, exc)
                    last_error = exc
                    continue
                return store.tier
        raise last_error or StorageUnavailable(key=self.key)

    def _saved(self, saved: StorageTier, count: int) -> StorageTier:
        logger.info("Notes saved to %s storage, count: %d", saved.value, count)
        if self._on_saved is not None:
            self._on_saved(saved)
        if saved is StorageTier.DURABLE and self.feed is not None:
            self.feed.publish(self.key, self.origin)
        self._settle()
        return saved

    def save(self, notes: Sequence[Note]) -> StorageTier:
        """Persist the set; returns the tier that holds it.

        Raises the last StorageError when no tier accepted the write.
        """
        data = self._prepare(notes)
        self._writing = True
        try:
            saved = self._write_tiers(data)
        finally:
            self._writing = False
        return self._saved(saved, len(notes))

    async def save_async(self, notes: Sequence[Note]) -> StorageTier:
        """Like save(), with the blocking write moved off the event loop."""
        data = self._prepare(notes)
        self._writing = True
        try:
            saved = await asyncio.to_thread(self._write_tiers, data)
        finally:
            self._writing = False
        return self._saved(saved, len(notes))

    # ── Load ─────────────────────────────────────────────────

    def load(self) -> list[Note]:
        for store in self.backend.tiers:
            try:
                raw = store.read(self.key)
            except StorageUnavailable as exc:
                logger.warning("Reading %s storage failed: %s", store.tier.value, exc)
                continue
            if raw is None:
                continue
            return self._decode(raw)
        logger.info("No stored notes found, starting fresh")
        return []

    def _decode(self, raw: bytes) -> list[Note]:
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.error("Error loading notes: %s", exc)
            return []

        candidates = extract_candidates(payload)
        if candidates is None:
            logger.warning("Invalid notes format, starting fresh")
            return []

        notes, dropped = clean_notes(candidates, self.limits)
        if dropped:
            logger.warning("Dropped %d invalid or duplicate stored notes", dropped)
        if len(notes) > self.limits.max_notes:
            logger.warning("Stored set exceeds %d notes, truncating", self.limits.max_notes)
            notes = notes[: self.limits.max_notes]
        logger.info("Loaded %d valid notes", len(notes))
        return notes

    # ── Mutation bracket & cross-context sync ────────────────

    @property
    def busy(self) -> bool:
        return self._writing or self._mutating > 0

    @contextmanager
    def mutation(self) -> Iterator[None]:
        """One local mutate-and-persist unit; incoming syncs wait for it."""
        self._mutating += 1
        try:
            yield
        finally:
            self._mutating -= 1
            self._settle()

    def attach(
        self,
        source: Callable[[], Sequence[Note]],
        on_reload: Callable[[list[Note]], None],
        on_saved: Optional[Callable[[StorageTier], None]] = None,
    ) -> None:
        self._source = source
        self._on_reload = on_reload
        self._on_saved = on_saved
        if self.feed is not None and self._subscription is None:
            self._subscription = self.feed.subscribe(self.key, self.origin, self._on_storage_event)

    def _on_storage_event(self, event: StorageEvent) -> None:
        if self.closed:
            return
        if self.busy:
            logger.debug("Sync from %s queued behind local mutation", event.origin)
            self._pending_sync = True
            return
        logger.debug("Reloading after change from %s", event.origin)
        self._reload()

    def _settle(self) -> None:
        if self._pending_sync and not self.busy and not self.closed:
            self._pending_sync = False
            self._reload()

    def _reload(self) -> None:
        notes = self.load()
        if self._on_reload is not None:
            self._on_reload(notes)

    # ── Autosave & teardown ──────────────────────────────────

    def _autosave_candidates(self) -> Optional[list[Note]]:
        if self.closed or self._source is None:
            return None
        if self.busy:
            logger.debug("Autosave skipped: write in flight")
            return None
        return list(self._source()) or None

    def autosave_tick(self) -> Optional[StorageTier]:
        notes = self._autosave_candidates()
        if notes is None:
            return None
        try:
            return self.save(notes)
        except StorageError as exc:
            logger.warning("Autosave failed: %s", exc)
            return None

    async def autosave_tick_async(self) -> Optional[StorageTier]:
        notes = self._autosave_candidates()
        if notes is None:
            return None
        try:
            return await self.save_async(notes)
        except StorageError as exc:
            logger.warning("Autosave failed: %s", exc)
            return None

    async def run_autosave(self, shutdown_event: asyncio.Event) -> None:
        """Run autosave ticks until shutdown_event is set."""
        logger.info("Autosave started (interval=%ss)", self.autosave_interval)
        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.autosave_interval)
                break  # shutdown requested
            except asyncio.TimeoutError:
                pass  # interval elapsed
            await self.autosave_tick_async()
        logger.info("Autosave stopped.")

    def start_autosave(self) -> asyncio.Task:
        """Schedule the autosave loop on the running event loop."""
        if self._autosave_task is None or self._autosave_task.done():
            self._shutdown = asyncio.Event()
            self._autosave_task = asyncio.get_running_loop().create_task(
                self.run_autosave(self._shutdown)
            )
        return self._autosave_task

    def close(self) -> None:
        """Stop autosave, drop the subscription and persist one last time."""
        if self.closed:
            return
        if self._shutdown is not None:
            self._shutdown.set()
        if self._autosave_task is not None and not self._autosave_task.done():
            self._autosave_task.cancel()
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._pending_sync = False

        notes = list(self._source()) if self._source is not None else []
        if notes and self.backend.available:
            try:
                self.save(notes)
            except StorageError as exc:
                logger.warning("Final save before teardown failed: %s", exc)
        self.closed = True
        logger.info("Persistence engine closed (origin=%s)", self.origin)
