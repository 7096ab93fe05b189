import logging
import secrets
import string
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from vnotes.config import NoteLimits, NotesConfig
from vnotes.errors import CapacityExceeded, NotFound, RateLimited, StorageError
from vnotes.models.notes import Note, format_timestamp, utc_now
from vnotes.storage.backends import FileStore, MemoryStore, StorageTier, select_backend
from vnotes.storage.change_feed import ChangeFeed
from vnotes.storage.persistence import PersistenceEngine
from vnotes.storage.validator import check_input

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_ATTEMPTS = 16


def _default_note_id() -> str:
    salt = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{int(time.time() * 1000)}{salt}"


class SaveOutcome(str, Enum):
    DURABLE = "durable"
    EPHEMERAL = "ephemeral"  # saved, but only for this session
    MEMORY_ONLY = "memory_only"  # every tier failed, change lives in memory


@dataclass(frozen=True)
class MutationResult:
    note: Optional[Note]
    outcome: SaveOutcome

    @property
    def durable(self) -> bool:
        return self.outcome is SaveOutcome.DURABLE


NotesListener = Callable[[list[Note]], None]


class NoteRepository:
    """Ordered in-memory note set, newest first, persisted after every change."""

    def __init__(
        self,
        engine: PersistenceEngine,
        limits: Optional[NoteLimits] = None,
        rate_limit_ms: int = 300,
        *,
        monotonic: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _default_note_id,
    ):
        self.engine = engine
        self.limits = limits or engine.limits
        self.rate_limit_ms = rate_limit_ms
        self._monotonic = monotonic
        self._now = now
        self._id_factory = id_factory
        self._last_action: Optional[float] = None
        self._listeners: list[NotesListener] = []
        self._notes: list[Note] = engine.load()
        # ids changed locally since the last durable save
        self._unsaved: set[str] = set()
        engine.attach(self.list_notes, self._apply_reload, self._on_saved)
        logger.info("Note repository initialized with %d notes", len(self._notes))

    @classmethod
    def from_config(cls, config: NotesConfig, feed: Optional[ChangeFeed] = None, **kwargs) -> "NoteRepository":
        backend = select_backend(FileStore(config.data_dir), MemoryStore())
        engine = PersistenceEngine(
            backend,
            config.storage_key,
            feed=feed,
            limits=config.limits,
            autosave_interval=config.autosave_interval,
        )
        return cls(engine, config.limits, config.rate_limit_ms, **kwargs)

    # ── Reads ────────────────────────────────────────────────

    def list_notes(self) -> list[Note]:
        return list(self._notes)

    def __len__(self) -> int:
        return len(self._notes)

    def get(self, note_id: str) -> Note:
        return self._notes[self._index_of(note_id)]

    def _index_of(self, note_id: str) -> int:
        for i, note in enumerate(self._notes):
            if note.id == note_id:
                return i
        raise NotFound(note_id)

    # ── Listeners ────────────────────────────────────────────

    def add_listener(self, listener: NotesListener) -> None:
        self._listeners.append(listener)

    def _emit(self) -> None:
        snapshot = self.list_notes()
        for listener in self._listeners:
            listener(snapshot)

    @property
    def unsaved_ids(self) -> frozenset[str]:
        return frozenset(self._unsaved)

    def _on_saved(self, tier: StorageTier) -> None:
        if tier is StorageTier.DURABLE:
            self._unsaved.clear()

    def _apply_reload(self, notes: list[Note]) -> None:
        if self._unsaved:
            local = [note for note in self._notes if note.id in self._unsaved]
            local_ids = {note.id for note in local}
            merged = local + [note for note in notes if note.id not in local_ids]
            if len(merged) > self.limits.max_notes:
                logger.warning(
                    "Ignoring external change: %d unsaved local notes do not fit alongside %d stored notes",
                    len(local),
                    len(notes),
                )
                return
            notes = merged
        self._notes = list(notes)
        logger.info("Reloaded %d notes after external change, %d kept unsaved", len(self._notes), len(self._unsaved))
        self._emit()

    # ── Gates ────────────────────────────────────────────────

    def _check_rate(self) -> float:
        now = self._monotonic()
        if self._last_action is not None:
            elapsed_ms = (now - self._last_action) * 1000
            if elapsed_ms < self.rate_limit_ms:
                raise RateLimited(retry_after_ms=int(self.rate_limit_ms - elapsed_ms) + 1)
        return now

    def _new_id(self) -> str:
        existing = {note.id for note in self._notes}
        for _ in range(_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate not in existing:
                return candidate
            logger.warning("Generated note id %s already exists, regenerating", candidate)
        raise RuntimeError("Could not generate a unique note id")

    def _stamp(self, not_before: Optional[datetime] = None) -> str:
        now = self._now()
        if not_before is not None and now < not_before:
            now = not_before
        return format_timestamp(now)

    # ── Mutations ────────────────────────────────────────────

    def _persist(self, touched: Iterable[str] = ()) -> SaveOutcome:
        try:
            tier = self.engine.save(self._notes)
        except StorageError as exc:
            logger.warning("Failed to save notes on any tier, change kept in memory only: %s", exc)
            self._unsaved.update(touched)
            return SaveOutcome.MEMORY_ONLY
        if tier is StorageTier.DURABLE:
            return SaveOutcome.DURABLE
        self._unsaved.update(touched)
        return SaveOutcome.EPHEMERAL

    def _commit(self, started: float, note: Optional[Note], outcome: SaveOutcome) -> MutationResult:
        self._last_action = started
        self._emit()
        return MutationResult(note=note, outcome=outcome)

    def create(self, title: str, content: str) -> MutationResult:
        started = self._check_rate()
        if len(self._notes) >= self.limits.max_notes:
            raise CapacityExceeded(self.limits.max_notes)
        check_input(title, content, self.limits)

        stamp = self._stamp()
        note = Note.model_validate(
            {"id": self._new_id(), "title": title, "content": content, "created_at": stamp, "updated_at": stamp},
            context={"limits": self.limits},
        )
        with self.engine.mutation():
            self._notes.insert(0, note)
            outcome = self._persist([note.id])
        logger.info("Note created: %s", note.id)
        return self._commit(started, note, outcome)

    def update(self, note_id: str, title: str, content: str) -> MutationResult:
        started = self._check_rate()
        check_input(title, content, self.limits)
        index = self._index_of(note_id)

        existing = self._notes[index]
        note = existing.model_copy(
            update={"title": title, "content": content, "updated_at": self._stamp(not_before=existing.updated)}
        )
        with self.engine.mutation():
            self._notes[index] = note
            outcome = self._persist([note.id])
        logger.info("Note updated: %s", note.id)
        return self._commit(started, note, outcome)

    def delete(self, note_id: str) -> MutationResult:
        started = self._check_rate()
        index = self._index_of(note_id)
        with self.engine.mutation():
            removed = self._notes.pop(index)
            self._unsaved.discard(removed.id)
            outcome = self._persist()
        logger.info("Note deleted, remaining notes: %d", len(self._notes))
        return self._commit(started, removed, outcome)

    def clear(self) -> MutationResult:
        started = self._check_rate()
        with self.engine.mutation():
            self._notes = []
            self._unsaved.clear()
            outcome = self._persist()
        logger.info("All notes cleared")
        return self._commit(started, None, outcome)

    def replace_all(self, notes: Sequence[Note]) -> SaveOutcome:
        """Swap in a whole new set as one mutation (used by import merge)."""
        started = self._check_rate()
        if len(notes) > self.limits.max_notes:
            raise CapacityExceeded(self.limits.max_notes)
        previous = {note.id: note for note in self._notes}
        changed = [note.id for note in notes if previous.get(note.id) != note]
        with self.engine.mutation():
            self._notes = list(notes)
            self._unsaved.intersection_update(note.id for note in notes)
            outcome = self._persist(changed)
        self._commit(started, None, outcome)
        return outcome

    def close(self) -> None:
        self.engine.close()
