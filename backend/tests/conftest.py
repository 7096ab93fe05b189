from datetime import datetime, timedelta, timezone

import pytest

from vnotes.storage.backends import FileStore, MemoryStore, select_backend
from vnotes.storage.change_feed import ChangeFeed
from vnotes.storage.notes_store import NoteRepository
from vnotes.storage.persistence import PersistenceEngine


class FakeClock:
    def __init__(self):
        self.mono = 0.0
        self.wall = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return self.mono

    def now(self) -> datetime:
        return self.wall

    def advance(self, seconds: float = 1.0) -> None:
        self.mono += seconds
        self.wall += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture()
def feed():
    return ChangeFeed()


@pytest.fixture()
def make_repo(data_dir, clock):
    # each repo gets its own ChangeFeed unless one is passed in
    def _make(durable=None, ephemeral=None, feed=None, **kwargs):
        backend = select_backend(
            durable if durable is not None else FileStore(data_dir),
            ephemeral if ephemeral is not None else MemoryStore(),
        )
        engine = PersistenceEngine(backend, "vnotes-data", feed=feed or ChangeFeed())
        return NoteRepository(engine, monotonic=clock.monotonic, now=clock.now, **kwargs)

    return _make


@pytest.fixture()
def repo(make_repo):
    return make_repo()
