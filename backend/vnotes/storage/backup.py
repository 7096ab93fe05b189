"""Backup export and import/merge for the note set."""
import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional, Union

from vnotes.errors import ImportFormatError
from vnotes.models.notes import ExportEnvelope, Note, format_timestamp, utc_now
from vnotes.storage.backends import _atomic_write_bytes
from vnotes.storage.notes_store import NoteRepository, SaveOutcome
from vnotes.storage.persistence import extract_candidates
from vnotes.storage.validator import parse_note

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportResult:
    imported: int
    skipped: int
    duplicates: int = 0
    outcome: Optional[SaveOutcome] = None


def backup_filename(day: Optional[date] = None) -> str:
    day = day or utc_now().date()
    return f"notes_backup_{day.isoformat()}.json"


def export_notes(repo: NoteRepository) -> bytes:
    envelope = ExportEnvelope(notes=repo.list_notes(), export_date=format_timestamp(utc_now()))
    return envelope.model_dump_json(by_alias=True, indent=2).encode("utf-8")


def write_backup(repo: NoteRepository, directory: Path) -> Path:
    path = directory / backup_filename()
    _atomic_write_bytes(path, export_notes(repo))
    logger.info("Exported %d notes to %s", len(repo), path)
    return path


def import_notes(repo: NoteRepository, data: Union[bytes, str]) -> ImportResult:
    """Merge a backup into the repository; local notes win on id collision.

    Raises ImportFormatError, leaving the repository untouched, when the data
    is neither a bare array nor an object with a ``notes`` array.
    """
    try:
        payload = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ImportFormatError(f"Backup is not valid JSON: {exc}") from exc

    candidates = extract_candidates(payload)
    if candidates is None:
        raise ImportFormatError("Backup must be a list of notes or an object with a 'notes' list")

    current = repo.list_notes()
    known = {note.id for note in current}
    room = repo.limits.max_notes - len(current)
    fresh: list[Note] = []
    skipped = 0
    duplicates = 0

    for candidate in candidates:
        note = parse_note(candidate, repo.limits)
        if note is None:
            skipped += 1
            continue
        if note.id in known:
            duplicates += 1
            continue
        if len(fresh) >= room:
            skipped += 1
            continue
        known.add(note.id)
        fresh.append(note)

    outcome = None
    if fresh:
        outcome = repo.replace_all(current + fresh)
    logger.info(
        "Import finished: %d imported, %d skipped, %d duplicates", len(fresh), skipped, duplicates
    )
    return ImportResult(imported=len(fresh), skipped=skipped, duplicates=duplicates, outcome=outcome)


def import_file(repo: NoteRepository, path: Path) -> ImportResult:
    return import_notes(repo, path.read_bytes())
