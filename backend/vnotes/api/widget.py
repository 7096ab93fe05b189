import logging
from pathlib import Path
from typing import Literal, Optional, Protocol, runtime_checkable

from vnotes.errors import NotesError
from vnotes.models.notes import Note
from vnotes.storage.backup import ImportResult, import_file, write_backup
from vnotes.storage.notes_store import MutationResult, NoteRepository, SaveOutcome

logger = logging.getLogger(__name__)

Severity = Literal["info", "success", "warning", "error"]

_NOT_DURABLE = {
    SaveOutcome.EPHEMERAL: "Saved for this session only - storage may be full",
    SaveOutcome.MEMORY_ONLY: "Failed to save notes - storage may be full",
}


@runtime_checkable
class Notifier(Protocol):
    def notify(self, message: str, severity: Severity) -> None: ...


@runtime_checkable
class Renderer(Protocol):
    def render_list(self, notes: list[Note]) -> None: ...


@runtime_checkable
class Confirmer(Protocol):
    def confirm(self, question: str) -> bool: ...


class NotesWidget:
    """UI-facing controller: turns repository results into notifications."""

    def __init__(
        self,
        repo: NoteRepository,
        notifier: Notifier,
        renderer: Renderer,
        confirmer: Confirmer,
    ):
        self.repo = repo
        self.notifier = notifier
        self.confirmer = confirmer
        repo.add_listener(renderer.render_list)
        renderer.render_list(repo.list_notes())

    def _report(self, outcome: SaveOutcome, success_message: str) -> None:
        if outcome is SaveOutcome.DURABLE:
            self.notifier.notify(success_message, "success")
        else:
            self.notifier.notify(_NOT_DURABLE[outcome], "warning")

    def _fail(self, exc: NotesError) -> None:
        logger.info("Operation rejected: %s", exc)
        self.notifier.notify(exc.message, "error")

    def save_note(self, title: str, content: str, note_id: Optional[str] = None) -> Optional[MutationResult]:
        title = (title or "").strip()
        content = (content or "").strip()
        try:
            if note_id:
                result = self.repo.update(note_id, title, content)
            else:
                result = self.repo.create(title, content)
        except NotesError as exc:
            self._fail(exc)
            return None
        self._report(result.outcome, "Note updated successfully" if note_id else "Note created successfully")
        return result

    def delete_note(self, note_id: str) -> Optional[MutationResult]:
        if not note_id or not isinstance(note_id, str):
            self.notifier.notify("Invalid note ID", "error")
            return None
        if not self.confirmer.confirm("Are you sure you want to delete this note?"):
            return None
        try:
            result = self.repo.delete(note_id)
        except NotesError as exc:
            self._fail(exc)
            return None
        self._report(result.outcome, "Note deleted successfully")
        return result

    def clear_all(self) -> Optional[MutationResult]:
        if not len(self.repo):
            self.notifier.notify("There are no notes to delete", "info")
            return None
        if not self.confirmer.confirm("Delete all notes? This cannot be undone."):
            return None
        try:
            result = self.repo.clear()
        except NotesError as exc:
            self._fail(exc)
            return None
        self._report(result.outcome, "All notes deleted")
        return result

    def export_backup(self, directory: Path) -> Optional[Path]:
        try:
            path = write_backup(self.repo, directory)
        except OSError as exc:
            logger.error("Export failed: %s", exc)
            self.notifier.notify("Failed to export notes", "error")
            return None
        self.notifier.notify(f"Exported {len(self.repo)} notes", "success")
        return path

    def import_backup(self, path: Path) -> Optional[ImportResult]:
        try:
            result = import_file(self.repo, path)
        except OSError as exc:
            logger.error("Import failed: %s", exc)
            self.notifier.notify("Failed to read backup file", "error")
            return None
        except NotesError as exc:
            self._fail(exc)
            return None

        message = f"Imported {result.imported} notes"
        if result.skipped:
            message += f" ({result.skipped} skipped)"
        if result.outcome is None or result.outcome is SaveOutcome.DURABLE:
            self.notifier.notify(message, "success" if result.imported else "info")
        else:
            self.notifier.notify(f"{message}. {_NOT_DURABLE[result.outcome]}", "warning")
        return result

    def close(self) -> None:
        self.repo.close()
