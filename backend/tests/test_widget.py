import json

import pytest

from vnotes.api.widget import NotesWidget
from vnotes.storage.backends import FileStore

from fakes import FlakyStore, RecordingUI


@pytest.fixture()
def ui():
    return RecordingUI()


@pytest.fixture()
def widget(repo, ui):
    return NotesWidget(repo, ui, ui, ui)


def test_initial_render(widget, ui):
    assert ui.renders == [[]]


def test_save_note_trims_and_notifies(widget, ui):
    result = widget.save_note("  Shopping ", "\nBuy milk  ")
    assert (result.note.title, result.note.content) == ("Shopping", "Buy milk")
    assert ui.last == ("Note created successfully", "success")
    assert ui.renders[-1] == [result.note]


def test_save_note_updates_existing(widget, ui, clock):
    note = widget.save_note("Title", "body").note
    clock.advance()
    widget.save_note("Title", "edited", note_id=note.id)
    assert ui.last == ("Note updated successfully", "success")
    assert widget.repo.get(note.id).content == "edited"


def test_errors_are_reported_not_raised(widget, ui, clock):
    assert widget.save_note("   ", "body") is None
    assert ui.last == ("Title is required", "error")

    widget.save_note("Title", "body")
    assert widget.save_note("Other", "body") is None
    assert ui.last == ("Please wait before performing another action", "error")

    clock.advance()
    assert widget.save_note("Title", "body", note_id="missing") is None
    assert ui.last == ("Note not found", "error")


def test_capacity_message(make_repo, ui, clock):
    widget = NotesWidget(make_repo(), ui, ui, ui)
    for i in range(100):
        widget.save_note(f"Note {i}", "body")
        clock.advance()
    assert widget.save_note("Extra", "body") is None
    assert ui.last == ("Maximum 100 notes allowed", "error")


def test_delete_asks_for_confirmation(widget, ui, clock):
    note = widget.save_note("Title", "body").note
    clock.advance()

    ui.answer = False
    assert widget.delete_note(note.id) is None
    assert len(widget.repo) == 1
    assert ui.questions == ["Are you sure you want to delete this note?"]

    ui.answer = True
    widget.delete_note(note.id)
    assert len(widget.repo) == 0
    assert ui.last == ("Note deleted successfully", "success")


def test_delete_invalid_id(widget, ui):
    assert widget.delete_note("") is None
    assert ui.last == ("Invalid note ID", "error")
    assert ui.questions == []


def test_clear_all(widget, ui, clock):
    assert widget.clear_all() is None
    assert ui.last == ("There are no notes to delete", "info")

    widget.save_note("Title", "body")
    clock.advance()
    widget.clear_all()
    assert len(widget.repo) == 0
    assert ui.last == ("All notes deleted", "success")


def test_non_durable_save_warns(make_repo, ui):
    durable = FlakyStore()
    widget = NotesWidget(make_repo(durable=durable), ui, ui, ui)
    durable.fail_writes = True

    result = widget.save_note("Title", "body")
    assert result is not None
    assert ui.last == ("Saved for this session only - storage may be full", "warning")
    assert len(widget.repo) == 1


def test_export_and_import_backup(widget, ui, make_repo, tmp_path):
    widget.save_note("Shopping", "Buy milk")
    path = widget.export_backup(tmp_path / "backups")
    assert ui.last == ("Exported 1 notes", "success")

    other_ui = RecordingUI()
    other = NotesWidget(make_repo(durable=FileStore(tmp_path / "other")), other_ui, other_ui, other_ui)
    result = other.import_backup(path)
    assert result.imported == 1
    assert other_ui.last == ("Imported 1 notes", "success")
    assert [n.title for n in other_ui.renders[-1]] == ["Shopping"]


def test_import_backup_reports_bad_files(widget, ui, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"items": []}), encoding="utf-8")
    assert widget.import_backup(bad) is None
    assert ui.last[1] == "error"

    assert widget.import_backup(tmp_path / "missing.json") is None
    assert ui.last == ("Failed to read backup file", "error")


def test_non_durable_import_still_reports_counts(widget, make_repo, tmp_path):
    widget.save_note("Shopping", "Buy milk")
    path = widget.export_backup(tmp_path / "backups")
    payload = json.loads(path.read_text(encoding="utf-8"))
    payload["notes"].append({"id": "broken"})
    path.write_text(json.dumps(payload), encoding="utf-8")

    durable = FlakyStore()
    other_ui = RecordingUI()
    other = NotesWidget(make_repo(durable=durable), other_ui, other_ui, other_ui)
    durable.fail_writes = True

    result = other.import_backup(path)
    assert (result.imported, result.skipped) == (1, 1)
    assert other_ui.last == (
        "Imported 1 notes (1 skipped). Saved for this session only - storage may be full",
        "warning",
    )
