"""Command-line host: vnotes [list|add|export|import]

Runs the same repository/persistence stack as the widget against the
configured data directory.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from vnotes.api.widget import NotesWidget, Severity
from vnotes.config import load_config
from vnotes.models.notes import Note
from vnotes.storage.notes_store import NoteRepository


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


class ConsoleUI:
    def __init__(self, show_list: bool = False) -> None:
        self.show_list = show_list

    def notify(self, message: str, severity: Severity) -> None:
        stream = sys.stderr if severity in ("warning", "error") else sys.stdout
        print(f"[{severity}] {message}", file=stream)

    def render_list(self, notes: list[Note]) -> None:
        if not self.show_list:
            return
        if not notes:
            print("No notes yet.")
        for note in notes:
            print(f"{note.id}  {note.updated_at}  {note.title}")

    def confirm(self, question: str) -> bool:
        return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vnotes")
    parser.add_argument("--config", type=Path, default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)
    sub.add_parser("list")
    add = sub.add_parser("add")
    add.add_argument("title")
    add.add_argument("content")
    export = sub.add_parser("export")
    export.add_argument("directory", type=Path, nargs="?", default=Path.cwd())
    imp = sub.add_parser("import")
    imp.add_argument("path", type=Path)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    config = load_config(args.config)
    _setup_logging(config.log_level)

    ui = ConsoleUI(show_list=args.cmd == "list")
    widget = NotesWidget(NoteRepository.from_config(config), ui, ui, ui)
    try:
        if args.cmd == "add":
            ok = widget.save_note(args.title, args.content) is not None
        elif args.cmd == "export":
            ok = widget.export_backup(args.directory) is not None
        elif args.cmd == "import":
            ok = widget.import_backup(args.path) is not None
        else:
            ok = True
    finally:
        widget.close()
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
