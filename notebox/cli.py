from __future__ import annotations
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional
import logging
import os
import sys

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .db import DB_ENV, configure, db_path, init_db
from .errors import ArgumentError, NoteboxError
from .models import DEFAULT_SPACE, TRASH_SPACE, Note, NoteColumn, PageOpts, SortOpts
from .services import (
    add_note, select_notes, get_notes, replace_content, move_notes,
    pin_notes, remove_notes, permanent_remove_notes, empty_trash,
    select_spaces, find_notes,
)
from .transfer import (
    STDIN_PATH, FileFormat, detect_format, encode, export_records, import_records, load_file,
)

app = typer.Typer(help="note: no fuss terminal note taking")
console = Console()
err_console = Console(stderr=True)


class Style(str, Enum):
    PLAIN = "plain"
    TITLE = "title"
    TABLE = "table"


@app.callback()
def _boot(
    db: Optional[Path] = typer.Option(None, "--db", envvar=DB_ENV, help="database file holding your notes"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    configure(db)
    with _errors():
        init_db()


@contextmanager
def _errors():
    try:
        yield
    except NoteboxError as e:
        err_console.print(f"[red]error[/]: {escape(str(e))}")
        raise typer.Exit(1) from e


# ---------- helpers ----------

def _unique(ids: Iterable[int]) -> list[int]:
    # drop repeats but keep the order given
    return list(dict.fromkeys(ids))


def _default_space() -> str:
    return os.getenv("NOTE_SPACE", DEFAULT_SPACE)


def _selection(space: Optional[list[str]], all_: bool, hidden: bool) -> tuple[list[str], bool]:
    if space:
        return space, False
    if all_ or hidden:
        return [], hidden
    return [_default_space()], False


def _read_source(path: Path) -> str:
    if path == STDIN_PATH:
        return sys.stdin.read()
    if not path.exists():
        raise ArgumentError("file does not exist", {"path": str(path)})
    return path.read_text(encoding="utf-8")


def _format_flag(json_: bool, yaml_: bool) -> Optional[FileFormat]:
    if json_ and yaml_:
        raise ArgumentError("you can only pick one file format")
    if json_:
        return FileFormat.JSON
    if yaml_:
        return FileFormat.YAML
    return None


def _confirm_permanent(count: int) -> None:
    console.print(f"WARNING: You are about to permanently remove {count} note(s).")
    answer = typer.prompt("Write 'yes' to confirm permanent delete", default="", show_default=False)
    if answer.strip().lower() != "yes":
        raise typer.Exit(2)


def _counted(count: int, verb: str) -> str:
    return f"Note {verb}" if count == 1 else f"{count} notes {verb}"


def _print_notes(notes: list[Note], style: Style) -> None:
    if style is Style.PLAIN:
        for n in notes:
            console.print(n.content.rstrip("\n"), markup=False, highlight=False)
        return

    if style is Style.TABLE:
        table = Table(title="Notes")
        table.add_column("ID", justify="right", style="cyan")
        table.add_column("Space", style="magenta")
        table.add_column("Pinned")
        table.add_column("Updated")
        table.add_column("Content", style="bold")
        for n in notes:
            first_line = n.content.strip().splitlines()[0] if n.content.strip() else ""
            table.add_row(
                str(n.id), escape(n.space), "✓" if n.pinned else "",
                n.updated_at.isoformat(timespec="minutes") if n.updated_at else "",
                escape(first_line),
            )
        console.print(table)
        return

    for n in notes:
        marker = " *" if n.pinned else ""
        console.print(f"[green]────[/] [{n.id}]{marker} [green]────[/]", highlight=False)
        console.print(n.content.rstrip("\n"), markup=False, highlight=False)


def _print_ids(ids: list[int], one_per_line: bool) -> None:
    if one_per_line:
        for i in ids:
            console.print(str(i))
    else:
        console.print(" ".join(str(i) for i in ids))


# ---------- commands ----------

@app.command()
def init():
    """Create the note store (if missing) and show where it lives."""
    console.print(f"[green]Note store ready[/]: {escape(str(db_path()))}")


@app.command()
def add(
    words: Optional[list[str]] = typer.Argument(None, help="note text"),
    space: str = typer.Option(DEFAULT_SPACE, "--space", "-s", envvar="NOTE_SPACE", help="partitions the note into a space"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="read the note from file ('-' for stdin)"),
    pinned: bool = typer.Option(False, "--pinned", "-p", help="pin your note to the top"),
):
    with _errors():
        if file is not None and words:
            raise ArgumentError("you can't specify both --file and note text")
        if file is not None:
            content = _read_source(file)
        elif words:
            content = " ".join(words)
        else:
            raise ArgumentError("nothing to add, pass note text or --file")
        new_id = add_note(Note(space=space, content=content, pinned=pinned))
    console.print(str(new_id))


@app.command("list")
def _list(
    space: Optional[list[str]] = typer.Option(None, "--space", "-s", help="only show notes from space(s)"),
    all_: bool = typer.Option(False, "--all", "-a", help="show notes from all spaces"),
    hidden: bool = typer.Option(False, "--hidden", "-H", help="include hidden spaces"),
    sort: NoteColumn = typer.Option(NoteColumn.ID, "--sort", "-S", case_sensitive=False),
    descending: bool = typer.Option(False, "--descending", "-d"),
    limit: int = typer.Option(0, "--limit", "-l", help="0 means no limit"),
    offset: int = typer.Option(0, "--offset", "-o", help="only used together with --limit"),
    style: Style = typer.Option(Style.TITLE, "--style"),
):
    spaces, include_hidden = _selection(space, all_, hidden)
    with _errors():
        notes = select_notes(
            spaces, include_hidden,
            SortOpts(column=sort, ascending=not descending),
            PageOpts(limit=limit, offset=offset),
        )
    _print_notes(notes, style)


app.command("ls", hidden=True)(_list)


@app.command()
def show(
    ids: list[int] = typer.Argument(..., help="note id(s)"),
    style: Style = typer.Option(Style.TITLE, "--style"),
    always_style: bool = typer.Option(False, "--always-style", help="style a single note too"),
):
    with _errors():
        notes = get_notes(ids)
    if len(notes) == 1 and not always_style:
        _print_notes(notes, Style.PLAIN)
    else:
        _print_notes(notes, style)


@app.command()
def edit(
    note_id: int = typer.Argument(...),
    content: Optional[str] = typer.Option(None, "--content", "-c"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="read new content from file ('-' for stdin)"),
):
    with _errors():
        if (content is None) == (file is None):
            raise ArgumentError("pass exactly one of --content or --file")
        new_content = content if content is not None else _read_source(file)
        current = get_notes([note_id])[0]
        if new_content == current.content:
            err_console.print("No changes")
            raise typer.Exit(2)
        replace_content(note_id, new_content)
    console.print("Note modified")


@app.command()
def move(
    ids: list[int] = typer.Argument(..., help="note id(s)"),
    to: str = typer.Option(..., "--to", "-t", help="destination space"),
):
    unique = _unique(ids)
    with _errors():
        move_notes(unique, to)
    console.print(_counted(len(unique), f"moved to {escape(to)}"))


app.command("mv", hidden=True)(move)


def _pin(ids: list[int], pinned: bool) -> None:
    unique = _unique(ids)
    with _errors():
        pin_notes(unique, pinned)
    console.print(_counted(len(unique), "pinned" if pinned else "unpinned"))


@app.command()
def pin(ids: list[int] = typer.Argument(..., help="note id(s)")):
    _pin(ids, True)


@app.command()
def unpin(ids: list[int] = typer.Argument(..., help="note id(s)")):
    _pin(ids, False)


@app.command()
def remove(
    ids: Optional[list[int]] = typer.Argument(None, help="note id(s)"),
    all_in_space: Optional[str] = typer.Option(None, "--all-in-space", help="remove every note in a space"),
    permanent: bool = typer.Option(False, "--permanent", "-P", help="delete instead of moving to trash"),
    yes: bool = typer.Option(False, "--yes", "-y", help="skip the confirmation for permanent deletes"),
):
    with _errors():
        if ids and all_in_space:
            raise ArgumentError("you must choose either individual notes or --all-in-space")
        if not ids and not all_in_space:
            raise ArgumentError("must provide ids or --all-in-space")
        if all_in_space == TRASH_SPACE and not permanent:
            raise ArgumentError("this action does nothing")

        if ids:
            unique = _unique(ids)
        else:
            unique = [n.id for n in select_notes([all_in_space])]
        if not unique:
            console.print("No notes deleted")
            return

        if permanent:
            if not yes:
                _confirm_permanent(len(unique))
            permanent_remove_notes(unique)
            verb = "permanently removed"
        else:
            remove_notes(unique)
            verb = "moved to trash"
    console.print(_counted(len(unique), verb))


app.command("rm", hidden=True)(remove)


@app.command()
def clean(yes: bool = typer.Option(False, "--yes", "-y", help="skip the confirmation")):
    """Permanently delete everything in the trash."""
    with _errors():
        trashed = select_notes([TRASH_SPACE])
        if not trashed:
            console.print("Trash is empty")
            return
        if not yes:
            _confirm_permanent(len(trashed))
        count = empty_trash()
    console.print(_counted(count, f"removed from {TRASH_SPACE}"))


@app.command()
def spaces(
    ids: Optional[list[int]] = typer.Argument(None, help="only the spaces of these notes"),
    all_: bool = typer.Option(False, "--all", "-a", help="show hidden spaces"),
    descending: bool = typer.Option(False, "--descending", "-d"),
    one_per_line: bool = typer.Option(False, "--list", "-l", help="one space per line"),
):
    with _errors():
        if ids:
            names = sorted({n.space for n in get_notes(_unique(ids))}, reverse=descending)
        else:
            names = select_spaces(all_, SortOpts(column=NoteColumn.SPACE, ascending=not descending))
    if one_per_line:
        for name in names:
            console.print(name, markup=False, highlight=False)
    else:
        console.print(" ".join(names), markup=False, highlight=False)


@app.command()
def find(
    pattern: list[str] = typer.Argument(..., help="text to look for"),
    regex: bool = typer.Option(False, "--regex", "-r", help="treat the pattern as a regular expression"),
    ignore_case: bool = typer.Option(False, "--ignore-case", "-i"),
    all_: bool = typer.Option(False, "--all", "-a", help="also search hidden spaces"),
    trash: bool = typer.Option(False, "--trash", help="also search the trash"),
    ids_only: bool = typer.Option(False, "--ids", help="only print matching ids"),
    one_per_line: bool = typer.Option(False, "--list", "-l", help="one id per line (with --ids)"),
    style: Style = typer.Option(Style.TITLE, "--style"),
):
    with _errors():
        notes = find_notes(
            " ".join(pattern), regex=regex, ignore_case=ignore_case,
            include_hidden=all_, include_trash=trash,
        )
    if ids_only:
        _print_ids([n.id for n in notes], one_per_line)
    else:
        _print_notes(notes, style)


@app.command("import")
def import_(
    paths: list[Path] = typer.Argument(..., help="JSON or YAML file(s), '-' for stdin"),
    json_: bool = typer.Option(False, "--json", "-j", help="read files as JSON"),
    yaml_: bool = typer.Option(False, "--yaml", "-y", help="read files as YAML"),
    one_per_line: bool = typer.Option(False, "--list", "-l", help="one created id per line"),
):
    with _errors():
        preferred = _format_flag(json_, yaml_)
        records = []
        for path in dict.fromkeys(paths):
            records.extend(load_file(path, preferred))
        ids = import_records(records)
    if one_per_line:
        _print_ids(ids, True)
    else:
        console.print(f"Notes created: {', '.join(str(i) for i in ids)}")


@app.command()
def export(
    path: Optional[Path] = typer.Argument(None, help="output file, stdout when omitted"),
    json_: bool = typer.Option(False, "--json", "-j", help="export notes in JSON format"),
    yaml_: bool = typer.Option(False, "--yaml", "-y", help="export notes in YAML format"),
    force: bool = typer.Option(False, "--force", help="overwrite an existing file"),
    indent: Optional[int] = typer.Option(None, "--indent", "-i", help="indentation width"),
    space: Optional[list[str]] = typer.Option(None, "--space", "-s"),
    all_: bool = typer.Option(False, "--all", "-a"),
    hidden: bool = typer.Option(False, "--hidden", "-H"),
    sort: NoteColumn = typer.Option(NoteColumn.ID, "--sort", "-S", case_sensitive=False),
    descending: bool = typer.Option(False, "--descending", "-d"),
):
    spaces, include_hidden = _selection(space, all_, hidden)
    with _errors():
        fmt = _format_flag(json_, yaml_) or (detect_format(path) if path else None)
        if fmt is None:
            raise ArgumentError("could not determine output format")
        if path is not None and path.exists() and not force:
            raise ArgumentError("file already exists, use --force to overwrite", {"path": str(path)})
        records = export_records(spaces, include_hidden, SortOpts(column=sort, ascending=not descending))
        payload = encode(records, fmt, indent)

    if path is None:
        typer.echo(payload, nl=not payload.endswith("\n"))
    else:
        path.write_text(payload, encoding="utf-8")
        err_console.print(f"[green]Exported[/] {len(records)} notes → {escape(str(path))}")


def main():
    app()


if __name__ == "__main__":
    main()
