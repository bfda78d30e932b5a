"""Command-line interface for mdtasks.

Reads markdown files and prints results. Nothing is written back to disk.
"""

import logging
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import ConfigError, TasksSettings, load_settings
from .document import parse_document
from .ports import CursorPosition
from .query_engine import LayoutOptions, QueryError, parse_query
from .task import Task, format_estimate
from .toggle import toggle_done


console = Console()
error_console = Console(stderr=True)


class LineBufferEditor:
    """EditorPort over an in-memory list of lines."""

    def __init__(self, lines: List[str], cursor: CursorPosition):
        self.lines = lines
        self.cursor = cursor

    def get_line(self, line_number: int) -> str:
        return self.lines[line_number]

    def set_line(self, line_number: int, text: str) -> None:
        self.lines[line_number] = text

    def get_cursor(self) -> CursorPosition:
        return self.cursor

    def set_cursor(self, position: CursorPosition) -> None:
        self.cursor = position


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, rich_tracebacks=verbose)],
        force=True,
    )


def _fail(message: str):
    error_console.print(f"[red]{escape(message)}[/red]")
    sys.exit(1)


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _today(value) -> date:
    return value.date() if value is not None else date.today()


def _format(value: Optional[date], settings: TasksSettings) -> str:
    return value.strftime(settings.date_format) if value is not None else ""


def _scheduled(task: Task, settings: TasksSettings) -> str:
    scheduled = _format(task.scheduled_date, settings)
    if task.scheduled_date_is_inferred:
        scheduled += " (inferred)"
    return scheduled


def _estimate(task: Task) -> str:
    if task.estimated_time_to_complete is None:
        return ""
    return format_estimate(task.estimated_time_to_complete)


def _task_table(tasks: List[Task], settings: TasksSettings, title: Optional[str] = None,
                layout: Optional[LayoutOptions] = None) -> Table:
    layout = layout or LayoutOptions()
    columns = [
        ("Status", None, lambda task: escape(f"[{task.status.symbol}] {task.status.name}")),
        ("Description", None, lambda task: escape(task.description)),
        ("Priority", "priority", lambda task: task.priority.label if task.priority else ""),
        ("Start", "start date", lambda task: _format(task.start_date, settings)),
        ("Scheduled", "scheduled date", lambda task: _scheduled(task, settings)),
        ("Due", "due date", lambda task: _format(task.due_date, settings)),
        ("Done", "done date", lambda task: _format(task.done_date, settings)),
        ("Recurrence", "recurrence rule", lambda task: task.recurrence.to_text() if task.recurrence else ""),
        ("Estimate", "estimate", lambda task: _estimate(task)),
        ("Tags", "tags", lambda task: escape(" ".join(task.tags))),
        ("Location", "backlink", lambda task: escape(f"{task.path}:{task.preceding_header or ''}")),
    ]
    shown = [column for column in columns if column[1] is None or layout.is_shown(column[1])]

    table = Table(title=title, show_lines=False)
    for header, _component, _value in shown:
        if header == "Description":
            table.add_column(header, min_width=20, overflow="fold")
        else:
            table.add_column(header)

    for task in tasks:
        table.add_row(*(value(task) for _header, _component, value in shown))
    return table


@click.group()
@click.option("--config", type=click.Path(dir_okay=False), help="Path to settings file")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx, config, verbose):
    """mdtasks - tasks embedded in markdown files."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    try:
        settings = load_settings(Path(config) if config else None)
    except ConfigError as e:
        _fail(f"Configuration error: {e}")
    ctx.obj['settings'] = settings
    ctx.obj['registry'] = settings.build_registry()


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("line", type=int)
@click.option("--cursor", "-c", "column", type=int, default=0, help="Cursor column on the line")
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), help="Date to use as today")
@click.pass_context
def toggle(ctx, file, line, column, today):
    """Toggle LINE (1-based) of FILE and print the result.

    Plain text becomes a list item, a list item becomes a checklist item and
    tasks advance to their next status.
    """
    lines = _read_text(file).splitlines()
    if not 1 <= line <= len(lines):
        _fail(f"Line {line} is outside {file} (1-{len(lines)})")

    editor = LineBufferEditor(lines, CursorPosition(line=line - 1, ch=column))
    toggled = toggle_done(
        editor,
        registry=ctx.obj['registry'],
        today=_today(today),
        settings=ctx.obj['settings'],
    )
    click.echo(toggled)
    console.print(f"[dim]cursor: {editor.cursor.ch}[/dim]", highlight=False)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def parse(ctx, file):
    """List every task found in FILE."""
    settings = ctx.obj['settings']
    tasks = parse_document(_read_text(file), file, registry=ctx.obj['registry'], settings=settings)
    if not tasks:
        console.print("[yellow]No tasks found.[/yellow]")
        return
    console.print(_task_table(tasks, settings, title=f"{len(tasks)} task{'s' if len(tasks) != 1 else ''}"))


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--query", "-q", "query_text", help="Query text, instructions separated by newlines or ';'")
@click.option("--query-file", type=click.Path(exists=True, dir_okay=False), help="Read the query from a file")
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), help="Date to use as today")
@click.pass_context
def query(ctx, files, query_text, query_file, today):
    """Run a task query over FILES.

    Examples:
      mdtasks query notes/*.md -q "not done; due before tomorrow; sort by due"
      mdtasks query notes/*.md --query-file weekly.query
    """
    if bool(query_text) == bool(query_file):
        _fail("Give exactly one of --query or --query-file")

    source = _read_text(query_file) if query_file else query_text.replace(";", "\n")
    try:
        compiled = parse_query(source, today=_today(today))
    except QueryError as e:
        error_console.print(f"[red]Query error: {escape(str(e))}[/red]")
        if e.line:
            error_console.print(f"[dim]in line: {escape(e.line)}[/dim]", highlight=False)
        sys.exit(1)

    settings = ctx.obj['settings']
    tasks: List[Task] = []
    for file in files:
        tasks.extend(parse_document(_read_text(file), file, registry=ctx.obj['registry'], settings=settings))

    if compiled.layout.explain:
        console.print(compiled.explain(), highlight=False)

    groups = compiled.apply(tasks)
    for group in groups:
        title = " > ".join(group.group_names) or None
        if compiled.layout.short_mode:
            if title:
                console.print(f"[bold]{escape(title)}[/bold]")
            for task in group.tasks:
                console.print(task.to_file_line(), highlight=False, markup=False)
        else:
            console.print(_task_table(group.tasks, settings, title=escape(title) if title else None,
                                      layout=compiled.layout))

    if compiled.layout.is_shown("task count"):
        total = groups.total
        console.print(f"{total} task{'s' if total != 1 else ''}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
