from typing import Any, Dict, List, Optional

from bson import json_util
from rich import box
from rich.console import Console
from rich.measure import Measurement
from rich.table import Table
from rich.text import Text

from pgdoc.cli.console import console as default_console, err_console as default_err_console, print_error
from pgdoc.common.errors import PgDocError
from pgdoc.models import QueryResult, ResultKind

JSON_INDENT = 2
MAX_TABLE_WIDTH = 100_000


def to_json(value: Any) -> str:
    """Pretty JSON with stable 2-space indentation; BSON types as relaxed extended JSON."""
    return json_util.dumps(value, indent=JSON_INDENT, json_options=json_util.RELAXED_JSON_OPTIONS)


def _cell(value: Any) -> Text:
    return Text("NULL" if value is None else str(value))


class ResultRenderer:
    """Writes results to stdout and errors to stderr."""

    def __init__(self, out: Optional[Console] = None, err: Optional[Console] = None):
        self.out = out or default_console
        self.err = err or default_err_console

    def render(self, result: QueryResult) -> None:
        if result.kind == ResultKind.ROWS:
            self.print_table(result.rows)
        elif result.kind == ResultKind.DOCUMENTS:
            self.print_json(result.documents)
        elif result.ack is not None:
            self.print_json(result.ack)

    def print_table(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return

        columns = list(rows[0].keys())
        table = Table(box=box.SIMPLE_HEAD, show_edge=False)
        for name in columns:
            table.add_column(Text(str(name)), no_wrap=True)
        for row in rows:
            table.add_row(*[_cell(row.get(name)) for name in columns])

        # Never wrap: one row per line, however wide the table is.
        width = Measurement.get(self.out, self.out.options.update_width(MAX_TABLE_WIDTH), table).maximum
        self._sized_console(width).print(table)

    def _sized_console(self, width: int) -> Console:
        if width <= self.out.width:
            return self.out
        return Console(
            file=self.out.file,
            width=width,
            highlight=False,
            color_system=self.out.color_system,
            force_terminal=self.out.is_terminal,
        )

    def print_json(self, value: Any) -> None:
        self.out.out(to_json(value), highlight=False)

    def print_usage(self, usage: str) -> None:
        self.out.out(usage, highlight=False)

    def print_error(self, exc: Exception) -> None:
        if isinstance(exc, PgDocError):
            detail = exc.detail if exc.detail and exc.detail not in exc.message else None
            print_error(exc.message, detail, target=self.err)
        else:
            print_error(str(exc) or exc.__class__.__name__, target=self.err)
