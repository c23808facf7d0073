from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "detail": "dim",
})

# stdout carries result payloads only; everything else goes to stderr.
console = Console(theme=custom_theme, highlight=False)
err_console = Console(theme=custom_theme, stderr=True, highlight=False)


def print_error(message: str, detail: str = None, target: Console = None) -> None:
    target = target or err_console
    target.print(f"[error]Error:[/error] {escape(message)}")
    if detail:
        target.print(f"[detail]{escape(detail)}[/detail]")


def print_warning(message: str, target: Console = None) -> None:
    (target or err_console).print(f"[warning]Warning:[/warning] {escape(message)}")
