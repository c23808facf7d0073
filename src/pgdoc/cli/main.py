#!/usr/bin/env python3
"""Command-line entry point: one invocation, one backend, one request."""
import typer
from typing import Optional
from typing_extensions import Annotated

from pgdoc.cli.commands import run_document_command, run_raw_command
from pgdoc.cli.decorators import handle_cli_errors
from pgdoc.common.logger import configure_logging
from pgdoc.common.settings import settings
from pgdoc.models import ProtocolKind

app = typer.Typer(
    name="pgdoc",
    help="Query the Postgres GraphQL / document stack from the command line.",
    no_args_is_help=True,
    add_completion=False,
)

# Sub-commands receive their argv untouched; pgdoc.cli.args owns the grammar.
RAW_ARGS = {"allow_extra_args": True, "ignore_unknown_options": True}


@app.callback()
def global_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log progress to stderr")] = False,
    debug: Annotated[bool, typer.Option("--debug", help="Enable debug logging")] = False,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Also load .env.<name> (e.g. dev, prod)")] = None,
):
    """
    pgdoc CLI entry point.
    """
    if env:
        settings.configure_env(env)

    level = settings.log_level
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    configure_logging(level=level, json_format=settings.log_format.lower() == "json")


@app.command(context_settings=RAW_ARGS, add_help_option=False)
@handle_cli_errors
def sql(ctx: typer.Context):
    """
    Run one SQL statement (PGURL, SEARCH_PATH). Arguments are joined with spaces.
    """
    run_raw_command(ctx.args, ProtocolKind.SQL, prog="pgdoc sql", what="statement")


@app.command(context_settings=RAW_ARGS, add_help_option=False)
@handle_cli_errors
def gql(ctx: typer.Context):
    """
    Post one GraphQL query to GRAPHQL_URL. Arguments are joined with spaces.
    """
    run_raw_command(ctx.args, ProtocolKind.GRAPHQL, prog="pgdoc gql", what="query")


@app.command(context_settings=RAW_ARGS, add_help_option=False)
@handle_cli_errors
def mongo(ctx: typer.Context):
    """
    Find, insert or create an index through the MongoDB wire protocol (MONGODB_URL).
    """
    run_document_command(ctx.args, ProtocolKind.MONGO, prog="pgdoc mongo")


@app.command(context_settings=RAW_ARGS, add_help_option=False)
@handle_cli_errors
def docdb(ctx: typer.Context):
    """
    Find, insert or create an index through documentdb_api over SQL (POSTGRES_URL).
    """
    run_document_command(ctx.args, ProtocolKind.DOCUMENTDB, prog="pgdoc docdb")


def main():
    app()


if __name__ == "__main__":
    main()
