from typing import Optional, Sequence

from pgdoc.cli.args import (
    build_raw_request,
    document_usage,
    parse_document_args,
    raw_usage,
    wants_raw_help,
)
from pgdoc.common.logger import get_logger
from pgdoc.common.settings import Settings
from pgdoc.config import resolve_descriptor
from pgdoc.dispatcher import dispatch
from pgdoc.lifecycle import BackendFactory
from pgdoc.models import InvocationRequest, ProtocolKind, QueryResult
from pgdoc.render import ResultRenderer

logger = get_logger(__name__)


def execute_request(
    request: InvocationRequest,
    kind: ProtocolKind,
    renderer: ResultRenderer,
    settings: Optional[Settings] = None,
    factory: Optional[BackendFactory] = None,
) -> QueryResult:
    """Resolve configuration, dispatch the request and render the result.

    Configuration errors surface here, before any connection is attempted.
    """
    descriptor = resolve_descriptor(kind, settings)
    return dispatch(request, descriptor, factory, on_result=renderer.render)


def run_raw_command(
    argv: Sequence[str],
    kind: ProtocolKind,
    prog: str,
    what: str = "statement",
    renderer: Optional[ResultRenderer] = None,
    settings: Optional[Settings] = None,
    factory: Optional[BackendFactory] = None,
) -> Optional[QueryResult]:
    """Runs the joined argv as one statement (SQL or GraphQL)."""
    renderer = renderer or ResultRenderer()
    if wants_raw_help(argv):
        renderer.print_usage(raw_usage(prog, what))
        return None

    request = build_raw_request(argv, what)
    return execute_request(request, kind, renderer, settings, factory)


def run_document_command(
    argv: Sequence[str],
    kind: ProtocolKind,
    prog: str,
    renderer: Optional[ResultRenderer] = None,
    settings: Optional[Settings] = None,
    factory: Optional[BackendFactory] = None,
) -> Optional[QueryResult]:
    """Runs a find, insert or index creation against a document backend."""
    renderer = renderer or ResultRenderer()
    request = parse_document_args(argv)
    if request is None:
        renderer.print_usage(document_usage(prog))
        return None

    logger.debug(f"Parsed {request.mode.value} request for {request.target}")
    return execute_request(request, kind, renderer, settings, factory)
