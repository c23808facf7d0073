from functools import wraps
import sys
import uuid

from pgdoc.cli.console import print_warning
from pgdoc.common.errors import PgDocError
from pgdoc.common.logger import get_logger, invocation_context
from pgdoc.render import ResultRenderer

logger = get_logger(__name__)


def handle_cli_errors(func):
    """
    Decorator to wrap CLI commands with unified error handling.

    - PgDocError: Prints a clean red error message on stderr, exits with its exit code.
    - KeyboardInterrupt: Exits with the standard SIGINT status.
    - Unexpected Exception: Prints the error, logs the traceback at debug level, exits 1.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        with invocation_context(uuid.uuid4().hex[:12], command=func.__name__):
            try:
                return func(*args, **kwargs)
            except PgDocError as e:
                logger.debug(f"Invocation failed with {e.code.value}")
                ResultRenderer().print_error(e)
                sys.exit(e.exit_code)
            except KeyboardInterrupt:
                print_warning("Operation cancelled by user.")
                sys.exit(130)
            except Exception as e:
                logger.debug("Unhandled exception", exc_info=True)
                ResultRenderer().print_error(RuntimeError(f"Unexpected error: {e}"))
                sys.exit(1)

    return wrapper
