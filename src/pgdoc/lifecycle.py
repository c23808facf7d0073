from contextlib import contextmanager
from typing import Callable, Iterator

from pgdoc.backends import Backend, create_backend
from pgdoc.common.logger import get_logger
from pgdoc.models import ConnectionDescriptor

logger = get_logger(__name__)

BackendFactory = Callable[[ConnectionDescriptor], Backend]


@contextmanager
def backend_session(
    descriptor: ConnectionDescriptor,
    factory: BackendFactory = create_backend,
) -> Iterator[Backend]:
    """Acquire a backend connection, yield it, and always release it.

    ``close()`` runs exactly once, whether the body succeeds, raises, or
    ``connect()`` itself fails part way. A failing ``close()`` is logged at
    warning level and never replaces the outcome of the request.

    Args:
        descriptor: Resolved connection details.
        factory: Builds the backend for the descriptor.

    Yields:
        Backend: A connected, single-use backend.
    """
    backend = factory(descriptor)
    logger.debug(f"Opening {backend}")
    try:
        backend.connect()
        yield backend
    finally:
        try:
            backend.close()
        except Exception as e:
            # The result is already rendered, or another error is propagating.
            logger.warning(f"Failed to close {backend}: {e}")
