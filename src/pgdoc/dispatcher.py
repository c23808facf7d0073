"""
Backend dispatcher: one request per invocation, no batching and no retry.
"""
from typing import Callable, Optional

from pgdoc.backends import create_backend, get_backend_class
from pgdoc.common.errors import ErrorCode, UsageError
from pgdoc.common.logger import get_logger
from pgdoc.lifecycle import BackendFactory, backend_session
from pgdoc.models import ConnectionDescriptor, InvocationRequest, QueryResult

logger = get_logger(__name__)


def check_mode_supported(request: InvocationRequest, descriptor: ConnectionDescriptor) -> None:
    """Rejects a mode the selected backend cannot serve, before connecting."""
    backend_cls = get_backend_class(descriptor.protocol_kind)
    if not backend_cls.supports(request.mode):
        raise UsageError(
            f"The {descriptor.protocol_kind.value} backend does not support {request.mode.value}",
            ErrorCode.MODE_NOT_SUPPORTED,
        )


def dispatch(
    request: InvocationRequest,
    descriptor: ConnectionDescriptor,
    factory: Optional[BackendFactory] = None,
    on_result: Optional[Callable[[QueryResult], None]] = None,
) -> QueryResult:
    """Issue ``request`` against the backend described by ``descriptor``.

    Args:
        request: The parsed invocation.
        descriptor: Resolved connection details.
        factory: Optional backend factory, defaults to the registry lookup.
        on_result: Called with the result while the connection is still open.

    Returns:
        QueryResult: Rows, documents or an acknowledgement.

    Raises:
        UsageError: If the backend does not support the request mode.
        BackendError: If the remote call fails.
    """
    check_mode_supported(request, descriptor)

    logger.info(f"Dispatching {request.mode.value} to {descriptor}")
    with backend_session(descriptor, factory or create_backend) as backend:
        result = backend.execute(request)
        if on_result is not None:
            on_result(result)
        return result
