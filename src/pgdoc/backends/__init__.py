from importlib.metadata import entry_points
from typing import Dict, Type

from pgdoc.backends.base import Backend
from pgdoc.backends.documentdb import DocumentDBBackend
from pgdoc.backends.graphql import GraphQLBackend
from pgdoc.backends.mongo import MongoBackend
from pgdoc.backends.sql import SQLBackend
from pgdoc.common.errors import ConfigurationError, ErrorCode
from pgdoc.common.logger import get_logger
from pgdoc.models import ConnectionDescriptor, ProtocolKind

logger = get_logger(__name__)

ENTRY_POINT_GROUP = "pgdoc.backends"

BUILTIN_BACKENDS: Dict[str, Type[Backend]] = {
    ProtocolKind.SQL.value: SQLBackend,
    ProtocolKind.GRAPHQL.value: GraphQLBackend,
    ProtocolKind.MONGO.value: MongoBackend,
    ProtocolKind.DOCUMENTDB.value: DocumentDBBackend,
}


def discover_backends() -> Dict[str, Type[Backend]]:
    """Returns the built-in backends plus any registered under 'pgdoc.backends' entry points.

    Returns:
        Dict[str, Type[Backend]]: Dict mapping protocol kind (e.g., 'mongo') to the Backend class.
    """
    backends = dict(BUILTIN_BACKENDS)
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            backends[ep.name] = ep.load()
        except Exception as e:
            logger.error(f"Failed to load backend {ep.name}: {e}")
    return backends


def get_backend_class(kind: ProtocolKind) -> Type[Backend]:
    available = discover_backends()
    if kind.value not in available:
        raise ConfigurationError(
            f"No backend found for '{kind.value}'. Available: {sorted(available)}",
            ErrorCode.UNKNOWN_BACKEND,
        )
    return available[kind.value]


def create_backend(descriptor: ConnectionDescriptor) -> Backend:
    """Factory that instantiates the backend matching the descriptor's protocol kind."""
    return get_backend_class(descriptor.protocol_kind)(descriptor)


__all__ = [
    "Backend",
    "SQLBackend",
    "GraphQLBackend",
    "MongoBackend",
    "DocumentDBBackend",
    "discover_backends",
    "get_backend_class",
    "create_backend",
]
