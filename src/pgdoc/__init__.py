"""One-shot query dispatcher for the Postgres GraphQL / document stack."""
from pgdoc.models import (
    ConnectionDescriptor,
    InvocationMode,
    InvocationRequest,
    ProtocolKind,
    QueryResult,
    ResultKind,
)

__version__ = "0.1.0"

__all__ = [
    "ConnectionDescriptor",
    "InvocationMode",
    "InvocationRequest",
    "ProtocolKind",
    "QueryResult",
    "ResultKind",
]
