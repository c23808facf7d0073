from abc import ABC, abstractmethod
from typing import ClassVar, FrozenSet

from pgdoc.models import ConnectionDescriptor, InvocationMode, InvocationRequest, ProtocolKind, QueryResult


class Backend(ABC):
    """Canonical interface every backend connection must implement.

    A backend is single use: it is connected once, executes one request and
    is closed. ``close()`` must be safe to call after a failed ``connect()``.
    """

    protocol_kind: ClassVar[ProtocolKind]
    supported_modes: ClassVar[FrozenSet[InvocationMode]] = frozenset()

    def __init__(self, descriptor: ConnectionDescriptor):
        self.descriptor = descriptor

    def __str__(self):
        return f"{self.descriptor.protocol_kind.value} backend"

    @classmethod
    def supports(cls, mode: InvocationMode) -> bool:
        return mode in cls.supported_modes

    @abstractmethod
    def connect(self) -> None:
        """Open the connection / client described by the descriptor."""
        pass

    @abstractmethod
    def execute(self, request: InvocationRequest) -> QueryResult:
        """Translate the request into one native backend call."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""
        pass
