from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_LIMIT = 50


class InvocationMode(str, Enum):
    """Mutually exclusive operation kinds, one per invocation."""

    RAW_QUERY = "RawQuery"
    DOCUMENT_FIND = "DocumentFind"
    DOCUMENT_INSERT = "DocumentInsert"
    CREATE_INDEX = "CreateIndex"


class ProtocolKind(str, Enum):
    """Backend protocols the dispatcher can talk to."""

    SQL = "sql"
    GRAPHQL = "graphql"
    MONGO = "mongo"
    DOCUMENTDB = "documentdb"


class ResultKind(str, Enum):
    ROWS = "rows"
    DOCUMENTS = "documents"
    ACK = "ack"


class InvocationRequest(BaseModel):
    """A parsed command. Built once from argv and never mutated."""

    mode: InvocationMode
    target: Optional[str] = Field(
        default=None, description="Collection or table name."
    )
    statement: Optional[str] = Field(
        default=None, description="Verbatim statement text for RawQuery."
    )
    filter: Dict[str, Any] = Field(default_factory=dict)
    projection: Dict[str, Any] = Field(default_factory=dict)
    sort: Optional[Dict[str, Any]] = None
    limit: int = Field(default=DEFAULT_LIMIT, gt=0)
    payload: Optional[Dict[str, Any]] = Field(
        default=None, description="Document to insert, or index key spec."
    )
    index_options: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def _check_mode_fields(self) -> "InvocationRequest":
        if self.mode == InvocationMode.RAW_QUERY:
            if not self.statement:
                raise ValueError("RawQuery requires a statement")
        elif not self.target:
            raise ValueError(f"{self.mode.value} requires a target")
        if self.mode in (InvocationMode.DOCUMENT_INSERT, InvocationMode.CREATE_INDEX) and self.payload is None:
            raise ValueError(f"{self.mode.value} requires a payload")
        return self


class ConnectionDescriptor(BaseModel):
    """Resolved backend address, credentials and namespace."""

    protocol_kind: ProtocolKind
    endpoint: str
    auth_token: Optional[str] = None
    default_namespace: Optional[str] = Field(
        default=None,
        description="Schema search path (SQL) or database name (document backends)."
    )
    create_schema: bool = False
    timeout_ms: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.protocol_kind.value} backend"


class QueryResult(BaseModel):
    """Outcome of one request. Exactly one payload matches ``kind``."""

    kind: ResultKind
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    documents: List[Any] = Field(default_factory=list)
    ack: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]]) -> "QueryResult":
        return cls(kind=ResultKind.ROWS, rows=rows)

    @classmethod
    def from_documents(cls, documents: List[Any]) -> "QueryResult":
        return cls(kind=ResultKind.DOCUMENTS, documents=documents)

    @classmethod
    def acknowledged(cls, ack: Optional[Dict[str, Any]] = None) -> "QueryResult":
        return cls(kind=ResultKind.ACK, ack=ack)
