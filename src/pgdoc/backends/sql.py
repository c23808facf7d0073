from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, text, Connection, Engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from pgdoc.backends.base import Backend
from pgdoc.common.errors import BackendError, ErrorCode, UsageError
from pgdoc.common.logger import get_logger
from pgdoc.models import InvocationMode, InvocationRequest, ProtocolKind, QueryResult

logger = get_logger(__name__)


def backend_message(exc: SQLAlchemyError) -> str:
    """Returns the driver's own error text, without SQLAlchemy's wrapping."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig).strip()
    return str(exc).strip()


def split_search_path(search_path: Optional[str]) -> List[str]:
    if not search_path:
        return []
    return [part.strip() for part in search_path.split(",") if part.strip()]


class SQLAlchemyBackend(Backend):
    """
    Base class for backends reached through a SQLAlchemy engine.
    Owns the engine and the single connection used by one invocation.
    """

    def __init__(self, descriptor):
        super().__init__(descriptor)
        self.engine: Optional[Engine] = None
        self.conn: Optional[Connection] = None

    @property
    def is_postgres(self) -> bool:
        return make_url(self.descriptor.endpoint).get_backend_name() == "postgresql"

    def _engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"isolation_level": "AUTOCOMMIT"}
        timeout_ms = self.descriptor.timeout_ms
        if timeout_ms and self.is_postgres:
            kwargs["connect_args"] = {"connect_timeout": max(1, timeout_ms // 1000)}
        return kwargs

    def connect(self) -> None:
        try:
            self.engine = create_engine(self.descriptor.endpoint, **self._engine_kwargs())
            self.conn = self.engine.connect()
        except SQLAlchemyError as e:
            logger.error(f"Failed to connect to {self}: {backend_message(e)}")
            raise BackendError(
                f"Could not connect to {self}", ErrorCode.CONNECTION_FAILED, detail=backend_message(e)
            ) from e
        logger.info(f"Connected to {self}")

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
        logger.debug(f"Closed {self}")

    def _require_connection(self) -> Connection:
        if self.conn is None:
            raise RuntimeError(f"Not connected to {self}")
        return self.conn


class SQLBackend(SQLAlchemyBackend):
    """Runs a statement verbatim against Postgres (or any SQLAlchemy URL)."""

    protocol_kind = ProtocolKind.SQL
    supported_modes = frozenset({InvocationMode.RAW_QUERY})

    def _prepare_session(self, conn: Connection) -> None:
        schemas = split_search_path(self.descriptor.default_namespace)
        if not schemas or not self.is_postgres:
            return

        preparer = conn.dialect.identifier_preparer
        if self.descriptor.create_schema:
            conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {preparer.quote(schemas[0])}"))
        path = ", ".join(preparer.quote(schema) for schema in schemas)
        conn.execute(text(f"SET search_path TO {path}"))
        logger.debug(f"search_path set to {path}")

    def execute(self, request: InvocationRequest) -> QueryResult:
        if request.mode != InvocationMode.RAW_QUERY:
            raise UsageError(
                f"{self} cannot run {request.mode.value} requests", ErrorCode.MODE_NOT_SUPPORTED
            )
        conn = self._require_connection()

        try:
            self._prepare_session(conn)
            # no_parameters: '%' and ':' in the statement must reach the server untouched.
            result = conn.exec_driver_sql(
                request.statement, execution_options={"no_parameters": True}
            )
            if result.returns_rows:
                rows = [dict(row) for row in result.mappings().all()]
                logger.info(f"{self} returned {len(rows)} rows")
                return QueryResult.from_rows(rows)
        except SQLAlchemyError as e:
            raise BackendError(
                "Statement failed", ErrorCode.DB_EXECUTION_ERROR, detail=backend_message(e)
            ) from e

        return QueryResult.acknowledged()
