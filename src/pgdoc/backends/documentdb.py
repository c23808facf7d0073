from typing import Any, Dict

from bson import json_util
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pgdoc.backends.documents import default_index_name, prepare_insert
from pgdoc.backends.sql import SQLAlchemyBackend, backend_message
from pgdoc.common.errors import BackendError, ErrorCode, UsageError
from pgdoc.common.logger import get_logger
from pgdoc.models import InvocationMode, InvocationRequest, ProtocolKind, QueryResult

logger = get_logger(__name__)

FIND_SQL = text(
    "SELECT cursorpage::text AS page "
    "FROM documentdb_api.find_cursor_first_page(:database, CAST(:spec AS documentdb_core.bson))"
)
INSERT_SQL = text(
    "SELECT documentdb_api.insert_one(:database, :collection, CAST(:document AS documentdb_core.bson))::text AS response"
)
CREATE_INDEX_SQL = text(
    "SELECT retval::text AS response, ok "
    "FROM documentdb_api.create_indexes_background(:database, CAST(:spec AS documentdb_core.bson))"
)


def to_bson_text(value: Any) -> str:
    """Serializes a command or document as extended JSON for a bson cast."""
    return json_util.dumps(value, json_options=json_util.CANONICAL_JSON_OPTIONS)


def from_bson_text(raw: str) -> Dict[str, Any]:
    """Parses a bson value rendered as text by the server.

    Raises:
        BackendError: If the server answered with something that is not extended JSON.
    """
    try:
        return json_util.loads(raw)
    except (ValueError, TypeError) as e:
        raise BackendError(
            "Unreadable response from documentdb_api", ErrorCode.DB_EXECUTION_ERROR, detail=str(raw)
        ) from e


class DocumentDBBackend(SQLAlchemyBackend):
    """Runs document commands through the documentdb_api SQL functions."""

    protocol_kind = ProtocolKind.DOCUMENTDB
    supported_modes = frozenset({
        InvocationMode.DOCUMENT_FIND,
        InvocationMode.DOCUMENT_INSERT,
        InvocationMode.CREATE_INDEX,
    })

    @property
    def database(self) -> str:
        return self.descriptor.default_namespace

    def execute(self, request: InvocationRequest) -> QueryResult:
        conn = self._require_connection()
        try:
            if request.mode == InvocationMode.DOCUMENT_FIND:
                return self._find(conn, request)
            if request.mode == InvocationMode.DOCUMENT_INSERT:
                return self._insert(conn, request)
            if request.mode == InvocationMode.CREATE_INDEX:
                return self._create_index(conn, request)
        except SQLAlchemyError as e:
            raise BackendError(
                f"{request.mode.value} failed", ErrorCode.DB_EXECUTION_ERROR, detail=backend_message(e)
            ) from e

        raise UsageError(f"{self} cannot run {request.mode.value} requests", ErrorCode.MODE_NOT_SUPPORTED)

    def _find(self, conn, request: InvocationRequest) -> QueryResult:
        spec: Dict[str, Any] = {
            "find": request.target,
            "filter": request.filter,
            "limit": request.limit,
            # The whole result has to fit in the first cursor page.
            "batchSize": request.limit,
        }
        if request.projection:
            spec["projection"] = request.projection
        if request.sort:
            spec["sort"] = request.sort

        page = conn.execute(FIND_SQL, {"database": self.database, "spec": to_bson_text(spec)}).scalar()
        if page is None:
            return QueryResult.from_documents([])

        response = from_bson_text(page)
        self._raise_for_command_error(response, request)
        documents = response.get("cursor", {}).get("firstBatch", [])
        logger.info(f"{self} returned {len(documents)} documents from {request.target}")
        return QueryResult.from_documents(list(documents)[:request.limit])

    def _insert(self, conn, request: InvocationRequest) -> QueryResult:
        document = prepare_insert(request.payload)
        raw = conn.execute(INSERT_SQL, {
            "database": self.database,
            "collection": request.target,
            "document": to_bson_text(document),
        }).scalar()

        response = from_bson_text(raw) if raw else {}
        self._raise_for_command_error(response, request)
        logger.info(f"Inserted {document['_id']} into {request.target}")
        return QueryResult.acknowledged({"inserted_id": document["_id"]})

    def _create_index(self, conn, request: InvocationRequest) -> QueryResult:
        index: Dict[str, Any] = {"key": request.payload, "name": default_index_name(request.payload)}
        index.update(request.index_options)
        spec = {"createIndexes": request.target, "indexes": [index]}

        row = conn.execute(CREATE_INDEX_SQL, {"database": self.database, "spec": to_bson_text(spec)}).mappings().first()
        response = from_bson_text(row["response"]) if row and row["response"] else {}
        self._raise_for_command_error(response, request)
        if row is not None and row["ok"] is False:
            raise BackendError(
                "CreateIndex failed", ErrorCode.DB_EXECUTION_ERROR, detail="index creation was not acknowledged"
            )
        logger.info(f"Created index {index['name']} on {request.target}")
        return QueryResult.acknowledged({"index_name": index["name"]})

    def _raise_for_command_error(self, response: Dict[str, Any], request: InvocationRequest) -> None:
        """Raises when a command response reports a failure or write errors."""
        write_errors = response.get("writeErrors") or []
        if write_errors:
            first = write_errors[0]
            code = ErrorCode.WRITE_CONFLICT if first.get("code") == 11000 else ErrorCode.DB_EXECUTION_ERROR
            raise BackendError("Write rejected", code, detail=first.get("errmsg", str(first)))

        if "ok" in response and not response["ok"]:
            raise BackendError(
                f"{request.mode.value} failed",
                ErrorCode.DB_EXECUTION_ERROR,
                detail=response.get("errmsg", json_util.dumps(response)),
            )
