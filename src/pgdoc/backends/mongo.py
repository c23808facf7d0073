from typing import Any, Dict, Optional

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from pgdoc.backends.base import Backend
from pgdoc.backends.documents import default_index_name, prepare_insert, sort_pairs
from pgdoc.common.errors import BackendError, ErrorCode, UsageError
from pgdoc.common.logger import get_logger
from pgdoc.models import InvocationMode, InvocationRequest, ProtocolKind, QueryResult

logger = get_logger(__name__)


def _write_error_message(exc: DuplicateKeyError) -> str:
    if exc.details and exc.details.get("errmsg"):
        return exc.details["errmsg"]
    return str(exc)


class MongoBackend(Backend):
    """Talks to the MongoDB-wire-compatible gateway through pymongo."""

    protocol_kind = ProtocolKind.MONGO
    supported_modes = frozenset({
        InvocationMode.DOCUMENT_FIND,
        InvocationMode.DOCUMENT_INSERT,
        InvocationMode.CREATE_INDEX,
    })

    def __init__(self, descriptor, client_cls=MongoClient):
        super().__init__(descriptor)
        self._client_cls = client_cls
        self.client: Optional[MongoClient] = None

    def _client_kwargs(self) -> Dict[str, Any]:
        timeout_ms = self.descriptor.timeout_ms
        if not timeout_ms:
            return {}
        return {
            "serverSelectionTimeoutMS": timeout_ms,
            "connectTimeoutMS": timeout_ms,
        }

    def connect(self) -> None:
        try:
            self.client = self._client_cls(self.descriptor.endpoint, **self._client_kwargs())
        except PyMongoError as e:
            raise BackendError(
                f"Could not connect to {self}", ErrorCode.CONNECTION_FAILED, detail=str(e)
            ) from e
        logger.info(f"Client created for {self}")

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
        logger.debug(f"Closed {self}")

    def execute(self, request: InvocationRequest) -> QueryResult:
        if self.client is None:
            raise RuntimeError(f"Not connected to {self}")

        try:
            collection = self.client[self.descriptor.default_namespace][request.target]
            if request.mode == InvocationMode.DOCUMENT_FIND:
                return self._find(collection, request)
            if request.mode == InvocationMode.DOCUMENT_INSERT:
                return self._insert(collection, request)
            if request.mode == InvocationMode.CREATE_INDEX:
                return self._create_index(collection, request)
        except DuplicateKeyError as e:
            raise BackendError(
                "Write rejected", ErrorCode.WRITE_CONFLICT, detail=_write_error_message(e)
            ) from e
        except ConnectionFailure as e:
            raise BackendError(
                f"Could not reach {self}", ErrorCode.CONNECTION_FAILED, detail=str(e)
            ) from e
        except PyMongoError as e:
            raise BackendError(
                f"{request.mode.value} failed", ErrorCode.DB_EXECUTION_ERROR, detail=str(e)
            ) from e

        raise UsageError(f"{self} cannot run {request.mode.value} requests", ErrorCode.MODE_NOT_SUPPORTED)

    def _find(self, collection, request: InvocationRequest) -> QueryResult:
        cursor = collection.find(request.filter, request.projection or None)
        if request.sort:
            cursor = cursor.sort(sort_pairs(request.sort))
        documents = list(cursor.limit(request.limit))
        logger.info(f"{self} returned {len(documents)} documents from {request.target}")
        return QueryResult.from_documents(documents[:request.limit])

    def _insert(self, collection, request: InvocationRequest) -> QueryResult:
        document = prepare_insert(request.payload)
        result = collection.insert_one(document)
        logger.info(f"Inserted {result.inserted_id} into {request.target}")
        return QueryResult.acknowledged({"inserted_id": result.inserted_id})

    def _create_index(self, collection, request: InvocationRequest) -> QueryResult:
        options = dict(request.index_options)
        options.setdefault("name", default_index_name(request.payload))
        name = collection.create_index(sort_pairs(request.payload), **options)
        logger.info(f"Created index {name} on {request.target}")
        return QueryResult.acknowledged({"index_name": name})
