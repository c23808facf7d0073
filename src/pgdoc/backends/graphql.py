from typing import Any, Dict, Optional

import httpx

from pgdoc.backends.base import Backend
from pgdoc.common.errors import BackendError, ErrorCode, UsageError
from pgdoc.common.logger import get_logger
from pgdoc.models import InvocationMode, InvocationRequest, ProtocolKind, QueryResult

logger = get_logger(__name__)


def graphql_error_message(body: Dict[str, Any]) -> str:
    messages = []
    for err in body.get("errors") or []:
        messages.append(err.get("message", str(err)) if isinstance(err, dict) else str(err))
    return "; ".join(messages)


class GraphQLBackend(Backend):
    """Posts a GraphQL document to the pg_graphql HTTP endpoint."""

    protocol_kind = ProtocolKind.GRAPHQL
    supported_modes = frozenset({InvocationMode.RAW_QUERY})

    def __init__(self, descriptor, transport: Optional[httpx.BaseTransport] = None):
        super().__init__(descriptor)
        self._transport = transport
        self.client: Optional[httpx.Client] = None

    def _client_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": {"Content-Type": "application/json"}}
        if self.descriptor.auth_token:
            kwargs["headers"]["Authorization"] = f"Bearer {self.descriptor.auth_token}"
        if self.descriptor.timeout_ms:
            kwargs["timeout"] = self.descriptor.timeout_ms / 1000
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return kwargs

    def connect(self) -> None:
        self.client = httpx.Client(**self._client_kwargs())
        logger.info(f"Client created for {self}")

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
        logger.debug(f"Closed {self}")

    def execute(self, request: InvocationRequest) -> QueryResult:
        if request.mode != InvocationMode.RAW_QUERY:
            raise UsageError(f"{self} cannot run {request.mode.value} requests", ErrorCode.MODE_NOT_SUPPORTED)
        if self.client is None:
            raise RuntimeError(f"Not connected to {self}")

        try:
            response = self.client.post(self.descriptor.endpoint, json={"query": request.statement})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BackendError(
                f"GraphQL endpoint returned HTTP {e.response.status_code}",
                ErrorCode.HTTP_ERROR,
                detail=e.response.text.strip() or None,
            ) from e
        except httpx.HTTPError as e:
            raise BackendError(
                f"Could not reach {self}", ErrorCode.CONNECTION_FAILED, detail=str(e)
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(
                "GraphQL endpoint returned a non-JSON body", ErrorCode.GRAPHQL_ERROR, detail=response.text[:200]
            ) from e

        if not isinstance(body, dict):
            raise BackendError(
                "GraphQL endpoint returned a non-object body", ErrorCode.GRAPHQL_ERROR, detail=response.text[:200]
            )
        if body.get("errors") and body.get("data") is None:
            raise BackendError("GraphQL query failed", ErrorCode.GRAPHQL_ERROR, detail=graphql_error_message(body))

        # The response object is printed as-is, not wrapped in an array.
        return QueryResult.acknowledged(body)
