import json

import httpx
import pytest

from pgdoc.backends.graphql import GraphQLBackend
from pgdoc.common.errors import BackendError, ErrorCode
from pgdoc.models import ConnectionDescriptor, InvocationMode, InvocationRequest, ProtocolKind, ResultKind

ENDPOINT = "http://localhost:3000/rpc/graphql"
QUERY = "{ itemsCollection { edges { node { sku } } } }"


def _backend(handler, token=None):
    descriptor = ConnectionDescriptor(
        protocol_kind=ProtocolKind.GRAPHQL, endpoint=ENDPOINT, auth_token=token
    )
    backend = GraphQLBackend(descriptor, transport=httpx.MockTransport(handler))
    backend.connect()
    return backend


def _query():
    return InvocationRequest(mode=InvocationMode.RAW_QUERY, statement=QUERY)


class TestGraphQLBackend:

    def test_posts_query_and_returns_body(self):
        # Validates the request shape because pg_graphql expects {"query": ...} over POST.
        # Arrange
        seen = []
        body = {"data": {"itemsCollection": {"edges": [{"node": {"sku": "A"}}]}}}

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=body)

        backend = _backend(handler)

        # Act
        result = backend.execute(_query())

        # Assert
        assert seen[0].method == "POST"
        assert str(seen[0].url) == ENDPOINT
        assert json.loads(seen[0].content) == {"query": QUERY}
        assert "authorization" not in seen[0].headers
        assert result.kind == ResultKind.ACK
        assert result.ack == body

    def test_bearer_token_is_sent(self):
        # Arrange
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": {}})

        backend = _backend(handler, token="secret")

        # Act
        backend.execute(_query())

        # Assert
        assert seen[0].headers["authorization"] == "Bearer secret"

    def test_errors_without_data_raise(self):
        # Validates GraphQL failures because they arrive with HTTP 200.
        # Arrange
        backend = _backend(lambda request: httpx.Response(
            200, json={"data": None, "errors": [{"message": "Unknown field"}, {"message": "Bad arg"}]}
        ))

        # Act
        with pytest.raises(BackendError) as exc:
            backend.execute(_query())

        # Assert
        assert exc.value.code == ErrorCode.GRAPHQL_ERROR
        assert exc.value.detail == "Unknown field; Bad arg"

    def test_partial_data_is_returned_with_errors(self):
        # Arrange
        body = {"data": {"items": None}, "errors": [{"message": "partial"}]}
        backend = _backend(lambda request: httpx.Response(200, json=body))

        # Act
        result = backend.execute(_query())

        # Assert
        assert result.ack == body

    def test_http_error_status(self):
        # Arrange
        backend = _backend(lambda request: httpx.Response(500, text="internal error"))

        # Act
        with pytest.raises(BackendError) as exc:
            backend.execute(_query())

        # Assert
        assert exc.value.code == ErrorCode.HTTP_ERROR
        assert exc.value.detail == "internal error"

    def test_transport_failure_is_connection_error(self):
        # Arrange
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend = _backend(handler)

        # Act
        with pytest.raises(BackendError) as exc:
            backend.execute(_query())

        # Assert
        assert exc.value.code == ErrorCode.CONNECTION_FAILED

    def test_non_json_body(self):
        # Arrange
        backend = _backend(lambda request: httpx.Response(200, text="<html>oops</html>"))

        # Act / Assert
        with pytest.raises(BackendError) as exc:
            backend.execute(_query())
        assert exc.value.code == ErrorCode.GRAPHQL_ERROR

    def test_non_object_body_is_graphql_error(self):
        # Arrange
        backend = _backend(lambda request: httpx.Response(200, json=[1, 2]))

        # Act / Assert
        with pytest.raises(BackendError) as exc:
            backend.execute(_query())
        assert exc.value.code == ErrorCode.GRAPHQL_ERROR

    def test_body_renders_unwrapped(self, captured_renderer):
        # Validates the output shape because piped consumers read the response object directly.
        # Arrange
        body = {"data": {"itemsCollection": {"edges": []}}}
        backend = _backend(lambda request: httpx.Response(200, json=body))
        renderer, out, _ = captured_renderer

        # Act
        renderer.render(backend.execute(_query()))

        # Assert
        assert json.loads(out.getvalue()) == body

    def test_close_is_idempotent(self):
        # Arrange
        backend = _backend(lambda request: httpx.Response(200, json={}))

        # Act
        backend.close()
        backend.close()

        # Assert
        assert backend.client is None
