import logging
from unittest.mock import MagicMock

import pytest

from pgdoc.backends import (
    DocumentDBBackend,
    GraphQLBackend,
    MongoBackend,
    SQLBackend,
    discover_backends,
    get_backend_class,
)
from pgdoc.common.errors import BackendError, ErrorCode, UsageError
from pgdoc.dispatcher import dispatch
from pgdoc.lifecycle import backend_session
from pgdoc.models import ConnectionDescriptor, InvocationMode, InvocationRequest, ProtocolKind, QueryResult


def _find_request():
    return InvocationRequest(mode=InvocationMode.DOCUMENT_FIND, target="items")


class TestBackendSession:

    def test_releases_once_on_success(self, recording_factory, mongo_descriptor):
        # Validates the cleanup invariant because leaked connections exhaust backend limits.
        # Act
        with backend_session(mongo_descriptor, recording_factory) as backend:
            backend.execute(_find_request())

        # Assert
        assert backend.connect_calls == 1
        assert backend.close_calls == 1

    def test_releases_once_when_body_raises(self, recording_factory, mongo_descriptor):
        # Act
        with pytest.raises(RuntimeError):
            with backend_session(mongo_descriptor, recording_factory):
                raise RuntimeError("boom")

        # Assert
        assert recording_factory.built[0].close_calls == 1

    def test_releases_once_when_connect_fails(self, make_factory, mongo_descriptor):
        # Validates partial-connect cleanup because clients may hold sockets before failing.
        # Arrange
        factory = make_factory(
            connect_error=BackendError("down", ErrorCode.CONNECTION_FAILED)
        )

        # Act
        with pytest.raises(BackendError):
            with backend_session(mongo_descriptor, factory):
                pytest.fail("body must not run when connect fails")

        # Assert
        assert factory.built[0].close_calls == 1


    def test_close_failure_does_not_replace_result(self, make_factory, mongo_descriptor, caplog):
        # Validates release errors because a rendered result must not be followed by a failure.
        # Arrange
        expected = QueryResult.from_documents([{"sku": "A"}])
        factory = make_factory(result=expected, close_error=OSError("socket already closed"))

        # Act
        with caplog.at_level(logging.WARNING, logger="pgdoc.lifecycle"):
            result = dispatch(_find_request(), mongo_descriptor, factory)

        # Assert
        assert result == expected
        assert factory.built[0].close_calls == 1
        assert "socket already closed" in caplog.text

    def test_close_failure_keeps_original_error(self, make_factory, mongo_descriptor):
        # Arrange
        factory = make_factory(
            execute_error=BackendError("boom", ErrorCode.DB_EXECUTION_ERROR),
            close_error=OSError("socket already closed"),
        )

        # Act / Assert
        with pytest.raises(BackendError):
            dispatch(_find_request(), mongo_descriptor, factory)

class TestDispatch:

    def test_returns_backend_result_and_releases(self, make_factory, mongo_descriptor):
        # Arrange
        expected = QueryResult.from_documents([{"sku": "B"}])
        factory = make_factory(result=expected)

        # Act
        result = dispatch(_find_request(), mongo_descriptor, factory)

        # Assert
        assert result == expected
        assert factory.built[0].requests == [_find_request()]
        assert factory.built[0].close_calls == 1

    def test_backend_error_propagates_after_release(self, make_factory, mongo_descriptor):
        # Validates error propagation because backend failures are terminal and never retried.
        # Arrange
        factory = make_factory(
            execute_error=BackendError("dup", ErrorCode.WRITE_CONFLICT, detail="E11000 duplicate key")
        )

        # Act
        with pytest.raises(BackendError) as exc:
            dispatch(_find_request(), mongo_descriptor, factory)

        # Assert
        assert exc.value.detail == "E11000 duplicate key"
        assert len(factory.built) == 1
        assert factory.built[0].connect_calls == 1
        assert factory.built[0].close_calls == 1

    def test_result_consumer_runs_before_release(self, make_factory, mongo_descriptor):
        # Validates ordering because rendering happens before disconnect.
        # Arrange
        factory = make_factory()
        seen = []

        def consumer(result):
            seen.append(factory.built[0].close_calls)

        # Act
        dispatch(_find_request(), mongo_descriptor, factory, on_result=consumer)

        # Assert
        assert seen == [0]
        assert factory.built[0].close_calls == 1

    def test_release_runs_when_consumer_fails(self, make_factory, mongo_descriptor):
        # Arrange
        factory = make_factory()

        def consumer(result):
            raise BrokenPipeError()

        # Act
        with pytest.raises(BrokenPipeError):
            dispatch(_find_request(), mongo_descriptor, factory, on_result=consumer)

        # Assert
        assert factory.built[0].close_calls == 1

    def test_unsupported_mode_rejected_before_connecting(self, make_factory):
        # Validates mode checks because a RawQuery cannot be sent over the document wire protocol.
        # Arrange
        factory = make_factory()
        descriptor = ConnectionDescriptor(protocol_kind=ProtocolKind.MONGO, endpoint="mongodb://x")
        request = InvocationRequest(mode=InvocationMode.RAW_QUERY, statement="SELECT 1")

        # Act
        with pytest.raises(UsageError) as exc:
            dispatch(request, descriptor, factory)

        # Assert
        assert exc.value.code == ErrorCode.MODE_NOT_SUPPORTED
        assert factory.built == []


class PluginMongoBackend(MongoBackend):
    """Stands in for a third-party backend registered under the same kind."""


class TestBackendRegistry:

    @pytest.mark.parametrize("kind, expected", [
        (ProtocolKind.SQL, SQLBackend),
        (ProtocolKind.GRAPHQL, GraphQLBackend),
        (ProtocolKind.MONGO, MongoBackend),
        (ProtocolKind.DOCUMENTDB, DocumentDBBackend),
    ])
    def test_builtin_backends_resolve(self, kind, expected):
        assert get_backend_class(kind) is expected

    def test_entry_point_backends_are_discovered(self, monkeypatch):
        # Validates plugin discovery because third-party backends register via entry points.
        # Arrange
        plugin = MagicMock()
        plugin.name = "mongo"
        plugin.load.return_value = PluginMongoBackend
        monkeypatch.setattr("pgdoc.backends.entry_points", lambda group: [plugin])

        # Act
        backends = discover_backends()

        # Assert
        assert backends["mongo"] is PluginMongoBackend
        assert backends["sql"] is SQLBackend

    def test_broken_entry_point_is_skipped(self, monkeypatch):
        # Arrange
        plugin = MagicMock()
        plugin.name = "broken"
        plugin.load.side_effect = ImportError("missing dependency")
        monkeypatch.setattr("pgdoc.backends.entry_points", lambda group: [plugin])

        # Act
        backends = discover_backends()

        # Assert
        assert "broken" not in backends
        assert set(backends) == {"sql", "graphql", "mongo", "documentdb"}
