import io

import pytest
from rich.console import Console

from pgdoc.backends.base import Backend
from pgdoc.cli.console import custom_theme
from pgdoc.models import ConnectionDescriptor, InvocationMode, ProtocolKind, QueryResult
from pgdoc.render import ResultRenderer

PGDOC_ENV_VARS = (
    "PGURL",
    "SEARCH_PATH",
    "SQL_CREATE_SCHEMA",
    "GRAPHQL_URL",
    "GRAPHQL_TOKEN",
    "MONGODB_URL",
    "POSTGRES_URL",
    "DOCUMENT_DATABASE",
    "PGDOC_TIMEOUT_MS",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


class RecordingBackend(Backend):
    """Backend stub that counts lifecycle calls and returns a canned result."""

    protocol_kind = ProtocolKind.MONGO
    supported_modes = frozenset(InvocationMode)

    def __init__(self, descriptor, result=None, execute_error=None, connect_error=None, close_error=None):
        super().__init__(descriptor)
        self.close_error = close_error
        self.result = result or QueryResult.from_documents([])
        self.execute_error = execute_error
        self.connect_error = connect_error
        self.connect_calls = 0
        self.close_calls = 0
        self.requests = []

    def connect(self):
        self.connect_calls += 1
        if self.connect_error:
            raise self.connect_error

    def execute(self, request):
        self.requests.append(request)
        if self.execute_error:
            raise self.execute_error
        return self.result

    def close(self):
        self.close_calls += 1
        if self.close_error:
            raise self.close_error


class RecordingFactory:
    """Backend factory that remembers every backend it built."""

    def __init__(self, **backend_kwargs):
        self.backend_kwargs = backend_kwargs
        self.built = []

    def __call__(self, descriptor):
        backend = RecordingBackend(descriptor, **self.backend_kwargs)
        self.built.append(backend)
        return backend

    @property
    def connections(self) -> int:
        return sum(backend.connect_calls for backend in self.built)


@pytest.fixture
def clean_env(monkeypatch):
    """Removes every pgdoc variable so settings fall back to their defaults."""
    for name in PGDOC_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def recording_factory():
    return RecordingFactory()


@pytest.fixture
def mongo_descriptor():
    return ConnectionDescriptor(
        protocol_kind=ProtocolKind.MONGO,
        endpoint="mongodb://localhost:27017",
        default_namespace="postgres",
    )


@pytest.fixture
def captured_renderer():
    """Returns a renderer writing to in-memory stdout / stderr buffers."""
    out, err = io.StringIO(), io.StringIO()
    renderer = ResultRenderer(
        out=Console(file=out, width=60, theme=custom_theme, highlight=False, color_system=None),
        err=Console(file=err, width=60, theme=custom_theme, highlight=False, color_system=None),
    )
    return renderer, out, err


@pytest.fixture
def make_factory():
    """Returns a builder for factories whose backends fail or answer as configured."""
    return RecordingFactory
