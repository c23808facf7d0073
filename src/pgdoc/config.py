"""Resolves environment settings into a ConnectionDescriptor.

Resolution is pure computation over ``Settings``; no network I/O happens here.
"""
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from pgdoc.common.errors import ConfigurationError, ErrorCode
from pgdoc.common.settings import Settings, settings as default_settings
from pgdoc.models import ConnectionDescriptor, ProtocolKind

SQLALCHEMY_POSTGRES_DRIVER = "postgresql+psycopg"


def normalize_postgres_url(url: str) -> str:
    """Maps libpq-style ``postgres://`` URLs onto the psycopg SQLAlchemy dialect.

    URLs that already name a driver (``postgresql+asyncpg://``) or another
    backend (``sqlite://``) are returned unchanged.
    """
    try:
        parsed = make_url(url)
    except ArgumentError as e:
        raise ConfigurationError(
            f"Invalid database URL '{url}'", ErrorCode.MISSING_ENDPOINT, detail=str(e)
        ) from e

    if parsed.drivername in ("postgres", "postgresql"):
        parsed = parsed.set(drivername=SQLALCHEMY_POSTGRES_DRIVER)
    return parsed.render_as_string(hide_password=False)


def _require(value: Optional[str], env_name: str, kind: ProtocolKind) -> str:
    if not value or not value.strip():
        raise ConfigurationError(
            f"{env_name} must be set to use the {kind.value} backend",
            ErrorCode.MISSING_ENDPOINT,
        )
    return value.strip()


def resolve_descriptor(kind: ProtocolKind, settings: Optional[Settings] = None) -> ConnectionDescriptor:
    """Builds the ConnectionDescriptor for ``kind``.

    Args:
        kind: The backend protocol selected by the command.
        settings: Settings to resolve from. Defaults to the process settings.

    Returns:
        ConnectionDescriptor: Immutable connection details.

    Raises:
        ConfigurationError: If the backend needs an endpoint that is not configured.
    """
    settings = settings or default_settings

    if kind == ProtocolKind.SQL:
        return ConnectionDescriptor(
            protocol_kind=kind,
            endpoint=normalize_postgres_url(settings.pg_url),
            default_namespace=settings.search_path,
            create_schema=settings.sql_create_schema,
            timeout_ms=settings.timeout_ms,
        )

    if kind == ProtocolKind.DOCUMENTDB:
        url = _require(settings.postgres_url, "POSTGRES_URL", kind)
        return ConnectionDescriptor(
            protocol_kind=kind,
            endpoint=normalize_postgres_url(url),
            default_namespace=settings.document_database,
            timeout_ms=settings.timeout_ms,
        )

    if kind == ProtocolKind.MONGO:
        return ConnectionDescriptor(
            protocol_kind=kind,
            endpoint=_require(settings.mongodb_url, "MONGODB_URL", kind),
            default_namespace=settings.document_database,
            timeout_ms=settings.timeout_ms,
        )

    if kind == ProtocolKind.GRAPHQL:
        return ConnectionDescriptor(
            protocol_kind=kind,
            endpoint=_require(settings.graphql_url, "GRAPHQL_URL", kind),
            auth_token=settings.graphql_token,
            timeout_ms=settings.timeout_ms,
        )

    raise ConfigurationError(f"Unsupported backend kind: {kind}", ErrorCode.UNKNOWN_BACKEND)
