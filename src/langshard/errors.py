"""Error codes, structured error model and exceptions for langshard.

``ErrorCode`` contains every error/warning code the router can produce.
``RoutingIssue`` is the Pydantic data model carried by every raised
``LangShardError`` and by failed partition outcomes.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Normalized error codes for multi-core routing.

    Values equal their names so they are stable strings suitable for
    metrics and alerting.  ``E_`` prefix = fatal, ``W_`` prefix = warning.
    """

    # Configuration
    E_CONFIG_DEFAULT_CORE_MISSING = "E_CONFIG_DEFAULT_CORE_MISSING"
    E_CONFIG_SERVER_URI_INVALID = "E_CONFIG_SERVER_URI_INVALID"

    # Routing (caller errors)
    E_ROUTE_NO_LANGUAGE = "E_ROUTE_NO_LANGUAGE"
    E_ROUTE_MULTI_LANGUAGE = "E_ROUTE_MULTI_LANGUAGE"
    E_ROUTE_UNSUPPORTED_OPERATION = "E_ROUTE_UNSUPPORTED_OPERATION"
    E_BATCH_EMPTY = "E_BATCH_EMPTY"
    E_DELETE_SCOPE = "E_DELETE_SCOPE"

    # Transport
    E_TRANSPORT_TIMEOUT = "E_TRANSPORT_TIMEOUT"
    E_TRANSPORT_CONNECT = "E_TRANSPORT_CONNECT"
    E_TRANSPORT_HTTP = "E_TRANSPORT_HTTP"
    E_TRANSPORT_CANCELLED = "E_TRANSPORT_CANCELLED"

    # Response
    E_RESPONSE_STATUS = "E_RESPONSE_STATUS"
    E_RESPONSE_MALFORMED = "E_RESPONSE_MALFORMED"

    # Warnings (non-fatal)
    W_LANGUAGE_UNMAPPED = "W_LANGUAGE_UNMAPPED"
    W_MAIN_LANGUAGE_ONLY = "W_MAIN_LANGUAGE_ONLY"


class RoutingIssue(BaseModel):
    """Structured error with code, message, and partition context.

    Note: this is a Pydantic model (data structure), not an exception.
    Raise one of the ``LangShardError`` subclasses, which wrap it.
    """

    code: ErrorCode
    message: str
    stage: str | None = None
    recoverable: bool = False
    partition: str | None = None
    language: str | None = None


class LangShardError(Exception):
    """Raisable exception wrapping a :class:`RoutingIssue`.

    Subclasses fix the default error code; callers may still override it
    with the ``code`` keyword.  The structured issue is available as
    ``.issue`` for logging and serialization.
    """

    default_code: ErrorCode = ErrorCode.E_ROUTE_UNSUPPORTED_OPERATION
    recoverable: bool = False

    def __init__(self, message: str, code: ErrorCode | None = None, **context: object) -> None:
        context.setdefault("recoverable", self.recoverable)
        self.issue = RoutingIssue(
            code=code or self.default_code,
            message=message,
            **context,  # type: ignore[arg-type]
        )
        super().__init__(message)

    @property
    def code(self) -> ErrorCode:
        return self.issue.code

    @property
    def message(self) -> str:
        return self.issue.message


class ConfigurationError(LangShardError):
    """Fatal at construction: the registry cannot guarantee a fallback core."""

    default_code = ErrorCode.E_CONFIG_DEFAULT_CORE_MISSING


class RoutingError(LangShardError):
    """Caller error detected before any network activity. Never retried."""

    default_code = ErrorCode.E_ROUTE_UNSUPPORTED_OPERATION


class EmptyBatchError(LangShardError):
    """Zero documents (or deletions) were submitted for a write batch."""

    default_code = ErrorCode.E_BATCH_EMPTY


class TransportError(LangShardError):
    """A single partition request failed at the transport level.

    Recoverable at the orchestration level: the orchestrator captures it
    into the partition outcome instead of aborting sibling partitions.
    """

    default_code = ErrorCode.E_TRANSPORT_CONNECT
    recoverable = True
