"""Pydantic models and enumerations for langshard.

Contains the request-scoped value types that flow between the router,
batcher, orchestrator and aggregator: ``OperationKind``, ``ServerAddress``,
``ShardRef``, ``EndpointDescriptor``, the two route results
(``SingleTarget`` / ``FederatedTarget``), ``DocumentRef``, ``RawResponse``,
``PartitionOutcome`` and ``UpdateOutcome``.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from langshard.errors import ConfigurationError, ErrorCode


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class OperationKind(str, Enum):
    """Kind of request sent to a partition.

    Each kind has a fixed routing policy: ``QUERY`` may be sharded across
    partitions, every other kind targets exactly one partition per request.
    """

    QUERY = "query"
    WRITE = "write"
    COMMIT = "commit"
    OPTIMIZE = "optimize"
    PING = "ping"

    @property
    def path(self) -> str:
        """Request handler path on the search server."""
        return _OPERATION_PATHS[self]


_OPERATION_PATHS: dict[OperationKind, str] = {
    OperationKind.QUERY: "/select",
    OperationKind.WRITE: "/update",
    OperationKind.COMMIT: "/update",
    OperationKind.OPTIMIZE: "/update",
    OperationKind.PING: "/admin/ping",
}


# ---------------------------------------------------------------------------
# Addressing
# ---------------------------------------------------------------------------


class ServerAddress(BaseModel):
    """Base search-server address split into protocol and host.

    ``host`` may carry a path prefix, e.g. ``localhost:8983/solr``.
    """

    model_config = ConfigDict(frozen=True)

    protocol: str = "http"
    host: str = "localhost:8983/solr"

    @classmethod
    def parse(cls, uri: str) -> ServerAddress:
        """Split ``protocol://host[/path]`` into a :class:`ServerAddress`."""
        protocol, sep, host = uri.partition("://")
        if not sep or not protocol or not host:
            raise ConfigurationError(
                f"Invalid search server URI: {uri!r}",
                code=ErrorCode.E_CONFIG_SERVER_URI_INVALID,
                stage="config",
            )
        return cls(protocol=protocol, host=host.rstrip("/"))

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}"


class ShardRef(BaseModel):
    """One ``host/partition`` entry of a federated shard list."""

    model_config = ConfigDict(frozen=True)

    host: str
    partition: str

    def __str__(self) -> str:
        return f"{self.host}/{self.partition}"


class EndpointDescriptor(BaseModel):
    """Fully-qualified target of a single request.

    Produced fresh for every request and never mutated afterwards.
    ``shards`` is only set on the base endpoint of a federated query.
    """

    model_config = ConfigDict(frozen=True)

    protocol: str
    host: str
    partition: str
    operation_path: str
    shards: tuple[ShardRef, ...] | None = None

    @property
    def url(self) -> str:
        """Request URL without query-string parameters."""
        return f"{self.protocol}://{self.host}/{self.partition}{self.operation_path}"

    @property
    def shards_param(self) -> str | None:
        """Comma-joined value of the ``shards`` parameter, if federated."""
        if not self.shards:
            return None
        return ",".join(str(shard) for shard in self.shards)


# ---------------------------------------------------------------------------
# Route results
# ---------------------------------------------------------------------------


class SingleTarget(BaseModel):
    """A request that goes to exactly one partition."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    endpoint: EndpointDescriptor

    @property
    def partition(self) -> str:
        return self.endpoint.partition

    @property
    def url(self) -> str:
        return self.endpoint.url


class FederatedTarget(BaseModel):
    """A query sent to the default partition and fanned out via ``shards``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["federated"] = "federated"
    endpoint: EndpointDescriptor

    @property
    def shards(self) -> tuple[ShardRef, ...]:
        return self.endpoint.shards or ()

    @property
    def url(self) -> str:
        return f"{self.endpoint.url}?shards={self.endpoint.shards_param}"


RouteResult = Union[SingleTarget, FederatedTarget]


# ---------------------------------------------------------------------------
# Payloads and responses
# ---------------------------------------------------------------------------


class DocumentRef(BaseModel):
    """Identifies one indexed document for deletion."""

    model_config = ConfigDict(frozen=True)

    language_code: str
    document_id: str


class RawResponse(BaseModel):
    """Transport-level response handed to the response parser."""

    status_code: int
    body: str = ""
    headers: dict[str, str] = {}


# ---------------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------------


class PartitionOutcome(BaseModel):
    """Success flag plus optional error detail for one partition request."""

    partition: str
    operation: OperationKind
    succeeded: bool
    error: str | None = None
    error_code: ErrorCode | None = None


class UpdateOutcome(BaseModel):
    """Logical result of one orchestrated multi-partition operation.

    ``per_partition_errors`` names every partition that was not confirmed,
    ``outcomes`` keeps every individual partition outcome in plan order.
    """

    succeeded: bool
    per_partition_errors: dict[str, str] = {}
    outcomes: list[PartitionOutcome] = []

    @property
    def partitions(self) -> list[str]:
        """Distinct partitions attempted, in first-attempt order."""
        return list(dict.fromkeys(outcome.partition for outcome in self.outcomes))

    def __bool__(self) -> bool:
        return self.succeeded
