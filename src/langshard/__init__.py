"""langshard -- language-partitioned routing for multi-core search indexes.

Public API re-exports for convenient access.
"""

from langshard.aggregator import fold
from langshard.batcher import WriteBatcher
from langshard.config import MultiCoreConfig
from langshard.directory import StaticLanguageDirectory
from langshard.errors import (
    ConfigurationError,
    EmptyBatchError,
    ErrorCode,
    LangShardError,
    RoutingError,
    RoutingIssue,
    TransportError,
)
from langshard.models import (
    DocumentRef,
    EndpointDescriptor,
    FederatedTarget,
    OperationKind,
    PartitionOutcome,
    RawResponse,
    RouteResult,
    ServerAddress,
    ShardRef,
    SingleTarget,
    UpdateOutcome,
)
from langshard.orchestrator import MultiCoreOrchestrator
from langshard.protocols import IndexDocument, LanguageDirectory, ResponseParser, Transport
from langshard.registry import CoreRegistry
from langshard.response import SolrResponseParser
from langshard.router import RequestRouter, build_get_query
from langshard.transport import HttpxTransport

__all__ = [
    # Orchestration
    "MultiCoreOrchestrator",
    "RequestRouter",
    "WriteBatcher",
    "CoreRegistry",
    "fold",
    "build_get_query",
    # Config
    "MultiCoreConfig",
    # Errors
    "ErrorCode",
    "RoutingIssue",
    "LangShardError",
    "ConfigurationError",
    "RoutingError",
    "EmptyBatchError",
    "TransportError",
    # Models
    "OperationKind",
    "ServerAddress",
    "ShardRef",
    "EndpointDescriptor",
    "SingleTarget",
    "FederatedTarget",
    "RouteResult",
    "DocumentRef",
    "RawResponse",
    "PartitionOutcome",
    "UpdateOutcome",
    # Protocols
    "Transport",
    "LanguageDirectory",
    "ResponseParser",
    "IndexDocument",
    # Default collaborators
    "HttpxTransport",
    "SolrResponseParser",
    "StaticLanguageDirectory",
]
