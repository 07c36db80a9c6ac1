"""RequestRouter -- decides which core(s) a request targets.

Routing policy per :class:`~langshard.models.OperationKind`:

* ``WRITE`` / ``COMMIT``: exactly one language, resolved to one core.
* ``OPTIMIZE`` / ``PING``: at most one language; none means the default core.
* ``QUERY``: zero, one or many languages.  Zero falls back to the site
  language list (or only its first entry in main-language-only mode), one
  targets a single core, many produce a federated request whose base is
  the default core and whose ``shards`` list names one core per language,
  in caller order with duplicates preserved.

Routing errors are raised before any network activity.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from urllib.parse import urlencode

from langshard.errors import ErrorCode, RoutingError
from langshard.models import (
    EndpointDescriptor,
    FederatedTarget,
    OperationKind,
    RouteResult,
    ServerAddress,
    ShardRef,
    SingleTarget,
)
from langshard.protocols import LanguageDirectory
from langshard.registry import CoreRegistry

logger = logging.getLogger("langshard")

_SINGLE_CORE_KINDS = frozenset(
    {OperationKind.WRITE, OperationKind.COMMIT, OperationKind.OPTIMIZE, OperationKind.PING}
)
_DEFAULT_CORE_KINDS = frozenset({OperationKind.OPTIMIZE, OperationKind.PING})


def normalize_languages(languages: str | Sequence[str] | None) -> list[str]:
    """Accept a scalar language code, a sequence, or None."""
    if languages is None:
        return []
    if isinstance(languages, str):
        return [languages]
    return list(languages)


def _coerce_operation(operation: OperationKind | str) -> OperationKind:
    try:
        return OperationKind(operation)
    except ValueError:
        raise RoutingError(
            "unsupported operation",
            code=ErrorCode.E_ROUTE_UNSUPPORTED_OPERATION,
            stage="route",
        ) from None


class RequestRouter:
    """Turns an operation and a language scope into endpoint descriptors.

    Parameters
    ----------
    registry:
        Language to core mapping.
    languages:
        Directory supplying the site language list for unscoped queries.
    server:
        Search server address, or a ``protocol://host`` URI overriding the
        built-in default ``http://localhost:8983/solr``.
    """

    def __init__(
        self,
        registry: CoreRegistry,
        languages: LanguageDirectory,
        server: ServerAddress | str | None = None,
    ) -> None:
        self._registry = registry
        self._languages = languages
        if isinstance(server, str):
            server = ServerAddress.parse(server)
        self._server = server or ServerAddress()

    @property
    def registry(self) -> CoreRegistry:
        return self._registry

    @property
    def server(self) -> ServerAddress:
        return self._server

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, language: str) -> str:
        return self._registry.resolve(language)

    def route(
        self,
        operation: OperationKind | str,
        languages: str | Sequence[str] | None = None,
    ) -> RouteResult:
        """Return the target of *operation* for the given language scope.

        Raises
        ------
        RoutingError
            For an unknown operation, a write without a language, or any
            single-core operation given more than one language.
        """
        kind = _coerce_operation(operation)
        codes = normalize_languages(languages)

        if kind is OperationKind.QUERY:
            result = self._route_query(codes)
        elif kind in _SINGLE_CORE_KINDS:
            result = self._route_single(kind, codes)
        else:  # pragma: no cover - every OperationKind is handled above
            raise RoutingError("unsupported operation", stage="route")

        logger.debug(
            "langshard | route | op=%s | languages=%s | url=%s",
            kind.value,
            ",".join(codes) or "-",
            result.url,
        )
        return result

    def route_partition(self, operation: OperationKind | str, partition: str) -> SingleTarget:
        """Target an already-resolved core directly (used for batched writes)."""
        kind = _coerce_operation(operation)
        return SingleTarget(endpoint=self._endpoint(partition, kind))

    def default_target(self, operation: OperationKind | str) -> SingleTarget:
        return self.route_partition(operation, self._registry.default_partition)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _endpoint(
        self,
        partition: str,
        kind: OperationKind,
        shards: tuple[ShardRef, ...] | None = None,
    ) -> EndpointDescriptor:
        return EndpointDescriptor(
            protocol=self._server.protocol,
            host=self._server.host,
            partition=partition,
            operation_path=kind.path,
            shards=shards,
        )

    def _route_single(self, kind: OperationKind, codes: list[str]) -> SingleTarget:
        if len(codes) > 1:
            raise RoutingError(
                f"{kind.value} operations are single-partition",
                code=ErrorCode.E_ROUTE_MULTI_LANGUAGE,
                stage="route",
            )
        if not codes:
            if kind in _DEFAULT_CORE_KINDS:
                return self.default_target(kind)
            raise RoutingError(
                f"{kind.value} requires exactly one language code",
                code=ErrorCode.E_ROUTE_NO_LANGUAGE,
                stage="route",
            )
        return SingleTarget(endpoint=self._endpoint(self._registry.resolve(codes[0]), kind))

    def _route_query(self, codes: list[str]) -> RouteResult:
        if not codes:
            codes = self._site_languages()

        if not codes:
            return self.default_target(OperationKind.QUERY)

        if len(codes) == 1:
            core = self._registry.resolve(codes[0])
            return SingleTarget(endpoint=self._endpoint(core, OperationKind.QUERY))

        shards = tuple(
            ShardRef(host=self._server.host, partition=self._registry.resolve(code))
            for code in codes
        )
        return FederatedTarget(
            endpoint=self._endpoint(
                self._registry.default_partition, OperationKind.QUERY, shards=shards
            )
        )

    def _site_languages(self) -> list[str]:
        site_languages = list(self._languages.site_languages())
        if site_languages and self._languages.main_language_only():
            logger.debug(
                "langshard | route | code=%s | language=%s",
                ErrorCode.W_MAIN_LANGUAGE_ONLY.value,
                site_languages[0],
            )
            return site_languages[:1]
        return site_languages


def build_get_query(target: RouteResult, params: Mapping[str, object]) -> str:
    """Build the HTTP GET URL for *target* with url-encoded *params*.

    List and tuple values are repeated once per element (``fq=a&fq=b``).
    Booleans are sent as ``true`` / ``false``.  A federated target also
    carries its ``shards`` parameter.
    """
    pairs: list[tuple[str, str]] = []
    for name, value in params.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for part in values:
            if isinstance(part, bool):
                part = "true" if part else "false"
            pairs.append((name, str(part)))

    shards = target.endpoint.shards_param
    if shards:
        pairs.append(("shards", shards))

    base = target.endpoint.url
    if not pairs:
        return base
    return f"{base}?{urlencode(pairs)}"
