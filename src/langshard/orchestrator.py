"""MultiCoreOrchestrator -- multi-core write, delete, commit and optimize.

Sequences every logical operation across the cores it touches:

1. Resolve the target cores (via :class:`RequestRouter` / :class:`WriteBatcher`).
2. Build one update payload per core.
3. Fan the requests out through the :class:`Transport` collaborator.
4. Parse each raw response into a :class:`PartitionOutcome`.
5. Run the follow-up commit or optimize step, if requested.
6. Fold every outcome into one :class:`UpdateOutcome`.

Every planned core is always attempted.  Transport and response failures
are captured per core and reported in the folded result; only routing and
batching errors (caller errors) are raised, before any request is sent.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar
from xml.sax.saxutils import escape

from langshard.aggregator import fold
from langshard.batcher import WriteBatcher
from langshard.config import MultiCoreConfig
from langshard.directory import StaticLanguageDirectory
from langshard.errors import ErrorCode, RoutingError, TransportError
from langshard.models import (
    DocumentRef,
    OperationKind,
    PartitionOutcome,
    RawResponse,
    SingleTarget,
    UpdateOutcome,
)
from langshard.protocols import IndexDocument, LanguageDirectory, ResponseParser, Transport
from langshard.registry import CoreRegistry
from langshard.response import SolrResponseParser
from langshard.router import RequestRouter, build_get_query, normalize_languages

logger = logging.getLogger("langshard")

T = TypeVar("T")

_COMMIT_XML = "<commit/>"
_OPTIMIZE_XML = "<optimize/>"

# (target, operation, payload)
_PlannedRequest = tuple[SingleTarget, OperationKind, "str | None"]


class MultiCoreOrchestrator:
    """Top-level API for updating a language-partitioned index.

    Parameters
    ----------
    router:
        Resolves languages and cores to endpoints.
    transport:
        Sends each partition request.
    languages:
        Supplies the live content languages for unscoped commits.
    parser:
        Turns raw responses into partition outcomes.  Defaults to
        :class:`SolrResponseParser`.
    config:
        Provides ``max_workers`` and the update content type.  Uses
        defaults when *None*.
    """

    def __init__(
        self,
        router: RequestRouter,
        transport: Transport,
        languages: LanguageDirectory,
        parser: ResponseParser | None = None,
        config: MultiCoreConfig | None = None,
    ) -> None:
        self._config = config or MultiCoreConfig()
        self._router = router
        self._batcher = WriteBatcher(router.registry)
        self._transport = transport
        self._languages = languages
        self._parser = parser or SolrResponseParser()

    @classmethod
    def from_config(
        cls,
        config: MultiCoreConfig,
        transport: Transport | None = None,
        parser: ResponseParser | None = None,
        languages: LanguageDirectory | None = None,
        base_uri: str | None = None,
    ) -> MultiCoreOrchestrator:
        """Wire the default collaborators from *config*.

        *base_uri* overrides ``config.search_server_uri``.
        """
        from langshard.transport import HttpxTransport

        registry = CoreRegistry.from_config(config)
        directory = languages or StaticLanguageDirectory.from_config(config)
        router = RequestRouter(registry, directory, server=base_uri or config.search_server_uri)
        return cls(
            router=router,
            transport=transport or HttpxTransport(config),
            languages=directory,
            parser=parser,
            config=config,
        )

    @property
    def router(self) -> RequestRouter:
        return self._router

    @property
    def batcher(self) -> WriteBatcher:
        return self._batcher

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_documents(
        self,
        documents: Sequence[IndexDocument],
        commit: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> UpdateOutcome:
        """Index *documents*, one ``<add>`` request per core.

        When *commit* is true, only the cores just written are committed.
        """
        start = time.monotonic()
        groups = self._batcher.batch(documents)
        plan: list[_PlannedRequest] = [
            (
                self._router.route_partition(OperationKind.WRITE, core),
                OperationKind.WRITE,
                "<add>" + "".join(doc.to_xml() for doc in docs) + "</add>",
            )
            for core, docs in groups.items()
        ]

        outcomes = self._fan_out(plan, cancel_event)
        if commit:
            outcomes.extend(self._commit_cores(list(groups), cancel_event))

        return self._finish("add", outcomes, start, documents=len(documents))

    def delete_documents(
        self,
        refs: Sequence[DocumentRef] | None = None,
        query: str | None = None,
        commit: bool = True,
        optimize: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> UpdateOutcome:
        """Delete documents by id or by query.

        Exactly one of *refs* and *query* must be given.  Id deletions are
        grouped per core; a query deletion is sent as a single request to
        the default core.  *optimize* takes precedence over *commit*: an
        optimize runs with *commit* as its ``with_commit`` flag, otherwise a
        commit covers the cores touched (every content language for a
        query deletion).

        Raises
        ------
        RoutingError
            If both or neither of *refs* and *query* are given.
        EmptyBatchError
            If *refs* is an empty sequence.
        """
        start = time.monotonic()
        if query and refs is not None:
            raise RoutingError(
                "Delete by ids and delete by query are mutually exclusive",
                code=ErrorCode.E_DELETE_SCOPE,
                stage="delete",
            )
        if not query and refs is None:
            raise RoutingError(
                "Delete requires document references or a query",
                code=ErrorCode.E_DELETE_SCOPE,
                stage="delete",
            )

        touched: list[str] | None
        if query:
            plan: list[_PlannedRequest] = [
                (
                    self._router.default_target(OperationKind.WRITE),
                    OperationKind.WRITE,
                    f"<delete><query>{escape(query)}</query></delete>",
                )
            ]
            touched = None
        else:
            groups = self._batcher.batch_deletes(refs or [])
            plan = [
                (
                    self._router.route_partition(OperationKind.WRITE, core),
                    OperationKind.WRITE,
                    "<delete>"
                    + "".join(f"<id>{escape(ref.document_id)}</id>" for ref in core_refs)
                    + "</delete>",
                )
                for core, core_refs in groups.items()
            ]
            touched = list(groups)

        outcomes = self._fan_out(plan, cancel_event)

        if optimize:
            outcomes.extend(self._optimize_outcomes(commit, cancel_event))
        elif commit:
            if touched is None:
                outcomes.extend(self._commit_outcomes(None, cancel_event))
            else:
                outcomes.extend(self._commit_cores(touched, cancel_event))

        return self._finish("delete", outcomes, start)

    def commit(
        self,
        languages: str | Sequence[str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> UpdateOutcome:
        """Commit the cores of *languages*, or of every content language."""
        start = time.monotonic()
        return self._finish("commit", self._commit_outcomes(languages, cancel_event), start)

    def optimize(
        self,
        with_commit: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> UpdateOutcome:
        """Optimize the default core, optionally committing every language first.

        Optimize compacts the whole index and may lock the server on large
        indexes; it is never run implicitly.
        """
        start = time.monotonic()
        return self._finish("optimize", self._optimize_outcomes(with_commit, cancel_event), start)

    def ping(self) -> PartitionOutcome:
        """Send a liveness request to the default core."""
        target = self._router.default_target(OperationKind.PING)
        return self._send(target, OperationKind.PING, None)

    def select(
        self,
        params: Mapping[str, object],
        languages: str | Sequence[str] | None = None,
    ) -> RawResponse:
        """Run a search and return the raw response.

        Multiple languages produce a federated request.  Transport errors
        propagate to the caller.
        """
        target = self._router.route(OperationKind.QUERY, languages)
        return self._transport.send(build_get_query(target, params))

    # ------------------------------------------------------------------
    # Async wrappers
    # ------------------------------------------------------------------

    async def aadd_documents(
        self, documents: Sequence[IndexDocument], commit: bool = True
    ) -> UpdateOutcome:
        return await self._run_cancellable(self.add_documents, documents, commit=commit)

    async def adelete_documents(
        self,
        refs: Sequence[DocumentRef] | None = None,
        query: str | None = None,
        commit: bool = True,
        optimize: bool = False,
    ) -> UpdateOutcome:
        return await self._run_cancellable(
            self.delete_documents, refs, query=query, commit=commit, optimize=optimize
        )

    async def acommit(self, languages: str | Sequence[str] | None = None) -> UpdateOutcome:
        return await self._run_cancellable(self.commit, languages)

    async def aoptimize(self, with_commit: bool = False) -> UpdateOutcome:
        return await self._run_cancellable(self.optimize, with_commit)

    @staticmethod
    async def _run_cancellable(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run *fn* in a worker thread; task cancellation cancels its requests."""
        event = threading.Event()
        try:
            return await asyncio.to_thread(fn, *args, cancel_event=event, **kwargs)
        except asyncio.CancelledError:
            event.set()
            raise

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit_outcomes(
        self,
        languages: str | Sequence[str] | None,
        cancel_event: threading.Event | None,
    ) -> list[PartitionOutcome]:
        codes = normalize_languages(languages)
        if not codes:
            codes = list(self._languages.content_languages())
        cores = list(dict.fromkeys(self._router.resolve(code) for code in codes))
        if not cores:
            cores = [self._router.registry.default_partition]
        return self._commit_cores(cores, cancel_event)

    def _commit_cores(
        self,
        cores: list[str],
        cancel_event: threading.Event | None,
    ) -> list[PartitionOutcome]:
        plan: list[_PlannedRequest] = [
            (
                self._router.route_partition(OperationKind.COMMIT, core),
                OperationKind.COMMIT,
                _COMMIT_XML,
            )
            for core in cores
        ]
        return self._fan_out(plan, cancel_event)

    def _optimize_outcomes(
        self,
        with_commit: bool,
        cancel_event: threading.Event | None,
    ) -> list[PartitionOutcome]:
        outcomes: list[PartitionOutcome] = []
        if with_commit:
            outcomes.extend(self._commit_outcomes(None, cancel_event))
        target = self._router.default_target(OperationKind.OPTIMIZE)
        outcomes.extend(
            self._fan_out([(target, OperationKind.OPTIMIZE, _OPTIMIZE_XML)], cancel_event)
        )
        return outcomes

    def _fan_out(
        self,
        plan: list[_PlannedRequest],
        cancel_event: threading.Event | None = None,
    ) -> list[PartitionOutcome]:
        """Send every planned request and return outcomes in plan order.

        Requests run concurrently (they target distinct cores).  The cancel
        signal reaches every request: those not yet sent are skipped and
        those in flight stop retrying.  If waiting is interrupted the signal
        is raised and the interruption propagates.
        """
        if not plan:
            return []

        cancelled = cancel_event if cancel_event is not None else threading.Event()

        def run(target: SingleTarget, operation: OperationKind, payload: str | None) -> PartitionOutcome:
            if cancelled.is_set():
                return PartitionOutcome(
                    partition=target.partition,
                    operation=operation,
                    succeeded=False,
                    error="Request cancelled before it was sent",
                    error_code=ErrorCode.E_TRANSPORT_CANCELLED,
                )
            return self._send(target, operation, payload, cancelled)

        executor = ThreadPoolExecutor(
            max_workers=min(len(plan), self._config.max_workers),
            thread_name_prefix="langshard",
        )
        futures = [executor.submit(run, *request) for request in plan]
        try:
            outcomes = [future.result() for future in futures]
        except BaseException:
            cancelled.set()
            executor.shutdown(wait=False, cancel_futures=True)
            logger.warning(
                "langshard | fan-out interrupted | cores=%s",
                ",".join(target.partition for target, _, _ in plan),
            )
            raise
        executor.shutdown(wait=True)
        return outcomes

    def _send(
        self,
        target: SingleTarget,
        operation: OperationKind,
        payload: str | None,
        cancel_event: threading.Event | None = None,
    ) -> PartitionOutcome:
        """Send one request and parse its response. Never raises for I/O failures."""
        core = target.partition
        content_type = self._config.update_content_type if payload is not None else None
        try:
            response = self._transport.send(
                target.endpoint, payload, content_type, cancel_event=cancel_event
            )
        except TransportError as exc:
            return self._failed(core, operation, exc.code, exc.message)
        except TimeoutError as exc:
            return self._failed(core, operation, ErrorCode.E_TRANSPORT_TIMEOUT, str(exc))
        except Exception as exc:
            return self._failed(core, operation, ErrorCode.E_TRANSPORT_CONNECT, str(exc))

        try:
            outcome = self._parser.parse(core, operation, response)
        except Exception as exc:
            return self._failed(core, operation, ErrorCode.E_RESPONSE_MALFORMED, str(exc))

        if not outcome.succeeded:
            logger.error(
                "langshard | op=%s | core=%s | code=%s | detail=%s",
                operation.value,
                core,
                outcome.error_code.value if outcome.error_code else "-",
                outcome.error,
            )
        return outcome

    @staticmethod
    def _failed(
        core: str,
        operation: OperationKind,
        code: ErrorCode,
        message: str,
    ) -> PartitionOutcome:
        logger.error(
            "langshard | op=%s | core=%s | code=%s | detail=%s",
            operation.value,
            core,
            code.value,
            message,
        )
        return PartitionOutcome(
            partition=core,
            operation=operation,
            succeeded=False,
            error=message,
            error_code=code,
        )

    @staticmethod
    def _finish(
        name: str,
        outcomes: list[PartitionOutcome],
        start: float,
        documents: int | None = None,
    ) -> UpdateOutcome:
        result = fold(outcomes)
        logger.info(
            "langshard | op=%s | cores=%s | documents=%s | succeeded=%s | failed=%s | time=%.2fs",
            name,
            ",".join(result.partitions) or "-",
            documents if documents is not None else "-",
            result.succeeded,
            ",".join(result.per_partition_errors) or "-",
            time.monotonic() - start,
        )
        return result
