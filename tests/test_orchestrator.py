"""Unit tests for langshard.orchestrator -- multi-core update sequencing."""

from __future__ import annotations

import asyncio
import threading
import time
from unittest.mock import MagicMock, patch

import httpx
import pytest

from langshard.config import MultiCoreConfig
from langshard.directory import StaticLanguageDirectory
from langshard.errors import EmptyBatchError, ErrorCode, RoutingError, TransportError
from langshard.models import DocumentRef, EndpointDescriptor, OperationKind, RawResponse
from langshard.orchestrator import MultiCoreOrchestrator
from langshard.transport import HttpxTransport

HOST = "search.local:8983/solr"


def sent_requests(transport: MagicMock) -> list[tuple[str, str, str | None]]:
    """Return (core, operation path, payload) for every transport call."""
    return [
        (call.args[0].partition, call.args[0].operation_path, call.args[1])
        for call in transport.send.call_args_list
    ]


def fail_for(cores: set[str], ok: RawResponse, exc: Exception | None = None):
    """Transport side effect raising for the given cores."""

    def _send(endpoint: EndpointDescriptor, payload=None, content_type=None, cancel_event=None) -> RawResponse:
        if endpoint.partition in cores:
            raise exc or TransportError(f"{endpoint.partition} unreachable")
        return ok

    return _send


@pytest.mark.unit
class TestFromConfig:
    def test_wires_default_collaborators(self, config):
        orchestrator = MultiCoreOrchestrator.from_config(config)
        assert orchestrator.router.server.host == HOST
        assert orchestrator.router.resolve("fre-FR") == "core_fr"
        assert isinstance(orchestrator._transport, HttpxTransport)

    def test_base_uri_override(self, config):
        orchestrator = MultiCoreOrchestrator.from_config(config, base_uri="https://elsewhere/solr")
        assert orchestrator.router.server.base_url == "https://elsewhere/solr"


@pytest.mark.unit
class TestAddDocuments:
    def test_one_request_per_core(self, orchestrator, mock_transport, make_doc):
        docs = [make_doc("eng-GB", "1"), make_doc("fre-FR", "2"), make_doc("eng-GB", "3")]

        result = orchestrator.add_documents(docs, commit=False)

        assert result.succeeded is True
        requests = sent_requests(mock_transport)
        assert len(requests) == 2
        payloads = {core: payload for core, _, payload in requests}
        assert payloads["core_en"] == (
            '<add><doc><field name="id">1</field></doc>'
            '<doc><field name="id">3</field></doc></add>'
        )
        assert payloads["core_fr"] == '<add><doc><field name="id">2</field></doc></add>'
        assert {path for _, path, _ in requests} == {"/update"}

    def test_sends_update_content_type(self, orchestrator, mock_transport, make_doc):
        orchestrator.add_documents([make_doc("eng-GB", "1")], commit=False)
        assert mock_transport.send.call_args.args[2] == "text/xml"

    def test_commit_only_written_cores(self, orchestrator, mock_transport, make_doc):
        docs = [make_doc("ger-DE", "1"), make_doc("eng-US", "2")]

        result = orchestrator.add_documents(docs)

        commits = [core for core, _, payload in sent_requests(mock_transport) if payload == "<commit/>"]
        assert sorted(commits) == ["core_de", "core_en"]
        assert result.partitions == ["core_de", "core_en"]
        assert [o.operation for o in result.outcomes] == [
            OperationKind.WRITE,
            OperationKind.WRITE,
            OperationKind.COMMIT,
            OperationKind.COMMIT,
        ]

    def test_empty_batch_sends_nothing(self, orchestrator, mock_transport):
        with pytest.raises(EmptyBatchError):
            orchestrator.add_documents([])
        mock_transport.send.assert_not_called()

    def test_failed_core_does_not_stop_others(self, orchestrator, mock_transport, ok_response, make_doc):
        mock_transport.send.side_effect = fail_for({"core_en"}, ok_response)
        docs = [make_doc("eng-GB", "1"), make_doc("fre-FR", "2"), make_doc("ger-DE", "3")]

        result = orchestrator.add_documents(docs)

        assert result.succeeded is False
        assert list(result.per_partition_errors) == ["core_en"]
        assert result.per_partition_errors["core_en"] == "core_en unreachable"
        writes = {core for core, _, payload in sent_requests(mock_transport) if payload.startswith("<add>")}
        assert writes == {"core_en", "core_fr", "core_de"}


@pytest.mark.unit
class TestCommit:
    def test_failed_core_is_reported_and_others_attempted(
        self, orchestrator, mock_transport, ok_response
    ):
        mock_transport.send.side_effect = fail_for({"core_en"}, ok_response)

        result = orchestrator.commit(["eng-GB", "fre-FR"])

        assert {core for core, _, _ in sent_requests(mock_transport)} == {"core_en", "core_fr"}
        assert result.succeeded is False
        assert result.per_partition_errors == {"core_en": "core_en unreachable"}
        failed = [o for o in result.outcomes if not o.succeeded]
        assert failed[0].error_code is ErrorCode.E_TRANSPORT_CONNECT

    def test_defaults_to_content_languages(self, orchestrator, mock_transport):
        result = orchestrator.commit()
        assert result.succeeded is True
        assert sorted(core for core, _, _ in sent_requests(mock_transport)) == [
            "core_de",
            "core_en",
            "core_fr",
        ]
        assert all(payload == "<commit/>" for _, _, payload in sent_requests(mock_transport))

    def test_scalar_language(self, orchestrator, mock_transport):
        orchestrator.commit("fre-FR")
        assert sent_requests(mock_transport) == [("core_fr", "/update", "<commit/>")]

    def test_empty_list_commits_content_languages(self, orchestrator, mock_transport):
        orchestrator.commit([])
        assert sorted(core for core, _, _ in sent_requests(mock_transport)) == [
            "core_de",
            "core_en",
            "core_fr",
        ]

    def test_shared_core_committed_once(self, orchestrator, mock_transport):
        orchestrator.commit(["eng-GB", "eng-US"])
        assert sent_requests(mock_transport) == [("core_en", "/update", "<commit/>")]

    def test_no_languages_commits_default_core(self, router, mock_transport, config):
        orchestrator = MultiCoreOrchestrator(router, mock_transport, StaticLanguageDirectory(), config=config)
        orchestrator.commit()
        assert sent_requests(mock_transport) == [("core_default", "/update", "<commit/>")]

    def test_outcomes_follow_plan_order(self, orchestrator, mock_transport, ok_response):
        def slow_english(endpoint, payload=None, content_type=None, cancel_event=None):
            if endpoint.partition == "core_en":
                time.sleep(0.05)
            return ok_response

        mock_transport.send.side_effect = slow_english

        result = orchestrator.commit(["eng-GB", "fre-FR", "ger-DE"])

        assert [o.partition for o in result.outcomes] == ["core_en", "core_fr", "core_de"]

    def test_sequential_with_single_worker(self, router, mock_transport, directory):
        orchestrator = MultiCoreOrchestrator(
            router, mock_transport, directory, config=MultiCoreConfig(max_workers=1)
        )
        orchestrator.commit(["ger-DE", "eng-GB"])
        assert [core for core, _, _ in sent_requests(mock_transport)] == ["core_de", "core_en"]


@pytest.mark.unit
class TestOptimize:
    def test_with_commit_commits_all_then_optimizes_default(self, orchestrator, mock_transport):
        result = orchestrator.optimize(with_commit=True)

        requests = sent_requests(mock_transport)
        assert sorted(core for core, _, payload in requests if payload == "<commit/>") == [
            "core_de",
            "core_en",
            "core_fr",
        ]
        optimizes = [(core, payload) for core, _, payload in requests if payload == "<optimize/>"]
        assert optimizes == [("core_default", "<optimize/>")]
        assert requests[-1] == ("core_default", "/update", "<optimize/>")
        assert result.succeeded is True

    def test_without_commit(self, orchestrator, mock_transport):
        orchestrator.optimize()
        assert sent_requests(mock_transport) == [("core_default", "/update", "<optimize/>")]

    def test_commit_failure_folds_into_result(self, orchestrator, mock_transport, ok_response):
        mock_transport.send.side_effect = fail_for({"core_fr"}, ok_response)
        result = orchestrator.optimize(with_commit=True)
        assert result.succeeded is False
        assert list(result.per_partition_errors) == ["core_fr"]
        assert sent_requests(mock_transport)[-1][2] == "<optimize/>"


@pytest.mark.unit
class TestDeleteDocuments:
    def test_by_query_is_one_request(self, orchestrator, mock_transport):
        with patch.object(orchestrator.batcher, "batch_deletes") as mock_batch:
            orchestrator.delete_documents(query="meta_class:article", commit=False)

        mock_batch.assert_not_called()
        assert sent_requests(mock_transport) == [
            ("core_default", "/update", "<delete><query>meta_class:article</query></delete>")
        ]

    def test_by_query_escapes_xml(self, orchestrator, mock_transport):
        orchestrator.delete_documents(query="a:<b> && c", commit=False)
        assert sent_requests(mock_transport)[0][2] == (
            "<delete><query>a:&lt;b&gt; &amp;&amp; c</query></delete>"
        )

    def test_by_query_commit_covers_content_languages(self, orchestrator, mock_transport):
        orchestrator.delete_documents(query="*:*")
        commits = [core for core, _, payload in sent_requests(mock_transport) if payload == "<commit/>"]
        assert sorted(commits) == ["core_de", "core_en", "core_fr"]

    def test_by_ids_grouped_per_core(self, orchestrator, mock_transport):
        refs = [
            DocumentRef(language_code="eng-GB", document_id="a1"),
            DocumentRef(language_code="fre-FR", document_id="f1"),
            DocumentRef(language_code="eng-US", document_id="a2"),
        ]

        result = orchestrator.delete_documents(refs, commit=False)

        payloads = {core: payload for core, _, payload in sent_requests(mock_transport)}
        assert payloads == {
            "core_en": "<delete><id>a1</id><id>a2</id></delete>",
            "core_fr": "<delete><id>f1</id></delete>",
        }
        assert result.succeeded is True

    def test_by_ids_commits_touched_cores_only(self, orchestrator, mock_transport):
        orchestrator.delete_documents([DocumentRef(language_code="ger-DE", document_id="x")])
        assert sent_requests(mock_transport) == [
            ("core_de", "/update", "<delete><id>x</id></delete>"),
            ("core_de", "/update", "<commit/>"),
        ]

    def test_optimize_takes_precedence(self, orchestrator, mock_transport):
        orchestrator.delete_documents(
            [DocumentRef(language_code="ger-DE", document_id="x")], commit=True, optimize=True
        )
        payloads = [payload for _, _, payload in sent_requests(mock_transport)]
        assert payloads[0] == "<delete><id>x</id></delete>"
        assert payloads.count("<commit/>") == 3
        assert payloads[-1] == "<optimize/>"

    def test_optimize_without_commit(self, orchestrator, mock_transport):
        orchestrator.delete_documents(query="*:*", commit=False, optimize=True)
        assert [payload for _, _, payload in sent_requests(mock_transport)] == [
            "<delete><query>*:*</query></delete>",
            "<optimize/>",
        ]

    def test_both_scopes_rejected(self, orchestrator, mock_transport):
        with pytest.raises(RoutingError) as exc_info:
            orchestrator.delete_documents(
                [DocumentRef(language_code="eng-GB", document_id="a")], query="*:*"
            )
        assert exc_info.value.code is ErrorCode.E_DELETE_SCOPE
        mock_transport.send.assert_not_called()

    def test_no_scope_rejected(self, orchestrator):
        with pytest.raises(RoutingError):
            orchestrator.delete_documents()

    def test_empty_refs_rejected(self, orchestrator):
        with pytest.raises(EmptyBatchError):
            orchestrator.delete_documents([])


@pytest.mark.unit
class TestFailureCapture:
    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (TimeoutError("slow"), ErrorCode.E_TRANSPORT_TIMEOUT),
            (ConnectionError("reset"), ErrorCode.E_TRANSPORT_CONNECT),
            (TransportError("gone", code=ErrorCode.E_TRANSPORT_HTTP), ErrorCode.E_TRANSPORT_HTTP),
        ],
    )
    def test_transport_exceptions_are_captured(
        self, orchestrator, mock_transport, ok_response, exc, code
    ):
        mock_transport.send.side_effect = fail_for({"core_fr"}, ok_response, exc)

        result = orchestrator.commit(["eng-GB", "fre-FR"])

        assert result.succeeded is False
        failed = [o for o in result.outcomes if not o.succeeded]
        assert [(o.partition, o.error_code) for o in failed] == [("core_fr", code)]

    def test_error_response_is_failure(self, orchestrator, mock_transport):
        mock_transport.send.return_value = RawResponse(status_code=500, body="")
        result = orchestrator.commit("eng-GB")
        assert result.succeeded is False
        assert result.outcomes[0].error_code is ErrorCode.E_RESPONSE_STATUS

    def test_parser_exception_is_captured(self, router, mock_transport, directory, config):
        parser = MagicMock()
        parser.parse.side_effect = ValueError("cannot parse")
        orchestrator = MultiCoreOrchestrator(router, mock_transport, directory, parser=parser, config=config)

        result = orchestrator.commit("eng-GB")

        assert result.per_partition_errors == {"core_en": "cannot parse"}
        assert result.outcomes[0].error_code is ErrorCode.E_RESPONSE_MALFORMED


@pytest.mark.unit
class TestPingAndSelect:
    def test_ping_targets_default_core(self, orchestrator, mock_transport):
        outcome = orchestrator.ping()

        assert outcome.succeeded is True
        assert outcome.operation is OperationKind.PING
        endpoint, payload, content_type = mock_transport.send.call_args.args
        assert endpoint.url == f"http://{HOST}/core_default/admin/ping"
        assert payload is None
        assert content_type is None

    def test_ping_failure_is_returned(self, orchestrator, mock_transport):
        mock_transport.send.side_effect = TransportError("down")
        outcome = orchestrator.ping()
        assert outcome.succeeded is False
        assert outcome.error == "down"

    def test_select_federated(self, orchestrator, mock_transport, ok_response):
        raw = orchestrator.select({"q": "title:solr"}, ["eng-GB", "fre-FR"])

        assert raw == ok_response
        (url,) = mock_transport.send.call_args.args
        assert url.startswith(f"http://{HOST}/core_default/select?q=title%3Asolr&shards=")

    def test_select_transport_error_propagates(self, orchestrator, mock_transport):
        mock_transport.send.side_effect = TransportError("down")
        with pytest.raises(TransportError):
            orchestrator.select({"q": "*:*"}, "eng-GB")


@pytest.mark.unit
class TestCancellation:
    def test_set_event_prevents_sending(self, orchestrator, mock_transport):
        cancel = threading.Event()
        cancel.set()

        result = orchestrator.commit(["eng-GB", "fre-FR"], cancel_event=cancel)

        mock_transport.send.assert_not_called()
        assert result.succeeded is False
        assert {o.error_code for o in result.outcomes} == {ErrorCode.E_TRANSPORT_CANCELLED}
        assert set(result.per_partition_errors) == {"core_en", "core_fr"}

    def test_event_is_passed_to_transport(self, orchestrator, mock_transport):
        cancel = threading.Event()
        orchestrator.commit("eng-GB", cancel_event=cancel)
        assert mock_transport.send.call_args.kwargs["cancel_event"] is cancel

    def test_cancel_stops_in_flight_retries(self, router, directory):
        config = MultiCoreConfig(backend_max_retries=3, backend_backoff_base=0.2)
        orchestrator = MultiCoreOrchestrator(
            router, HttpxTransport(config), directory, config=config
        )
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)

        with patch("httpx.post", side_effect=httpx.ConnectError("refused")) as mock_post:
            timer.start()
            try:
                started = time.monotonic()
                result = orchestrator.commit("eng-GB", cancel_event=cancel)
                elapsed = time.monotonic() - started
            finally:
                timer.cancel()

        assert mock_post.call_count <= 1
        assert elapsed < 0.2
        assert result.succeeded is False
        assert result.outcomes[0].error_code is ErrorCode.E_TRANSPORT_CANCELLED

    def test_async_cancellation_sets_event(self):
        seen: dict[str, threading.Event] = {}
        started = threading.Event()

        def work(cancel_event: threading.Event) -> str:
            seen["event"] = cancel_event
            started.set()
            cancel_event.wait(timeout=5)
            return "done"

        async def scenario() -> None:
            task = asyncio.create_task(MultiCoreOrchestrator._run_cancellable(work))
            await asyncio.to_thread(started.wait, 5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert seen["event"].is_set()


@pytest.mark.unit
class TestAsyncWrappers:
    def test_acommit(self, orchestrator, mock_transport):
        result = asyncio.run(orchestrator.acommit("eng-GB"))
        assert result.succeeded is True
        assert sent_requests(mock_transport) == [("core_en", "/update", "<commit/>")]

    def test_aadd_documents(self, orchestrator, mock_transport, make_doc):
        result = asyncio.run(orchestrator.aadd_documents([make_doc("fre-FR", "1")], commit=False))
        assert result.partitions == ["core_fr"]

    def test_adelete_documents(self, orchestrator, mock_transport):
        result = asyncio.run(orchestrator.adelete_documents(query="*:*", commit=False))
        assert result.succeeded is True
        assert mock_transport.send.call_count == 1

    def test_aoptimize(self, orchestrator, mock_transport):
        asyncio.run(orchestrator.aoptimize())
        assert sent_requests(mock_transport) == [("core_default", "/update", "<optimize/>")]
