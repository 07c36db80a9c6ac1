"""Shared test fixtures for langshard tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from langshard.config import MultiCoreConfig
from langshard.directory import StaticLanguageDirectory
from langshard.models import RawResponse
from langshard.orchestrator import MultiCoreOrchestrator
from langshard.registry import CoreRegistry
from langshard.router import RequestRouter

OK_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<response><lst name="responseHeader"><int name="status">0</int>'
    '<int name="QTime">3</int></lst></response>'
)


class FakeDocument:
    """Minimal IndexDocument: a language code and a pre-rendered <doc>."""

    def __init__(self, language_code: str, doc_id: str) -> None:
        self.language_code = language_code
        self.doc_id = doc_id

    def to_xml(self) -> str:
        return f'<doc><field name="id">{self.doc_id}</field></doc>'

    def __repr__(self) -> str:
        return f"FakeDocument({self.language_code!r}, {self.doc_id!r})"


@pytest.fixture
def config() -> MultiCoreConfig:
    """Three mapped languages plus one language sharing the English core."""
    return MultiCoreConfig(
        search_server_uri="http://search.local:8983/solr",
        default_core="core_default",
        languages_cores_map={
            "eng-GB": "core_en",
            "fre-FR": "core_fr",
            "ger-DE": "core_de",
            "eng-US": "core_en",
        },
        site_languages=["eng-GB", "fre-FR", "ger-DE"],
        content_languages=["eng-GB", "fre-FR", "ger-DE"],
    )


@pytest.fixture
def registry(config: MultiCoreConfig) -> CoreRegistry:
    return CoreRegistry.from_config(config)


@pytest.fixture
def directory(config: MultiCoreConfig) -> StaticLanguageDirectory:
    return StaticLanguageDirectory.from_config(config)


@pytest.fixture
def router(registry: CoreRegistry, directory: StaticLanguageDirectory) -> RequestRouter:
    return RequestRouter(registry, directory, server="http://search.local:8983/solr")


@pytest.fixture
def ok_response() -> RawResponse:
    return RawResponse(status_code=200, body=OK_XML)


@pytest.fixture
def mock_transport(ok_response: RawResponse) -> MagicMock:
    """Return a mock Transport whose every request succeeds."""
    mock = MagicMock()
    mock.send.return_value = ok_response
    return mock


@pytest.fixture
def orchestrator(
    router: RequestRouter,
    mock_transport: MagicMock,
    directory: StaticLanguageDirectory,
    config: MultiCoreConfig,
) -> MultiCoreOrchestrator:
    return MultiCoreOrchestrator(router, mock_transport, directory, config=config)


@pytest.fixture
def make_doc():
    """Factory fixture building FakeDocument instances."""

    def _make(language_code: str, doc_id: str) -> FakeDocument:
        return FakeDocument(language_code, doc_id)

    return _make
