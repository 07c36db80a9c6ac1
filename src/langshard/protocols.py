"""Collaborator protocols consumed by the routing core.

Defines the structural-subtyping interfaces for everything the core does
not own: the HTTP transport, the live language directory, the response
parser, and the documents themselves.  All protocols are
``@runtime_checkable`` so callers can optionally verify conformance with
``isinstance`` checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import threading

    from langshard.models import EndpointDescriptor, OperationKind, PartitionOutcome, RawResponse


@runtime_checkable
class Transport(Protocol):
    """Interface for sending one request to one endpoint.

    Retry, backoff and timeout policy live in the implementation.
    Implementations raise :class:`~langshard.errors.TransportError` when a
    request cannot be completed, and raise it with ``E_TRANSPORT_CANCELLED``
    once *cancel_event* is set while a request is in progress.
    """

    def send(
        self,
        endpoint: EndpointDescriptor | str,
        payload: str | None = None,
        content_type: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RawResponse:
        """Send a GET (no payload) or POST request and return the raw response."""
        ...


@runtime_checkable
class LanguageDirectory(Protocol):
    """Interface for the live list of configured languages."""

    def site_languages(self) -> list[str]:
        """Return the site language list; the first entry is the main language."""
        ...

    def main_language_only(self) -> bool:
        """Return True if searches are restricted to the main language."""
        ...

    def content_languages(self) -> list[str]:
        """Return every language content may currently exist in."""
        ...


@runtime_checkable
class ResponseParser(Protocol):
    """Interface for turning a raw response into a partition outcome."""

    def parse(
        self,
        partition: str,
        operation: OperationKind,
        response: RawResponse,
    ) -> PartitionOutcome:
        """Return success flag and error detail for *response*."""
        ...


@runtime_checkable
class IndexDocument(Protocol):
    """A document ready for indexing.

    The core only reads ``language_code``; ``to_xml()`` is the serialized
    ``<doc>`` element concatenated into the partition's ``<add>`` payload.
    """

    language_code: str

    def to_xml(self) -> str:
        """Return the document serialized as a ``<doc>`` element."""
        ...
