"""Default response parser for Solr update, select and ping responses.

Satisfies :class:`~langshard.protocols.ResponseParser` via structural
subtyping.  Understands both the XML (``wt=xml``, the server default) and
JSON (``wt=json``) response writers.
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET

from langshard.errors import ErrorCode
from langshard.models import OperationKind, PartitionOutcome, RawResponse

logger = logging.getLogger("langshard")


class _Malformed(Exception):
    pass


class SolrResponseParser:
    """Interpret a raw response as success when ``responseHeader.status`` is 0.

    Non-2xx HTTP statuses and non-zero header statuses are failures with
    ``E_RESPONSE_STATUS``; bodies that cannot be read are failures with
    ``E_RESPONSE_MALFORMED``.  Ping responses must also report ``OK``
    when they carry a top-level ``status`` entry.
    """

    def parse(
        self,
        partition: str,
        operation: OperationKind,
        response: RawResponse,
    ) -> PartitionOutcome:
        if not 200 <= response.status_code < 300:
            detail = self._error_message(response.body)
            return self._failure(
                partition,
                operation,
                ErrorCode.E_RESPONSE_STATUS,
                f"HTTP {response.status_code}" + (f": {detail}" if detail else ""),
            )

        try:
            header_status, ping_status = self._read_status(response.body)
        except _Malformed as exc:
            return self._failure(partition, operation, ErrorCode.E_RESPONSE_MALFORMED, str(exc))

        if header_status != 0:
            return self._failure(
                partition,
                operation,
                ErrorCode.E_RESPONSE_STATUS,
                f"responseHeader status {header_status}",
            )

        if operation is OperationKind.PING and ping_status is not None and ping_status != "OK":
            return self._failure(
                partition,
                operation,
                ErrorCode.E_RESPONSE_STATUS,
                f"ping status {ping_status}",
            )

        return PartitionOutcome(partition=partition, operation=operation, succeeded=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _failure(
        partition: str,
        operation: OperationKind,
        code: ErrorCode,
        message: str,
    ) -> PartitionOutcome:
        return PartitionOutcome(
            partition=partition,
            operation=operation,
            succeeded=False,
            error=message,
            error_code=code,
        )

    @staticmethod
    def _read_status(body: str) -> tuple[int, str | None]:
        text = body.strip()
        if not text:
            raise _Malformed("empty response body")

        if text.startswith("{"):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise _Malformed(f"invalid JSON response: {exc}") from exc
            header = data.get("responseHeader") if isinstance(data, dict) else None
            if not isinstance(header, dict) or "status" not in header:
                raise _Malformed("response has no responseHeader status")
            try:
                status = int(header["status"])
            except (TypeError, ValueError) as exc:
                raise _Malformed(f"non-numeric responseHeader status: {header['status']!r}") from exc
            ping_status = data.get("status")
            return status, ping_status if isinstance(ping_status, str) else None

        try:
            root = ET.fromstring(text)  # noqa: S314
        except ET.ParseError as exc:
            raise _Malformed(f"invalid XML response: {exc}") from exc
        node = root.find("./lst[@name='responseHeader']/int[@name='status']")
        if node is None or node.text is None:
            raise _Malformed("response has no responseHeader status")
        try:
            status = int(node.text.strip())
        except ValueError as exc:
            raise _Malformed(f"non-numeric responseHeader status: {node.text!r}") from exc
        ping_node = root.find("./str[@name='status']")
        return status, ping_node.text if ping_node is not None else None

    @staticmethod
    def _error_message(body: str) -> str | None:
        """Best-effort extraction of the server's error message."""
        text = body.strip()
        if not text:
            return None
        try:
            if text.startswith("{"):
                error = json.loads(text).get("error") or {}
                return error.get("msg")
            node = ET.fromstring(text).find("./lst[@name='error']/str[@name='msg']")  # noqa: S314
            return node.text if node is not None else None
        except (ET.ParseError, json.JSONDecodeError, AttributeError):
            logger.debug("langshard | response | unreadable error body")
            return None
