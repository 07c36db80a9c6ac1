"""httpx-backed implementation of the Transport protocol.

Sends one request per call to the search server and owns the retry,
backoff and timeout policy.  Server errors (5xx), timeouts and connection
failures are retried with exponential backoff; client errors (4xx) are
returned as-is so the response parser can report them.
"""

from __future__ import annotations

import logging
import threading
import time

import httpx

from langshard.config import MultiCoreConfig
from langshard.errors import ErrorCode, TransportError
from langshard.models import EndpointDescriptor, RawResponse

logger = logging.getLogger("langshard")


class HttpxTransport:
    """Synchronous HTTP transport.

    Satisfies :class:`~langshard.protocols.Transport` via structural
    subtyping (no inheritance required).

    Parameters
    ----------
    config:
        Configuration providing timeout and retry settings.
    """

    def __init__(self, config: MultiCoreConfig | None = None) -> None:
        self._config = config or MultiCoreConfig()

    def send(
        self,
        endpoint: EndpointDescriptor | str,
        payload: str | None = None,
        content_type: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RawResponse:
        """Send a GET (no payload) or POST request and return the raw response.

        A set *cancel_event* stops further attempts and interrupts the
        backoff wait between them.

        Raises
        ------
        TransportError
            Once all retries are exhausted, or with
            ``E_TRANSPORT_CANCELLED`` when *cancel_event* is set.
        """
        url = endpoint if isinstance(endpoint, str) else endpoint.url
        timeout = self._config.backend_timeout_seconds
        max_attempts = 1 + self._config.backend_max_retries
        last_exc: Exception | None = None

        for attempt in range(max_attempts):
            if cancel_event is not None and cancel_event.is_set():
                raise self._cancelled(url, attempt)
            try:
                if payload is None:
                    response = httpx.get(url, timeout=timeout)
                else:
                    response = httpx.post(
                        url,
                        content=payload.encode("utf-8"),
                        headers={"Content-Type": content_type or self._config.update_content_type},
                        timeout=timeout,
                    )
                if response.status_code >= 500:
                    response.raise_for_status()
                return RawResponse(
                    status_code=response.status_code,
                    body=response.text,
                    headers=dict(response.headers),
                )
            except httpx.TimeoutException as exc:
                last_exc = exc
                reason = "timed out"
            except httpx.HTTPStatusError as exc:
                last_exc = exc
                reason = f"failed with HTTP {exc.response.status_code}"
            except httpx.TransportError as exc:
                last_exc = exc
                reason = "connection failed"

            if attempt < max_attempts - 1:
                sleep_time = self._config.backend_backoff_base * (2 ** attempt)
                logger.warning(
                    "langshard | transport | url=%s | %s (attempt %d/%d), retrying in %.1fs",
                    url,
                    reason,
                    attempt + 1,
                    max_attempts,
                    sleep_time,
                )
                if cancel_event is None:
                    time.sleep(sleep_time)
                elif cancel_event.wait(sleep_time):
                    raise self._cancelled(url, attempt + 1) from last_exc

        # All retries exhausted
        if isinstance(last_exc, httpx.TimeoutException):
            code = ErrorCode.E_TRANSPORT_TIMEOUT
        elif isinstance(last_exc, httpx.HTTPStatusError):
            code = ErrorCode.E_TRANSPORT_HTTP
        else:
            code = ErrorCode.E_TRANSPORT_CONNECT
        raise TransportError(
            f"Request to {url} failed after {max_attempts} attempts: {last_exc}",
            code=code,
            stage="transport",
        ) from last_exc

    @staticmethod
    def _cancelled(url: str, attempts: int) -> TransportError:
        logger.warning("langshard | transport | url=%s | cancelled after %d attempt(s)", url, attempts)
        return TransportError(
            f"Request to {url} cancelled after {attempts} attempt(s)",
            code=ErrorCode.E_TRANSPORT_CANCELLED,
            stage="transport",
        )
