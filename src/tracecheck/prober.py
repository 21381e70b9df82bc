"""Target prober: HTTP access to the system under test.

Two layers:

- :class:`HttpProber` performs exactly one synchronous request per call and
  classifies failures. Connection errors, timeouts, 5xx and
  408/425/429 raise :class:`TransientProbeError`; any other non-2xx status
  raises a fatal :class:`ProbeError`.
- :class:`TraceProber` is what the run loop calls once per attempt. It sends
  the trigger request (``GET <target_url><target_path>``) until it succeeds
  once, then fetches the captured trace document from the collector. Sending
  the trigger only once keeps the collector from accumulating one extra
  trace per retry.

Any object with a ``probe() -> ProbeResponse`` method can stand in for
``TraceProber`` in the run loop; the tests use small fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import httpx

from tracecheck.config import RunConfig
from tracecheck.errors import ProbeError, TransientProbeError
from tracecheck.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


@dataclass(frozen=True)
class ProbeRequest:
    """A single request to the system under test."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None


@dataclass(frozen=True)
class ProbeResponse:
    """Raw body plus the metadata the parser needs."""

    body: bytes
    status_code: int
    content_type: str | None = None
    url: str = ""


class Prober(Protocol):
    """What the run loop needs from a prober."""

    def probe(self) -> ProbeResponse: ...


def is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in TRANSIENT_STATUS_CODES


class HttpProber:
    """One-request-per-call HTTP client over :class:`httpx.Client`.

    Use as a context manager so the connection pool is closed::

        with HttpProber(timeout=5.0) as http:
            response = http.request(ProbeRequest("http://0.0.0.0:8081/ping"))
    """

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def __enter__(self) -> HttpProber:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def request(self, probe_request: ProbeRequest) -> ProbeResponse:
        """Perform *probe_request* once.

        Raises:
            TransientProbeError: connection failure, timeout or retryable status.
            ProbeError: any other non-success status or unusable request.
        """
        method, url = probe_request.method, probe_request.url
        timeout = probe_request.timeout if probe_request.timeout is not None else self._timeout
        try:
            resp = self._client.request(
                method, url, headers=probe_request.headers or None, timeout=timeout
            )
        except httpx.TimeoutException as exc:
            raise TransientProbeError(
                f"Timed out after {timeout}s: {method} {url}", url=url, cause=exc
            ) from exc
        except httpx.TransportError as exc:
            raise TransientProbeError(
                f"Connection failed: {method} {url}: {exc}", url=url, cause=exc
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ProbeError(f"Request failed: {method} {url}: {exc}", url=url, cause=exc) from exc

        if resp.is_success:
            return ProbeResponse(
                body=resp.content,
                status_code=resp.status_code,
                content_type=resp.headers.get("content-type"),
                url=url,
            )

        message = f"HTTP {resp.status_code} from {method} {url}"
        if is_transient_status(resp.status_code):
            raise TransientProbeError(message, url=url, status_code=resp.status_code)
        raise ProbeError(message, url=url, status_code=resp.status_code)


class TraceProber:
    """Trigger-once-then-poll prober used by the CLI."""

    def __init__(self, config: RunConfig, http: HttpProber) -> None:
        self._config = config
        self._http = http
        self.triggered = False

    @property
    def trigger_request(self) -> ProbeRequest:
        return ProbeRequest(url=self._config.trigger_url, timeout=self._config.request_timeout)

    @property
    def collector_request(self) -> ProbeRequest | None:
        if not self._config.collector_url:
            return None
        return ProbeRequest(url=self._config.collector_url, timeout=self._config.request_timeout)

    def probe(self) -> ProbeResponse:
        """One attempt: trigger (until it has succeeded once), then fetch."""
        collector = self.collector_request
        if collector is None:
            # the trigger response is the artifact, so every attempt sends it
            response = self._http.request(self.trigger_request)
            self.triggered = True
            return response

        if not self.triggered:
            trigger = self._http.request(self.trigger_request)
            self.triggered = True
            logger.info("trigger_sent", url=trigger.url, status_code=trigger.status_code)

        return self._http.request(collector)


__all__ = [
    "HttpProber",
    "ProbeRequest",
    "ProbeResponse",
    "Prober",
    "TRANSIENT_STATUS_CODES",
    "TraceProber",
    "is_transient_status",
]
