"""HTTP client used by endpoint probes."""
from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass

import requests

LOGGER = logging.getLogger(__name__)

USER_AGENT = "svcdoctor"


@dataclass(slots=True, frozen=True)
class HttpOutcome:
    """Result of a single GET: either a status code or an error."""

    status_code: int | None
    error: str | None = None
    timed_out: bool = False

    @property
    def responded(self) -> bool:
        """Return ``True`` when the server sent any HTTP response."""
        return self.status_code is not None


@dataclass(slots=True)
class HttpClient:
    """Thin wrapper around :mod:`requests` that never raises on transport errors.

    Each call uses a fresh connection unless a session is supplied, so the
    client can be shared by concurrent probes. Redirects are not followed and
    the body is not downloaded: only the status line of the first response
    matters to a reachability probe.
    """

    session: requests.Session | None = None
    verify_tls: bool = True

    def get(self, url: str, timeout_ms: int) -> HttpOutcome:
        """Issue a GET against *url*, bounded by *timeout_ms* overall.

        requests only bounds each connect and socket read, so a server that
        trickles its headers could hold the probe indefinitely. The request
        runs on a helper thread that is abandoned once the overall bound
        passes.
        """
        timeout = max(timeout_ms, 1) / 1000.0
        LOGGER.debug("GET %s (timeout %.3fs)", url, timeout)
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="svcdoctor-http"
        )
        try:
            future = executor.submit(self._fetch, url, timeout)
            try:
                return future.result(timeout=timeout)
            except concurrent.futures.TimeoutError:
                LOGGER.debug("GET %s exceeded %d ms", url, timeout_ms)
                return HttpOutcome(
                    status_code=None,
                    error=f"no complete response within {timeout_ms} ms",
                    timed_out=True,
                )
        finally:
            executor.shutdown(wait=False)

    def _fetch(self, url: str, timeout: float) -> HttpOutcome:
        try:
            getter = self.session.get if self.session is not None else requests.get
            response = getter(
                url,
                timeout=(timeout, timeout),
                allow_redirects=False,
                stream=True,
                verify=self.verify_tls,
                headers={"User-Agent": USER_AGENT},
            )
        except requests.Timeout as exc:
            return HttpOutcome(status_code=None, error=str(exc), timed_out=True)
        except requests.ConnectionError as exc:
            return HttpOutcome(status_code=None, error=str(exc))
        except requests.RequestException as exc:
            return HttpOutcome(status_code=None, error=str(exc))
        try:
            return HttpOutcome(status_code=response.status_code)
        finally:
            response.close()


__all__ = ["HttpClient", "HttpOutcome"]
