"""
Shared HTTP client with automatic retry and backoff.

Provides a pre-configured ``requests.Session`` that retries on transient
failures (connection errors, 429, 5xx) with exponential backoff. Read
timeouts are surfaced immediately as ``requests.Timeout``. Data sources
take a session argument and default to the module-level one.

Usage::

    from obis_explorer.services.http import create_session

    s = create_session(build_retry(total=2, backoff_factor=0.5), timeout=10)
    resp = s.get("https://api.obis.org/v3/occurrence", params={"size": 1})

Error mapping lives in ``check_response``: the final response after
retries is either returned, or converted into ``QueryRejectedError``
(4xx) / ``TransientFetchError`` (429, 5xx). ``get_json`` wraps a GET
with that mapping for the data-source clients.
"""

from __future__ import annotations

from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import ConnectTimeoutError, MaxRetryError, ReadTimeoutError
from urllib3.util.retry import Retry

from obis_explorer import __version__
from obis_explorer.errors import QueryRejectedError, TransientFetchError

#: Statuses worth retrying: rate limiting and server-side failures.
RETRY_STATUSES = (429, 500, 502, 503, 504)

DEFAULT_TIMEOUT = 60  # seconds


def build_retry(total: int = 4, backoff_factor: float = 2.0) -> Retry:
    """Retry strategy with exponential backoff (0s, 2s, 4s, 8s for the defaults).

    Read timeouts are not retried: a request that outlives its timeout is
    re-raised at once as ``requests.ReadTimeout`` so the caller's time
    budget stays in charge.
    """
    return Retry(
        total=total,
        read=False,
        backoff_factor=backoff_factor,
        status_forcelist=list(RETRY_STATUSES),
        allowed_methods=["GET", "HEAD", "OPTIONS"],
        raise_on_status=False,  # check_response() maps the final status
    )


#: Default retry strategy.
DEFAULT_RETRY = build_retry()


def create_session(
    retry: Retry | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> requests.Session:
    """
    Build a ``requests.Session`` with retry adapter mounted.

    Args:
        retry: Custom retry strategy (defaults to ``DEFAULT_RETRY``).
        timeout: Default timeout applied to every request.
    """
    s = requests.Session()
    adapter = HTTPAdapter(max_retries=retry or DEFAULT_RETRY)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    s.headers["User-Agent"] = f"obis-explorer/{__version__}"
    s.headers["Accept"] = "application/json"

    # Inject a default timeout so callers don't need to pass ``timeout=``
    _original_send = s.send

    def _send_with_timeout(
        prepared: requests.PreparedRequest, **kwargs: object
    ) -> requests.Response:
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = timeout
        return _original_send(prepared, **kwargs)  # type: ignore[arg-type]

    s.send = _send_with_timeout  # type: ignore[method-assign]
    return s


def server_message(resp: requests.Response) -> str:
    """Best-effort extraction of the error text a server sent back."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip()[:500]
    if isinstance(body, dict):
        for key in ("message", "error", "detail", "errors"):
            if body.get(key):
                return str(body[key])
    return str(body)[:500]


def check_response(resp: requests.Response, **context: Any) -> requests.Response:
    """Return ``resp`` if successful, otherwise raise the matching error.

    Args:
        resp: Final response (retries already spent by the adapter).
        **context: Query parameters, page index, counts for the error.

    Raises:
        TransientFetchError: 429 or 5xx after the retry budget.
        QueryRejectedError: Any other 4xx.
    """
    status = resp.status_code
    if status < 400:
        return resp
    message = server_message(resp)
    if status in RETRY_STATUSES or status >= 500:
        msg = f"server still failing after retries: HTTP {status}"
        raise TransientFetchError(msg, status_code=status, url=resp.url, **context)
    msg = f"request rejected: HTTP {status}: {message}"
    raise QueryRejectedError(
        msg, status_code=status, server_message=message, url=resp.url, **context
    )


def timeout_cause(exc: requests.RequestException) -> requests.Timeout | None:
    """The timeout behind a retry-exhausted ``ConnectionError``, if any.

    When a ``Retry`` gives up on timed-out attempts, requests reports a
    ``ConnectionError`` wrapping ``MaxRetryError``; unwrap it so callers
    see a ``requests.Timeout`` instead.
    """
    if isinstance(exc, requests.Timeout):
        return exc
    wrapped = exc.args[0] if exc.args else None
    if isinstance(wrapped, MaxRetryError) and isinstance(
        wrapped.reason, ReadTimeoutError | ConnectTimeoutError
    ):
        return requests.Timeout(wrapped, request=exc.request)
    return None


def get_json(
    session: requests.Session,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
    label: str = "API",
    **context: Any,
) -> Any:
    """
    GET ``url`` and decode the JSON body.

    Args:
        session: Session carrying the retry adapter.
        url: Full endpoint URL.
        params: Query-string parameters.
        timeout: Per-request timeout in seconds.
        label: Service name used in error messages (``"OBIS"``, ``"GBIF"``).
        **context: Extra fields attached to any raised error.

    Raises:
        requests.Timeout: The request timed out (the fetcher owns timeouts).
        TransientFetchError: Network failure, 429/5xx after retries, or a
            body that is not JSON.
        QueryRejectedError: Any other 4xx.
    """
    try:
        resp = session.get(url, params=params, timeout=timeout)
    except requests.Timeout:
        raise
    except requests.RequestException as e:
        timed_out = timeout_cause(e)
        if timed_out is not None:
            raise timed_out from e
        msg = f"{label} request failed: {e}"
        raise TransientFetchError(msg, url=url, **context) from e
    check_response(resp, **context)
    try:
        return resp.json()
    except ValueError as e:
        msg = f"{label} returned a non-JSON body"
        raise TransientFetchError(msg, url=url, **context) from e


#: Module-level session, import and use directly.
session: requests.Session = create_session()
