import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from readium.services.exceptions import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = os.getenv(
    "FETCH_USER_AGENT",
    "Mozilla/5.0 (compatible; ReadiumBot/1.0)",
)
REQUEST_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))
FETCH_MAX_RETRIES = int(os.getenv("FETCH_MAX_RETRIES", "3"))
FETCH_BACKOFF_FACTOR = 0.3
FETCH_MAX_REDIRECTS = 10
CHUNK_SIZE = 16 * 1024
DEFAULT_ENCODING = "utf-8"

_session_lock = threading.Lock()
_session: requests.Session | None = None


@dataclass
class UpstreamDocument:
    """An upstream response whose body has not been read yet."""

    url: str
    status_code: int
    chunks: Iterable[bytes]
    encoding: str = DEFAULT_ENCODING
    response: Optional[requests.Response] = None

    def close(self) -> None:
        if self.response is not None:
            self.response.close()


Fetcher = Callable[[str], UpstreamDocument]


def _retry_adapter(max_retries: int) -> HTTPAdapter:
    # Upstream statuses are passed through to the client, so only
    # connection-level failures are retried.
    retry = Retry(
        total=None,
        connect=max_retries,
        read=max_retries,
        status=0,
        redirect=FETCH_MAX_REDIRECTS,
        backoff_factor=FETCH_BACKOFF_FACTOR,
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    return HTTPAdapter(max_retries=retry, pool_connections=16, pool_maxsize=32)


def build_session(max_retries: int = FETCH_MAX_RETRIES) -> requests.Session:
    sess = requests.Session()
    adapter = _retry_adapter(max_retries)
    sess.mount("https://", adapter)
    sess.mount("http://", adapter)
    return sess


def _get_session() -> requests.Session:
    global _session
    if _session is not None:
        return _session
    with _session_lock:
        if _session is not None:
            return _session
        _session = build_session()
    return _session


def _build_headers(user_agent: Optional[str]) -> dict[str, str]:
    return {
        "User-Agent": user_agent or USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


def _response_encoding(response: requests.Response) -> str:
    # requests assumes ISO-8859-1 for text/* without a charset; only trust
    # an explicit declaration.
    content_type = (response.headers.get("Content-Type") or "").lower()
    if "charset=" in content_type and response.encoding:
        return response.encoding
    return DEFAULT_ENCODING


def _iter_body(response: requests.Response) -> Iterator[bytes]:
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        if chunk:
            yield chunk


def fetch_document(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
    user_agent: Optional[str] = None,
) -> UpstreamDocument:
    """GET ``url`` and return its status with a lazily read body.

    Any status code is accepted and passed through. Failure to obtain a
    response at all raises :class:`FetchError`. Errors while reading the
    body surface later, from the ``chunks`` iterator.
    """
    session = session or _get_session()
    started = time.perf_counter()
    logger.debug("fetch.start", extra={"url": url})
    try:
        response = session.get(
            url,
            headers=_build_headers(user_agent),
            timeout=timeout or REQUEST_TIMEOUT_SECONDS,
            allow_redirects=True,
            stream=True,
        )
    except requests.RequestException as exc:
        logger.warning(
            "fetch.request_exception",
            extra={"url": url, "error": str(exc)},
        )
        raise FetchError(f"Get {url!r}: {exc}", url=url) from exc

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
        "fetch.success",
        extra={"url": url, "status": response.status_code, "elapsed_ms": elapsed_ms},
    )
    return UpstreamDocument(
        url=url,
        status_code=response.status_code,
        chunks=_iter_body(response),
        encoding=_response_encoding(response),
        response=response,
    )
