"""Fetch an upstream article and render its reading-mode page."""

from __future__ import annotations

from typing import Optional

import structlog

from readium.services.extractor import extract
from readium.services.fetch import Fetcher, fetch_document
from readium.services.tokens import tokenize

logger = structlog.get_logger(__name__)

DEFAULT_UPSTREAM_BASE_URL = "https://medium.com"

PLACEHOLDER_PAGE = "<!doctype html>Hello."

PAGE_PREAMBLE = """<!doctype html><body>
<meta name="viewport" content="width=device-width, initial-scale=1">
<style type="text/css">
body{ margin:40px auto; max-width:800px; line-height:1.6; font-size:18px; padding:0 10px; }
h1,h2,h3 { line-height:1.2 }
img { max-height: 400px; max-width: 400px; }
</style>
"""


def render_page(article: bytes) -> bytes:
    """Wrap extracted article markup in the fixed reading layout."""
    return PAGE_PREAMBLE.encode("utf-8") + article


class ArticleReader:
    """Callable handed to :class:`ResultCache` to fill a miss.

    ``reader(path)`` fetches ``base_url + path``, extracts the article and
    returns ``(status_code, page)``. Fetch failures propagate as
    :class:`FetchError`; a token stream that breaks off still yields the
    partial page, with the upstream status.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_UPSTREAM_BASE_URL,
        fetcher: Optional[Fetcher] = None,
        *,
        void_start_tags: bool = False,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._fetch = fetcher or fetch_document
        self.void_start_tags = void_start_tags

    def upstream_url(self, path: str) -> str:
        return self.base_url + path

    def __call__(self, path: str) -> tuple[int, bytes]:
        url = self.upstream_url(path)
        document = self._fetch(url)
        try:
            result = extract(
                tokenize(document.chunks, encoding=document.encoding),
                void_start_tags=self.void_start_tags,
            )
        finally:
            document.close()

        if result.error is not None:
            logger.warning(
                "reader.extract_incomplete",
                url=url,
                error=str(result.error),
                partial_bytes=len(result.content),
            )
        if result.warnings:
            logger.info("reader.extract_anomalies", url=url, count=len(result.warnings))

        return document.status_code, render_page(result.content)
