import logging
import time
from functools import partial
from typing import Optional

import structlog
from dotenv import load_dotenv
from flask import Flask, g, request

from readium.config import AppSettings
from readium.services.fetch import Fetcher, build_session, fetch_document
from readium.services.reader import ArticleReader
from readium.services.result_cache import ResultCache
from readium.utils.correlation import (
    bind_request_context,
    clear_correlation_context,
    correlation_id_from_headers,
    ensure_correlation_id,
)
from readium.utils.logging_config import setup_logging

__version__ = "1.0.0"


def _build_reader(settings: AppSettings, fetcher: Optional[Fetcher]) -> ArticleReader:
    if fetcher is None:
        fetcher = partial(
            fetch_document,
            session=build_session(settings.FETCH_MAX_RETRIES),
            timeout=settings.FETCH_TIMEOUT_SECONDS,
            user_agent=settings.FETCH_USER_AGENT,
        )
    return ArticleReader(
        settings.UPSTREAM_BASE_URL,
        fetcher=fetcher,
        void_start_tags=settings.EXTRACT_VOID_START_TAGS,
    )


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    result_cache: Optional[ResultCache] = None,
    fetcher: Optional[Fetcher] = None,
):
    """Create and configure an instance of the Flask application.

    The result cache and the upstream fetcher are constructed here unless
    supplied, and hang off the app as ``app.result_cache`` and
    ``app.article_reader``.
    """
    load_dotenv()
    settings = settings or AppSettings()

    # Set up logging as early as possible
    setup_logging(level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)
    logger = logging.getLogger(__name__)

    logger.info("Application starting with configuration:")
    logger.info(f"  ENV: {settings.ENV}")
    logger.info(f"  PORT: {settings.PORT}")
    logger.info(f"  UPSTREAM_BASE_URL: {settings.UPSTREAM_BASE_URL}")
    logger.info(f"  CACHE_MAX_ENTRIES: {settings.CACHE_MAX_ENTRIES}")
    logger.info(f"  CACHE_EVICTION: {settings.CACHE_EVICTION}")
    logger.info(f"  CACHE_LOCKING: {settings.CACHE_LOCKING}")
    logger.info(f"  EXTRACT_VOID_START_TAGS: {settings.EXTRACT_VOID_START_TAGS}")

    app = Flask(__name__, static_folder=None)
    app.config.from_mapping(
        ENV=settings.ENV,
        PORT=settings.PORT,
        UPSTREAM_BASE_URL=settings.UPSTREAM_BASE_URL,
        READIUM_SETTINGS=settings,
    )

    if result_cache is None:
        result_cache = ResultCache(
            settings.CACHE_MAX_ENTRIES,
            eviction=settings.CACHE_EVICTION,
            locking=settings.CACHE_LOCKING,
        )
    app.result_cache = result_cache
    app.article_reader = _build_reader(settings, fetcher)

    request_logger = structlog.get_logger("readium.http")

    @app.before_request
    def bind_correlation():
        """Bind a correlation id and the request path into the logging context."""
        g.request_started = time.perf_counter()
        ensure_correlation_id(correlation_id_from_headers(request.headers))
        bind_request_context(path=request.path, method=request.method)
        request_logger.info("http.request")

    @app.after_request
    def add_correlation_header(response):
        correlation_id = getattr(g, "correlation_id", None)
        if correlation_id:
            response.headers.setdefault("x-correlation-id", correlation_id)
        started = getattr(g, "request_started", None)
        elapsed_ms = int((time.perf_counter() - started) * 1000) if started else None
        request_logger.info(
            "http.response", status_code=response.status_code, elapsed_ms=elapsed_ms
        )
        return response

    @app.teardown_request
    def reset_correlation(_exc=None):
        clear_correlation_context()

    from .routes import reader

    if "reader" not in app.blueprints:
        app.register_blueprint(reader.bp)

    def internal_server_error(e):
        logger = logging.getLogger(__name__)
        # Log the full traceback for better visibility in logs
        original = getattr(e, "original_exception", None) or e
        logger.error("An internal server error occurred: %s", original, exc_info=original)
        return app.response_class(str(original), status=500, mimetype="text/plain")

    app.register_error_handler(500, internal_server_error)

    return app
