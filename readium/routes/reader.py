import structlog
from flask import Blueprint, current_app, request

from readium.services.exceptions import FetchError
from readium.services.reader import PLACEHOLDER_PAGE

bp = Blueprint("reader", __name__)
logger = structlog.get_logger(__name__)

HTML_MIMETYPE = "text/html"


@bp.route("/", defaults={"_path": ""})
@bp.route("/<path:_path>")
def read(_path: str):
    """Serve the reading-mode rendering of the matching upstream article."""
    path = request.path
    if len(path) < 2:
        return current_app.response_class(PLACEHOLDER_PAGE, mimetype=HTML_MIMETYPE)

    try:
        result = current_app.result_cache.serve(path, current_app.article_reader)
    except FetchError as exc:
        logger.error("reader.fetch_failed", url=exc.url, error=str(exc))
        return current_app.response_class(str(exc), status=500, mimetype="text/plain")

    response = current_app.response_class(
        result.content, status=result.status_code, mimetype=HTML_MIMETYPE
    )
    response.headers["x-cache-hits"] = str(result.hits)
    response.headers["x-cache-size"] = str(result.cache_size)
    return response
