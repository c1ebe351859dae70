import pytest

from readium import create_app
from readium.config import AppSettings
from readium.services.fetch import UpstreamDocument
from readium.services.result_cache import ResultCache

UPSTREAM = "https://medium.com"

ARTICLE_HTML = b"""<!doctype html>
<html>
<head><title>Chrome title</title><script>var tracking = 1;</script></head>
<body>
<nav><a href="/home">Home</a></nav>
<article>
<h1 class="headline">A Story</h1>
<p>First <em>paragraph</em>.</p>
<aside><p>Related links</p></aside>
<img src="/cover.png" alt="cover"/>
</article>
<footer>Footer text</footer>
</body>
</html>
"""


class StubUpstream:
    """Fetcher double that serves canned documents and records calls."""

    def __init__(self):
        self.pages = {}
        self.errors = {}
        self.calls = []

    def add(self, path, body, status_code=200):
        self.pages[UPSTREAM + path] = (status_code, body)

    def fail(self, path, exc):
        self.errors[UPSTREAM + path] = exc

    def __call__(self, url):
        self.calls.append(url)
        if url in self.errors:
            raise self.errors[url]
        status_code, body = self.pages.get(url, (404, b"<html>missing</html>"))
        return UpstreamDocument(url=url, status_code=status_code, chunks=[body])


@pytest.fixture()
def article_html():
    return ARTICLE_HTML


@pytest.fixture()
def upstream():
    return StubUpstream()


@pytest.fixture()
def settings():
    return AppSettings(_env_file=None, ENV="testing", LOG_LEVEL="WARNING")


@pytest.fixture()
def app(settings, upstream):
    app = create_app(settings, result_cache=ResultCache(), fetcher=upstream)
    app.config.update(TESTING=True)
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()
