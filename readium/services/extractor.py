"""Article extraction over a flat token stream.

Only the markup inside ``<article>`` survives, reduced to a fixed set of
content tags and attributes. Unknown elements are skipped together with
everything they contain by tracking their names on a discard stack, so no
tree is ever built.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

import structlog

from readium.services.tokens import (
    EndOfStream,
    EndTag,
    Error,
    SelfClosingTag,
    StartTag,
    Text,
    Token,
    tokenize,
)

logger = structlog.get_logger(__name__)

ARTICLE_TAG = "article"

CONTENT_TAGS = frozenset(
    {
        "title",
        "p",
        "a",
        "em",
        "strong",
        "div",
        "span",
        "section",
        "h1",
        "h2",
        "h3",
        "blockquote",
        "figure",
        "figcaption",
        "pre",
        "code",
    }
)
VOID_CONTENT_TAGS = frozenset({"br", "img"})
ALLOWED_ATTRIBUTES = frozenset({"src", "title", "role", "href"})

# Elements that never carry an end tag. Only consulted when void start tags
# are treated as self-closing; otherwise an unslashed ``<br>`` is pushed on
# the discard stack like any other unknown start tag.
HTML_VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)


@dataclass
class ExtractResult:
    content: bytes
    error: Optional[Exception] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.error is None


def _render_attrs(attrs: Iterable[tuple[str, str]]) -> str:
    return " ".join(
        f'{name}="{html.escape(value)}"'
        for name, value in attrs
        if name in ALLOWED_ATTRIBUTES
    )


def _open_tag(name: str, attrs: Iterable[tuple[str, str]]) -> str:
    return f"<{name} {_render_attrs(attrs)}>\n"


class _Extraction:
    """State for one pass over a token stream."""

    def __init__(self, void_start_tags: bool = False) -> None:
        self.void_start_tags = void_start_tags
        self.in_article = False
        self.discard_stack: list[str] = []
        self.output: list[str] = []
        self.warnings: list[str] = []

    @property
    def emitting(self) -> bool:
        return self.in_article and not self.discard_stack

    def text(self, token: Text) -> None:
        if self.emitting:
            self.output.append(html.escape(token.data, quote=False))

    def start(self, token: StartTag) -> None:
        name = token.name
        if name == ARTICLE_TAG:
            self.in_article = True
        elif name in CONTENT_TAGS:
            if self.emitting:
                self.output.append(_open_tag(name, token.attrs))
        elif self.void_start_tags and name in HTML_VOID_ELEMENTS:
            self.self_closing(SelfClosingTag(name, token.attrs))
        elif self.in_article:
            self.discard_stack.append(name)

    def self_closing(self, token: SelfClosingTag) -> None:
        if token.name in VOID_CONTENT_TAGS and self.emitting:
            self.output.append(_open_tag(token.name, token.attrs))

    def end(self, token: EndTag) -> None:
        name = token.name
        if name == ARTICLE_TAG:
            self.in_article = False
        elif name in CONTENT_TAGS:
            if self.emitting:
                self.output.append(f"</{name}>\n")
        elif self.in_article:
            self._close_discarded(name)

    def _close_discarded(self, name: str) -> None:
        if not self.discard_stack:
            self._warn("extract.discard_empty_stack", f"cannot discard {name!r}: empty stack", tag=name)
            return
        top = self.discard_stack[-1]
        if top != name:
            self._warn(
                "extract.discard_mismatch",
                f"cannot discard {name!r}: stack is {self.discard_stack!r}",
                tag=name,
                stack=list(self.discard_stack),
            )
            return
        self.discard_stack.pop()

    def _warn(self, event: str, message: str, **fields) -> None:
        self.warnings.append(message)
        logger.warning(event, **fields)

    def result(self, error: Optional[Exception] = None) -> ExtractResult:
        content = "".join(self.output).encode("utf-8")
        return ExtractResult(content=content, error=error, warnings=list(self.warnings))


def extract(tokens: Iterable[Token], *, void_start_tags: bool = False) -> ExtractResult:
    """Filter a token stream down to the allow-listed article markup.

    The pass stops at the first ``Error`` or ``EndOfStream`` token. Whatever
    was produced up to that point is returned, together with the error if
    the stream failed. A stream that simply runs out is treated like
    ``EndOfStream``.

    With ``void_start_tags`` set, a start tag for an HTML void element
    (``<br>``, ``<img ...>``, ``<hr>``) is handled as if it were written
    self-closing, so it is never pushed on the discard stack.
    """
    state = _Extraction(void_start_tags)
    for token in tokens:
        if isinstance(token, Text):
            state.text(token)
        elif isinstance(token, StartTag):
            state.start(token)
        elif isinstance(token, SelfClosingTag):
            state.self_closing(token)
        elif isinstance(token, EndTag):
            state.end(token)
        elif isinstance(token, Error):
            return state.result(token.cause)
        elif isinstance(token, EndOfStream):
            break
    return state.result()


def extract_html(
    markup: Union[bytes, str, Iterable[Union[bytes, str]]],
    encoding: str = "utf-8",
    *,
    void_start_tags: bool = False,
) -> ExtractResult:
    """Tokenize ``markup`` and extract its article body."""
    if isinstance(markup, (bytes, str)):
        markup = [markup]
    return extract(tokenize(markup, encoding=encoding), void_start_tags=void_start_tags)


__all__ = [
    "ALLOWED_ATTRIBUTES",
    "CONTENT_TAGS",
    "VOID_CONTENT_TAGS",
    "ExtractResult",
    "extract",
    "extract_html",
]
