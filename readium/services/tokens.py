"""Incremental markup tokenizer.

Turns an iterable of raw byte (or text) chunks into a flat stream of tokens
without building a tree. The stream always ends with either an ``Error`` or
an ``EndOfStream`` token.
"""

from __future__ import annotations

import codecs
from collections import deque
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Iterable, Iterator, Union

from readium.services.exceptions import TokenStreamError

Attributes = list[tuple[str, str]]


@dataclass(frozen=True)
class Text:
    data: str


@dataclass(frozen=True)
class StartTag:
    name: str
    attrs: Attributes = field(default_factory=list)


@dataclass(frozen=True)
class EndTag:
    name: str


@dataclass(frozen=True)
class SelfClosingTag:
    name: str
    attrs: Attributes = field(default_factory=list)


@dataclass(frozen=True)
class Error:
    cause: Exception


@dataclass(frozen=True)
class EndOfStream:
    pass


Token = Union[Text, StartTag, EndTag, SelfClosingTag, Error, EndOfStream]


def _normalise_attrs(attrs: list[tuple[str, str | None]]) -> Attributes:
    # Value-less attributes (<p hidden>) come through as None.
    return [(name, "" if value is None else value) for name, value in attrs]


class _TokenCollector(HTMLParser):
    """HTMLParser that queues tokens instead of acting on them."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.pending: deque[Token] = deque()

    def handle_starttag(self, tag, attrs):
        self.pending.append(StartTag(tag, _normalise_attrs(attrs)))

    def handle_startendtag(self, tag, attrs):
        self.pending.append(SelfClosingTag(tag, _normalise_attrs(attrs)))

    def handle_endtag(self, tag):
        self.pending.append(EndTag(tag))

    def handle_data(self, data):
        if data:
            self.pending.append(Text(data))

    def drain(self) -> Iterator[Token]:
        while self.pending:
            yield self.pending.popleft()


def tokenize(
    chunks: Iterable[Union[bytes, str]], encoding: str = "utf-8"
) -> Iterator[Token]:
    """Yield tokens for the markup carried by ``chunks``.

    Byte chunks are decoded incrementally with ``encoding``; undecodable
    sequences are replaced rather than raised. Any exception raised while
    pulling chunks or parsing them ends the stream with an ``Error`` token
    wrapping a :class:`TokenStreamError`. Tokens produced before the failure
    are still yielded.
    """
    parser = _TokenCollector()
    try:
        decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    except LookupError:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    try:
        for chunk in chunks:
            if isinstance(chunk, bytes):
                chunk = decoder.decode(chunk)
            if chunk:
                parser.feed(chunk)
            yield from parser.drain()
        tail = decoder.decode(b"", final=True)
        if tail:
            parser.feed(tail)
        parser.close()
    except Exception as exc:
        yield from parser.drain()
        error = TokenStreamError(f"token stream interrupted: {exc}")
        error.__cause__ = exc
        yield Error(error)
        return

    yield from parser.drain()
    yield EndOfStream()


__all__ = [
    "Token",
    "Text",
    "StartTag",
    "EndTag",
    "SelfClosingTag",
    "Error",
    "EndOfStream",
    "tokenize",
]
