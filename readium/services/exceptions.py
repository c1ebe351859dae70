from __future__ import annotations


class ReaderError(Exception):
    """Base class for reading-proxy pipeline errors."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class FetchError(ReaderError):
    """The upstream document could not be retrieved."""


class TokenStreamError(ReaderError):
    """The markup token stream failed before reaching its end."""


__all__ = [
    "ReaderError",
    "FetchError",
    "TokenStreamError",
]
