"""
Source Locator
==============

Finds the raw diagram source of a request: a compressed token at the end of
the URL path, the legacy ``url`` query parameter, an uploaded file or the
request body. Tokens that fail to decode yield an empty source, never an
exception.
"""

from typing import Any, Optional
import re

from src.config.logging import get_logger
from src.core.codec.transcoder import CodecError, Transcoder
from src.models.schemas import RawSource, SourceOrigin

logger = get_logger(__name__)

# /<servlet>[/<index>][/<token>][/]
PATH_RE = re.compile(r"/\w+(?:/(?P<index>\d+))?(?:/(?P<token>[^/]+))?/?$")

# keeps the last run of token characters, e.g. of a full diagram URL
LEGACY_URL_RE = re.compile(r"^.*[^a-zA-Z0-9\-_]([a-zA-Z0-9\-_]+)")

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


def encoded_token_from_path(path: str, default: str = "") -> str:
    """Compressed token at the end of a diagram URL path."""
    match = PATH_RE.search(path)
    if not match or match.group("token") is None:
        return default
    return match.group("token")


def index_from_path(path: str, default: int = 0) -> int:
    """Image index segment of a diagram URL path (``/png/2/<token>``)."""
    match = PATH_RE.search(path)
    if not match or match.group("index") is None:
        return default
    return int(match.group("index"))


def legacy_url_token(url: str) -> str:
    """Token part of a legacy ``url`` parameter."""
    match = LEGACY_URL_RE.match(url)
    return match.group(1) if match else url


def read_lines(body: str) -> str:
    """Normalise a body so that every input line ends with a newline."""
    lines = _LINE_BREAK_RE.split(body)
    if lines and lines[-1] == "":
        lines.pop()
    return "".join(f"{line}\n" for line in lines)


class SourceLocator:
    """Extracts diagram sources from the parts of a request."""

    def __init__(self, transcoder: Transcoder):
        self.transcoder = transcoder
        self.logger: Any = logger.bind(component="source_locator")  # structlog.BoundLoggerBase

    def decode(self, token: str, origin: SourceOrigin) -> RawSource:
        """Decode a token; failures are logged and give an empty source."""
        if not token:
            return RawSource.empty(origin)
        try:
            return RawSource(text=self.transcoder.decode(token), origin=origin)
        except CodecError as e:
            self.logger.warning(
                "Diagram token could not be decoded", origin=origin.value, error=str(e)
            )
            return RawSource.empty(origin)

    def from_path(self, path: str, prefix: str) -> RawSource:
        """
        Source from the compressed token following ``prefix`` in the path.

        Args:
            path: Request path, e.g. ``/png/SyfFKj2rKt3CoKnELR1Io4ZDoSa70000``
            prefix: Context prefix of the endpoint, e.g. ``/png/``
        """
        if prefix not in path or path.endswith(prefix):
            return RawSource.empty(SourceOrigin.PATH_TOKEN)
        return self.decode(encoded_token_from_path(path), SourceOrigin.PATH_TOKEN)

    def from_query(self, url: Optional[str]) -> RawSource:
        """Source from the legacy ``url`` query parameter."""
        if url is None or not url.strip():
            return RawSource.empty(SourceOrigin.QUERY_PARAM)
        return self.decode(legacy_url_token(url.strip()), SourceOrigin.QUERY_PARAM)

    def from_body(self, body: str) -> RawSource:
        """Source from a POST body, taken verbatim line by line."""
        return RawSource(text=read_lines(body), origin=SourceOrigin.BODY)

    def from_upload(self, data: bytes) -> RawSource:
        """Source from an uploaded file."""
        return RawSource(text=data.decode("utf-8", errors="replace"), origin=SourceOrigin.UPLOAD)

    def locate(self, path: str, prefix: str, url: Optional[str] = None) -> RawSource:
        """Source of a GET request: the path token first, then the ``url`` parameter."""
        source = self.from_path(path, prefix)
        if not source.is_empty:
            return source
        return self.from_query(url)
