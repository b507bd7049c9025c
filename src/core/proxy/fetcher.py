"""
Remote Source Fetcher
=====================

Validation and retrieval of diagram sources and images hosted elsewhere.
Only public ``http(s)`` URLs with a dotted host name are fetched; IP
literals and single-label hosts are refused.
"""

from typing import Any, Dict, Optional, Tuple
import asyncio
import re

import aiohttp
from yarl import URL

from src.config.logging import get_logger
from src.config.settings import Settings

logger = get_logger(__name__)

_IP_HOST_RE = re.compile(r"^https?://[-#.0-9:\[\]+]+/.*")
_NO_DOT_PATH_RE = re.compile(r"^https?://[^.]+/.*")
_NO_DOT_HOST_RE = re.compile(r"^https?://[^.]+")


class ProxyError(Exception):
    """Exception raised when a remote source cannot be used."""

    status_code = 400


class MalformedURLError(ProxyError):
    """The URL cannot be parsed."""

    pass


class ForbiddenURLError(ProxyError):
    """The URL points somewhere the proxy must not go."""

    pass


class FetchError(ProxyError):
    """The remote server did not deliver the resource."""

    status_code = 502


def forbidden_url(url: Optional[str]) -> bool:
    """Whether a URL is refused by the proxy."""
    if url is None or not (url.startswith("https://") or url.startswith("http://")):
        return True
    if _IP_HOST_RE.fullmatch(url):
        return True
    if _NO_DOT_PATH_RE.fullmatch(url):
        return True
    return _NO_DOT_HOST_RE.fullmatch(url) is not None


def validate_url(url: Optional[str]) -> URL:
    """
    Parse and check a remote URL.

    Raises:
        MalformedURLError: if the URL cannot be parsed
        ForbiddenURLError: if the URL is in a forbidden format (e.g. IP address)
    """
    if not url:
        raise MalformedURLError("URL malformed.")
    try:
        parsed = URL(url)
    except (ValueError, TypeError) as e:
        raise MalformedURLError("URL malformed.") from e
    if not parsed.is_absolute() or not parsed.scheme:
        raise MalformedURLError("URL malformed.")

    if forbidden_url(url):
        raise ForbiddenURLError("Forbidden URL format.")
    return parsed


class SourceFetcher:
    """Fetches remote resources with the configured timeout and credentials."""

    def __init__(self, settings: Settings):
        self.read_timeout = settings.proxy_read_timeout / 1000
        self.authorization = settings.http_authorization
        self.logger: Any = logger.bind(component="source_fetcher")  # structlog.BoundLoggerBase

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": self.authorization} if self.authorization else {}

    async def fetch(self, url: URL) -> Tuple[bytes, Optional[str]]:
        """
        GET a remote resource.

        Returns:
            Tuple of (body, content_type)
        """
        timeout = aiohttp.ClientTimeout(sock_connect=self.read_timeout, sock_read=self.read_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=self._headers()) as response:
                    if response.status >= 400:
                        self.logger.warning(
                            "Remote resource request failed", url=str(url), status=response.status
                        )
                        raise FetchError(f"Remote server answered {response.status}.")
                    body = await response.read()
                    return body, response.headers.get("Content-Type")
        except aiohttp.ClientError as e:
            self.logger.warning("Remote resource unreachable", url=str(url), error=str(e))
            raise FetchError("Remote resource unreachable.") from e
        except asyncio.TimeoutError as e:
            self.logger.warning("Remote resource timed out", url=str(url))
            raise FetchError("Remote resource timed out.") from e

    async def fetch_source(self, url: URL) -> str:
        """Fetch a diagram source; lines are joined with ``\\n``."""
        body, _ = await self.fetch(url)
        text = body.decode("utf-8", errors="replace")
        return "\n".join(text.splitlines())
