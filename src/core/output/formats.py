"""
Format Dispatcher
=================

Maps format tokens, file names and content types onto output formats.

Two policies exist side by side: rendering endpoints fall back to PNG when no
usable token is given, while format detection (metadata extraction) reports
an unresolved format so the caller can ask for an explicit one.
"""

from typing import Dict, Optional

from src.config.logging import get_logger
from src.models.schemas import OutputFormat

logger = get_logger(__name__)

FORMAT_TOKENS: Dict[str, OutputFormat] = {
    "png": OutputFormat.PNG,
    "svg": OutputFormat.SVG,
    "eps": OutputFormat.EPS,
    "epstext": OutputFormat.EPS_TEXT,
    "eps-text": OutputFormat.EPS_TEXT,
    "txt": OutputFormat.UTXT,
    "utxt": OutputFormat.UTXT,
    "pdf": OutputFormat.PDF,
    "base64": OutputFormat.BASE64,
    "map": OutputFormat.UTXT,
}

LEGACY_FORMAT_TOKENS: Dict[str, OutputFormat] = {
    "svg": OutputFormat.SVG,
    "eps": OutputFormat.EPS,
    "epstext": OutputFormat.EPS_TEXT,
    "txt": OutputFormat.ATXT,
}


def from_token(token: Optional[str]) -> Optional[OutputFormat]:
    """Format named by a token, None for missing or unknown tokens."""
    if not token:
        return None
    return FORMAT_TOKENS.get(token.strip().lower())


def from_filename(filename: Optional[str]) -> Optional[OutputFormat]:
    """Format given by a file name extension."""
    if not filename:
        return None
    _, dot, extension = filename.rpartition(".")
    if not dot:
        logger.warning("File name is malformed. Should be: name.extension", filename=filename)
        return None
    return from_token(extension)


def from_content_type(content_type: Optional[str]) -> Optional[OutputFormat]:
    """Format given by a content type."""
    if not content_type:
        return None
    ct = content_type.lower()
    if "png" in ct:
        return OutputFormat.PNG
    if "svg" in ct or "xml" in ct:
        return OutputFormat.SVG
    logger.warning("Unknown content type for format detection", content_type=content_type)
    return None


def resolve(
    url_suffix_token: Optional[str] = None,
    query_token: Optional[str] = None,
    content_type: Optional[str] = None,
    filename: Optional[str] = None,
) -> Optional[OutputFormat]:
    """
    Detect a format; the first match wins.

    Precedence: explicit tokens (URL suffix, then query), the file name
    extension, then the content type. Unknown tokens fall through.

    Returns:
        The detected format, or None when it cannot be determined
    """
    for candidate in (
        from_token(url_suffix_token),
        from_token(query_token),
        from_filename(filename),
        from_content_type(content_type),
    ):
        if candidate is not None:
            return candidate
    return None


def output_format(token: Optional[str]) -> OutputFormat:
    """Format of a rendering request, PNG unless a known token says otherwise."""
    return from_token(token) or OutputFormat.PNG


def legacy_output_format(token: Optional[str]) -> OutputFormat:
    """Format mapping of the legacy proxy URL scheme."""
    if not token:
        return OutputFormat.PNG
    return LEGACY_FORMAT_TOKENS.get(token, OutputFormat.PNG)
