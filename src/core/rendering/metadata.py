"""
Image Metadata Extraction
=========================

Recovers the diagram source embedded in images previously rendered by
PlantUML. PNG images carry it in a ``plantuml`` text chunk, SVG images in a
processing instruction (or a comment for older renderer versions).
"""

from typing import Optional, Tuple
import io

from PIL import Image, UnidentifiedImageError  # type: ignore

from src.config.logging import get_logger
from src.core.codec.transcoder import CodecError, Transcoder
from src.models.schemas import ImageMetadata, OutputFormat

logger = get_logger(__name__)

PNG_METADATA_KEY = "plantuml"

# (start token, end token), newest renderer first
SVG_METADATA_MARKERS: Tuple[Tuple[str, str], ...] = (
    ("<?plantuml-src ", "?>"),
    ("<!--SRC=[", "]"),
)


class MetadataError(Exception):
    """Exception raised when an image carries no usable diagram metadata."""

    pass


def extract_png_metadata(data: bytes, transcoder: Transcoder) -> ImageMetadata:
    """
    Read the diagram source from a PNG image.

    The text chunk holds the decoded source, an empty line and the renderer
    version (which itself has no empty lines), so the split happens at the
    last empty line.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            raw: Optional[str] = image.info.get(PNG_METADATA_KEY)
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("PNG image could not be read", error=str(e))
        raise MetadataError("No meta data found.") from e

    if raw is None:
        raise MetadataError("No meta data found.")

    raw_content = str(raw).replace("\r\n", "\n").strip()
    cut = raw_content.rfind("\n\n")
    if cut == -1:
        decoded, version = raw_content, None
    else:
        decoded, version = raw_content[:cut], raw_content[cut:].strip()

    encoded = transcoder.encode(decoded)
    return ImageMetadata(
        encoded=encoded,
        decoded=decoded,
        version=version or None,
        # the encoded token is not stored in the image
        raw_content=f"{encoded}\n\n{raw_content}",
    )


def extract_svg_metadata(svg: str, transcoder: Transcoder) -> ImageMetadata:
    """Read the diagram source from an SVG document."""
    for start_token, end_token in SVG_METADATA_MARKERS:
        start = svg.rfind(start_token)
        if start == -1:
            continue

        part = svg[start + len(start_token) :]
        end = part.find(end_token)
        if end == -1:
            raise MetadataError("Invalid meta data: No end token found.")

        encoded = part[:end].strip()
        try:
            decoded = transcoder.decode(encoded)
        except CodecError as e:
            logger.warning("SVG metadata could not be decoded", error=str(e))
            raise MetadataError("Invalid meta data: PlantUML diagram is corrupted.") from e
        return ImageMetadata(encoded=encoded, decoded=decoded)

    raise MetadataError("No meta data found.")


def extract_metadata(data: bytes, fmt: OutputFormat, transcoder: Transcoder) -> ImageMetadata:
    """Extract metadata from a PNG or SVG image."""
    if fmt == OutputFormat.PNG:
        return extract_png_metadata(data, transcoder)
    if fmt == OutputFormat.SVG:
        return extract_svg_metadata(data.decode("utf-8", errors="replace"), transcoder)
    raise MetadataError("Unsupported image format.")
