"""
Metadata Routes
===============

Recover the diagram source embedded in a rendered PNG or SVG image, either
fetched from a URL or uploaded as the ``diagram`` form file.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from yarl import URL

from src.api.dependencies import get_rendering_context
from src.api.responses import error_response
from src.config.logging import get_logger
from src.core.context import RenderingContext
from src.core.output import formats
from src.core.proxy.fetcher import validate_url
from src.core.rendering.metadata import MetadataError, extract_metadata
from src.models.schemas import OutputFormat

logger = get_logger(__name__)

router = APIRouter(tags=["Metadata"])

SUPPORTED_FORMATS = (OutputFormat.PNG, OutputFormat.SVG)
DETECTION_FAILED = 'PlantUML image format detection failed. Please set "format" (format) manually.'


def _metadata_response(
    request: Request,
    context: RenderingContext,
    data: bytes,
    format_token: Optional[str],
    content_type: Optional[str],
    filename: Optional[str],
) -> Response:
    # an explicit format is never second-guessed
    if format_token:
        fmt = formats.from_token(format_token)
    else:
        fmt = formats.resolve(content_type=content_type, filename=filename)
        if fmt is None:
            return error_response(400, DETECTION_FAILED)
    if fmt not in SUPPORTED_FORMATS:
        token = format_token or fmt.value
        return error_response(
            400, f'The format "{token}" is not supported for meta data extraction.'
        )

    try:
        metadata = extract_metadata(data, fmt, context.transcoder)
    except MetadataError as e:
        logger.info("No diagram metadata in image", format=fmt.value, reason=str(e))
        return error_response(400, str(e))

    if "json" in request.headers.get("accept", "").lower():
        return JSONResponse(metadata.to_json())
    return PlainTextResponse(metadata.to_text(), media_type=OutputFormat.UTXT.mime_type)


@router.get("/metadata", response_class=Response)
async def metadata_from_url(
    request: Request,
    src: Optional[str] = Query(None, description="URL of a rendered diagram image"),
    format: Optional[str] = Query(None, description="Image format (png or svg)"),
    context: RenderingContext = Depends(get_rendering_context),
) -> Response:
    """Metadata of an image hosted elsewhere."""
    url: URL = validate_url(src)
    data, content_type = await context.source_fetcher.fetch(url)
    return _metadata_response(request, context, data, format, content_type, url.name)


@router.post("/metadata", response_class=Response)
async def metadata_from_upload(
    request: Request,
    diagram: UploadFile = File(..., description="Rendered diagram image"),
    format: Optional[str] = Query(None, description="Image format (png or svg)"),
    context: RenderingContext = Depends(get_rendering_context),
) -> Response:
    """Metadata of an uploaded image."""
    data = await diagram.read()
    return _metadata_response(
        request, context, data, format, diagram.content_type, diagram.filename
    )
