"""
Coder Routes
============

Convert between diagram sources and compressed tokens.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from src.api.dependencies import get_rendering_context
from src.api.routes.diagrams import read_body
from src.core.context import RenderingContext

router = APIRouter(tags=["Coder"])

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


@router.get("/coder", response_class=PlainTextResponse)
@router.get("/coder/{rest:path}", response_class=PlainTextResponse, include_in_schema=False)
async def decode_source(
    request: Request,
    url: Optional[str] = Query(None),
    context: RenderingContext = Depends(get_rendering_context),
) -> PlainTextResponse:
    """Decode a token from the path (or ``url`` parameter) to diagram text."""
    source = context.locator.locate(request.url.path, "/coder/", url)
    return PlainTextResponse(source.text, media_type=TEXT_MEDIA_TYPE)


@router.post("/coder", response_class=PlainTextResponse)
async def encode_source(
    request: Request,
    context: RenderingContext = Depends(get_rendering_context),
) -> PlainTextResponse:
    """Encode the diagram text of the request body."""
    text = await read_body(request)
    return PlainTextResponse(context.transcoder.encode(text), media_type=TEXT_MEDIA_TYPE)
