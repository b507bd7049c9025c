"""
Proxy Routes
============

Render diagram sources hosted on other servers.

``GET /proxy?src=<url>&fmt=<format>&idx=<index>`` goes through the regular
diagram pipeline. The older ``GET /proxy/[index/][format/]<url>`` form is
kept for existing links; it neither wraps bare sources nor sends cache
headers.
"""

from typing import Optional
import re

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from src.api.dependencies import get_rendering_context
from src.api.responses import DiagramResponder, error_response
from src.config.logging import get_logger
from src.core.context import RenderingContext
from src.core.output.formats import legacy_output_format, output_format
from src.core.proxy.fetcher import validate_url

logger = get_logger(__name__)

router = APIRouter(tags=["Proxy"])

LEGACY_PROXY_RE = re.compile(r"^/proxy/((\d+)/)?((\w+)/)?(https?://.*)$")


@router.get("/proxy", response_class=Response)
async def proxy_diagram(
    request: Request,
    src: Optional[str] = Query(None, description="URL of the diagram source"),
    fmt: Optional[str] = Query(None, description="Output format"),
    idx: Optional[str] = Query(None, description="Image index"),
    context: RenderingContext = Depends(get_rendering_context),
) -> Response:
    """Fetch a remote diagram source and render it."""
    index = 0
    if idx:
        try:
            index = int(idx)
        except ValueError:
            return error_response(400, f"Invalid diagram index: {idx}")

    url = validate_url(src)
    text = await context.source_fetcher.fetch_source(url)
    logger.info("Proxied diagram source fetched", url=str(url), length=len(text))

    responder = DiagramResponder(context, output_format(fmt), request)
    if fmt == "map":
        return await responder.send_map(text, index)
    return await responder.send_diagram(text, index)


@router.get("/proxy/{rest:path}", response_class=Response, include_in_schema=False)
async def legacy_proxy_diagram(
    request: Request,
    context: RenderingContext = Depends(get_rendering_context),
) -> Response:
    """Legacy proxy form with index and format in the path."""
    match = LEGACY_PROXY_RE.match(request.url.path)
    if match is None:
        return error_response(400, "URL malformed.")

    index = int(match.group(2)) if match.group(2) else 0
    url = validate_url(match.group(5))
    text = (await context.source_fetcher.fetch_source(url)).strip()

    responder = DiagramResponder(context, legacy_output_format(match.group(4)), request)
    return await responder.send_legacy(text, index)
