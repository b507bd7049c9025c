"""
UI Helper Routes
================

Listings used by editor front ends: emojis, icons, themes and the renderer
language keywords.
"""

from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from src.api.dependencies import get_rendering_context
from src.api.responses import error_response
from src.config.logging import get_logger
from src.core.context import RenderingContext
from src.core.rendering.resources import JarResources, ResourceError

logger = get_logger(__name__)

router = APIRouter(tags=["UI Helper"])

SVG_MEDIA_TYPE = "image/svg+xml"


def _json(producer: Callable[[JarResources], Any]) -> Callable[[JarResources], Response]:
    return lambda resources: JSONResponse(producer(resources))


UI_HELPER_ITEMS: Dict[str, Callable[[JarResources], Response]] = {
    "emojis": _json(lambda resources: resources.emojis()),
    "icons": _json(lambda resources: resources.icon_names()),
    "icons.svg": lambda resources: Response(
        resources.icons_sprite(), media_type=SVG_MEDIA_TYPE
    ),
    "themes": _json(lambda resources: resources.theme_names()),
}


@router.get("/ui-helper", response_class=Response)
async def ui_helper(
    request: Optional[str] = Query(None, description="emojis, icons, icons.svg or themes"),
    context: RenderingContext = Depends(get_rendering_context),
) -> Response:
    """Send one of the bundled listings."""
    if not request:
        return error_response(400, "Request item not set.")
    item = UI_HELPER_ITEMS.get(request)
    if item is None:
        return error_response(400, f"Unknown requested item: {request}")
    if context.resources is None:
        return error_response(503, "Renderer resources are not available.")

    try:
        return item(context.resources)
    except ResourceError as e:
        logger.error("UI helper listing failed", item=request, error=str(e))
        return error_response(503, "Renderer resources are not available.")


@router.get("/language", response_class=PlainTextResponse)
async def language(
    context: RenderingContext = Depends(get_rendering_context),
) -> PlainTextResponse:
    """Keywords, types and skin parameters known to the renderer."""
    return PlainTextResponse(
        await context.renderer.language(), media_type="text/plain; charset=utf-8"
    )
