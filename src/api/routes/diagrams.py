"""
Diagram Routes
==============

Rendering endpoints. Each format has its own path prefix; the source comes
from a compressed token in the path, the legacy ``url`` query parameter or
(for POST) the request body. An optional numeric segment before the token
selects the image: ``/png/1/<token>``.
"""

from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from src.api.dependencies import get_rendering_context
from src.api.responses import DiagramResponder
from src.core.context import RenderingContext
from src.core.source.locator import index_from_path
from src.models.schemas import OutputFormat


router = APIRouter(tags=["Diagrams"])

DIAGRAM_ENDPOINTS: Dict[str, OutputFormat] = {
    "png": OutputFormat.PNG,
    "img": OutputFormat.PNG,
    "svg": OutputFormat.SVG,
    "pdf": OutputFormat.PDF,
    "eps": OutputFormat.EPS,
    "epstext": OutputFormat.EPS_TEXT,
    "txt": OutputFormat.UTXT,
    "base64": OutputFormat.BASE64,
}


async def read_body(request: Request) -> str:
    body = await request.body()
    return body.decode("utf-8", errors="replace")


def _diagram_endpoints(name: str, fmt: OutputFormat) -> Dict[str, Callable[..., Any]]:
    prefix = f"/{name}/"

    async def get_diagram(
        request: Request,
        url: Optional[str] = Query(None, description="Legacy encoded source parameter"),
        context: RenderingContext = Depends(get_rendering_context),
    ) -> Response:
        path = request.url.path
        source = context.locator.locate(path, prefix, url)
        responder = DiagramResponder(context, fmt, request)
        return await responder.send_diagram(source.text, index_from_path(path))

    async def post_diagram(
        request: Request,
        context: RenderingContext = Depends(get_rendering_context),
    ) -> Response:
        source = context.locator.from_body(await read_body(request))
        responder = DiagramResponder(context, fmt, request)
        return await responder.send_diagram(source.text, index_from_path(request.url.path))

    get_diagram.__name__ = f"get_{name}_diagram"
    post_diagram.__name__ = f"post_{name}_diagram"
    return {"GET": get_diagram, "POST": post_diagram}


for _name, _fmt in DIAGRAM_ENDPOINTS.items():
    for _method, _endpoint in _diagram_endpoints(_name, _fmt).items():
        for _path in (f"/{_name}", f"/{_name}/{{rest:path}}"):
            router.add_api_route(
                _path,
                _endpoint,
                methods=[_method],
                response_class=Response,
                summary=f"{_method} diagram as {_fmt.value}",
                include_in_schema=not _path.endswith("}"),
            )


@router.get("/map", response_class=Response)
@router.get("/map/{rest:path}", response_class=Response, include_in_schema=False)
async def get_map(
    request: Request,
    url: Optional[str] = Query(None),
    context: RenderingContext = Depends(get_rendering_context),
) -> Response:
    """HTML image map of the selected image."""
    path = request.url.path
    source = context.locator.locate(path, "/map/", url)
    responder = DiagramResponder(context, OutputFormat.UTXT, request)
    return await responder.send_map(source.text, index_from_path(path))


@router.post("/map", response_class=Response)
@router.post("/map/{rest:path}", response_class=Response, include_in_schema=False)
async def post_map(
    request: Request,
    context: RenderingContext = Depends(get_rendering_context),
) -> Response:
    """HTML image map of a source sent in the request body."""
    source = context.locator.from_body(await read_body(request))
    responder = DiagramResponder(context, OutputFormat.UTXT, request)
    return await responder.send_map(source.text, index_from_path(request.url.path))


@router.get("/check", response_class=Response)
@router.get("/check/{rest:path}", response_class=Response, include_in_schema=False)
async def check_diagram(
    request: Request,
    url: Optional[str] = Query(None),
    context: RenderingContext = Depends(get_rendering_context),
) -> Response:
    """Syntax report of the source."""
    source = context.locator.locate(request.url.path, "/check/", url)
    responder = DiagramResponder(context, OutputFormat.UTXT, request)
    return await responder.send_check(source.text)
