"""
Diagram Responses
=================

Builds HTTP responses for diagram requests: validates the index, compiles
the source, selects the image, negotiates caching and renders the output.
"""

from typing import Any, Iterable, Optional, Tuple
import base64

import anyio
from fastapi import Request
from fastapi.responses import PlainTextResponse, Response
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from src.config.logging import get_logger
from src.core.context import RenderingContext
from src.core.output import negotiator
from src.core.output.selector import select
from src.models.schemas import CompiledDocument, OutputFormat, OutputRequest, Selection

logger = get_logger(__name__)

NO_DIAGRAM_FOUND = "No UML diagram found"


def invalid_index_message(index: int) -> str:
    return f"Invalid diagram index: {index}"


def _header_value(value: str) -> str:
    # header values travel as latin-1 on a single line
    value = " ".join(value.splitlines())
    return value.encode("latin-1", errors="replace").decode("latin-1")


def error_response(status_code: int, message: str) -> PlainTextResponse:
    """Plain text error answer of the diagram endpoints."""
    return PlainTextResponse(message, status_code=status_code)


class DiagramResponse(Response):
    """Response whose body write tolerates clients that went away."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (OSError, ClientDisconnect, anyio.BrokenResourceError, anyio.ClosedResourceError):
            # the browser closed the connection
            logger.debug("Client disconnected while sending diagram")


class DiagramResponder:
    """Produces the HTTP answer for one diagram request in one format."""

    def __init__(self, context: RenderingContext, fmt: OutputFormat, request: Request):
        self.context = context
        self.format = fmt
        self.request = request
        self.logger: Any = logger.bind(
            component="diagram_responder", format=fmt.value
        )  # structlog.BoundLoggerBase

    async def _select(
        self, text: str, index: int, implicit_wrap: bool = True
    ) -> Tuple[Optional[Selection], Optional[Response]]:
        if index < 0:
            return None, error_response(400, invalid_index_message(index))

        document: Optional[CompiledDocument]
        if implicit_wrap:
            document = await self.context.builder.build(text)
        else:
            # proxied sources are rendered as fetched, without the global preamble
            document = await self.context.bare_builder.compile(text)
        if document is None or document.is_empty:
            return None, error_response(400, NO_DIAGRAM_FOUND)

        selection = select(document, index)
        if selection is None:
            self.logger.info(
                "Diagram index out of range", index=index, total_images=document.total_images
            )
            return None, Response(status_code=400)
        return selection, None

    def _output_request(self, index: int) -> OutputRequest:
        headers = self.request.headers
        return OutputRequest(
            index=index,
            format=self.format,
            if_none_match=headers.get("if-none-match"),
            if_modified_since=negotiator.parse_http_date(headers.get("if-modified-since")),
        )

    def _apply_headers(self, response: Response, headers: Iterable[negotiator.Header]) -> None:
        for name, value in headers:
            response.headers.append(name, _header_value(value))

    def _cache_headers(self, selection: Selection):
        return negotiator.cache_headers(selection, powered_by=self.context.powered_by)

    async def send_diagram(self, text: str, index: int) -> Response:
        """Render one image of the source in the responder's format."""
        selection, failure = await self._select(text, index)
        if failure is not None:
            return failure
        assert selection is not None

        renderer = self.context.renderer
        if self.format == OutputFormat.BASE64:
            image = await renderer.render(selection.unit, selection.index, OutputFormat.PNG)
            encoded = base64.b64encode(image).decode("ascii")
            return DiagramResponse(
                f"data:image/png;base64,{encoded}", media_type=self.format.mime_type
            )

        output = self._output_request(index)
        if negotiator.is_not_modified(
            selection, output.if_none_match, output.if_modified_since
        ):
            response = Response(status_code=304)
            self._apply_headers(response, self._cache_headers(selection))
            return response

        status_code = 400 if selection.unit.is_error else 200
        content = await renderer.render(selection.unit, selection.index, self.format)
        response = DiagramResponse(
            content, status_code=status_code, media_type=self.format.mime_type
        )
        if negotiator.is_cacheable(text):
            self._apply_headers(response, self._cache_headers(selection))
        return response

    async def send_map(self, text: str, index: int) -> Response:
        """Send the HTML image map of one image."""
        selection, failure = await self._select(text, index)
        if failure is not None:
            return failure
        assert selection is not None

        status_code = 400 if selection.unit.is_error else 200
        image_map = await self.context.renderer.render_map(selection.unit, selection.index)
        if "<map" not in image_map:
            image_map = ""
        response = DiagramResponse(
            image_map, status_code=status_code, media_type=self.format.mime_type
        )
        if negotiator.is_cacheable(text):
            self._apply_headers(response, self._cache_headers(selection))
        return response

    async def send_check(self, text: str) -> Response:
        """Send a syntax report of the source."""
        report = await self.context.renderer.check_syntax(text)
        return DiagramResponse(report, media_type=self.format.mime_type)

    async def send_legacy(self, text: str, index: int) -> Response:
        """Render without the preamble, implicit wrapping or cache handling."""
        selection, failure = await self._select(text, index, implicit_wrap=False)
        if failure is not None:
            return failure
        assert selection is not None

        content = await self.context.renderer.render(selection.unit, selection.index, self.format)
        return DiagramResponse(content, media_type=self.format.mime_type)
