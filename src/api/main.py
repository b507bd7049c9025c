"""
FastAPI Application
===================

Main FastAPI application of the PlantUML gateway. Diagram sources arrive as
compressed URL tokens, request bodies, uploads or remote URLs and are
rendered by the PlantUML jar.
"""

from contextlib import asynccontextmanager
import uuid
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
import uvicorn

from src import __version__
from src.api.routes import coder, diagrams, health, metadata, proxy, ui_helper
from src.config.logging import bind_request_context, clear_request_context, get_logger
from src.config.settings import Settings, get_settings
from src.core.codec.transcoder import CodecError
from src.core.context import RenderingContext, create_rendering_context
from src.core.proxy.fetcher import ProxyError
from src.core.rendering.renderer import RendererError
from src.models.schemas import ErrorResponse

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting PlantUML gateway")

    if getattr(app.state, "context", None) is None:
        try:
            app.state.context = await create_rendering_context(app.state.settings)
        except Exception as e:
            logger.error("Failed to create rendering context", error=str(e))
            raise RuntimeError(f"Rendering context initialization failed: {e}")

    try:
        yield
    finally:
        logger.info("Shutting down PlantUML gateway")


def _error_json(
    request: Request,
    status_code: int,
    error: str,
    error_code: str,
    details: Optional[dict] = None,
) -> JSONResponse:
    error_response = ErrorResponse(
        error=error,
        error_code=error_code,
        details=details,
        request_id=getattr(request.state, "request_id", None),
    )
    # the catch-all handler answers outside the request-id middleware
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json"),
        headers={"Access-Control-Allow-Origin": "*"},
    )


def _install_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(HTTPException)
    async def custom_http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Custom HTTP exception handler with structured error response."""
        logger.error(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            request_id=getattr(request.state, "request_id", None),
        )
        return _error_json(request, exc.status_code, str(exc.detail), str(exc.status_code))

    @app.exception_handler(ProxyError)
    async def proxy_exception_handler(request: Request, exc: ProxyError) -> JSONResponse:
        """Remote source problems: bad URLs are 400, failed fetches 502."""
        logger.warning(
            "Proxy request rejected",
            status_code=exc.status_code,
            error=str(exc),
            request_id=getattr(request.state, "request_id", None),
        )
        return _error_json(request, exc.status_code, str(exc), type(exc).__name__)

    @app.exception_handler(CodecError)
    async def codec_exception_handler(request: Request, exc: CodecError) -> JSONResponse:
        logger.warning("Codec failure", error=str(exc))
        return _error_json(request, 400, str(exc), "CODEC_ERROR")

    @app.exception_handler(RendererError)
    async def renderer_exception_handler(request: Request, exc: RendererError) -> JSONResponse:
        """Handle renderer failures with specific error codes."""
        error_message = str(exc)

        if "timed out" in error_message.lower() or "timeout" in error_message.lower():
            error_code = "RENDERER_TIMEOUT"
            status_code = 504
            user_message = "Diagram rendering timed out. Please try again."
        else:
            error_code = "RENDERER_UNAVAILABLE"
            status_code = 503
            user_message = "The diagram renderer is not available. Please try again later."

        logger.error(
            "Renderer error",
            error_code=error_code,
            error_message=error_message,
            request_id=getattr(request.state, "request_id", None),
        )
        return _error_json(
            request,
            status_code,
            user_message,
            error_code,
            {"message": error_message} if settings.debug else None,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """General exception handler for unexpected errors."""
        logger.error(
            "Unhandled exception",
            exception=str(exc),
            request_id=getattr(request.state, "request_id", None),
            exc_info=True,
        )
        return _error_json(
            request,
            500,
            "Internal server error",
            "INTERNAL_ERROR",
            {"exception": str(exc)} if settings.debug else None,
        )


def create_app(
    context: Optional[RenderingContext] = None, settings: Optional[Settings] = None
) -> FastAPI:
    """
    Application factory.

    Args:
        context: Prebuilt rendering context; created in the lifespan when omitted
        settings: Settings to use instead of the global instance

    Returns:
        FastAPI application instance
    """
    settings = settings or (context.settings if context else get_settings())

    app = FastAPI(
        title=settings.app_name,
        description="Render PlantUML diagrams from compressed URLs, request bodies and remote sources",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.enable_docs else None,
        redoc_url="/redoc" if settings.enable_docs else None,
    )
    app.state.settings = settings
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_hosts,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next: Any) -> Response:
        """Add request ID and the open CORS header to all responses."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        bind_request_context(request_id=request_id, path=request.url.path)

        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    _install_exception_handlers(app, settings)

    app.include_router(health.router)
    app.include_router(diagrams.router)
    app.include_router(proxy.router)
    app.include_router(coder.router)
    app.include_router(metadata.router)
    app.include_router(ui_helper.router)

    @app.get("/", tags=["General"])
    async def root() -> dict[str, Any]:
        """Root endpoint with basic API information."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs_url": "/docs" if settings.enable_docs else None,
            "health_check": "/health",
            "endpoints": {
                "render": "GET|POST /{png,img,svg,pdf,eps,epstext,txt,base64}/[index/]<token>",
                "image_map": "GET|POST /map/[index/]<token>",
                "syntax_check": "GET /check/<token>",
                "proxy": "GET /proxy?src=<url>&fmt=<format>&idx=<index>",
                "coder": "GET /coder/<token>, POST /coder",
                "metadata": "GET /metadata?src=<url>, POST /metadata",
                "ui_helper": "GET /ui-helper?request=<item>",
                "language": "GET /language",
            },
        }

    return app


app = create_app()


# Development server runner
def run_development_server() -> None:
    """Run development server with auto-reload."""
    settings = get_settings()
    uvicorn.run(
        "src.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    run_development_server()
