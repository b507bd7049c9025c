"""
API Dependencies
================

FastAPI dependencies shared by the route modules.
"""

from fastapi import Request

from src.core.context import RenderingContext


def get_rendering_context(request: Request) -> RenderingContext:
    """Rendering context created in the application lifespan."""
    return request.app.state.context
