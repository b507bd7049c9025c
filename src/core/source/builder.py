"""
Diagram Source Builder
======================

Turns located source text into a compiled document. Bare text without
@start/@end markers is wrapped into an implicit ``@startuml`` block, and a
global preamble that breaks the first diagram is dropped for the request.
"""

from typing import Any, Optional, Sequence

from src.config.logging import get_logger
from src.core.rendering.renderer import Renderer
from src.models.schemas import CompiledDocument

logger = get_logger(__name__)

IMPLICIT_START = "@startuml"
IMPLICIT_END = "@enduml"


def wrap_source(text: str) -> str:
    """Surround text with an implicit start/end marker pair."""
    return f"{IMPLICIT_START}\n{text}\n{IMPLICIT_END}"


class DiagramSourceBuilder:
    """Builds compiled documents with the startup preamble applied."""

    def __init__(
        self,
        renderer: Renderer,
        preamble: Sequence[str] = (),
        security_profile: Optional[str] = None,
    ):
        self.renderer = renderer
        self.preamble = tuple(preamble)
        self.security_profile = security_profile
        self.logger: Any = logger.bind(component="source_builder")  # structlog.BoundLoggerBase

    async def compile(self, text: str) -> CompiledDocument:
        """
        Parse text as-is against the preamble.

        When a preamble is configured and the first diagram reports a warning
        or error, the text is parsed again without the preamble.
        """
        document = await self.renderer.parse(text, self.preamble, self.security_profile)
        if self.preamble and document.first is not None and document.first.warning_or_error:
            self.logger.info(
                "Diagram failed with global preamble, retrying without it",
                error=document.first.warning_or_error,
            )
            document = await self.renderer.parse(text, (), self.security_profile)
        return document

    async def build(self, text: str) -> Optional[CompiledDocument]:
        """
        Build a document from raw text.

        Returns:
            The compiled document, or None when no diagram is found even after
            wrapping the text in implicit markers
        """
        document = await self.compile(text)
        if not document.is_empty:
            return document

        document = await self.compile(wrap_source(text))
        if document.is_empty:
            self.logger.info("No diagram found in source", length=len(text))
            return None
        return document
