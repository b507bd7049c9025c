"""
Rendering Context
=================

Process-wide renderer configuration, built once at application startup and
injected into request handlers. Nothing in it changes after startup.
"""

from typing import Dict, Optional, Tuple
from dataclasses import dataclass, field
from pathlib import Path

from src.config.logging import get_logger
from src.config.settings import Settings
from src.core.codec.transcoder import Transcoder, get_transcoder
from src.core.proxy.fetcher import SourceFetcher
from src.core.rendering.renderer import JarRenderer, Renderer
from src.core.rendering.resources import JarResources
from src.core.source.builder import DiagramSourceBuilder
from src.core.source.locator import SourceLocator

logger = get_logger(__name__)


@dataclass(frozen=True)
class RenderingContext:
    """Collaborators and startup configuration shared by all requests."""

    settings: Settings
    renderer: Renderer
    transcoder: Transcoder = field(default_factory=get_transcoder)
    resources: Optional[JarResources] = None
    fetcher: Optional[SourceFetcher] = None
    preamble: Tuple[str, ...] = ()

    @property
    def security_profile(self) -> str:
        return self.settings.security_profile

    @property
    def powered_by(self) -> str:
        return f"PlantUML Version {self.renderer.version or 'unknown'}"

    @property
    def locator(self) -> SourceLocator:
        return SourceLocator(self.transcoder)

    @property
    def builder(self) -> DiagramSourceBuilder:
        return DiagramSourceBuilder(self.renderer, self.preamble, self.security_profile)

    @property
    def bare_builder(self) -> DiagramSourceBuilder:
        """Builder that ignores the global preamble."""
        return DiagramSourceBuilder(self.renderer, (), self.security_profile)

    @property
    def source_fetcher(self) -> SourceFetcher:
        return self.fetcher or SourceFetcher(self.settings)


def load_preamble(path: Optional[Path]) -> Tuple[str, ...]:
    """Read the global preamble lines; a missing file gives no preamble."""
    if path is None:
        return ()
    try:
        return tuple(Path(path).read_text(encoding="utf-8").splitlines())
    except OSError as e:
        logger.error("Could not read PlantUML config file", path=str(path), error=str(e))
        return ()


def load_properties(path: Optional[Path]) -> Dict[str, str]:
    """Read a Java properties file into a dict of ``key=value`` entries."""
    if path is None:
        return {}
    try:
        lines = Path(path).read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logger.error("Could not read PlantUML property file", path=str(path), error=str(e))
        return {}

    properties: Dict[str, str] = {}
    for line in lines:
        line = line.strip()
        if not line or line[0] in "#!":
            continue
        separators = [i for i in (line.find("="), line.find(":")) if i != -1]
        if not separators:
            properties[line] = ""
            continue
        cut = min(separators)
        properties[line[:cut].strip()] = line[cut + 1 :].strip()
    return properties


async def create_rendering_context(settings: Settings) -> RenderingContext:
    """Load the startup configuration and the jar-backed collaborators."""
    renderer = JarRenderer(
        jar_path=settings.jar_path,
        java_path=settings.java_path,
        security_profile=settings.security_profile,
        properties=load_properties(settings.property_file),
        timeout=settings.render_timeout,
        max_concurrent=settings.max_concurrent_renders,
    )
    await renderer.initialize()

    preamble = load_preamble(settings.config_file)
    logger.info(
        "Rendering context created",
        security_profile=settings.security_profile,
        preamble_lines=len(preamble),
        renderer_available=renderer.is_available(),
    )
    return RenderingContext(
        settings=settings,
        renderer=renderer,
        resources=JarResources(settings.jar_path),
        fetcher=SourceFetcher(settings),
        preamble=preamble,
    )
