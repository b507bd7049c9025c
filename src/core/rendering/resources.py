"""
Renderer Resources
==================

Listings bundled inside the PlantUML jar: emojis, Open Iconic icons and
theme names. The SVG icon sprite is built once and cached.
"""

from typing import Any, List, Optional
from pathlib import Path
import re
import xml.etree.ElementTree as ET
import zipfile

from src.config.logging import get_logger

logger = get_logger(__name__)

EMOJI_LIST = "net/sourceforge/plantuml/emoji/data/emoji.txt"
ICON_DIR = "net/sourceforge/plantuml/openiconic/data/"
ICON_LIST = ICON_DIR + "all.txt"
THEME_RE = re.compile(r"^themes/puml-theme-(.+)\.puml$")

SVG_NS = "http://www.w3.org/2000/svg"

SPRITE_HEADER = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="8" height="8" viewBox="0 0 8 8">\n'
    "<defs>\n"
    "  <style><![CDATA[\n"
    "    .sprite { display: none; }\n"
    "    .sprite:target { display: inline; }\n"
    "  ]]></style>\n"
    "</defs>\n"
)


class ResourceError(Exception):
    """Exception raised when a bundled resource cannot be read."""

    pass


class JarResources:
    """Read-only access to resource files packaged in the renderer jar."""

    def __init__(self, jar_path: Path):
        self.jar_path = Path(jar_path)
        self._icons_sprite: Optional[str] = None
        self.logger: Any = logger.bind(component="jar_resources")  # structlog.BoundLoggerBase

    def _read_text(self, name: str) -> str:
        try:
            with zipfile.ZipFile(self.jar_path) as jar:
                return jar.read(name).decode("utf-8")
        except (OSError, KeyError, zipfile.BadZipFile) as e:
            raise ResourceError(f"Resource {name} not available: {e}") from e

    def emojis(self) -> List[List[str]]:
        """Emoji unicode/name pairs."""
        return [line.split(";") for line in self._read_text(EMOJI_LIST).splitlines() if line]

    def icon_names(self) -> List[str]:
        return [line for line in self._read_text(ICON_LIST).splitlines() if line]

    def theme_names(self) -> List[str]:
        try:
            with zipfile.ZipFile(self.jar_path) as jar:
                names = [THEME_RE.match(entry) for entry in jar.namelist()]
        except (OSError, zipfile.BadZipFile) as e:
            raise ResourceError(f"Themes not available: {e}") from e
        return sorted(match.group(1) for match in names if match)

    def icons_sprite(self) -> str:
        """SVG sprite with one ``<g class="sprite" id="name">`` per icon."""
        # recomputing under a race yields the same sprite
        if self._icons_sprite is None:
            self._icons_sprite = self._build_icons_sprite()
        return self._icons_sprite

    def _build_icons_sprite(self) -> str:
        # all icons share width="8" height="8" viewBox="0 0 8 8"
        ET.register_namespace("", SVG_NS)
        parts = [SPRITE_HEADER]
        for name in self.icon_names():
            try:
                root = ET.fromstring(self._read_text(f"{ICON_DIR}{name}.svg"))
            except (ResourceError, ET.ParseError):
                self.logger.warning("SVG icon could not be parsed, skipping", icon=name)
                continue
            inner = "".join(ET.tostring(child, encoding="unicode") for child in root)
            parts.append(f'<g class="sprite" id="{name}">{inner}</g>\n')
        parts.append("</svg>\n")
        return "".join(parts)
