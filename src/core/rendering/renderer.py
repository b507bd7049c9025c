"""
PlantUML Renderer
=================

Adapter around the PlantUML jar. Diagram sources are split into
@start.../@end... blocks here; parsing, layout and image generation are
delegated to ``java -jar plantuml.jar`` through stdin/stdout pipes.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from abc import ABC, abstractmethod
from pathlib import Path
import asyncio
import re
import shutil

from src.config.logging import get_logger
from src.models.schemas import CompiledDocument, DiagramError, DiagramUnit, OutputFormat

logger = get_logger(__name__)

_START_RE = re.compile(r"^\s*@start(\w+)", re.IGNORECASE)
_END_RE = re.compile(r"^\s*@end(\w+)", re.IGNORECASE)
_NEWPAGE_RE = re.compile(r"^\s*newpage\b", re.IGNORECASE)

PAGED_DIAGRAM_TYPES = {"SEQUENCE"}


class RendererError(Exception):
    """Exception raised when the renderer cannot be run."""

    pass


def split_blocks(text: str) -> List[str]:
    """
    Split a source into its @start.../@end... blocks.

    Unterminated blocks are dropped, text outside blocks is ignored.
    """
    blocks: List[str] = []
    current: Optional[List[str]] = None
    kind = ""

    for line in text.splitlines():
        if current is None:
            start = _START_RE.match(line)
            if start:
                current = [line]
                kind = start.group(1).lower()
            continue

        current.append(line)
        end = _END_RE.match(line)
        if end and end.group(1).lower() == kind:
            blocks.append("\n".join(current) + "\n")
            current = None

    return blocks


def inject_preamble(block: str, preamble: Sequence[str]) -> str:
    """Insert the global preamble lines right after the @start line."""
    if not preamble:
        return block
    first, _, rest = block.partition("\n")
    return "\n".join([first, *preamble, rest])


def count_pages(block: str) -> int:
    """Number of images a paged diagram produces."""
    return 1 + sum(1 for line in block.splitlines() if _NEWPAGE_RE.match(line))


def parse_syntax_report(report: str) -> Tuple[str, str, List[DiagramError]]:
    """
    Parse the output of ``plantuml -syntax``.

    The first line names the diagram type, or ``ERROR`` followed by the error
    line position and the error messages.

    Returns:
        Tuple of (diagram_type, description, errors)
    """
    lines = [line.strip() for line in report.strip().splitlines() if line.strip()]
    if not lines:
        return "UNKNOWN", "", []

    if lines[0] != "ERROR":
        return lines[0], lines[1] if len(lines) > 1 else "", []

    position = int(lines[1]) if len(lines) > 1 and lines[1].lstrip("-").isdigit() else 0
    messages = lines[2:] if len(lines) > 2 else ["Syntax Error?"]
    errors = [DiagramError(message=message, line=position) for message in messages]
    return "ERROR", "(Error)", errors


class Renderer(ABC):
    """Abstract base class for diagram renderers."""

    @abstractmethod
    async def parse(
        self, text: str, preamble: Sequence[str] = (), security_profile: Optional[str] = None
    ) -> CompiledDocument:
        """Split and check a source, returning its diagram units."""
        pass

    @abstractmethod
    async def render(self, unit: DiagramUnit, index: int, fmt: OutputFormat) -> bytes:
        """Render one image of a unit."""
        pass

    @abstractmethod
    async def render_map(self, unit: DiagramUnit, index: int) -> str:
        """Render the HTML image map of one image, empty when there is none."""
        pass

    @abstractmethod
    async def check_syntax(self, text: str) -> str:
        """Describe a source without rendering it."""
        pass

    @abstractmethod
    async def language(self) -> str:
        """List the keywords of the diagram language."""
        pass

    @property
    def version(self) -> Optional[str]:
        return None

    def is_available(self) -> bool:
        return True


class JarRenderer(Renderer):
    """Renderer backed by the PlantUML jar."""

    def __init__(
        self,
        jar_path: Path,
        java_path: str = "java",
        security_profile: str = "INTERNET",
        properties: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        max_concurrent: int = 4,
    ):
        self.jar_path = Path(jar_path)
        self.java_path = java_path
        self.security_profile = security_profile
        self.properties = dict(properties or {})
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._version: Optional[str] = None
        self.logger: Any = logger.bind(component="jar_renderer")  # structlog.BoundLoggerBase

    def is_available(self) -> bool:
        return self.jar_path.is_file() and shutil.which(self.java_path) is not None

    @property
    def version(self) -> Optional[str]:
        return self._version

    async def initialize(self) -> None:
        """Check the jar once and remember its version."""
        if not self.is_available():
            self.logger.warning(
                "PlantUML jar or java executable not found",
                jar_path=str(self.jar_path),
                java_path=self.java_path,
            )
            return
        try:
            output = await self._run(["-version"])
            self._version = output.decode("utf-8", errors="replace").splitlines()[0].strip()
            self.logger.info("PlantUML renderer ready", version=self._version)
        except (RendererError, IndexError) as e:
            self.logger.warning("Could not determine PlantUML version", error=str(e))

    def _command(self, args: Sequence[str], security_profile: Optional[str] = None) -> List[str]:
        profile = security_profile or self.security_profile
        defines = [f"-D{key}={value}" for key, value in self.properties.items()]
        return [
            self.java_path,
            "-Djava.awt.headless=true",
            f"-DPLANTUML_SECURITY_PROFILE={profile}",
            *defines,
            "-jar",
            str(self.jar_path),
            "-charset",
            "UTF-8",
            *args,
        ]

    async def _terminate(self, process: Any) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        self.logger.warning("Renderer process killed", pid=getattr(process, "pid", None))

    async def _run(
        self,
        args: Sequence[str],
        stdin: Optional[str] = None,
        security_profile: Optional[str] = None,
    ) -> bytes:
        """
        Run the jar and return its stdout; a non-zero exit still yields output.

        At most ``max_concurrent`` jar processes run at once. The child is
        killed when the call times out or is cancelled.
        """
        command = self._command(args, security_profile)
        if self._semaphore is None:
            # created on first use so it belongs to the running loop
            self._semaphore = asyncio.Semaphore(self.max_concurrent)

        async with self._semaphore:
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise RendererError(f"Renderer could not be started: {e}") from e

            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(stdin.encode("utf-8") if stdin is not None else None),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                await self._terminate(process)
                raise RendererError(f"Renderer timed out after {self.timeout}s")
            except BaseException:
                await self._terminate(process)
                raise

        if process.returncode != 0:
            # PlantUML exits non-zero for diagrams with errors but still renders them
            self.logger.debug(
                "Renderer exited with non-zero status",
                returncode=process.returncode,
                stderr=stderr.decode("utf-8", errors="replace")[:300],
            )
        return stdout

    async def _check_block(self, block: str, security_profile: Optional[str]) -> DiagramUnit:
        report = await self._run(["-syntax"], stdin=block, security_profile=security_profile)
        diagram_type, description, errors = parse_syntax_report(
            report.decode("utf-8", errors="replace")
        )
        image_count = 1
        if not errors and diagram_type in PAGED_DIAGRAM_TYPES:
            image_count = count_pages(block)
        return DiagramUnit(
            source=block,
            diagram_type=diagram_type,
            description=description,
            image_count=image_count,
            errors=errors,
        )

    async def parse(
        self, text: str, preamble: Sequence[str] = (), security_profile: Optional[str] = None
    ) -> CompiledDocument:
        blocks = [inject_preamble(block, preamble) for block in split_blocks(text)]
        if not blocks:
            return CompiledDocument()

        units = await asyncio.gather(
            *(self._check_block(block, security_profile) for block in blocks)
        )
        self.logger.debug("Source parsed", units=len(units), preamble_lines=len(preamble))
        return CompiledDocument(units=list(units))

    async def render(self, unit: DiagramUnit, index: int, fmt: OutputFormat) -> bytes:
        args = ["-pipe", fmt.renderer_flag, "-pipeimageindex", str(index)]
        return await self._run(args, stdin=unit.source)

    async def render_map(self, unit: DiagramUnit, index: int) -> str:
        args = ["-pipemap", "-pipeimageindex", str(index)]
        output = await self._run(args, stdin=unit.source)
        return output.decode("utf-8", errors="replace")

    async def check_syntax(self, text: str) -> str:
        output = await self._run(["-syntax"], stdin=text)
        return output.decode("utf-8", errors="replace")

    async def language(self) -> str:
        output = await self._run(["-language"])
        return output.decode("utf-8", errors="replace")
