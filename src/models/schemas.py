"""
Pydantic Models and Schemas
===========================

Core data models for diagram sources, compiled documents, output selection
and API responses. All models include validation and type hints.
"""

from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone
from enum import Enum
import hashlib

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


# Enums
class SourceOrigin(str, Enum):
    """Where a diagram source was read from."""
    PATH_TOKEN = "path-token"
    QUERY_PARAM = "query-param"
    UPLOAD = "upload"
    BODY = "body"
    REMOTE = "remote"


class OutputFormat(str, Enum):
    """Output encodings the renderer can produce."""
    PNG = "png"
    SVG = "svg"
    EPS = "eps"
    EPS_TEXT = "epstext"
    UTXT = "utxt"
    ATXT = "atxt"
    PDF = "pdf"
    BASE64 = "base64"

    @property
    def mime_type(self) -> str:
        """Content type sent with this format."""
        return _MIME_TYPES[self]

    @property
    def renderer_flag(self) -> str:
        """Command line flag selecting this format in the renderer."""
        # base64 is a PNG wrapped into a data URI
        return _RENDERER_FLAGS[self]


_MIME_TYPES = {
    OutputFormat.PNG: "image/png",
    OutputFormat.SVG: "image/svg+xml",
    OutputFormat.EPS: "application/postscript",
    OutputFormat.EPS_TEXT: "application/postscript",
    OutputFormat.UTXT: "text/plain;charset=UTF-8",
    OutputFormat.ATXT: "text/plain",
    OutputFormat.PDF: "application/pdf",
    OutputFormat.BASE64: "text/plain; charset=x-user-defined",
}

_RENDERER_FLAGS = {
    OutputFormat.PNG: "-tpng",
    OutputFormat.SVG: "-tsvg",
    OutputFormat.EPS: "-teps",
    OutputFormat.EPS_TEXT: "-teps:text",
    OutputFormat.UTXT: "-tutxt",
    OutputFormat.ATXT: "-ttxt",
    OutputFormat.PDF: "-tpdf",
    OutputFormat.BASE64: "-tpng",
}


# Source Models
class RawSource(BaseModel):
    """Unparsed diagram text together with its origin."""
    model_config = ConfigDict(frozen=True)

    text: str = Field("", description="Diagram source text")
    origin: SourceOrigin = Field(..., description="Where the text came from")

    @property
    def is_empty(self) -> bool:
        return not self.text

    @classmethod
    def empty(cls, origin: SourceOrigin) -> "RawSource":
        """The "no source found" sentinel."""
        return cls(text="", origin=origin)


# Document Models
class DiagramError(BaseModel):
    """A single error reported by the renderer for a diagram unit."""
    message: str = Field(..., description="Error message")
    line: int = Field(0, description="Line position of the error")


class DiagramUnit(BaseModel):
    """One @start.../@end... block of a diagram source."""
    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Block text handed to the renderer")
    diagram_type: str = Field("UNKNOWN", description="Diagram type reported by the renderer")
    description: str = Field("", description="Short description of the diagram")
    image_count: int = Field(1, ge=1, description="Number of images this block produces")
    errors: List[DiagramError] = Field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return bool(self.errors)

    @property
    def warning_or_error(self) -> Optional[str]:
        """First error message, or None when the block rendered cleanly."""
        return self.errors[0].message if self.errors else None

    @computed_field  # type: ignore[misc]
    @property
    def etag(self) -> str:
        """Content fingerprint of the block source."""
        return hashlib.sha1(self.source.encode("utf-8")).hexdigest()

    @computed_field  # type: ignore[misc]
    @property
    def last_modified(self) -> datetime:
        """Timestamp derived from the content, whole seconds for HTTP dates."""
        return datetime.fromtimestamp(int(self.etag[:8], 16), tz=timezone.utc)


class CompiledDocument(BaseModel):
    """Parse result of a raw source: diagram units in order of appearance."""
    units: List[DiagramUnit] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.units

    @property
    def total_images(self) -> int:
        return sum(unit.image_count for unit in self.units)

    @property
    def first(self) -> Optional[DiagramUnit]:
        return self.units[0] if self.units else None


class Selection(BaseModel):
    """A single addressable image: a unit and an image index within it."""
    unit: DiagramUnit
    index: int = Field(..., ge=0)

    @model_validator(mode="after")
    def check_index(self) -> "Selection":
        if self.index >= self.unit.image_count:
            raise ValueError(
                f"Image index {self.index} out of range for unit with "
                f"{self.unit.image_count} image(s)"
            )
        return self


class OutputRequest(BaseModel):
    """What the client asked for: index, format and cache validators."""
    index: int = Field(0, description="Global image index across the document")
    format: OutputFormat = Field(OutputFormat.PNG)
    if_none_match: Optional[str] = Field(None, description="If-None-Match header")
    if_modified_since: Optional[datetime] = Field(None, description="If-Modified-Since header")


# Metadata Models
class ImageMetadata(BaseModel):
    """Diagram source recovered from a rendered image."""
    encoded: str = Field(..., description="Compressed diagram token")
    decoded: str = Field(..., description="Diagram source text")
    version: Optional[str] = Field(None, description="Renderer version information")
    raw_content: Optional[str] = Field(None, description="Raw metadata as stored in the image")

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"encoded": self.encoded, "decoded": self.decoded}
        if self.version:
            data["version"] = self.version
        return data

    def to_text(self) -> str:
        if self.raw_content:
            return self.raw_content
        if not self.version:
            return f"{self.encoded}\n\n{self.decoded}"
        return f"{self.encoded}\n\n{self.decoded}\n\n{self.version}"


# Health Check Models
class HealthStatus(BaseModel):
    """Health check status."""
    status: Literal["healthy", "unhealthy", "degraded"] = Field(..., description="Overall status")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Check timestamp"
    )
    version: str = Field(..., description="Application version")

    # Component statuses
    renderer: bool = Field(..., description="Renderer jar available")
    renderer_version: Optional[str] = Field(None, description="Renderer version string")
    security_profile: str = Field(..., description="Active security profile")
    preamble_lines: int = Field(0, ge=0, description="Configured global preamble lines")


# Error Models
class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Error timestamp"
    )
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")
