"""
Integration Tests for the API Routes
====================================

Request/response tests of the diagram, coder, proxy, metadata, UI helper and
health endpoints over an application wired to the renderer double.
"""

import base64
import dataclasses
import io
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from PIL import Image
from PIL.PngImagePlugin import PngInfo

from src.api.main import create_app
from src.core.codec.transcoder import Transcoder
from src.core.context import RenderingContext
from src.core.output.negotiator import http_date
from src.core.proxy.fetcher import FetchError, SourceFetcher
from src.core.rendering.renderer import RendererError
from src.models.schemas import DiagramUnit

from tests.utils.mocks import PNG_SIGNATURE, FakeRenderer

SEQUENCE = "@startuml\nBob -> Alice : hello\n@enduml"
THREE_IMAGES = (
    "@startuml\nA -> B\nnewpage\nB -> C\n@enduml\n"
    "@startuml\nC -> D\n@enduml\n"
)


def block_unit(text: str) -> DiagramUnit:
    return DiagramUnit(source=text if text.endswith("\n") else text + "\n")


class TestDiagramEndpoints:
    """Test rendering endpoints."""

    def test_png_from_path_token(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/png/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(PNG_SIGNATURE)
        assert response.headers["access-control-allow-origin"] == "*"

    def test_cache_headers(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/svg/{transcoder.encode(SEQUENCE)}")
        unit = block_unit(SEQUENCE)
        assert response.status_code == status.HTTP_200_OK
        assert response.headers["cache-control"] == "public, max-age=432000"
        assert response.headers["etag"] == f'"{unit.etag}"'
        assert response.headers["last-modified"] == http_date(unit.last_modified)
        assert response.headers["x-powered-by"] == "PlantUML Version 1.2024.7"
        assert response.headers["content-type"].startswith("image/svg+xml")

    def test_not_modified(self, client: TestClient, transcoder: Transcoder):
        unit = block_unit(SEQUENCE)
        response = client.get(
            f"/png/{transcoder.encode(SEQUENCE)}",
            headers={
                "If-None-Match": f'"{unit.etag}"',
                "If-Modified-Since": http_date(unit.last_modified),
            },
        )
        assert response.status_code == status.HTTP_304_NOT_MODIFIED
        assert response.headers["etag"] == f'"{unit.etag}"'

    def test_etag_alone_is_not_enough(self, client: TestClient, transcoder: Transcoder):
        unit = block_unit(SEQUENCE)
        response = client.get(
            f"/png/{transcoder.encode(SEQUENCE)}", headers={"If-None-Match": f'"{unit.etag}"'}
        )
        assert response.status_code == status.HTTP_200_OK

    def test_validators_of_another_source_do_not_match(
        self, client: TestClient, transcoder: Transcoder
    ):
        """Test that a one-character edit invalidates the cached image."""
        unit = block_unit(SEQUENCE)
        edited = SEQUENCE.replace("hello", "hellp")
        response = client.get(
            f"/png/{transcoder.encode(edited)}",
            headers={
                "If-None-Match": f'"{unit.etag}"',
                "If-Modified-Since": http_date(unit.last_modified),
            },
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.content.startswith(PNG_SIGNATURE)
        assert response.headers["etag"] == f'"{block_unit(edited).etag}"'
        assert response.headers["etag"] != f'"{unit.etag}"'

    def test_volatile_source_is_not_cached(self, client: TestClient, transcoder: Transcoder):
        text = "@startuml\nversion\n@enduml"
        response = client.get(f"/png/{transcoder.encode(text)}")
        assert response.status_code == status.HTTP_200_OK
        assert "etag" not in response.headers
        assert "cache-control" not in response.headers

    def test_bare_text_is_wrapped(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/txt/{transcoder.encode('Bob -> Alice')}")
        assert response.status_code == status.HTTP_200_OK
        assert response.content.startswith(b"utxt:")

    def test_index_in_path(
        self, client: TestClient, transcoder: Transcoder, fake_renderer: FakeRenderer
    ):
        response = client.get(f"/png/2/{transcoder.encode(THREE_IMAGES)}")
        assert response.status_code == status.HTTP_200_OK
        unit, index, _ = fake_renderer.render_calls[-1]
        assert unit.source.startswith("@startuml\nC -> D")
        assert index == 0

    def test_index_past_end(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/png/3/{transcoder.encode(THREE_IMAGES)}")
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.content == b""

    def test_error_diagram_is_rendered_with_400(
        self, client: TestClient, transcoder: Transcoder, fake_renderer: FakeRenderer
    ):
        text = "@startuml\nsyntax-error\n@enduml"
        response = client.get(f"/png/{transcoder.encode(text)}")
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.content.startswith(PNG_SIGNATURE)
        assert response.headers["x-plantuml-diagram-error"] == "Syntax Error? (syntax-error)"
        assert response.headers["x-plantuml-diagram-error-line"] == "2"
        assert fake_renderer.render_calls

    def test_legacy_url_parameter(self, client: TestClient, transcoder: Transcoder):
        token = transcoder.encode(SEQUENCE)
        response = client.get("/svg", params={"url": f"http://example.com/plantuml/svg/{token}"})
        assert response.status_code == status.HTTP_200_OK
        assert response.content.startswith(b"svg:")

    def test_post_body(self, client: TestClient, fake_renderer: FakeRenderer):
        response = client.post("/pdf", content="@startuml\r\nA -> B\r\n@enduml".encode("utf-8"))
        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"] == "application/pdf"
        unit, _, _ = fake_renderer.render_calls[-1]
        assert unit.source == "@startuml\nA -> B\n@enduml\n"

    def test_post_body_with_index(self, client: TestClient, fake_renderer: FakeRenderer):
        response = client.post("/png/1", content=THREE_IMAGES.encode("utf-8"))
        assert response.status_code == status.HTTP_200_OK
        _, index, _ = fake_renderer.render_calls[-1]
        assert index == 1

    def test_img_alias(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/img/{transcoder.encode(SEQUENCE)}")
        assert response.headers["content-type"] == "image/png"

    def test_base64(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/base64/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_200_OK
        assert response.text.startswith("data:image/png;base64,")
        image = base64.b64decode(response.text.split(",", 1)[1])
        assert image.startswith(PNG_SIGNATURE)
        assert "etag" not in response.headers

    def test_undecodable_token_renders_empty_diagram(self, client: TestClient):
        response = client.get("/png/________")
        assert response.status_code == status.HTTP_200_OK


class TestMapAndCheck:
    def test_map(self, client: TestClient, transcoder: Transcoder):
        text = '@startuml\nclass A [[http://example.com]]\n@enduml'
        response = client.get(f"/map/{transcoder.encode(text)}")
        assert response.status_code == status.HTTP_200_OK
        assert response.text.startswith("<map")
        assert response.headers["content-type"].startswith("text/plain")

    def test_map_without_links_is_empty(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/map/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_200_OK
        assert response.text == ""

    def test_check(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/check/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_200_OK
        assert response.text.startswith("SEQUENCE")


class TestCoderEndpoints:
    def test_decode(self, client: TestClient, transcoder: Transcoder):
        response = client.get(f"/coder/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_200_OK
        assert response.text == SEQUENCE

    def test_encode(self, client: TestClient, transcoder: Transcoder):
        response = client.post("/coder", content=SEQUENCE.encode("utf-8"))
        assert response.status_code == status.HTTP_200_OK
        assert transcoder.decode(response.text) == SEQUENCE


class TestProxyEndpoints:
    """Test remote sources."""

    def test_forbidden_url(self, client: TestClient):
        response = client.get("/proxy", params={"src": "http://127.0.0.1/a.puml"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Forbidden URL format."

    def test_malformed_url(self, client: TestClient):
        response = client.get("/proxy", params={"src": "no url"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "URL malformed."

    def test_proxy_renders_fetched_source(self, client: TestClient):
        with patch.object(SourceFetcher, "fetch_source", AsyncMock(return_value=SEQUENCE)):
            response = client.get(
                "/proxy", params={"src": "https://example.com/a.puml", "fmt": "svg"}
            )
        assert response.status_code == status.HTTP_200_OK
        assert response.content.startswith(b"svg:")

    def test_proxy_map(self, client: TestClient):
        text = "@startuml\nclass A [[http://example.com]]\n@enduml"
        with patch.object(SourceFetcher, "fetch_source", AsyncMock(return_value=text)):
            response = client.get(
                "/proxy", params={"src": "https://example.com/a.puml", "fmt": "map"}
            )
        assert response.text.startswith("<map")

    def test_invalid_index(self, client: TestClient):
        response = client.get("/proxy", params={"src": "https://example.com/a", "idx": "x"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_fetch_failure(self, client: TestClient):
        with patch.object(
            SourceFetcher, "fetch_source", AsyncMock(side_effect=FetchError("unreachable"))
        ):
            response = client.get("/proxy", params={"src": "https://example.com/a.puml"})
        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    def test_legacy_proxy(self, client: TestClient, fake_renderer: FakeRenderer):
        with patch.object(SourceFetcher, "fetch_source", AsyncMock(return_value=THREE_IMAGES)):
            response = client.get("/proxy/1/txt/https://example.com/a.puml")
        assert response.status_code == status.HTTP_200_OK
        assert response.content.startswith(b"atxt:")
        assert "etag" not in response.headers
        _, index, _ = fake_renderer.render_calls[-1]
        assert index == 1

    def test_legacy_proxy_ignores_preamble(
        self, rendering_context: RenderingContext, fake_renderer: FakeRenderer
    ):
        context = dataclasses.replace(rendering_context, preamble=("skinparam dpi 150",))
        with TestClient(create_app(context)) as test_client:
            with patch.object(SourceFetcher, "fetch_source", AsyncMock(return_value=SEQUENCE)):
                response = test_client.get("/proxy/png/https://example.com/a.puml")
        assert response.status_code == status.HTTP_200_OK
        assert all(preamble == () for _, preamble in fake_renderer.parse_calls)
        unit, _, _ = fake_renderer.render_calls[-1]
        assert "skinparam dpi 150" not in unit.source

    def test_diagram_endpoint_applies_preamble(
        self,
        rendering_context: RenderingContext,
        fake_renderer: FakeRenderer,
        transcoder: Transcoder,
    ):
        context = dataclasses.replace(rendering_context, preamble=("skinparam dpi 150",))
        with TestClient(create_app(context)) as test_client:
            response = test_client.get(f"/png/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_200_OK
        unit, _, _ = fake_renderer.render_calls[-1]
        assert "skinparam dpi 150" in unit.source

    def test_legacy_proxy_does_not_wrap(self, client: TestClient):
        with patch.object(SourceFetcher, "fetch_source", AsyncMock(return_value="A -> B")):
            response = client.get("/proxy/https://example.com/a.puml")
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.text == "No UML diagram found"


class TestMetadataEndpoints:
    """Test metadata extraction."""

    @pytest.fixture
    def png_with_metadata(self) -> bytes:
        info = PngInfo()
        info.add_text("plantuml", f"{SEQUENCE}\n\nPlantUML version 1.2024.7")
        buffer = io.BytesIO()
        Image.new("RGB", (2, 2)).save(buffer, format="PNG", pnginfo=info)
        return buffer.getvalue()

    def test_upload_png_as_json(self, client: TestClient, png_with_metadata: bytes):
        response = client.post(
            "/metadata",
            files={"diagram": ("diagram.png", png_with_metadata, "image/png")},
            headers={"Accept": "application/json"},
        )
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["decoded"] == SEQUENCE
        assert data["version"] == "PlantUML version 1.2024.7"

    def test_upload_png_as_text(self, client: TestClient, png_with_metadata: bytes):
        response = client.post(
            "/metadata",
            files={"diagram": ("diagram.png", png_with_metadata, "image/png")},
        )
        assert response.status_code == status.HTTP_200_OK
        assert SEQUENCE in response.text

    def test_unsupported_format(self, client: TestClient, png_with_metadata: bytes):
        response = client.post(
            "/metadata",
            params={"format": "pdf"},
            files={"diagram": ("diagram.png", png_with_metadata, "image/png")},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.text == 'The format "pdf" is not supported for meta data extraction.'

    def test_format_detection_failure(self, client: TestClient):
        response = client.post(
            "/metadata",
            files={"diagram": ("diagram", b"data", "application/octet-stream")},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "format detection failed" in response.text

    def test_remote_svg(self, client: TestClient, transcoder: Transcoder):
        svg = f"<svg><?plantuml-src {transcoder.encode(SEQUENCE)}?></svg>".encode("utf-8")
        with patch.object(
            SourceFetcher, "fetch", AsyncMock(return_value=(svg, "image/svg+xml"))
        ):
            response = client.get(
                "/metadata",
                params={"src": "https://example.com/diagram"},
                headers={"Accept": "application/json"},
            )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["decoded"] == SEQUENCE

    def test_image_without_metadata(self, client: TestClient):
        svg = b"<svg><g/></svg>"
        response = client.post(
            "/metadata",
            files={"diagram": ("diagram.svg", svg, "image/svg+xml")},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.text == "No meta data found."


class TestUiHelperEndpoints:
    def test_missing_request_item(self, client: TestClient):
        response = client.get("/ui-helper")
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.text == "Request item not set."

    def test_unknown_request_item(self, client: TestClient):
        response = client.get("/ui-helper", params={"request": "colors"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.text == "Unknown requested item: colors"

    def test_themes(self, client: TestClient):
        response = client.get("/ui-helper", params={"request": "themes"})
        assert response.json() == ["cerulean", "spacelab"]

    def test_emojis(self, client: TestClient):
        response = client.get("/ui-helper", params={"request": "emojis"})
        assert response.json()[0] == ["1f600", "grinning"]

    def test_icons_sprite(self, client: TestClient):
        response = client.get("/ui-helper", params={"request": "icons.svg"})
        assert response.headers["content-type"].startswith("image/svg+xml")
        assert 'id="account-login"' in response.text

    def test_language(self, client: TestClient):
        response = client.get("/language")
        assert response.status_code == status.HTTP_200_OK
        assert "@startuml" in response.text


class TestHealthAndErrors:
    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["renderer"] is True
        assert data["security_profile"] == "INTERNET"

    def test_root(self, client: TestClient):
        response = client.get("/")
        assert response.json()["name"] == "PlantUML Gateway"
        assert "x-request-id" in response.headers

    def test_renderer_failure_maps_to_503(
        self, client: TestClient, transcoder: Transcoder, fake_renderer: FakeRenderer
    ):
        fake_renderer.render = AsyncMock(side_effect=RendererError("Renderer could not be started"))
        response = client.get(f"/png/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["error_code"] == "RENDERER_UNAVAILABLE"

    def test_renderer_timeout_maps_to_504(
        self, client: TestClient, transcoder: Transcoder, fake_renderer: FakeRenderer
    ):
        fake_renderer.render = AsyncMock(side_effect=RendererError("Renderer timed out after 30s"))
        response = client.get(f"/png/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_504_GATEWAY_TIMEOUT

    def test_unexpected_error_keeps_cors_header(
        self,
        rendering_context: RenderingContext,
        fake_renderer: FakeRenderer,
        transcoder: Transcoder,
    ):
        """Test that browsers can read the body of an internal error."""
        fake_renderer.render = AsyncMock(side_effect=ValueError("broken image"))
        app = create_app(rendering_context)
        with TestClient(app, raise_server_exceptions=False) as test_client:
            response = test_client.get(f"/png/{transcoder.encode(SEQUENCE)}")
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error_code"] == "INTERNAL_ERROR"
        assert response.headers["access-control-allow-origin"] == "*"
