"""
Test Configuration
==================

Pytest configuration with fixtures shared by unit and integration tests.
Provides test settings, a renderer double and an application client.
"""

from pathlib import Path
from typing import Dict, Generator
from unittest.mock import patch
import zipfile

import pytest
from fastapi.testclient import TestClient
from pydantic_settings import SettingsConfigDict

from src.api.main import create_app
from src.config.settings import Settings
from src.core.codec.transcoder import Transcoder
from src.core.context import RenderingContext
from src.core.rendering.resources import JarResources

from tests.utils.mocks import FakeRenderer, fake_jar_entries


# Test settings override
class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    debug: bool = True
    jar_path: Path = Path("./missing-plantuml.jar")
    log_level: str = "DEBUG"

    model_config = SettingsConfigDict(env_file=".env.test", env_prefix="PLANTUML_TEST_")


@pytest.fixture(scope="session")
def test_settings() -> TestSettings:
    """Test settings fixture."""
    return TestSettings()


@pytest.fixture(scope="session", autouse=True)
def override_settings(test_settings: TestSettings):
    """Override application settings for testing."""
    with patch("src.config.settings.get_settings", return_value=test_settings):
        yield test_settings


@pytest.fixture
def transcoder() -> Transcoder:
    return Transcoder()


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    """Renderer double; blocks containing ``syntax-error`` fail."""
    return FakeRenderer()


@pytest.fixture
def jar_file(tmp_path: Path) -> Path:
    """Minimal jar with emoji, icon and theme resources."""
    path = tmp_path / "plantuml.jar"
    entries: Dict[str, str] = fake_jar_entries()
    with zipfile.ZipFile(path, "w") as jar:
        for name, content in entries.items():
            jar.writestr(name, content)
    return path


@pytest.fixture
def rendering_context(
    test_settings: TestSettings, fake_renderer: FakeRenderer, jar_file: Path
) -> RenderingContext:
    """Rendering context wired to the renderer double."""
    return RenderingContext(
        settings=test_settings,
        renderer=fake_renderer,
        resources=JarResources(jar_file),
    )


@pytest.fixture
def client(rendering_context: RenderingContext) -> Generator[TestClient, None, None]:
    """FastAPI test client over an app using the rendering context fixture."""
    with TestClient(create_app(rendering_context)) as test_client:
        yield test_client
