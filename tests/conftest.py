"""Shared pytest fixtures for Party Decoration Studio tests."""

import base64
import io
import re
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from partydeco.core.config import PartyDecoConfig
from partydeco.core.database import PartyStore
from partydeco.core.gateway import GatewayError

_TYPE_LINE = re.compile(r"decoration image as a (.+?)\.\n")


def make_image_data_url(image_format: str = "PNG", mime_type: str = "image/png") -> str:
    """Build a tiny real image and return it as a base64 data URL."""
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(255, 0, 128)).save(buffer, format=image_format)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


class FakeGateway:
    """In-memory stand-in for :class:`~partydeco.core.gateway.ImageGateway`.

    Each decoration type gets a deterministic image.  Types listed in
    ``failures`` raise :class:`GatewayError`; types listed in ``empty``
    stream without producing an image.  ``streamed`` maps a type to the
    exact images its stream yields.
    """

    model_id = "test/image-model"

    def __init__(self) -> None:
        self.failures: set[str] = set()
        self.empty: set[str] = set()
        self.streamed: dict[str, list[str]] = {}
        self.calls: list[dict] = []
        self.closed = False

    @staticmethod
    def decoration_type_of(prompt: str) -> str:
        match = _TYPE_LINE.search(prompt)
        return match.group(1) if match else "unknown"

    @staticmethod
    def image_for(decoration_type: str) -> str:
        encoded = base64.b64encode(decoration_type.encode()).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def _record(self, prompt: str, **kwargs) -> str:
        decoration_type = self.decoration_type_of(prompt)
        self.calls.append({"decoration_type": decoration_type, "prompt": prompt, **kwargs})
        if decoration_type in self.failures:
            raise GatewayError(f"Provider rejected {decoration_type}", status_code=502)
        return decoration_type

    async def generate_image(self, prompt, *, size=None, aspect_ratio=None, reference_images=()):
        decoration_type = self._record(
            prompt, size=size, aspect_ratio=aspect_ratio, reference_images=list(reference_images)
        )
        return self.image_for(decoration_type)

    async def stream_image(self, prompt, *, size=None, aspect_ratio=None, reference_images=()):
        decoration_type = self._record(
            prompt, size=size, aspect_ratio=aspect_ratio, reference_images=list(reference_images)
        )
        if decoration_type in self.streamed:
            for image in self.streamed[decoration_type]:
                yield image
        elif decoration_type not in self.empty:
            yield self.image_for(decoration_type)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> PartyDecoConfig:
    """Create a test configuration backed by a temporary database.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        PartyDecoConfig instance for testing
    """
    return PartyDecoConfig(
        openrouter_api_key="test-key",
        openrouter_model_id="test/image-model",
        openrouter_api_url="https://provider.test/v1/chat/completions",
        database_path=temp_dir / "data" / "party.db",
        _env_file=None,
    )


@pytest.fixture
def store(test_config: PartyDecoConfig) -> PartyStore:
    """Create an empty project store in the temporary directory."""
    return PartyStore(test_config.database_path)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Create a gateway double that never touches the network."""
    return FakeGateway()


@pytest.fixture
def png_data_url() -> str:
    """A valid PNG reference image as a data URL."""
    return make_image_data_url()


@pytest.fixture
def test_client(
    monkeypatch, test_config: PartyDecoConfig, fake_gateway: FakeGateway
) -> Generator[TestClient, None, None]:
    """Create a TestClient whose store and gateway are test doubles.

    The application lifespan runs against the temporary configuration,
    then the real gateway is swapped for :class:`FakeGateway`.
    """
    import partydeco.api.main as main_module

    monkeypatch.setattr(main_module, "config", test_config)

    with TestClient(main_module.app) as client:
        real_gateway = main_module.app.state.gateway
        main_module.app.state.gateway = fake_gateway
        try:
            yield client
        finally:
            main_module.app.state.gateway = real_gateway


@pytest.fixture
def make_data_url():
    """Factory fixture building real images as data URLs.

    Usage::

        make_data_url("JPEG", "image/jpeg")
    """
    return make_image_data_url
