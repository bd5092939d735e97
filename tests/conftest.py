from pathlib import Path

import pytest
from PIL import Image

from imgopt.config import Settings
from imgopt.schemas import Capabilities

ALL_FORMATS = frozenset({"JPEG", "PNG", "WEBP", "AVIF"})


class RecordingEncoder:
    """Stands in for the Pillow encoder; writes a placeholder file per call."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def generate(self, source, target_width, fmt, target_path, quality):
        self.calls.append((str(source), target_width, fmt, Path(target_path).name, quality))
        if Path(source).name in self.fail_on:
            from imgopt.errors import EncodeFailure
            raise EncodeFailure(source, "boom")
        Path(target_path).parent.mkdir(parents=True, exist_ok=True)
        Path(target_path).write_bytes(b"variant")
        return Path(target_path)


@pytest.fixture
def make_image(tmp_path):
    """Factory: write a real raster image and return its path."""

    def _make(name="photo.jpg", size=(800, 400), mode="RGB", color=(200, 80, 40), folder=None, **save_kwargs):
        base = Path(folder) if folder else tmp_path / "src"
        path = base / name
        path.parent.mkdir(parents=True, exist_ok=True)
        img = Image.new(mode, size, color)
        img.save(path, **save_kwargs)
        return path

    return _make


@pytest.fixture
def settings(tmp_path):
    return Settings(cache_root=str(tmp_path / "cache"))


@pytest.fixture
def all_caps():
    return Capabilities(available=True, formats=ALL_FORMATS)


@pytest.fixture
def baseline_caps():
    return Capabilities(available=True, formats=frozenset({"JPEG", "PNG"}))


@pytest.fixture
def recorder():
    return RecordingEncoder()
