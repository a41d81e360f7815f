"""
Shared fixtures for the test modules.
"""

import io

import pytest
from PIL import Image

from app import app


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def make_image():
    """Return a factory producing encoded bytes of a simple image."""

    def _make(width=100, height=100, color=(128, 64, 32), fmt="PNG", mode="RGB", **save_kwargs):
        img = Image.new(mode, (width, height), color)
        buf = io.BytesIO()
        img.save(buf, format=fmt, **save_kwargs)
        return buf.getvalue()

    return _make


@pytest.fixture
def gradient_image():
    """A 64x64 RGB image with smooth gradients in every channel."""
    img = Image.new("RGB", (64, 64))
    img.putdata([(x * 4, y * 4, (x + y) * 2) for y in range(64) for x in range(64)])
    return img
