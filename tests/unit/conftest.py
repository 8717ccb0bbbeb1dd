#!/usr/bin/env python3
"""
Shared pytest fixtures for unit tests.

Provides an in-memory QSettings stand-in, small upload settings and sample
images generated with Pillow.
"""

import io
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PIL import Image

# Keep config, logs and caches out of the real home directory
os.environ.setdefault("WALLUP_HOME", tempfile.mkdtemp(prefix="wallup-tests-"))
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from PyQt6.QtCore import QSettings  # noqa: E402

from src.core.upload_config import UploadSettings  # noqa: E402


@pytest.fixture
def mock_settings():
    """Dict-backed QSettings mock honouring beginGroup/endGroup."""
    settings = MagicMock(spec=QSettings)
    settings._data = {}
    settings._groups = []

    def mock_begin_group(group):
        settings._groups.append(group)

    def mock_end_group():
        if settings._groups:
            settings._groups.pop()

    def mock_set_value(key, value):
        full_key = "/".join(settings._groups + [key])
        settings._data[full_key] = value

    def mock_value(key, default=None):
        full_key = "/".join(settings._groups + [key])
        return settings._data.get(full_key, default)

    def mock_remove(key):
        full_key = "/".join(settings._groups + [key])
        settings._data.pop(full_key, None)

    settings.beginGroup = mock_begin_group
    settings.endGroup = mock_end_group
    settings.setValue = mock_set_value
    settings.value = mock_value
    settings.remove = mock_remove

    return settings


@pytest.fixture
def upload_settings():
    """Default settings with test endpoints and a short job timeout."""
    return UploadSettings(
        blob_endpoint="https://blob.test/api/blob-upload",
        api_base_url="https://app.test",
        job_timeout=5.0,
    )


def make_image_bytes(width=800, height=600, fmt="JPEG", mode="RGB", **save_kwargs):
    """Encode a gradient image so the encoder has real detail to compress."""
    size = (width, height)
    vertical = Image.linear_gradient("L").resize(size)
    horizontal = Image.linear_gradient("L").rotate(90).resize(size)
    noise = Image.effect_noise(size, 40)
    bands = [horizontal, vertical, noise]
    if mode == "RGBA":
        bands.append(Image.new("L", size, 128))
    img = Image.merge(mode, bands)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


@pytest.fixture
def sample_jpeg():
    return make_image_bytes()


@pytest.fixture
def image_factory():
    return make_image_bytes
