"""Shared fixtures for the seal generator tests."""

import logging
import shutil

import pytest

from sporeseal.config import SporeFieldConfig
from sporeseal.encoder import encode, seal_payload
from sporeseal.logging import ROOT_LOGGER
from sporeseal.renderer import PatternOptions, qr_radius, render
from sporeseal.template import SEAL_BASE_SVG_PATH, TemplateLoader


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


@pytest.fixture
def config():
    """Default config with a smaller sample count to keep tests quick."""
    return SporeFieldConfig(spore_count=8000)


@pytest.fixture
def matrix():
    return encode(seal_payload("abc123"), 15.0)


@pytest.fixture
def pattern(matrix):
    return render(matrix.modules, matrix.size, qr_radius(1.0), PatternOptions())


@pytest.fixture
def template_copy(tmp_path):
    path = tmp_path / "seal_base.svg"
    shutil.copyfile(SEAL_BASE_SVG_PATH, path)
    return path


@pytest.fixture
def loader(template_copy):
    return TemplateLoader(template_copy)
