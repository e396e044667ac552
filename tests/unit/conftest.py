"""Shared fixtures for unit tests."""

import copy
import json

import pytest

from fakes import OMELETTE


@pytest.fixture
def omelette() -> dict:
    return copy.deepcopy(OMELETTE)


@pytest.fixture
def recipe_batch() -> list[dict]:
    """Three candidates, the second one missing its title."""
    first = copy.deepcopy(OMELETTE)
    second = copy.deepcopy(OMELETTE)
    del second["title"]
    third = copy.deepcopy(OMELETTE)
    third["title"] = "Pancakes"
    third["difficulty"] = "MEDIUM"
    return [first, second, third]


@pytest.fixture
def recipe_text(recipe_batch) -> str:
    return json.dumps(recipe_batch)


@pytest.fixture
def no_sleep():
    """Async sleep replacement that records the requested delays."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def png_bytes() -> bytes:
    # PNG magic bytes: 89 50 4E 47 0D 0A 1A 0A
    return b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR" + b"\x00" * 32


@pytest.fixture
def jpeg_bytes() -> bytes:
    # JPEG magic bytes: FF D8 FF
    return b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 32
