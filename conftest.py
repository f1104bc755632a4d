"""
Pytest configuration for the CHIP-8 test suite.

    python -m pytest                 # full suite
    python -m pytest -m "not display"  # skip the pygame window tests

Window tests are marked ``display``; they run pygame with SDL's dummy
video/audio drivers so no real screen is needed.
"""

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "display: tests that drive a pygame window (dummy SDL drivers)")


@pytest.fixture
def rom_file(tmp_path):
    """Write ROM bytes to a temporary .ch8 file and return its path."""
    def _write(data: bytes, name: str = "test.ch8") -> str:
        path = tmp_path / name
        path.write_bytes(bytes(data))
        return str(path)
    return _write


@pytest.fixture
def sdl_dummy(monkeypatch):
    """Point SDL at its dummy drivers for headless pygame runs."""
    pytest.importorskip("pygame")
    monkeypatch.setenv("SDL_VIDEODRIVER", "dummy")
    monkeypatch.setenv("SDL_AUDIODRIVER", "dummy")
