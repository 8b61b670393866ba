"""
Pytest configuration and shared fixtures.

Followers block forever on an idle file, so every blocking read in the tests
goes through ``read_exactly``, which gives up after a timeout, and every
follower is closed at teardown so stuck readers are released.
"""
from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import pytest

from tailf.config import FollowConfig
from tailf.follower import follow


READ_TIMEOUT = 5.0


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root):
    """Return path to the example configuration."""
    return project_root / "configs" / "tailf.yaml"


@pytest.fixture
def log_file(tmp_path):
    """An empty file inside its own directory."""
    path = tmp_path / "tailf_test_dir" / "tailf_test"
    path.parent.mkdir()
    path.write_bytes(b"")
    return path


@pytest.fixture
def writer(log_file):
    """Unbuffered append handle, so every write reaches the file at once."""
    f = open(log_file, "ab", buffering=0)
    yield f
    f.close()


@pytest.fixture
def make_follower():
    """Factory for followers that are closed at teardown."""
    created = []

    def _make(path, from_start=False, **options):
        stream = follow(str(path), from_start=from_start, config=FollowConfig(**options))
        created.append(stream)
        return stream

    yield _make

    for stream in created:
        stream.close()


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=False)


@pytest.fixture
def read_exactly(executor):
    """Read exactly n bytes (fewer only at end of stream), bounded by a timeout."""

    def _read(stream, n, chunk=None, timeout=READ_TIMEOUT):
        def _collect():
            out = bytearray()
            while len(out) < n:
                data = stream.read(min(chunk or n, n - len(out)))
                if data is None:
                    continue
                if not data:
                    break
                out += data
            return bytes(out)

        return executor.submit(_collect).result(timeout=timeout)

    return _read

