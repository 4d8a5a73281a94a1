import os
from pathlib import Path

import pytest

# Keep tracing out of test runs; modules initialize telemetry on import.
os.environ.setdefault("DISABLE_TELEMETRY", "true")

DATA_DIR = Path(__file__).parent / "data"


@pytest.fixture
def read_fixture():
    def _read(name: str) -> bytes:
        return (DATA_DIR / name).read_bytes()
    return _read
