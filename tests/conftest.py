import random
import sys

import pytest

# Ensure project root is importable (so `import ers`, `import main` work reliably across environments)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi.testclient import TestClient  # noqa: E402

from ers.app import create_app  # noqa: E402
from ers.lifecycle import ShutdownTrigger  # noqa: E402
from ers.store import FileRateStore  # noqa: E402


class ExitRecorder:
    """Stands in for os._exit so shutdown paths can be asserted."""

    def __init__(self):
        self.codes = []

    def __call__(self, code):
        self.codes.append(code)


@pytest.fixture
def rate_path(tmp_path):
    return str(tmp_path / "rate.txt")


@pytest.fixture
def store(rate_path):
    return FileRateStore(rate_path)


@pytest.fixture
def exits():
    return ExitRecorder()


@pytest.fixture
def shutdown(exits):
    return ShutdownTrigger(exit_code=1, exit_func=exits)


@pytest.fixture
def app(store, shutdown):
    return create_app(store, shutdown=shutdown, rng=random.Random(1234))


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
