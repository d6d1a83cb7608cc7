import copy

import pytest

import tests.helpers  # noqa: F401  (points the log file at the temp dir before signalcheck loads)
from signalcheck.core.config import DEFAULT_CONFIG
from signalcheck.storage.store import RecordStore


@pytest.fixture
def store(tmp_path):
    return RecordStore(str(tmp_path / "signalcheck.db"))


@pytest.fixture
def config(tmp_path):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["database"]["path"] = str(tmp_path / "signalcheck.db")
    cfg["database"]["cache_path"] = str(tmp_path / ".cache.db")
    return cfg
