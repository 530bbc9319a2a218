import json
import shutil
from pathlib import Path

import pytest

from backend import storage

TEST_DATA_DIR = Path("data-tests")


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe and re-init data-tests/ before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    storage.init_storage(TEST_DATA_DIR)
    yield
    # leave data-tests around after tests for inspection; CI can ignore it


@pytest.fixture
def write_scenario():
    """Write a scenario.json under data-tests/<dir_name>/ and return its path."""
    def _write(dir_name: str, data: dict | str) -> Path:
        target = TEST_DATA_DIR / dir_name
        target.mkdir(parents=True, exist_ok=True)
        text = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)
        path = target / "scenario.json"
        path.write_text(text, encoding="utf-8")
        return path
    return _write
