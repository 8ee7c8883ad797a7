import os
import sys
from pathlib import Path

import pytest

# Keep the repository free of Python bytecode and __pycache__ artifacts during tests.
sys.dont_write_bytecode = True

TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parent
SRC_ROOT = REPO_ROOT / "src"

# Make src/ importable as 'devloop'
for p in (SRC_ROOT, TESTS_ROOT):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


from helpers.cache_utils import reset_devloop_caches


@pytest.fixture(autouse=True)
def isolated_project_env(tmp_path, monkeypatch):
    """Run every test against an empty project root with no DEVLOOP_* overrides.

    Developer shells may export DEVLOOP_* variables; tests must be
    deterministic regardless, so they are cleared for every test.
    """
    for key in list(os.environ.keys()):
        if key.startswith("DEVLOOP_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DEVLOOP_PROJECT_ROOT", str(tmp_path))
    reset_devloop_caches()
    yield tmp_path
    reset_devloop_caches()
