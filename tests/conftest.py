import sys
from pathlib import Path

import pytest

# Ensure repo root is importable (flat layout: core/, providers/, ...)
REPO_ROOT = Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    from core.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
