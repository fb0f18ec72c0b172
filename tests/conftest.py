import sys
from pathlib import Path

import pytest

# Ensure the `pharmafinder` package is importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pharmafinder.core.config import Settings  # noqa: E402


@pytest.fixture
def settings():
    return Settings(gemini_api_key="test-key", gemini_model="test-model", gemini_timeout=5.0)
