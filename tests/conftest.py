"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root and this directory to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).parent))

from helpers import make_model  # noqa: E402
from model_invocation import InMemoryModelRegistry, Model  # noqa: E402


@pytest.fixture
def async_model() -> Model:
    return make_model()


@pytest.fixture
def sync_model() -> Model:
    return make_model(
        id="m-sync",
        name="Sync Model",
        inputSchema='{"prompt": "{prompt}", "context": "{input}"}',
        outputKeyPath="choices[0].text",
        outputTiming="sync",
    )


@pytest.fixture
def registry(async_model) -> InMemoryModelRegistry:
    return InMemoryModelRegistry([async_model])
