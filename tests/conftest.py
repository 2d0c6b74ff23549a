"""
Shared fixtures for semblock tests
"""

import pytest

from semblock_core.config import Config
from semblock_core.storage import MemoryStorage


@pytest.fixture
def test_config(tmp_path):
    """Config with no real delays"""
    return Config(
        data_dir=tmp_path,
        storage_file=tmp_path / "storage.json",
        lmstudio_url="http://localhost:1234",
        openai_url="https://api.openai.com/v1",
        openrouter_url="https://openrouter.ai/api/v1",
        lmstudio_retry_delay=0.0,
        cache_save_delay=0.05,
        availability_ttl=30.0,
        max_text_length=4000,
        max_completion_tokens=2000,
        openai_api_key="",
        openrouter_api_key="",
    )


@pytest.fixture
def storage():
    return MemoryStorage()


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
