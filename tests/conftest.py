"""Shared pytest fixtures for judgelink tests."""

import pytest

from judgelink.config import Settings
from judgelink.resolution import build_index

from tests.fixtures import sample_judges  # noqa: F401


@pytest.fixture
def settings() -> Settings:
    """Settings with delays disabled."""
    return Settings(
        _env_file=None,
        link_page_delay=0.0,
        link_progress_interval=0.0,
        link_retry_base_delay=0.0,
        link_retry_max_delay=0.0,
    )


@pytest.fixture
def sample_index(sample_judges):
    """Match index over the sample judges."""
    return build_index(sample_judges)


@pytest.fixture
def no_sleep():
    """Awaitable sleep that records delays instead of waiting."""
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    sleep.delays = delays
    return sleep
