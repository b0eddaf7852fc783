from dataclasses import replace

import pytest

from common.config import settings
from fakes import BASE_URL

@pytest.fixture
def test_settings():
    """
    Settings pointed at the fake origin, with no retry delay and no timer.
    """
    return replace(
        settings,
        origin_base_url=BASE_URL,
        retry_delay=0.0,
        retry_attempts=2,
        discovery_concurrency=5,
        max_pages=0,
        cache_single_use=False,
        cache_clear_weekday=-1,
    )
