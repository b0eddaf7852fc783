import httpx
import pytest

from app.discovery import PreviewNotFound, SequenceDiscoverer
from app.origin import OriginClient
from app.retry import RetryPolicy
from fakes import BASE_URL, FakeOrigin

NO_DELAY = RetryPolicy(max_attempts=2, delay=0.0)

async def _discover(fake: FakeOrigin, concurrency: int = 5, max_pages: int = 0,
                    retry: RetryPolicy = NO_DELAY):
    async with httpx.AsyncClient(transport=fake.transport) as http:
        discoverer = SequenceDiscoverer(
            OriginClient(http, BASE_URL), concurrency=concurrency,
            retry=retry, max_pages=max_pages,
        )
        return await discoverer.discover("M12345")

@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1, 5, 7])
async def test_same_run_length_for_any_batch_width(concurrency):
    """
    Pages [0, 12) exist: every batch width must yield exactly 12 pages in order.
    """
    entry = await _discover(FakeOrigin(page_count=12), concurrency=concurrency)

    assert len(entry.pages) == 12
    assert [p.source_url.rsplit("-", 1)[1] for p in entry.pages] == [f"{i}.jpg" for i in range(12)]
    assert entry.title == "Ode to Joy"

@pytest.mark.asyncio
async def test_zero_pages_is_not_found():
    with pytest.raises(PreviewNotFound):
        await _discover(FakeOrigin(page_count=0))

@pytest.mark.asyncio
async def test_gap_truncates_batch_in_index_order():
    """
    Page 2 is missing but 3 and 4 exist: the run stops at 2 and the later
    pages of the same batch are dropped.
    """
    fake = FakeOrigin(page_count=5, missing=[2])
    entry = await _discover(fake, concurrency=5)

    assert len(entry.pages) == 2
    # one batch only, no second round of requests
    assert set(fake.image_calls) == {0, 1, 2, 3, 4}

@pytest.mark.asyncio
async def test_transient_then_success_does_not_truncate():
    fake = FakeOrigin(page_count=3, transient={0: 1})
    entry = await _discover(fake)

    assert len(entry.pages) == 3
    assert fake.image_calls[0] == 2

@pytest.mark.asyncio
async def test_transient_twice_ends_sequence():
    """
    After the single retry a still-failing page counts as the end of the run.
    """
    fake = FakeOrigin(page_count=6, transient={3: 2})
    entry = await _discover(fake)

    assert len(entry.pages) == 3
    assert fake.image_calls[3] == 2

@pytest.mark.asyncio
async def test_stops_after_first_incomplete_batch():
    fake = FakeOrigin(page_count=7)
    await _discover(fake, concurrency=5)

    # batches 0-4 and 5-9, nothing from a third batch
    assert max(fake.image_calls) == 9
    assert fake.total_image_calls == 10
    assert fake.title_calls == 1

@pytest.mark.asyncio
async def test_max_pages_caps_discovery():
    fake = FakeOrigin(page_count=20)
    entry = await _discover(fake, concurrency=5, max_pages=8)

    assert len(entry.pages) == 8
    assert max(fake.image_calls) == 7

@pytest.mark.asyncio
async def test_title_failure_does_not_block_pages():
    entry = await _discover(FakeOrigin(page_count=2, title_status=404))

    assert entry.title == ""
    assert len(entry.pages) == 2

def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        SequenceDiscoverer(origin=None, concurrency=0)
