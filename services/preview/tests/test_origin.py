import httpx
import pytest

from app.discovery import SequenceDiscoverer
from app.origin import (
    USER_AGENTS, Found, NotFound, OriginClient, TransientFailure,
    image_url, normalize_identifier, parse_title,
)
from app.retry import RetryPolicy
from fakes import BASE_URL, FakeOrigin

def test_image_url_uses_two_character_bucket():
    """
    The prefix letter is dropped and the first two digits form the bucket dir.
    """
    assert normalize_identifier("M12345") == "12345"
    assert image_url(BASE_URL, "M12345", 3) == (
        "https://origin.test/music/preview/images/12/12345/12345-3.jpg"
    )

@pytest.mark.asyncio
async def test_title_request_encodes_identifier():
    """
    The full identifier goes into the query string, escaped.
    """
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, text="<strong>Ode</strong>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        origin = OriginClient(http, BASE_URL)
        assert await origin.fetch_title("M12345") == "Ode"
        await origin.fetch_title("M1 &#2")

    assert seen[0].path == "/music/preview.cfm"
    assert dict(seen[0].params) == {"stocknum": "M12345", "page": "0"}
    assert dict(seen[1].params) == {"stocknum": "M1 &#2", "page": "0"}
    assert "#" not in str(seen[1])

def test_parse_title_first_strong():
    assert parse_title("<div><strong> Ode </strong><strong>Other</strong></div>") == "Ode"
    assert parse_title("<div>no title here</div>") == ""

@pytest.mark.asyncio
async def test_fetch_image_classifies_outcomes():
    fake = FakeOrigin(page_count=1, transient={2: 1})
    async with httpx.AsyncClient(transport=fake.transport) as http:
        origin = OriginClient(http, BASE_URL)
        found = await origin.fetch_image("M12345", 0)
        missing = await origin.fetch_image("M12345", 1)
        broken = await origin.fetch_image("M12345", 2)

    assert isinstance(found, Found) and found.data == fake.image
    assert isinstance(missing, NotFound) and missing.status_code == 404
    assert isinstance(broken, TransientFailure)

@pytest.mark.asyncio
async def test_fetch_title_degrades_to_empty():
    fake = FakeOrigin(page_count=1, title_status=500)
    async with httpx.AsyncClient(transport=fake.transport) as http:
        assert await OriginClient(http, BASE_URL).fetch_title("M12345") == ""

    def boom(request):
        raise httpx.ConnectTimeout("timeout", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(boom)) as http:
        assert await OriginClient(http, BASE_URL).fetch_title("M12345") == ""

@pytest.mark.asyncio
async def test_user_agent_from_pool():
    fake = FakeOrigin(page_count=3)
    async with httpx.AsyncClient(transport=fake.transport) as http:
        origin = OriginClient(http, BASE_URL)
        await origin.fetch_title("M12345")
        for page in range(3):
            await origin.fetch_image("M12345", page)

    assert len(fake.user_agents) == 4
    assert all(ua in USER_AGENTS for ua in fake.user_agents)

@pytest.mark.asyncio
async def test_redirect_loop_is_not_found():
    """
    A page that redirects to itself ends the sequence instead of raising.
    """
    def handler(request):
        return httpx.Response(302, headers={"Location": str(request.url)})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        outcome = await OriginClient(http, BASE_URL).fetch_image("M12345", 3)

    assert isinstance(outcome, NotFound)
    assert outcome.url.endswith("/12/12345/12345-3.jpg")

@pytest.mark.asyncio
async def test_redirect_loop_mid_sequence_keeps_earlier_pages():
    fake = FakeOrigin(page_count=5)

    def handler(request):
        if request.url.path.endswith("-3.jpg"):
            return httpx.Response(302, headers={"Location": str(request.url)})
        return fake.handler(request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        discoverer = SequenceDiscoverer(OriginClient(http, BASE_URL),
                                        retry=RetryPolicy(2, 0.0))
        entry = await discoverer.discover("M12345")

    assert len(entry.pages) == 3
