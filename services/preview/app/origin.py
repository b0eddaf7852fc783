"""
Client for the third-party preview origin.

Responsibilities:
- Derive the title page URL and numbered image URLs from an identifier.
- Fetch the title (first <strong> text of the preview HTML page).
- Fetch one image page and classify the answer as Found / NotFound / TransientFailure.

Each request picks a user agent at random from a fixed pool.
"""

import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Union

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger("preview.origin")

USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_6) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36 Edg/126.0.2592.113",
]

IMAGE_PATH = "/music/preview/images"
TITLE_PATH = "/music/preview.cfm"

# -----------------------------------------------------------------------------
# Fetch outcomes
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Found:
    data: bytes
    url: str

@dataclass(frozen=True)
class NotFound:
    url: str
    status_code: Optional[int] = None

@dataclass(frozen=True)
class TransientFailure:
    url: str
    cause: str

Outcome = Union[Found, NotFound, TransientFailure]

def is_transient(outcome: Outcome) -> bool:
    return isinstance(outcome, TransientFailure)

# -----------------------------------------------------------------------------
# URL templating
# -----------------------------------------------------------------------------

def normalize_identifier(identifier: str) -> str:
    """
    Strip the one-character catalog prefix ("M12345" -> "12345").
    """
    return identifier.strip()[1:]

def image_url(base_url: str, identifier: str, page: int) -> str:
    """
    {base}/music/preview/images/{prefix}/{norm}/{norm}-{page}.jpg
    where prefix is the first two characters of the normalized identifier.
    """
    norm = normalize_identifier(identifier)
    prefix = norm[:2]
    return f"{base_url}{IMAGE_PATH}/{prefix}/{norm}/{norm}-{page}.jpg"

def title_params(identifier: str) -> dict:
    return {"stocknum": identifier.strip(), "page": 0}

def parse_title(html: str) -> str:
    """
    Return the stripped text of the first <strong> element, or "".
    """
    soup = BeautifulSoup(html, "html.parser")
    strong = soup.find("strong")
    return strong.get_text(strip=True) if strong else ""

# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------

class OriginClient:
    """
    Thin wrapper over a shared httpx.AsyncClient. The client is owned by the
    caller (opened on app startup, closed on shutdown).
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str,
                 user_agents: Optional[List[str]] = None,
                 rng: Optional[random.Random] = None):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.user_agents = user_agents or USER_AGENTS
        self._rng = rng or random.Random()

    def _headers(self) -> dict:
        return {"User-Agent": self._rng.choice(self.user_agents)}

    def _short(self, url: str) -> str:
        # Log lines without the long common prefix
        return url.replace(self.base_url + IMAGE_PATH, "")

    async def fetch_title(self, identifier: str) -> str:
        """
        Best effort: any non-2xx answer or network error yields "".
        """
        logger.info("Get title for %s", identifier)
        try:
            r = await self.client.get(
                f"{self.base_url}{TITLE_PATH}", params=title_params(identifier),
                headers=self._headers(), follow_redirects=True,
            )
        except httpx.HTTPError as e:
            logger.warning("Title fetch failed for %s: %s", identifier, e)
            return ""
        if not r.is_success:
            logger.info("Title page for %s returned %s", identifier, r.status_code)
            return ""
        title = parse_title(r.text)
        logger.info("Title for %s: %r", identifier, title)
        return title

    async def fetch_url(self, url: str) -> Outcome:
        """
        GET one image URL. Non-2xx -> NotFound, transport error -> TransientFailure.
        Other request errors (redirect loops, undecodable bodies) -> NotFound.
        """
        logger.debug("Start fetch %s", self._short(url))
        try:
            r = await self.client.get(url, headers=self._headers(), follow_redirects=True)
        except httpx.TransportError as e:
            logger.warning("Transient error for %s: %r", self._short(url), e)
            return TransientFailure(url=url, cause=repr(e))
        except httpx.RequestError as e:
            logger.warning("Request error for %s: %r", self._short(url), e)
            return NotFound(url=url)
        if not r.is_success:
            logger.debug("End fetch %s status=%s", self._short(url), r.status_code)
            return NotFound(url=url, status_code=r.status_code)
        logger.debug("Done fetch %s bytes=%s", self._short(url), len(r.content))
        return Found(data=r.content, url=url)

    async def fetch_image(self, identifier: str, page: int) -> Outcome:
        return await self.fetch_url(image_url(self.base_url, identifier, page))
