"""Finds candidate recipe URLs on a site starting from one entry URL."""

import asyncio
import logging
import re
from typing import Callable
from urllib.parse import urldefrag, urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from browser import Browser
from config import DiscoveryConfig
from errors import DiscoveryExhausted, DiscoveryStrategyFailed
from models import HOMEPAGE_DOM, NAVIGATION, SITEMAP, STATIC_FALLBACK, CandidateUrl

logger = logging.getLogger(__name__)

# =============================================================================
# HEURISTICS
# =============================================================================

# Substrings that mark index, listing or asset URLs in a sitemap
SITEMAP_EXCLUDE = [
    "/recipe-index", "/recipes-index",
    "/recipe-collection", "/recipes-collection",
    "/recipe-ebook", "/recipes-ebook",
    "/holiday-recipe",
    "/about", "/contact", "/privacy", "/terms",
    "/category", "/tag", "/author", "/page/",
    "/wp-admin", "/wp-content",
    ".pdf", ".jpg", ".png", ".gif",
    "/sitemap", "/feed", "/rss",
]

RECIPE_INDICATORS = ["/recipe/", "/recipes/", "/cooking/", "/food/", "/dish/", "/meal/"]

HOMEPAGE_URL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"/recipe/", r"/recipes/", r"/cooking/", r"/food/", r"/dish/", r"/meal/",
        r"-recipe/?$",
        r"-cookies?/?$",
        r"-(?:cake|bread|soup|salad|pasta|pizza|chicken|beef|dessert|smoothie)/?$",
        r"-treats?/?$",
        r"-bars?/?$",
        r"-muffins?/?$",
        r"-pancakes?/?$",
        r"-waffles?/?$",
        r"air-fryer",
        r"instant-pot",
        r"slow-cooker",
    )
]

LINK_TEXT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"recipe", r"cook", r"bake", r"dish", r"meal", r"food", r"kitchen",
        r"ingredient", r"delicious", r"tasty", r"yummy", r"popular", r"most\s*loved",
    )
]

HOMEPAGE_EXCLUDE = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"/about", r"/contact", r"/privacy", r"/terms", r"/search",
        r"/category", r"/tag", r"/author", r"/wp-admin", r"/admin",
        r"\.(?:jpg|jpeg|png|gif|pdf|doc|docx)$",
    )
]

RECIPE_CARD_SELECTORS = [
    ".recipe-card", ".recipe-item", ".post-item", ".entry-item",
    ".food-item", ".dish-item", "[data-recipe]",
    ".wp-block-latest-posts__post", ".posts .post", "article", ".archive .entry",
]

NAVIGATION_SELECTORS = [
    "a[href*='recipe']", "a[href*='cooking']", "a[href*='food']",
    "nav a", ".menu a", ".navigation a", ".recipe-categories a", ".category a",
]

NAVIGATION_KEYWORDS = ["recipe", "cooking", "food", "meal", "appetizer", "main", "dessert", "breakfast"]

_RECIPE_PATH = re.compile(r"/recipes?/", re.IGNORECASE)
_SPECIFIC_RECIPE = re.compile(r"recipe.*[a-z]{3,}")

_HOMEPAGE_LINKS_JS = """
(cardSelector) => {
  const read = (a) => ({
    href: a.href,
    text: (a.textContent || '').trim(),
    title: a.title || '',
    alt: (a.querySelector('img') && a.querySelector('img').alt) || '',
  });
  const cardLinks = [];
  document.querySelectorAll(cardSelector).forEach(card => {
    card.querySelectorAll('a[href]').forEach(a => cardLinks.push(a.href));
  });
  return {
    links: Array.from(document.querySelectorAll('a[href]')).map(read),
    cardLinks: cardLinks,
  };
}
"""

_NAVIGATION_LINKS_JS = """
(selectors) => {
  const links = [];
  for (const selector of selectors) {
    try {
      document.querySelectorAll(selector).forEach(a => {
        if (a.href) links.push({href: a.href, text: (a.textContent || '').trim()});
      });
    } catch (e) {}
  }
  return links;
}
"""


def site_root(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def is_same_origin(url: str, base_url: str) -> bool:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return False
    return bool(host) and host == urlparse(base_url).hostname


def _normalize(url: str) -> str:
    return urldefrag(url.strip())[0]


def is_recipe_url(url: str) -> bool:
    """Heuristic for sitemap entries: a recipe path segment and no index/asset marker."""
    lowered = url.lower()
    if any(pattern in lowered for pattern in SITEMAP_EXCLUDE):
        return False
    if not any(indicator in lowered for indicator in RECIPE_INDICATORS):
        return False
    return len(lowered.split("/")) >= 4 or bool(_SPECIFIC_RECIPE.search(lowered))


def parse_sitemap(xml_text: str) -> list[str]:
    """Returns every <loc> entry that looks like a recipe page."""
    soup = BeautifulSoup(xml_text or "", "html.parser")
    locs = [loc.get_text(strip=True) for loc in soup.find_all("loc")]
    return [url for url in locs if is_recipe_url(url)]


def select_homepage_links(links: list[dict], card_links: list[str], base_url: str) -> list[str]:
    """Applies URL, link-text and recipe-card heuristics to anchors read from a homepage."""
    selected = []

    def add(url):
        url = _normalize(url)
        if url and url not in selected:
            selected.append(url)

    for link in links:
        href = str(link.get("href") or "")
        if not href or not is_same_origin(href, base_url):
            continue

        text = str(link.get("text") or "").lower()
        title = str(link.get("title") or "").lower()
        alt = str(link.get("alt") or "").lower()

        matches_url = any(p.search(href) for p in HOMEPAGE_URL_PATTERNS)
        matches_text = any(
            p.search(text) or p.search(title) or p.search(alt) for p in LINK_TEXT_PATTERNS
        )
        if not (matches_url or matches_text):
            continue
        if any(p.search(href) for p in HOMEPAGE_EXCLUDE):
            continue
        add(href)

    for href in card_links:
        if href and is_same_origin(href, base_url):
            add(href)

    return selected


def select_navigation_links(links: list[dict], base_url: str) -> list[str]:
    selected = []
    for link in links:
        href = _normalize(str(link.get("href") or ""))
        if not href or not is_same_origin(href, base_url):
            continue
        text = str(link.get("text") or "").lower()
        if any(keyword in text for keyword in NAVIGATION_KEYWORDS) and href not in selected:
            selected.append(href)
    return selected


def extract_links_from_html(html: str, base_url: str) -> list[str]:
    """Same-origin anchors whose path contains a /recipe/ or /recipes/ segment."""
    soup = BeautifulSoup(html or "", "html.parser")
    urls = []
    for anchor in soup.find_all("a", href=True):
        absolute = _normalize(urljoin(base_url, anchor["href"]))
        if not is_same_origin(absolute, base_url):
            continue
        if _RECIPE_PATH.search(urlparse(absolute).path) and absolute not in urls:
            urls.append(absolute)
    return urls


# =============================================================================
# HTTP
# =============================================================================

def _create_http_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    })
    return session


# Shared by every fetch thread; created once at import
_http_session = _create_http_session()


def fetch_text(url: str, timeout: float) -> str:
    """GETs a URL and returns its body.

    Raises:
        requests.RequestException: For connection and HTTP errors
    """
    response = _http_session.get(url, timeout=timeout)
    response.raise_for_status()
    return response.text


# =============================================================================
# ENGINE
# =============================================================================

class DiscoveryEngine:
    """Runs the discovery strategies for one entry URL.

    `fetch` is a blocking `(url, timeout) -> text` callable, run in a
    worker thread. It defaults to a shared requests session.
    """

    def __init__(
        self,
        browser: Browser,
        config: DiscoveryConfig | None = None,
        navigation_timeout: float = 30.0,
        fetch: Callable[[str, float], str] | None = None,
    ):
        self.browser = browser
        self.config = config or DiscoveryConfig()
        self.navigation_timeout = navigation_timeout
        self.fetch = fetch or fetch_text

    async def discover(self, entry_url: str) -> list[CandidateUrl]:
        """Returns deduplicated same-origin candidates in discovery order.

        Raises:
            DiscoveryExhausted: If every strategy and the static fallback failed.
        """
        logger.info(f"Starting URL discovery for {entry_url}")
        strategies = [
            (SITEMAP, self.from_sitemap(entry_url)),
            (HOMEPAGE_DOM, self.from_homepage(entry_url)),
            (NAVIGATION, self.from_navigation(entry_url)),
        ]
        results = await asyncio.gather(*(coro for _, coro in strategies), return_exceptions=True)

        candidates: dict[str, CandidateUrl] = {}
        failures = []
        for (method, _), result in zip(strategies, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                reason = getattr(result, "reason", str(result))
                logger.warning(f"{method} strategy failed: {reason}")
                failures.append(reason)
                continue

            logger.info(f"{method} strategy found {len(result)} URLs")
            for url in result:
                if url != entry_url and is_same_origin(url, entry_url):
                    candidates.setdefault(url, CandidateUrl(url, method))

        if candidates:
            logger.info(f"Total unique recipe URLs discovered: {len(candidates)}")
            return list(candidates.values())

        all_failed = len(failures) == len(strategies)
        logger.warning("Browser strategies found nothing, falling back to static HTML discovery")
        try:
            urls = await self.from_static_html(entry_url)
        except Exception as e:
            if all_failed:
                raise DiscoveryExhausted(f"All discovery strategies failed: {'; '.join(failures + [str(e)])}") from e
            logger.warning(f"Static HTML discovery failed: {e}")
            return []

        urls = [url for url in urls if url != entry_url]
        if not urls and all_failed:
            raise DiscoveryExhausted(f"All discovery strategies failed: {'; '.join(failures)}")

        logger.info(f"Static HTML discovery found {len(urls)} URLs")
        return [CandidateUrl(url, STATIC_FALLBACK) for url in urls]

    async def _fetch(self, url: str) -> str:
        return await asyncio.to_thread(self.fetch, url, self.config.http_timeout)

    async def from_sitemap(self, entry_url: str) -> list[str]:
        """Probes the conventional sitemap paths; the first one with recipe URLs wins."""
        root = site_root(entry_url)
        errors = []
        for path in self.config.sitemap_paths:
            sitemap_url = root + path
            try:
                xml_text = await self._fetch(sitemap_url)
            except Exception as e:
                logger.debug(f"Sitemap probe {sitemap_url} failed: {e}")
                errors.append(str(e))
                continue

            urls = [url for url in parse_sitemap(xml_text) if is_same_origin(url, entry_url)]
            if urls:
                logger.info(f"Found sitemap at {sitemap_url} with {len(urls)} recipe URLs")
                return urls

        if errors and len(errors) == len(self.config.sitemap_paths):
            raise DiscoveryStrategyFailed(SITEMAP, f"no sitemap reachable ({errors[-1]})")
        logger.debug("No sitemap with recipe URLs found")
        return []

    async def from_homepage(self, entry_url: str) -> list[str]:
        """Scrolls the homepage to load lazy content, then scores its anchors."""
        try:
            async with self.browser.page() as page:
                await page.navigate(entry_url, "domcontentloaded", self.navigation_timeout)
                await asyncio.sleep(self.config.initial_settle)
                await page.scroll_to_fraction(0.5)
                await asyncio.sleep(self.config.scroll_settle)
                await page.scroll_to_fraction(1.0)
                await asyncio.sleep(self.config.scroll_settle)

                found = await page.evaluate(_HOMEPAGE_LINKS_JS, ", ".join(RECIPE_CARD_SELECTORS))
        except Exception as e:
            raise DiscoveryStrategyFailed(HOMEPAGE_DOM, str(e)) from e

        found = found or {}
        return select_homepage_links(found.get("links") or [], found.get("cardLinks") or [], entry_url)

    async def from_navigation(self, entry_url: str) -> list[str]:
        """Collects menu links whose text names a recipe category."""
        try:
            async with self.browser.page() as page:
                await page.navigate(entry_url, "domcontentloaded", self.navigation_timeout)
                await asyncio.sleep(self.config.initial_settle)
                links = await page.evaluate(_NAVIGATION_LINKS_JS, NAVIGATION_SELECTORS)
        except Exception as e:
            raise DiscoveryStrategyFailed(NAVIGATION, str(e)) from e

        return select_navigation_links(links or [], entry_url)

    async def from_static_html(self, entry_url: str) -> list[str]:
        html = await self._fetch(entry_url)
        return extract_links_from_html(html, entry_url)
