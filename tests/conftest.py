"""Shared fakes: an in-memory browser and scripted model services."""

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest
import requests
from bs4 import BeautifulSoup

from config import BatchConfig, Config, DiscoveryConfig, PdfConfig, ScraperConfig


# =============================================================================
# BROWSER
# =============================================================================

@dataclass
class FakeSite:
    """Everything a FakePage can serve. Shared by all pages of one browser."""
    pages: dict[str, str] = field(default_factory=dict)
    navigation_errors: dict[str, list[Exception]] = field(default_factory=dict)
    navigation_delays: dict[str, float] = field(default_factory=dict)
    images: list[dict] = field(default_factory=list)
    homepage_links: dict = field(default_factory=lambda: {"links": [], "cardLinks": []})
    navigation_links: list[dict] = field(default_factory=list)
    pdf_boxes: list = field(default_factory=list)
    selector_present: bool = True
    evaluate_error: Exception | None = None

    navigations: list[tuple[str, str]] = field(default_factory=list)
    screenshots: list[int] = field(default_factory=list)


class FakePage:
    def __init__(self, site: FakeSite):
        self.site = site
        self.url = ""
        self.closed = False
        self.scrolls: list[tuple] = []

    async def navigate(self, url, wait_until="domcontentloaded", timeout=30.0):
        self.site.navigations.append((url, wait_until))
        errors = self.site.navigation_errors.get(url)
        if errors:
            raise errors.pop(0)
        delay = self.site.navigation_delays.get(url)
        if delay:
            await asyncio.sleep(delay)
        self.url = url

    async def wait_for_selector(self, selector, timeout):
        return self.site.selector_present

    async def wait_for_idle(self, timeout):
        return True

    async def scroll_by(self, dy):
        self.scrolls.append(("by", dy))

    async def scroll_to(self, y):
        self.scrolls.append(("to", y))

    async def scroll_to_fraction(self, fraction):
        self.scrolls.append(("fraction", fraction))

    async def scroll_into_view(self, selectors, fallback_viewports):
        self.scrolls.append(("into_view", fallback_viewports))
        return None

    async def evaluate(self, script, arg=None):
        if self.site.evaluate_error is not None:
            raise self.site.evaluate_error
        if "cardLinks" in script:
            return self.site.homepage_links
        if "selectors" in script:
            return self.site.navigation_links
        if "naturalWidth" in script:
            return self.site.images
        if "innerHeight" in script:
            return 800
        return None

    async def content(self):
        return self.site.pages.get(self.url, "<html><body></body></html>")

    async def inner_text(self):
        return BeautifulSoup(await self.content(), "html.parser").get_text(" ")

    async def element_boxes(self, selector):
        return list(self.site.pdf_boxes)

    async def screenshot_element(self, selector, index):
        self.site.screenshots.append(index)
        return f"page-{index}".encode()

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, site: FakeSite | None = None, unavailable: bool = False):
        self.site = site or FakeSite()
        self.unavailable = unavailable
        self.opened: list[FakePage] = []

    @asynccontextmanager
    async def page(self):
        if self.unavailable:
            raise RuntimeError("browser unavailable")
        page = FakePage(self.site)
        self.opened.append(page)
        try:
            yield page
        finally:
            await page.close()


# =============================================================================
# MODELS
# =============================================================================

class StubTextModel:
    """Returns scripted responses in order; the last one repeats."""

    def __init__(self, *responses, error: Exception | None = None):
        self.responses = list(responses)
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt, temperature=0.0, max_tokens=2000):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class StubVisionModel:
    """`answer` is a string or a callable(prompt, images) -> string."""

    def __init__(self, answer="none", error: Exception | None = None):
        self.answer = answer
        self.error = error
        self.calls: list[tuple[str, list[bytes]]] = []

    async def complete_with_images(self, prompt, images):
        self.calls.append((prompt, images))
        if self.error is not None:
            raise self.error
        if callable(self.answer):
            return self.answer(prompt, images)
        return self.answer


# =============================================================================
# HELPERS
# =============================================================================

def recipe_json(title="Lemon Cake", ingredients=None, instructions=None, **extra) -> str:
    data = {
        "title": title,
        "category": "dessert",
        "ingredients": ingredients if ingredients is not None else [
            {"item": "flour", "quantity": "2 cups"},
            {"item": "sugar", "quantity": "1/2 cup"},
        ],
        "instructions": instructions if instructions is not None else ["Mix everything.", "Bake for 30 minutes."],
        "image_url": None,
        "notes": "",
    }
    data.update(extra)
    return json.dumps(data)


def json_ld_page(recipe: dict, body: str = "<article>Recipe</article>") -> str:
    return (
        "<html><head>"
        f'<script type="application/ld+json">{json.dumps(recipe)}</script>'
        f"</head><body>{body}</body></html>"
    )


COMPLETE_JSON_LD = {
    "@context": "https://schema.org",
    "@type": "Recipe",
    "name": "Lemon Cake",
    "image": ["https://food.example/img/lemon-cake.jpg"],
    "prepTime": "PT15M",
    "cookTime": "PT1H10M",
    "recipeYield": ["8", "8 slices"],
    "recipeIngredient": ["2 cups flour", "1 cup sugar", "2 lemons"],
    "recipeInstructions": [
        {"@type": "HowToStep", "text": "Preheat the oven."},
        {"@type": "HowToStep", "text": "Bake for 40 minutes."},
    ],
}

PLAIN_HTML_RECIPE = """
<html><body>
<nav>Home About Recipes</nav>
<div class="entry-content">
<h1>Grandma's Pancakes</h1>
<h2>Ingredients</h2>
<ul><li>1 cup flour</li><li>2 tablespoons sugar</li><li>1 egg</li></ul>
<h2>Instructions</h2>
<ol><li>Mix the flour and sugar.</li><li>Add the egg and cook on a hot pan.</li></ol>
<a href="/files/pancakes.pdf">Printable PDF</a>
</div>
<footer>Copyright 2024</footer>
</body></html>
"""


@pytest.fixture
def fast_config() -> Config:
    """Default configuration with every sleep and settle delay set to zero."""
    return Config(
        scraper=ScraperConfig(
            retry_backoff=0.0,
            container_wait=0.0,
            initial_settle=0.0,
            initial_idle_timeout=0.0,
            scroll_idle_timeout=0.0,
            extra_scroll_wait=0.0,
            underloaded_wait=0.0,
        ),
        discovery=DiscoveryConfig(initial_settle=0.0, scroll_settle=0.0),
        batch=BatchConfig(politeness_delay_min=0.0, politeness_delay_max=0.0),
        pdf=PdfConfig(scroll_pause=0.0, render_timeout=0.0),
    )


# =============================================================================
# HTTP
# =============================================================================

def sitemap_xml(urls: list[str]) -> str:
    entries = "".join(f"<url><loc>{url}</loc></url>" for url in urls)
    return f'<?xml version="1.0"?><urlset>{entries}</urlset>'


class FakeFetch:
    """Blocking fetch stand-in: maps URL to body, or to an exception to raise."""

    def __init__(self, responses: dict | None = None):
        self.responses = responses or {}
        self.requested: list[str] = []

    def __call__(self, url, timeout):
        self.requested.append(url)
        response = self.responses.get(url, requests.HTTPError(f"404 for {url}"))
        if isinstance(response, Exception):
            raise response
        return response
