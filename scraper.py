"""Loads one recipe page and extracts structured data or fallback text."""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from browser import Browser, Page
from config import ScraperConfig
from errors import IncompleteStructuredData, NavigationFailed
from models import HTML_FALLBACK, STRUCTURED_DATA, RawRecipe, ScrapedPage

logger = logging.getLogger(__name__)

# =============================================================================
# SELECTORS AND KEYWORDS
# =============================================================================

CONTAINER_SELECTORS = ".post-item, .entry-item, .wp-block-latest-posts__post, article"

INGREDIENT_SELECTORS = [
    "[class*='ingredient']", "[id*='ingredient']",
    ".recipe-ingredients", "#ingredients",
    ".ingredients-section", "[data-module='ingredients']",
    "h2", "h3",
]

INSTRUCTION_SELECTORS = [
    "[class*='instruction']", "[id*='instruction']",
    ".recipe-instructions", "#instructions", "#directions",
    ".instructions-section", "[data-module='instructions']",
    "h2", "h3",
]

# Recipe containers, most specific first
TEXT_CONTAINER_SELECTORS = [
    ".recipe",
    ".recipe-content",
    ".recipe-container",
    ".recipe-card",
    "[itemtype*='Recipe']",
    ".post-content",
    ".entry-content",
    "main",
]

REMOVED_ELEMENTS = "script, style, noscript, nav, header, footer, .ad, .advertisement, .social-share, .newsletter"

IMAGE_EXCLUDE_KEYWORDS = [
    "logo", "icon", "avatar", "profile", "social", "share",
    "advertisement", "banner", "header", "footer", "sidebar",
]

INGREDIENT_KEYWORDS = ["cup", "tablespoon", "teaspoon", "tsp", "tbsp", "flour", "sugar", "egg"]

_INGREDIENT_UNITS = re.compile(r"\b(cup|tablespoon|teaspoon|tsp|tbsp)\b", re.IGNORECASE)
_STEP_WORDS = re.compile(r"\b(step|preheat|mix|add|bake|cook)\b", re.IGNORECASE)

_RETRIABLE_MESSAGES = ("frame was detached", "frame detached", "navigation", "timeout")

_IMAGES_JS = """
() => Array.from(document.querySelectorAll('img')).map(img => ({
  src: img.currentSrc || img.src || '',
  alt: img.alt || '',
  width: img.naturalWidth || 0,
  height: img.naturalHeight || 0,
}))
"""


# =============================================================================
# JSON-LD
# =============================================================================

def _is_recipe_type(item) -> bool:
    if not isinstance(item, dict):
        return False
    schema_type = item.get("@type", "")
    if isinstance(schema_type, list):
        return "Recipe" in schema_type
    return schema_type == "Recipe"


def iter_json_ld_items(html: str) -> list[dict]:
    """Returns every JSON-LD object on the page, with arrays and @graph flattened."""
    soup = BeautifulSoup(html, "html.parser")
    items = []

    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or script.get_text())
        except (json.JSONDecodeError, TypeError):
            continue

        stack = data if isinstance(data, list) else [data]
        for item in stack:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                items.extend(g for g in graph if isinstance(g, dict))
            else:
                items.append(item)

    return items


def find_json_ld_recipe(html: str) -> dict | None:
    """Returns the first JSON-LD item typed Recipe."""
    for item in iter_json_ld_items(html):
        if _is_recipe_type(item):
            return item
    return None


def check_completeness(data: dict | None) -> None:
    """Raises IncompleteStructuredData unless name, ingredients and instructions exist."""
    if not data:
        raise IncompleteStructuredData("No JSON-LD recipe data found")
    if not str(data.get("name") or "").strip():
        raise IncompleteStructuredData("Missing recipe name")
    if not data.get("recipeIngredient"):
        raise IncompleteStructuredData("Missing ingredients list")
    if not data.get("recipeInstructions"):
        raise IncompleteStructuredData("Missing instructions")


def parse_duration(iso_str) -> str | None:
    """Renders an ISO 8601 duration (PT30M, PT1H30M) as text."""
    if not iso_str or not isinstance(iso_str, str):
        return None
    match = re.match(r"P(?:\d+D)?T(?:(\d+)H)?(?:(\d+)M)?", iso_str)
    if match:
        hours = int(match.group(1) or 0)
        mins = int(match.group(2) or 0)
        if hours and mins:
            return f"{hours}h {mins}min"
        elif hours:
            return f"{hours}h"
        elif mins:
            return f"{mins} min"
    return None


def _flatten_instructions(raw) -> list[str]:
    if isinstance(raw, str):
        return [s.strip() for s in raw.split("\n") if s.strip()]
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        return []

    steps = []
    for item in raw:
        if isinstance(item, str):
            if item.strip():
                steps.append(item.strip())
        elif isinstance(item, dict):
            # HowToSection groups its steps in itemListElement
            if "itemListElement" in item:
                steps.extend(_flatten_instructions(item["itemListElement"]))
                continue
            text = item.get("text") or item.get("name") or ""
            if str(text).strip():
                steps.append(str(text).strip())
    return steps


def _image_url(raw) -> str | None:
    if isinstance(raw, str):
        return raw or None
    if isinstance(raw, list) and raw:
        return _image_url(raw[0])
    if isinstance(raw, dict):
        return raw.get("url") or None
    return None


def _as_list(raw) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, list):
        return [str(v) for v in raw if v]
    return [str(raw)]


def to_raw_recipe(data: dict) -> RawRecipe:
    """Converts a complete JSON-LD Recipe object into a RawRecipe."""
    servings = data.get("recipeYield")
    if isinstance(servings, list):
        servings = servings[0] if servings else None

    return RawRecipe(
        title=str(data.get("name", "")).strip(),
        ingredients=[str(i).strip() for i in _as_list(data.get("recipeIngredient")) if str(i).strip()],
        instructions=_flatten_instructions(data.get("recipeInstructions")),
        description=str(data.get("description") or ""),
        image_url=_image_url(data.get("image")),
        prep_time=parse_duration(data.get("prepTime")),
        cook_time=parse_duration(data.get("cookTime")),
        total_time=parse_duration(data.get("totalTime")),
        servings=str(servings) if servings else None,
        cuisine=_as_list(data.get("recipeCuisine")),
        category=_as_list(data.get("recipeCategory")),
    )


def structured_recipe_from_html(html: str) -> RawRecipe:
    """Fast path: the page's complete JSON-LD recipe.

    Raises:
        IncompleteStructuredData: If no complete Recipe block exists.
    """
    data = find_json_ld_recipe(html)
    check_completeness(data)
    recipe = to_raw_recipe(data)
    # Ingredient strings and instruction objects may all have been blank
    if not recipe.ingredients:
        raise IncompleteStructuredData("Missing ingredients list")
    if not recipe.instructions:
        raise IncompleteStructuredData("Missing instructions")
    return recipe


# =============================================================================
# HTML FALLBACK HELPERS
# =============================================================================

def extract_text_content(html: str) -> str:
    """Returns the text of the most recipe-like container, else the whole body."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.select(REMOVED_ELEMENTS):
        tag.decompose()

    container = None
    for selector in TEXT_CONTAINER_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            break
    if container is None:
        container = soup.body or soup

    text = container.get_text(separator="\n", strip=True)
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return "\n".join(lines)


def filter_image_candidates(images: list[dict], min_width: int = 200, min_height: int = 150) -> list[str]:
    """Keeps large http(s) images whose URL and alt text look like food photos."""
    selected = []
    for image in images:
        src = str(image.get("src") or "")
        if not src.startswith("http"):
            continue
        if (image.get("width") or 0) < min_width or (image.get("height") or 0) < min_height:
            continue
        haystack = f"{src} {image.get('alt') or ''}".lower()
        if any(keyword in haystack for keyword in IMAGE_EXCLUDE_KEYWORDS):
            continue
        if src not in selected:
            selected.append(src)
    return selected


def extract_pdf_links(html: str, base_url: str) -> list[str]:
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if ".pdf" not in href.lower():
            continue
        absolute = urljoin(base_url, href)
        if absolute not in links:
            links.append(absolute)
    return links


def has_ingredient_keywords(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in INGREDIENT_KEYWORDS)


@dataclass(frozen=True)
class ContentStats:
    text_length: int
    ingredient_count: int
    step_count: int

    @property
    def has_recipe_content(self) -> bool:
        return self.ingredient_count > 0 and self.step_count > 0


def content_stats(text: str) -> ContentStats:
    return ContentStats(
        text_length=len(text),
        ingredient_count=len(_INGREDIENT_UNITS.findall(text)),
        step_count=len(_STEP_WORDS.findall(text)),
    )


def is_retriable_navigation_error(error: Exception) -> bool:
    if isinstance(error, TimeoutError):
        return True
    message = str(error).lower()
    return any(fragment in message for fragment in _RETRIABLE_MESSAGES)


# =============================================================================
# SCRAPER
# =============================================================================

class PageScraper:
    """Scrapes one URL per call; the browser page is closed on every path."""

    def __init__(
        self,
        browser: Browser,
        config: ScraperConfig | None = None,
        navigation_timeout: float = 30.0,
        viewport_height: int = 768,
    ):
        self.browser = browser
        self.config = config or ScraperConfig()
        self.navigation_timeout = navigation_timeout
        self.viewport_height = viewport_height

    async def scrape(self, url: str) -> ScrapedPage:
        """Scrapes a recipe page.

        Raises:
            NavigationFailed: If the page cannot be loaded.
        """
        async with self.browser.page() as page:
            await self.navigate(page, url)
            await page.wait_for_selector(CONTAINER_SELECTORS, self.config.container_wait)

            html = await page.content()
            try:
                raw_recipe = structured_recipe_from_html(html)
            except IncompleteStructuredData as e:
                logger.info(f"JSON-LD incomplete for {url}: {e.reason}, using HTML fallback")
            else:
                images = await self._collect_images(page)
                logger.info(f"JSON-LD recipe found: {raw_recipe.title}")
                return ScrapedPage(
                    url=url,
                    method=STRUCTURED_DATA,
                    structured_recipe=raw_recipe,
                    image_candidates=tuple(images),
                )

            await self.load_content(page)
            html = await page.content()
            text = extract_text_content(html)
            images = await self._collect_images(page)
            pdf_links = extract_pdf_links(html, page.url or url)

            logger.info(
                f"HTML fallback for {url}: {len(text)} characters, "
                f"{len(images)} images, {len(pdf_links)} PDFs"
            )
            return ScrapedPage(
                url=url,
                method=HTML_FALLBACK,
                text_content=text,
                image_candidates=tuple(images),
                pdf_links=tuple(pdf_links),
            )

    async def navigate(self, page: Page, url: str) -> None:
        """Loads a URL, retrying transient failures with linear backoff."""
        attempts = self.config.navigation_attempts
        for attempt in range(1, attempts + 1):
            logger.debug(f"Navigating to {url} (attempt {attempt}/{attempts})")
            try:
                try:
                    await page.navigate(url, "domcontentloaded", self.navigation_timeout)
                except Exception as e:
                    logger.debug(f"domcontentloaded failed ({e}), trying commit")
                    await page.navigate(url, "commit", self.navigation_timeout)
                return
            except Exception as e:
                if is_retriable_navigation_error(e) and attempt < attempts:
                    logger.warning(f"Navigation to {url} failed ({e}), retrying")
                    await asyncio.sleep(self.config.retry_backoff * attempt)
                    continue
                raise NavigationFailed(f"Failed to load {url}: {e}") from e

    async def load_content(self, page: Page) -> None:
        """Scrolls and waits until lazily loaded recipe content is present."""
        cfg = self.config

        await asyncio.sleep(cfg.initial_settle)
        if not await page.wait_for_idle(cfg.initial_idle_timeout):
            logger.debug("Network idle timeout on initial load, continuing")

        target = await page.scroll_into_view(INGREDIENT_SELECTORS, 1.5)
        logger.debug(f"Scrolled to ingredients at {target or 'fallback position'}")
        await page.wait_for_idle(cfg.scroll_idle_timeout)

        if not has_ingredient_keywords(await page.inner_text()):
            logger.debug("No ingredient keywords visible, scrolling further")
            await page.scroll_to(self.viewport_height * 2)
            await asyncio.sleep(cfg.extra_scroll_wait)
            await page.wait_for_idle(cfg.scroll_idle_timeout)

        target = await page.scroll_into_view(INSTRUCTION_SELECTORS, 3.0)
        logger.debug(f"Scrolled to instructions at {target or 'fallback position'}")
        await page.wait_for_idle(cfg.scroll_idle_timeout)

        stats = content_stats(await page.inner_text())
        if not stats.has_recipe_content and stats.text_length < cfg.underloaded_text_length:
            logger.debug(f"Content still loading, waiting {cfg.underloaded_wait}s more")
            await asyncio.sleep(cfg.underloaded_wait)

        logger.debug(
            f"Content loaded: {stats.text_length} chars, {stats.ingredient_count} ingredient units, "
            f"{stats.step_count} step words"
        )

    async def _collect_images(self, page: Page) -> list[str]:
        try:
            images = await page.evaluate(_IMAGES_JS)
        except Exception as e:
            logger.warning(f"Could not read page images: {e}")
            return []
        return filter_image_candidates(
            images or [],
            self.config.min_image_width,
            self.config.min_image_height,
        )
