"""Extracts a recipe from a rendered PDF by sampling page screenshots."""

import asyncio
import json
import logging
from dataclasses import dataclass, field

from browser import Browser, Page
from config import PdfConfig, PromptsConfig
from errors import ModelOutputUnparsable
from extractor import build_ingredient, parse_model_json
from llm import VisionCompletion
from media_handler import write_temp_pdf
from models import ExtractedRecipe, is_accepted

logger = logging.getLogger(__name__)

NO_RECIPE_ON_PAGES = "No recipe detected on rendered pages"
NO_RECIPE_IN_PDF = "No recipe detected in rendered PDF pages"
NO_RENDERED_PAGES = "No rendered PDF pages found"


def sample_indices(total: int, every: int = 5) -> list[int]:
    """Page indices to inspect: the first page and every `every`-th after it."""
    if total <= 0:
        return []
    return list(range(0, total, max(every, 1)))


def parse_page_response(response: str) -> ExtractedRecipe | None:
    """Builds a recipe from one page answer, or None for the empty sentinel or junk."""
    try:
        data = parse_model_json(response)
    except ModelOutputUnparsable:
        return None

    title = str(data.get("title") or "").strip()
    raw_ingredients = data.get("ingredients") if isinstance(data.get("ingredients"), list) else []
    raw_instructions = data.get("instructions") if isinstance(data.get("instructions"), list) else []

    ingredients = [i for i in (build_ingredient(raw) for raw in raw_ingredients) if i is not None]
    instructions = [str(s).strip() for s in raw_instructions if str(s or "").strip()]

    recipe = ExtractedRecipe(title=title, ingredients=ingredients, instructions=instructions)
    return recipe if is_accepted(recipe) else None


@dataclass
class PdfOutcome:
    success: bool
    recipe: ExtractedRecipe | None = None
    error: str | None = None
    page_index: int | None = None
    logs: list[str] = field(default_factory=list)


class PdfRecipeExtractor:
    """Opens a PDF in the browser and asks the vision model about sampled pages."""

    def __init__(
        self,
        browser: Browser,
        vision: VisionCompletion,
        config: PdfConfig | None = None,
        prompts: PromptsConfig | None = None,
        navigation_timeout: float = 30.0,
    ):
        self.browser = browser
        self.vision = vision
        self.config = config or PdfConfig()
        self.prompts = prompts or PromptsConfig()
        self.navigation_timeout = navigation_timeout

    async def extract_from_pdf(self, source: str | bytes) -> PdfOutcome:
        """Extracts from a PDF URL or from raw PDF bytes. Never raises."""
        if isinstance(source, (bytes, bytearray)):
            path = write_temp_pdf(bytes(source))
            try:
                return await self._extract(path.as_uri())
            finally:
                path.unlink(missing_ok=True)
        return await self._extract(source)

    async def extract_from_pdf_buffer(self, data: bytes) -> dict:
        outcome = await self.extract_from_pdf(data)
        if outcome.success and outcome.recipe:
            recipe = outcome.recipe.to_dict()
            return {
                "success": True,
                "recipe": recipe,
                "text_length": len(json.dumps(recipe, ensure_ascii=False)),
            }
        error = NO_RECIPE_IN_PDF if outcome.error in (NO_RECIPE_ON_PAGES, NO_RENDERED_PAGES) else outcome.error
        return {"success": False, "error": error}

    async def _extract(self, url: str) -> PdfOutcome:
        logs: list[str] = []
        try:
            async with self.browser.page() as page:
                await page.navigate(url, "domcontentloaded", self.navigation_timeout)
                if not await page.wait_for_selector(self.config.page_selector, self.config.render_timeout):
                    logs.append("no rendered page surface appeared")
                    return PdfOutcome(False, error=NO_RENDERED_PAGES, logs=logs)

                await self._render_all_pages(page)
                return await self._scan_pages(page, logs)
        except Exception as e:
            logger.error(f"Rendered PDF extraction failed for {url}: {e}")
            logs.append(f"extraction aborted: {e}")
            return PdfOutcome(False, error=f"Rendered PDF extraction failed: {e}", logs=logs)

    async def _render_all_pages(self, page: Page) -> None:
        """Scrolls through the document so lazily rendered pages get drawn."""
        height = await page.evaluate("() => window.innerHeight") or 800
        for _ in range(self.config.scroll_steps):
            await page.scroll_by(height)
            await asyncio.sleep(self.config.scroll_pause)
        await page.scroll_to(0)

    async def _scan_pages(self, page: Page, logs: list[str]) -> PdfOutcome:
        selector = self.config.page_selector
        boxes = await page.element_boxes(selector)
        indices = sample_indices(len(boxes), self.config.sample_every)
        logger.info(f"PDF has {len(boxes)} rendered pages, sampling {indices}")

        for index in indices:
            box = boxes[index]
            minimum = self.config.min_region_size
            if not box or box.get("width", 0) < minimum or box.get("height", 0) < minimum:
                logs.append(f"page {index}: skipped, render region too small")
                continue

            try:
                screenshot = await page.screenshot_element(selector, index)
                response = await self.vision.complete_with_images(self.prompts.pdf_page, [screenshot])
            except Exception as e:
                logs.append(f"page {index}: failed ({e})")
                logger.warning(f"PDF page {index} failed: {e}")
                continue

            recipe = parse_page_response(response)
            if recipe is None:
                logs.append(f"page {index}: no recipe")
                logger.debug(f"PDF page {index}: no recipe")
                continue

            logs.append(f"page {index}: recipe \"{recipe.title}\"")
            logger.info(f"Recipe found on PDF page {index}: {recipe.title}")
            return PdfOutcome(True, recipe=recipe, page_index=index, logs=logs)

        return PdfOutcome(False, error=NO_RECIPE_ON_PAGES, logs=logs)
