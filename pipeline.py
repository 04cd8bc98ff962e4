"""Single-page extraction: scrape, structure, select an image, check acceptance."""

import asyncio
import logging

import text_normalizer
from errors import HarvestError, PageTimeout, RecipeRejected
from extractor import StructuredExtractionService
from image_selector import ImageSelectionService
from models import (
    STRUCTURED_DATA,
    ExtractedRecipe,
    ExtractionResult,
    ResultMetadata,
    ScrapedPage,
    failed_result,
    missing_content,
    utc_now,
)
from scraper import PageScraper

logger = logging.getLogger(__name__)


class RecipePipeline:
    """Turns one URL into one ExtractionResult. Never raises for per-URL errors."""

    def __init__(
        self,
        scraper: PageScraper,
        extraction: StructuredExtractionService,
        images: ImageSelectionService,
        page_timeout: float = 45.0,
    ):
        self.scraper = scraper
        self.extraction = extraction
        self.images = images
        self.page_timeout = page_timeout

    async def extract_single(self, url: str, worker_id: int | None = None) -> ExtractionResult:
        """Runs the whole single-page chain under the per-page timeout."""
        started_at = utc_now()
        try:
            page, recipe, image_selected = await asyncio.wait_for(
                self._run(url), timeout=self.page_timeout
            )
        except asyncio.TimeoutError:
            error = PageTimeout(url, self.page_timeout)
            logger.warning(f"{url}: {error.reason}")
            return failed_result(url, error.reason, worker_id, started_at)
        except HarvestError as e:
            logger.warning(f"{url}: {e.reason}")
            return failed_result(url, e.reason, worker_id, started_at)
        except Exception as e:
            logger.exception(f"Unexpected error extracting {url}")
            return failed_result(url, f"Extraction failed: {e}", worker_id, started_at)

        metadata = ResultMetadata(
            url=url,
            method=page.method,
            worker_id=worker_id,
            started_at=started_at,
            finished_at=utc_now(),
            image_count=len(page.image_candidates),
            main_image_selected=image_selected,
            text_length=len(page.text_content),
            pdf_links=page.pdf_links,
        )

        logger.info(f"{url}: extracted \"{recipe.title}\" via {page.method}")
        return ExtractionResult(url=url, success=True, metadata=metadata, recipe=recipe)

    async def _run(self, url: str) -> tuple[ScrapedPage, ExtractedRecipe, bool]:
        page = await self.scraper.scrape(url)
        if page.method == STRUCTURED_DATA:
            recipe, image_selected = await self._from_structured(page)
        else:
            recipe, image_selected = await self._from_text(page)
        recipe.source_url = url

        rejection = missing_content(recipe)
        if rejection:
            raise RecipeRejected(rejection)
        return page, recipe, image_selected

    async def _from_structured(self, page: ScrapedPage) -> tuple[ExtractedRecipe, bool]:
        raw = page.structured_recipe
        image_url = raw.image_url
        selected = False
        if not image_url:
            image_url = await self.images.select_main(list(page.image_candidates))
            selected = image_url is not None

        recipe = await self.extraction.extract(raw.to_prompt_text(), image_url)
        recipe.prep_time = recipe.prep_time or raw.prep_time
        recipe.cook_time = recipe.cook_time or raw.cook_time
        recipe.servings = recipe.servings or raw.servings
        if image_url:
            recipe.image_url = image_url
        return recipe, selected

    async def _from_text(self, page: ScrapedPage) -> tuple[ExtractedRecipe, bool]:
        cleaned = text_normalizer.clean(page.text_content)
        logger.debug(f"Cleaned text: {len(page.text_content)} -> {len(cleaned)} characters")

        recipe = await self.extraction.extract(cleaned)
        image_url = await self.images.select_main(list(page.image_candidates))
        if image_url:
            recipe.image_url = image_url
        return recipe, image_url is not None
