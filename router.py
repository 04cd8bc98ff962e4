"""Single entry point: classify a URL, then discover-and-batch or extract directly."""

import asyncio
import logging
from dataclasses import asdict, dataclass

from batch import BatchOrchestrator, BatchOutcome
from browser import Browser
from config import Config
from discovery import DiscoveryEngine
from errors import DiscoveryExhausted
from extractor import StructuredExtractionService
from image_selector import ImageSelectionService
from llm import TextCompletion, VisionCompletion
from media_handler import is_pdf_url
from models import DISCOVER, Classification, ExtractionResult, ResultMetadata, failed_result, utc_now
from pdf_extractor import PdfRecipeExtractor
from pipeline import RecipePipeline
from scraper import PageScraper
from url_classifier import UrlClassifier, analyze_url

logger = logging.getLogger(__name__)

DISCOVERY_ROUTE = "discovery"
SINGLE_ROUTE = "single"
PDF_ROUTE = "pdf"

NO_URLS_FOUND = "No recipe URLs found on this page"
NO_RECIPES_EXTRACTED = "Failed to extract any recipes from discovered URLs"


@dataclass
class RouteOutcome:
    """What `extract_from_url` returns, for every route."""
    success: bool
    route: str
    classification: Classification
    result: ExtractionResult | None = None
    batch: BatchOutcome | None = None
    total_discovered: int = 0
    attempted: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "route": self.route,
            "classification": asdict(self.classification),
        }
        if self.route == DISCOVERY_ROUTE:
            data["total_discovered"] = self.total_discovered
            data["attempted"] = self.attempted
            if self.batch:
                batch = self.batch.to_dict()
                data.update(summary=batch["summary"], results=batch["results"], errors=batch["errors"])
        elif self.result:
            data["metadata"] = asdict(self.result.metadata)
            if self.result.success and self.result.recipe:
                data["recipe"] = self.result.recipe.to_dict()
        if self.error:
            data["error"] = self.error
        return data


class SmartRouter:
    def __init__(
        self,
        classifier: UrlClassifier,
        discovery: DiscoveryEngine,
        batch: BatchOrchestrator,
        pipeline: RecipePipeline,
        pdf: PdfRecipeExtractor | None = None,
    ):
        self.classifier = classifier
        self.discovery = discovery
        self.batch = batch
        self.pipeline = pipeline
        self.pdf = pdf

    @classmethod
    def from_config(
        cls,
        config: Config,
        browser: Browser,
        text_model: TextCompletion,
        vision_model: VisionCompletion,
    ) -> "SmartRouter":
        """Wires every component onto one started browser and the model services."""
        navigation_timeout = config.browser.navigation_timeout
        scraper = PageScraper(
            browser,
            config.scraper,
            navigation_timeout=navigation_timeout,
            viewport_height=config.browser.viewport_height,
        )
        pipeline = RecipePipeline(
            scraper,
            StructuredExtractionService(text_model, config.prompts, config.gemini),
            ImageSelectionService(vision_model, config.prompts),
            page_timeout=config.batch.page_timeout,
        )
        return cls(
            classifier=UrlClassifier(config.classifier),
            discovery=DiscoveryEngine(browser, config.discovery, navigation_timeout=navigation_timeout),
            batch=BatchOrchestrator(pipeline.extract_single, config.batch),
            pipeline=pipeline,
            pdf=PdfRecipeExtractor(
                browser, vision_model, config.pdf, config.prompts, navigation_timeout=navigation_timeout
            ),
        )

    async def extract_from_url(
        self,
        url: str,
        max_recipes: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RouteOutcome:
        """Routes a URL to PDF extraction, discovery plus batch, or single-page extraction."""
        classification = self.classifier.classify(url)
        logger.info(f"{url} classified as {classification.url_type}: {classification.reason}")

        if self.pdf is not None and is_pdf_url(url):
            return await self._extract_pdf(url, classification)

        if classification.action == DISCOVER or self.classifier.forces_discovery(url):
            return await self._discover_and_extract(url, classification, max_recipes, cancel_event)

        logger.info(f"Routing {url} to single-page extraction")
        result = await self.pipeline.extract_single(url)
        return RouteOutcome(
            success=result.success,
            route=SINGLE_ROUTE,
            classification=classification,
            result=result,
            error=result.error,
        )

    async def _discover_and_extract(
        self,
        url: str,
        classification: Classification,
        max_recipes: int | None,
        cancel_event: asyncio.Event | None,
    ) -> RouteOutcome:
        logger.info(f"Routing {url} to discovery")
        try:
            candidates = await self.discovery.discover(url)
        except DiscoveryExhausted as e:
            logger.error(f"Discovery exhausted for {url}: {e.reason}")
            return RouteOutcome(False, DISCOVERY_ROUTE, classification, error=e.reason)

        if not candidates:
            return RouteOutcome(False, DISCOVERY_ROUTE, classification, error=NO_URLS_FOUND)

        outcome = await self.batch.run_batch(
            candidates, max_recipes=max_recipes, cancel_event=cancel_event
        )
        success = outcome.summary.successful_extractions > 0
        return RouteOutcome(
            success=success,
            route=DISCOVERY_ROUTE,
            classification=classification,
            batch=outcome,
            total_discovered=len(candidates),
            attempted=outcome.summary.total_urls,
            error=None if success else NO_RECIPES_EXTRACTED,
        )

    async def _extract_pdf(self, url: str, classification: Classification) -> RouteOutcome:
        logger.info(f"Routing {url} to PDF extraction")
        started_at = utc_now()
        pdf_outcome = await self.pdf.extract_from_pdf(url)
        for line in pdf_outcome.logs:
            logger.debug(f"PDF {line}")

        if pdf_outcome.success:
            pdf_outcome.recipe.source_url = url
            result = ExtractionResult(
                url=url,
                success=True,
                metadata=ResultMetadata(
                    url=url, method=PDF_ROUTE, started_at=started_at, finished_at=utc_now()
                ),
                recipe=pdf_outcome.recipe,
            )
        else:
            result = failed_result(url, pdf_outcome.error, started_at=started_at)
        return RouteOutcome(result.success, PDF_ROUTE, classification, result=result, error=result.error)

    async def extract_from_pdf_buffer(self, data: bytes) -> dict:
        if self.pdf is None:
            return {"success": False, "error": "PDF extraction is not configured"}
        return await self.pdf.extract_from_pdf_buffer(data)

    def analyze_url(self, url: str) -> dict:
        """Diagnostics: how a URL would be routed and why."""
        classification = self.classifier.classify(url)
        return {
            "url": url,
            "classification": asdict(classification),
            "forces_discovery": self.classifier.forces_discovery(url),
            "structure": analyze_url(url),
        }
