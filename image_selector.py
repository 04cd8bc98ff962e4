"""Picks the main finished-dish photo among a page's image candidates."""

import logging

from config import PromptsConfig
from llm import VisionCompletion

logger = logging.getLogger(__name__)

NO_IMAGE_ANSWER = "none"


def match_candidate(response: str, image_urls: list[str]) -> str | None:
    """Maps a model answer back onto one of the candidate URLs."""
    answer = response.strip().strip("\"'`<>").strip()
    if not answer or answer.lower() == NO_IMAGE_ANSWER:
        return None
    if answer in image_urls:
        return answer
    for url in image_urls:
        if url in answer:
            return url
    # Partial answers must be long enough to identify a single file
    if len(answer) >= 10:
        for url in image_urls:
            if answer in url:
                return url
    return None


class ImageSelectionService:
    """Asks the vision model for one candidate URL. Never raises."""

    def __init__(self, model: VisionCompletion, prompts: PromptsConfig | None = None):
        self.model = model
        self.prompts = prompts or PromptsConfig()

    async def select_main(self, image_urls: list[str]) -> str | None:
        if not image_urls:
            logger.debug("No images provided for analysis")
            return None

        logger.info(f"Analyzing {len(image_urls)} images to find main recipe image")
        listing = "\n".join(f"{i}. {url}" for i, url in enumerate(image_urls, 1))
        prompt = f"{self.prompts.image_selection}\n\nImage URLs to analyze:\n{listing}"

        try:
            response = await self.model.complete_with_images(prompt, [])
        except Exception as e:
            logger.warning(f"Image selection failed: {e}")
            return None

        selected = match_candidate(response, image_urls)
        if selected:
            logger.info(f"Main image selected: {selected}")
        else:
            logger.info(f"No candidate matched the model answer {response[:120]!r}")
        return selected
