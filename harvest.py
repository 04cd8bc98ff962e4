#!/usr/bin/env python3
"""Command line entry point: extract recipes from a URL or a PDF file."""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from browser import PlaywrightBrowser
from config import Config, load_config
from extractor import format_recipe_markdown
from llm import GeminiClient
from media_handler import is_pdf_file, is_url, read_pdf_file
from router import RouteOutcome, SmartRouter

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def print_usage() -> None:
    print("Usage:")
    print("  python harvest.py <url> [max_recipes]")
    print("  python harvest.py <file.pdf>")
    print()
    print("Examples:")
    print("  python harvest.py https://example.com/recipe/lemon-cake")
    print("  python harvest.py https://example.com/ 5")
    print("  python harvest.py cookbook.pdf")


def print_outcome(outcome: RouteOutcome) -> None:
    print(f"Route: {outcome.route} ({outcome.classification.url_type})")
    print()

    if outcome.batch:
        print("=== Summary ===")
        print(json.dumps(outcome.batch.summary.to_dict(), indent=2))
        print()
        for result in outcome.batch.successes:
            print(format_recipe_markdown(result.recipe))
        for result in outcome.batch.failures:
            print(f"FAILED {result.url}: {result.error}")
    elif outcome.result and outcome.result.success:
        print(format_recipe_markdown(outcome.result.recipe))

    if outcome.error:
        print(f"Error: {outcome.error}")


async def run(config: Config, arg: str, max_recipes: int | None) -> int:
    model = GeminiClient(config.gemini)

    async with PlaywrightBrowser(config.browser) as browser:
        router = SmartRouter.from_config(config, browser, model, model)

        if is_url(arg):
            print(f"Processing URL: {arg}")
            print()
            outcome = await router.extract_from_url(arg, max_recipes=max_recipes)
            print_outcome(outcome)
            return 0 if outcome.success else 1

        file_path = Path(arg)
        if not file_path.exists():
            print(f"File not found: {file_path}")
            return 1
        if not is_pdf_file(file_path):
            print(f"Unsupported file type: {file_path.suffix}")
            return 1

        print(f"Processing: {file_path}")
        print()
        result = await router.extract_from_pdf_buffer(read_pdf_file(file_path))
        if result["success"]:
            print(f"Recipe JSON length: {result['text_length']}")
            print(json.dumps(result["recipe"], indent=2, ensure_ascii=False))
            return 0
        print(f"Error: {result['error']}")
        return 1


def main():
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(1)

    setup_logging()
    arg = sys.argv[1]

    max_recipes = None
    if len(sys.argv) > 2:
        try:
            max_recipes = int(sys.argv[2])
        except ValueError:
            print(f"max_recipes must be a number, got {sys.argv[2]!r}")
            sys.exit(1)

    try:
        config = load_config()
    except FileNotFoundError:
        logger.error("config.yaml not found! Copy config.yaml.example to config.yaml")
        sys.exit(1)

    if not config.gemini.api_key:
        logger.error("No Gemini API key configured!")
        sys.exit(1)

    try:
        exit_code = asyncio.run(run(config, arg, max_recipes))
    except ValueError as e:
        logger.error(str(e))
        exit_code = 1
    except Exception as e:
        # Browser launch failures end up here
        logger.exception(f"Extraction failed: {e}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
