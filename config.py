"""Configuration management for the recipe harvester."""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"
    vision_model: str = "gemini-2.0-flash"
    temperature: float = 0.0
    max_tokens: int = 2000


@dataclass
class BrowserConfig:
    headless: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    viewport_width: int = 1366
    viewport_height: int = 768
    navigation_timeout: float = 30.0  # Seconds
    extra_headers: dict[str, str] = field(default_factory=lambda: {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
    })


@dataclass
class ScraperConfig:
    navigation_attempts: int = 3
    retry_backoff: float = 1.5  # Seconds, multiplied by the attempt number
    container_wait: float = 2.5
    initial_settle: float = 2.0
    initial_idle_timeout: float = 10.0
    scroll_idle_timeout: float = 5.0
    extra_scroll_wait: float = 2.0
    underloaded_wait: float = 5.0
    underloaded_text_length: int = 1000
    min_image_width: int = 200
    min_image_height: int = 150


@dataclass
class DiscoveryConfig:
    sitemap_paths: list[str] = field(default_factory=lambda: [
        "/sitemap.xml",
        "/sitemap_index.xml",
        "/recipe-sitemap.xml",
        "/wp-sitemap-posts-post-1.xml",
    ])
    http_timeout: float = 15.0
    initial_settle: float = 3.0
    scroll_settle: float = 2.0


@dataclass
class BatchConfig:
    max_workers: int = 6
    default_max_recipes: int = 10
    page_timeout: float = 45.0  # Seconds per single-page extraction
    politeness_delay_min: float = 1.0
    politeness_delay_max: float = 2.0


@dataclass
class PdfConfig:
    page_selector: str = "canvas"
    sample_every: int = 5
    scroll_steps: int = 20
    scroll_pause: float = 0.4
    min_region_size: int = 100
    render_timeout: float = 8.0


# Ordered rule tables for URL classification. Homepage rules are checked
# first, then category rules, then recipe rules.
DEFAULT_HOMEPAGE_PATTERNS = [
    r"^https?://[^/]+/?$",
    r"^https?://[^/]+/index\.html?$",
    r"^https?://[^/]+/home/?$",
    r"^https?://[^/]+/main/?$",
    r"^https?://[^/]+/default/?$",
]

DEFAULT_CATEGORY_PATTERNS = [
    r"/recipes/?$",
    r"/recipe-category/",
    r"/categor(?:y|ies)/",
    r"/cuisine/",
    r"/diet/",
    r"/course/",
    r"/ingredient/",
    r"/tags?/",
    r"/collection/",
    r"/search/",
    r"/browse/",
    r"/recipes/popular/?$",
]

DEFAULT_RECIPE_PATTERNS = [
    r"/recipe/",
    r"/recipes/",
    r"/cooking/",
    r"/food/",
    r"/dish/",
    r"/meal/",
    r"/[^/]+-recipe/?$",
    r"/[^/]+-cookies?/?$",
    r"/[^/]+-(?:cake|bread|soup|salad|pasta|pizza)/?$",
    r"/[^/]+-(?:chicken|beef|fish)/?$",
    r"/[^/]+-(?:dessert|breakfast|lunch|dinner|appetizer)/?$",
    r"/[^/]+-(?:smoothie|drink|bake|grill|roast)/?$",
]

DEFAULT_DISCOVERY_OVERRIDE_PATTERNS = [
    r"/recipes/popular/?$",
]


@dataclass
class ClassifierConfig:
    homepage_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_HOMEPAGE_PATTERNS))
    category_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_CATEGORY_PATTERNS))
    recipe_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_RECIPE_PATTERNS))
    discovery_overrides: list[str] = field(
        default_factory=lambda: list(DEFAULT_DISCOVERY_OVERRIDE_PATTERNS)
    )


# Default prompt for turning page text into a structured recipe
DEFAULT_EXTRACTION_PROMPT = """You are a recipe extraction specialist. Extract recipe information from the provided text and format it as JSON according to this EXACT schema:

{
  "title": "string",
  "category": "main|soup|dessert|snack|drink|other",
  "ingredients": [{"item": "string", "quantity": "string"}],
  "instructions": ["step 1", "step 2", "..."],
  "image_url": "string",
  "notes": "string"
}

EXTRACTION RULES:
1. Extract the recipe title from the text
2. Categorize as: main, soup, dessert, snack, drink, or other
3. Extract ingredients with proper quantities (e.g., "2 cups", "1 tbsp")
4. Break instructions into clear steps, in order
5. Use the provided image URL if available, otherwise set to null
6. Include any cooking tips or notes in the notes field

IMPORTANT:
- Return ONLY valid JSON, no additional text or explanation
- Ensure all fields are present in the response
- For quantities, be specific (e.g., "2 cups", "1 tablespoon", "1/2 teaspoon")"""

DEFAULT_CORRECTION_PROMPT = """The previous response was not valid JSON. Fix the JSON syntax errors and make sure it follows this exact schema:

{
  "title": "string",
  "category": "main|soup|dessert|snack|drink|other",
  "ingredients": [{"item": "string", "quantity": "string"}],
  "instructions": ["step 1", "step 2", "..."],
  "image_url": "string",
  "notes": "string"
}

Return ONLY the corrected JSON."""

DEFAULT_IMAGE_SELECTION_PROMPT = """You are analyzing images from a recipe webpage to identify the main recipe image.

TASK: Identify which URL points to the main recipe image showing the finished dish.

CRITERIA:
- Look for images that show completed, prepared food/dishes
- Ignore logos, advertisements, social media icons, author photos, or generic stock photos
- Ignore small thumbnails, banners, or UI elements

RESPONSE FORMAT:
Return ONLY the complete URL of the best main recipe image.
If no suitable recipe image is found, return exactly: none"""

DEFAULT_PDF_PAGE_PROMPT = """Extract a recipe from this page image if present.
Return ONLY JSON with keys: "title" (string), "ingredients" (string[]), "instructions" (string[]).
If the page contains no recipe, return exactly {"title":"","ingredients":[],"instructions":[]}"""


@dataclass
class PromptsConfig:
    extraction: str = DEFAULT_EXTRACTION_PROMPT
    correction: str = DEFAULT_CORRECTION_PROMPT
    image_selection: str = DEFAULT_IMAGE_SELECTION_PROMPT
    pdf_page: str = DEFAULT_PDF_PAGE_PROMPT


@dataclass
class Config:
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    pdf: PdfConfig = field(default_factory=PdfConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)


def _expand_env(value):
    """Replaces ${ENV_VAR} with environment variables."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, "")
    return value


def _coerce(value, default):
    """Converts a YAML or environment value to the type of the field default.

    Raises:
        ValueError: If the value cannot be converted
    """
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "yes", "on", "1"):
            return True
        if isinstance(value, str) and value.strip().lower() in ("false", "no", "off", "0"):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    if isinstance(default, int):
        if isinstance(value, bool):
            raise ValueError(f"not an integer: {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(default, float):
        if isinstance(value, bool):
            raise ValueError(f"not a number: {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"not a number: {value!r}")
    if isinstance(default, str):
        if isinstance(value, (dict, list)):
            raise ValueError(f"not a string: {value!r}")
        return "" if value is None else str(value)
    if isinstance(default, (list, dict)) and not isinstance(value, type(default)):
        raise ValueError(f"expected a {type(default).__name__}, got {value!r}")
    return value


def _build_section(cls, raw: dict | None, section: str):
    """Creates a config dataclass from a YAML mapping, ignoring unknown keys."""
    if not raw:
        return cls()
    if not isinstance(raw, dict):
        logger.warning(f"Config section '{section}' is not a mapping, using defaults")
        return cls()

    defaults = cls()
    known = {f.name for f in fields(cls)}
    values = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning(f"Unknown config key '{section}.{key}' ignored")
            continue
        try:
            values[key] = _coerce(_expand_env(value), getattr(defaults, key))
        except ValueError as e:
            logger.warning(f"Invalid config value '{section}.{key}' ({e}), using default")
    return cls(**values)


def _validate(config: Config) -> Config:
    """Resets out-of-range values to their defaults."""
    batch = config.batch
    if batch.max_workers < 1:
        logger.warning(f"Invalid batch.max_workers {batch.max_workers}, defaulting to 6")
        batch.max_workers = 6
    if batch.default_max_recipes < 1:
        logger.warning(f"Invalid batch.default_max_recipes {batch.default_max_recipes}, defaulting to 10")
        batch.default_max_recipes = 10
    if batch.page_timeout <= 0:
        logger.warning(f"Invalid batch.page_timeout {batch.page_timeout}, defaulting to 45")
        batch.page_timeout = 45.0
    if batch.politeness_delay_min < 0 or batch.politeness_delay_min > batch.politeness_delay_max:
        logger.warning(
            f"Invalid politeness delay range {batch.politeness_delay_min}-{batch.politeness_delay_max}, "
            "defaulting to 1-2s"
        )
        batch.politeness_delay_min, batch.politeness_delay_max = 1.0, 2.0

    if config.scraper.navigation_attempts < 1:
        logger.warning("Invalid scraper.navigation_attempts, defaulting to 3")
        config.scraper.navigation_attempts = 3

    if config.pdf.sample_every < 1:
        logger.warning(f"Invalid pdf.sample_every {config.pdf.sample_every}, defaulting to 5")
        config.pdf.sample_every = 5

    if not config.gemini.api_key:
        config.gemini.api_key = os.environ.get("GEMINI_API_KEY", "")

    return config


def load_config(config_path: Path | None = None) -> Config:
    """Loads configuration from YAML file."""
    if config_path is None:
        config_path = Path(__file__).parent / "config.yaml"

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    config = Config(
        gemini=_build_section(GeminiConfig, raw.get("gemini"), "gemini"),
        browser=_build_section(BrowserConfig, raw.get("browser"), "browser"),
        scraper=_build_section(ScraperConfig, raw.get("scraper"), "scraper"),
        discovery=_build_section(DiscoveryConfig, raw.get("discovery"), "discovery"),
        batch=_build_section(BatchConfig, raw.get("batch"), "batch"),
        pdf=_build_section(PdfConfig, raw.get("pdf"), "pdf"),
        classifier=_build_section(ClassifierConfig, raw.get("classifier"), "classifier"),
        prompts=_build_section(PromptsConfig, raw.get("prompts"), "prompts"),
    )
    return _validate(config)
