"""Classifies URLs into homepage, category, recipe or unknown pages."""

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from config import ClassifierConfig
from models import DISCOVER, EXTRACT, Classification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationRule:
    pattern: re.Pattern
    url_type: str
    action: str
    reason: str


def build_rules(config: ClassifierConfig) -> list[ClassificationRule]:
    """Compiles the configured pattern tables into one ordered rule list."""
    tables = [
        (config.homepage_patterns, "homepage", DISCOVER, "URL matches homepage patterns"),
        (config.category_patterns, "category", DISCOVER,
         "URL appears to be a recipe category or listing page"),
        (config.recipe_patterns, "recipe", EXTRACT, "URL matches recipe page patterns"),
    ]
    rules = []
    for patterns, url_type, action, reason in tables:
        for pattern in patterns:
            rules.append(ClassificationRule(re.compile(pattern, re.IGNORECASE), url_type, action, reason))
    return rules


class UrlClassifier:
    """Applies ordered pattern rules to a URL. Never raises."""

    def __init__(self, config: ClassifierConfig | None = None):
        config = config or ClassifierConfig()
        self.rules = build_rules(config)
        self.overrides = [re.compile(p, re.IGNORECASE) for p in config.discovery_overrides]

    def classify(self, url: str) -> Classification:
        try:
            clean_url = url.strip()
            for rule in self.rules:
                if rule.pattern.search(clean_url):
                    logger.debug(f"{clean_url} -> {rule.url_type} ({rule.pattern.pattern})")
                    return Classification(rule.url_type, rule.action, rule.reason)

            return Classification(
                "unknown",
                EXTRACT,
                "URL doesn't match known patterns, attempting direct extraction",
            )
        except Exception as e:
            logger.warning(f"URL classification failed for {url!r}: {e}")
            return Classification("error", EXTRACT, "Error analyzing URL, defaulting to extraction")

    def forces_discovery(self, url: str) -> bool:
        """True for listing URLs that must go through discovery regardless of class."""
        try:
            return any(p.search(url.strip()) for p in self.overrides)
        except Exception:
            return False


def analyze_url(url: str) -> dict | None:
    """Breaks a URL into structural parts for diagnostics."""
    try:
        parsed = urlparse(url.strip())
    except (ValueError, AttributeError):
        return None
    if not parsed.scheme or not parsed.netloc:
        return None

    path = parsed.path
    return {
        "domain": parsed.hostname,
        "path": path,
        "has_trailing_slash": path.endswith("/"),
        "path_segments": [seg for seg in path.split("/") if seg],
        "is_root": path in ("", "/"),
        "has_file_extension": bool(re.search(r"\.[a-zA-Z]{2,4}$", path)),
    }
