"""Data model shared by every stage of the extraction pipeline."""

import json
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

# Discovery methods
SITEMAP = "sitemap"
HOMEPAGE_DOM = "homepage-dom"
NAVIGATION = "navigation"
STATIC_FALLBACK = "static-fallback"

# Scrape methods
STRUCTURED_DATA = "structured-data"
HTML_FALLBACK = "html-fallback"

# Routing actions
DISCOVER = "discover"
EXTRACT = "extract"

RECIPE_CATEGORIES = ("main", "soup", "dessert", "snack", "drink", "other")

PLACEHOLDER_TITLES = {"", "extracted recipe", "untitled recipe", "unknown recipe"}

MISSING_CONTENT_REASON = "Recipe missing essential content (title, ingredients, or instructions)"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class CandidateUrl:
    """A URL that may point to a recipe page, not yet verified."""
    url: str
    discovered_by: str


@dataclass(frozen=True)
class Classification:
    url_type: str  # homepage, category, recipe, unknown, error
    action: str  # discover or extract
    reason: str


@dataclass
class RawRecipe:
    """Recipe as found in a page's JSON-LD block, before model structuring."""
    title: str
    ingredients: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    description: str = ""
    image_url: str | None = None
    prep_time: str | None = None
    cook_time: str | None = None
    total_time: str | None = None
    servings: str | None = None
    cuisine: list[str] = field(default_factory=list)
    category: list[str] = field(default_factory=list)

    def to_prompt_text(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)


@dataclass(frozen=True)
class ScrapedPage:
    """Result of one Page Scraper invocation."""
    url: str
    method: str
    structured_recipe: RawRecipe | None = None
    text_content: str = ""
    image_candidates: tuple[str, ...] = ()
    pdf_links: tuple[str, ...] = ()


@dataclass(frozen=True)
class PlainIngredient:
    text: str

    @property
    def display_text(self) -> str:
        return self.text


@dataclass(frozen=True)
class StructuredIngredient:
    name: str
    quantity: float | None
    unit: str
    display_text: str


Ingredient = PlainIngredient | StructuredIngredient


@dataclass
class ExtractedRecipe:
    """Complete recipe produced by the structured extraction step."""
    title: str
    category: str = "other"
    ingredients: list[Ingredient] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    image_url: str | None = None
    notes: str = ""
    prep_time: str | None = None
    cook_time: str | None = None
    servings: str | None = None
    needs_review: bool = False
    source_url: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["ingredients"] = [ingredient_to_dict(i) for i in self.ingredients]
        return data


def ingredient_to_dict(ingredient: Ingredient) -> dict:
    if isinstance(ingredient, StructuredIngredient):
        return {"kind": "structured", **asdict(ingredient)}
    return {"kind": "plain", "text": ingredient.text, "display_text": ingredient.text}


def missing_content(recipe: ExtractedRecipe | None) -> str | None:
    """Returns why a recipe fails the acceptance check, or None if it passes."""
    if recipe is None:
        return "No recipe extracted"
    problems = []
    if (recipe.title or "").strip().lower() in PLACEHOLDER_TITLES:
        problems.append("title")
    if not recipe.ingredients:
        problems.append("ingredients")
    if not recipe.instructions:
        problems.append("instructions")
    if problems:
        return MISSING_CONTENT_REASON
    return None


def is_accepted(recipe: ExtractedRecipe | None) -> bool:
    return missing_content(recipe) is None


@dataclass
class BatchProgress:
    """Live counters for a batch run. Mutated only by the orchestrator."""
    total: int = 0
    completed: int = 0
    failed: int = 0
    in_progress: int = 0

    @property
    def done(self) -> bool:
        return self.completed + self.failed == self.total

    def success_rate(self) -> str:
        if self.total == 0:
            return "0%"
        return f"{self.completed / self.total * 100:.1f}%"


@dataclass(frozen=True)
class ResultMetadata:
    url: str
    method: str | None = None
    worker_id: int | None = None
    started_at: str | None = None
    finished_at: str | None = None
    image_count: int = 0
    main_image_selected: bool = False
    text_length: int = 0
    pdf_links: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome for one candidate URL. Never mutated after creation."""
    url: str
    success: bool
    metadata: ResultMetadata
    recipe: ExtractedRecipe | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        data = {"url": self.url, "metadata": asdict(self.metadata)}
        if self.success:
            data["recipe"] = self.recipe.to_dict() if self.recipe else None
        else:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class BatchSummary:
    """Read-only view over a finished batch."""
    total_urls: int
    successful_extractions: int
    failed_extractions: int
    success_rate: str
    average_ingredients: float
    extraction_methods: dict[str, int]
    top_failure_reasons: list[tuple[str, int]]

    @classmethod
    def from_results(cls, total: int, results: list[ExtractionResult]) -> "BatchSummary":
        successes = [r for r in results if r.success]
        failures = [r for r in results if not r.success]

        if successes:
            ingredient_total = sum(len(r.recipe.ingredients) for r in successes if r.recipe)
            average = round(ingredient_total / len(successes), 1)
        else:
            average = 0.0

        methods = Counter(r.metadata.method or "unknown" for r in successes)
        reasons = Counter(r.error or "Unknown extraction error" for r in failures)

        rate = f"{len(successes) / total * 100:.1f}%" if total else "0%"
        return cls(
            total_urls=total,
            successful_extractions=len(successes),
            failed_extractions=len(failures),
            success_rate=rate,
            average_ingredients=average,
            extraction_methods=dict(methods),
            top_failure_reasons=reasons.most_common(3),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["top_failure_reasons"] = [
            {"reason": reason, "count": count} for reason, count in self.top_failure_reasons
        ]
        return data


def failed_result(url: str, error: str, worker_id: int | None = None, started_at: str | None = None) -> ExtractionResult:
    metadata = ResultMetadata(
        url=url,
        worker_id=worker_id,
        started_at=started_at or utc_now(),
        finished_at=utc_now(),
    )
    return ExtractionResult(url=url, success=False, metadata=metadata, error=error)
