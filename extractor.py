"""Turns page text into a structured recipe using a text-completion model."""

import json
import logging
import re

from config import GeminiConfig, PromptsConfig
from errors import HarvestError, ModelOutputUnparsable
from llm import TextCompletion
from models import (
    RECIPE_CATEGORIES,
    ExtractedRecipe,
    Ingredient,
    PlainIngredient,
    StructuredIngredient,
)

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

FALLBACK_TITLE = "Extracted Recipe (Manual Review Needed)"
DEFAULT_TITLE = "Extracted Recipe"
MAX_FALLBACK_EXCERPT = 500

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)

# Canonical unit -> accepted spellings, longest spellings first
UNIT_VOCABULARY = {
    "tbsp": ["tablespoons", "tablespoon", "tbsp", "tbs"],
    "tsp": ["teaspoons", "teaspoon", "tsp", "ts"],
    "cup": ["cups", "cup", "c"],
    "oz": ["ounces", "ounce", "oz"],
    "lb": ["pounds", "pound", "lbs", "lb"],
    "kg": ["kilograms", "kilogram", "kg"],
    "g": ["grams", "gram", "g"],
    "ml": ["milliliters", "milliliter", "millilitres", "millilitre", "ml"],
    "l": ["liters", "liter", "litres", "litre", "l"],
    "piece": ["pieces", "piece"],
    "clove": ["cloves", "clove"],
    "slice": ["slices", "slice"],
}

_UNIT_LOOKUP = {
    spelling: canonical
    for canonical, spellings in UNIT_VOCABULARY.items()
    for spelling in spellings
}
_UNIT_PATTERN = re.compile(
    r"(?<![a-z])(" + "|".join(sorted(map(re.escape, _UNIT_LOOKUP), key=len, reverse=True)) + r")(?![a-z])",
    re.IGNORECASE,
)

_UNICODE_FRACTIONS = {
    "½": 0.5, "⅓": 1 / 3, "⅔": 2 / 3, "¼": 0.25, "¾": 0.75,
    "⅕": 0.2, "⅛": 0.125, "⅜": 0.375, "⅝": 0.625, "⅞": 0.875,
}

_MIXED_NUMBER = re.compile(r"(\d+)\s+(\d+)\s*/\s*(\d+)")
_FRACTION = re.compile(r"(\d+)\s*/\s*(\d+)")
_UNICODE_FRACTION = re.compile(r"(\d*)\s*([" + "".join(_UNICODE_FRACTIONS) + r"])")
_DECIMAL = re.compile(r"\d+(?:[.,]\d+)?")


# =============================================================================
# QUANTITY PARSING
# =============================================================================

def parse_quantity(amount: str) -> float | None:
    """Parses the numeric part of an amount string.

    Handles "2", "1.5", "1,5", "1/2", "1 1/2", "½" and "1½".
    Returns None if no number is present.
    """
    if not amount:
        return None

    match = _MIXED_NUMBER.search(amount)
    if match:
        whole, num, den = (int(g) for g in match.groups())
        return whole + num / den if den else float(whole)

    match = _UNICODE_FRACTION.search(amount)
    if match:
        whole = int(match.group(1)) if match.group(1) else 0
        return whole + _UNICODE_FRACTIONS[match.group(2)]

    match = _FRACTION.search(amount)
    if match:
        num, den = int(match.group(1)), int(match.group(2))
        return num / den if den else None

    match = _DECIMAL.search(amount)
    if match:
        return float(match.group(0).replace(",", "."))

    return None


def parse_unit(amount: str) -> str:
    """Returns the canonical unit found in an amount string, or ""."""
    if not amount:
        return ""
    match = _UNIT_PATTERN.search(amount)
    if not match:
        return ""
    return _UNIT_LOOKUP[match.group(1).lower()]


def build_ingredient(raw) -> Ingredient | None:
    """Normalizes one model-provided ingredient into the Ingredient union.

    Strings become PlainIngredient. Mappings with an amount become
    StructuredIngredient; mappings without one become PlainIngredient.
    """
    if isinstance(raw, str):
        text = raw.strip()
        return PlainIngredient(text) if text else None

    if isinstance(raw, dict):
        name = str(raw.get("item") or raw.get("name") or "").strip()
        quantity = str(raw.get("quantity") or raw.get("amount") or "").strip()
        if not name:
            return PlainIngredient(quantity) if quantity else None
        if not quantity:
            return PlainIngredient(name)
        return StructuredIngredient(
            name=name,
            quantity=parse_quantity(quantity),
            unit=parse_unit(quantity),
            display_text=f"{quantity} {name}",
        )

    if raw is None:
        return None
    return PlainIngredient(str(raw))


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def parse_model_json(response_text: str) -> dict:
    """Parses a model response into a JSON object.

    Raises:
        ModelOutputUnparsable: If the text is not a JSON object.
    """
    text = (response_text or "").strip()

    # Remove potential markdown code blocks
    if "```" in text:
        match = _CODE_FENCE.search(text)
        if match:
            text = match.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModelOutputUnparsable(f"Model did not return valid JSON: {e}")

    if not isinstance(data, dict):
        raise ModelOutputUnparsable(f"Model returned JSON {type(data).__name__}, expected an object")
    return data


def schema_problems(data: dict) -> list[str]:
    """Lists the ways a parsed response deviates from the extraction schema."""
    problems = []
    if not isinstance(data.get("title"), str):
        problems.append("title is not a string")

    ingredients = data.get("ingredients")
    if not isinstance(ingredients, list):
        problems.append("ingredients is not a list")
    elif not all(isinstance(i, dict) and {"item", "quantity"} <= i.keys() for i in ingredients):
        problems.append("ingredients are not {item, quantity} objects")

    instructions = data.get("instructions")
    if not isinstance(instructions, list):
        problems.append("instructions is not a list")
    elif not all(isinstance(s, str) for s in instructions):
        problems.append("instructions are not strings")
    return problems


def normalize_category(value) -> str:
    category = str(value or "").strip().lower()
    return category if category in RECIPE_CATEGORIES else "other"


def transform_response(data: dict, image_url: str | None = None) -> ExtractedRecipe:
    """Builds an ExtractedRecipe from a parsed model response."""
    raw_ingredients = data.get("ingredients")
    raw_instructions = data.get("instructions")

    ingredients = []
    if isinstance(raw_ingredients, list):
        for raw in raw_ingredients:
            ingredient = build_ingredient(raw)
            if ingredient is not None:
                ingredients.append(ingredient)

    instructions = []
    if isinstance(raw_instructions, list):
        instructions = [str(step).strip() for step in raw_instructions if str(step or "").strip()]
    elif isinstance(raw_instructions, str) and raw_instructions.strip():
        instructions = [s.strip() for s in raw_instructions.split("\n") if s.strip()]

    model_image = data.get("image_url")
    if not isinstance(model_image, str) or not model_image.startswith("http"):
        model_image = None

    notes = data.get("notes") or ""
    if isinstance(notes, list):
        notes = "\n".join(str(n) for n in notes)

    return ExtractedRecipe(
        title=str(data.get("title") or DEFAULT_TITLE).strip(),
        category=normalize_category(data.get("category")),
        ingredients=ingredients,
        instructions=instructions,
        image_url=image_url or model_image,
        notes=str(notes),
    )


def create_fallback_recipe(text: str, image_url: str | None = None) -> ExtractedRecipe:
    """Recipe returned when the model output could not be parsed twice."""
    excerpt = (text or "")[:MAX_FALLBACK_EXCERPT]
    return ExtractedRecipe(
        title=FALLBACK_TITLE,
        category="other",
        ingredients=[PlainIngredient("Please review the extracted content below")],
        instructions=[
            "Review the raw extracted content",
            "Manually format the recipe as needed",
            f"Raw content: {excerpt}...",
        ],
        image_url=image_url,
        notes="This recipe was extracted but may need manual review for accuracy.",
        needs_review=True,
    )


# =============================================================================
# SERVICE
# =============================================================================

class StructuredExtractionService:
    """Prompts the text model with a strict schema and validates the answer."""

    def __init__(
        self,
        model: TextCompletion,
        prompts: PromptsConfig | None = None,
        settings: GeminiConfig | None = None,
    ):
        self.model = model
        self.prompts = prompts or PromptsConfig()
        self.settings = settings or GeminiConfig()

    async def _complete(self, prompt: str) -> str:
        try:
            return await self.model.complete(
                prompt,
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
            )
        except Exception as e:
            logger.error(f"Text model call failed: {e}")
            raise HarvestError(f"Failed to extract recipe with AI: {e}")

    def _build_prompt(self, cleaned_text: str, image_url: str | None) -> str:
        prompt = self.prompts.extraction
        prompt += f"\n\nTEXT TO EXTRACT FROM:\n{cleaned_text}"
        prompt += f"\n\nRECIPE IMAGE URL: {image_url}" if image_url else "\n\nNO IMAGE PROVIDED"
        prompt += "\n\nJSON Response:"
        return prompt

    async def extract(self, cleaned_text: str, image_url: str | None = None) -> ExtractedRecipe:
        """Extracts a recipe from cleaned text.

        Malformed model output never raises: one corrective re-prompt is
        attempted, then a flagged fallback recipe is returned. Only a failing
        model call itself raises HarvestError.
        """
        response = await self._complete(self._build_prompt(cleaned_text, image_url))
        logger.debug(f"Model response length: {len(response)} characters")

        try:
            data = parse_model_json(response)
        except ModelOutputUnparsable as e:
            logger.warning(f"{e.reason}, requesting a corrected response")
            data = await self._retry(response)
            if data is None:
                logger.warning("Corrected response is still invalid, returning fallback recipe")
                return create_fallback_recipe(cleaned_text, image_url)

        problems = schema_problems(data)
        if problems:
            logger.warning(f"Model response deviates from schema: {', '.join(problems)}")

        recipe = transform_response(data, image_url)
        logger.info(
            f"Structured recipe: \"{recipe.title}\" with {len(recipe.ingredients)} ingredients "
            f"and {len(recipe.instructions)} steps"
        )
        return recipe

    async def _retry(self, previous_response: str) -> dict | None:
        prompt = self.prompts.correction
        prompt += f"\n\nPREVIOUS RESPONSE:\n{previous_response}"
        prompt += "\n\nCorrected JSON:"

        corrected = await self._complete(prompt)
        try:
            return parse_model_json(corrected)
        except ModelOutputUnparsable as e:
            logger.warning(f"Retry failed: {e.reason}")
            return None


# =============================================================================
# FORMATTING
# =============================================================================

def format_recipe_markdown(recipe: ExtractedRecipe) -> str:
    """Formats a recipe as Markdown."""
    lines = [f"# {recipe.title}", ""]

    meta_parts = []
    if recipe.source_url:
        meta_parts.append(f"**Source:** {recipe.source_url}")
    if recipe.category:
        meta_parts.append(f"**Category:** {recipe.category}")
    if recipe.servings:
        meta_parts.append(f"**Servings:** {recipe.servings}")

    times = []
    if recipe.prep_time:
        times.append(f"Prep: {recipe.prep_time}")
    if recipe.cook_time:
        times.append(f"Cook: {recipe.cook_time}")
    if times:
        meta_parts.append(f"**Time:** {' | '.join(times)}")

    if recipe.needs_review:
        meta_parts.append("**Needs manual review**")

    lines.extend(meta_parts)
    lines.append("")

    if recipe.image_url:
        lines.append(f"![{recipe.title}]({recipe.image_url})")
        lines.append("")

    lines.append("## Ingredients")
    lines.append("")
    for ingredient in recipe.ingredients:
        if isinstance(ingredient, StructuredIngredient):
            lines.append(f"- {ingredient.display_text}")
        else:
            lines.append(f"- {ingredient.text}")
    lines.append("")

    lines.append("## Instructions")
    lines.append("")
    for i, step in enumerate(recipe.instructions, 1):
        lines.append(f"{i}. {step}")
    lines.append("")

    if recipe.notes:
        lines.append("## Notes")
        lines.append("")
        lines.append(recipe.notes)
        lines.append("")

    return "\n".join(lines)
