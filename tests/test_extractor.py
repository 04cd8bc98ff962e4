import json

import pytest

from conftest import StubTextModel, recipe_json
from errors import HarvestError, ModelOutputUnparsable
from extractor import (
    FALLBACK_TITLE,
    StructuredExtractionService,
    build_ingredient,
    format_recipe_markdown,
    parse_model_json,
    parse_quantity,
    parse_unit,
    schema_problems,
)
from models import ExtractedRecipe, PlainIngredient, StructuredIngredient


# =============================================================================
# INGREDIENT PARSING
# =============================================================================

@pytest.mark.parametrize("amount,expected", [
    ("2 cups", 2.0),
    ("1.5 l", 1.5),
    ("1,5 l", 1.5),
    ("1/2 tsp", 0.5),
    ("1 1/2 cups", 1.5),
    ("½ cup", 0.5),
    ("1½ cups", 1.5),
    ("a pinch", None),
    ("", None),
])
def test_parse_quantity(amount, expected):
    if expected is None:
        assert parse_quantity(amount) is None
    else:
        assert parse_quantity(amount) == pytest.approx(expected)


@pytest.mark.parametrize("amount,unit", [
    ("2 cups", "cup"),
    ("1 Tablespoon", "tbsp"),
    ("3 tsp", "tsp"),
    ("200g", "g"),
    ("500 ml", "ml"),
    ("2 cloves", "clove"),
    ("3 large", ""),
])
def test_parse_unit(amount, unit):
    assert parse_unit(amount) == unit


def test_build_ingredient_from_item_and_quantity():
    ingredient = build_ingredient({"item": "flour", "quantity": "2 1/2 cups"})
    assert ingredient == StructuredIngredient(
        name="flour", quantity=2.5, unit="cup", display_text="2 1/2 cups flour"
    )


def test_build_ingredient_keeps_plain_strings():
    assert build_ingredient("salt to taste") == PlainIngredient("salt to taste")
    assert build_ingredient({"item": "salt", "quantity": ""}) == PlainIngredient("salt")
    assert build_ingredient("  ") is None


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def test_parse_model_json_strips_code_fences():
    data = parse_model_json("```json\n" + recipe_json() + "\n```")
    assert data["title"] == "Lemon Cake"


def test_parse_model_json_rejects_invalid_text():
    with pytest.raises(ModelOutputUnparsable):
        parse_model_json("Here is your recipe: {title: Lemon Cake")
    with pytest.raises(ModelOutputUnparsable):
        parse_model_json("[1, 2, 3]")


def test_valid_response_matches_schema_shape():
    data = parse_model_json(recipe_json())
    assert schema_problems(data) == []
    reparsed = parse_model_json(json.dumps(data))
    assert isinstance(reparsed["title"], str)
    assert all(set(i) == {"item", "quantity"} for i in reparsed["ingredients"])
    assert all(isinstance(step, str) for step in reparsed["instructions"])


def test_schema_problems_are_reported():
    problems = schema_problems({"title": 3, "ingredients": ["flour"], "instructions": "mix"})
    assert "title is not a string" in problems
    assert "ingredients are not {item, quantity} objects" in problems
    assert "instructions is not a list" in problems


# =============================================================================
# SERVICE
# =============================================================================

async def test_extract_valid_response():
    model = StubTextModel(recipe_json())
    recipe = await StructuredExtractionService(model).extract("some recipe text", "https://img.example/a.jpg")

    assert recipe.title == "Lemon Cake"
    assert recipe.category == "dessert"
    assert recipe.ingredients[0] == StructuredIngredient("flour", 2.0, "cup", "2 cups flour")
    assert recipe.instructions == ["Mix everything.", "Bake for 30 minutes."]
    assert recipe.image_url == "https://img.example/a.jpg"
    assert recipe.needs_review is False
    assert len(model.prompts) == 1
    assert "some recipe text" in model.prompts[0]


async def test_extract_uses_zero_temperature():
    calls = []

    class RecordingModel:
        async def complete(self, prompt, temperature=0.0, max_tokens=2000):
            calls.append(temperature)
            return recipe_json()

    await StructuredExtractionService(RecordingModel()).extract("text")
    assert calls == [0.0]


async def test_extract_retries_once_on_invalid_json():
    model = StubTextModel("not json at all", recipe_json(title="Fixed Cake"))
    recipe = await StructuredExtractionService(model).extract("text")

    assert recipe.title == "Fixed Cake"
    assert len(model.prompts) == 2
    assert "not json at all" in model.prompts[1]


async def test_extract_returns_flagged_fallback_after_second_failure():
    model = StubTextModel("broken", "still broken")
    recipe = await StructuredExtractionService(model).extract("x" * 800)

    assert len(model.prompts) == 2
    assert recipe.title == FALLBACK_TITLE
    assert recipe.needs_review is True
    assert any("x" * 500 in step for step in recipe.instructions)
    assert not any("x" * 501 in step for step in recipe.instructions)


async def test_unknown_category_becomes_other():
    model = StubTextModel(recipe_json(category="breakfast"))
    recipe = await StructuredExtractionService(model).extract("text")
    assert recipe.category == "other"


async def test_model_call_failure_raises_harvest_error():
    model = StubTextModel(error=ConnectionError("quota exceeded"))
    with pytest.raises(HarvestError) as exc_info:
        await StructuredExtractionService(model).extract("text")
    assert "quota exceeded" in exc_info.value.reason


# =============================================================================
# FORMATTING
# =============================================================================

def test_markdown_handles_both_ingredient_variants():
    recipe = ExtractedRecipe(
        title="Soup",
        ingredients=[
            StructuredIngredient("water", 1.0, "l", "1 l water"),
            PlainIngredient("salt to taste"),
        ],
        instructions=["Boil."],
        servings="4",
    )
    markdown = format_recipe_markdown(recipe)
    assert "# Soup" in markdown
    assert "- 1 l water" in markdown
    assert "- salt to taste" in markdown
    assert "1. Boil." in markdown
    assert "**Servings:** 4" in markdown
