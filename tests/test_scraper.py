import json

import pytest

from conftest import COMPLETE_JSON_LD, PLAIN_HTML_RECIPE, FakeBrowser, FakeSite, json_ld_page
from errors import IncompleteStructuredData, NavigationFailed
from models import HTML_FALLBACK, STRUCTURED_DATA
from scraper import (
    PageScraper,
    check_completeness,
    content_stats,
    extract_pdf_links,
    extract_text_content,
    filter_image_candidates,
    find_json_ld_recipe,
    is_retriable_navigation_error,
    parse_duration,
    to_raw_recipe,
)

URL = "https://food.example/recipe/lemon-cake"


def make_scraper(site: FakeSite, fast_config) -> tuple[PageScraper, FakeBrowser]:
    browser = FakeBrowser(site)
    return PageScraper(browser, fast_config.scraper), browser


# =============================================================================
# JSON-LD
# =============================================================================

def test_finds_recipe_in_graph():
    html = json_ld_page({"@context": "https://schema.org", "@graph": [
        {"@type": "WebPage", "name": "Page"},
        {"@type": ["Recipe", "NewsArticle"], "name": "Lemon Cake"},
    ]})
    assert find_json_ld_recipe(html)["name"] == "Lemon Cake"


def test_finds_recipe_in_top_level_array():
    html = json_ld_page([{"@type": "Organization"}, {"@type": "Recipe", "name": "Soup"}])
    assert find_json_ld_recipe(html)["name"] == "Soup"


def test_ignores_broken_json_ld_blocks():
    html = (
        '<script type="application/ld+json">{broken</script>'
        f'<script type="application/ld+json">{json.dumps({"@type": "Recipe", "name": "Soup"})}</script>'
    )
    assert find_json_ld_recipe(html)["name"] == "Soup"


@pytest.mark.parametrize("data,reason", [
    (None, "No JSON-LD recipe data found"),
    ({"recipeIngredient": ["a"], "recipeInstructions": ["b"]}, "Missing recipe name"),
    ({"name": "Soup", "recipeIngredient": [], "recipeInstructions": ["b"]}, "Missing ingredients list"),
    ({"name": "Soup", "recipeIngredient": ["a"]}, "Missing instructions"),
])
def test_completeness_reasons(data, reason):
    with pytest.raises(IncompleteStructuredData) as exc_info:
        check_completeness(data)
    assert exc_info.value.reason == reason


def test_raw_recipe_from_json_ld():
    data = dict(COMPLETE_JSON_LD)
    data["recipeInstructions"] = [
        {"@type": "HowToSection", "name": "Cake", "itemListElement": [
            {"@type": "HowToStep", "text": "Mix."},
            {"@type": "HowToStep", "text": "Bake."},
        ]},
        {"@type": "HowToStep", "name": "Cool down."},
    ]
    data["image"] = {"@type": "ImageObject", "url": "https://food.example/cake.jpg"}
    data["recipeCuisine"] = "British"

    raw = to_raw_recipe(data)
    assert raw.title == "Lemon Cake"
    assert raw.instructions == ["Mix.", "Bake.", "Cool down."]
    assert raw.image_url == "https://food.example/cake.jpg"
    assert raw.prep_time == "15 min"
    assert raw.cook_time == "1h 10min"
    assert raw.servings == "8"
    assert raw.cuisine == ["British"]


@pytest.mark.parametrize("iso,text", [
    ("PT30M", "30 min"),
    ("PT2H", "2h"),
    ("PT1H30M", "1h 30min"),
    ("P0DT0H45M", "45 min"),
    ("", None),
    (None, None),
])
def test_parse_duration(iso, text):
    assert parse_duration(iso) == text


# =============================================================================
# HTML HELPERS
# =============================================================================

def test_text_content_prefers_recipe_container():
    text = extract_text_content(PLAIN_HTML_RECIPE)
    assert "1 cup flour" in text
    assert "Home About Recipes" not in text
    assert "Copyright" not in text


def test_text_content_falls_back_to_body():
    text = extract_text_content("<html><body><p>Just a paragraph</p><script>var x;</script></body></html>")
    assert text == "Just a paragraph"


def test_image_filter():
    images = [
        {"src": "https://food.example/cake.jpg", "alt": "Lemon cake", "width": 800, "height": 600},
        {"src": "https://food.example/cake.jpg", "alt": "dup", "width": 800, "height": 600},
        {"src": "https://food.example/site-logo.png", "alt": "", "width": 400, "height": 200},
        {"src": "https://food.example/me.jpg", "alt": "Author avatar", "width": 300, "height": 300},
        {"src": "https://food.example/thumb.jpg", "alt": "", "width": 150, "height": 150},
        {"src": "data:image/png;base64,AAAA", "alt": "", "width": 800, "height": 600},
    ]
    assert filter_image_candidates(images) == ["https://food.example/cake.jpg"]


def test_pdf_links_are_absolute():
    assert extract_pdf_links(PLAIN_HTML_RECIPE, URL) == ["https://food.example/files/pancakes.pdf"]


def test_content_stats():
    stats = content_stats("Add 1 cup flour and 2 tbsp sugar. Bake for 20 minutes.")
    assert stats.ingredient_count == 2
    assert stats.step_count == 2
    assert stats.has_recipe_content


def test_retriable_navigation_errors():
    assert is_retriable_navigation_error(Exception("Navigating frame was detached"))
    assert is_retriable_navigation_error(Exception("Timeout 30000ms exceeded"))
    assert is_retriable_navigation_error(TimeoutError())
    assert not is_retriable_navigation_error(Exception("net::ERR_NAME_NOT_RESOLVED"))


# =============================================================================
# SCRAPER
# =============================================================================

async def test_complete_json_ld_takes_fast_path(fast_config, monkeypatch):
    site = FakeSite(
        pages={URL: json_ld_page(COMPLETE_JSON_LD)},
        images=[{"src": "https://food.example/img/cake.jpg", "alt": "", "width": 900, "height": 600}],
    )
    scraper, browser = make_scraper(site, fast_config)

    async def fail_load_content(page):
        raise AssertionError("slow path must not run")

    monkeypatch.setattr(scraper, "load_content", fail_load_content)
    page = await scraper.scrape(URL)

    assert page.method == STRUCTURED_DATA
    assert page.structured_recipe.title == "Lemon Cake"
    assert page.structured_recipe.ingredients == ["2 cups flour", "1 cup sugar", "2 lemons"]
    assert page.image_candidates == ("https://food.example/img/cake.jpg",)
    assert page.text_content == ""
    assert browser.opened[0].closed


async def test_incomplete_json_ld_falls_back_to_html(fast_config):
    partial = dict(COMPLETE_JSON_LD)
    del partial["recipeInstructions"]
    html = PLAIN_HTML_RECIPE.replace(
        "<html>", f'<html><script type="application/ld+json">{json.dumps(partial)}</script>'
    )
    scraper, browser = make_scraper(FakeSite(pages={URL: html}), fast_config)

    page = await scraper.scrape(URL)

    assert page.method == HTML_FALLBACK
    assert page.structured_recipe is None
    assert "Mix the flour and sugar." in page.text_content
    assert page.pdf_links == ("https://food.example/files/pancakes.pdf",)
    scroll_kinds = [kind for kind, _ in browser.opened[0].scrolls]
    assert scroll_kinds.count("into_view") == 2


async def test_blank_json_ld_ingredients_fall_back_to_html(fast_config):
    blank = dict(COMPLETE_JSON_LD, recipeIngredient=["", "  "])
    html = PLAIN_HTML_RECIPE.replace(
        "<html>", f'<html><script type="application/ld+json">{json.dumps(blank)}</script>'
    )
    scraper, _ = make_scraper(FakeSite(pages={URL: html}), fast_config)

    page = await scraper.scrape(URL)

    assert page.method == HTML_FALLBACK
    assert page.structured_recipe is None
    assert "1 cup flour" in page.text_content


async def test_navigation_retries_transient_errors(fast_config):
    site = FakeSite(
        pages={URL: json_ld_page(COMPLETE_JSON_LD)},
        navigation_errors={URL: [
            Exception("frame was detached"),
            Exception("frame was detached"),
            Exception("Navigation timeout"),
            Exception("Navigation timeout"),
        ]},
    )
    scraper, _ = make_scraper(site, fast_config)

    page = await scraper.scrape(URL)

    assert page.method == STRUCTURED_DATA
    # Two attempts, each trying domcontentloaded then commit, then the third succeeds
    assert site.navigations == [
        (URL, "domcontentloaded"), (URL, "commit"),
        (URL, "domcontentloaded"), (URL, "commit"),
        (URL, "domcontentloaded"),
    ]


async def test_navigation_gives_up_after_three_attempts(fast_config):
    site = FakeSite(navigation_errors={URL: [Exception("Navigation timeout")] * 6})
    scraper, browser = make_scraper(site, fast_config)

    with pytest.raises(NavigationFailed):
        await scraper.scrape(URL)
    assert len(site.navigations) == 6
    assert browser.opened[0].closed


async def test_permanent_navigation_error_is_not_retried(fast_config):
    site = FakeSite(navigation_errors={URL: [Exception("net::ERR_NAME_NOT_RESOLVED")] * 2})
    scraper, _ = make_scraper(site, fast_config)

    with pytest.raises(NavigationFailed):
        await scraper.scrape(URL)
    assert len(site.navigations) == 2
