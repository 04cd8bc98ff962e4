from text_normalizer import clean


def test_removes_boilerplate_phrases():
    text = "Lemon Cake\nPrint Recipe\nJump to Recipe\n2 cups flour\nShare on Facebook"
    result = clean(text)
    assert "Print" not in result
    assert "Jump" not in result
    assert "Facebook" not in result
    assert "2 cups flour" in result


def test_deduplicates_lines_case_insensitively_keeping_first():
    text = "Mix the batter\n1 cup sugar\nMIX THE BATTER\nmix the batter\nBake it well"
    assert clean(text).split("\n") == ["Mix the batter", "1 cup sugar", "Bake it well"]


def test_drops_short_lines():
    assert clean("ok\n\nyes\nStir gently") == "Stir gently"


def test_strips_noise_characters_and_collapses_spaces():
    result = clean("★★★★☆  Rated   5 stars!!!\nAdd   salt   (to taste)")
    assert result.split("\n") == ["Rated 5 stars", "Add salt (to taste)"]


def test_keeps_quantities_and_fractions():
    result = clean("1/2 cup butter, softened\n2-3 tbsp. milk")
    assert "1/2 cup butter, softened" in result
    assert "2-3 tbsp. milk" in result


def test_empty_or_non_text_input():
    assert clean("") == ""
    assert clean(None) == ""


def test_is_deterministic():
    text = "Preheat oven\nCookie Policy\nPreheat oven\nServe warm"
    assert clean(text) == clean(text)
