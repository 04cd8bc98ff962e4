from pathlib import Path

import pytest

from media_handler import (
    is_pdf_bytes,
    is_pdf_file,
    is_pdf_url,
    is_url,
    read_pdf_file,
    write_temp_pdf,
)


def test_url_detection():
    assert is_url("https://food.example/recipe/x")
    assert is_url("  http://food.example ")
    assert not is_url("look at https://food.example")
    assert not is_url("")


@pytest.mark.parametrize("url,expected", [
    ("https://food.example/files/book.pdf", True),
    ("https://food.example/files/BOOK.PDF?download=1", True),
    ("https://food.example/recipe/pdf-cake/", False),
])
def test_is_pdf_url(url, expected):
    assert is_pdf_url(url) is expected


def test_pdf_detection():
    assert is_pdf_bytes(b"%PDF-1.7\n...")
    assert not is_pdf_bytes(b"<html>")
    assert not is_pdf_bytes(b"")
    assert is_pdf_file(Path("cookbook.PDF"))
    assert not is_pdf_file(Path("cookbook.txt"))


def test_read_pdf_file(tmp_path):
    good = tmp_path / "book.pdf"
    good.write_bytes(b"%PDF-1.4 content")
    bad = tmp_path / "fake.pdf"
    bad.write_text("not a pdf")

    assert read_pdf_file(good) == b"%PDF-1.4 content"
    with pytest.raises(ValueError):
        read_pdf_file(bad)


def test_write_temp_pdf():
    path = write_temp_pdf(b"%PDF-1.4")
    try:
        assert path.suffix == ".pdf"
        assert path.read_bytes() == b"%PDF-1.4"
    finally:
        path.unlink()
