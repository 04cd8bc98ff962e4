"""Handles media inputs: URLs and PDF documents."""

import logging
import re
import tempfile
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"


def is_url(text: str) -> bool:
    """Checks whether a text is a URL."""
    if not text:
        return False
    url_pattern = r"https?://[^\s]+"
    return bool(re.match(url_pattern, text.strip()))


def is_pdf_url(url: str) -> bool:
    try:
        return urlparse(url).path.lower().endswith(".pdf")
    except ValueError:
        return False


def is_pdf_bytes(data: bytes) -> bool:
    return bool(data) and data.lstrip()[:5] == PDF_MAGIC


def is_pdf_file(path: Path) -> bool:
    """Checks whether a file is a PDF."""
    return path.suffix.lower() == ".pdf"


def read_pdf_file(path: Path) -> bytes:
    """Reads a PDF from disk.

    Raises:
        ValueError: If the file does not contain PDF data
    """
    data = path.read_bytes()
    if not is_pdf_bytes(data):
        raise ValueError(f"{path} is not a PDF document")
    logger.info(f"Read PDF {path.name} ({len(data)} bytes)")
    return data


def write_temp_pdf(data: bytes) -> Path:
    """Writes PDF bytes to a temporary file. The caller removes it."""
    with tempfile.NamedTemporaryFile(prefix="recipe-", suffix=".pdf", delete=False) as f:
        f.write(data)
        path = Path(f.name)
    logger.debug(f"PDF buffer written to {path}")
    return path
