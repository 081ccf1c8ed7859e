"""Native-text PDF source for the analysis engine.

Builds the extraction-input contract (text blocks with geometry, tables and
page dimensions) from PDFs that already carry a text layer. Scanned pages come
back with little or no text; OCR is the extraction service's job.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator

import fitz  # PyMuPDF

from batch_record_qa.models import (
    BoundingBox,
    ExtractedPageData,
    PageDimensions,
    TableCell,
    TableData,
    TextBlock,
)

logger = logging.getLogger(__name__)

# Native text has no recognition uncertainty.
NATIVE_TEXT_CONFIDENCE = 100.0


def _box(x0: float, y0: float, x1: float, y1: float) -> BoundingBox:
    return BoundingBox(x=x0, y=y0, width=max(0.0, x1 - x0), height=max(0.0, y1 - y0))


def _open(pdf_path: str) -> fitz.Document:
    if not os.path.exists(pdf_path):
        raise FileNotFoundError(f"File not found: {pdf_path}")
    try:
        return fitz.open(pdf_path)
    except Exception as exc:
        raise RuntimeError(f"Not a valid PDF: {pdf_path}") from exc


def get_page_count(pdf_path: str) -> int:
    """Return the page count of a PDF without keeping it open.

    Raises:
        FileNotFoundError: If the file does not exist.
        RuntimeError: If the file is not a valid PDF.
    """
    doc = _open(pdf_path)
    try:
        return len(doc)
    finally:
        doc.close()


def iter_page_ranges(pdf_path: str, chunk_size: int) -> Iterator[range]:
    """Yield consecutive 0-based page ranges covering the whole PDF.

    Raises:
        ValueError: If chunk_size is not a positive integer.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    total_pages = get_page_count(pdf_path)
    for start in range(0, total_pages, chunk_size):
        yield range(start, min(start + chunk_size, total_pages))


def _extract_tables(page: fitz.Page) -> list[TableData]:
    try:
        found = page.find_tables()
    except Exception:
        logger.debug("Table detection failed on page %d", page.number + 1)
        return []

    tables: list[TableData] = []
    for tbl in found.tables:
        cells: list[TableCell] = []
        rows = tbl.extract()
        for row_index, row in enumerate(rows):
            for col_index, text in enumerate(row):
                if text is None:
                    continue
                cells.append(
                    TableCell(
                        row_index=row_index,
                        col_index=col_index,
                        text=text.strip(),
                        confidence=NATIVE_TEXT_CONFIDENCE,
                    )
                )
        tables.append(
            TableData(
                row_count=len(rows),
                column_count=tbl.col_count,
                cells=tuple(cells),
                bounding_box=_box(*tbl.bbox),
                confidence=NATIVE_TEXT_CONFIDENCE,
            )
        )
    return tables


def extract_page_data(page: fitz.Page) -> ExtractedPageData:
    """Build the extraction input for one PDF page from its text layer."""
    text_blocks: list[TextBlock] = []
    for block in page.get_text("blocks"):
        # blocks are tuples: (x0, y0, x1, y1, text, block_no, block_type)
        if block[6] != 0:
            continue
        text = block[4].strip()
        if not text:
            continue
        text_blocks.append(
            TextBlock(
                text=text,
                confidence=NATIVE_TEXT_CONFIDENCE,
                bounding_box=_box(*block[:4]),
            )
        )

    return ExtractedPageData(
        text_blocks=tuple(text_blocks),
        tables=tuple(_extract_tables(page)),
        page_dimensions=PageDimensions(width=page.rect.width, height=page.rect.height),
    )


def iter_pdf_pages(
    pdf_path: str,
    chunk_size: int = 50,
    on_error: Callable[[int, Exception], None] | None = None,
) -> Iterator[tuple[int, str, ExtractedPageData]]:
    """Yield ``(page_number, text, extracted_data)`` for every page, 1-based.

    The document is reopened per chunk so large files are not held in memory.
    When *on_error* is given, a page that fails to load or extract is reported
    to it as ``on_error(page_number, exc)`` and skipped; otherwise the error
    propagates.
    """
    for page_range in iter_page_ranges(pdf_path, chunk_size):
        doc = fitz.open(pdf_path)
        try:
            for index in page_range:
                try:
                    page = doc[index]
                    text = page.get_text()
                    extracted = extract_page_data(page)
                except Exception as exc:
                    if on_error is None:
                        raise
                    on_error(index + 1, exc)
                    continue
                yield index + 1, text, extracted
        finally:
            doc.close()
