"""JSON codecs for the engine's data contracts.

Outputs use camelCase keys and omit ``None`` values. Parsers accept the
camelCase payloads of the extraction service, the validation engine and the
review store. Validation runs through pydantic over the model dataclasses, so
malformed input raises ``pydantic.ValidationError`` (a ``ValueError``) at the
boundary rather than failing inside the engine.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import StrictInt, TypeAdapter, ValidationError

from batch_record_qa.models import (
    WIRE_CONFIG,
    AlertReview,
    ExtractedPageData,
    PageRecord,
    QAChecklist,
    QAChecklistInput,
    ValidationAlert,
)


@lru_cache(maxsize=None)
def _adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def to_dict(obj: Any) -> Any:
    """Convert a model object (or a container of them) to JSON-ready data."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _adapter(type(obj)).dump_python(
            obj, mode="json", by_alias=True, exclude_none=True
        )
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {key: to_dict(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_dict(value) for value in obj]
    return obj


def format_validation_error(exc: Exception) -> str:
    """One ``location: message`` line per problem for CLI output."""
    if not isinstance(exc, ValidationError):
        return str(exc)
    lines = []
    for error in exc.errors(include_url=False):
        loc = ".".join(str(part) for part in error["loc"])
        lines.append(f"{loc}: {error['msg']}" if loc else error["msg"])
    return "; ".join(lines)


# ---------------------------------------------------------------------------
# Extraction input
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class _PageInput:
    page_number: StrictInt
    text: str = ""
    extraction: ExtractedPageData | None = None


_PageInput.__pydantic_config__ = WIRE_CONFIG


def parse_extracted_page(data: Any) -> ExtractedPageData:
    """Parse one page of extraction-service output."""
    return _adapter(ExtractedPageData).validate_python(data)


def parse_page_records(data: Any) -> list[PageRecord]:
    """Parse ``[{pageNumber, text, classification?}, ...]``."""
    return _adapter(list[PageRecord]).validate_python(data)


def parse_page_inputs(data: Any) -> list[tuple[int, str, ExtractedPageData]]:
    """Parse ``[{pageNumber, text?, extraction?}, ...]`` into processor input."""
    return [
        (page.page_number, page.text, page.extraction or ExtractedPageData())
        for page in _adapter(list[_PageInput]).validate_python(data)
    ]


# ---------------------------------------------------------------------------
# Alerts, checklist input and reviews
# ---------------------------------------------------------------------------


def parse_alert(data: Any) -> ValidationAlert:
    return _adapter(ValidationAlert).validate_python(data)


def parse_qa_checklist_input(data: Any) -> QAChecklistInput:
    """Parse and validate the aggregated input of the QA checklist engine."""
    return _adapter(QAChecklistInput).validate_python(data)


def parse_checklist(data: Any) -> QAChecklist:
    """Parse a stored checklist as produced by :func:`to_dict`."""
    return _adapter(QAChecklist).validate_python(data)


def parse_alert_reviews(data: Any) -> list[AlertReview]:
    return _adapter(list[AlertReview]).validate_python(data)
