"""Static pattern tables for section detection, field extraction and page classification.

The tables are immutable and built once at import time. Per-site SOP tuning is
done by loading a JSON override file with :func:`load_pattern_tables`, which
returns a new table set and leaves the defaults untouched.

Override file layout (every key optional)::

    {
      "sectionPatterns": {"materials_log": ["raw\\s+materials?", ...]},
      "fieldPatterns": {"batchNumber": "batch\\s*(?:number|no)[\\s:]*([A-Z0-9-]+)"},
      "keywordGroups": [
        {"pageType": "materials_log", "keywords": ["material"],
         "confidence": 70, "reasoning": "Contains material keywords"}
      ],
      "pageTypeDescriptions": {"materials_log": "..."}
    }
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from batch_record_qa.models import PageType, SectionType

_FLAGS = re.IGNORECASE


@dataclass(frozen=True)
class KeywordGroup:
    """Keywords that mark a page type in the rule-based classifier."""

    page_type: PageType
    keywords: tuple[str, ...]
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class PatternTables:
    # Ordered: the first matching group wins.
    section_patterns: tuple[tuple[SectionType, tuple[re.Pattern[str], ...]], ...]
    field_patterns: tuple[tuple[str, re.Pattern[str]], ...]
    keyword_groups: tuple[KeywordGroup, ...]
    page_type_descriptions: Mapping[PageType, str]


def _compile_all(patterns: list[str] | tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, _FLAGS) for p in patterns)


_SECTION_PATTERN_SOURCES: tuple[tuple[SectionType, tuple[str, ...]], ...] = (
    (SectionType.MATERIALS_LOG, (
        r"materials?\s+(log|entry|record|list)",
        r"raw\s+materials?",
        r"components?\s+(used|added)",
        r"bill\s+of\s+materials?",
    )),
    (SectionType.EQUIPMENT_LOG, (
        r"equipment\s+(log|record|list|used)",
        r"machinery\s+used",
        r"instruments?\s+used",
        r"vessel\s+(id|number)",
    )),
    (SectionType.CIP_SIP_RECORD, (
        r"cip\s+(record|log|procedure)",
        r"sip\s+(record|log|procedure)",
        r"cleaning\s+in\s+place",
        r"sterilization\s+in\s+place",
        r"sanitization",
    )),
    (SectionType.FILTRATION_STEP, (
        r"filtration\s+(step|record|log)",
        r"filter\s+(integrity|test)",
        r"membrane\s+filter",
        r"sterile\s+filter",
    )),
    (SectionType.FILLING_LOG, (
        r"filling\s+(operation|record|log)",
        r"vial\s+filling",
        r"container\s+filling",
        r"fill\s+volume",
    )),
    (SectionType.INSPECTION_SHEET, (
        r"inspection\s+(sheet|record|log|report)",
        r"in-?process\s+inspection",
        r"visual\s+inspection",
        r"quality\s+check",
    )),
    (SectionType.RECONCILIATION_PAGE, (
        r"reconciliation",
        r"material\s+balance",
        r"yield\s+calculation",
        r"discrepancy",
    )),
    (SectionType.ATTACHMENT, (
        r"attachment",
        r"appendix",
        r"supporting\s+document",
        r"exhibit",
    )),
    (SectionType.HEADER, (
        r"batch\s+(number|id|record)",
        r"product\s+name",
        r"manufacturing\s+date",
        r"document\s+(number|id)",
    )),
    (SectionType.FOOTER, (
        r"page\s+\d+\s+of\s+\d+",
        r"signature",
        r"reviewed\s+by",
        r"approved\s+by",
    )),
)

# The first capturing group of each pattern is the field value.
_FIELD_PATTERN_SOURCES: tuple[tuple[str, str], ...] = (
    ("batchNumber", r"batch\s*(?:number|no|#|id)[\s:]*([A-Z0-9-]+)"),
    ("productName", r"product\s*(?:name)?[\s:]*([\w\s]+)"),
    ("lotNumber", r"lot\s*(?:number|no|#)[\s:]*([A-Z0-9-]+)"),
    ("date", r"date[\s:]*(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})"),
    ("temperature", r"temp(?:erature)?[\s:]*(\d+\.?\d*)\s*°?([CF])?"),
    ("quantity", r"qty|quantity[\s:]*(\d+\.?\d*)\s*(\w+)?"),
    ("operator", r"operator|performed\s+by[\s:]*([\w\s]+)"),
)

_DEFAULT_KEYWORD_GROUPS: tuple[KeywordGroup, ...] = (
    KeywordGroup(
        PageType.MATERIALS_LOG,
        ("material", "ingredient", "raw material", "lot number"),
        70,
        "Contains material/ingredient keywords",
    ),
    KeywordGroup(
        PageType.EQUIPMENT_LOG,
        ("equipment", "calibration", "maintenance", "vessel"),
        70,
        "Contains equipment keywords",
    ),
    KeywordGroup(
        PageType.CIP_SIP_RECORD,
        ("cip", "sip", "clean-in-place", "sterilize"),
        75,
        "Contains CIP/SIP keywords",
    ),
    KeywordGroup(
        PageType.FILTRATION_STEP,
        ("filter", "filtration", "integrity test", "pore size"),
        70,
        "Contains filtration keywords",
    ),
    KeywordGroup(
        PageType.FILLING_LOG,
        ("fill", "vial", "container", "filling line"),
        70,
        "Contains filling operation keywords",
    ),
    KeywordGroup(
        PageType.INSPECTION_SHEET,
        ("inspection", "visual", "defect", "appearance"),
        70,
        "Contains inspection keywords",
    ),
    KeywordGroup(
        PageType.RECONCILIATION_PAGE,
        ("reconciliation", "yield", "balance", "discrepancy"),
        70,
        "Contains reconciliation keywords",
    ),
)

_DEFAULT_PAGE_TYPE_DESCRIPTIONS: dict[PageType, str] = {
    PageType.MATERIALS_LOG: "Documents tracking raw materials, ingredients, and components used in production",
    PageType.EQUIPMENT_LOG: "Records of equipment usage, calibration, maintenance, and operational parameters",
    PageType.CIP_SIP_RECORD: "Clean-in-place (CIP) and Sterilize-in-place (SIP) cleaning and sterilization records",
    PageType.FILTRATION_STEP: "Documentation of filtration processes, filter integrity tests, and parameters",
    PageType.FILLING_LOG: "Records of filling operations, fill weights, container counts, and line clearance",
    PageType.INSPECTION_SHEET: "Quality inspection records, visual checks, and defect documentation",
    PageType.RECONCILIATION_PAGE: "Material reconciliation, yield calculations, and batch accounting",
    PageType.UNKNOWN: "Page type cannot be determined or doesn't match known categories",
}

DEFAULT_PATTERN_TABLES = PatternTables(
    section_patterns=tuple(
        (section_type, _compile_all(sources))
        for section_type, sources in _SECTION_PATTERN_SOURCES
    ),
    field_patterns=tuple(
        (name, re.compile(source, _FLAGS)) for name, source in _FIELD_PATTERN_SOURCES
    ),
    keyword_groups=_DEFAULT_KEYWORD_GROUPS,
    page_type_descriptions=MappingProxyType(dict(_DEFAULT_PAGE_TYPE_DESCRIPTIONS)),
)


def apply_overrides(base: PatternTables, overrides: dict) -> PatternTables:
    """Return a copy of *base* with the tables in *overrides* replaced.

    Section groups keep their original order; an override replaces the
    patterns of the named group. Field patterns are replaced by name and new
    names are appended. Keyword groups are replaced as a whole.

    Raises:
        ValueError: If the overrides name an unknown type or hold an invalid regex.
    """
    try:
        section_patterns = base.section_patterns
        if "sectionPatterns" in overrides:
            replaced = {
                SectionType(name): _compile_all(sources)
                for name, sources in overrides["sectionPatterns"].items()
            }
            section_patterns = tuple(
                (section_type, replaced.pop(section_type, patterns))
                for section_type, patterns in base.section_patterns
            )
            # Types without a default group (only "unknown") go last.
            section_patterns += tuple(replaced.items())

        field_patterns = base.field_patterns
        if "fieldPatterns" in overrides:
            merged = dict(base.field_patterns)
            for name, source in overrides["fieldPatterns"].items():
                merged[name] = re.compile(source, _FLAGS)
            field_patterns = tuple(merged.items())

        keyword_groups = base.keyword_groups
        if "keywordGroups" in overrides:
            keyword_groups = tuple(
                KeywordGroup(
                    page_type=PageType(group["pageType"]),
                    keywords=tuple(k.lower() for k in group["keywords"]),
                    confidence=float(group.get("confidence", 70)),
                    reasoning=group.get("reasoning", f"Contains {group['pageType']} keywords"),
                )
                for group in overrides["keywordGroups"]
            )

        descriptions = base.page_type_descriptions
        if "pageTypeDescriptions" in overrides:
            merged_descriptions = dict(base.page_type_descriptions)
            for name, text in overrides["pageTypeDescriptions"].items():
                merged_descriptions[PageType(name)] = text
            descriptions = MappingProxyType(merged_descriptions)
    except re.error as exc:
        raise ValueError(f"Invalid pattern in overrides: {exc}") from exc
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"Malformed pattern overrides: {exc!r}") from exc

    return PatternTables(
        section_patterns=section_patterns,
        field_patterns=field_patterns,
        keyword_groups=keyword_groups,
        page_type_descriptions=descriptions,
    )


def load_pattern_tables(path: str | None = None) -> PatternTables:
    """Load pattern tables, applying the JSON overrides at *path* if given."""
    if path is None:
        return DEFAULT_PATTERN_TABLES
    with open(path, encoding="utf-8") as f:
        overrides = json.load(f)
    if not isinstance(overrides, dict):
        raise ValueError(f"Pattern override file must hold a JSON object: {path}")
    return apply_overrides(DEFAULT_PATTERN_TABLES, overrides)
