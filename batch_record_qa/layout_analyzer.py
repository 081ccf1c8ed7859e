"""Layout analyzer turning page extraction output into typed, field-mapped sections.

Sections are detected from text cues, sorted top to bottom and stretched so
that together they tile the page. Every geometric element is then assigned to
the section containing its vertical center, and a field map is built for each
section from tables, checkboxes, (optionally) form fields and free text.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, replace

from batch_record_qa.models import (
    BoundingBox,
    CheckboxData,
    CheckboxState,
    ExtractedPageData,
    FieldSource,
    FieldValue,
    FormField,
    LayoutAnalysis,
    LayoutStyle,
    PageDimensions,
    PageStructure,
    RecognizedSection,
    SectionType,
    TableCell,
    TableData,
    TextBlock,
)
from batch_record_qa.patterns import DEFAULT_PATTERN_TABLES, PatternTables

logger = logging.getLogger(__name__)

_DEFAULT_SECTION_CONFIDENCE = 80.0
_UNKNOWN_SECTION_CONFIDENCE = 50.0
_DEFAULT_TEXT_FIELD_CONFIDENCE = 70.0
_DEFAULT_HEADER_HEIGHT = 100.0

# A section narrower than this fraction of the page counts as a column.
_NARROW_SECTION_RATIO = 0.6

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_field_name(name: str) -> str:
    """Lower-case *name*, collapse non-alphanumeric runs to ``_`` and trim them."""
    return _NON_ALNUM.sub("_", name.lower()).strip("_")


def is_in_section(element_box: BoundingBox | None, section_box: BoundingBox) -> bool:
    """Return True if the element's vertical center lies within the section."""
    if element_box is None:
        return False
    center_y = element_box.center_y
    return section_box.y <= center_y <= section_box.y + section_box.height


@dataclass(frozen=True)
class _TextElement:
    text: str
    confidence: float | None
    bounding_box: BoundingBox | None


def _set_if_absent(fields: dict[str, FieldValue], key: str, value: FieldValue) -> None:
    if key not in fields:
        fields[key] = value


class LayoutAnalyzer:
    """Builds a :class:`LayoutAnalysis` from a page's extracted elements."""

    def __init__(
        self,
        tables: PatternTables = DEFAULT_PATTERN_TABLES,
        include_form_fields: bool = False,
    ) -> None:
        self.tables = tables
        self.include_form_fields = include_form_fields

    def analyze(self, extracted_data: ExtractedPageData) -> LayoutAnalysis:
        """Analyze one page. Never raises for well-typed input."""
        page = extracted_data.page_dimensions or PageDimensions()

        sections = self._detect_sections(extracted_data, page)
        self._assign_elements(sections, extracted_data)
        for section in sections:
            section.fields = self._extract_fields(section, extracted_data.form_fields)

        layout_style = self._determine_layout_style(extracted_data, page)
        page_structure = self._analyze_page_structure(sections, page)

        logger.debug(
            "Layout: %d section(s), style=%s", len(sections), layout_style.value
        )
        return LayoutAnalysis(
            sections=sections,
            layout_style=layout_style,
            page_structure=page_structure,
        )

    # ------------------------------------------------------------------
    # Section detection
    # ------------------------------------------------------------------

    def _detect_sections(
        self, data: ExtractedPageData, page: PageDimensions
    ) -> list[RecognizedSection]:
        elements = [
            _TextElement(tb.text or "", tb.confidence, tb.bounding_box)
            for tb in data.text_blocks
        ]
        elements.extend(
            _TextElement(ff.field_name or "", ff.confidence, ff.name_bounding_box)
            for ff in data.form_fields
        )
        elements.sort(key=lambda e: e.bounding_box.y if e.bounding_box else 0.0)

        sections: list[RecognizedSection] = []
        for element in elements:
            section_type = self._match_section_type(element.text)
            if section_type is None:
                continue
            box = element.bounding_box or BoundingBox(
                x=0.0, y=0.0, width=page.width, height=_DEFAULT_HEADER_HEIGHT
            )
            confidence = (
                element.confidence
                if element.confidence is not None
                else _DEFAULT_SECTION_CONFIDENCE
            )
            sections.append(
                RecognizedSection(
                    section_type=section_type,
                    section_title=element.text.strip(),
                    bounding_box=box,
                    confidence=confidence,
                )
            )

        if not sections:
            sections.append(
                RecognizedSection(
                    section_type=SectionType.UNKNOWN,
                    bounding_box=BoundingBox(
                        x=0.0, y=0.0, width=page.width, height=page.height
                    ),
                    confidence=_UNKNOWN_SECTION_CONFIDENCE,
                )
            )

        sections.sort(key=lambda s: s.bounding_box.y)

        # Stretch every section down to the next one so the page is tiled.
        for current, following in zip(sections, sections[1:] + [None]):
            bottom = following.bounding_box.y if following else page.height
            current.bounding_box = replace(
                current.bounding_box, height=bottom - current.bounding_box.y
            )

        return sections

    def _match_section_type(self, text: str) -> SectionType | None:
        for section_type, patterns in self.tables.section_patterns:
            if any(p.search(text) for p in patterns):
                return section_type
        return None

    # ------------------------------------------------------------------
    # Element assignment
    # ------------------------------------------------------------------

    @staticmethod
    def _assign_elements(
        sections: list[RecognizedSection], data: ExtractedPageData
    ) -> None:
        for section in sections:
            box = section.bounding_box
            section.tables = [t for t in data.tables if is_in_section(t.bounding_box, box)]
            section.checkboxes = [
                c for c in data.checkboxes if is_in_section(c.bounding_box, box)
            ]
            section.handwritten_notes = [
                h for h in data.handwritten_regions if is_in_section(h.bounding_box, box)
            ]
            section.signatures = [
                s for s in data.signatures if is_in_section(s.bounding_box, box)
            ]
            section.text_blocks = [
                tb for tb in data.text_blocks if is_in_section(tb.bounding_box, box)
            ]

    # ------------------------------------------------------------------
    # Field extraction
    # ------------------------------------------------------------------

    def _extract_fields(
        self, section: RecognizedSection, form_fields: Iterable[FormField]
    ) -> dict[str, FieldValue]:
        """Build the section field map, highest-priority source first."""
        fields: dict[str, FieldValue] = {}

        for key, value in self._fields_from_tables(section.tables):
            _set_if_absent(fields, key, value)
        for key, value in self._fields_from_checkboxes(section.checkboxes):
            _set_if_absent(fields, key, value)
        if self.include_form_fields:
            for key, value in self._fields_from_form_fields(section, form_fields):
                _set_if_absent(fields, key, value)
        for key, value in self._fields_from_text(section.text_blocks):
            _set_if_absent(fields, key, value)

        return fields

    @staticmethod
    def _fields_from_tables(
        tables: Iterable[TableData],
    ) -> Iterable[tuple[str, FieldValue]]:
        for table in tables:
            # Only key/value tables carry fields.
            if table.column_count != 2:
                continue

            grid: dict[int, dict[int, TableCell]] = {}
            for cell in table.cells:
                grid.setdefault(cell.row_index, {})[cell.col_index] = cell

            for row_index in sorted(grid):
                row = grid[row_index]
                key_cell, value_cell = row.get(0), row.get(1)
                if key_cell is None or value_cell is None:
                    continue
                if not key_cell.text or not value_cell.text:
                    continue
                key = normalize_field_name(key_cell.text)
                if not key:
                    continue
                yield key, FieldValue(
                    value=value_cell.text,
                    source=FieldSource.TABLE,
                    confidence=min(key_cell.confidence, value_cell.confidence),
                    bounding_box=value_cell.bounding_box,
                    raw_text=value_cell.text,
                )

    @staticmethod
    def _fields_from_checkboxes(
        checkboxes: Iterable[CheckboxData],
    ) -> Iterable[tuple[str, FieldValue]]:
        for checkbox in checkboxes:
            key = normalize_field_name(checkbox.associated_text or "checkbox")
            yield key, FieldValue(
                value=checkbox.state is CheckboxState.CHECKED,
                source=FieldSource.CHECKBOX,
                confidence=checkbox.confidence,
                bounding_box=checkbox.bounding_box,
                raw_text=checkbox.associated_text,
            )

    @staticmethod
    def _fields_from_form_fields(
        section: RecognizedSection, form_fields: Iterable[FormField]
    ) -> Iterable[tuple[str, FieldValue]]:
        for form_field in form_fields:
            if not is_in_section(form_field.name_bounding_box, section.bounding_box):
                continue
            key = normalize_field_name(form_field.field_name or "")
            if not key or not form_field.field_value:
                continue
            yield key, FieldValue(
                value=form_field.field_value,
                source=FieldSource.FORM_FIELD,
                confidence=form_field.confidence,
                bounding_box=form_field.value_bounding_box,
                raw_text=form_field.field_value,
            )

    def _fields_from_text(
        self, text_blocks: Iterable[TextBlock]
    ) -> Iterable[tuple[str, FieldValue]]:
        for block in text_blocks:
            text = block.text or ""
            for field_name, pattern in self.tables.field_patterns:
                match = pattern.search(text)
                if not match or not match.groups() or not match.group(1):
                    continue
                yield normalize_field_name(field_name), FieldValue(
                    value=match.group(1).strip(),
                    source=FieldSource.TEXT,
                    confidence=(
                        block.confidence
                        if block.confidence is not None
                        else _DEFAULT_TEXT_FIELD_CONFIDENCE
                    ),
                    bounding_box=block.bounding_box,
                    raw_text=text,
                )

    # ------------------------------------------------------------------
    # Page-level structure
    # ------------------------------------------------------------------

    @staticmethod
    def _determine_layout_style(
        data: ExtractedPageData, page: PageDimensions
    ) -> LayoutStyle:
        if len(data.tables) > len(data.text_blocks):
            return LayoutStyle.TABLE_BASED

        mid_x = page.width / 2
        xs = [tb.bounding_box.x if tb.bounding_box else 0.0 for tb in data.text_blocks]
        if any(x < mid_x for x in xs) and any(x >= mid_x for x in xs):
            return LayoutStyle.MULTI_COLUMN

        return LayoutStyle.SINGLE_COLUMN

    @staticmethod
    def _analyze_page_structure(
        sections: list[RecognizedSection], page: PageDimensions
    ) -> PageStructure:
        narrow = [
            s for s in sections
            if s.bounding_box.width < page.width * _NARROW_SECTION_RATIO
        ]
        return PageStructure(
            has_header=any(s.section_type is SectionType.HEADER for s in sections),
            has_footer=any(s.section_type is SectionType.FOOTER for s in sections),
            column_count=2 if len(narrow) >= len(sections) * 0.5 else 1,
        )
