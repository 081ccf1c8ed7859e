"""Tests for the pattern tables and per-site overrides."""

from __future__ import annotations

import json

import pytest

from batch_record_qa.models import PageType, SectionType
from batch_record_qa.patterns import (
    DEFAULT_PATTERN_TABLES,
    apply_overrides,
    load_pattern_tables,
)


def _field_pattern(tables, name):
    return dict(tables.field_patterns)[name]


class TestDefaultTables:
    def test_section_group_order(self):
        order = [section_type for section_type, _ in DEFAULT_PATTERN_TABLES.section_patterns]
        assert order[0] == SectionType.MATERIALS_LOG
        assert order[-2:] == [SectionType.HEADER, SectionType.FOOTER]
        assert SectionType.UNKNOWN not in order

    def test_field_value_is_first_group(self):
        match = _field_pattern(DEFAULT_PATTERN_TABLES, "batchNumber").search("Batch No: AB-1234")
        assert match.group(1) == "AB-1234"

    def test_temperature_captures_value(self):
        match = _field_pattern(DEFAULT_PATTERN_TABLES, "temperature").search("Temp: 37.5 °C")
        assert match.group(1) == "37.5"

    def test_descriptions_cover_every_page_type(self):
        assert set(DEFAULT_PATTERN_TABLES.page_type_descriptions) == set(PageType)

    def test_descriptions_are_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_PATTERN_TABLES.page_type_descriptions[PageType.UNKNOWN] = "changed"


class TestApplyOverrides:
    def test_section_override_keeps_group_order(self):
        tables = apply_overrides(
            DEFAULT_PATTERN_TABLES, {"sectionPatterns": {"equipment_log": [r"autoclave\s+log"]}}
        )
        order = [section_type for section_type, _ in tables.section_patterns]
        assert order == [section_type for section_type, _ in DEFAULT_PATTERN_TABLES.section_patterns]

        patterns = dict(tables.section_patterns)[SectionType.EQUIPMENT_LOG]
        assert patterns[0].search("AUTOCLAVE LOG")
        assert not any(p.search("equipment used") for p in patterns)

    def test_field_override_replaces_and_appends(self):
        tables = apply_overrides(
            DEFAULT_PATTERN_TABLES,
            {"fieldPatterns": {"lotNumber": r"lot[\s:]*(\w+)", "ph": r"ph[\s:]*(\d+\.\d+)"}},
        )
        names = [name for name, _ in tables.field_patterns]
        assert names[-1] == "ph"
        assert names.count("lotNumber") == 1
        assert _field_pattern(tables, "lotNumber").search("Lot: X9").group(1) == "X9"

    def test_keyword_groups_replaced(self):
        tables = apply_overrides(
            DEFAULT_PATTERN_TABLES,
            {"keywordGroups": [{"pageType": "filling_log", "keywords": ["Stopper"]}]},
        )
        assert len(tables.keyword_groups) == 1
        group = tables.keyword_groups[0]
        assert group.keywords == ("stopper",)
        assert group.confidence == 70
        assert group.reasoning == "Contains filling_log keywords"

    def test_defaults_untouched(self):
        apply_overrides(DEFAULT_PATTERN_TABLES, {"keywordGroups": []})
        assert len(DEFAULT_PATTERN_TABLES.keyword_groups) == 7

    def test_invalid_regex(self):
        with pytest.raises(ValueError, match="Invalid pattern"):
            apply_overrides(DEFAULT_PATTERN_TABLES, {"fieldPatterns": {"bad": "(unclosed"}})

    def test_unknown_section_type(self):
        with pytest.raises(ValueError):
            apply_overrides(DEFAULT_PATTERN_TABLES, {"sectionPatterns": {"packaging": ["x"]}})

    def test_keyword_group_without_keywords(self):
        with pytest.raises(ValueError, match="Malformed"):
            apply_overrides(DEFAULT_PATTERN_TABLES, {"keywordGroups": [{"pageType": "filling_log"}]})


class TestLoadPatternTables:
    def test_no_path_returns_defaults(self):
        assert load_pattern_tables() is DEFAULT_PATTERN_TABLES

    def test_loads_override_file(self, tmp_path):
        path = tmp_path / "site.json"
        path.write_text(json.dumps({
            "pageTypeDescriptions": {"filling_log": "Aseptic filling on line 3"},
        }))
        tables = load_pattern_tables(str(path))
        assert tables.page_type_descriptions[PageType.FILLING_LOG] == "Aseptic filling on line 3"
        assert tables.page_type_descriptions[PageType.UNKNOWN] == (
            DEFAULT_PATTERN_TABLES.page_type_descriptions[PageType.UNKNOWN]
        )

    def test_file_must_hold_object(self, tmp_path):
        path = tmp_path / "site.json"
        path.write_text("[]")
        with pytest.raises(ValueError, match="JSON object"):
            load_pattern_tables(str(path))
