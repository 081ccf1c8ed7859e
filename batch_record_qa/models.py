"""Core data models for the batch record QA engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, ConfigDict, StrictBool, StrictInt, StringConstraints
from pydantic.alias_generators import to_camel

# Logical page size used when the extraction carries no page dimensions.
DEFAULT_PAGE_WIDTH = 1700.0
DEFAULT_PAGE_HEIGHT = 2200.0

# Wire payloads use camelCase keys; Python code may still pass field names.
WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _iso_timestamp(value: str) -> str:
    datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value


DocumentId = Annotated[str, StringConstraints(min_length=1)]
IsoTimestamp = Annotated[str, AfterValidator(_iso_timestamp)]


class SectionType(Enum):
    """Semantic type of a vertically-bounded page region."""

    MATERIALS_LOG = "materials_log"
    EQUIPMENT_LOG = "equipment_log"
    CIP_SIP_RECORD = "cip_sip_record"
    FILTRATION_STEP = "filtration_step"
    FILLING_LOG = "filling_log"
    INSPECTION_SHEET = "inspection_sheet"
    RECONCILIATION_PAGE = "reconciliation_page"
    ATTACHMENT = "attachment"
    HEADER = "header"
    FOOTER = "footer"
    UNKNOWN = "unknown"


class PageType(Enum):
    """Classification of a whole batch record page."""

    MATERIALS_LOG = "materials_log"
    EQUIPMENT_LOG = "equipment_log"
    CIP_SIP_RECORD = "cip_sip_record"
    FILTRATION_STEP = "filtration_step"
    FILLING_LOG = "filling_log"
    INSPECTION_SHEET = "inspection_sheet"
    RECONCILIATION_PAGE = "reconciliation_page"
    UNKNOWN = "unknown"


class LayoutStyle(Enum):
    SINGLE_COLUMN = "single_column"
    MULTI_COLUMN = "multi_column"
    MIXED = "mixed"  # declared but not produced by the analyzer
    TABLE_BASED = "table_based"


class FieldSource(Enum):
    """Where a section field value was read from."""

    FORM_FIELD = "formField"
    TABLE = "table"
    CHECKBOX = "checkbox"
    HANDWRITTEN = "handwritten"
    TEXT = "text"


class CheckboxState(Enum):
    CHECKED = "checked"
    UNCHECKED = "unchecked"


class IssueType(Enum):
    """Page-sequence integrity problems."""

    MISSING = "missing"
    DUPLICATE = "duplicate"
    OUT_OF_ORDER = "out_of_order"
    CORRUPTED = "corrupted"


class IssueSeverity(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertCategory(Enum):
    """Categories of findings produced by the external validation engine."""

    CALCULATION_ERROR = "calculation_error"
    MISSING_VALUE = "missing_value"
    RANGE_VIOLATION = "range_violation"
    SEQUENCE_ERROR = "sequence_error"
    UNIT_MISMATCH = "unit_mismatch"
    TREND_ANOMALY = "trend_anomaly"
    CONSISTENCY_ERROR = "consistency_error"
    FORMAT_ERROR = "format_error"
    SOP_VIOLATION = "sop_violation"
    DATA_QUALITY = "data_quality"
    DATA_INTEGRITY = "data_integrity"  # strike-offs, corrections, erasures, overwrites


class AlertSeverity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class CheckStatus(Enum):
    PASS = "pass"
    FAIL = "fail"
    NA = "na"


class CheckCategory(Enum):
    """Grouping of QA checkpoints on the compliance report."""

    DISCREPANCIES = "discrepancies"
    MISSING = "missing"
    VIOLATIONS = "violations"
    CALCULATIONS = "calculations"
    INTEGRITY = "integrity"


class ReviewDecision(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Extraction input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in page-pixel units."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2


@dataclass(frozen=True)
class PageDimensions:
    width: float = DEFAULT_PAGE_WIDTH
    height: float = DEFAULT_PAGE_HEIGHT


@dataclass(frozen=True)
class TextBlock:
    """A block of recognized text with optional geometry."""

    text: str = ""
    confidence: float | None = None
    bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class TableCell:
    row_index: StrictInt = 0
    col_index: StrictInt = 0
    text: str = ""
    confidence: float = 0.0
    bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class TableData:
    """A table as a flat list of positioned cells."""

    row_count: StrictInt = 0
    column_count: StrictInt = 0
    cells: tuple[TableCell, ...] = ()
    bounding_box: BoundingBox | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class FormField:
    """A key/value pair detected by the extraction service."""

    field_name: str = ""
    field_value: str = ""
    confidence: float = 0.0
    name_bounding_box: BoundingBox | None = None
    value_bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class CheckboxData:
    state: CheckboxState = CheckboxState.UNCHECKED
    confidence: float = 0.0
    associated_text: str | None = None
    bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class HandwrittenRegion:
    confidence: float = 0.0
    text: str | None = None
    bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class SignatureBlock:
    confidence: float = 0.0
    label: str | None = None
    bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class ExtractedPageData:
    """Everything the extraction service produced for a single page."""

    text_blocks: tuple[TextBlock, ...] = ()
    tables: tuple[TableData, ...] = ()
    form_fields: tuple[FormField, ...] = ()
    checkboxes: tuple[CheckboxData, ...] = ()
    handwritten_regions: tuple[HandwrittenRegion, ...] = ()
    signatures: tuple[SignatureBlock, ...] = ()
    page_dimensions: PageDimensions | None = None


# ---------------------------------------------------------------------------
# Layout analysis
# ---------------------------------------------------------------------------


@dataclass
class FieldValue:
    """A structured field value together with its provenance."""

    value: str | bool | int | float
    source: FieldSource
    confidence: float
    bounding_box: BoundingBox | None = None
    raw_text: str | None = None


@dataclass
class RecognizedSection:
    """A typed page region and the elements that fall inside it."""

    section_type: SectionType
    bounding_box: BoundingBox
    confidence: float
    section_title: str | None = None
    fields: dict[str, FieldValue] = field(default_factory=dict)
    tables: list[TableData] = field(default_factory=list)
    checkboxes: list[CheckboxData] = field(default_factory=list)
    handwritten_notes: list[HandwrittenRegion] = field(default_factory=list)
    signatures: list[SignatureBlock] = field(default_factory=list)
    text_blocks: list[TextBlock] = field(default_factory=list)


@dataclass
class PageStructure:
    has_header: bool
    has_footer: bool
    column_count: int


@dataclass
class LayoutAnalysis:
    sections: list[RecognizedSection]
    layout_style: LayoutStyle
    page_structure: PageStructure


# ---------------------------------------------------------------------------
# Classification and page-sequence integrity
# ---------------------------------------------------------------------------


@dataclass
class ClassificationResult:
    classification: PageType
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class PageRecord:
    """A page as seen by the document-level sequence check."""

    page_number: StrictInt
    text: str = ""
    classification: PageType = PageType.UNKNOWN


@dataclass
class QualityIssue:
    type: IssueType
    severity: IssueSeverity
    description: str
    page_numbers: list[int]


# ---------------------------------------------------------------------------
# QA checklist
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlertSource:
    page_number: StrictInt
    section_type: str | None = None
    field_label: str | None = None


@dataclass(frozen=True)
class ValidationAlert:
    """A single finding from the external validation engine."""

    id: str
    category: AlertCategory
    severity: AlertSeverity
    title: str
    message: str = ""
    details: str | None = None
    rule_id: str | None = None
    source: AlertSource | None = None


@dataclass(frozen=True)
class QAChecklistInput:
    """Alert pool and sub-verification signals for one document."""

    document_id: DocumentId
    all_alerts: tuple[ValidationAlert, ...] = ()
    validation_summary: dict[str, Any] | None = None
    page_results: tuple[dict[str, Any], ...] = ()
    has_bmr_verification: StrictBool = False
    bmr_discrepancy_count: StrictInt = 0
    has_raw_material_verification: StrictBool = False
    raw_material_out_of_limits: StrictInt = 0
    has_batch_allocation: StrictBool = False
    batch_allocation_valid: StrictBool = False
    total_pages: StrictInt = 0
    has_signatures: StrictBool = False
    missing_signature_count: StrictInt = 0
    has_user_declared_fields: StrictBool = False
    user_declared_mismatch_count: StrictInt = 0


@dataclass
class QACheckItem:
    id: str
    check_number: StrictInt
    title: str
    description: str
    status: CheckStatus
    category: CheckCategory
    related_alert_count: StrictInt
    alert_category: AlertCategory | None = None
    details: str | None = None
    related_alerts: list[ValidationAlert] | None = None


@dataclass
class QAChecklist:
    document_id: str
    evaluated_at: str
    total_checks: StrictInt
    passed_checks: StrictInt
    failed_checks: StrictInt
    na_checks: StrictInt
    items: list[QACheckItem]


@dataclass(frozen=True)
class AlertReview:
    """A reviewer's decision on a single alert."""

    alert_id: str
    reviewer_id: str
    decision: ReviewDecision
    created_at: IsoTimestamp
    comment: str = ""


@dataclass
class ReportItem:
    """A checklist item as it appears on a rendered compliance report."""

    item: QACheckItem
    effective_status: CheckStatus
    approved_alert_ids: list[str] = field(default_factory=list)


@dataclass
class ComplianceReport:
    document_id: str
    evaluated_at: str
    items: list[ReportItem]
    total_checks: int
    passed_checks: int
    failed_checks: int
    na_checks: int
    pass_rate: int
    overall_status: str


# ---------------------------------------------------------------------------
# Configuration and pipeline output
# ---------------------------------------------------------------------------


@dataclass
class ProcessingConfig:
    """Configuration for document processing."""

    chunk_size: int = 50
    max_workers: int = 4
    include_form_fields: bool = False
    verbose: bool = False


@dataclass
class ClassifierConfig:
    """Configuration for the AI page classifier."""

    api_key: str | None = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    timeout: float = 30.0
    max_text_chars: int = 2000

    @classmethod
    def from_env(cls) -> ClassifierConfig:
        return cls(
            api_key=os.environ.get("OPENAI_API_KEY") or None,
            model=os.environ.get("BATCH_QA_OPENAI_MODEL", "gpt-4o-mini"),
        )


@dataclass
class PageAnalysis:
    page_number: int
    classification: ClassificationResult
    layout: LayoutAnalysis


@dataclass
class DocumentAnalysis:
    pages: list[PageAnalysis]
    quality_issues: list[QualityIssue]


@dataclass
class ProcessingSummary:
    """Summary of a completed processing run."""

    total_pages: int
    pages_processed: int
    pages_skipped: int
    warnings: list[str]
    processing_time_seconds: float


for _cls in (
    BoundingBox, PageDimensions, TextBlock, TableCell, TableData, FormField,
    CheckboxData, HandwrittenRegion, SignatureBlock, ExtractedPageData,
    FieldValue, RecognizedSection, PageStructure, LayoutAnalysis,
    ClassificationResult, PageRecord, QualityIssue,
    AlertSource, ValidationAlert, QAChecklistInput, QACheckItem, QAChecklist, AlertReview,
    ReportItem, ComplianceReport, PageAnalysis, DocumentAnalysis, ProcessingSummary,
):
    _cls.__pydantic_config__ = WIRE_CONFIG
