"""QA checklist engine evaluating twelve fixed compliance checkpoints.

Each checkpoint pairs an alert selector with an evaluator. Evaluators prefer a
dedicated sub-verification signal when that workflow ran and otherwise fall
back to the generic alert pool.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from batch_record_qa.models import (
    AlertCategory,
    CheckCategory,
    CheckStatus,
    QACheckItem,
    QAChecklist,
    QAChecklistInput,
    ValidationAlert,
)

USER_DECLARED_RULE_ID = "user_declared_verification"
PAGE_COMPLETENESS_RULE_ID = "page_completeness_missing"


@dataclass(frozen=True)
class CheckOutcome:
    status: CheckStatus
    count: int
    details: str | None


AlertSelector = Callable[[QAChecklistInput], list[ValidationAlert]]
Evaluator = Callable[[QAChecklistInput], CheckOutcome]


@dataclass(frozen=True)
class CheckDefinition:
    id: str
    check_number: int
    title: str
    description: str
    category: CheckCategory
    alert_category: AlertCategory | None
    select_alerts: AlertSelector
    evaluate: Evaluator


def _passed(details: str) -> CheckOutcome:
    return CheckOutcome(CheckStatus.PASS, 0, details)


def _failed(count: int, details: str) -> CheckOutcome:
    return CheckOutcome(CheckStatus.FAIL, count, details)


def _title_has(alert: ValidationAlert, *words: str) -> bool:
    title = alert.title.lower()
    return any(word in title for word in words)


def _alerts_where(
    predicate: Callable[[ValidationAlert], bool],
) -> AlertSelector:
    def select(data: QAChecklistInput) -> list[ValidationAlert]:
        return [a for a in data.all_alerts if predicate(a)]

    return select


def _in_categories(*categories: AlertCategory) -> Callable[[ValidationAlert], bool]:
    return lambda a: a.category in categories


# ---------------------------------------------------------------------------
# Alert selectors
# ---------------------------------------------------------------------------

_consistency_alerts = _alerts_where(
    _in_categories(AlertCategory.CONSISTENCY_ERROR, AlertCategory.DATA_QUALITY)
)
_quantity_alerts = _alerts_where(
    _in_categories(AlertCategory.RANGE_VIOLATION, AlertCategory.DATA_QUALITY)
)
_range_alerts = _alerts_where(_in_categories(AlertCategory.RANGE_VIOLATION))
_batch_identity_alerts = _alerts_where(
    lambda a: a.category in (AlertCategory.MISSING_VALUE, AlertCategory.CONSISTENCY_ERROR)
    and _title_has(a, "batch", "product name", "lot")
)
_missing_page_alerts = _alerts_where(
    lambda a: a.rule_id == PAGE_COMPLETENESS_RULE_ID or _title_has(a, "missing page")
)
_date_alerts = _alerts_where(
    lambda a: a.category is AlertCategory.SEQUENCE_ERROR
    or (
        _title_has(a, "date")
        and a.category in (AlertCategory.MISSING_VALUE, AlertCategory.RANGE_VIOLATION)
    )
)
_signature_alerts = _alerts_where(lambda a: _title_has(a, "signature", "missing sign"))
_calculation_alerts = _alerts_where(
    _in_categories(AlertCategory.CALCULATION_ERROR, AlertCategory.RANGE_VIOLATION)
)
_overwrite_alerts = _alerts_where(
    lambda a: a.category is AlertCategory.DATA_INTEGRITY
    and _title_has(a, "overwrite", "strike")
)
_correction_alerts = _alerts_where(
    lambda a: a.category is AlertCategory.DATA_INTEGRITY
    and _title_has(a, "correction", "red", "erasure")
)
_review_signature_alerts = _alerts_where(
    lambda a: (_title_has(a, "signature") and _title_has(a, "review"))
    or (a.category is AlertCategory.MISSING_VALUE and _title_has(a, "verified by", "approved by"))
)
_integrity_alerts = _alerts_where(_in_categories(AlertCategory.DATA_INTEGRITY))
_user_declared_alerts = _alerts_where(lambda a: a.rule_id == USER_DECLARED_RULE_ID)


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------


def _evaluate_bmr_match(data: QAChecklistInput) -> CheckOutcome:
    if not data.has_bmr_verification:
        alerts = _consistency_alerts(data)
        if alerts:
            return _failed(len(alerts), f"{len(alerts)} consistency issues detected")
        return _passed("No BMR/MPC discrepancies detected")
    if data.bmr_discrepancy_count > 0:
        return _failed(
            data.bmr_discrepancy_count,
            f"{data.bmr_discrepancy_count} discrepancies found between BMR and MPC",
        )
    return _passed("BMR matches Master Product Card")


def _evaluate_raw_materials(data: QAChecklistInput) -> CheckOutcome:
    if not data.has_raw_material_verification:
        alerts = _range_alerts(data)
        if alerts:
            return _failed(len(alerts), f"{len(alerts)} quantity range violations detected")
        return _passed("No material quantity issues detected")
    if data.raw_material_out_of_limits > 0:
        return _failed(
            data.raw_material_out_of_limits,
            f"{data.raw_material_out_of_limits} materials outside approved limits",
        )
    return _passed("All materials within approved limits")


def _evaluate_batch_identity(data: QAChecklistInput) -> CheckOutcome:
    alerts = _batch_identity_alerts(data)
    if alerts:
        return _failed(len(alerts), f"{len(alerts)} batch/product name issues found")
    return _passed("Batch number consistent across pages")


def _evaluate_page_count(data: QAChecklistInput) -> CheckOutcome:
    alerts = _missing_page_alerts(data)
    if alerts:
        return _failed(len(alerts), "Document has missing pages")
    return _passed(f"All {data.total_pages} pages present")


def _evaluate_dates(data: QAChecklistInput) -> CheckOutcome:
    alerts = _date_alerts(data)
    if not data.has_batch_allocation and not alerts:
        return _passed("No date sequence issues detected")
    if not data.batch_allocation_valid or alerts:
        allocation_failed = data.has_batch_allocation and not data.batch_allocation_valid
        total = len(alerts) + (1 if allocation_failed else 0)
        return _failed(total, f"{total} date/shelf life issues found")
    return _passed("Dates and shelf life verified")


def _evaluate_process_signatures(data: QAChecklistInput) -> CheckOutcome:
    alerts = _signature_alerts(data)
    if alerts:
        return _failed(len(alerts), f"{len(alerts)} missing signatures detected")
    if data.missing_signature_count > 0:
        return _failed(
            data.missing_signature_count,
            f"{data.missing_signature_count} missing signatures",
        )
    return _passed("All required signatures present")


def _evaluate_in_process_limits(data: QAChecklistInput) -> CheckOutcome:
    alerts = _calculation_alerts(data)
    if alerts:
        return _failed(len(alerts), f"{len(alerts)} calculation/range issues found")
    return _passed("All calculations and parameters within limits")


def _evaluate_overwrites(data: QAChecklistInput) -> CheckOutcome:
    alerts = _overwrite_alerts(data)
    if alerts:
        return _failed(len(alerts), f"{len(alerts)} overwrite/strike-through issues detected")
    return _passed("No unauthorized overwrites detected")


def _evaluate_corrections(data: QAChecklistInput) -> CheckOutcome:
    alerts = _correction_alerts(data)
    if alerts:
        return _failed(len(alerts), f"{len(alerts)} correction/erasure issues found")
    return _passed("No unsigned corrections detected")


def _evaluate_review_signed(data: QAChecklistInput) -> CheckOutcome:
    alerts = _review_signature_alerts(data)
    if alerts:
        return _failed(len(alerts), f"{len(alerts)} missing review signatures")
    if data.missing_signature_count > 3:
        return _failed(1, "Multiple missing signatures suggest incomplete review")
    return _passed("Batch record appears reviewed and signed")


def _evaluate_data_integrity(data: QAChecklistInput) -> CheckOutcome:
    alerts = _integrity_alerts(data)
    if alerts:
        return _failed(len(alerts), f"{len(alerts)} data integrity issues detected")
    return _passed("No data integrity issues observed")


def _evaluate_user_declared(data: QAChecklistInput) -> CheckOutcome:
    if not data.has_user_declared_fields:
        return CheckOutcome(
            CheckStatus.NA, 0, "No user-declared batch details were provided at upload"
        )
    alerts = _user_declared_alerts(data)
    if alerts:
        return _failed(len(alerts), f"{len(alerts)} field(s) do not match user-declared values")
    if data.user_declared_mismatch_count > 0:
        return _failed(
            data.user_declared_mismatch_count,
            f"{data.user_declared_mismatch_count} field(s) do not match",
        )
    return _passed("All user-declared batch details match the document")


QA_CHECK_DEFINITIONS: tuple[CheckDefinition, ...] = (
    CheckDefinition(
        id="qa_01",
        check_number=1,
        title="BMR matches Master Product Card",
        description="BMR (Manufacturing) is an accurate reproduction of current Master Product Card.",
        category=CheckCategory.DISCREPANCIES,
        alert_category=None,
        select_alerts=_consistency_alerts,
        evaluate=_evaluate_bmr_match,
    ),
    CheckDefinition(
        id="qa_03",
        check_number=2,
        title="Raw materials per standard quantity",
        description="All raw materials are used as per standard quantity (BoM).",
        category=CheckCategory.DISCREPANCIES,
        alert_category=AlertCategory.DATA_QUALITY,
        select_alerts=_quantity_alerts,
        evaluate=_evaluate_raw_materials,
    ),
    CheckDefinition(
        id="qa_04",
        check_number=3,
        title="Product name & Batch No. on all pages",
        description="Correct product name and Batch No. mentioned on all the pages of documents.",
        category=CheckCategory.MISSING,
        alert_category=AlertCategory.MISSING_VALUE,
        select_alerts=_batch_identity_alerts,
        evaluate=_evaluate_batch_identity,
    ),
    CheckDefinition(
        id="qa_05",
        check_number=4,
        title="Number of pages tallying",
        description="Number of pages is tallying with the specified numbers as issued.",
        category=CheckCategory.MISSING,
        alert_category=AlertCategory.MISSING_VALUE,
        select_alerts=_missing_page_alerts,
        evaluate=_evaluate_page_count,
    ),
    CheckDefinition(
        id="qa_07",
        check_number=5,
        title="Mfg/Exp dates & shelf life correct",
        description=(
            "Mfg. and Exp. date of product is correct and shelf life is matching "
            "with the Batch no. allocation log."
        ),
        category=CheckCategory.VIOLATIONS,
        alert_category=AlertCategory.SEQUENCE_ERROR,
        select_alerts=_date_alerts,
        evaluate=_evaluate_dates,
    ),
    CheckDefinition(
        id="qa_08",
        check_number=6,
        title="Process details with signatures & dates",
        description=(
            "Manufacturing process details are recorded properly in the relevant "
            "pages with signature, date and time."
        ),
        category=CheckCategory.MISSING,
        alert_category=AlertCategory.MISSING_VALUE,
        select_alerts=_signature_alerts,
        evaluate=_evaluate_process_signatures,
    ),
    CheckDefinition(
        id="qa_10",
        check_number=7,
        title="In-process findings within limits",
        description="All in-process findings are within the limit of the specified set parameters.",
        category=CheckCategory.CALCULATIONS,
        alert_category=AlertCategory.CALCULATION_ERROR,
        select_alerts=_calculation_alerts,
        evaluate=_evaluate_in_process_limits,
    ),
    CheckDefinition(
        id="qa_11",
        check_number=8,
        title="Overwrites corrected & signed per SOP",
        description="Any overwriting in the document is corrected and signed as per SOP.",
        category=CheckCategory.INTEGRITY,
        alert_category=AlertCategory.DATA_INTEGRITY,
        select_alerts=_overwrite_alerts,
        evaluate=_evaluate_overwrites,
    ),
    CheckDefinition(
        id="qa_18",
        check_number=9,
        title="Corrections signed by concerned person",
        description="Any corrections in the document are corrected and signed by concerned person.",
        category=CheckCategory.INTEGRITY,
        alert_category=AlertCategory.DATA_INTEGRITY,
        select_alerts=_correction_alerts,
        evaluate=_evaluate_corrections,
    ),
    CheckDefinition(
        id="qa_23",
        check_number=10,
        title="Batch record reviewed & signed",
        description="Batch record reviewed and signed by approved person from Production department.",
        category=CheckCategory.MISSING,
        alert_category=AlertCategory.MISSING_VALUE,
        select_alerts=_review_signature_alerts,
        evaluate=_evaluate_review_signed,
    ),
    CheckDefinition(
        id="qa_24",
        check_number=11,
        title="No data integrity issues",
        description=(
            "Any data integrity issues observed (Any alteration of data happened "
            "after completion of BMR entry)."
        ),
        category=CheckCategory.INTEGRITY,
        alert_category=AlertCategory.DATA_INTEGRITY,
        select_alerts=_integrity_alerts,
        evaluate=_evaluate_data_integrity,
    ),
    CheckDefinition(
        id="qa_25",
        check_number=12,
        title="User-declared batch details verified",
        description=(
            "Product Name, Start/End Date, Batch No., Manufacturing Date, and Expiry "
            "Date match user-declared values entered at upload."
        ),
        category=CheckCategory.DISCREPANCIES,
        alert_category=AlertCategory.CONSISTENCY_ERROR,
        select_alerts=_user_declared_alerts,
        evaluate=_evaluate_user_declared,
    ),
)


def evaluate_qa_checklist(
    data: QAChecklistInput,
    definitions: Sequence[CheckDefinition] = QA_CHECK_DEFINITIONS,
    evaluated_at: str | None = None,
) -> QAChecklist:
    """Evaluate every checkpoint against the document's alert pool and signals.

    Only failing checkpoints carry their related alerts. Apart from
    ``evaluated_at`` the result depends on the inputs alone.
    """
    items: list[QACheckItem] = []
    for definition in definitions:
        outcome = definition.evaluate(data)
        related = (
            definition.select_alerts(data) if outcome.status is CheckStatus.FAIL else []
        )
        items.append(
            QACheckItem(
                id=definition.id,
                check_number=definition.check_number,
                title=definition.title,
                description=definition.description,
                status=outcome.status,
                category=definition.category,
                alert_category=definition.alert_category,
                related_alert_count=outcome.count,
                details=outcome.details,
                related_alerts=related or None,
            )
        )

    return QAChecklist(
        document_id=data.document_id,
        evaluated_at=evaluated_at or datetime.now(timezone.utc).isoformat(),
        total_checks=len(items),
        passed_checks=sum(1 for i in items if i.status is CheckStatus.PASS),
        failed_checks=sum(1 for i in items if i.status is CheckStatus.FAIL),
        na_checks=sum(1 for i in items if i.status is CheckStatus.NA),
        items=items,
    )
