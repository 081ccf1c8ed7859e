"""Tests for the QA checklist engine."""

from __future__ import annotations

import dataclasses
from datetime import datetime

from hypothesis import given, settings
from hypothesis import strategies as st

from batch_record_qa.models import (
    AlertCategory,
    AlertSeverity,
    CheckCategory,
    CheckStatus,
    QAChecklistInput,
    ValidationAlert,
)
from batch_record_qa.qa_checklist import (
    PAGE_COMPLETENESS_RULE_ID,
    QA_CHECK_DEFINITIONS,
    USER_DECLARED_RULE_ID,
    CheckDefinition,
    CheckOutcome,
    evaluate_qa_checklist,
)

EVALUATED_AT = "2024-05-01T12:00:00+00:00"


def _alert(
    alert_id: str,
    category: AlertCategory,
    title: str,
    rule_id: str | None = None,
) -> ValidationAlert:
    return ValidationAlert(
        id=alert_id,
        category=category,
        severity=AlertSeverity.MEDIUM,
        title=title,
        message=title,
        rule_id=rule_id,
    )


def _evaluate(**kwargs):
    alerts = tuple(kwargs.pop("alerts", ()))
    data = QAChecklistInput(document_id="DOC-1", all_alerts=alerts, **kwargs)
    return evaluate_qa_checklist(data, evaluated_at=EVALUATED_AT)


def _item(checklist, check_number: int):
    return next(i for i in checklist.items if i.check_number == check_number)


class TestChecklistShape:
    def test_twelve_items_in_order(self):
        checklist = _evaluate()
        assert [i.check_number for i in checklist.items] == list(range(1, 13))
        assert [i.id for i in checklist.items] == [
            "qa_01", "qa_03", "qa_04", "qa_05", "qa_07", "qa_08",
            "qa_10", "qa_11", "qa_18", "qa_23", "qa_24", "qa_25",
        ]

    def test_clean_document(self):
        checklist = _evaluate(total_pages=8)

        assert checklist.document_id == "DOC-1"
        assert checklist.evaluated_at == EVALUATED_AT
        assert checklist.total_checks == 12
        assert checklist.passed_checks == 11
        assert checklist.failed_checks == 0
        assert checklist.na_checks == 1
        assert _item(checklist, 4).details == "All 8 pages present"
        assert all(i.related_alerts is None for i in checklist.items)

    def test_categories(self):
        checklist = _evaluate()
        assert _item(checklist, 1).category == CheckCategory.DISCREPANCIES
        assert _item(checklist, 5).category == CheckCategory.VIOLATIONS
        assert _item(checklist, 7).category == CheckCategory.CALCULATIONS
        assert _item(checklist, 11).category == CheckCategory.INTEGRITY
        assert _item(checklist, 1).alert_category is None
        assert _item(checklist, 12).alert_category == AlertCategory.CONSISTENCY_ERROR

    def test_default_timestamp_is_iso(self):
        checklist = evaluate_qa_checklist(QAChecklistInput(document_id="DOC-1"))
        assert datetime.fromisoformat(checklist.evaluated_at).tzinfo is not None

    def test_repeatable_for_fixed_timestamp(self):
        alerts = [_alert("a1", AlertCategory.DATA_INTEGRITY, "Overwrite detected")]
        assert _evaluate(alerts=alerts) == _evaluate(alerts=alerts)


class TestBmrMatch:
    def test_consistency_alerts_fail_without_verification(self):
        alert = _alert("a1", AlertCategory.CONSISTENCY_ERROR, "Value differs from MPC")
        item = _item(_evaluate(alerts=[alert]), 1)

        assert item.status == CheckStatus.FAIL
        assert item.related_alert_count == 1
        assert item.details == "1 consistency issues detected"
        assert item.related_alerts == [alert]

    def test_verification_signal_takes_precedence(self):
        alert = _alert("a1", AlertCategory.CONSISTENCY_ERROR, "Value differs from MPC")
        item = _item(_evaluate(alerts=[alert], has_bmr_verification=True), 1)

        assert item.status == CheckStatus.PASS
        assert item.details == "BMR matches Master Product Card"
        assert item.related_alerts is None

    def test_verification_discrepancies(self):
        item = _item(_evaluate(has_bmr_verification=True, bmr_discrepancy_count=3), 1)

        assert item.status == CheckStatus.FAIL
        assert item.related_alert_count == 3
        assert item.details == "3 discrepancies found between BMR and MPC"
        assert item.related_alerts is None


class TestRawMaterials:
    def test_range_violation_without_verification(self):
        alerts = [
            _alert("a1", AlertCategory.RANGE_VIOLATION, "Quantity above limit"),
            _alert("a2", AlertCategory.DATA_QUALITY, "Low confidence reading"),
        ]
        item = _item(_evaluate(alerts=alerts), 2)

        assert item.status == CheckStatus.FAIL
        assert item.related_alert_count == 1
        assert item.details == "1 quantity range violations detected"
        # Attached alerts use the wider quantity selector.
        assert [a.id for a in item.related_alerts] == ["a1", "a2"]

    def test_out_of_limits_from_verification(self):
        item = _item(_evaluate(has_raw_material_verification=True, raw_material_out_of_limits=2), 2)
        assert item.status == CheckStatus.FAIL
        assert item.details == "2 materials outside approved limits"

    def test_verified_within_limits(self):
        item = _item(_evaluate(has_raw_material_verification=True), 2)
        assert item.status == CheckStatus.PASS
        assert item.details == "All materials within approved limits"


class TestBatchIdentity:
    def test_batch_number_alert(self):
        alert = _alert("a1", AlertCategory.MISSING_VALUE, "Batch number missing on page 3")
        item = _item(_evaluate(alerts=[alert]), 3)
        assert item.status == CheckStatus.FAIL
        assert item.details == "1 batch/product name issues found"

    def test_unrelated_missing_value_ignored(self):
        alert = _alert("a1", AlertCategory.MISSING_VALUE, "Temperature not recorded")
        item = _item(_evaluate(alerts=[alert]), 3)
        assert item.status == CheckStatus.PASS
        assert item.details == "Batch number consistent across pages"


class TestPageCount:
    def test_page_completeness_rule(self):
        alert = _alert("a1", AlertCategory.MISSING_VALUE, "Pages incomplete", PAGE_COMPLETENESS_RULE_ID)
        item = _item(_evaluate(alerts=[alert], total_pages=10), 4)
        assert item.status == CheckStatus.FAIL
        assert item.related_alert_count == 1
        assert item.details == "Document has missing pages"

    def test_missing_page_title(self):
        alert = _alert("a1", AlertCategory.SOP_VIOLATION, "Missing page 4")
        assert _item(_evaluate(alerts=[alert]), 4).status == CheckStatus.FAIL


class TestDates:
    def test_no_allocation_and_no_alerts(self):
        item = _item(_evaluate(), 5)
        assert item.status == CheckStatus.PASS
        assert item.details == "No date sequence issues detected"

    def test_invalid_allocation(self):
        item = _item(_evaluate(has_batch_allocation=True, batch_allocation_valid=False), 5)
        assert item.status == CheckStatus.FAIL
        assert item.related_alert_count == 1
        assert item.details == "1 date/shelf life issues found"

    def test_invalid_allocation_adds_to_alerts(self):
        alert = _alert("a1", AlertCategory.SEQUENCE_ERROR, "Step dates out of order")
        item = _item(
            _evaluate(alerts=[alert], has_batch_allocation=True, batch_allocation_valid=False), 5
        )
        assert item.related_alert_count == 2
        assert item.details == "2 date/shelf life issues found"

    def test_date_alerts_without_allocation(self):
        alert = _alert("a1", AlertCategory.RANGE_VIOLATION, "Expiry date beyond shelf life")
        item = _item(_evaluate(alerts=[alert]), 5)
        assert item.status == CheckStatus.FAIL
        assert item.related_alert_count == 1

    def test_valid_allocation(self):
        item = _item(_evaluate(has_batch_allocation=True, batch_allocation_valid=True), 5)
        assert item.status == CheckStatus.PASS
        assert item.details == "Dates and shelf life verified"


class TestSignatures:
    def test_signature_alert(self):
        alert = _alert("a1", AlertCategory.MISSING_VALUE, "Operator signature missing")
        item = _item(_evaluate(alerts=[alert]), 6)
        assert item.status == CheckStatus.FAIL
        assert item.details == "1 missing signatures detected"

    def test_missing_signature_count(self):
        item = _item(_evaluate(has_signatures=True, missing_signature_count=2), 6)
        assert item.status == CheckStatus.FAIL
        assert item.related_alert_count == 2
        assert item.details == "2 missing signatures"

    def test_review_signature_alert(self):
        alert = _alert("a1", AlertCategory.MISSING_VALUE, "Review signature absent")
        checklist = _evaluate(alerts=[alert])
        assert _item(checklist, 10).status == CheckStatus.FAIL
        assert _item(checklist, 10).details == "1 missing review signatures"

    def test_approved_by_missing(self):
        alert = _alert("a1", AlertCategory.MISSING_VALUE, "Approved by field empty")
        assert _item(_evaluate(alerts=[alert]), 10).status == CheckStatus.FAIL

    def test_many_missing_signatures_suggest_incomplete_review(self):
        item = _item(_evaluate(missing_signature_count=4), 10)
        assert item.status == CheckStatus.FAIL
        assert item.related_alert_count == 1
        assert item.details == "Multiple missing signatures suggest incomplete review"

    def test_three_missing_signatures_do_not_fail_review(self):
        item = _item(_evaluate(missing_signature_count=3), 10)
        assert item.status == CheckStatus.PASS
        assert item.details == "Batch record appears reviewed and signed"


class TestLimitsAndIntegrity:
    def test_calculation_error(self):
        alert = _alert("a1", AlertCategory.CALCULATION_ERROR, "Yield calculation wrong")
        item = _item(_evaluate(alerts=[alert]), 7)
        assert item.status == CheckStatus.FAIL
        assert item.details == "1 calculation/range issues found"

    def test_overwrite(self):
        alert = _alert("a1", AlertCategory.DATA_INTEGRITY, "Overwrite detected")
        checklist = _evaluate(alerts=[alert])

        assert _item(checklist, 8).status == CheckStatus.FAIL
        assert _item(checklist, 8).details == "1 overwrite/strike-through issues detected"
        assert _item(checklist, 9).status == CheckStatus.PASS
        assert _item(checklist, 11).status == CheckStatus.FAIL
        assert _item(checklist, 11).details == "1 data integrity issues detected"

    def test_correction(self):
        alert = _alert("a1", AlertCategory.DATA_INTEGRITY, "Unsigned correction")
        checklist = _evaluate(alerts=[alert])

        assert _item(checklist, 8).status == CheckStatus.PASS
        assert _item(checklist, 9).status == CheckStatus.FAIL
        assert _item(checklist, 9).details == "1 correction/erasure issues found"

    def test_overwrite_title_in_other_category_ignored(self):
        alert = _alert("a1", AlertCategory.FORMAT_ERROR, "Overwrite detected")
        assert _item(_evaluate(alerts=[alert]), 8).status == CheckStatus.PASS


class TestUserDeclared:
    def test_not_applicable_without_declared_fields(self):
        alert = _alert("a1", AlertCategory.CONSISTENCY_ERROR, "Batch mismatch", USER_DECLARED_RULE_ID)
        item = _item(_evaluate(alerts=[alert]), 12)

        assert item.status == CheckStatus.NA
        assert item.related_alert_count == 0
        assert item.details == "No user-declared batch details were provided at upload"
        assert item.related_alerts is None

    def test_declared_field_alert(self):
        alert = _alert("a1", AlertCategory.CONSISTENCY_ERROR, "Expiry mismatch", USER_DECLARED_RULE_ID)
        item = _item(_evaluate(alerts=[alert], has_user_declared_fields=True), 12)

        assert item.status == CheckStatus.FAIL
        assert item.details == "1 field(s) do not match user-declared values"
        assert item.related_alerts == [alert]

    def test_mismatch_count(self):
        item = _item(
            _evaluate(has_user_declared_fields=True, user_declared_mismatch_count=2), 12
        )
        assert item.status == CheckStatus.FAIL
        assert item.details == "2 field(s) do not match"

    def test_all_match(self):
        item = _item(_evaluate(has_user_declared_fields=True), 12)
        assert item.status == CheckStatus.PASS
        assert item.details == "All user-declared batch details match the document"


class TestCustomDefinitions:
    def test_definitions_can_be_replaced(self):
        always_na = CheckDefinition(
            id="site_01",
            check_number=1,
            title="Site specific check",
            description="Local SOP check.",
            category=CheckCategory.MISSING,
            alert_category=None,
            select_alerts=lambda data: list(data.all_alerts),
            evaluate=lambda data: CheckOutcome(CheckStatus.NA, 0, None),
        )
        checklist = evaluate_qa_checklist(
            QAChecklistInput(document_id="DOC-1"), definitions=[always_na], evaluated_at=EVALUATED_AT
        )

        assert checklist.total_checks == 1
        assert checklist.na_checks == 1
        assert checklist.items[0].id == "site_01"

    def test_definition_table_is_immutable(self):
        assert isinstance(QA_CHECK_DEFINITIONS, tuple)
        assert dataclasses.is_dataclass(QA_CHECK_DEFINITIONS[0])


_TITLES = [
    "Batch number missing",
    "Operator signature missing",
    "Review signature missing",
    "Overwrite detected",
    "Unsigned correction",
    "Manufacturing date invalid",
    "Missing page 3",
    "Temperature out of range",
]

_alerts = st.builds(
    ValidationAlert,
    id=st.text(alphabet="abc123", min_size=1, max_size=4),
    category=st.sampled_from(AlertCategory),
    severity=st.sampled_from(AlertSeverity),
    title=st.sampled_from(_TITLES),
    message=st.just(""),
    rule_id=st.sampled_from([None, USER_DECLARED_RULE_ID, PAGE_COMPLETENESS_RULE_ID]),
)

_inputs = st.builds(
    QAChecklistInput,
    document_id=st.just("DOC-1"),
    all_alerts=st.lists(_alerts, max_size=12).map(tuple),
    has_bmr_verification=st.booleans(),
    bmr_discrepancy_count=st.integers(min_value=0, max_value=5),
    has_raw_material_verification=st.booleans(),
    raw_material_out_of_limits=st.integers(min_value=0, max_value=5),
    has_batch_allocation=st.booleans(),
    batch_allocation_valid=st.booleans(),
    total_pages=st.integers(min_value=0, max_value=50),
    has_signatures=st.booleans(),
    missing_signature_count=st.integers(min_value=0, max_value=6),
    has_user_declared_fields=st.booleans(),
    user_declared_mismatch_count=st.integers(min_value=0, max_value=3),
)


class TestChecklistProperties:
    @settings(max_examples=100)
    @given(data=_inputs)
    def test_counts_add_up(self, data):
        checklist = evaluate_qa_checklist(data, evaluated_at=EVALUATED_AT)

        assert checklist.total_checks == 12
        assert (
            checklist.passed_checks + checklist.failed_checks + checklist.na_checks
            == checklist.total_checks
        )

    @settings(max_examples=100)
    @given(data=_inputs)
    def test_counts_and_attachments_follow_status(self, data):
        checklist = evaluate_qa_checklist(data, evaluated_at=EVALUATED_AT)

        for item in checklist.items:
            if item.status == CheckStatus.FAIL:
                assert item.related_alert_count >= 1
            else:
                assert item.related_alert_count == 0
                assert item.related_alerts is None
            if item.related_alerts is not None:
                assert len(item.related_alerts) >= 1
