"""Report-time view of a QA checklist with reviewer approvals applied.

A failed checkpoint whose attached alerts have all been approved is shown as
passed on the compliance report. The stored checklist is never modified; the
view is rebuilt from the checklist and the current review snapshot.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timezone

from batch_record_qa.models import (
    AlertReview,
    CheckStatus,
    ComplianceReport,
    QACheckItem,
    QAChecklist,
    ReportItem,
    ReviewDecision,
)

COMPLIANT = "Compliant"
REVIEW_REQUIRED = "Review Required"


def _review_time(review: AlertReview) -> datetime:
    created = datetime.fromisoformat(review.created_at.replace("Z", "+00:00"))
    # Naive timestamps are taken as UTC.
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created


def latest_reviews_by_alert(reviews: Iterable[AlertReview]) -> dict[str, AlertReview]:
    """Keep the most recent review per alert id."""
    latest: dict[str, AlertReview] = {}
    for review in reviews:
        current = latest.get(review.alert_id)
        if current is None or _review_time(review) > _review_time(current):
            latest[review.alert_id] = review
    return latest


def approved_alert_ids(
    item: QACheckItem, latest: dict[str, AlertReview]
) -> list[str]:
    return [
        alert.id
        for alert in item.related_alerts or []
        if alert.id in latest and latest[alert.id].decision is ReviewDecision.APPROVED
    ]


def effective_status(item: QACheckItem, latest: dict[str, AlertReview]) -> CheckStatus:
    """Status of *item* as shown on the report."""
    if item.status is CheckStatus.FAIL and item.related_alerts:
        if len(approved_alert_ids(item, latest)) == len(item.related_alerts):
            return CheckStatus.PASS
    return item.status


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def build_compliance_report(
    checklist: QAChecklist, reviews: Iterable[AlertReview]
) -> ComplianceReport:
    """Derive the compliance report view for *checklist*."""
    latest = latest_reviews_by_alert(reviews)

    items = [
        ReportItem(
            item=item,
            effective_status=effective_status(item, latest),
            approved_alert_ids=approved_alert_ids(item, latest),
        )
        for item in checklist.items
    ]

    overridden = sum(
        1
        for report_item in items
        if report_item.item.status is CheckStatus.FAIL
        and report_item.effective_status is CheckStatus.PASS
    )
    passed = checklist.passed_checks + overridden
    failed = checklist.failed_checks - overridden
    pass_rate = (
        _round_half_up(passed / checklist.total_checks * 100)
        if checklist.total_checks > 0
        else 0
    )

    return ComplianceReport(
        document_id=checklist.document_id,
        evaluated_at=checklist.evaluated_at,
        items=items,
        total_checks=checklist.total_checks,
        passed_checks=passed,
        failed_checks=failed,
        na_checks=checklist.na_checks,
        pass_rate=pass_rate,
        overall_status=COMPLIANT if failed == 0 else REVIEW_REQUIRED,
    )
