"""Analytics — dashboard aggregates over experiences and the audit trail.

Submission trends and per-company totals are GROUP BY queries in the record
store; moderation metrics are counts over audit entries. Exports are the
only mutation here: each one writes an EXPORT_DATA audit entry.
"""

import csv
import io
import logging
from datetime import datetime, timedelta, timezone

from placify.errors import ValidationError
from placify.models.contact import Contact
from placify.models.experience import Experience
from placify.services.audit_service import AuditFilter

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")
EXPORT_TYPES = ("full", "summary")

MODERATION_ACTIONS = {
    "approvals": "APPROVE_EXPERIENCE",
    "rejections": "REJECT_EXPERIENCE",
    "bulk_approvals": "BULK_APPROVE",
    "bulk_rejections": "BULK_REJECT",
}


def _bounded(value, name, minimum, maximum):
    if not minimum <= value <= maximum:
        raise ValidationError(
            f"{name} must be between {minimum} and {maximum}.", field=name
        )
    return value


class AnalyticsService:

    def __init__(self, store, audit):
        self.store = store
        self.audit = audit

    def experience_summary(self):
        counts = self.store.count_by_status(Experience)
        return {
            "total": sum(counts.values()),
            **counts,
            "verified": self.store.count(Experience, verification_badge=True),
        }

    def submission_trends(self, days=30, now=None):
        """Daily experience submissions over the last *days* days (1-365)."""
        _bounded(days, "days", 1, 365)
        end = now or datetime.now(timezone.utc)
        start = end - timedelta(days=days)
        return {
            "trends": self.store.status_trends(Experience, start, end, "day"),
            "period": {"days": days, "start": start.isoformat(), "end": end.isoformat()},
        }

    def company_stats(self, limit=10):
        _bounded(limit, "limit", 1, 50)
        return self.store.company_breakdown(Experience, limit=limit)

    def moderation_metrics(self, days=7, actor_id=None, now=None):
        """Approve/reject activity over the last *days* days (1-90).

        Bulk actions count once per batch; their record totals are in the
        audit entry details.
        """
        _bounded(days, "days", 1, 90)
        end = now or datetime.now(timezone.utc)
        start = end - timedelta(days=days)
        counts = self.audit.count_by_action(AuditFilter(actor_id=actor_id, start=start, end=end))

        metrics = {name: counts.get(action, 0) for name, action in MODERATION_ACTIONS.items()}
        decided = metrics["approvals"] + metrics["rejections"]
        metrics.update(
            total_actions=sum(metrics.values()),
            failed_actions=sum(
                counts.get(f"{action}_FAILED", 0) for action in MODERATION_ACTIONS.values()
            ),
            approval_rate=round(100 * metrics["approvals"] / decided) if decided else 0,
            period={"days": days, "start": start.isoformat(), "end": end.isoformat()},
        )
        metrics["daily_average"] = round(metrics["total_actions"] / days, 2)
        return metrics

    def export(self, actor_id, fmt="json", export_type="full", context=None):
        """Build an analytics export and audit it.

        Returns:
            dict for json, CSV text for csv.
        """
        if fmt not in EXPORT_FORMATS:
            raise ValidationError("Format must be json or csv.", field="format")
        if export_type not in EXPORT_TYPES:
            raise ValidationError("Type must be full or summary.", field="type")

        summary = self.experience_summary()
        data = {"experiences": summary}
        if export_type == "full":
            data.update(
                contacts=self.store.count_by_status(Contact),
                companies=self.company_stats(10),
                moderation=self.moderation_metrics(30, actor_id=actor_id),
            )

        self.audit.append(
            actor_id,
            "EXPORT_DATA",
            "System",
            details={"format": fmt, "type": export_type},
            context=context,
        )
        logger.info(f"Analytics export ({fmt}, {export_type}) by {actor_id}")

        if fmt == "csv":
            return _summary_csv(summary)
        return {
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "exported_by": actor_id,
            "type": export_type,
            "data": data,
        }


def _summary_csv(summary):
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Metric", "Value"])
    for key in ("total", "pending", "approved", "rejected", "verified"):
        writer.writerow([key.capitalize(), summary[key]])
    return buffer.getvalue()
