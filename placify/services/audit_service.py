"""Audit trail — append-only log of privileged actions.

append() is best-effort relative to the action it documents: the primary
change has already been committed when it runs, and a failed audit write is
rolled back, reported on the "placify.audit" logger and swallowed so it can
never turn a successful moderation into an error.

Queries cover accountability (filtered, paginated listing) and dashboards
(per-action counts, time-bucketed activity, reports). purge_older_than() is
the retention job: one set-based DELETE, so running it twice or alongside
appends never removes part of an entry.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError

from placify.errors import AuditWriteError, StoreError, ValidationError
from placify.models.audit import AuditEntry
from placify.services.record_store import BUCKET_FORMATS, time_bucket

logger = logging.getLogger("placify.audit")

# include_details never returns more entries than this
REPORT_DETAIL_LIMIT = 1000

SORTABLE_COLUMNS = ("created_at", "action", "actor_id", "resource_type")


@dataclass
class ActionContext:
    """Provenance of the request that triggered an action."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request):
        return cls(
            ip_address=request.remote_addr,
            user_agent=(request.headers.get("User-Agent") or "")[:512] or None,
        )


@dataclass
class AuditFilter:
    actor_id: Optional[str] = None
    action: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def apply(self, query):
        if self.actor_id:
            query = query.filter(AuditEntry.actor_id == self.actor_id)
        if self.action:
            query = query.filter(AuditEntry.action == self.action)
        if self.resource_type:
            query = query.filter(AuditEntry.resource_type == self.resource_type)
        if self.resource_id:
            query = query.filter(AuditEntry.resource_id == self.resource_id)
        # closed interval [start, end]
        if self.start is not None:
            query = query.filter(AuditEntry.created_at >= self.start)
        if self.end is not None:
            query = query.filter(AuditEntry.created_at <= self.end)
        return query


def failed_action(action):
    """APPROVE_EXPERIENCE -> APPROVE_EXPERIENCE_FAILED."""
    return f"{action}{AuditEntry.FAILURE_SUFFIX}"


class AuditTrail:
    """Write and query AuditEntry rows."""

    def __init__(self, session):
        self.session = session

    # -- writes --------------------------------------------------------------

    def append(self, actor_id, action, resource_type, resource_id=None,
               details=None, previous_data=None, new_data=None, context=None):
        """Persist one audit entry.

        Returns:
            The new entry id, or None if the write failed (already logged).
        """
        context = context or ActionContext()
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            previous_data=previous_data,
            new_data=new_data,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        try:
            self.session.add(entry)
            self.session.commit()
            return entry.id
        except SQLAlchemyError as e:
            self.session.rollback()
            error = AuditWriteError(f"Failed to write audit entry {action}: {e}")
            logger.error(
                str(error),
                exc_info=True,
                extra={"audit_action": action, "audit_resource_id": resource_id},
            )
            return None

    def purge_older_than(self, duration):
        """Delete entries older than *duration* (timedelta or days). Returns count."""
        if not isinstance(duration, timedelta):
            duration = timedelta(days=duration)
        if duration <= timedelta(0):
            raise ValidationError("Retention period must be positive.", field="duration")
        cutoff = datetime.now(timezone.utc) - duration
        try:
            result = self.session.execute(
                delete(AuditEntry)
                .where(AuditEntry.created_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Audit purge failed: {e}", exc_info=True)
            raise StoreError() from e
        deleted = result.rowcount or 0
        logger.info(f"Purged {deleted} audit entries older than {cutoff.isoformat()}")
        return deleted

    # -- reads ---------------------------------------------------------------

    def query_by_filter(self, audit_filter=None, page=1, page_size=50,
                        sort_by="created_at", sort_order="desc"):
        """Return (entries, total_count) for one page of matching entries."""
        if sort_by not in SORTABLE_COLUMNS:
            raise ValidationError(
                f"Cannot sort by '{sort_by}'. Must be one of: {', '.join(SORTABLE_COLUMNS)}",
                field="sort_by",
            )
        if sort_order not in ("asc", "desc"):
            raise ValidationError("sort_order must be 'asc' or 'desc'.", field="sort_order")
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive.", field="page")

        query = (audit_filter or AuditFilter()).apply(self.session.query(AuditEntry))
        column = getattr(AuditEntry, sort_by)
        order = column.asc() if sort_order == "asc" else column.desc()

        total = query.count()
        entries = (
            query.order_by(order, AuditEntry.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return entries, total

    def count_by_action(self, audit_filter=None):
        """Return {action: count}, most frequent first."""
        query = self.session.query(AuditEntry.action, func.count(AuditEntry.id))
        query = (audit_filter or AuditFilter()).apply(query)
        rows = query.group_by(AuditEntry.action).all()
        rows.sort(key=lambda row: (-row[1], row[0]))
        return {action: count for action, count in rows}

    def count_in_time_buckets(self, start, end, granularity="day", actor_id=None):
        """Return [(bucket_key, count), ...] ascending over [start, end].

        Buckets with no entries are omitted. Keys are UTC.
        """
        if granularity not in BUCKET_FORMATS:
            raise ValidationError(
                f"Invalid granularity '{granularity}'. Must be one of: {', '.join(BUCKET_FORMATS)}",
                field="granularity",
            )
        if start > end:
            raise ValidationError("start must not be after end.", field="start")

        bucket = time_bucket(
            AuditEntry.created_at, granularity, self.session.get_bind().dialect.name
        ).label("bucket")
        query = AuditFilter(actor_id=actor_id, start=start, end=end).apply(
            self.session.query(bucket, func.count(AuditEntry.id))
        )
        rows = query.group_by(bucket).order_by(bucket).all()
        return [(key, count) for key, count in rows]

    def recent_activity(self, limit=10):
        return (
            self.session.query(AuditEntry)
            .order_by(AuditEntry.created_at.desc())
            .limit(limit)
            .all()
        )

    def actor_activity(self, actor_id, limit=20):
        return (
            self.session.query(AuditEntry).filter_by(actor_id=actor_id)
            .order_by(AuditEntry.created_at.desc())
            .limit(limit)
            .all()
        )

    def generate_report(self, start=None, end=None, actor_id=None, include_details=False):
        """Summary of activity over [start, end] (default: last 30 days)."""
        end = end or datetime.now(timezone.utc)
        start = start or end - timedelta(days=30)
        audit_filter = AuditFilter(actor_id=actor_id, start=start, end=end)

        _, total = self.query_by_filter(audit_filter, page_size=1)
        breakdown = self.count_by_action(audit_filter)
        failures = sum(
            count for action, count in breakdown.items()
            if action.endswith(AuditEntry.FAILURE_SUFFIX)
        )

        report = {
            "summary": {
                "total_actions": total,
                "failed_actions": failures,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "actor_id": actor_id or "all",
            },
            "action_breakdown": breakdown,
            "timeline": [
                {"bucket": key, "count": count}
                for key, count in self.count_in_time_buckets(start, end, "day", actor_id)
            ],
        }
        if actor_id:
            report["actor_activity"] = [e.to_dict() for e in self.actor_activity(actor_id, 50)]
        if include_details:
            detailed, _ = self.query_by_filter(
                audit_filter, page_size=min(max(total, 1), REPORT_DETAIL_LIMIT)
            )
            report["entries"] = [e.to_dict() for e in detailed]
            report["entries_truncated"] = total > len(detailed)
        return report
