"""Record store — SQLAlchemy-backed persistence for submission documents.

Every mutation is a single UPDATE statement so readers never see a partial
field write, and every method commits its own unit of work. SQLAlchemy
errors are rolled back, logged with the real cause, and re-raised as a
generic StoreError so internal error text never reaches an admin.
"""

import logging
from functools import wraps

from sqlalchemy import case, distinct, func, or_, update
from sqlalchemy.exc import SQLAlchemyError

from placify.errors import StoreError

logger = logging.getLogger(__name__)

# granularity -> (strftime format for SQLite/MySQL, to_char format for PostgreSQL)
BUCKET_FORMATS = {
    "hour": ("%Y-%m-%dT%H", 'YYYY-MM-DD"T"HH24'),
    "day": ("%Y-%m-%d", "YYYY-MM-DD"),
    "month": ("%Y-%m", "YYYY-MM"),
}


def time_bucket(column, granularity, dialect):
    """SQL expression truncating a UTC timestamp *column* to a bucket key string."""
    strftime_format, pg_format = BUCKET_FORMATS[granularity]
    if dialect == "postgresql":
        return func.to_char(func.timezone("UTC", column), pg_format)
    if dialect in ("mysql", "mariadb"):
        return func.date_format(column, strftime_format)
    return func.strftime(strftime_format, column)


def _store_call(f):
    """Translate SQLAlchemy failures into StoreError after rolling back."""

    @wraps(f)
    def decorated(self, *args, **kwargs):
        try:
            return f(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Record store {f.__name__} failed: {e}", exc_info=True)
            raise StoreError() from e

    return decorated


class RecordStore:
    """Find, create, update, count and aggregate submission rows."""

    def __init__(self, session):
        self.session = session

    @_store_call
    def get(self, model, record_id):
        if not record_id:
            return None
        return self.session.get(model, record_id)

    @_store_call
    def create(self, record):
        self.session.add(record)
        self.session.commit()
        return record

    @_store_call
    def conditional_update(self, model, record_id, expected, fields):
        """Apply *fields* to one row, only if it still matches *expected*.

        Args:
            model: Mapped class.
            record_id: Primary key.
            expected: dict of column -> value the row must still hold
                (optimistic concurrency check on what was read).
            fields: dict of column -> new value.

        Returns:
            Number of rows changed (0 or 1).
        """
        conditions = [model.id == record_id]
        conditions.extend(getattr(model, column) == value for column, value in expected.items())
        result = self.session.execute(
            update(model)
            .where(*conditions)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount

    @_store_call
    def bulk_update(self, model, record_ids, fields, statuses=None):
        """One UPDATE over ``id IN record_ids`` (optionally also ``status IN statuses``).

        Returns:
            Number of rows matched and changed.
        """
        stmt = update(model).where(model.id.in_(list(record_ids)))
        if statuses is not None:
            stmt = stmt.where(model.status.in_(list(statuses)))
        result = self.session.execute(
            stmt.values(**fields).execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount

    @_store_call
    def refresh(self, record):
        self.session.refresh(record)
        return record

    @_store_call
    def count_by_status(self, model):
        """Return {status: count} with every known status present."""
        rows = (
            self.session.query(model.status, func.count(model.id))
            .group_by(model.status)
            .all()
        )
        counts = {status: 0 for status in model.STATUSES}
        counts.update({status: count for status, count in rows})
        return counts

    @_store_call
    def paginate(self, model, page=1, limit=10, status=None, search=None,
                 search_fields=(), oldest_first=False):
        """Page through *model* rows, newest first by default.

        Returns:
            Tuple of (rows, total).
        """
        query = self.session.query(model)
        if status:
            query = query.filter(model.status == status)
        if search and search_fields:
            pattern = f"%{search}%"
            query = query.filter(
                or_(*(getattr(model, name).ilike(pattern) for name in search_fields))
            )
        total = query.count()
        order = model.created_at.asc() if oldest_first else model.created_at.desc()
        rows = (
            query.order_by(order, model.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    @_store_call
    def recent(self, model, limit=5):
        return self.session.query(model).order_by(model.created_at.desc()).limit(limit).all()

    @_store_call
    def count(self, model, **filters):
        return self.session.query(func.count(model.id)).filter_by(**filters).scalar()

    # -- aggregates ----------------------------------------------------------

    @_store_call
    def status_trends(self, model, start, end, granularity="day"):
        """Submissions per time bucket over [start, end], split by current status.

        Returns:
            [{"bucket": key, "total": n, <status>: n, ...}, ...] ascending.
        """
        bucket = time_bucket(
            model.created_at, granularity, self.session.get_bind().dialect.name
        ).label("bucket")
        columns = [bucket, func.count(model.id)]
        columns.extend(
            func.sum(case((model.status == status, 1), else_=0)) for status in model.STATUSES
        )
        rows = (
            self.session.query(*columns)
            .filter(model.created_at >= start, model.created_at <= end)
            .group_by(bucket)
            .order_by(bucket)
            .all()
        )
        trends = []
        for key, total, *per_status in rows:
            entry = {"bucket": key, "total": total}
            entry.update(zip(model.STATUSES, (int(n or 0) for n in per_status)))
            trends.append(entry)
        return trends

    @_store_call
    def company_breakdown(self, model, limit=10):
        """Per-company totals, most submitted first."""
        total = func.count(model.id).label("total")
        rows = (
            self.session.query(
                model.company_name,
                total,
                func.sum(case((model.verification_badge.is_(True), 1), else_=0)),
                func.sum(case((model.position_type == "Placement", 1), else_=0)),
                func.sum(case((model.position_type == "Internship", 1), else_=0)),
                func.count(distinct(model.job_role)),
            )
            .group_by(model.company_name)
            .order_by(total.desc(), model.company_name)
            .limit(limit)
            .all()
        )
        return [
            {
                "company": company,
                "total": count,
                "verified": int(verified or 0),
                "placements": int(placements or 0),
                "internships": int(internships or 0),
                "roles": roles,
                "verification_rate": round(100 * int(verified or 0) / count, 2) if count else 0,
            }
            for company, count, verified, placements, internships, roles in rows
        ]
