"""Admin blueprint — /admin/api/*

JSON API behind the moderation dashboard. Every route requires an admin
session; the blueprint is CSRF-exempt. Handlers are thin: they parse the
request, call the moderation service or audit trail, and serialize. Domain
errors propagate to the app-wide ModerationError handler.

Route Map:
  GET  /admin/api/stats                              — Dashboard counts
  GET  /admin/api/experiences                        — List (status, search, sort, page, limit)
  GET  /admin/api/experiences/<id>                   — Audited view
  POST /admin/api/experiences/<id>/approve           — pending|rejected -> approved
  POST /admin/api/experiences/<id>/reject            — pending|approved -> rejected
  POST /admin/api/experiences/<id>/reopen            — rejected -> pending
  POST /admin/api/experiences/<id>/verification-badge — Toggle badge
  POST /admin/api/experiences/batch/approve          — Bulk approve
  POST /admin/api/experiences/batch/reject           — Bulk reject
  GET  /admin/api/contacts                           — List
  GET  /admin/api/contacts/<id>                      — Audited view
  POST /admin/api/contacts/<id>/status               — Contact workflow
  PATCH /admin/api/contacts/<id>/details             — Priority / category
  POST /admin/api/contacts/<id>/respond              — Respond (or update the response) + resolve
  GET  /admin/api/audit                              — Filtered audit log
  GET  /admin/api/audit/stats                        — Counts per action
  GET  /admin/api/audit/trends                       — Time-bucketed activity
  GET  /admin/api/audit/report                       — Activity report
  GET  /admin/api/analytics/trends                   — Daily submissions by status
  GET  /admin/api/analytics/companies                — Per-company totals
  GET  /admin/api/analytics/moderation               — Approve / reject metrics
  GET  /admin/api/analytics/export                   — json or csv export (audited)
  GET  /admin/api/events/stream                      — Server-Sent Events
"""

from datetime import datetime, timedelta, timezone

from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user

from placify.decorators import admin_api_required
from placify.errors import ValidationError
from placify.extensions import get_services
from placify.models.contact import Contact
from placify.models.experience import Experience
from placify.services.audit_service import ActionContext, AuditFilter
from placify.services.notification_service import format_sse
from placify.services.transitions import ExperienceStatus

admin_bp = Blueprint("admin", __name__, url_prefix="/admin/api")

MAX_PAGE_SIZE = 100


# ─── Helpers ─────────────────────────────────────────────────────

def _json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _ctx():
    return ActionContext.from_request(request)


def _page_args(default_limit=10):
    page = max(request.args.get("page", 1, type=int), 1)
    limit = request.args.get("limit", default_limit, type=int)
    return page, min(max(limit, 1), MAX_PAGE_SIZE)


def _pagination(page, limit, total):
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }


def _parse_datetime(name):
    value = request.args.get(name)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO 8601 datetime.", field=name) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _days_arg(default=30):
    days = request.args.get("days", default, type=int)
    if days < 1 or days > 365:
        raise ValidationError("days must be between 1 and 365.", field="days")
    return days


def _status_arg(choices):
    status = request.args.get("status") or None
    if status and status != "all" and status not in choices:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(choices)}", field="status"
        )
    return None if status == "all" else status


# ─── Dashboard ───────────────────────────────────────────────────

@admin_bp.route("/stats")
@admin_api_required
def stats():
    services = get_services()
    store = services.store
    return jsonify(
        ok=True,
        experiences=store.count_by_status(Experience),
        contacts=store.count_by_status(Contact),
        recent_experiences=[e.public_dict() for e in store.recent(Experience, 5)],
        recent_activity=[e.to_dict() for e in services.audit.recent_activity(10)],
    )


# ─── Experiences ─────────────────────────────────────────────────

@admin_bp.route("/experiences")
@admin_api_required
def list_experiences():
    page, limit = _page_args()
    rows, total = get_services().store.paginate(
        Experience,
        page=page,
        limit=limit,
        status=_status_arg(Experience.STATUSES),
        search=(request.args.get("search") or "").strip() or None,
        search_fields=("company_name", "job_role", "college_name", "full_name"),
        oldest_first=request.args.get("sort") == "oldest",
    )
    return jsonify(
        ok=True,
        experiences=[e.to_dict() for e in rows],
        pagination=_pagination(page, limit, total),
    )


@admin_bp.route("/experiences/<experience_id>")
@admin_api_required
def view_experience(experience_id):
    experience = get_services().moderation.view_record(
        "experience", experience_id, current_user.id, context=_ctx()
    )
    return jsonify(ok=True, experience=experience.to_dict())


@admin_bp.route("/experiences/<experience_id>/approve", methods=["POST"])
@admin_api_required
def approve_experience(experience_id):
    data = _json()
    experience = get_services().moderation.moderate(
        experience_id,
        ExperienceStatus.APPROVED,
        current_user.id,
        notes=data.get("notes"),
        add_verification_badge=bool(data.get("add_verification_badge", False)),
        context=_ctx(),
    )
    return jsonify(ok=True, message="Experience approved.", experience=experience.to_dict())


@admin_bp.route("/experiences/<experience_id>/reject", methods=["POST"])
@admin_api_required
def reject_experience(experience_id):
    data = _json()
    experience = get_services().moderation.moderate(
        experience_id,
        ExperienceStatus.REJECTED,
        current_user.id,
        notes=data.get("notes") or data.get("reason"),
        context=_ctx(),
    )
    return jsonify(ok=True, message="Experience rejected.", experience=experience.to_dict())


@admin_bp.route("/experiences/<experience_id>/reopen", methods=["POST"])
@admin_api_required
def reopen_experience(experience_id):
    experience = get_services().moderation.moderate(
        experience_id,
        ExperienceStatus.PENDING,
        current_user.id,
        notes=_json().get("notes"),
        context=_ctx(),
    )
    return jsonify(ok=True, message="Experience reopened.", experience=experience.to_dict())


@admin_bp.route("/experiences/<experience_id>/verification-badge", methods=["POST"])
@admin_api_required
def toggle_badge(experience_id):
    experience = get_services().moderation.toggle_verification_badge(
        experience_id, current_user.id, context=_ctx()
    )
    return jsonify(
        ok=True,
        message=(
            "Verification badge added." if experience.verification_badge
            else "Verification badge removed."
        ),
        experience=experience.to_dict(),
    )


def _batch(target):
    data = _json()
    result = get_services().moderation.moderate_batch(
        data.get("experience_ids"),
        target,
        current_user.id,
        notes=data.get("notes") or data.get("reason"),
        context=_ctx(),
    )
    return jsonify(ok=True, **result.to_dict())


@admin_bp.route("/experiences/batch/approve", methods=["POST"])
@admin_api_required
def batch_approve():
    return _batch(ExperienceStatus.APPROVED)


@admin_bp.route("/experiences/batch/reject", methods=["POST"])
@admin_api_required
def batch_reject():
    return _batch(ExperienceStatus.REJECTED)


# ─── Contacts ────────────────────────────────────────────────────

@admin_bp.route("/contacts")
@admin_api_required
def list_contacts():
    page, limit = _page_args()
    rows, total = get_services().store.paginate(
        Contact,
        page=page,
        limit=limit,
        status=_status_arg(Contact.STATUSES),
        search=(request.args.get("search") or "").strip() or None,
        search_fields=("name", "email", "subject", "message"),
        oldest_first=request.args.get("sort") == "oldest",
    )
    return jsonify(
        ok=True,
        contacts=[c.to_dict() for c in rows],
        pagination=_pagination(page, limit, total),
    )


@admin_bp.route("/contacts/<contact_id>")
@admin_api_required
def view_contact(contact_id):
    contact = get_services().moderation.view_record(
        "contact", contact_id, current_user.id, context=_ctx()
    )
    return jsonify(ok=True, contact=contact.to_dict())


@admin_bp.route("/contacts/<contact_id>/status", methods=["POST"])
@admin_api_required
def update_contact_status(contact_id):
    data = _json()
    contact = get_services().moderation.update_contact_status(
        contact_id,
        data.get("status"),
        current_user.id,
        notes=data.get("notes"),
        context=_ctx(),
    )
    return jsonify(ok=True, contact=contact.to_dict())


@admin_bp.route("/contacts/<contact_id>/details", methods=["PATCH"])
@admin_api_required
def update_contact_details(contact_id):
    data = _json()
    contact = get_services().moderation.update_contact_details(
        contact_id,
        current_user.id,
        priority=data.get("priority"),
        category=data.get("category"),
        context=_ctx(),
    )
    return jsonify(ok=True, message="Contact details updated.", contact=contact.to_dict())


@admin_bp.route("/contacts/<contact_id>/respond", methods=["POST", "PATCH"])
@admin_api_required
def respond_to_contact(contact_id):
    contact = get_services().moderation.respond_to_contact(
        contact_id, _json().get("response"), current_user.id, context=_ctx()
    )
    return jsonify(ok=True, message="Response recorded.", contact=contact.to_dict())


# ─── Audit ───────────────────────────────────────────────────────

def _audit_filter():
    return AuditFilter(
        actor_id=request.args.get("actor_id") or None,
        action=request.args.get("action") or None,
        resource_type=request.args.get("resource_type") or None,
        resource_id=request.args.get("resource_id") or None,
        start=_parse_datetime("start"),
        end=_parse_datetime("end"),
    )


@admin_bp.route("/audit")
@admin_api_required
def audit_log():
    page, limit = _page_args(default_limit=50)
    entries, total = get_services().audit.query_by_filter(
        _audit_filter(),
        page=page,
        page_size=limit,
        sort_by=request.args.get("sort_by", "created_at"),
        sort_order=request.args.get("sort_order", "desc"),
    )
    return jsonify(
        ok=True,
        entries=[e.to_dict() for e in entries],
        pagination=_pagination(page, limit, total),
    )


@admin_bp.route("/audit/stats")
@admin_api_required
def audit_stats():
    audit = get_services().audit
    return jsonify(
        ok=True,
        actions=audit.count_by_action(_audit_filter()),
        recent_activity=[e.to_dict() for e in audit.recent_activity(10)],
    )


@admin_bp.route("/audit/trends")
@admin_api_required
def audit_trends():
    end = _parse_datetime("end") or datetime.now(timezone.utc)
    start = _parse_datetime("start") or end - timedelta(days=_days_arg(7))
    granularity = request.args.get("granularity", "day")
    buckets = get_services().audit.count_in_time_buckets(start, end, granularity)
    return jsonify(
        ok=True,
        granularity=granularity,
        start=start.isoformat(),
        end=end.isoformat(),
        buckets=[{"bucket": key, "count": count} for key, count in buckets],
    )


@admin_bp.route("/audit/report")
@admin_api_required
def audit_report():
    end = _parse_datetime("end") or datetime.now(timezone.utc)
    start = _parse_datetime("start") or end - timedelta(days=_days_arg(30))
    report = get_services().audit.generate_report(
        start=start,
        end=end,
        actor_id=request.args.get("actor_id") or None,
        include_details=request.args.get("include_details") in ("1", "true", "yes"),
    )
    return jsonify(ok=True, report=report)


# ─── Analytics ───────────────────────────────────────────────────

@admin_bp.route("/analytics/trends")
@admin_api_required
def analytics_trends():
    result = get_services().analytics.submission_trends(
        days=request.args.get("days", 30, type=int)
    )
    return jsonify(ok=True, **result)


@admin_bp.route("/analytics/companies")
@admin_api_required
def analytics_companies():
    companies = get_services().analytics.company_stats(
        limit=request.args.get("limit", 10, type=int)
    )
    return jsonify(ok=True, companies=companies)


@admin_bp.route("/analytics/moderation")
@admin_api_required
def analytics_moderation():
    metrics = get_services().analytics.moderation_metrics(
        days=request.args.get("days", 7, type=int),
        actor_id=request.args.get("actor_id") or None,
    )
    return jsonify(ok=True, moderation=metrics)


@admin_bp.route("/analytics/export")
@admin_api_required
def analytics_export():
    fmt = request.args.get("format", "json")
    export = get_services().analytics.export(
        current_user.id,
        fmt=fmt,
        export_type=request.args.get("type", "full"),
        context=_ctx(),
    )
    if fmt == "csv":
        response = Response(export, mimetype="text/csv")
    else:
        response = jsonify(ok=True, export=export)
    response.headers["Content-Disposition"] = (
        f'attachment; filename="analytics-export.{fmt}"'
    )
    return response


# ─── Real-time notifications ─────────────────────────────────────

@admin_bp.route("/events/stream")
@admin_api_required
def event_stream():
    """Server-Sent Events feed of moderation notifications."""
    fanout = get_services().notifications
    session = fanout.connect(current_user.id)
    heartbeat = current_app.config["SSE_HEARTBEAT_SECONDS"]

    def generate():
        try:
            yield "retry: 5000\n\n"
            while not session.closed:
                notification = session.get(timeout=heartbeat)
                if notification is None:
                    yield ": keep-alive\n\n"
                else:
                    yield format_sse(notification)
        finally:
            fanout.disconnect(session)

    response = Response(generate(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    response.call_on_close(lambda: fanout.disconnect(session))
    return response
