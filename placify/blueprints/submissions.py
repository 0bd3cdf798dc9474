"""Submissions blueprint — /api/*

Public endpoints hit by the student-facing site. CSRF-exempt (JSON API,
no session) and rate limited per client address.

Route Map:
  GET  /api/experiences  — approved experiences (page, limit, search)
  POST /api/experiences  — submit an interview experience (enters pending)
  POST /api/contact      — send a contact message (enters new)
"""

from flask import Blueprint, jsonify, request

from placify.extensions import get_services, limiter

submissions_bp = Blueprint("submissions", __name__, url_prefix="/api")


def _payload():
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@submissions_bp.route("/experiences", methods=["POST"])
@limiter.limit("10 per hour")
def submit_experience():
    """Returns: { ok: true, experience: {...} } with 201."""
    experience = get_services().submissions.submit_experience(_payload())
    return jsonify(
        ok=True,
        message="Thank you! Your experience will be published after review.",
        experience=experience.public_dict(),
    ), 201


@submissions_bp.route("/contact", methods=["POST"])
@limiter.limit("5 per hour")
def submit_contact():
    contact = get_services().submissions.submit_contact(_payload())
    return jsonify(
        ok=True,
        message="Thank you for reaching out. We will get back to you soon.",
        contact=contact.public_dict(),
    ), 201


@submissions_bp.route("/experiences", methods=["GET"])
def list_experiences():
    """Only approved experiences are ever visible here."""
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", 20, type=int)
    rows, total = get_services().submissions.list_published(
        page=page,
        limit=limit,
        search=(request.args.get("search") or "").strip() or None,
    )
    return jsonify(
        ok=True,
        count=len(rows),
        total=total,
        experiences=[e.published_dict() for e in rows],
    )
