"""Status state machines for experiences and contacts.

Pure functions only: nothing here reads or writes the store. The tables
below are the single source of truth for which moderation actions a record
allows from its current status.
"""

import enum
from datetime import datetime, timezone

from placify.errors import IllegalTransitionError, ValidationError

NOTES_MIN_LENGTH = 10
NOTES_MAX_LENGTH = 1000


class ExperienceStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ContactStatus(str, enum.Enum):
    NEW = "new"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


EXPERIENCE_TRANSITIONS = {
    ExperienceStatus.PENDING: (ExperienceStatus.APPROVED, ExperienceStatus.REJECTED),
    ExperienceStatus.APPROVED: (ExperienceStatus.REJECTED,),
    # pending here is the "reopen" path
    ExperienceStatus.REJECTED: (ExperienceStatus.APPROVED, ExperienceStatus.PENDING),
}

CONTACT_TRANSITIONS = {
    ContactStatus.NEW: (
        ContactStatus.IN_PROGRESS,
        ContactStatus.RESOLVED,
        ContactStatus.CLOSED,
    ),
    ContactStatus.IN_PROGRESS: (ContactStatus.RESOLVED, ContactStatus.CLOSED),
    ContactStatus.RESOLVED: (ContactStatus.IN_PROGRESS, ContactStatus.CLOSED),
    ContactStatus.CLOSED: (ContactStatus.IN_PROGRESS,),
}

_MACHINES = {
    "experience": (ExperienceStatus, EXPERIENCE_TRANSITIONS),
    "contact": (ContactStatus, CONTACT_TRANSITIONS),
}


def _machine(kind):
    try:
        return _MACHINES[kind]
    except KeyError:
        raise ValueError(f"Unknown record kind '{kind}'") from None


def parse_status(value, kind="experience"):
    """Coerce *value* into the status enum for *kind*.

    Raises:
        ValidationError: If the value is not a status of that kind.
    """
    status_enum, _ = _machine(kind)
    try:
        return status_enum(value)
    except ValueError:
        valid = ", ".join(s.value for s in status_enum)
        raise ValidationError(
            f"Invalid status '{value}'. Must be one of: {valid}",
            field="status",
        ) from None


def allowed_transitions(current, kind="experience"):
    """Return the target statuses reachable from *current*, as plain strings."""
    status_enum, table = _machine(kind)
    try:
        current = status_enum(current)
    except ValueError:
        return []
    return [s.value for s in table.get(current, ())]


def can_transition(current, target, kind="experience"):
    """Is current -> target a legal move for this kind of record?"""
    return str(_as_value(target)) in allowed_transitions(_as_value(current), kind)


def eligible_sources(target, kind="experience"):
    """Statuses from which *target* can legally be reached."""
    status_enum, table = _machine(kind)
    target = status_enum(target)
    return [src.value for src, targets in table.items() if target in targets]


def validate_notes(notes, required=False, min_length=NOTES_MIN_LENGTH):
    """Normalize moderation notes, enforcing length rules.

    Returns the stripped notes, or None when empty and not required.
    """
    notes = (notes or "").strip()
    if required and len(notes) < min_length:
        raise ValidationError(
            f"Rejection notes are required and must be at least {min_length} characters.",
            field="notes",
            min_length=min_length,
        )
    if len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError(
            f"Moderation notes cannot exceed {NOTES_MAX_LENGTH} characters.",
            field="notes",
        )
    return notes or None


def apply_transition(
    record,
    target,
    actor_id,
    notes=None,
    add_verification_badge=False,
    now=None,
    notes_min_length=NOTES_MIN_LENGTH,
):
    """Compute the field set a transition stamps onto *record*.

    Args:
        record: Experience or Contact row (its KIND selects the table).
        target: Target status (string or enum).
        actor_id: Admin performing the change.
        notes: Moderation notes; required (>= notes_min_length) on rejection.
        add_verification_badge: Only honoured when approving.
        now: Timestamp to stamp, defaults to the current UTC time.

    Returns:
        dict of column name -> new value. The caller persists it.

    Raises:
        ValidationError: Unknown target status or missing/short notes.
        IllegalTransitionError: Target not reachable from record.status.
    """
    kind = record.KIND
    target = parse_status(target, kind)
    current = record.status

    if not can_transition(current, target, kind):
        raise IllegalTransitionError(current, target.value, allowed_transitions(current, kind))

    now = now or datetime.now(timezone.utc)
    fields = {"status": target.value, "moderated_by": actor_id}

    if kind == "contact":
        fields["moderation_notes"] = validate_notes(notes)
        return fields

    if target is ExperienceStatus.APPROVED:
        fields.update(
            approved_at=now,
            rejected_at=None,
            moderation_notes=validate_notes(notes),
            verification_badge=bool(add_verification_badge),
        )
    elif target is ExperienceStatus.REJECTED:
        fields.update(
            rejected_at=now,
            approved_at=None,
            moderation_notes=validate_notes(
                notes, required=True, min_length=notes_min_length
            ),
            verification_badge=False,  # badge never survives a rejection
        )
    else:
        fields.update(
            approved_at=None,
            rejected_at=None,
            moderation_notes=validate_notes(notes),
            verification_badge=False,
        )
    return fields


def response_fields(actor_id, response, now=None):
    """Field set for answering a contact.

    A response resolves the contact from any status, so answering an
    already-resolved contact replaces the earlier response.
    """
    return {
        "status": ContactStatus.RESOLVED.value,
        "moderated_by": actor_id,
        "response": response,
        "responded_at": now or datetime.now(timezone.utc),
    }


def batch_fields(target, actor_id, notes=None, now=None, notes_min_length=NOTES_MIN_LENGTH):
    """Field set for a bulk experience update; same stamping rules as apply_transition."""
    target = parse_status(target, "experience")
    now = now or datetime.now(timezone.utc)
    fields = {"status": target.value, "moderated_by": actor_id, "verification_badge": False}
    if target is ExperienceStatus.APPROVED:
        fields.update(approved_at=now, rejected_at=None, moderation_notes=validate_notes(notes))
    elif target is ExperienceStatus.REJECTED:
        fields.update(
            rejected_at=now,
            approved_at=None,
            moderation_notes=validate_notes(notes, required=True, min_length=notes_min_length),
        )
    else:
        fields.update(approved_at=None, rejected_at=None, moderation_notes=validate_notes(notes))
    return fields


def _as_value(status):
    return status.value if isinstance(status, enum.Enum) else status
