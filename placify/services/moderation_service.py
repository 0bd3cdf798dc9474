"""Moderation service — single, batch and badge moderation actions.

Each call runs the same pipeline:
    load -> check the transition table -> validate -> one conditional
    UPDATE -> audit -> publish a domain event -> return the record

Exactly one audit entry is written per call. Success entries use the
action tag (APPROVE_EXPERIENCE, BULK_REJECT, ...); any error raised before
or during the write is recorded under the same tag with a _FAILED suffix
and then re-raised unchanged. Events are fire-and-forget: the bus hands
them to its workers and returns immediately.

The single-record UPDATE is conditional on the status that was read, so a
concurrent moderation of the same record surfaces as a retryable
ConcurrentModificationError instead of silently overwriting it. The
service never retries on its own.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from placify.errors import (
    ConcurrentModificationError,
    InvalidStateError,
    ModerationError,
    NotFoundError,
    ValidationError,
)
from placify.models.contact import Contact
from placify.models.experience import Experience
from placify.services.audit_service import failed_action
from placify.services.content_gate import sanitize
from placify.services.transitions import (
    ContactStatus,
    ExperienceStatus,
    NOTES_MIN_LENGTH,
    apply_transition,
    batch_fields,
    eligible_sources,
    parse_status,
    response_fields,
)

logger = logging.getLogger(__name__)

EXPERIENCE_ACTIONS = {
    ExperienceStatus.APPROVED.value: "APPROVE_EXPERIENCE",
    ExperienceStatus.REJECTED.value: "REJECT_EXPERIENCE",
    ExperienceStatus.PENDING.value: "REOPEN_EXPERIENCE",
}

BATCH_ACTIONS = {
    ExperienceStatus.APPROVED.value: "BULK_APPROVE",
    ExperienceStatus.REJECTED.value: "BULK_REJECT",
    ExperienceStatus.PENDING.value: "BULK_REOPEN",
}

RESPONSE_MAX_LENGTH = 2000

# Notes are recorded by length only; they never enter audit snapshots.
_SNAPSHOT_EXCLUDE = {"moderation_notes", "response"}

_MODELS = {"experience": Experience, "contact": Contact}


@dataclass
class BatchResult:
    modified_count: int
    requested_count: int

    def to_dict(self):
        return {
            "modified_count": self.modified_count,
            "requested_count": self.requested_count,
        }


def _value(status):
    return getattr(status, "value", status)


def _jsonable(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class ModerationService:
    """Orchestrates moderation actions over a store, an audit trail and a bus."""

    def __init__(self, store, audit, event_bus, batch_limit=50,
                 notes_min_length=NOTES_MIN_LENGTH):
        self.store = store
        self.audit = audit
        self.event_bus = event_bus
        self.batch_limit = batch_limit
        self.notes_min_length = notes_min_length

    # ══════════════════════════════════════════════
    #  EXPERIENCES
    # ══════════════════════════════════════════════

    def moderate(self, record_id, target_status, actor_id, notes=None,
                 add_verification_badge=False, context=None):
        """Move one experience to *target_status*.

        Args:
            record_id: Experience id.
            target_status: "approved", "rejected" or "pending" (reopen).
            actor_id: Admin performing the action.
            notes: Moderation notes; at least 10 characters when rejecting.
            add_verification_badge: Badge to set when approving.
            context: ActionContext with request provenance.

        Returns:
            The updated Experience.

        Raises:
            NotFoundError, IllegalTransitionError, ValidationError,
            ConcurrentModificationError, StoreError.
        """
        action = EXPERIENCE_ACTIONS.get(_value(target_status), "UPDATE_EXPERIENCE_STATUS")
        details = {
            "target_status": _value(target_status),
            "notes_length": _notes_length(notes),
        }
        if _value(target_status) == ExperienceStatus.APPROVED.value:
            details["add_verification_badge"] = bool(add_verification_badge)

        return self._transition(
            Experience,
            record_id,
            target_status,
            actor_id,
            action=action,
            event_name="experienceStatusChanged",
            notes=notes,
            add_verification_badge=add_verification_badge,
            details=details,
            context=context,
        )

    def moderate_batch(self, record_ids, target_status, actor_id, notes=None, context=None):
        """Apply one bulk status update to up to batch_limit experiences.

        Only records whose current status may legally move to the target are
        matched; ids that are missing or ineligible are skipped silently and
        show up only as a lower modified_count.

        Returns:
            BatchResult(modified_count, requested_count).
        """
        action = BATCH_ACTIONS.get(_value(target_status), "BULK_UPDATE")
        ids = None
        try:
            ids = self._normalize_ids(record_ids)
            notes = _clean_notes(notes)
            target = parse_status(target_status, Experience.KIND)
            fields = batch_fields(
                target, actor_id, notes=notes, notes_min_length=self.notes_min_length
            )
            modified = self.store.bulk_update(
                Experience,
                ids,
                fields,
                statuses=eligible_sources(target, Experience.KIND),
            )
        except Exception as e:
            self._audit_failure(
                action,
                Experience.RESOURCE_TYPE,
                None,
                actor_id,
                e,
                details={
                    "batch_operation": True,
                    "experience_ids": ids if ids is not None else _id_list(record_ids),
                    "target_status": _value(target_status),
                },
                context=context,
            )
            raise

        self.audit.append(
            actor_id,
            action,
            Experience.RESOURCE_TYPE,
            details={
                "batch_operation": True,
                "experience_ids": ids,
                "requested_count": len(ids),
                "modified_count": modified,
                "notes_length": _notes_length(notes),
            },
            new_data={"status": target.value},
            context=context,
        )
        logger.info(f"{action}: {modified}/{len(ids)} experiences by {actor_id}")

        self._publish("batchStatusChanged", {
            "kind": "batchStatusChanged",
            "record_type": Experience.KIND,
            "record_ids": ids,
            "new_status": target.value,
            "count": modified,
            "requested_count": len(ids),
            "actor_id": actor_id,
        })
        return BatchResult(modified_count=modified, requested_count=len(ids))

    def toggle_verification_badge(self, record_id, actor_id, context=None):
        """Flip the verification badge of an approved experience."""
        try:
            record = self._load(Experience, record_id)
            if record.status != ExperienceStatus.APPROVED.value:
                raise InvalidStateError(
                    "Only approved experiences can have a verification badge.",
                    current=record.status,
                )
            had_badge = bool(record.verification_badge)
            changed = self.store.conditional_update(
                Experience,
                record_id,
                {"status": ExperienceStatus.APPROVED.value, "verification_badge": had_badge},
                {"verification_badge": not had_badge, "moderated_by": actor_id},
            )
            if not changed:
                raise self._conflict(record_id)
        except Exception as e:
            self._audit_failure(
                "TOGGLE_VERIFICATION_BADGE",
                Experience.RESOURCE_TYPE,
                record_id,
                actor_id,
                e,
                context=context,
            )
            raise

        added = not had_badge
        self.audit.append(
            actor_id,
            "ADD_VERIFICATION_BADGE" if added else "REMOVE_VERIFICATION_BADGE",
            Experience.RESOURCE_TYPE,
            record_id,
            details={"verification_badge": added},
            previous_data={"verification_badge": had_badge},
            new_data={"verification_badge": added},
            context=context,
        )

        record = self.store.refresh(record)
        self._publish("badgeToggled", {
            "kind": "badgeToggled",
            "record_id": record_id,
            "added": added,
            "actor_id": actor_id,
            "record": record.public_dict(),
        })
        return record

    # ══════════════════════════════════════════════
    #  CONTACTS
    # ══════════════════════════════════════════════

    def update_contact_status(self, contact_id, target_status, actor_id, notes=None,
                              context=None):
        """Move one contact message through new/in-progress/resolved/closed."""
        return self._transition(
            Contact,
            contact_id,
            target_status,
            actor_id,
            action="UPDATE_CONTACT_STATUS",
            event_name="contactStatusChanged",
            notes=notes,
            details={"target_status": _value(target_status)},
            context=context,
        )

    def respond_to_contact(self, contact_id, response, actor_id, context=None):
        """Record (or replace) an admin response and resolve the contact.

        Allowed from every contact status; a second response to a resolved
        contact updates the stored answer.
        """
        action = "RESPOND_TO_CONTACT"
        try:
            response = self._validate_response(response)
        except ValidationError as e:
            self._audit_failure(action, Contact.RESOURCE_TYPE, contact_id, actor_id, e,
                                context=context)
            raise

        return self._transition(
            Contact,
            contact_id,
            ContactStatus.RESOLVED,
            actor_id,
            action=action,
            event_name="contactStatusChanged",
            build_fields=lambda record: response_fields(actor_id, response),
            details={"response_length": len(response)},
            context=context,
        )

    def update_contact_details(self, contact_id, actor_id, priority=None, category=None,
                               context=None):
        """Re-triage a contact: change its priority and/or category.

        Status is untouched. The UPDATE is conditional on the values that
        were read, like every other single-record change.
        """
        action = "UPDATE_CONTACT_DETAILS"
        previous = None
        try:
            changes = {}
            if priority not in (None, ""):
                changes["priority"] = _contact_choice("priority", priority, Contact.PRIORITIES)
            if category not in (None, ""):
                changes["category"] = _contact_choice("category", category, Contact.CATEGORIES)
            if not changes:
                raise ValidationError("Provide a priority or a category to update.")

            record = self._load(Contact, contact_id)
            previous = {name: getattr(record, name) for name in changes}
            changed = self.store.conditional_update(
                Contact, contact_id, previous, {**changes, "moderated_by": actor_id}
            )
            if not changed:
                raise self._conflict(contact_id)
        except Exception as e:
            self._audit_failure(
                action, Contact.RESOURCE_TYPE, contact_id, actor_id, e,
                previous_data=previous, context=context,
            )
            raise

        self.audit.append(
            actor_id,
            action,
            Contact.RESOURCE_TYPE,
            contact_id,
            details={"fields_updated": sorted(changes)},
            previous_data=previous,
            new_data=changes,
            context=context,
        )
        logger.info(f"{action}: contact {contact_id} {changes} by {actor_id}")
        return self.store.refresh(record)

    # ══════════════════════════════════════════════
    #  READS
    # ══════════════════════════════════════════════

    def view_record(self, kind, record_id, actor_id, context=None):
        """Load one record for an admin, auditing the view."""
        model = _MODELS[kind]
        action = f"VIEW_{kind.upper()}"
        try:
            record = self._load(model, record_id)
        except Exception as e:
            self._audit_failure(action, model.RESOURCE_TYPE, record_id, actor_id, e,
                                context=context)
            raise
        self.audit.append(actor_id, action, model.RESOURCE_TYPE, record_id, context=context)
        return record

    # ══════════════════════════════════════════════
    #  INTERNALS
    # ══════════════════════════════════════════════

    def _transition(self, model, record_id, target_status, actor_id, action, event_name,
                    notes=None, add_verification_badge=False, build_fields=None,
                    details=None, context=None):
        previous = None
        try:
            notes = _clean_notes(notes)
            record = self._load(model, record_id)
            previous_status = record.status
            if build_fields is not None:
                fields = build_fields(record)
            else:
                fields = apply_transition(
                    record,
                    target_status,
                    actor_id,
                    notes=notes,
                    add_verification_badge=add_verification_badge,
                    notes_min_length=self.notes_min_length,
                )
            previous = _snapshot(record, fields)

            changed = self.store.conditional_update(
                model, record_id, {"status": previous_status}, fields
            )
            if not changed:
                raise self._conflict(record_id)
        except Exception as e:
            self._audit_failure(
                action,
                model.RESOURCE_TYPE,
                record_id,
                actor_id,
                e,
                details=details,
                previous_data=previous,
                context=context,
            )
            raise

        new_status = fields["status"]
        self.audit.append(
            actor_id,
            action,
            model.RESOURCE_TYPE,
            record_id,
            details=details,
            previous_data=previous,
            new_data={k: _jsonable(v) for k, v in fields.items() if k not in _SNAPSHOT_EXCLUDE},
            context=context,
        )
        logger.info(
            f"{action}: {model.KIND} {record_id} {previous_status} -> {new_status} by {actor_id}"
        )

        record = self.store.refresh(record)
        self._publish(event_name, {
            "kind": "statusChanged",
            "record_type": model.KIND,
            "record_id": record_id,
            "previous_status": previous_status,
            "new_status": new_status,
            "actor_id": actor_id,
            "record": record.public_dict(),
        })
        return record

    def _load(self, model, record_id):
        record = self.store.get(model, record_id)
        if record is None:
            raise NotFoundError(f"{model.RESOURCE_TYPE} {record_id} not found.")
        return record

    def _normalize_ids(self, record_ids):
        if not isinstance(record_ids, (list, tuple)):
            raise ValidationError(
                "Experience IDs must be provided as a non-empty array.", field="experience_ids"
            )
        ids = []
        for raw in record_ids:
            if not isinstance(raw, str) or not raw.strip():
                raise ValidationError(
                    "Every experience ID must be a non-empty string.", field="experience_ids"
                )
            if raw.strip() not in ids:
                ids.append(raw.strip())
        if not ids:
            raise ValidationError(
                "Experience IDs must be provided as a non-empty array.", field="experience_ids"
            )
        if len(ids) > self.batch_limit:
            raise ValidationError(
                f"A batch can contain at most {self.batch_limit} experiences.",
                field="experience_ids",
                max_size=self.batch_limit,
            )
        return ids

    @staticmethod
    def _validate_response(response):
        if response is not None and not isinstance(response, str):
            raise ValidationError("Response must be text.", field="response")
        response = sanitize(response)
        if not response:
            raise ValidationError("Response is required.", field="response")
        if len(response) > RESPONSE_MAX_LENGTH:
            raise ValidationError(
                f"Response cannot exceed {RESPONSE_MAX_LENGTH} characters.", field="response"
            )
        return response

    @staticmethod
    def _conflict(record_id):
        return ConcurrentModificationError(
            f"Record {record_id} was changed by another request. Reload it and try again.",
            record_id=record_id,
        )

    def _audit_failure(self, action, resource_type, resource_id, actor_id, error,
                       details=None, previous_data=None, context=None):
        if isinstance(error, ModerationError):
            error_info = {"error": error.code, "message": error.message}
        else:
            logger.error(f"Unexpected error during {action}: {error}", exc_info=True)
            error_info = {"error": "internal_error", "message": "Unexpected error."}
        self.audit.append(
            actor_id,
            failed_action(action),
            resource_type,
            resource_id,
            details={**(details or {}), **error_info},
            previous_data=previous_data,
            context=context,
        )

    def _publish(self, event_name, payload):
        try:
            self.event_bus.publish(event_name, payload)
        except Exception:
            logger.error(f"Failed to publish {event_name}", exc_info=True)


def _clean_notes(notes):
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise ValidationError("Moderation notes must be text.", field="notes")
    return sanitize(notes)


def _contact_choice(name, value, choices):
    if value not in choices:
        raise ValidationError(
            f"Invalid {name} '{value}'. Must be one of: {', '.join(choices)}", field=name
        )
    return value


def _notes_length(notes):
    return len(notes.strip()) if isinstance(notes, str) else 0


def _snapshot(record, fields):
    return {
        name: _jsonable(getattr(record, name))
        for name in fields
        if name not in _SNAPSHOT_EXCLUDE
    }


def _id_list(record_ids):
    if isinstance(record_ids, (list, tuple)):
        return [str(i) for i in record_ids][:100]
    return []
