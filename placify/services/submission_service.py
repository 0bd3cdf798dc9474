"""Submission service — intake for the public experience and contact forms.

Pipeline per submission:
    content gate (raw input) -> sanitize -> validate -> store -> publish

Every stored record starts in the initial status of its lifecycle
(pending / new) whatever the payload says; status, moderation and badge
fields are never read from the client.
"""

import logging
import re
from datetime import date

from placify.errors import ContentRejectedError, ValidationError
from placify.models.contact import Contact
from placify.models.experience import Experience
from placify.services.content_gate import sanitize
from placify.services.transitions import ExperienceStatus

logger = logging.getLogger(__name__)

# Sanity check only, not RFC 5322
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# field -> (required, min length, max length)
EXPERIENCE_TEXT_FIELDS = {
    "full_name": (True, 2, 100),
    "email": (False, 5, 254),
    "college_name": (False, None, 200),
    "linkedin_url": (False, None, 500),
    "company_name": (True, 2, 200),
    "job_role": (True, 2, 100),
    "job_location": (False, None, 100),
    "ctc": (False, None, 20),
    "overall_experience": (True, 50, 2000),
    "coding_questions": (False, None, 1000),
    "technical_questions": (False, None, 1000),
    "hr_questions": (False, None, 1000),
    "resources_used": (False, None, 1000),
    "tips_for_candidates": (False, None, 1000),
    "mistakes_to_avoid": (False, None, 1000),
}

NAME_RE = re.compile(r"^[A-Za-z\s\u00C0-\u017F]+$")
LINKEDIN_RE = re.compile(r"^https://www\.linkedin\.com/")
CTC_RE = re.compile(r"^\d+(\.\d+)?\s*LPA$", re.IGNORECASE)

ROUND_NAME_LENGTH = (2, 100)
ROUND_DESCRIPTION_LENGTH = (10, 500)
MAX_ROUNDS = 10

PUBLIC_PAGE_MAX = 100

CONTACT_MESSAGE_MIN_LENGTH = 10
CONTACT_MESSAGE_MAX_LENGTH = 1000


class SubmissionService:
    """Screens, validates and stores public submissions."""

    def __init__(self, store, event_bus, content_gate):
        self.store = store
        self.event_bus = event_bus
        self.content_gate = content_gate

    def submit_experience(self, data):
        """Store a new experience in pending state.

        Raises:
            ContentRejectedError: The content gate refused the submission.
            ValidationError: A field is missing, too long or malformed.
        """
        self._screen("experience", data)

        fields = {}
        for name, (required, min_length, max_length) in EXPERIENCE_TEXT_FIELDS.items():
            fields[name] = _text(
                data, name, required=required, min_length=min_length, max_length=max_length
            )
        fields["is_anonymous"] = _flag(data.get("is_anonymous"))

        if not NAME_RE.match(fields["full_name"]):
            raise ValidationError(
                "Full name can only contain letters and spaces.", field="full_name"
            )
        if fields["email"]:
            fields["email"] = fields["email"].lower()
            if not EMAIL_RE.match(fields["email"]):
                raise ValidationError("A valid email is required.", field="email")
        if fields["linkedin_url"]:
            if not LINKEDIN_RE.match(fields["linkedin_url"]):
                raise ValidationError(
                    "LinkedIn URL must start with https://www.linkedin.com/",
                    field="linkedin_url",
                )
        elif not fields["is_anonymous"]:
            raise ValidationError(
                "LinkedIn URL is required unless the post is anonymous.", field="linkedin_url"
            )
        if fields["ctc"] and not CTC_RE.match(fields["ctc"]):
            raise ValidationError('CTC must look like "6 LPA" or "6.5 LPA".', field="ctc")

        fields["position_type"] = _choice(
            data, "position_type", Experience.POSITION_TYPES, required=True
        )
        fields["interview_type"] = _choice(data, "interview_type", Experience.INTERVIEW_TYPES)
        fields["branch"] = _choice(data, "branch", Experience.BRANCHES)
        fields["difficulty_level"] = _choice(
            data, "difficulty_level", Experience.DIFFICULTY_LEVELS
        )
        fields["batch_year"] = _integer(data, "batch_year", 2000, 2030)
        fields["number_of_rounds"] = _integer(data, "number_of_rounds", 1, 10, required=True)
        fields["round_types"] = _choices(data, "round_types", Experience.ROUND_TYPES)
        fields["rounds"] = _rounds(data.get("rounds"))
        fields["interview_date"] = _date(data, "interview_date")

        experience = self.store.create(Experience(**fields))
        logger.info(
            f"Experience submitted: {experience.company_name} / {experience.job_role} "
            f"({experience.id})"
        )
        self._publish("experienceSubmitted", experience)
        return experience

    def list_published(self, page=1, limit=20, search=None):
        """Approved experiences only, newest first. Returns (rows, total)."""
        return self.store.paginate(
            Experience,
            page=max(page, 1),
            limit=min(max(limit, 1), PUBLIC_PAGE_MAX),
            status=ExperienceStatus.APPROVED.value,
            search=search,
            search_fields=("company_name", "job_role"),
        )

    def submit_contact(self, data):
        """Store a new contact message in new state."""
        self._screen("contact", data)

        name = _text(data, "name", required=True, max_length=100)
        if len(name) < 2:
            raise ValidationError("Name must be between 2 and 100 characters.", field="name")
        email = _text(data, "email", required=True, max_length=254)
        if not EMAIL_RE.match(email):
            raise ValidationError("A valid email is required.", field="email")
        subject = _text(data, "subject", max_length=200)
        message = _text(data, "message", required=True, max_length=CONTACT_MESSAGE_MAX_LENGTH)
        if len(message) < CONTACT_MESSAGE_MIN_LENGTH:
            raise ValidationError(
                f"Message must be between {CONTACT_MESSAGE_MIN_LENGTH} and "
                f"{CONTACT_MESSAGE_MAX_LENGTH} characters.",
                field="message",
            )

        contact = self.store.create(Contact(
            name=name,
            email=email,
            subject=subject,
            message=message,
            priority=_choice(data, "priority", Contact.PRIORITIES) or "medium",
            category=_choice(data, "category", Contact.CATEGORIES) or "general",
        ))
        logger.info(f"Contact message received from {email} ({contact.id})")
        self._publish("contactSubmitted", contact)
        return contact

    def _screen(self, kind, data):
        if not isinstance(data, dict) or not data:
            raise ValidationError("Invalid request.")
        result = self.content_gate.evaluate({**data, "kind": kind})
        if not result.accepted:
            logger.info(f"Content gate rejected {kind} submission: {result.reason}")
            raise ContentRejectedError(result.reason or "Submission rejected.")

    def _publish(self, event_name, record):
        try:
            self.event_bus.publish(event_name, {
                "kind": event_name,
                "record_type": record.KIND,
                "record_id": record.id,
                "record": record.public_dict(),
            })
        except Exception:
            logger.error(f"Failed to publish {event_name}", exc_info=True)


# ── Field helpers ──

def _text(data, name, required=False, min_length=None, max_length=None):
    value = data.get(name)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{name} must be a string.", field=name)
    value = sanitize(value) or ""
    if required and not value:
        raise ValidationError(f"{name} is required.", field=name)
    if not value:
        return None
    if min_length and len(value) < min_length:
        raise ValidationError(
            f"{name} must be at least {min_length} characters.", field=name, min_length=min_length
        )
    if max_length and len(value) > max_length:
        raise ValidationError(
            f"{name} cannot exceed {max_length} characters.", field=name, max_length=max_length
        )
    return value


def _choice(data, name, choices, required=False):
    value = data.get(name)
    if value in (None, ""):
        if required:
            raise ValidationError(f"{name} is required.", field=name)
        return None
    if value not in choices:
        raise ValidationError(
            f"Invalid {name} '{value}'. Must be one of: {', '.join(choices)}", field=name
        )
    return value


def _choices(data, name, choices):
    values = data.get(name)
    if values in (None, "", []):
        return []
    if isinstance(values, str):
        values = [v.strip() for v in values.split(",") if v.strip()]
    if not isinstance(values, list):
        raise ValidationError(f"{name} must be a list.", field=name)
    invalid = [str(v) for v in values if v not in choices]
    if invalid:
        raise ValidationError(f"Invalid {name}: {', '.join(invalid)}", field=name)
    return list(dict.fromkeys(values))


def _rounds(value):
    """Validate the per-round write-ups: [{"name": ..., "description": ...}, ...]."""
    if value in (None, "", []):
        return []
    if not isinstance(value, list):
        raise ValidationError("rounds must be a list.", field="rounds")
    if len(value) > MAX_ROUNDS:
        raise ValidationError(f"At most {MAX_ROUNDS} rounds can be described.", field="rounds")

    rounds = []
    for i, item in enumerate(value, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Round {i} must be an object.", field="rounds")
        entry = {}
        for key, (minimum, maximum) in (
            ("name", ROUND_NAME_LENGTH),
            ("description", ROUND_DESCRIPTION_LENGTH),
        ):
            text = item.get(key)
            text = sanitize(text) if isinstance(text, str) else ""
            if not minimum <= len(text) <= maximum:
                raise ValidationError(
                    f"Round {i}: {key} must be between {minimum} and {maximum} characters.",
                    field="rounds",
                )
            entry[key] = text
        rounds.append(entry)
    return rounds


def _integer(data, name, minimum, maximum, required=False):
    value = data.get(name)
    if value in (None, ""):
        if required:
            raise ValidationError(f"{name} is required.", field=name)
        return None
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a whole number.", field=name) from None
    if not minimum <= value <= maximum:
        raise ValidationError(
            f"{name} must be between {minimum} and {maximum}.", field=name
        )
    return value


def _flag(value):
    # Form posts send checkbox values as strings
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _date(data, name):
    value = data.get(name)
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD).", field=name) from None
