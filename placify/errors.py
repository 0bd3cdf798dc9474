"""Moderation error taxonomy.

Domain errors (validation, not found, illegal transition, invalid state,
content rejected) are deterministic: the caller has to change the request.
StoreError and ConcurrentModificationError are retryable with backoff.
AuditWriteError never leaves the audit trail; it only appears in logs.
"""


class ModerationError(Exception):
    """Base class for every error the moderation core raises."""

    code = "moderation_error"
    http_status = 400
    retryable = False

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {"ok": False, "error": self.code, "message": self.message}
        payload.update(self.details)
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(ModerationError):
    code = "validation_error"
    http_status = 400

    def __init__(self, message, field=None, **details):
        if field is not None:
            details["field"] = field
        super().__init__(message, **details)
        self.field = field


class NotFoundError(ModerationError):
    code = "not_found"
    http_status = 404


class IllegalTransitionError(ModerationError):
    code = "illegal_transition"
    http_status = 409

    def __init__(self, current, target, allowed):
        allowed = list(allowed)
        if current == target:
            message = f"Cannot move a record to '{target}': it is already {current}."
        else:
            message = (
                f"Cannot transition from '{current}' to '{target}'. "
                f"Allowed: {', '.join(allowed) if allowed else 'none'}"
            )
        super().__init__(message, current=current, target=target, allowed=allowed)
        self.current = current
        self.target = target
        self.allowed = allowed


class InvalidStateError(ModerationError):
    code = "invalid_state"
    http_status = 422


class ContentRejectedError(ModerationError):
    code = "content_rejected"
    http_status = 422


class ConflictError(ModerationError):
    """The change collides with existing data (e.g. an email already in use)."""

    code = "conflict"
    http_status = 409


class ConcurrentModificationError(ModerationError):
    code = "concurrent_modification"
    http_status = 409
    retryable = True


class StoreError(ModerationError):
    """Persistence unavailable or failed. The message is always generic."""

    code = "store_unavailable"
    http_status = 503
    retryable = True

    def __init__(self, message="The record store is temporarily unavailable. Please retry."):
        super().__init__(message)


class AuditWriteError(Exception):
    """An audit entry could not be persisted. Logged, never raised to callers."""
