"""Admin self-service: profile details and password changes.

Both operations write exactly one audit entry against the admin's own
record: UPDATE_PROFILE / CHANGE_PASSWORD on success, the _FAILED variant
(with the error code, never the submitted values) on failure.
"""

import logging
import re

from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from placify.errors import ConflictError, ModerationError, StoreError, ValidationError
from placify.models.user import User
from placify.services.audit_service import failed_action
from placify.services.submission_service import EMAIL_RE

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8
# at least one lowercase letter, one uppercase letter and one digit
PASSWORD_STRENGTH_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


class AccountService:

    def __init__(self, session, audit):
        self.session = session
        self.audit = audit

    def update_profile(self, user, name=None, email=None, context=None):
        """Change the admin's display name and/or email.

        Raises:
            ValidationError: Nothing to update, or a malformed value.
            ConflictError: The email belongs to another account.
        """
        action = "UPDATE_PROFILE"
        previous = {"name": user.full_name, "email": user.email}
        try:
            changes = self._profile_changes(user, name, email)
            for column, value in changes.items():
                setattr(user, column, value)
            self._commit()
        except Exception as e:
            self._audit_failure(action, user.id, e, context)
            raise

        updated = {"full_name": "name", "email": "email"}
        self.audit.append(
            user.id,
            action,
            "Admin",
            user.id,
            details={"updated_fields": [updated[c] for c in changes]},
            previous_data={updated[c]: previous[updated[c]] for c in changes},
            new_data={updated[c]: v for c, v in changes.items()},
            context=context,
        )
        logger.info(f"Admin {user.id} updated profile fields: {', '.join(changes)}")
        return user

    def change_password(self, user, current_password, new_password, confirm_password,
                        context=None):
        action = "CHANGE_PASSWORD"
        try:
            if not current_password or not new_password or not confirm_password:
                raise ValidationError(
                    "Current password, new password, and confirmation are required."
                )
            if new_password != confirm_password:
                raise ValidationError(
                    "New password and confirmation do not match.", field="confirm_password"
                )
            if len(new_password) < PASSWORD_MIN_LENGTH:
                raise ValidationError(
                    f"New password must be at least {PASSWORD_MIN_LENGTH} characters long.",
                    field="new_password",
                )
            if not PASSWORD_STRENGTH_RE.match(new_password):
                raise ValidationError(
                    "New password must contain a lowercase letter, an uppercase letter "
                    "and a number.",
                    field="new_password",
                )
            if not check_password_hash(user.password_hash, current_password):
                raise ValidationError(
                    "Current password is incorrect.", field="current_password"
                )
            user.password_hash = generate_password_hash(new_password)
            self._commit()
        except Exception as e:
            self._audit_failure(action, user.id, e, context)
            raise

        self.audit.append(user.id, action, "Admin", user.id, context=context)
        logger.info(f"Admin {user.id} changed password")
        return user

    # -- internals -----------------------------------------------------------

    def _profile_changes(self, user, name, email):
        changes = {}
        if name is not None:
            if not isinstance(name, str) or not 2 <= len(name.strip()) <= 100:
                raise ValidationError("Name must be between 2 and 100 characters.", field="name")
            changes["full_name"] = name.strip()
        if email is not None:
            email = email.strip().lower() if isinstance(email, str) else ""
            if not EMAIL_RE.match(email):
                raise ValidationError("Please provide a valid email address.", field="email")
            if email != user.email:
                taken = (
                    self.session.query(User.id)
                    .filter(User.email == email, User.id != user.id)
                    .first()
                )
                if taken:
                    raise ConflictError("That email is already in use.", field="email")
            changes["email"] = email
        if not changes:
            raise ValidationError("No valid fields provided for update.")
        return changes

    def _commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Account update failed: {e}", exc_info=True)
            raise StoreError() from e

    def _audit_failure(self, action, user_id, error, context):
        if isinstance(error, ModerationError):
            details = {"error": error.code, "message": error.message}
        else:
            logger.error(f"Unexpected error during {action}: {error}", exc_info=True)
            details = {"error": "internal_error", "message": "Unexpected error."}
        self.audit.append(
            user_id, failed_action(action), "Admin", user_id, details=details, context=context
        )
