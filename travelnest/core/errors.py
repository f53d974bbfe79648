"""
Domain errors for the membership and invitation core.

Each error carries the HTTP status it maps to and a short machine-readable
reason so the frontend can tell "expired" from "already used" from "wrong email".
The handler in travelnest.main turns them into JSON responses.
"""
from typing import Optional


class TravelNestError(Exception):
    status_code = 500
    reason = "internal_error"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(TravelNestError):
    status_code = 401
    reason = "unauthenticated"
    default_message = "Not authenticated"


class Forbidden(TravelNestError):
    status_code = 403
    reason = "forbidden"
    default_message = "You do not have permission to perform this action"


class NotOwner(Forbidden):
    reason = "not_owner"
    default_message = "Only the trip owner can perform this action"


class EmailMismatch(Forbidden):
    reason = "email_mismatch"
    default_message = "This invitation was sent to a different email address"


class NotFound(TravelNestError):
    status_code = 404
    reason = "not_found"
    default_message = "Not found"


class Conflict(TravelNestError):
    status_code = 409
    reason = "conflict"
    default_message = "Conflict"


class AlreadyMember(Conflict):
    reason = "already_member"
    default_message = "User is already a member of this trip"


class ValidationFailed(TravelNestError):
    status_code = 400
    reason = "validation_error"
    default_message = "Invalid request"


class CannotRemoveOwner(ValidationFailed):
    reason = "cannot_remove_owner"
    default_message = "Cannot remove the trip owner"


class InvitationExpired(TravelNestError):
    status_code = 400
    reason = "expired"
    default_message = "This invitation has expired"


class InvitationAlreadyUsed(TravelNestError):
    status_code = 400
    reason = "already_used"
    default_message = "This invitation has already been used"

    def __init__(self, message: Optional[str] = None, token=None):
        super().__init__(message)
        # The consumed token record, so callers can decide if a repeat is benign
        self.token = token


class DependencyFailure(TravelNestError):
    status_code = 503
    reason = "dependency_failure"
    default_message = "A required service is unavailable"
