"""
Errors raised along the check-in flow.
Each carries the message shown to the visitor and the HTTP status used by the API.
"""


class CheckInError(Exception):
    code = "checkin_error"
    status_code = 400
    default_message = "Something went wrong"

    def __init__(self, message=None, field_errors=None):
        self.message = message or self.default_message
        self.field_errors = field_errors or {}
        super().__init__(self.message)


class MalformedCode(CheckInError):
    code = "malformed_code"
    status_code = 400
    default_message = "Invalid QR code format"


class InvitationNotFound(CheckInError):
    code = "invitation_not_found"
    status_code = 404
    default_message = "Invitation not found"


class InvitationExists(CheckInError):
    """Raised to issuers; an invitation id is never reused."""
    code = "invitation_exists"
    status_code = 409
    default_message = "Invitation already exists"


class InvitationNotRedeemable(CheckInError):
    code = "invitation_not_redeemable"
    status_code = 409
    default_message = "This invitation has expired or is no longer valid"


class MissingRequiredField(CheckInError):
    code = "missing_required_field"
    status_code = 422
    default_message = "Please enter visitor name"


class RedemptionRejected(CheckInError):
    code = "redemption_rejected"
    status_code = 409
    default_message = "Failed to validate invitation"


class PersistenceFailure(CheckInError):
    code = "persistence_failure"
    status_code = 503
    default_message = "Could not save visitor record. Please try again."


class NotificationFailure(CheckInError):
    """Never surfaced to the visitor; logged by the dispatcher."""
    code = "notification_failure"
    status_code = 500
    default_message = "Error sending notifications"


class CameraUnavailable(CheckInError):
    code = "camera_unavailable"
    status_code = 503
    default_message = "Failed to start camera. Please check permissions."


class InvalidTransition(RuntimeError):
    """An operation was called from a state that does not allow it."""
