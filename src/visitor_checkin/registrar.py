"""
Visitor registration state machine.

    IDLE -> SCANNING -> VALIDATING -> AWAITING_FORM -> REDEEMING
         -> PERSISTING -> NOTIFYING -> SUCCESS

ERROR is reachable from every non-terminal state. The whole session lives in a
RegistrationContext that each operation takes and returns; the front-end
renders `context.screen` and shows `context.toast`.
"""

import dataclasses
import logging
import uuid
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field

from . import config
from .exceptions import (
    CameraUnavailable,
    CheckInError,
    InvalidTransition,
    InvitationNotFound,
    InvitationNotRedeemable,
    MalformedCode,
    MissingRequiredField,
    PersistenceFailure,
    RedemptionRejected,
)
from .models import VISITOR_STATUS_CHECKED_IN, Invitation, Visitor
from .qr_codes import parse_qr_data
from .scanner import DEFAULT_CAMERA_HINT, ScanCancelled, camera
from .validation import is_redeemable, utcnow

logger = logging.getLogger(__name__)


class RegistrationState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    VALIDATING = "validating"
    AWAITING_FORM = "awaiting_form"
    REDEEMING = "redeeming"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    SUCCESS = "success"
    ERROR = "error"


SCREENS = {
    RegistrationState.IDLE: "welcome",
    RegistrationState.SCANNING: "scanning",
    RegistrationState.VALIDATING: "scanning",
    RegistrationState.AWAITING_FORM: "registration-form",
    RegistrationState.REDEEMING: "registration-form",
    RegistrationState.PERSISTING: "registration-form",
    RegistrationState.NOTIFYING: "registration-form",
    RegistrationState.SUCCESS: "success",
    RegistrationState.ERROR: "error",
}


@dataclasses.dataclass(frozen=True)
class Toast:
    text: str
    severity: str = "info"
    dismiss_after: int = config.TOAST_DISMISS_SECONDS


@dataclasses.dataclass(frozen=True)
class RegistrationContext:
    state: RegistrationState = RegistrationState.IDLE
    invitation: Optional[Invitation] = None
    visitor: Optional[Visitor] = None
    error: Optional[CheckInError] = None
    field_errors: Dict[str, str] = dataclasses.field(default_factory=dict)
    toast: Optional[Toast] = None
    notifications_sent: Tuple[bool, ...] = ()

    @property
    def screen(self):
        return SCREENS[self.state]


class VisitorForm(BaseModel):
    """Details the visitor types into the registration form."""
    name: str = Field("", description="Visitor full name (required)")
    phone: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None


def _clean(value):
    return (value or "").strip()


# PUBLIC_INTERFACE
class VisitorRegistrar:
    """
    Drives one visitor from scanned code to checked-in record.

    `on_transition`, when given, is called with every context the machine
    passes through, including the intermediate REDEEMING/PERSISTING/NOTIFYING
    steps, so a UI can show progress.
    """

    def __init__(self, invitations, visitors, dispatcher, clock=utcnow, on_transition=None):
        self.invitations = invitations
        self.visitors = visitors
        self.dispatcher = dispatcher
        self.clock = clock
        self.on_transition = on_transition

    def _enter(self, ctx, state, **changes):
        ctx = dataclasses.replace(ctx, state=state, **changes)
        if self.on_transition is not None:
            self.on_transition(ctx)
        return ctx

    def _fail(self, ctx, error):
        logger.warning("Registration failed in %s: %s", ctx.state.value, error.message)
        return self._enter(
            ctx,
            RegistrationState.ERROR,
            error=error,
            toast=Toast(error.message, "error"),
        )

    @staticmethod
    def _require(ctx, *states):
        if ctx.state not in states:
            allowed = ", ".join(state.value for state in states)
            raise InvalidTransition(f"cannot do this from {ctx.state.value}; expected one of: {allowed}")

    def begin_scan(self, ctx):
        self._require(ctx, RegistrationState.IDLE)
        return self._enter(ctx, RegistrationState.SCANNING, error=None, toast=None)

    def cancel_scan(self, ctx):
        self._require(ctx, RegistrationState.SCANNING)
        return self._enter(ctx, RegistrationState.IDLE)

    def scan(self, ctx, scanner, timeout=None, camera_hint=DEFAULT_CAMERA_HINT, scanner_config=None, on_session=None):
        """
        Runs the camera until a code is decoded, then validates it.
        `on_session` receives the live ScanSession so the caller can cancel it.
        """
        ctx = self.begin_scan(ctx)
        try:
            with camera(scanner, camera_hint, scanner_config) as session:
                if on_session is not None:
                    on_session(session)
                qr_data = session.wait(timeout)
        except ScanCancelled as exc:
            logger.info("Scan ended without a code: %s", exc)
            return self.cancel_scan(ctx)
        except CameraUnavailable as exc:
            return self._fail(ctx, exc)
        return self.handle_scan(ctx, qr_data)

    def handle_scan(self, ctx, qr_data):
        """Parses the scanned text and pre-validates the invitation it names."""
        self._require(ctx, RegistrationState.IDLE, RegistrationState.SCANNING)
        ctx = self._enter(ctx, RegistrationState.VALIDATING)

        reference = parse_qr_data(qr_data)
        if reference is None:
            return self._fail(ctx, MalformedCode())

        invitation = self.invitations.fetch(reference.invitation_id)
        if invitation is None:
            return self._fail(ctx, InvitationNotFound())

        if not is_redeemable(invitation, self.clock()):
            return self._fail(ctx, InvitationNotRedeemable())

        logger.info("Invitation %s accepted for host %s", invitation.id, invitation.host_id)
        return self._enter(ctx, RegistrationState.AWAITING_FORM, invitation=invitation, error=None, toast=None)

    def submit(self, ctx, form: VisitorForm):
        """Redeems the invitation, stores the visitor and notifies guard and host."""
        self._require(ctx, RegistrationState.AWAITING_FORM)
        name = _clean(form.name)
        if not name:
            error = MissingRequiredField(field_errors={"name": MissingRequiredField.default_message})
            return self._enter(
                ctx,
                RegistrationState.AWAITING_FORM,
                error=error,
                field_errors=error.field_errors,
                toast=Toast(error.message, "error"),
            )

        invitation = ctx.invitation
        ctx = self._enter(ctx, RegistrationState.REDEEMING, error=None, field_errors={}, toast=None)
        result = self.invitations.redeem(invitation.id)
        if not result.redeemed:
            logger.info("Redemption of %s rejected: %s", invitation.id, result.reason)
            return self._fail(ctx, RedemptionRejected())

        ctx = self._enter(ctx, RegistrationState.PERSISTING)
        now = self.clock()
        visitor = Visitor(
            id=str(uuid.uuid4()),
            name=name,
            visiting_flat=invitation.flat_no,
            phone=_clean(form.phone),
            photo_url=invitation.image_url or None,
            status=VISITOR_STATUS_CHECKED_IN,
            entry_time=now,
            check_in_time=now,
            purpose=invitation.purpose,
            qr_code=invitation.id,
            host_id=invitation.host_id,
            host_name=invitation.host_name,
            is_pre_approved=True,
            valid_until=None,
            email=_clean(form.email) or None,
            company=_clean(form.company) or None,
        )
        try:
            self.visitors.create(visitor)
        except PersistenceFailure as exc:
            logger.warning("Invitation %s stays redeemed without a visitor record", invitation.id)
            return self._fail(ctx, exc)

        ctx = self._enter(ctx, RegistrationState.NOTIFYING, visitor=visitor)
        outcomes = self.dispatcher.dispatch(visitor)

        logger.info("Visitor %s checked in for flat %s", visitor.id, visitor.visiting_flat)
        return self._enter(
            ctx,
            RegistrationState.SUCCESS,
            notifications_sent=tuple(outcomes),
            toast=Toast("Visitor logged successfully! You are now checked in.", "success"),
        )

    def retry(self, ctx):
        """Back to the form after an error, or to the start when there is no invitation yet."""
        self._require(ctx, RegistrationState.ERROR)
        if ctx.invitation is None:
            return self.reset(ctx)
        return self._enter(ctx, RegistrationState.AWAITING_FORM, error=None, field_errors={}, toast=None)

    def reset(self, ctx=None):
        return self._enter(RegistrationContext(), RegistrationState.IDLE)
