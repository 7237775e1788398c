from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND
import dataclasses
import datetime
import logging

from . import config
from .database import get_db, SessionLocal
from .exceptions import InvitationExists
from .logging_config import setup_logging
from .models import Invitation, Visitor, Notification
from .notifications import NotificationDispatcher
from .qr_codes import build_qr_data
from .registrar import RegistrationContext, RegistrationState, VisitorForm, VisitorRegistrar
from .store import InvitationStore, VisitorStore
from .validation import as_utc

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="QR Visitor Check-in Backend",
    description="API for the visitor kiosk: scan a QR invitation, register the visitor and notify guard and host.",
    version="1.0.0",
    openapi_tags=[
        {"name": "checkin", "description": "QR invitation scan and visitor registration"},
        {"name": "validation", "description": "Real-time field validation"},
        {"name": "admin", "description": "Invitation issuing and dashboard listings"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],  # Restrict to frontend origin for security
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------- Pydantic Schemas --------------------

class ScanRequest(BaseModel):
    """Raw text decoded from the QR code by the kiosk camera."""
    qr_data: str = Field(..., description="Decoded QR text")


class RegistrationRequest(VisitorForm):
    qr_data: str = Field(..., description="Decoded QR text of the invitation being used")


class InvitationSummary(BaseModel):
    """What the visitor sees on the registration form."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    host_name: str
    flat_no: str
    purpose: str
    valid_until: datetime.datetime
    notes: Optional[str] = None


class InvitationCreatePayload(BaseModel):
    id: Optional[str] = Field(None, description="Invitation id; generated when omitted")
    host_id: str
    host_name: str = Field(..., examples=["Jane Resident"])
    flat_no: str = Field(..., examples=["B-204"])
    purpose: str = Field(..., examples=["Delivery"])
    notes: Optional[str] = None
    valid_from: datetime.datetime
    valid_until: datetime.datetime
    is_active: bool = True
    max_visitors: int = Field(1, ge=1)
    image_url: Optional[str] = None


class InvitationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    host_id: str
    host_name: str
    flat_no: str
    purpose: str
    notes: Optional[str] = None
    valid_from: datetime.datetime
    valid_until: datetime.datetime
    is_active: bool
    max_visitors: int
    used_count: int
    image_url: Optional[str] = None


class IssuedInvitationOut(InvitationOut):
    qr_data: str


class VisitorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    phone: str
    email: Optional[str] = None
    company: Optional[str] = None
    visiting_flat: str
    purpose: str
    host_id: str
    host_name: str
    photo_url: Optional[str] = None
    qr_code: str
    status: str
    entry_time: datetime.datetime
    check_in_time: datetime.datetime
    is_pre_approved: bool


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    message: str
    visitor_id: str
    visitor_name: str
    purpose: Optional[str] = None
    timestamp: datetime.datetime
    read: bool
    target_role: Optional[str] = None
    target_user_id: Optional[str] = None


class ToastOut(BaseModel):
    text: str
    severity: str
    dismiss_after: int


class RegistrationOut(BaseModel):
    screen: str
    visitor: VisitorOut
    toast: Optional[ToastOut] = None
    notifications_sent: List[bool]


class FieldValidationRequest(BaseModel):
    field: str = Field(..., description="'name', 'email' or 'phone'")
    value: str


class FieldValidationResult(BaseModel):
    field: str
    value: str
    is_valid: bool
    errors: Optional[List[str]] = None

# -------------------- Dependencies --------------------

# PUBLIC_INTERFACE
def get_session_factory():
    """Session factory used by the check-in flow (each step opens its own session)."""
    return SessionLocal


# PUBLIC_INTERFACE
def get_registrar(session_factory=Depends(get_session_factory)) -> VisitorRegistrar:
    return VisitorRegistrar(
        invitations=InvitationStore(session_factory),
        visitors=VisitorStore(session_factory),
        dispatcher=NotificationDispatcher(session_factory),
    )


def _error_response(ctx: RegistrationContext) -> JSONResponse:
    error = ctx.error
    logger.info("Check-in request failed: %s (%s)", error.code, ctx.state.value)
    return JSONResponse(
        status_code=error.status_code,
        content={
            "detail": error.message,
            "error": error.code,
            "screen": ctx.screen,
            "field_errors": ctx.field_errors or None,
        },
    )

# -------------------- Health Check --------------------

# PUBLIC_INTERFACE
@app.get("/", tags=["admin"])
def health_check():
    """
    Health check endpoint.
    ---
    Returns {"message": "Healthy"} if API is up.
    """
    return {"message": "Healthy"}

# -------------------- QR Check-in APIs --------------------

# PUBLIC_INTERFACE
@app.post("/api/checkin/scan", response_model=InvitationSummary, tags=["checkin"])
def scan_invitation(payload: ScanRequest, registrar: VisitorRegistrar = Depends(get_registrar)):
    """
    Validates a scanned QR code without consuming it.
    Returns the invitation details to show above the registration form.
    """
    ctx = registrar.handle_scan(RegistrationContext(), payload.qr_data)
    if ctx.state == RegistrationState.ERROR:
        return _error_response(ctx)
    return ctx.invitation


# PUBLIC_INTERFACE
@app.post("/api/checkin/register", response_model=RegistrationOut, tags=["checkin"])
def register_visitor(payload: RegistrationRequest, registrar: VisitorRegistrar = Depends(get_registrar)):
    """
    Registers and checks in a visitor against a scanned invitation.
    The invitation is re-validated and one use is consumed atomically;
    guard and host are notified on success.
    """
    ctx = registrar.handle_scan(RegistrationContext(), payload.qr_data)
    if ctx.state == RegistrationState.ERROR:
        return _error_response(ctx)

    form = VisitorForm(name=payload.name, phone=payload.phone, email=payload.email, company=payload.company)
    ctx = registrar.submit(ctx, form)
    if ctx.error is not None:
        return _error_response(ctx)

    return RegistrationOut(
        screen=ctx.screen,
        visitor=VisitorOut.model_validate(ctx.visitor),
        toast=ToastOut(**dataclasses.asdict(ctx.toast)) if ctx.toast else None,
        notifications_sent=list(ctx.notifications_sent),
    )

# -------------------- Real-time Field Validation --------------------

# PUBLIC_INTERFACE
@app.post("/api/validation/validate-field", response_model=FieldValidationResult, tags=["validation"])
def validate_field(payload: FieldValidationRequest):
    """
    Real-time validation for the registration form.
    Returns validity and errors, if any. Phone and email are optional.
    """
    field = payload.field
    value = payload.value.strip()
    errors = []

    if field == "name":
        if not value:
            errors.append("Please enter visitor name")
    elif field == "email":
        if value and "@" not in value:
            errors.append("Invalid email format.")
    elif field == "phone":
        digits = value.lstrip("+").replace(" ", "")
        if value and (not digits.isdigit() or not (7 <= len(digits) <= 15)):
            errors.append("Invalid phone number; must be 7-15 digits.")

    return FieldValidationResult(field=field, value=payload.value, is_valid=not errors, errors=errors or None)

# -------------------- Admin Endpoints --------------------

# PUBLIC_INTERFACE
@app.post("/api/admin/invitations", response_model=IssuedInvitationOut, status_code=201, tags=["admin"])
def create_invitation(payload: InvitationCreatePayload, session_factory=Depends(get_session_factory)):
    """
    Issues an invitation and returns it with the QR payload to print.
    """
    fields = payload.model_dump(exclude={"id"})
    fields["valid_from"] = as_utc(payload.valid_from)
    fields["valid_until"] = as_utc(payload.valid_until)
    if fields["valid_until"] < fields["valid_from"]:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="valid_until must not be before valid_from.")
    try:
        invitation = InvitationStore(session_factory).create(invitation_id=payload.id, **fields)
    except InvitationExists as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    return IssuedInvitationOut(
        **InvitationOut.model_validate(invitation).model_dump(),
        qr_data=build_qr_data(invitation.id),
    )


# PUBLIC_INTERFACE
@app.post("/api/admin/invitations/{invitation_id}/deactivate", response_model=InvitationOut, tags=["admin"])
def deactivate_invitation(invitation_id: str, db: Session = Depends(get_db), session_factory=Depends(get_session_factory)):
    """
    Turns the invitation's kill-switch off; later scans are rejected.
    """
    if not InvitationStore(session_factory).deactivate(invitation_id):
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Invitation not found")
    return db.get(Invitation, invitation_id)


# PUBLIC_INTERFACE
@app.get("/api/admin/invitations/{invitation_id}", response_model=InvitationOut, tags=["admin"])
def get_invitation(invitation_id: str, db: Session = Depends(get_db)):
    """
    Invitation with its current usage count.
    """
    invitation = db.get(Invitation, invitation_id)
    if invitation is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Invitation not found")
    return invitation


# PUBLIC_INTERFACE
@app.get("/api/admin/visitors", response_model=List[VisitorOut], tags=["admin"])
def get_visitors(skip: int = 0, limit: int = 25, db: Session = Depends(get_db)):
    """
    List checked-in visitors (most recent first, paginated).
    """
    return (db.query(Visitor)
            .order_by(Visitor.check_in_time.desc())
            .offset(skip)
            .limit(limit)
            .all())


# PUBLIC_INTERFACE
@app.get("/api/admin/notifications", response_model=List[NotificationOut], tags=["admin"])
def get_notifications(
    target_role: Optional[str] = None,
    target_user_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 25,
    db: Session = Depends(get_db),
):
    """
    List notifications, optionally for one role ("guard") or one host.
    """
    query = db.query(Notification)
    if target_role:
        query = query.filter(Notification.target_role == target_role)
    if target_user_id:
        query = query.filter(Notification.target_user_id == target_user_id)
    return query.order_by(Notification.id.desc()).offset(skip).limit(limit).all()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("visitor_checkin.main:app", host="0.0.0.0", port=8000)
