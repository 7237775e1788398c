"""
SQLAlchemy ORM models for the QR visitor check-in flow.
Entities: Invitation, Visitor, Notification.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    func,
    Boolean,
    Text,
    CheckConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

VISITOR_STATUS_CHECKED_IN = "checked_in"


# PUBLIC_INTERFACE
class Invitation(Base):
    """
    QR invitation issued by a host.
    Time-bounded by [valid_from, valid_until] and count-bounded by max_visitors.
    """
    __tablename__ = "qr_invitations"
    __table_args__ = (
        CheckConstraint("used_count <= max_visitors", name="ck_qr_invitations_capacity"),
    )

    id = Column(String, primary_key=True)
    host_id = Column(String, nullable=False, index=True)
    host_name = Column(String, nullable=False)
    flat_no = Column(String, nullable=False)
    purpose = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    max_visitors = Column(Integer, nullable=False, default=1)
    used_count = Column(Integer, nullable=False, default=0)  # only ever changed by redemption
    image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Invitation {self.id} ({self.used_count}/{self.max_visitors})>"


# PUBLIC_INTERFACE
class Visitor(Base):
    """
    Visitor checked in through a QR invitation.
    Written once per successful redemption, never updated by this flow.
    """
    __tablename__ = "visitors"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False, default="")
    email = Column(String, nullable=True)
    company = Column(String, nullable=True)
    visiting_flat = Column(String, nullable=False)
    purpose = Column(String, nullable=False)
    host_id = Column(String, nullable=False, index=True)
    host_name = Column(String, nullable=False)
    photo_url = Column(String, nullable=True)
    qr_code = Column(String, nullable=False, index=True)  # invitation id
    status = Column(String, nullable=False, default=VISITOR_STATUS_CHECKED_IN)
    entry_time = Column(DateTime(timezone=True), nullable=False)
    check_in_time = Column(DateTime(timezone=True), nullable=False)
    is_pre_approved = Column(Boolean, nullable=False, default=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)


# PUBLIC_INTERFACE
class Notification(Base):
    """
    Notification for the guard desk (target_role) or a host (target_user_id).
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    visitor_id = Column(String, nullable=False, index=True)
    visitor_name = Column(String, nullable=False)
    visitor_phone = Column(String, nullable=True)
    flat_no = Column(String, nullable=True)
    host_name = Column(String, nullable=True)
    purpose = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    target_role = Column(String, nullable=True, index=True)
    target_user_id = Column(String, nullable=True, index=True)
