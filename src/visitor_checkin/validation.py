"""
Redeemability rules for invitations.
"""

import datetime


def as_utc(value):
    """Naive datetimes (SQLite drops tzinfo) are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


# PUBLIC_INTERFACE
def is_redeemable(invitation, now) -> bool:
    """
    True iff the invitation is active, `now` lies inside the inclusive
    [valid_from, valid_until] window and capacity remains.
    """
    now = as_utc(now)
    return (
        bool(invitation.is_active)
        and as_utc(invitation.valid_from) <= now <= as_utc(invitation.valid_until)
        and invitation.used_count < invitation.max_visitors
    )
