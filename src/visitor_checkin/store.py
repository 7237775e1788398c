"""
Store clients for invitations and visitors.

Redemption is the only write to an invitation's usage counter and runs as a
compare-and-swap inside its own transaction, retried a bounded number of times
when a concurrent writer gets there first.
"""

import logging
import secrets
import time
from typing import NamedTuple, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from . import config
from .exceptions import InvitationExists, PersistenceFailure
from .models import Invitation, Visitor
from .validation import is_redeemable, utcnow

logger = logging.getLogger(__name__)

REASON_NOT_FOUND = "not_found"
REASON_NOT_REDEEMABLE = "not_redeemable"
REASON_CONFLICT = "conflict"
REASON_STORE_ERROR = "store_error"


class RedemptionResult(NamedTuple):
    redeemed: bool
    reason: Optional[str] = None
    used_count: Optional[int] = None


# PUBLIC_INTERFACE
class InvitationStore:
    """Reads, redeems and (for issuers) creates invitations."""

    def __init__(self, session_factory, max_attempts=None, retry_backoff=None):
        self.session_factory = session_factory
        self.max_attempts = max_attempts or config.REDEEM_MAX_ATTEMPTS
        self.retry_backoff = config.REDEEM_RETRY_BACKOFF_SECONDS if retry_backoff is None else retry_backoff

    def fetch(self, invitation_id) -> Optional[Invitation]:
        """Point read. Store errors are logged and reported as not found."""
        try:
            with self.session_factory() as db:
                return db.get(Invitation, invitation_id)
        except SQLAlchemyError:
            logger.exception("Error getting invitation %s", invitation_id)
            return None

    def redeem(self, invitation_id, now=None) -> RedemptionResult:
        """
        Consumes one use of the invitation.

        Each attempt re-reads the row, re-validates it and bumps used_count
        only if nobody changed it since the read. A lost race or a lock error
        rolls back and retries; an invalid invitation aborts without writing.
        """
        reason = REASON_CONFLICT
        for attempt in range(1, self.max_attempts + 1):
            with self.session_factory() as db:
                try:
                    invitation = db.execute(
                        select(Invitation).where(Invitation.id == invitation_id).with_for_update()
                    ).scalar_one_or_none()
                    if invitation is None:
                        db.rollback()
                        return RedemptionResult(False, REASON_NOT_FOUND)

                    seen = invitation.used_count
                    if not is_redeemable(invitation, now or utcnow()):
                        db.rollback()
                        return RedemptionResult(False, REASON_NOT_REDEEMABLE, seen)

                    result = db.execute(
                        update(Invitation)
                        .where(Invitation.id == invitation_id, Invitation.used_count == seen)
                        .values(used_count=Invitation.used_count + 1)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        db.commit()
                        logger.info("Invitation %s redeemed (%d/%d)", invitation_id, seen + 1, invitation.max_visitors)
                        return RedemptionResult(True, None, seen + 1)

                    db.rollback()
                    reason = REASON_CONFLICT
                    logger.debug("Invitation %s changed concurrently (attempt %d)", invitation_id, attempt)
                except OperationalError as exc:
                    # lock timeouts, serialization failures, dropped connections
                    db.rollback()
                    reason = REASON_STORE_ERROR
                    logger.warning("Redeem of %s hit a store error (attempt %d): %s", invitation_id, attempt, exc)
                except SQLAlchemyError:
                    db.rollback()
                    logger.exception("Error using invitation %s", invitation_id)
                    return RedemptionResult(False, REASON_STORE_ERROR)

            time.sleep(self.retry_backoff * attempt)

        logger.warning("Giving up redeeming %s after %d attempts", invitation_id, self.max_attempts)
        return RedemptionResult(False, reason)

    def create(self, invitation_id=None, **fields) -> Invitation:
        """Stores a new invitation. Issuers normally do this outside the check-in flow."""
        fields.setdefault("used_count", 0)
        fields.setdefault("is_active", True)
        fields.setdefault("max_visitors", 1)
        invitation = Invitation(id=invitation_id or secrets.token_urlsafe(16), **fields)
        with self.session_factory() as db:
            db.add(invitation)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                logger.warning("Invitation %s not created: %s", invitation.id, exc.orig)
                raise InvitationExists() from exc
        logger.info("Created invitation %s for host %s", invitation.id, invitation.host_id)
        return invitation

    def deactivate(self, invitation_id) -> bool:
        """Flips the kill-switch. Returns False when the invitation does not exist."""
        with self.session_factory() as db:
            result = db.execute(
                update(Invitation)
                .where(Invitation.id == invitation_id)
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        return result.rowcount == 1


# PUBLIC_INTERFACE
class VisitorStore:
    """Point writes of visitor records."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def create(self, visitor: Visitor) -> Visitor:
        try:
            with self.session_factory() as db:
                db.add(visitor)
                db.commit()
        except SQLAlchemyError as exc:
            logger.error("Error saving visitor %s: %s", visitor.id, exc)
            raise PersistenceFailure() from exc
        return visitor
