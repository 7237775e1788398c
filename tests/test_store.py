import datetime
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError

from visitor_checkin.exceptions import InvitationExists, PersistenceFailure
from visitor_checkin.models import Visitor
from visitor_checkin.store import (
    REASON_CONFLICT,
    REASON_NOT_FOUND,
    REASON_NOT_REDEEMABLE,
    REASON_STORE_ERROR,
    InvitationStore,
)


def redeem_concurrently(store, invitation_id, attempts):
    barrier = threading.Barrier(attempts)

    def attempt():
        barrier.wait()
        return store.redeem(invitation_id)

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        return list(pool.map(lambda _: attempt(), range(attempts)))


def test_fetch_returns_detached_invitation(invitation_store, make_invitation):
    make_invitation("inv1", max_visitors=3)
    invitation = invitation_store.fetch("inv1")
    assert invitation.host_name == "Jane Resident"
    assert invitation.used_count == 0
    assert invitation.max_visitors == 3


def test_fetch_missing_invitation(invitation_store):
    assert invitation_store.fetch("nope") is None


def test_fetch_does_not_mutate(invitation_store, make_invitation):
    make_invitation("inv1")
    for _ in range(3):
        invitation_store.fetch("inv1")
    assert invitation_store.fetch("inv1").used_count == 0


def test_redeem_increments_by_one(invitation_store, make_invitation):
    make_invitation("inv1", max_visitors=2)
    result = invitation_store.redeem("inv1")
    assert result.redeemed
    assert result.used_count == 1
    assert invitation_store.fetch("inv1").used_count == 1


def test_redeem_stops_at_capacity(invitation_store, make_invitation):
    make_invitation("inv1", max_visitors=2)
    assert invitation_store.redeem("inv1").redeemed
    assert invitation_store.redeem("inv1").redeemed
    third = invitation_store.redeem("inv1")
    assert not third.redeemed
    assert third.reason == REASON_NOT_REDEEMABLE
    assert invitation_store.fetch("inv1").used_count == 2


def test_redeem_missing_invitation(invitation_store):
    result = invitation_store.redeem("nope")
    assert not result.redeemed
    assert result.reason == REASON_NOT_FOUND


@pytest.mark.parametrize(
    "overrides",
    [
        {"is_active": False},
        {"valid_until": datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc),
         "valid_from": datetime.datetime(2019, 1, 1, tzinfo=datetime.timezone.utc)},
    ],
    ids=["inactive", "expired"],
)
def test_redeem_rejects_invalid_without_writing(invitation_store, make_invitation, overrides):
    make_invitation("inv1", **overrides)
    result = invitation_store.redeem("inv1")
    assert not result.redeemed
    assert result.reason == REASON_NOT_REDEEMABLE
    assert invitation_store.fetch("inv1").used_count == 0


def test_two_simultaneous_redeems_on_single_use_invitation(invitation_store, make_invitation):
    make_invitation("inv1", max_visitors=1)
    results = redeem_concurrently(invitation_store, "inv1", 2)
    assert sorted(result.redeemed for result in results) == [False, True]
    assert invitation_store.fetch("inv1").used_count == 1


@pytest.mark.parametrize("capacity, attempts", [(3, 8), (5, 5), (6, 4)])
def test_concurrent_redeems_never_overshoot(invitation_store, make_invitation, capacity, attempts):
    make_invitation("inv1", max_visitors=capacity)
    results = redeem_concurrently(invitation_store, "inv1", attempts)
    assert sum(result.redeemed for result in results) == min(attempts, capacity)
    assert invitation_store.fetch("inv1").used_count == min(attempts, capacity)


def test_concurrent_redeems_respect_prior_usage(invitation_store, make_invitation):
    make_invitation("inv1", max_visitors=4, used_count=2)
    results = redeem_concurrently(invitation_store, "inv1", 6)
    assert sum(result.redeemed for result in results) == 2
    assert invitation_store.fetch("inv1").used_count == 4


def stale_session_factory(session_factory, before_write, times=None):
    """Sessions whose first `times` writes are preceded by `before_write()`."""
    remaining = [times]

    def factory():
        session = session_factory()
        if remaining[0] is not None:
            if remaining[0] == 0:
                return session
            remaining[0] -= 1
        real_execute = session.execute

        def execute(statement, *args, **kwargs):
            if statement.is_dml:
                before_write()
            return real_execute(statement, *args, **kwargs)

        session.execute = execute
        return session

    return factory


def test_lost_race_is_retried(session_factory, make_invitation):
    make_invitation("inv1", max_visitors=2)
    other = InvitationStore(session_factory, retry_backoff=0)

    def someone_else_redeems():
        assert other.redeem("inv1").redeemed

    store = InvitationStore(
        stale_session_factory(session_factory, someone_else_redeems, times=1), retry_backoff=0
    )
    result = store.redeem("inv1")
    assert result.redeemed
    assert result.used_count == 2
    assert other.fetch("inv1").used_count == 2


def test_gives_up_after_bounded_attempts(session_factory, make_invitation):
    make_invitation("inv1", max_visitors=5)
    calls = []

    def flaky_factory():
        session = session_factory()

        def execute(statement, *args, **kwargs):
            calls.append(statement)
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

        session.execute = execute
        return session

    store = InvitationStore(flaky_factory, max_attempts=3, retry_backoff=0)
    result = store.redeem("inv1")
    assert not result.redeemed
    assert result.reason == REASON_STORE_ERROR
    assert len(calls) == 3
    assert InvitationStore(session_factory).fetch("inv1").used_count == 0


def test_conflict_reason_when_every_attempt_loses(session_factory, make_invitation):
    make_invitation("inv1", max_visitors=5)
    other = InvitationStore(session_factory, retry_backoff=0)
    store = InvitationStore(
        stale_session_factory(session_factory, lambda: other.redeem("inv1")),
        max_attempts=2,
        retry_backoff=0,
    )
    result = store.redeem("inv1")
    assert not result.redeemed
    assert result.reason == REASON_CONFLICT
    assert other.fetch("inv1").used_count == 2


def test_deactivate(invitation_store, make_invitation):
    make_invitation("inv1")
    assert invitation_store.deactivate("inv1")
    assert invitation_store.fetch("inv1").is_active is False
    assert not invitation_store.redeem("inv1").redeemed
    assert not invitation_store.deactivate("missing")


def test_create_generates_unpredictable_id(invitation_store, now):
    first = invitation_store.create(
        host_id="h", host_name="H", flat_no="1", purpose="p",
        valid_from=now, valid_until=now,
    )
    second = invitation_store.create(
        host_id="h", host_name="H", flat_no="1", purpose="p",
        valid_from=now, valid_until=now,
    )
    assert first.id != second.id
    assert first.used_count == 0 and first.max_visitors == 1


def test_create_refuses_taken_id(invitation_store, make_invitation, now):
    make_invitation("inv1", max_visitors=3)
    with pytest.raises(InvitationExists):
        invitation_store.create(
            invitation_id="inv1", host_id="h", host_name="H", flat_no="1", purpose="p",
            valid_from=now, valid_until=now,
        )
    existing = invitation_store.fetch("inv1")
    assert existing.host_name == "Jane Resident"
    assert existing.max_visitors == 3


def test_visitor_store_wraps_database_errors(visitor_store, now):
    visitor = dict(
        name="Sam", phone="", visiting_flat="B-204", purpose="Dinner", host_id="host-42",
        host_name="Jane Resident", qr_code="inv1", status="checked_in",
        entry_time=now, check_in_time=now, is_pre_approved=True,
    )
    visitor_id = str(uuid.uuid4())
    visitor_store.create(Visitor(id=visitor_id, **visitor))
    with pytest.raises(PersistenceFailure):
        visitor_store.create(Visitor(id=visitor_id, **visitor))
