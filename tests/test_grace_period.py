"""Grace period scheduler: start, cancel, sweep, expiry."""

from datetime import timedelta

import pytest

from afterme.core.config import settings
from afterme.core.exceptions import InvalidTransition
from afterme.db.enums import ConfirmAction, LegacyAccessStatus
from afterme.db.models import LegacyAccessToken, UserSettings
from afterme.services import grace_period_service, request_service
from afterme.utils.datetime_utils import as_utc, utcnow

C = ConfirmAction.CONFIRM


@pytest.fixture
def in_grace(db, owner, add_trustees, submit, tokens_for, respond):
    """A request that has just entered its grace period."""
    add_trustees(owner, 3)
    request = submit(owner)
    a, b, _ = tokens_for(request)
    respond(a, C)
    respond(b, C)
    db.refresh(request)
    assert request.status == LegacyAccessStatus.GRACE_PERIOD.value
    return request


def test_grace_period_defaults_to_seven_days(in_grace):
    start = as_utc(in_grace.grace_period_start)
    end = as_utc(in_grace.grace_period_end)
    assert end - start == timedelta(days=7)
    assert abs(utcnow() - start) < timedelta(minutes=1)


def test_owner_override_for_grace_period(db, owner, add_trustees, submit, tokens_for, respond):
    db.get(UserSettings, owner.id).grace_period_days = 3
    db.commit()
    add_trustees(owner, 1)
    request = submit(owner)
    respond(tokens_for(request)[0], C)
    db.refresh(request)

    assert as_utc(request.grace_period_end) - as_utc(request.grace_period_start) == timedelta(days=3)


def test_sweep_before_end_changes_nothing(db, in_grace):
    granted = grace_period_service.tick_expired_grace_periods(db, now=utcnow() + timedelta(days=6))
    assert granted == []
    db.refresh(in_grace)
    assert in_grace.status == LegacyAccessStatus.GRACE_PERIOD.value


def test_sweep_after_end_grants_and_issues_token(db, in_grace):
    now = as_utc(in_grace.grace_period_end) + timedelta(minutes=1)

    granted = grace_period_service.tick_expired_grace_periods(db, now=now)

    assert granted == [in_grace.id]
    db.refresh(in_grace)
    assert in_grace.status == LegacyAccessStatus.GRANTED.value
    assert as_utc(in_grace.access_expires_at) == now + timedelta(days=30)
    token = db.query(LegacyAccessToken).filter(LegacyAccessToken.request_id == in_grace.id).one()
    assert as_utc(token.expires_at) == as_utc(in_grace.access_expires_at)


def test_sweep_twice_is_idempotent(db, in_grace):
    now = as_utc(in_grace.grace_period_end) + timedelta(minutes=1)

    first = grace_period_service.run_sweep(db, now=now)
    second = grace_period_service.run_sweep(db, now=now)

    assert first.granted == [in_grace.id]
    assert second.granted == []
    assert second.expired == []
    tokens = db.query(LegacyAccessToken).filter(LegacyAccessToken.request_id == in_grace.id).all()
    assert len(tokens) == 1


def test_cancel_during_grace_then_late_sweep_is_noop(db, owner, in_grace):
    cancelled = grace_period_service.cancel_grace_period(
        db, in_grace.id, owner.id, now=as_utc(in_grace.grace_period_start) + timedelta(days=2)
    )
    assert cancelled.status == LegacyAccessStatus.CANCELLED.value
    assert cancelled.cancelled_at is not None

    result = grace_period_service.run_sweep(
        db, now=as_utc(in_grace.grace_period_start) + timedelta(days=8)
    )
    assert result.granted == []
    db.refresh(in_grace)
    assert in_grace.status == LegacyAccessStatus.CANCELLED.value


def test_cancel_outside_grace_period_is_invalid(db, owner, in_grace):
    grace_period_service.tick_expired_grace_periods(
        db, now=as_utc(in_grace.grace_period_end) + timedelta(seconds=1)
    )
    with pytest.raises(InvalidTransition):
        grace_period_service.cancel_grace_period(db, in_grace.id, owner.id)
    db.rollback()
    assert request_service.get_request(db, in_grace.id).status == LegacyAccessStatus.GRANTED.value


def test_expire_granted_access(db, in_grace):
    grant_time = as_utc(in_grace.grace_period_end) + timedelta(minutes=1)
    grace_period_service.tick_expired_grace_periods(db, now=grant_time)

    assert grace_period_service.expire_granted_access(db, now=grant_time + timedelta(days=29)) == []
    expired = grace_period_service.expire_granted_access(db, now=grant_time + timedelta(days=30))
    assert expired == [in_grace.id]
    db.refresh(in_grace)
    assert in_grace.status == LegacyAccessStatus.EXPIRED.value


def test_grace_period_end_only_set_once_in_grace(db, owner, add_trustees, submit, tokens_for, respond):
    add_trustees(owner, 3)
    request = submit(owner)
    respond(tokens_for(request)[0], C)
    db.refresh(request)
    assert request.status == LegacyAccessStatus.UNDER_REVIEW.value
    assert request.grace_period_end is None


def _two_in_grace(db, owner, add_trustees, submit, tokens_for, respond):
    add_trustees(owner, 1)
    requests = []
    for email in ("first@example.com", "second@example.com"):
        request = submit(owner, requester_email=email)
        respond(tokens_for(request)[0], C)
        db.refresh(request)
        requests.append(request)
    return requests


def test_sweep_continues_past_a_failing_request(
    db, owner, add_trustees, submit, tokens_for, respond, monkeypatch
):
    first, second = _two_in_grace(db, owner, add_trustees, submit, tokens_for, respond)
    first_id, second_id = first.id, second.id
    real_issue = grace_period_service.access_token_service.issue_token

    def flaky_issue(db_, request):
        if request.id == first_id:
            raise RuntimeError("token store unavailable")
        return real_issue(db_, request)

    monkeypatch.setattr(grace_period_service.access_token_service, "issue_token", flaky_issue)
    now = utcnow() + timedelta(days=8)

    granted = grace_period_service.tick_expired_grace_periods(db, now=now)

    assert granted == [second_id]
    assert request_service.get_request(db, first_id).status == LegacyAccessStatus.GRACE_PERIOD.value
    assert request_service.get_request(db, second_id).status == LegacyAccessStatus.GRANTED.value


def test_oversized_access_override_is_capped(db, owner, add_trustees, submit, tokens_for, respond):
    db.get(UserSettings, owner.id).access_duration_days = 4_000_000
    db.commit()
    first, second = _two_in_grace(db, owner, add_trustees, submit, tokens_for, respond)
    now = utcnow() + timedelta(days=8)

    granted = grace_period_service.tick_expired_grace_periods(db, now=now)

    assert set(granted) == {first.id, second.id}
    db.refresh(second)
    assert as_utc(second.access_expires_at) == now + timedelta(
        days=settings.LEGACY_MAX_ACCESS_DURATION_DAYS
    )
