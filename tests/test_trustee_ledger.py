"""Trustee confirmation ledger: fan-out, single-use tokens, quorum."""

from itertools import permutations

import pytest

from afterme.core.config import settings
from afterme.core.exceptions import InvalidOrUsedToken, NoTrustees
from afterme.db.enums import (
    ConfirmAction,
    LegacyAccessStatus,
    QuorumRule,
    TrusteeAction,
    VerificationMethod,
)
from afterme.db.models import TrusteeConfirmation
from afterme.services import request_service, trustee_confirmation_service
from afterme.services.trustee_confirmation_service import Tally, required_confirmations

C, D = ConfirmAction.CONFIRM, ConfirmAction.DENY


@pytest.mark.parametrize("total,expected", [(1, 1), (2, 2), (3, 2), (4, 3), (5, 3)])
def test_majority_is_floor_half_plus_one(total, expected):
    assert required_confirmations(total, QuorumRule.MAJORITY) == expected


@pytest.mark.parametrize("total,expected", [(1, 1), (2, 1), (3, 2), (4, 2), (5, 3)])
def test_half_rule_is_ceil_half(total, expected):
    assert required_confirmations(total, QuorumRule.HALF) == expected


def test_no_trustees_means_nothing_required():
    assert required_confirmations(0) == 0


def test_tally_properties():
    tally = Tally(confirmed=1, denied=1, total=3, required=2)
    assert tally.outstanding == 1
    assert not tally.quorum_reached
    assert not tally.quorum_impossible

    tally = Tally(confirmed=0, denied=2, total=3, required=2)
    assert tally.quorum_impossible


def test_fan_out_creates_one_token_per_verified_trustee(db, owner, add_trustees, submit):
    trustees = add_trustees(owner, 3)
    trustees[2].is_verified = False
    db.commit()

    request = submit(owner)

    rows = db.query(TrusteeConfirmation).filter(TrusteeConfirmation.request_id == request.id).all()
    assert len(rows) == 2
    assert len({row.token for row in rows}) == 2
    assert all(row.action == TrusteeAction.UNCONFIRMED.value for row in rows)
    assert request.total_trustees == 2
    assert request.required_confirmations == 2


def test_fan_out_without_trustees_raises(db, owner):
    request = request_service.create_request(
        db,
        owner_id=owner.id,
        requester_name="Rae",
        requester_email="rae@example.com",
        relationship="sibling",
        verification_method=VerificationMethod.TRUSTEE_CONFIRMATION,
    )
    with pytest.raises(NoTrustees):
        trustee_confirmation_service.fan_out_confirmations(db, request, [])


def test_same_token_same_action_replays(db, owner, add_trustees, submit, tokens_for):
    add_trustees(owner, 3)
    request = submit(owner)
    token = tokens_for(request)[0]

    first = trustee_confirmation_service.record_response(db, token, C, notes="I knew them")
    db.commit()
    second = trustee_confirmation_service.record_response(db, token, C)

    assert first.replayed is False
    assert second.replayed is True
    assert second.action is TrusteeAction.CONFIRMED
    assert second.confirmation.notes == "I knew them"


def test_used_token_cannot_flip_decision(db, owner, add_trustees, submit, tokens_for):
    add_trustees(owner, 3)
    request = submit(owner)
    token = tokens_for(request)[0]

    trustee_confirmation_service.record_response(db, token, D)
    db.commit()

    with pytest.raises(InvalidOrUsedToken) as exc:
        trustee_confirmation_service.record_response(db, token, C)
    assert exc.value.used is True

    row = trustee_confirmation_service.get_confirmation_by_token(db, token)
    assert row.action == TrusteeAction.DENIED.value


def test_unknown_token_is_rejected(db):
    with pytest.raises(InvalidOrUsedToken) as exc:
        trustee_confirmation_service.record_response(db, "not-a-token", C)
    assert exc.value.used is False


def test_three_trustees_two_confirmations_start_grace_period(
    db, owner, add_trustees, submit, tokens_for, respond
):
    add_trustees(owner, 3)
    request = submit(owner)
    a, b, _ = tokens_for(request)

    outcome = respond(a, C)
    assert outcome.request.status == LegacyAccessStatus.UNDER_REVIEW.value

    outcome = respond(b, C)
    assert outcome.request.status == LegacyAccessStatus.GRACE_PERIOD.value
    assert outcome.request.verified_by == "trustees"
    assert outcome.tally.confirmed == 2


def test_two_trustees_under_half_rule(db, owner, add_trustees, submit, tokens_for, respond, monkeypatch):
    monkeypatch.setattr(settings, "LEGACY_QUORUM_RULE", "half")
    add_trustees(owner, 2)
    request = submit(owner)
    a, b = tokens_for(request)

    assert respond(a, D).request.status == LegacyAccessStatus.UNDER_REVIEW.value
    assert respond(b, D).request.status == LegacyAccessStatus.REJECTED.value


def test_two_trustees_under_majority_rule_reject_on_first_denial(
    db, owner, add_trustees, submit, tokens_for, respond
):
    add_trustees(owner, 2)
    request = submit(owner)
    a, _ = tokens_for(request)

    assert respond(a, D).request.status == LegacyAccessStatus.REJECTED.value


def test_late_response_after_decision_is_refused(db, owner, add_trustees, submit, tokens_for, respond):
    add_trustees(owner, 3)
    request = submit(owner)
    a, b, c = tokens_for(request)
    respond(a, C)
    respond(b, C)

    with pytest.raises(InvalidOrUsedToken) as exc:
        respond(c, D)
    assert exc.value.used is True


@pytest.mark.parametrize(
    "total,decisions,expected",
    [
        (3, (C, C, D), LegacyAccessStatus.GRACE_PERIOD),
        (3, (D, D, C), LegacyAccessStatus.REJECTED),
        (4, (C, C, C, D), LegacyAccessStatus.GRACE_PERIOD),
        (4, (C, C, D, D), LegacyAccessStatus.REJECTED),
        (5, (C, C, C, D, D), LegacyAccessStatus.GRACE_PERIOD),
    ],
)
def test_outcome_is_independent_of_response_order(
    db, owner, add_trustees, submit, tokens_for, respond, total, decisions, expected
):
    add_trustees(owner, total)
    accepting = (LegacyAccessStatus.PENDING.value, LegacyAccessStatus.UNDER_REVIEW.value)

    for n, order in enumerate(sorted(set(permutations(decisions)))):
        request = submit(owner, requester_email=f"perm{n}@example.com")
        tokens = tokens_for(request)
        for token, decision in zip(tokens, order):
            db.refresh(request)
            if request.status not in accepting:
                break
            respond(token, decision)
        db.refresh(request)
        assert request.status == expected.value, order


def test_response_committed_while_waiting_on_lock_is_replayed(
    db, owner, add_trustees, submit, tokens_for, monkeypatch
):
    from sqlalchemy import update

    from afterme.db.models import LegacyAccessRequest
    from afterme.services import legacy_access_service
    from afterme.utils.datetime_utils import utcnow

    add_trustees(owner, 1)
    request = submit(owner)
    token = tokens_for(request)[0]
    real_lock = request_service.lock_request

    def lock_after_other_session(db_, request_id):
        # The same link was answered and the request moved on in another session
        db_.execute(
            update(TrusteeConfirmation)
            .where(TrusteeConfirmation.token == token)
            .values(action=TrusteeAction.CONFIRMED.value, responded_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db_.execute(
            update(LegacyAccessRequest)
            .where(LegacyAccessRequest.id == request_id)
            .values(status=LegacyAccessStatus.GRACE_PERIOD.value)
            .execution_options(synchronize_session=False)
        )
        return real_lock(db_, request_id)

    monkeypatch.setattr(request_service, "lock_request", lock_after_other_session)

    outcome = legacy_access_service.respond_to_confirmation(db, token, C)

    assert outcome.replayed is True
    assert outcome.action is TrusteeAction.CONFIRMED
    assert outcome.request.status == LegacyAccessStatus.GRACE_PERIOD.value
