"""Trustee confirmation ledger.

One single-use confirmation row per verified trustee is fanned out when a
request is created. Each row records at most one decision; the tally is
taken against the trustee count snapshotted at fan-out.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from afterme.core.config import settings
from afterme.core.constants import CONFIRMATION_TOKEN_BYTES
from afterme.core.exceptions import InvalidOrUsedToken, NoTrustees
from afterme.core.security import generate_link_token
from afterme.db.enums import ConfirmAction, QuorumRule, TrusteeAction
from afterme.db.models import LegacyAccessRequest, Trustee, TrusteeConfirmation
from afterme.utils.datetime_utils import utcnow


@dataclass(frozen=True)
class Tally:
    confirmed: int
    denied: int
    total: int
    required: int

    @property
    def responded(self) -> int:
        return self.confirmed + self.denied

    @property
    def outstanding(self) -> int:
        return self.total - self.responded

    @property
    def quorum_reached(self) -> bool:
        return self.total > 0 and self.confirmed >= self.required

    @property
    def quorum_impossible(self) -> bool:
        """Even if every outstanding trustee confirmed, quorum could not be met."""
        return self.total > 0 and self.confirmed + self.outstanding < self.required

    def as_dict(self) -> dict[str, int]:
        return {
            "confirmed": self.confirmed,
            "denied": self.denied,
            "total": self.total,
            "required": self.required,
        }


@dataclass(frozen=True)
class ConfirmationResult:
    confirmation: TrusteeConfirmation
    action: TrusteeAction
    replayed: bool  # True when the same token + action was submitted before


def required_confirmations(total: int, rule: QuorumRule | str | None = None) -> int:
    """
    Confirmations needed out of ``total`` trustees.

    majority: floor(n/2) + 1 (strictly more than half)
    half: ceil(n/2), never less than 1
    """
    if total <= 0:
        return 0
    rule = QuorumRule(rule or settings.LEGACY_QUORUM_RULE)
    if rule is QuorumRule.HALF:
        return max(1, (total + 1) // 2)
    return total // 2 + 1


def get_verified_trustees(db: Session, owner_id: UUID) -> list[Trustee]:
    """Active, verified trustees of an owner, by priority."""
    return (
        db.query(Trustee)
        .filter(
            Trustee.user_id == owner_id,
            Trustee.is_active.is_(True),
            Trustee.is_verified.is_(True),
        )
        .order_by(Trustee.priority, Trustee.created_at)
        .all()
    )


def fan_out_confirmations(
    db: Session,
    request: LegacyAccessRequest,
    trustees: list[Trustee],
) -> list[TrusteeConfirmation]:
    """
    Create one unconfirmed, token-bearing row per verified trustee.

    Snapshots the quorum denominator on the request; trustees added later do
    not join this request.

    Raises:
        NoTrustees: no verified trustee to ask.
    """
    eligible = [t for t in trustees if t.is_active and t.is_verified]
    if not eligible:
        raise NoTrustees(f"Owner {request.owner_id} has no verified trustees")

    confirmations = []
    for trustee in eligible:
        confirmation = TrusteeConfirmation(
            request_id=request.id,
            trustee_id=trustee.id,
            token=generate_link_token(CONFIRMATION_TOKEN_BYTES),
            action=TrusteeAction.UNCONFIRMED.value,
        )
        db.add(confirmation)
        confirmations.append(confirmation)

    request.total_trustees = len(eligible)
    request.required_confirmations = required_confirmations(len(eligible))
    db.flush()
    return confirmations


def get_confirmation_by_token(db: Session, token: str) -> TrusteeConfirmation | None:
    if not token:
        return None
    return db.query(TrusteeConfirmation).filter(TrusteeConfirmation.token == token).first()


def record_response(
    db: Session,
    token: str,
    action: ConfirmAction,
    notes: str | None = None,
) -> ConfirmationResult:
    """
    Record a trustee's decision, exactly once per token.

    Re-submitting the same action returns the original outcome with
    ``replayed=True``; a different action on a used token is rejected. The
    recorded action is never overwritten.

    Raises:
        InvalidOrUsedToken: unknown token, or used with a different action.
    """
    confirmation = get_confirmation_by_token(db, token)
    if confirmation is None:
        raise InvalidOrUsedToken()

    wanted = action.to_trustee_action()
    if confirmation.action != TrusteeAction.UNCONFIRMED.value:
        return _replay_or_reject(confirmation, wanted)

    result = db.execute(
        update(TrusteeConfirmation)
        .where(
            TrusteeConfirmation.id == confirmation.id,
            TrusteeConfirmation.action == TrusteeAction.UNCONFIRMED.value,
        )
        .values(action=wanted.value, notes=notes or None, responded_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.refresh(confirmation)
    if result.rowcount != 1:
        # Someone else used the token between our read and write
        return _replay_or_reject(confirmation, wanted)

    return ConfirmationResult(confirmation=confirmation, action=wanted, replayed=False)


def _replay_or_reject(
    confirmation: TrusteeConfirmation, wanted: TrusteeAction
) -> ConfirmationResult:
    if confirmation.action == wanted.value:
        return ConfirmationResult(confirmation=confirmation, action=wanted, replayed=True)
    raise InvalidOrUsedToken("This confirmation has already been processed", used=True)


def tally(db: Session, request_id: UUID) -> Tally:
    """Count decisions for a request against its fan-out snapshot."""
    rows = (
        db.query(TrusteeConfirmation.action, func.count(TrusteeConfirmation.id))
        .filter(TrusteeConfirmation.request_id == request_id)
        .group_by(TrusteeConfirmation.action)
        .all()
    )
    counts = {action: count for action, count in rows}
    request = db.get(LegacyAccessRequest, request_id)
    total = request.total_trustees if request else sum(counts.values())
    required = request.required_confirmations if request else required_confirmations(total)
    return Tally(
        confirmed=counts.get(TrusteeAction.CONFIRMED.value, 0),
        denied=counts.get(TrusteeAction.DENIED.value, 0),
        total=total,
        required=required,
    )
