"""HTTP surface of the legacy access workflow."""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from afterme.core.config import settings
from afterme.core.constants import GENERIC_SUBMISSION_MESSAGE
from afterme.db.models import UserSettings
from afterme.services import grace_period_service
from afterme.utils.datetime_utils import as_utc


def _body(owner, **overrides):
    body = {
        "requesterName": "Rae Requester",
        "requesterEmail": "rae@example.com",
        "ownerIdentifier": owner.email,
        "relationship": "sibling",
        "verificationMethod": "trustee_confirmation",
    }
    body.update(overrides)
    return body


def _internal_headers():
    return {"X-Internal-Secret": settings.INTERNAL_SECRET}


async def _confirm(client: AsyncClient, token: str, action: str = "confirm"):
    return await client.post("/legacy-access/confirm", json={"token": token, "action": action})


# ============================================================================
# Submission
# ============================================================================


@pytest.mark.asyncio
async def test_submit_creates_pending_request(client, owner, add_trustees):
    add_trustees(owner, 3)
    response = await client.post("/legacy-access", json=_body(owner))

    assert response.status_code == 201
    data = response.json()
    assert data["request_id"]
    assert data["status"] == "pending"


@pytest.mark.asyncio
async def test_unknown_owner_gets_generic_acknowledgement(client, owner):
    response = await client.post(
        "/legacy-access", json=_body(owner, ownerIdentifier="nobody@test.com")
    )
    assert response.status_code == 202
    assert response.json() == {
        "message": GENERIC_SUBMISSION_MESSAGE,
        "request_id": None,
        "status": None,
    }


@pytest.mark.asyncio
async def test_release_disabled_looks_like_unknown_owner(db, client, owner, add_trustees):
    add_trustees(owner, 1)
    db.get(UserSettings, owner.id).legacy_release_enabled = False
    db.commit()

    response = await client.post("/legacy-access", json=_body(owner))
    assert response.status_code == 202
    assert response.json()["request_id"] is None


@pytest.mark.asyncio
async def test_duplicate_active_request_conflicts(client, owner, add_trustees):
    add_trustees(owner, 1)
    first = await client.post("/legacy-access", json=_body(owner))
    second = await client.post(
        "/legacy-access", json=_body(owner, requesterEmail="RAE@example.com")
    )

    assert second.status_code == 409
    assert second.json()["request_id"] == first.json()["request_id"]


@pytest.mark.asyncio
async def test_death_certificate_method_requires_url(client, owner):
    response = await client.post(
        "/legacy-access", json=_body(owner, verificationMethod="death_certificate")
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_death_certificate_only_is_held_for_manual_review(client, owner):
    response = await client.post(
        "/legacy-access",
        json=_body(
            owner,
            verificationMethod="death_certificate",
            deathCertificateUrl="https://files.example.com/cert.pdf",
        ),
    )
    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "pending"
    assert "manual review" in data["message"]


@pytest.mark.asyncio
async def test_owner_without_trustees_is_held(client, owner):
    response = await client.post("/legacy-access", json=_body(owner))
    assert response.status_code == 202
    assert response.json()["request_id"]


@pytest.mark.asyncio
async def test_bad_certificate_url_rejected(client, owner):
    response = await client.post(
        "/legacy-access",
        json=_body(owner, verificationMethod="combined", deathCertificateUrl="ftp://x/y"),
    )
    assert response.status_code == 422


# ============================================================================
# Trustee confirmation
# ============================================================================


@pytest.mark.asyncio
async def test_three_trustees_two_confirms_enter_grace_period(
    client, owner, add_trustees, submit, tokens_for
):
    add_trustees(owner, 3)
    request = submit(owner)
    a, b, _ = tokens_for(request)

    first = await _confirm(client, a)
    assert first.json()["status"] == "under_review"

    second = await _confirm(client, b)
    assert second.status_code == 200
    assert second.json()["status"] == "grace_period"
    assert second.json()["tally"] == {"confirmed": 2, "denied": 0, "total": 3, "required": 2}

    status = await client.get("/legacy-access/status", params={"email": "requester@example.com"})
    item = status.json()["requests"][0]
    assert item["status"] == "grace_period"
    assert item["grace_period_end"] is not None
    assert item["access_link"] is None


@pytest.mark.asyncio
async def test_two_trustees_two_denials_reject(
    client, owner, add_trustees, submit, tokens_for, monkeypatch
):
    monkeypatch.setattr(settings, "LEGACY_QUORUM_RULE", "half")
    add_trustees(owner, 2)
    request = submit(owner)
    a, b = tokens_for(request)

    assert (await _confirm(client, a, "deny")).json()["status"] == "under_review"
    assert (await _confirm(client, b, "deny")).json()["status"] == "rejected"


@pytest.mark.asyncio
async def test_resubmitting_same_decision_returns_prior_outcome(
    client, owner, add_trustees, submit, tokens_for
):
    add_trustees(owner, 3)
    request = submit(owner)
    token = tokens_for(request)[0]

    first = await _confirm(client, token)
    again = await _confirm(client, token)

    assert again.status_code == 200
    assert again.json()["replayed"] is True
    assert again.json()["tally"] == first.json()["tally"]


@pytest.mark.asyncio
async def test_used_token_with_other_decision_is_gone(
    client, owner, add_trustees, submit, tokens_for
):
    add_trustees(owner, 3)
    request = submit(owner)
    token = tokens_for(request)[0]

    await _confirm(client, token)
    response = await _confirm(client, token, "deny")
    assert response.status_code == 410


@pytest.mark.asyncio
async def test_unknown_confirmation_token_not_found(client):
    assert (await _confirm(client, "nope")).status_code == 404
    details = await client.get("/legacy-access/confirm-details", params={"token": "nope"})
    assert details.status_code == 404


@pytest.mark.asyncio
async def test_confirm_details(client, owner, add_trustees, submit, tokens_for):
    add_trustees(owner, 2)
    request = submit(owner)
    token = tokens_for(request)[0]

    response = await client.get("/legacy-access/confirm-details", params={"token": token})
    assert response.status_code == 200
    data = response.json()
    assert data["trustee_name"] == "Trustee 1"
    assert data["owner_name"] == "Olivia Owner"
    assert data["requester_email"] == "requester@example.com"
    assert data["has_death_certificate"] is False

    await _confirm(client, token)
    used = await client.get("/legacy-access/confirm-details", params={"token": token})
    assert used.status_code == 410


# ============================================================================
# Grant, content, owner actions
# ============================================================================


async def _granted(db, client, owner, add_trustees, submit, tokens_for):
    add_trustees(owner, 1)
    request = submit(owner)
    await _confirm(client, tokens_for(request)[0])
    db.refresh(request)
    grace_period_service.run_sweep(db, now=as_utc(request.grace_period_end) + timedelta(seconds=1))
    db.refresh(request)
    return request


@pytest.mark.asyncio
async def test_revoke_then_content_forbidden(db, authed_client, owner, add_trustees, submit, tokens_for):
    request = await _granted(db, authed_client, owner, add_trustees, submit, tokens_for)

    status = await authed_client.get(
        "/legacy-access/status",
        params={"email": "requester@example.com", "request_id": str(request.id)},
    )
    link = status.json()["requests"][0]["access_link"]
    token = link.split("token=")[1]

    content = await authed_client.get("/legacy-access/content", params={"token": token})
    assert content.status_code == 200
    assert content.json()["owner"]["name"] == "Olivia Owner"
    assert content.json()["content"]["memories"] == []

    revoked = await authed_client.post(f"/legacy-access/{request.id}/revoke")
    assert revoked.status_code == 200
    assert revoked.json()["changed"] is True
    assert revoked.json()["status"] == "cancelled"

    after = await authed_client.get("/legacy-access/content", params={"token": token})
    assert after.status_code == 403


@pytest.mark.asyncio
async def test_unknown_access_token_not_found(client):
    response = await client.get("/legacy-access/content", params={"token": "nope"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cancel_in_grace_period_then_noop(authed_client, owner, add_trustees, submit, tokens_for):
    add_trustees(owner, 1)
    request = submit(owner)
    await _confirm(authed_client, tokens_for(request)[0])

    first = await authed_client.post(f"/legacy-access/{request.id}/cancel")
    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"
    assert first.json()["changed"] is True

    second = await authed_client.post(f"/legacy-access/{request.id}/cancel")
    assert second.status_code == 200
    assert second.json()["changed"] is False


@pytest.mark.asyncio
async def test_owner_cannot_act_on_other_owners_request(authed_client, db, add_trustees, submit):
    from afterme.db.models import User

    other = User(email="other@test.com", display_name="Other")
    db.add(other)
    db.commit()
    add_trustees(other, 1)
    request = submit(other)

    response = await authed_client.post(f"/legacy-access/{request.id}/cancel")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_owner_endpoints_require_session(client, owner):
    response = await client.get("/legacy-access/owner/requests")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_owner_mutations_require_csrf_header(authed_client, owner, add_trustees, submit):
    add_trustees(owner, 1)
    request = submit(owner)
    response = await authed_client.post(
        f"/legacy-access/{request.id}/cancel", headers={"X-Requested-With": ""}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_owner_lists_requests_with_tally(authed_client, owner, add_trustees, submit):
    add_trustees(owner, 3)
    submit(owner)

    response = await authed_client.get("/legacy-access/owner/requests")
    assert response.status_code == 200
    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["tally"] == {"confirmed": 0, "denied": 0, "total": 3, "required": 2}


# ============================================================================
# Internal endpoints
# ============================================================================


@pytest.mark.asyncio
async def test_sweep_endpoint_requires_secret(client):
    response = await client.post(
        "/internal/scheduled/legacy-access-sweep", headers={"X-Internal-Secret": "wrong"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_sweep_endpoint_runs_sweep(client):
    response = await client.post(
        "/internal/scheduled/legacy-access-sweep", headers=_internal_headers()
    )
    assert response.status_code == 200
    assert response.json() == {"granted": [], "expired": []}


@pytest.mark.asyncio
async def test_manual_verify_starts_grace_period(db, client, owner):
    held = await client.post(
        "/legacy-access",
        json=_body(
            owner,
            verificationMethod="death_certificate",
            deathCertificateUrl="https://files.example.com/cert.pdf",
        ),
    )
    request_id = held.json()["request_id"]

    response = await client.post(
        f"/internal/legacy-access/{request_id}/verify", headers=_internal_headers()
    )
    assert response.status_code == 200
    assert response.json()["status"] == "grace_period"

    again = await client.post(
        f"/internal/legacy-access/{request_id}/verify", headers=_internal_headers()
    )
    assert again.json()["changed"] is False


@pytest.mark.asyncio
async def test_manual_reject(client, owner):
    held = await client.post("/legacy-access", json=_body(owner))
    request_id = held.json()["request_id"]

    response = await client.post(
        f"/internal/legacy-access/{request_id}/reject",
        json={"reason": "Could not verify identity"},
        headers=_internal_headers(),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"


@pytest.mark.parametrize(
    "endpoint",
    [
        "submit_legacy_access_request",
        "get_legacy_access_status",
        "get_confirmation_details",
        "confirm_legacy_access_request",
        "get_legacy_content",
    ],
)
def test_public_endpoints_are_rate_limited(endpoint):
    from afterme.core.rate_limit import limiter
    from afterme.routers import legacy_access

    assert f"{legacy_access.__name__}.{endpoint}" in limiter._route_limits
