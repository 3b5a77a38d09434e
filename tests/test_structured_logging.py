from afterme.core.structured_logging import build_log_context


def test_build_log_context_drops_empty_values():
    context = build_log_context(
        owner_id="owner-1",
        legacy_request_id="req-1",
        job_id=None,
        route="/legacy-access/confirm",
        method="POST",
    )
    assert context == {
        "owner_id": "owner-1",
        "legacy_request_id": "req-1",
        "route": "/legacy-access/confirm",
        "method": "POST",
    }
