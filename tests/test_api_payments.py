from uuid import uuid4

from conftest import auth_headers, completion_event, signed_body

WEBHOOK_URL = "/api/v1/payments/webhook"


def _post_signal(client, raw: bytes, header: str | None):
    headers = {"Content-Type": "application/json"}
    if header is not None:
        headers["Stripe-Signature"] = header
    return client.post(WEBHOOK_URL, content=raw, headers=headers)


def _submit(client, borrower) -> str:
    resp = client.post(
        "/api/v1/applications",
        json={"loan_title": "Webhook loan"},
        headers=auth_headers(borrower),
    )
    return resp.json()["data"]["id"]


def test_completion_marks_paid_and_replay_is_no_op(client, borrower):
    application_id = _submit(client, borrower)
    raw, header = signed_body(completion_event(application_id))

    first = _post_signal(client, raw, header)
    assert first.status_code == 200
    assert first.json()["data"] == {"received": True, "outcome": "paid", "application_id": application_id}

    replay = _post_signal(client, raw, header)
    assert replay.status_code == 200
    assert replay.json()["data"]["outcome"] == "no_op"

    fetched = client.get(f"/api/v1/applications/{application_id}", headers=auth_headers(borrower)).json()["data"]
    assert fetched["application_fee_status"] == "Paid"
    assert fetched["paid_at"] is not None
    assert fetched["payment_reference"] == "pi_test_123"
    assert fetched["status"] == "Pending"


def test_unsigned_or_forged_signal_is_400_and_changes_nothing(client, borrower):
    application_id = _submit(client, borrower)
    raw, _ = signed_body(completion_event(application_id))
    _, forged = signed_body(completion_event(application_id), secret="whsec_wrong")

    for header in (None, forged):
        resp = _post_signal(client, raw, header)
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_signal"

    fetched = client.get(f"/api/v1/applications/{application_id}", headers=auth_headers(borrower)).json()["data"]
    assert fetched["application_fee_status"] == "Unpaid"


def test_non_completion_event_is_acknowledged(client, borrower):
    application_id = _submit(client, borrower)
    raw, header = signed_body(completion_event(application_id, event_type="payment_intent.created"))

    resp = _post_signal(client, raw, header)

    assert resp.status_code == 200
    assert resp.json()["data"]["outcome"] == "ignored"


def test_signal_for_unknown_application_is_404(client):
    raw, header = signed_body(completion_event(uuid4()))

    resp = _post_signal(client, raw, header)

    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_webhook_needs_no_session(client, borrower):
    application_id = _submit(client, borrower)
    raw, header = signed_body(completion_event(application_id))
    client.cookies.clear()

    assert _post_signal(client, raw, header).status_code == 200
