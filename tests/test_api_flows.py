import pytest
from fastapi.testclient import TestClient

from design_studio.core.database import get_db
from design_studio.gateway.mock_provider import MockPaymentGateway
from design_studio.gateway.service import get_payment_gateway
from design_studio.mail.base import EmailSendResult
from design_studio.mail.service import get_mailer
from design_studio.models.email import EmailOutbox
from design_studio.services import email_outbox
from design_studio.services.auth import create_access_token
from tests.fixtures_data import CHECKOUT_HAPPY_PATH, DESIGN_PACKAGE_CHECKOUT, seed_catalogue


class FailingMailer:
    def send(self, *, to, subject, html):
        return EmailSendResult(status="failed", error="provider unavailable")


@pytest.fixture
def gateway():
    return MockPaymentGateway()


@pytest.fixture
def client(session_factory, gateway, monkeypatch):
    from design_studio import main

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)
    monkeypatch.setattr(email_outbox, "SessionLocal", session_factory)
    main.app.dependency_overrides[get_db] = _get_db
    main.app.dependency_overrides[get_payment_gateway] = lambda: gateway
    main.app.dependency_overrides[get_mailer] = lambda: FailingMailer()
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()


def _auth(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def test_jobs_require_authentication(client):
    response = client.get("/jobs")

    assert response.status_code == 401
    assert response.json()["detail"] == "Unauthorized"


def test_draft_lifecycle_over_http(client, make_user):
    user = make_user()

    draft = client.get("/jobs/draft", headers=_auth(user)).json()
    assert draft["is_draft"] is True

    submitted = client.put(
        "/jobs/draft/update",
        json={"job_id": draft["id"], "fields": {"title": "Garden tool"}, "make_active": True},
        headers=_auth(user),
    )
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "Pending"

    again = client.put(
        "/jobs/draft/update",
        json={"job_id": draft["id"], "fields": {"title": "Too late"}},
        headers=_auth(user),
    )
    assert again.status_code == 409


def test_client_cannot_see_foreign_job(client, make_user):
    owner = make_user()
    stranger = make_user()
    job = client.post("/jobs", json={"title": "Secret"}, headers=_auth(owner)).json()

    assert client.get(f"/jobs/{job['id']}", headers=_auth(stranger)).status_code == 403
    assert client.patch(f"/jobs/{job['id']}", json={"status": "Complete"}, headers=_auth(owner)).status_code == 403


def test_voucher_validation_status_codes(client, make_user):
    admin = make_user("admin")
    created = client.post(
        "/vouchers",
        json={"code": "save10", "discount_type": "fixed", "discount_value": "10"},
        headers=_auth(admin),
    )
    assert created.status_code == 201
    assert created.json()["code"] == "SAVE10"

    ok = client.get("/vouchers", params={"code": "SAVE10"})
    missing = client.get("/vouchers", params={"code": "NOPE"})
    listing = client.get("/vouchers", headers=_auth(make_user()))

    assert ok.status_code == 200 and ok.json()["valid"] is True
    assert missing.status_code == 404 and missing.json()["message"] == "Invalid voucher code"
    assert listing.status_code == 403


def test_checkout_confirm_survives_email_failure(client, db, make_user):
    seed_catalogue(db)
    user = make_user(email="client@example.com")

    intent = client.post("/payment/create-intent", json=CHECKOUT_HAPPY_PATH, headers=_auth(user))
    assert intent.status_code == 200
    assert intent.json()["amount"] == 449.0

    confirmed = client.post(
        "/payment/confirm",
        json={"payment_intent_id": intent.json()["payment_intent_id"]},
        headers=_auth(user),
    )

    assert confirmed.status_code == 200
    body = confirmed.json()
    assert body["success"] is True
    assert body["payment"]["amount"] == 449.0
    db.expire_all()
    entry = db.query(EmailOutbox).one()
    assert (entry.status, entry.last_error) == ("failed", "provider unavailable")


def test_confirm_unpaid_intent_is_bad_request(client, db, gateway, make_user):
    seed_catalogue(db)
    user = make_user()
    gateway.default_status = "processing"
    intent_id = client.post("/payment/create-intent", json=CHECKOUT_HAPPY_PATH, headers=_auth(user)).json()[
        "payment_intent_id"
    ]

    response = client.post("/payment/confirm", json={"payment_intent_id": intent_id}, headers=_auth(user))

    assert response.status_code == 400
    assert response.json()["detail"] == "Payment not completed"


def test_design_package_progress_over_http(client, db, make_user):
    seed_catalogue(db)
    buyer = make_user(email="buyer@example.com")
    manager = make_user("manager")
    intent_id = client.post("/payment/create-intent", json=DESIGN_PACKAGE_CHECKOUT, headers=_auth(buyer)).json()[
        "payment_intent_id"
    ]
    order_id = client.post("/payment/confirm", json={"payment_intent_id": intent_id}, headers=_auth(buyer)).json()[
        "design_package_order_id"
    ]

    assert client.patch(
        f"/design-packages/{order_id}", json={"virtual_prototype_status": "completed"}, headers=_auth(buyer)
    ).status_code == 403
    updated = client.patch(
        f"/design-packages/{order_id}", json={"virtual_prototype_status": "completed"}, headers=_auth(manager)
    )

    assert updated.status_code == 200
    assert updated.json()["sell_sheet_status"] == "not_started"
    own = client.get("/design-packages", headers=_auth(buyer)).json()
    assert [package["order_id"] for package in own] == [order_id]


def test_pricing_map_is_public(client, db):
    seed_catalogue(db)

    response = client.get("/pricing")

    assert response.status_code == 200
    assert response.json()["design_package"] == 598.0
    assert client.get("/pricing", params={"tier_name": "Unknown"}).status_code == 404


def test_role_change_is_admin_only(client, make_user):
    manager = make_user("manager")
    target = make_user()

    denied = client.patch(f"/users/{target.id}", json={"role": "designer"}, headers=_auth(manager))
    own_name = client.patch(f"/users/{target.id}", json={"name": "New Name"}, headers=_auth(target))

    assert denied.status_code == 403
    assert own_name.status_code == 200
    assert own_name.json()["name"] == "New Name"


def test_confirm_of_foreign_intent_is_forbidden(client, db, make_user):
    seed_catalogue(db)
    buyer = make_user(email="buyer@example.com")
    stranger = make_user()
    intent_id = client.post("/payment/create-intent", json=DESIGN_PACKAGE_CHECKOUT, headers=_auth(buyer)).json()[
        "payment_intent_id"
    ]

    response = client.post("/payment/confirm", json={"payment_intent_id": intent_id}, headers=_auth(stranger))

    assert response.status_code == 403
    owner = client.post("/payment/confirm", json={"payment_intent_id": intent_id}, headers=_auth(buyer))
    assert owner.json()["payment"]["user_id"] == buyer.id


def test_null_archived_flag_is_a_bad_request(client, make_user):
    owner = make_user()
    admin = make_user("admin")
    job = client.post("/jobs", json={"title": "Lamp"}, headers=_auth(owner)).json()

    response = client.patch(f"/jobs/{job['id']}", json={"archived": None}, headers=_auth(admin))

    assert response.status_code == 400
    assert client.get(f"/jobs/{job['id']}", headers=_auth(admin)).json()["archived"] is False


def test_voucher_update_rejects_nulls_for_required_fields(client, make_user):
    admin = make_user("admin")
    voucher = client.post(
        "/vouchers",
        json={"code": "KEEP5", "discount_type": "fixed", "discount_value": "5"},
        headers=_auth(admin),
    ).json()

    for body in ({"code": None}, {"code": "   "}, {"discount_type": None}, {"discount_value": None}):
        response = client.put(f"/vouchers/{voucher['id']}", json=body, headers=_auth(admin))
        assert response.status_code == 400, body

    stored = client.get(f"/vouchers/{voucher['id']}", headers=_auth(admin)).json()
    assert (stored["code"], stored["discount_type"], stored["discount_value"]) == ("KEEP5", "fixed", 5.0)
