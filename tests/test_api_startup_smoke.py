from fastapi.testclient import TestClient


REQUIRED_ROUTES = {
    "/jobs",
    "/jobs/draft",
    "/jobs/draft/update",
    "/jobs/cleanup-drafts",
    "/jobs/{job_id}",
    "/jobs/{job_id}/history",
    "/jobs/{job_id}/payment",
    "/designer-assignments",
    "/vouchers",
    "/vouchers/{voucher_id}",
    "/payment/quote",
    "/payment/create-intent",
    "/payment/confirm",
    "/pricing",
    "/admin/pricing/products",
    "/admin/pricing/tiers",
    "/design-packages",
    "/design-packages/{order_id}",
    "/email-templates",
    "/admin/emails",
    "/admin/emails/outbox",
    "/admin/emails/outbox/{outbox_id}/retry",
    "/admin/emails/dispatch",
    "/users",
    "/users/{user_id}",
}


def test_api_startup_and_router_registration(monkeypatch):
    from design_studio import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/")
        health_response = client.get("/health")
        openapi_response = client.get("/openapi.json")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert health_response.json() == {"status": "healthy"}
    assert openapi_response.status_code == 200
    assert response.headers["X-Request-ID"]

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_draft_routes_are_not_shadowed_by_job_id():
    from design_studio import main

    paths = [route.path for route in main.app.routes]

    assert paths.index("/jobs/draft") < paths.index("/jobs/{job_id}")


def test_incoming_request_id_is_echoed(monkeypatch):
    from design_studio import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
