def test_error_response_has_unified_shape(client):
    response = client.get("/users/me")
    assert response.status_code == 401
    body = response.json()
    assert "error" in body
    assert "code" in body["error"]
    assert "message" in body["error"]
    assert "detail" in body
    assert "request_id" in body


def test_domain_error_carries_its_code(client, register_and_login):
    token = register_and_login("quality@example.com")

    response = client.get("/bookings/999", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "not_found"
    assert body["detail"] == "Booking not found"
    assert body["request_id"] == response.headers["x-request-id"]


def test_validation_error_shape(client, register_and_login):
    token = register_and_login("validation@example.com")

    response = client.post(
        "/bookings",
        headers={"Authorization": f"Bearer {token}"},
        json={"booking_date": "not-a-date", "time_slot": "09:00-11:00", "number_of_players": 4},
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_health_endpoint_returns_ok_and_request_id(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "x-request-id" in response.headers


def test_my_bookings_pagination_limit_offset(client, register_and_login):
    token = register_and_login("pagination@example.com")
    headers = {"Authorization": f"Bearer {token}"}
    for slot in ("09:00-11:00", "11:30-13:30", "14:00-16:00"):
        created = client.post(
            "/bookings",
            headers=headers,
            json={"booking_date": "2026-03-01", "time_slot": slot, "number_of_players": 4},
        )
        assert created.status_code == 201

    paged = client.get("/bookings?limit=1&offset=1", headers=headers)

    assert paged.status_code == 200
    data = paged.json()
    assert len(data) == 1
    assert data[0]["time_slot"] == "11:30-13:30"


def test_storage_outage_returns_retryable_503(client, register_and_login, monkeypatch):
    from sqlalchemy.exc import OperationalError

    from app.services import booking_service

    def locked(*args, **kwargs):
        raise OperationalError("SELECT bookings.id FROM bookings", {}, Exception("database is locked"))

    token = register_and_login("outage@example.com")
    monkeypatch.setattr(booking_service, "_slot_taken", locked)

    response = client.post(
        "/bookings",
        headers={"Authorization": f"Bearer {token}"},
        json={"booking_date": "2024-06-01", "time_slot": "09:00-11:00", "number_of_players": 4},
    )
    listed = client.get("/bookings", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 503
    assert response.headers["retry-after"] == "1"
    assert response.json()["error"]["code"] == "transient_error"
    assert listed.json() == []
