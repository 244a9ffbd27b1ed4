import pytest
from starlette.websockets import WebSocketDisconnect


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _create(client, token: str, slot: str = "09:00-11:00") -> dict:
    response = client.post(
        "/bookings",
        headers=_auth(token),
        json={"booking_date": "2024-06-01", "time_slot": slot, "number_of_players": 6},
    )
    assert response.status_code == 201
    return response.json()


def test_websocket_rejects_invalid_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/events/ws?token=not-a-token") as websocket:
            websocket.receive_json()

    assert exc_info.value.code == 1008


def test_new_booking_reaches_every_client(client, register_and_login):
    booker_token = register_and_login("ws-booker@example.com")
    watcher_token = register_and_login("ws-watcher@example.com")

    with client.websocket_connect(f"/events/ws?token={watcher_token}") as watcher:
        assert watcher.receive_json()["event"] == "connected"
        booking = _create(client, booker_token)

        event = watcher.receive_json()

    assert event["event"] == "new_booking"
    assert event["message"] == "New booking created"
    assert event["booking"]["id"] == booking["id"]


def test_status_change_reaches_owner_room_only(client, register_and_login):
    owner_token = register_and_login("ws-owner@example.com")
    other_token = register_and_login("ws-other@example.com")
    admin_token = register_and_login("ws-admin@example.com", admin=True)
    booking = _create(client, owner_token)

    with client.websocket_connect(f"/events/ws?token={owner_token}") as owner_ws, client.websocket_connect(
        f"/events/ws?token={other_token}"
    ) as other_ws:
        assert owner_ws.receive_json()["event"] == "connected"
        assert other_ws.receive_json()["event"] == "connected"

        response = client.patch(
            f"/bookings/{booking['id']}/status",
            headers=_auth(admin_token),
            json={"status": "confirmed"},
        )
        assert response.status_code == 200
        owner_event = owner_ws.receive_json()

        # a later broadcast to everyone proves the status event skipped the other room
        _create(client, admin_token, slot="19:00-21:00")
        other_event = other_ws.receive_json()
        owner_next = owner_ws.receive_json()

    assert owner_event["event"] == "booking_status_updated"
    assert owner_event["booking"]["status"] == "confirmed"
    assert owner_event["message"] == "Booking status updated to confirmed"
    assert other_event["event"] == "new_booking"
    assert owner_next["event"] == "new_booking"


def test_owner_events_arrive_in_operation_order(client, register_and_login):
    owner_token = register_and_login("ws-order@example.com")
    booking = _create(client, owner_token)

    with client.websocket_connect(f"/events/ws?token={owner_token}") as owner_ws:
        assert owner_ws.receive_json()["event"] == "connected"
        client.patch(f"/bookings/{booking['id']}", headers=_auth(owner_token), json={"number_of_players": 9})
        client.post(
            f"/bookings/{booking['id']}/receipt",
            headers=_auth(owner_token),
            files={"receipt": ("r.png", b"\x89PNG", "image/png")},
        )
        client.delete(f"/bookings/{booking['id']}", headers=_auth(owner_token))

        names = [owner_ws.receive_json()["event"] for _ in range(3)]

    assert names == ["booking_updated", "receipt_uploaded", "booking_cancelled"]


def test_connected_client_joins_the_hub(client, register_and_login):
    from app.core.broadcast import channel_hub

    token = register_and_login("ws-joiner@example.com")
    user_id = client.get("/users/me", headers=_auth(token)).json()["id"]
    with client.websocket_connect(f"/events/ws?token={token}") as websocket:
        assert websocket.receive_json() == {"event": "connected", "user_id": user_id}
        assert channel_hub.subscriber_count() == 1
        assert client.get("/health").json()["push_subscribers"] == 1
