PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _create(client, token: str) -> dict:
    response = client.post(
        "/bookings",
        headers=_auth(token),
        json={"booking_date": "2024-06-01", "time_slot": "16:30-18:30", "number_of_players": 8},
    )
    assert response.status_code == 201
    return response.json()


def test_upload_receipt_and_download_it(client, register_and_login, upload_dir):
    token = register_and_login("payer@example.com")
    admin_token = register_and_login("cashier@example.com", admin=True)
    booking = _create(client, token)

    response = client.post(
        f"/bookings/{booking['id']}/receipt",
        headers=_auth(token),
        files={"receipt": ("uplatnica.png", PNG_BYTES, "image/png")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Receipt uploaded successfully"
    assert body["filename"].startswith("receipt-")
    assert body["filename"].endswith(".png")
    assert body["booking"]["payment_receipt"] == body["filename"]
    assert (upload_dir / body["filename"]).read_bytes() == PNG_BYTES

    as_owner = client.get(f"/bookings/{booking['id']}/receipt", headers=_auth(token))
    as_admin = client.get(f"/bookings/{booking['id']}/receipt", headers=_auth(admin_token))
    assert as_owner.status_code == 200
    assert as_owner.content == PNG_BYTES
    assert as_owner.headers["content-type"] == "image/png"
    assert as_admin.status_code == 200


def test_oversize_receipt_is_rejected(client, register_and_login, upload_dir):
    token = register_and_login("big@example.com")
    booking = _create(client, token)
    six_mib = b"\x00" * (6 * 1024 * 1024)

    response = client.post(
        f"/bookings/{booking['id']}/receipt",
        headers=_auth(token),
        files={"receipt": ("huge.png", six_mib, "image/png")},
    )
    unchanged = client.get(f"/bookings/{booking['id']}", headers=_auth(token)).json()

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_attachment"
    assert unchanged["payment_receipt"] is None
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []


def test_non_image_receipt_is_rejected(client, register_and_login):
    token = register_and_login("pdf@example.com")
    booking = _create(client, token)

    response = client.post(
        f"/bookings/{booking['id']}/receipt",
        headers=_auth(token),
        files={"receipt": ("receipt.pdf", b"%PDF-1.7", "application/pdf")},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_attachment"


def test_receipt_for_foreign_booking_is_not_found(client, register_and_login):
    owner_token = register_and_login("receipt-owner@example.com")
    stranger_token = register_and_login("receipt-stranger@example.com")
    booking = _create(client, owner_token)

    upload = client.post(
        f"/bookings/{booking['id']}/receipt",
        headers=_auth(stranger_token),
        files={"receipt": ("r.png", PNG_BYTES, "image/png")},
    )
    download = client.get(f"/bookings/{booking['id']}/receipt", headers=_auth(stranger_token))

    assert upload.status_code == 404
    assert download.status_code == 404


def test_download_without_receipt_is_not_found(client, register_and_login):
    token = register_and_login("noreceipt@example.com")
    booking = _create(client, token)

    response = client.get(f"/bookings/{booking['id']}/receipt", headers=_auth(token))

    assert response.status_code == 404
    assert response.json()["detail"] == "Receipt not found"


def test_receipt_is_named_and_served_by_its_image_type(client, register_and_login, upload_dir):
    token = register_and_login("disguised@example.com")
    admin_token = register_and_login("auditor@example.com", admin=True)
    booking = _create(client, token)

    upload = client.post(
        f"/bookings/{booking['id']}/receipt",
        headers=_auth(token),
        files={"receipt": ("x.html", b"<script>alert(1)</script>", "image/png")},
    )
    download = client.get(f"/bookings/{booking['id']}/receipt", headers=_auth(admin_token))

    assert upload.status_code == 200
    assert upload.json()["filename"].endswith(".png")
    assert [path.suffix for path in upload_dir.iterdir()] == [".png"]
    assert download.status_code == 200
    assert download.headers["content-type"] == "image/png"
    assert download.headers["content-disposition"].startswith("attachment")
    assert download.headers["x-content-type-options"] == "nosniff"


def test_svg_receipt_is_rejected(client, register_and_login, upload_dir):
    token = register_and_login("vector@example.com")
    booking = _create(client, token)

    response = client.post(
        f"/bookings/{booking['id']}/receipt",
        headers=_auth(token),
        files={"receipt": ("r.svg", b"<svg onload='alert(1)'/>", "image/svg+xml")},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_attachment"
    assert not upload_dir.exists() or list(upload_dir.iterdir()) == []
