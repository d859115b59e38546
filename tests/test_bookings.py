from common.models import RoleEnum
from conftest import GUEST_ID, HOST_ID, OTHER_GUEST_ID, auth_header

GUEST_HEADERS = auth_header(GUEST_ID)
OTHER_GUEST_HEADERS = auth_header(OTHER_GUEST_ID)
HOST_HEADERS = auth_header(HOST_ID, RoleEnum.HOST)


def book(client, room_id: str, check_in: str, check_out: str, headers=GUEST_HEADERS, **extra):
    payload = {"room_id": room_id, "check_in": check_in, "check_out": check_out, **extra}
    return client.post("/bookings", json=payload, headers=headers)


def test_health(bookings_client):
    response = bookings_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_booking_flow(bookings_client, make_room):
    room = make_room(quantity=1, price="120.00")

    created = book(
        bookings_client,
        room.id,
        "2030-03-01",
        "2030-03-03",
        adults=2,
        guest_name="Ada Lovelace",
        guest_email="ada@example.com",
    )
    assert created.status_code == 201
    booking = created.json()
    assert booking["status"] == "PENDING"
    assert booking["payment_status"] == "PENDING"
    assert booking["total_price"] == "240.00"
    assert booking["hotel_id"] == room.hotel_id

    confirm = bookings_client.patch(
        f"/bookings/{booking['id']}/status", json={"status": "CONFIRMED"}, headers=HOST_HEADERS
    )
    assert confirm.status_code == 200
    assert confirm.json()["status"] == "CONFIRMED"

    paid = bookings_client.patch(
        f"/bookings/{booking['id']}/payment-status", json={"payment_status": "PAID"}, headers=HOST_HEADERS
    )
    assert paid.status_code == 200
    assert paid.json()["payment_status"] == "PAID"

    mine = bookings_client.get("/bookings/my", headers=GUEST_HEADERS)
    assert mine.status_code == 200
    assert mine.json()["meta"]["total"] == 1
    assert mine.json()["items"][0]["id"] == booking["id"]

    hotel = bookings_client.get("/bookings/hotel", headers=HOST_HEADERS)
    assert hotel.status_code == 200
    assert [item["id"] for item in hotel.json()["items"]] == [booking["id"]]

    cancel = bookings_client.patch(f"/bookings/{booking['id']}/cancel", headers=GUEST_HEADERS)
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "CANCELLED"
    assert cancel.json()["payment_status"] == "PAID"

    again = bookings_client.patch(f"/bookings/{booking['id']}/cancel", headers=GUEST_HEADERS)
    assert again.status_code == 400
    assert again.json()["code"] == "ALREADY_CANCELLED"


def test_requires_token(bookings_client, make_room):
    room = make_room()

    assert book(bookings_client, room.id, "2030-03-01", "2030-03-02", headers={}).status_code == 401
    assert bookings_client.get("/bookings/my").status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert bookings_client.get("/bookings/my", headers=bad).status_code == 401


def test_invalid_date_range(bookings_client, make_room):
    room = make_room()

    response = book(bookings_client, room.id, "2030-03-05", "2030-03-05")

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_DATE_RANGE"


def test_request_validation(bookings_client, make_room):
    room = make_room()

    assert book(bookings_client, room.id, "2030-03-01", "2030-03-02", adults=0).status_code == 422
    assert book(bookings_client, room.id, "not-a-date", "2030-03-02").status_code == 422
    assert book(bookings_client, room.id, "2030-03-01", "2030-03-02", guest_email="nope").status_code == 422


def test_unknown_room(bookings_client):
    response = book(bookings_client, "missing", "2030-03-01", "2030-03-02")

    assert response.status_code == 404
    assert response.json()["code"] == "ROOM_NOT_FOUND"


def test_capacity_exceeded(bookings_client, make_room):
    room = make_room(capacity_adults=2)

    response = book(bookings_client, room.id, "2030-03-01", "2030-03-02", adults=4)

    assert response.status_code == 400
    assert response.json()["code"] == "CAPACITY_EXCEEDED"
    assert response.json()["detail"] == "Room capacity exceeded for adults. Max: 2"


def test_sold_out_room(bookings_client, make_room):
    room = make_room(quantity=1)
    assert book(bookings_client, room.id, "2030-03-01", "2030-03-04").status_code == 201

    clash = book(bookings_client, room.id, "2030-03-03", "2030-03-05", headers=OTHER_GUEST_HEADERS)
    back_to_back = book(bookings_client, room.id, "2030-03-04", "2030-03-06", headers=OTHER_GUEST_HEADERS)

    assert clash.status_code == 409
    assert clash.json()["code"] == "ROOM_UNAVAILABLE"
    assert back_to_back.status_code == 201


def test_authorization_errors(bookings_client, make_room):
    room = make_room()
    booking_id = book(bookings_client, room.id, "2030-03-01", "2030-03-02").json()["id"]

    cancel = bookings_client.patch(f"/bookings/{booking_id}/cancel", headers=OTHER_GUEST_HEADERS)
    assert cancel.status_code == 403
    assert cancel.json()["code"] == "FORBIDDEN"

    status_by_guest = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "CONFIRMED"}, headers=GUEST_HEADERS
    )
    assert status_by_guest.status_code == 403

    hotel_by_guest = bookings_client.get("/bookings/hotel", headers=GUEST_HEADERS)
    assert hotel_by_guest.status_code == 403


def test_missing_booking(bookings_client):
    response = bookings_client.patch("/bookings/missing/cancel", headers=GUEST_HEADERS)

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_illegal_transition(bookings_client, make_room):
    room = make_room()
    booking_id = book(bookings_client, room.id, "2030-03-01", "2030-03-02").json()["id"]

    response = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "COMPLETED"}, headers=HOST_HEADERS
    )
    refund = bookings_client.patch(
        f"/bookings/{booking_id}/payment-status", json={"payment_status": "REFUNDED"}, headers=HOST_HEADERS
    )

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"
    assert refund.status_code == 409


def test_unknown_status_value(bookings_client, make_room):
    room = make_room()
    booking_id = book(bookings_client, room.id, "2030-03-01", "2030-03-02").json()["id"]

    response = bookings_client.patch(
        f"/bookings/{booking_id}/status", json={"status": "ARCHIVED"}, headers=HOST_HEADERS
    )

    assert response.status_code == 422


def test_paging_parameters(bookings_client, make_room):
    room = make_room(quantity=5)
    for day in range(1, 4):
        book(bookings_client, room.id, f"2030-04-0{day}", f"2030-04-0{day + 1}")

    page = bookings_client.get("/bookings/my", params={"page": 2, "limit": 2}, headers=GUEST_HEADERS)

    assert page.status_code == 200
    assert page.json()["meta"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}
    assert len(page.json()["items"]) == 1
    assert bookings_client.get("/bookings/my", params={"limit": 1000}, headers=GUEST_HEADERS).status_code == 422


def test_room_availability(bookings_client, make_room):
    room = make_room(quantity=1)
    book(bookings_client, room.id, "2030-05-01", "2030-05-03")

    response = bookings_client.get(f"/rooms/{room.id}/availability", params={"from_date": "2030-01-01"})

    assert response.status_code == 200
    body = response.json()
    assert body["quantity"] == 1
    assert body["occupied"] == [{"check_in": "2030-05-01", "check_out": "2030-05-03"}]
    assert body["fully_booked_dates"] == ["2030-05-01", "2030-05-02"]


def test_metrics_endpoint(bookings_client):
    bookings_client.get("/health")

    response = bookings_client.get("/metrics")

    assert response.status_code == 200
    assert "http_request" in response.text
