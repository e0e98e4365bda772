"""
HTTP surface through FastAPI's TestClient on the configured database
(in-memory SQLite unless DATABASE_URL says otherwise).

  pytest tandem/api/test_api.py
"""
import pytest
from fastapi.testclient import TestClient

from tandem.api.main import app
from tandem.database import SessionLocal, engine
from tandem.models import Base
from tandem.store.base import AVAILABILITY, PROFILES
from tandem.store.sql import SqlStore

DAY = "2030-07-07"

ADMIN = {"X-User-Id": "u-admin", "X-User-Name": "Alex Admin", "X-User-Role": "admin"}
AGENCY = {"X-User-Id": "u-agency", "X-User-Name": "Sky Tours", "X-User-Role": "agency"}
DRIVER = {"X-User-Id": "u-driver", "X-User-Name": "Dario", "X-User-Role": "driver"}
PILOT = {"X-User-Id": "p-bruno", "X-User-Name": "Bruno", "X-User-Role": "pilot"}


@pytest.fixture
def client():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    store = SqlStore(db)
    for uid, name, female in [("p-anna", "Anna", True), ("p-bruno", "Bruno", False),
                              ("p-carla", "Carla", True)]:
        store.set(PROFILES, uid, {"uid": uid, "displayName": name,
                                  "femalePilot": female, "role": "pilot"})
        store.add(AVAILABILITY, {"userId": uid, "date": DAY, "timeSlot": "9:45"})
    db.close()

    with TestClient(app) as c:
        yield c


def book(client, headers, people, **fields):
    body = {"date": DAY, "timeIndex": 2, "numberOfPeople": people, **fields}
    return client.post("/bookings", json=body, headers=headers)


# ── Bookings ──────────────────────────────────────────────────────────────────

def test_root(client):
    assert client.get("/").json()["service"] == "Tandem Scheduling API"


def test_create_booking(client):
    r = book(client, AGENCY, 2, customerName="Kim")
    assert r.status_code == 201
    body = r.json()
    assert body["booking"]["pilotIndex"] == 0
    assert body["booking"]["bookingSource"] == "Sky Tours"
    assert body["overbooked"] is False


def test_identity_headers_required(client):
    r = client.post("/bookings", json={"date": DAY, "timeIndex": 2, "numberOfPeople": 1})
    assert r.status_code == 422


def test_capacity_conflict_and_admin_overbooking(client):
    assert book(client, AGENCY, 2).status_code == 201
    assert book(client, AGENCY, 2).status_code == 409

    r = book(client, ADMIN, 2)
    assert r.status_code == 201
    admin_booking = r.json()["booking"]
    assert admin_booking["pilotIndex"] == 2
    assert r.json()["overbooked"] is True

    schedule = client.get(f"/schedule/{DAY}").json()
    assert schedule["grid_columns"] == 4
    assert schedule["available_slots"]["2"] == 0
    assert schedule["overbooked"]["2"] == {admin_booking["id"]: [1]}
    assert [p["displayName"] for p in schedule["pilots"]] == ["Anna", "Bruno", "Carla"]


def test_public_booking_request(client):
    r = client.post("/booking-requests",
                    json={"date": DAY, "timeIndex": 2, "numberOfPeople": 1})
    assert r.status_code == 201
    assert r.json()["booking"]["bookingSource"] == "Online"


def test_unknown_booking(client):
    assert client.get("/bookings/nope").status_code == 404


def test_patch_and_no_show(client):
    booking_id = book(client, AGENCY, 1).json()["booking"]["id"]

    r = client.patch(f"/bookings/{booking_id}", json={"notes": "window seat"}, headers=AGENCY)
    assert r.status_code == 200
    assert r.json()["changed"] == ["history", "notes"]

    r = client.patch(f"/bookings/{booking_id}", json={"bookingStatus": "no show"},
                     headers=AGENCY)
    assert r.status_code == 400

    r = client.post(f"/bookings/{booking_id}/status",
                    json={"status": "no show", "payPilots": False}, headers=AGENCY)
    assert r.status_code == 200
    assert r.json()["booking"]["bookingStatus"] == "no show"


def test_delete_and_restore(client):
    booking_id = book(client, AGENCY, 1).json()["booking"]["id"]

    assert client.delete(f"/bookings/{booking_id}", headers=DRIVER).status_code == 403
    r = client.delete(f"/bookings/{booking_id}", headers=AGENCY)
    assert r.json()["booking"]["bookingStatus"] == "deleted"

    r = client.post(f"/bookings/{booking_id}/restore", headers=AGENCY)
    assert r.status_code == 200
    assert r.json()["booking"]["bookingStatus"] == "pending"


def test_seats_and_payments(client):
    booking_id = book(client, AGENCY, 2).json()["booking"]["id"]

    r = client.put(f"/bookings/{booking_id}/seats/0", json={"pilotUid": "p-anna"},
                   headers=AGENCY)
    assert r.status_code == 200
    assert r.json()["booking"]["assignedPilots"] == ["Anna", ""]

    r = client.put(f"/bookings/{booking_id}/seats/5", json={"pilotUid": "p-bruno"},
                   headers=AGENCY)
    assert r.status_code == 400

    r = client.put(f"/bookings/{booking_id}/payments",
                   json={"pilotPayments": [{"pilotName": "Anna", "amount": ""}]},
                   headers=AGENCY)
    assert r.json()["booking"]["pilotPayments"][0]["amount"] == 0


# ── Capacity & availability ───────────────────────────────────────────────────

def test_capacity_endpoint(client):
    book(client, AGENCY, 1)
    r = client.get("/capacity", params={"day": DAY, "time_index": 2})
    assert r.json()["available_slots"] == 2
    assert r.json()["available_female_slots"] == 2
    assert r.json()["headcount_options"]["3"] is False

    assert client.get("/capacity", params={"day": DAY, "time_index": 9}).status_code == 400


def test_pilot_toggles_own_availability_only(client):
    body = {"pilotUid": "p-bruno", "date": DAY, "timeSlot": "9:45"}
    r = client.post("/availability/toggle", json=body, headers=PILOT)
    assert r.status_code == 200
    assert r.json()["available"] is False

    body["pilotUid"] = "p-anna"
    assert client.post("/availability/toggle", json=body, headers=PILOT).status_code == 403


def test_past_day_availability_is_locked_for_pilots(client):
    body = {"pilotUid": "p-bruno", "date": "2020-07-07", "timeSlot": "9:45"}
    assert client.post("/availability/toggle", json=body, headers=PILOT).status_code == 403
    day = {"pilotUid": "p-bruno", "date": "2020-07-07"}
    assert client.post("/availability/toggle-day", json=day, headers=PILOT).status_code == 403

    r = client.post("/availability/toggle", json=body, headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["available"] is True


def test_confirmation_email(client):
    no_email = book(client, AGENCY, 1).json()["booking"]["id"]
    r = client.post(f"/bookings/{no_email}/confirmation-email", json={}, headers=AGENCY)
    assert r.status_code == 400

    with_email = book(client, AGENCY, 1, email="kim@example.com").json()["booking"]["id"]
    r = client.post(f"/bookings/{with_email}/confirmation-email",
                    json={"senderName": "Sky Tours"}, headers=AGENCY)
    assert r.status_code == 202
    assert r.json()["status"] == "pending"
    assert r.json()["queue_id"]
