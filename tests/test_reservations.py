import pytest

from models import Donation

pytestmark = pytest.mark.anyio


async def _notifications(client, act_as, user_id):
    act_as(user_id)
    r = await client.get("/notifications/")
    assert r.status_code == 200, r.text
    return r.json()


async def _donation_status(client, act_as, owner_id, donation_id):
    act_as(owner_id)
    r = await client.get(f"/donations/{donation_id}")
    return r.json()["status"]


async def _reservation_status(client, act_as, user_id, reservation_id):
    act_as(user_id)
    r = await client.get(f"/reservations/{reservation_id}")
    assert r.status_code == 200, r.text
    return r.json()["status"]


async def test_approve_declines_competing_requests(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com", role="donor")
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    listing = await make_donation(donor)
    assert listing["status"] == "available"

    res_a = await reserve(alice, listing["id"], message="I can come at noon")
    res_b = await reserve(bob, listing["id"])
    assert res_a["status"] == res_b["status"] == "pending"

    act_as(donor)
    r = await client.post(
        f"/reservations/{res_a['id']}/approve",
        json={"message": "Ring the bell at 12", "pickup_time": "2030-01-01T12:00:00+00:00"},
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "accepted"
    assert r.json()["pickup_time"].startswith("2030-01-01T12:00")

    assert await _donation_status(client, act_as, donor, listing["id"]) == "reserved"
    assert await _reservation_status(client, act_as, alice, res_a["id"]) == "accepted"
    assert await _reservation_status(client, act_as, bob, res_b["id"]) == "declined"

    bob_notes = await _notifications(client, act_as, bob)
    assert [n["type"] for n in bob_notes].count("reservation_declined") == 1

    alice_notes = await _notifications(client, act_as, alice)
    assert [n["type"] for n in alice_notes] == ["reservation_accepted"]

    act_as(alice)
    thread = (await client.get("/messages/", params={"donation_id": listing["id"], "with_user": donor})).json()
    assert [m["content"] for m in thread] == ["Ring the bell at 12"]

    donor_notes = await _notifications(client, act_as, donor)
    assert [n["type"] for n in donor_notes].count("reservation_request") == 2


async def test_blank_approval_message_uses_default(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    listing = await make_donation(donor)
    res = await reserve(alice, listing["id"])

    act_as(donor)
    r = await client.post(f"/reservations/{res['id']}/approve", json={"message": "   "})
    assert r.status_code == 200

    act_as(alice)
    thread = (await client.get("/messages/", params={"donation_id": listing["id"], "with_user": donor})).json()
    assert [m["content"] for m in thread] == ["Your reservation has been accepted."]


async def test_decline_leaves_listing_available(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    listing = await make_donation(donor)
    res_a = await reserve(alice, listing["id"])
    res_b = await reserve(bob, listing["id"])

    act_as(donor)
    r = await client.post(f"/reservations/{res_a['id']}/decline", json={})
    assert r.status_code == 200
    assert r.json()["status"] == "declined"

    assert await _donation_status(client, act_as, donor, listing["id"]) == "available"
    assert await _reservation_status(client, act_as, bob, res_b["id"]) == "pending"
    assert [n["type"] for n in await _notifications(client, act_as, alice)] == ["reservation_declined"]

    # no courtesy text, no message
    act_as(alice)
    thread = (await client.get("/messages/", params={"donation_id": listing["id"], "with_user": donor})).json()
    assert thread == []


async def test_complete_requires_confirmation(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    listing = await make_donation(donor)
    res = await reserve(alice, listing["id"])

    act_as(donor)
    # only accepted reservations can be completed
    r = await client.post(f"/reservations/{res['id']}/complete", json={"confirm": True})
    assert r.status_code == 409

    await client.post(f"/reservations/{res['id']}/approve", json={})
    r = await client.post(f"/reservations/{res['id']}/complete", json={})
    assert r.status_code == 400
    assert await _reservation_status(client, act_as, alice, res["id"]) == "accepted"

    act_as(donor)
    r = await client.post(f"/reservations/{res['id']}/complete", json={"confirm": True})
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert await _donation_status(client, act_as, donor, listing["id"]) == "picked_up"
    assert "reservation_completed" in [n["type"] for n in await _notifications(client, act_as, alice)]


async def test_only_owner_can_decide(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    mallory = await make_user("mallory@example.com")
    listing = await make_donation(donor)
    res = await reserve(alice, listing["id"])

    for actor in (alice, mallory):
        act_as(actor)
        assert (await client.post(f"/reservations/{res['id']}/approve", json={})).status_code == 403
        assert (await client.post(f"/reservations/{res['id']}/decline", json={})).status_code == 403

    act_as(None)
    assert (await client.post(f"/reservations/{res['id']}/approve", json={})).status_code == 401


async def test_reservation_preconditions(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    listing = await make_donation(donor)

    act_as(donor)
    r = await client.post("/reservations/", json={"donation_id": listing["id"]})
    assert r.status_code == 400

    await reserve(alice, listing["id"])
    act_as(donor)
    r = await client.post("/reservations/", json={"donation_id": listing["id"]})
    assert r.status_code == 400

    act_as(alice)
    r = await client.post("/reservations/", json={"donation_id": listing["id"]})
    assert r.status_code == 409

    r = await client.post("/reservations/", json={"donation_id": 9999})
    assert r.status_code == 404


async def test_claimed_listing_rejects_second_approval(
    client, make_user, make_donation, reserve, act_as, db_session
):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    listing = await make_donation(donor)
    res_a = await reserve(alice, listing["id"])
    res_b = await reserve(bob, listing["id"])

    # another approval got in first but has not declined the siblings yet
    donation = db_session.get(Donation, listing["id"])
    donation.status = "reserved"
    db_session.add(donation)
    db_session.commit()

    act_as(donor)
    r = await client.post(f"/reservations/{res_b['id']}/approve", json={"message": "hi"})
    assert r.status_code == 409

    # nothing from the aborted approval was written
    assert await _reservation_status(client, act_as, alice, res_a["id"]) == "pending"
    assert await _reservation_status(client, act_as, bob, res_b["id"]) == "pending"
    assert await _notifications(client, act_as, bob) == []
    act_as(bob)
    thread = (await client.get("/messages/", params={"donation_id": listing["id"], "with_user": donor})).json()
    assert thread == []


async def test_reserving_unavailable_listing_conflicts(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    listing = await make_donation(donor)
    res = await reserve(alice, listing["id"])
    act_as(donor)
    await client.post(f"/reservations/{res['id']}/approve", json={})

    act_as(bob)
    r = await client.post("/reservations/", json={"donation_id": listing["id"]})
    assert r.status_code == 409


async def test_requester_cancel_reopens_listing(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    listing = await make_donation(donor)
    res = await reserve(alice, listing["id"])
    act_as(donor)
    await client.post(f"/reservations/{res['id']}/approve", json={})

    act_as(donor)
    assert (await client.post(f"/reservations/{res['id']}/cancel")).status_code == 403

    act_as(alice)
    r = await client.post(f"/reservations/{res['id']}/cancel")
    assert r.status_code == 200
    assert r.json()["status"] == "canceled"
    assert await _donation_status(client, act_as, donor, listing["id"]) == "available"
    assert "reservation_canceled" in [n["type"] for n in await _notifications(client, act_as, donor)]

    act_as(alice)
    assert (await client.post(f"/reservations/{res['id']}/cancel")).status_code == 409


async def test_owner_cancels_listing(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    listing = await make_donation(donor)
    res_a = await reserve(alice, listing["id"])
    await reserve(bob, listing["id"])

    act_as(alice)
    assert (await client.post(f"/donations/{listing['id']}/cancel")).status_code == 403

    act_as(donor)
    r = await client.post(f"/donations/{listing['id']}/cancel")
    assert r.status_code == 200
    assert r.json()["status"] == "canceled"
    assert await _reservation_status(client, act_as, alice, res_a["id"]) == "canceled"
    assert "donation_canceled" in [n["type"] for n in await _notifications(client, act_as, bob)]

    act_as(donor)
    assert (await client.post(f"/donations/{listing['id']}/cancel")).status_code == 409


async def test_owner_sees_requests_and_requester_sees_own(client, make_user, make_donation, reserve, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    listing = await make_donation(donor)
    res_a = await reserve(alice, listing["id"])
    res_b = await reserve(bob, listing["id"])

    act_as(donor)
    r = await client.get(f"/donations/{listing['id']}/reservations")
    assert [x["id"] for x in r.json()] == [res_a["id"], res_b["id"]]

    act_as(alice)
    assert (await client.get(f"/donations/{listing['id']}/reservations")).status_code == 403
    mine = (await client.get("/reservations/")).json()
    assert [x["id"] for x in mine] == [res_a["id"]]
    assert (await client.get(f"/reservations/{res_b['id']}")).status_code == 404


async def test_pickup_times_must_carry_a_timezone(client, make_user, make_donation, act_as):
    donor = await make_user("donor@example.com")
    alice = await make_user("alice@example.com")
    listing = await make_donation(donor)

    act_as(alice)
    r = await client.post("/reservations/", json={"donation_id": listing["id"], "pickup_time": "2030-01-01T12:00:00"})
    assert r.status_code == 422

    r = await client.post(
        "/reservations/",
        json={"donation_id": listing["id"], "pickup_time": "2030-01-01T12:00:00+02:00"},
    )
    assert r.status_code == 201, r.text
    res_id = r.json()["id"]

    act_as(donor)
    r = await client.post(f"/reservations/{res_id}/approve", json={"pickup_time": "2030-01-02T09:30:00"})
    assert r.status_code == 422
    assert await _reservation_status(client, act_as, alice, res_id) == "pending"

    act_as(donor)
    r = await client.post(f"/reservations/{res_id}/approve", json={"pickup_time": "2030-01-02T09:30:00Z"})
    assert r.status_code == 200, r.text
    assert r.json()["pickup_time"].startswith("2030-01-02T09:30")
