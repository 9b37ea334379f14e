import pytest

pytestmark = pytest.mark.anyio


@pytest.mark.parametrize(
    "start, end",
    [
        ("2030-01-01T10:00:00", "2030-01-01T14:00:00"),
        ("2030-01-01T10:00:00", "2030-01-01T14:00:00+00:00"),
        ("2030-01-01T10:00:00+00:00", "2030-01-01T14:00:00"),
    ],
)
async def test_pickup_window_without_timezone_is_rejected(client, make_user, act_as, donation_payload, start, end):
    donor = await make_user("donor@example.com")
    act_as(donor)
    r = await client.post("/donations/", json=donation_payload(pickup_window_start=start, pickup_window_end=end))
    assert r.status_code == 422


async def test_pickup_window_with_offsets(client, make_user, act_as, donation_payload):
    donor = await make_user("donor@example.com")
    act_as(donor)
    # 10:00+02:00 is 08:00Z, so an 09:00Z end is still after the start
    r = await client.post("/donations/", json=donation_payload(
        pickup_window_start="2030-01-01T10:00:00+02:00",
        pickup_window_end="2030-01-01T09:00:00Z",
    ))
    assert r.status_code == 201, r.text

    r = await client.post("/donations/", json=donation_payload(
        pickup_window_start="2030-01-01T10:00:00Z",
        pickup_window_end="2030-01-01T10:00:00Z",
    ))
    assert r.status_code == 422
