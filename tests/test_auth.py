import pytest

from routers.auth import create_session_token, verify_session_token

pytestmark = pytest.mark.anyio


async def test_register_login_me_logout(client):
    r = await client.post("/register", json={
        "email": "dana@example.com",
        "password": "pw1234",
        "display_name": "Dana",
        "role": "donor",
    })
    assert r.status_code == 201
    assert r.json()["role"] == "donor"
    assert "session" in r.cookies

    me = await client.get("/me")
    assert me.status_code == 200
    assert me.json()["email"] == "dana@example.com"
    assert me.json()["reputation_count"] == 0
    assert "password_hash" not in me.json()

    await client.post("/logout")
    client.cookies.clear()
    assert (await client.get("/me")).status_code == 401

    r = await client.post("/login", json={"email": "dana@example.com", "password": "pw1234"})
    assert r.status_code == 200
    assert (await client.get("/me")).json()["display_name"] == "Dana"


async def test_register_accepts_form_data(client):
    r = await client.post("/register", data={
        "email": "form@example.com",
        "password": "pw1234",
        "display_name": "Form User",
    })
    assert r.status_code == 201
    assert r.json()["role"] == "recipient"


async def test_duplicate_email_and_bad_payloads(client, make_user):
    await make_user("dana@example.com")
    r = await client.post("/register", json={
        "email": "dana@example.com",
        "password": "pw1234",
        "display_name": "Dana again",
    })
    assert r.status_code == 400

    r = await client.post("/register", json={"email": "not-an-email", "password": "pw1234", "display_name": "x"})
    assert r.status_code == 400

    # admin is never self-assigned
    r = await client.post("/register", json={
        "email": "sneaky@example.com",
        "password": "pw1234",
        "display_name": "Sneaky",
        "role": "admin",
    })
    assert r.status_code == 400


async def test_wrong_password(client, make_user):
    await make_user("dana@example.com")
    r = await client.post("/login", json={"email": "dana@example.com", "password": "nope"})
    assert r.status_code == 400
    r = await client.post("/login", json={"email": "ghost@example.com", "password": "nope"})
    assert r.status_code == 400
    r = await client.post("/login", json={"email": "dana@example.com"})
    assert r.status_code == 400


async def test_configured_admin_email_gets_admin_role(client):
    r = await client.post("/register", json={
        "email": "Admin@Example.com",
        "password": "pw1234",
        "display_name": "Admin",
    })
    assert r.json()["role"] == "admin"


async def test_tampered_cookie_is_rejected(client, act_as, make_user):
    user = await make_user("dana@example.com")
    act_as(user)
    assert (await client.get("/me")).status_code == 200
    client.cookies.set("session", create_session_token(user) + "x")
    assert (await client.get("/me")).status_code == 401


def test_session_token_roundtrip():
    assert verify_session_token(create_session_token(7)) == {"user_id": 7}
    assert verify_session_token("garbage") is None


async def test_profile_update_and_public_view(client, act_as, make_user):
    user = await make_user("dana@example.com")
    act_as(user)
    r = await client.patch("/users/me", json={"bio": "Baker", "neighborhood": "Marais", "phone": "0600"})
    assert r.status_code == 200
    assert r.json()["phone"] == "0600"

    act_as(None)
    public = (await client.get(f"/users/{user}")).json()
    assert public["bio"] == "Baker"
    assert "phone" not in public
    assert "email" not in public
    assert (await client.get("/users/9999")).status_code == 404


async def test_categories_are_seeded(client):
    names = [c["name"] for c in (await client.get("/categories/")).json()]
    assert names == sorted(["bread", "dairy", "produce", "canned", "beverages", "desserts", "other"])
