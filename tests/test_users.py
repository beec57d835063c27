from datetime import datetime, timedelta, UTC

import jwt


def _register(client, **overrides):
    payload = {
        "firstName": "Ama",
        "lastName": "Mensah",
        "username": "amam",
        "email": "Ama@Example.com",
        "password": "Passw0rd",
        "gender": "female",
    }
    payload.update(overrides)
    return client.post("/api/auth/register", json=payload)


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.get_json()
    assert body["status"] == "ok"
    assert body["paymentsEnabled"] is True


def test_unknown_route_uses_envelope(client):
    r = client.get("/api/nowhere")
    assert r.status_code == 404
    assert r.get_json() == {"success": False, "message": "Route not found"}


def test_register_and_login(client):
    r = _register(client)
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["user"]["email"] == "ama@example.com"
    assert data["user"]["role"] == "user"
    assert "passwordHash" not in data["user"]
    assert data["token"]

    r = client.post("/api/auth/login", json={"emailOrUsername": "ama@example.com", "password": "Passw0rd"})
    assert r.status_code == 200
    assert r.get_json()["message"] == "Login successful"

    r = client.post("/api/auth/login", json={"emailOrUsername": "amam", "password": "Passw0rd"})
    assert r.status_code == 200


def test_register_validation(client):
    r = _register(client, firstName="A", password="short", email="nope", gender="robot")
    assert r.status_code == 400
    errors = r.get_json()["errors"]
    assert "First name must be between 2 and 50 characters" in errors
    assert "Password must be at least 6 characters long" in errors
    assert "Please provide a valid email" in errors
    assert "Please select a valid gender option" in errors

    r = _register(client, password="alllowercase1")
    assert r.status_code == 400


def test_register_duplicates(client):
    assert _register(client).status_code == 201

    r = _register(client, username="someone")
    assert r.status_code == 409
    assert r.get_json()["message"] == "User with this email already exists"

    r = _register(client, email="other@example.com")
    assert r.status_code == 409
    assert r.get_json()["message"] == "Username is already taken"


def test_login_invalid_credentials(client):
    _register(client)
    r = client.post("/api/auth/login", json={"emailOrUsername": "amam", "password": "Wrong123"})
    assert r.status_code == 401
    assert r.get_json()["message"] == "Invalid email or password"

    r = client.post("/api/auth/login", json={"emailOrUsername": "nobody", "password": "Passw0rd"})
    assert r.status_code == 401

    r = client.post("/api/auth/login", json={})
    assert r.status_code == 400


def test_profile_requires_valid_token(client, user):
    assert client.get("/api/auth/profile").status_code == 401
    r = client.get("/api/auth/profile", headers=_bearer("garbage"))
    assert r.status_code == 401
    assert r.get_json()["message"] == "Invalid or expired token"

    expired = jwt.encode(
        {"userId": user.user_id, "exp": datetime.now(UTC) - timedelta(minutes=1)},
        "test-secret", algorithm="HS256",
    )
    r = client.get("/api/auth/profile", headers=_bearer(expired))
    assert r.status_code == 401
    assert r.get_json()["message"] == "Token has expired"


def test_get_and_update_profile(client, auth_headers, user):
    r = client.get("/api/auth/profile", headers=auth_headers)
    assert r.status_code == 200
    assert r.get_json()["data"]["user"]["id"] == user.user_id

    r = client.patch("/api/auth/profile", headers=auth_headers, json={
        "firstName": "Akosua",
        "location": "Kumasi",
        "isOnline": True,
    })
    assert r.status_code == 200
    updated = r.get_json()["data"]["user"]
    assert updated["firstName"] == "Akosua"
    assert updated["location"] == "Kumasi"
    assert updated["isOnline"] is True

    r = client.patch("/api/auth/profile", headers=auth_headers, json={"isOnline": "yes"})
    assert r.status_code == 400


def test_update_preferences(client, auth_headers, storage, user):
    r = client.patch("/api/auth/preferences", headers=auth_headers, json={
        "categories": ["Dance", "Cooking"],
        "ageRange": "21-25",
        "priceRange": {"min": 50, "max": 500.5},
    })
    assert r.status_code == 200
    prefs = storage.users.get(user.user_id).preferences
    assert prefs["categories"] == ["Dance", "Cooking"]
    assert prefs["priceRange"] == {"min": 50, "max": 500.5}

    r = client.patch("/api/auth/preferences", headers=auth_headers, json={"categories": ["Knitting"]})
    assert r.status_code == 400
    assert r.get_json()["errors"] == ["Invalid category selected"]

    r = client.patch("/api/auth/preferences", headers=auth_headers,
                     json={"priceRange": {"min": 100, "max": 10}})
    assert r.get_json()["errors"] == ["Maximum price must be greater than minimum price"]


def test_logout(client, auth_headers):
    r = client.post("/api/auth/logout", headers=auth_headers)
    assert r.status_code == 200
    assert r.get_json()["message"] == "Logout successful"


def test_forgot_and_reset_password(client, storage):
    _register(client)

    r = client.post("/api/auth/forgot-password", json={"email": "missing@example.com"})
    assert r.status_code == 404

    r = client.post("/api/auth/forgot-password", json={"email": "ama@example.com"})
    assert r.status_code == 200
    data = r.get_json()["data"]
    token = data["resetToken"]
    assert data["resetUrl"].endswith(f"/reset-password?token={token}")
    assert data["mailtoLink"].startswith("mailto:ama@example.com?subject=")
    assert data["expiresIn"] == "10 minutes"

    # Only the hash is stored
    stored = storage.users.find_by_email("ama@example.com")
    assert stored.reset_password_token != token

    r = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "N3wPassword"})
    assert r.status_code == 200
    assert r.get_json()["data"]["token"]

    r = client.post("/api/auth/login", json={"emailOrUsername": "amam", "password": "N3wPassword"})
    assert r.status_code == 200

    r = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "An0ther1"})
    assert r.status_code == 400
    assert r.get_json()["message"] == "Token is invalid or has expired"
