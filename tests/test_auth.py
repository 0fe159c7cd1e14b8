# tests/test_auth.py
from .conftest import TEST_EMAIL, TEST_PASSWORD, TEST_FIRSTNAME


def contains_key(value, key):
    if isinstance(value, dict):
        return key in value or any(contains_key(v, key) for v in value.values())
    if isinstance(value, list):
        return any(contains_key(v, key) for v in value)
    return False


def test_register_then_login_scenario(client):
    """
    1. Registra a@x.com / p1 / A -> 201 sin 'password'.
    2. Login con p1 -> 200.
    3. Login con 'wrong' -> 401.
    """
    r = client.post("/api/users", json={"email": TEST_EMAIL, "password": TEST_PASSWORD, "firstname": TEST_FIRSTNAME})
    assert r.status_code == 201
    body = r.json()
    assert "password" not in body
    assert body["email"] == TEST_EMAIL
    assert body["firstname"] == TEST_FIRSTNAME
    assert body["_id"]

    r = client.post("/api/login", json={"email": TEST_EMAIL, "password": TEST_PASSWORD})
    assert r.status_code == 200
    body = r.json()
    assert body == {
        "success": True,
        "message": "User authenticated",
        "user": {"email": TEST_EMAIL, "firstname": TEST_FIRSTNAME},
    }
    assert not contains_key(body, "password")

    r = client.post("/api/login", json={"email": TEST_EMAIL, "password": "wrong"})
    assert r.status_code == 401


def test_stored_password_is_hashed(client, credential_store, registered_user):
    stored = credential_store.users[TEST_EMAIL]
    assert stored["password"] != TEST_PASSWORD
    assert stored["password"].startswith("$2")


def test_register_duplicate_email(client, credential_store, registered_user):
    """No se puede registrar un email existente y el registro original no cambia."""
    before = dict(credential_store.users[TEST_EMAIL])

    r = client.post("/api/users", json={"email": TEST_EMAIL, "password": "newpassword", "firstname": "Otro"})

    assert r.status_code == 409
    assert r.json() == {"error": "Email already registered"}
    assert credential_store.users[TEST_EMAIL] == before
    assert credential_store.insert_calls == 1


def test_register_duplicate_email_is_case_insensitive(client, registered_user):
    r = client.post("/api/users", json={"email": "  A@X.COM ", "password": "p2", "firstname": "B"})
    assert r.status_code == 409


def test_login_normalizes_email(client, registered_user):
    r = client.post("/api/login", json={"email": "A@x.com", "password": TEST_PASSWORD})
    assert r.status_code == 200
    assert r.json()["user"]["email"] == TEST_EMAIL


def test_login_unknown_email_and_wrong_password_are_identical(client, registered_user):
    r_unknown = client.post("/api/login", json={"email": "nouser@example.com", "password": TEST_PASSWORD})
    r_wrong = client.post("/api/login", json={"email": TEST_EMAIL, "password": "wrongpassword"})

    assert r_unknown.status_code == r_wrong.status_code == 401
    assert r_unknown.json() == r_wrong.json() == {"error": "Invalid email or password"}


def test_register_keeps_extra_fields(client, credential_store):
    payload = {"email": "b@x.com", "password": "secret", "firstname": "B", "lastname": "Bravo", "team": "ventas"}
    r = client.post("/api/users", json=payload)

    assert r.status_code == 201
    body = r.json()
    assert body["lastname"] == "Bravo"
    assert body["team"] == "ventas"
    assert "password" not in body
    assert credential_store.users["b@x.com"]["lastname"] == "Bravo"


def test_register_rejects_operator_field_names(client, credential_store):
    payload = {"email": "c@x.com", "password": "secret", "firstname": "C", "$where": "1"}
    r = client.post("/api/users", json=payload)
    assert r.status_code == 400
    assert credential_store.find_calls == 0


def test_register_rejects_password_over_bcrypt_limit(client, credential_store):
    r = client.post("/api/users", json={"email": "d@x.com", "password": "x" * 73, "firstname": "D"})
    assert r.status_code == 400
    assert credential_store.insert_calls == 0


def test_register_missing_fields_before_store_access(client, credential_store):
    for payload in (
        {"password": "p1", "firstname": "A"},
        {"email": TEST_EMAIL, "firstname": "A"},
        {"email": TEST_EMAIL, "password": "p1"},
        {"email": "", "password": "p1", "firstname": "A"},
        {"email": TEST_EMAIL, "password": "p1", "firstname": "   "},
        {},
    ):
        r = client.post("/api/users", json=payload)
        assert r.status_code == 400, payload
        assert "error" in r.json()

    assert credential_store.find_calls == 0
    assert credential_store.insert_calls == 0


def test_login_missing_fields_before_store_access(client, credential_store):
    for payload in ({"email": TEST_EMAIL}, {"password": "p1"}, {"email": "", "password": ""}, {}):
        r = client.post("/api/login", json=payload)
        assert r.status_code == 400, payload

    assert credential_store.find_calls == 0


def test_login_rejects_non_string_credentials(client, credential_store):
    r = client.post("/api/login", json={"email": {"$ne": None}, "password": {"$ne": None}})
    assert r.status_code == 400
    assert credential_store.find_calls == 0


def test_malformed_json_is_bad_request(client):
    r = client.post("/api/login", content="{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400


def test_store_failure_hides_driver_message(client, credential_store):
    credential_store.fail_with = RuntimeError("connection refused by 10.0.0.5:27017")

    r_login = client.post("/api/login", json={"email": TEST_EMAIL, "password": TEST_PASSWORD})
    r_register = client.post("/api/users", json={"email": TEST_EMAIL, "password": TEST_PASSWORD, "firstname": "A"})

    assert r_login.status_code == 500
    assert r_register.status_code == 500
    assert "10.0.0.5" not in r_login.text
    assert "10.0.0.5" not in r_register.text


def test_wrong_method_is_not_allowed(client):
    assert client.get("/api/login").status_code == 405
    assert client.get("/api/users").status_code == 405


def test_concurrent_registration_rejected_by_unique_index(client, credential_store):
    """Otro registro gana la carrera entre la búsqueda y el insert: el índice único lo rechaza con 409."""
    credential_store.users[TEST_EMAIL] = {"email": TEST_EMAIL, "password": "$2b$04$other", "firstname": "Otro"}

    async def find_nothing(email):
        return None

    credential_store.find_by_email = find_nothing
    r = client.post("/api/users", json={"email": TEST_EMAIL, "password": TEST_PASSWORD, "firstname": TEST_FIRSTNAME})

    assert r.status_code == 409
    assert r.json() == {"error": "Email already registered"}
    assert credential_store.users[TEST_EMAIL]["firstname"] == "Otro"
