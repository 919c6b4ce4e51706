"""
/api/user endpoints: registration, logins, tokens, reset, admin management.
"""

import datetime

import jwt
import pytest

from routers.user.common import USERS, verify_password
from routers.user.reset_password import RESETS


def _register_form(**overrides):
    form = {
        "firstName": "Rosalind",
        "lastName":  "Franklin",
        "email":     "Rosalind@Kings-College.ac.uk",
        "password":  "helix-1953",
        "role":      "Investigador",
    }
    form.update(overrides)
    return form


def _photo():
    return {"photo": ("me.jpg", b"\xff\xd8jpeg", "image/jpeg")}


class TestRegister:
    def test_register_creates_user_and_token(self, client, store, uploader, settings):
        resp = client.post("/api/user/register", data=_register_form(), files=_photo())

        assert resp.status_code == 200
        body = resp.json()
        uid = body["user"]["uid"]
        assert body["user"]["role"] == "investigador"
        assert body["user"]["email"] == "rosalind@kings-college.ac.uk"
        assert body["user"]["photoURL"] == f"https://blob.test/users/{uid}/profile.jpg"
        assert "password" not in body["user"]

        claims = jwt.decode(body["token"], settings.secret_key, algorithms=["HS256"])
        assert claims["uid"] == uid
        assert body["expirationDate"] == claims["exp"] * 1000

        doc = store.get(USERS, uid)
        assert doc["status"] == "active"
        assert verify_password("helix-1953", doc["password"])

    @pytest.mark.parametrize("missing", ["firstName", "lastName", "email", "password", "role"])
    def test_missing_field_is_400(self, client, missing):
        form = _register_form()
        del form[missing]
        resp = client.post("/api/user/register", data=form, files=_photo())
        assert resp.status_code == 400

    def test_missing_photo_is_400(self, client):
        assert client.post("/api/user/register", data=_register_form()).status_code == 400

    def test_invalid_role_is_400(self, client):
        resp = client.post("/api/user/register", data=_register_form(role="overlord"), files=_photo())
        assert resp.status_code == 400

    def test_invalid_email_is_400(self, client):
        resp = client.post("/api/user/register", data=_register_form(email="not-an-email"), files=_photo())
        assert resp.status_code == 400

    def test_roles_accepted_case_insensitively(self, client, store):
        resp = client.post(
            "/api/user/register",
            data=_register_form(email="admin@kings-college.ac.uk", role="ADMINISTRADOR"),
            files=_photo(),
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "administrador"

        headers = {"Authorization": f"Bearer {resp.json()['token']}"}
        assert client.get("/api/user/users", headers=headers).status_code == 200

    def test_duplicate_email_is_409(self, client, make_user):
        make_user(email="rosalind@kings-college.ac.uk")
        resp = client.post("/api/user/register", data=_register_form(), files=_photo())
        assert resp.status_code == 409


class TestLogin:
    def test_login_ok(self, client, make_user):
        uid, _ = make_user(email="ada@example.org", password="engine-42")
        resp = client.post("/api/user/login", json={"email": "ADA@example.org", "password": "engine-42"})
        assert resp.status_code == 200
        assert resp.json()["user"]["uid"] == uid

    def test_missing_fields_is_400(self, client):
        assert client.post("/api/user/login", json={"email": "a@b.org"}).status_code == 400

    def test_wrong_password_is_401(self, client, make_user):
        make_user(email="ada@example.org", password="engine-42")
        resp = client.post("/api/user/login", json={"email": "ada@example.org", "password": "nope"})
        assert resp.status_code == 401

    def test_unknown_email_is_401(self, client):
        resp = client.post("/api/user/login", json={"email": "who@example.org", "password": "x"})
        assert resp.status_code == 401

    def test_inactive_is_403(self, client, make_user):
        make_user(email="ada@example.org", password="engine-42", status="inactive")
        resp = client.post("/api/user/login", json={"email": "ada@example.org", "password": "engine-42"})
        assert resp.status_code == 403


class TestFederatedLogin:
    def test_first_google_login_creates_colaborador(self, client, store, verifier):
        verifier.tokens["good"] = {
            "uid": "g-123", "name": "Marie Salomea Curie", "email": "Marie@Example.org", "picture": "https://pic",
        }
        resp = client.post("/api/user/google-login", json={"idToken": "good"})

        assert resp.status_code == 200
        doc = store.get(USERS, "g-123")
        assert doc["role"] == "colaborador"
        assert doc["firstName"] == "Marie"
        assert doc["lastName"] == "Salomea Curie"
        assert doc["email"] == "marie@example.org"
        assert doc["provider"] == "google"

    def test_existing_user_keeps_role(self, client, store, verifier):
        store.set(USERS, "g-1", {"firstName": "A", "lastName": "B", "role": "administrador", "status": "active"})
        verifier.tokens["t"] = {"uid": "g-1", "name": "Someone Else"}
        resp = client.post("/api/user/github-login", json={"accessToken": "t"})
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "administrador"
        assert resp.json()["user"]["firstName"] == "A"

    def test_twitter_without_email(self, client, store, verifier):
        verifier.tokens["tw"] = {"uid": "t-1", "name": "Bird"}
        resp = client.post("/api/user/twitter-login", json={"accessToken": "tw"})
        assert resp.status_code == 200
        assert "email" not in store.get(USERS, "t-1")

    def test_missing_token_is_400(self, client):
        assert client.post("/api/user/google-login", json={}).status_code == 400
        assert client.post("/api/user/github-login", json={}).status_code == 400

    def test_invalid_token_is_401(self, client):
        assert client.post("/api/user/google-login", json={"idToken": "forged"}).status_code == 401

    def test_inactive_is_403(self, client, store, verifier):
        store.set(USERS, "g-2", {"role": "colaborador", "status": "inactive"})
        verifier.tokens["t"] = {"uid": "g-2"}
        assert client.post("/api/user/google-login", json={"idToken": "t"}).status_code == 403


class TestTokens:
    def test_verify_token(self, client, make_user):
        uid, headers = make_user()
        token = headers["Authorization"].split(" ", 1)[1]
        resp = client.post("/api/user/verify-token", json={"token": token})
        assert resp.status_code == 200
        assert resp.json()["isValid"] is True
        assert resp.json()["userData"]["uid"] == uid
        assert "password" not in resp.json()["userData"]

    def test_verify_token_missing_is_400(self, client):
        assert client.post("/api/user/verify-token", json={}).status_code == 400

    def test_verify_token_expired_is_401(self, client, settings):
        expired = jwt.encode(
            {"uid": "x", "exp": datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(minutes=1)},
            settings.secret_key,
            algorithm="HS256",
        )
        resp = client.post("/api/user/verify-token", json={"token": expired})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token expired"
        assert resp.json()["isValid"] is False

    def test_verify_token_wrong_secret_is_401(self, client):
        forged = jwt.encode({"uid": "x"}, "some-other-secret-0123456789abcdefghij", algorithm="HS256")
        resp = client.post("/api/user/verify-token", json={"token": forged})
        assert resp.status_code == 401
        assert resp.json()["isValid"] is False
        assert resp.json()["message"] == "Invalid token"

    def test_verify_token_user_gone_is_404(self, client, store, make_user):
        uid, headers = make_user()
        store.remove(USERS, uid)
        token = headers["Authorization"].split(" ", 1)[1]
        assert client.post("/api/user/verify-token", json={"token": token}).status_code == 404

    def test_me(self, client, make_user):
        uid, headers = make_user(role="administrador")
        resp = client.get("/api/user/me", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["uid"] == uid
        assert resp.json()["role"] == "administrador"

    def test_me_without_token_is_401(self, client):
        assert client.get("/api/user/me").status_code == 401


class TestPasswordReset:
    def test_request_and_confirm(self, client, store, make_user):
        uid, _ = make_user(email="ada@example.org", password="old-password")

        resp = client.post("/api/user/reset-password", json={"email": "ada@example.org"})
        assert resp.status_code == 200
        (code, reset), = store.list(RESETS)
        assert reset["uid"] == uid

        resp = client.post("/api/user/reset-password/confirm", json={"code": code, "newPassword": "new-password"})
        assert resp.status_code == 200
        assert verify_password("new-password", store.get(USERS, uid)["password"])

        again = client.post("/api/user/reset-password/confirm", json={"code": code, "newPassword": "other-pass"})
        assert again.status_code == 400

    def test_unknown_email_gets_same_answer(self, client, store):
        resp = client.post("/api/user/reset-password", json={"email": "nobody@example.org"})
        assert resp.status_code == 200
        assert store.list(RESETS) == []

    def test_missing_email_is_400(self, client):
        assert client.post("/api/user/reset-password", json={}).status_code == 400

    def test_expired_code_is_400(self, client, store, make_user):
        uid, _ = make_user()
        store.set(RESETS, "CODE", {"uid": uid, "expiresAt": "2000-01-01T00:00:00Z", "consumed": False})
        resp = client.post("/api/user/reset-password/confirm", json={"code": "CODE", "newPassword": "whatever1"})
        assert resp.status_code == 400

    @pytest.mark.parametrize("payload", [{"code": "CODE", "newPassword": "short"}, {"code": "CODE"}, {"newPassword": "long-enough"}])
    def test_confirm_rejects_bad_input_with_400(self, client, store, make_user, payload):
        uid, _ = make_user()
        store.set(RESETS, "CODE", {"uid": uid, "expiresAt": "2999-01-01T00:00:00Z", "consumed": False})
        resp = client.post("/api/user/reset-password/confirm", json=payload)
        assert resp.status_code == 400
        assert store.get(RESETS, "CODE")["consumed"] is False

    def test_confirm_accepts_registration_minimum(self, client, store, make_user):
        uid, _ = make_user()
        store.set(RESETS, "CODE", {"uid": uid, "expiresAt": "2999-01-01T00:00:00Z", "consumed": False})
        resp = client.post("/api/user/reset-password/confirm", json={"code": "CODE", "newPassword": "six-ch"})
        assert resp.status_code == 200
        assert verify_password("six-ch", store.get(USERS, uid)["password"])

    def test_webhook_receives_code(self, client, store, make_user, settings, monkeypatch):
        import dataclasses
        from backend.settings import get_settings

        calls = []

        class _Resp:
            def raise_for_status(self):
                pass

        monkeypatch.setattr(
            "routers.user.reset_password.requests.post",
            lambda url, json, timeout: calls.append((url, json)) or _Resp(),
        )
        hooked = dataclasses.replace(settings, reset_webhook_url="https://hooks.test/reset")
        client.app.dependency_overrides[get_settings] = lambda: hooked
        make_user(email="ada@example.org")

        client.post("/api/user/reset-password", json={"email": "ada@example.org"})

        (code, _), = store.list(RESETS)
        assert calls == [("https://hooks.test/reset", {"email": "ada@example.org", "code": code})]


class TestAdminUsers:
    def test_non_admin_is_403(self, client, make_user):
        _, headers = make_user(role="investigador")
        assert client.get("/api/user/users", headers=headers).status_code == 403

    def test_no_token_is_401(self, client):
        assert client.get("/api/user/users").status_code == 401

    def test_list_users_hides_passwords(self, client, make_user):
        admin_uid, headers = make_user(role="administrador")
        make_user()
        resp = client.get("/api/user/users", headers=headers)
        assert resp.status_code == 200
        users = resp.json()
        assert len(users) == 2
        assert all("password" not in u for u in users)
        assert admin_uid in {u["uid"] for u in users}

    def test_search(self, client, make_user):
        _, headers = make_user(role="administrador", firstName="Root", lastName="Admin")
        make_user(firstName="Jane", lastName="Goodall", email="jane@gombe.org")
        make_user(firstName="Dian", lastName="Fossey", email="dian@karisoke.org", role="colaborador")

        resp = client.get("/api/user/users/search", params={"q": "GOMBE"}, headers=headers)
        assert [u["lastName"] for u in resp.json()] == ["Goodall"]

        resp = client.get("/api/user/users/search", params={"role": "colaborador"}, headers=headers)
        assert [u["lastName"] for u in resp.json()] == ["Fossey"]

        resp = client.get("/api/user/users/search", params={"role": "pirate"}, headers=headers)
        assert resp.status_code == 400

    def test_update_user(self, client, store, make_user):
        _, headers = make_user(role="administrador")
        uid, _ = make_user()

        resp = client.put(f"/api/user/update-user/{uid}", json={"role": "Colaborador", "status": "inactive"}, headers=headers)

        assert resp.status_code == 200
        doc = store.get(USERS, uid)
        assert doc["role"] == "colaborador"
        assert doc["status"] == "inactive"

    def test_update_rejects_password(self, client, make_user):
        _, headers = make_user(role="administrador")
        uid, _ = make_user()
        resp = client.put(f"/api/user/update-user/{uid}", json={"password": "x"}, headers=headers)
        assert resp.status_code == 400

    def test_update_unknown_is_404(self, client, make_user):
        _, headers = make_user(role="administrador")
        resp = client.put("/api/user/update-user/nope", json={"firstName": "X"}, headers=headers)
        assert resp.status_code == 404

    def test_delete_user(self, client, store, make_user):
        _, headers = make_user(role="administrador")
        uid, _ = make_user()
        assert client.delete(f"/api/user/delete-user/{uid}", headers=headers).status_code == 200
        assert store.get(USERS, uid) is None
        assert client.delete(f"/api/user/delete-user/{uid}", headers=headers).status_code == 404
