import unittest
from datetime import timedelta

import jwt
from fastapi.testclient import TestClient

from tests.helpers import auth_headers, make_user, unique_email

from app.core.config import settings  # noqa: E402
from app.core.security import create_access_token, hash_password, verify_password  # noqa: E402
from app.db.store import utc_now  # noqa: E402
from app.db.users import get_user  # noqa: E402
from app.main import app  # noqa: E402


class PasswordHashingTests(unittest.TestCase):
    def test_hash_round_trip_and_salt(self):
        first = hash_password("s3cret-pass")
        second = hash_password("s3cret-pass")
        self.assertNotEqual(first, second)
        self.assertTrue(first.startswith("pbkdf2_sha256$190000$"))
        self.assertTrue(verify_password("s3cret-pass", first))
        self.assertFalse(verify_password("wrong-pass", first))
        self.assertFalse(verify_password("s3cret-pass", "garbage"))


class AuthApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def test_register_login_me_flow(self):
        email = unique_email("flow")
        response = self.client.post(
            "/api/auth/register",
            json={"email": email, "password": "long-enough-pw", "name": "Flow User"},
        )
        self.assertEqual(response.status_code, 201)
        data = response.json()["data"]
        self.assertEqual(data["user"]["email"], email)
        self.assertEqual(data["user"]["tier"], "free")
        claims = jwt.decode(data["token"], settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        self.assertEqual(claims["sub"], data["user"]["id"])
        self.assertEqual(claims["type"], "access")

        login = self.client.post("/api/auth/login", json={"email": email.upper(), "password": "long-enough-pw"})
        self.assertEqual(login.status_code, 200)
        token = login.json()["data"]["token"]

        me = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(me.status_code, 200)
        body = me.json()["data"]
        self.assertEqual(body["user"]["name"], "Flow User")
        self.assertEqual(body["usage"]["usageLimit"], 3)

    def test_duplicate_email_conflicts(self):
        email = unique_email("dup")
        payload = {"email": email, "password": "long-enough-pw"}
        self.assertEqual(self.client.post("/api/auth/register", json=payload).status_code, 201)
        response = self.client.post("/api/auth/register", json=payload)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "EMAIL_IN_USE")

    def test_short_password_and_bad_email(self):
        response = self.client.post("/api/auth/register", json={"email": unique_email(), "password": "short"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")
        response = self.client.post("/api/auth/register", json={"email": "not-an-email", "password": "long-enough-pw"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")
        self.assertTrue(response.json()["error"]["fields"])

    def test_wrong_password_is_invalid_credentials(self):
        user = make_user(password="right-password")
        response = self.client.post("/api/auth/login", json={"email": user.email, "password": "wrong-password"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_CREDENTIALS")

    def test_missing_and_invalid_tokens(self):
        response = self.client.get("/api/auth/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "AUTHENTICATION_REQUIRED")
        response = self.client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.token"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")

    def test_expired_token_is_rejected(self):
        user = make_user()
        token = create_access_token(user, now=utc_now() - timedelta(days=30))
        response = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")

    def test_logout_acknowledges(self):
        user = make_user()
        response = self.client.post("/api/auth/logout", headers=auth_headers(user))
        self.assertEqual(response.json(), {"success": True, "data": {"loggedOut": True}})

    def test_unknown_route_uses_error_envelope(self):
        response = self.client.get("/api/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NOT_FOUND")


class ProfileApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def test_update_profile_and_password(self):
        user = make_user(password="original-pass")
        headers = auth_headers(user)
        response = self.client.put("/api/profile", json={"name": "Renamed"}, headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["name"], "Renamed")

        bad = self.client.put(
            "/api/profile/password",
            json={"currentPassword": "nope-nope", "newPassword": "brand-new-pass"},
            headers=headers,
        )
        self.assertEqual(bad.json()["error"]["code"], "INVALID_CREDENTIALS")

        good = self.client.put(
            "/api/profile/password",
            json={"currentPassword": "original-pass", "newPassword": "brand-new-pass"},
            headers=headers,
        )
        self.assertEqual(good.status_code, 200)
        self.assertTrue(verify_password("brand-new-pass", get_user(user.id).password_hash))

    def test_delete_account(self):
        user = make_user()
        headers = auth_headers(user)
        response = self.client.delete("/api/profile", headers=headers)
        self.assertEqual(response.json()["data"], {"deleted": True})
        self.assertIsNone(get_user(user.id))
        follow_up = self.client.get("/api/profile", headers=headers)
        self.assertEqual(follow_up.status_code, 404)
        self.assertEqual(follow_up.json()["error"]["code"], "USER_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
