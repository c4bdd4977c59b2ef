"""Unit tests for tracked session routes."""

from __future__ import annotations

import unittest
from unittest.mock import patch

from backend.sessions import cleanup_old_sessions, lambda_handler
from learnhub.identity import hash_token, secret_hash
from tests.fakes import FakeCognito, FakeDynamo, api_event, body_of

ENV = {"USER_POOL_ID": "ap-south-1_Pool", "CLIENT_ID": "client-1", "CLIENT_SECRET": "shh"}


def _session(session_id: str, created_at: str, **extra) -> dict:
    return {
        "session_id": session_id,
        "user_id": "user-1",
        "is_active": True,
        "created_at": created_at,
        "last_active_at": created_at,
        "expires_at": "2999-01-01T00:00:00Z",
        **extra,
    }


class SessionRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dynamo = FakeDynamo()
        self.cognito = FakeCognito(
            responses={
                "initiate_auth": {
                    "AuthenticationResult": {
                        "AccessToken": "access-token",
                        "RefreshToken": "refresh-token",
                        "IdToken": "id-token",
                        "ExpiresIn": 3600,
                    }
                },
                "get_user": {"Username": "ada", "UserAttributes": [{"Name": "sub", "Value": "user-1"}]},
            }
        )
        for patcher in (
            patch("backend.aws.dynamodb_table", self.dynamo.table),
            patch("backend.aws.cognito_client", return_value=self.cognito),
            patch.dict("os.environ", ENV, clear=True),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)
        self.sessions = self.dynamo.for_env("SESSIONS_TABLE")
        self.users = self.dynamo.for_env("USERS_TABLE")
        self.users.seed({"user_id": "user-1", "email": "ada@example.com", "status": "active", "role_id": "r-1"})

    def _call(self, method: str, path: str, **kwargs) -> tuple[int, dict]:
        kwargs.setdefault("user_id", None)
        response = lambda_handler(api_event(method, path, **kwargs), None)
        return response["statusCode"], body_of(response)

    def test_login_creates_session(self) -> None:
        status, payload = self._call(
            "POST", "/sessions/login", body={"email": "Ada@Example.com", "password": "pw"}
        )
        self.assertEqual((status, payload["message"]), (200, "Login successful"))
        data = payload["data"]
        self.assertEqual(data["expiresIn"], 24 * 3600)
        self.assertEqual(data["user"]["email"], "ada@example.com")
        stored = self.sessions.rows[data["sessionId"]]
        self.assertEqual(stored["token_sha"], hash_token("access-token"))
        self.assertTrue(stored["is_active"])

        (auth_call,) = self.cognito.called("initiate_auth")
        self.assertEqual(auth_call["AuthParameters"]["USERNAME"], "ada@example.com")

    def test_remember_me_extends_session(self) -> None:
        _, payload = self._call(
            "POST", "/sessions/login", body={"email": "ada@example.com", "password": "pw", "rememberMe": True}
        )
        self.assertEqual(payload["data"]["expiresIn"], 30 * 24 * 3600)

    def test_login_rejects_suspended_accounts(self) -> None:
        self.users.seed({"user_id": "user-1", "status": "suspended"})
        status, payload = self._call("POST", "/sessions/login", body={"email": "a@b.io", "password": "pw"})
        self.assertEqual((status, payload["message"]), (403, "Account is suspended. Please contact support."))

    def test_login_maps_bad_credentials(self) -> None:
        self.cognito.errors["initiate_auth"] = "NotAuthorizedException"
        status, payload = self._call("POST", "/sessions/login", body={"email": "a@b.io", "password": "pw"})
        self.assertEqual((status, payload["message"]), (401, "Incorrect email or password"))

    def test_cleanup_keeps_five_most_recent(self) -> None:
        self.sessions.seed(*(_session(f"s-{day}", f"2026-01-0{day}T00:00:00Z") for day in range(1, 8)))
        self.assertEqual(cleanup_old_sessions("user-1"), 2)
        self.assertFalse(self.sessions.rows["s-1"]["is_active"])
        self.assertFalse(self.sessions.rows["s-2"]["is_active"])
        self.assertTrue(self.sessions.rows["s-7"]["is_active"])

    def test_validate_session_with_bearer_token(self) -> None:
        self.sessions.seed(_session("s-1", "2026-01-01T00:00:00Z", token_sha=hash_token("tok")))
        status, payload = self._call("GET", "/sessions/validate", headers={"Authorization": "Bearer tok"})
        self.assertEqual((status, payload["message"]), (200, "Session is valid"))
        self.assertEqual(payload["data"]["sessionId"], "s-1")
        self.assertNotIn("userId", payload["data"]["user"])

    def test_validate_rejects_missing_unknown_and_expired_tokens(self) -> None:
        status, payload = self._call("GET", "/sessions/validate")
        self.assertEqual((status, payload["message"]), (401, "Authorization token required"))

        status, payload = self._call("GET", "/sessions/validate", headers={"Authorization": "Bearer nope"})
        self.assertEqual(payload["message"], "Invalid or expired token")

        self.sessions.seed(
            _session("s-1", "2026-01-01T00:00:00Z", token_sha=hash_token("old"), expires_at="2020-01-01T00:00:00Z")
        )
        status, payload = self._call("GET", "/sessions/validate", headers={"Authorization": "Bearer old"})
        self.assertEqual((status, payload["message"]), (401, "Session expired"))
        self.assertFalse(self.sessions.rows["s-1"]["is_active"])

    def test_refresh_rotates_the_tracked_session_token(self) -> None:
        self.sessions.seed(_session("s-1", "2026-01-01T00:00:00Z", token_sha=hash_token("old")))
        status, payload = self._call(
            "POST", "/sessions/refresh", body={"refreshToken": "refresh-token", "sessionId": "s-1"}
        )
        self.assertEqual((status, payload["message"]), (200, "Token refreshed successfully"))
        self.assertEqual(
            payload["data"], {"accessToken": "access-token", "idToken": "id-token", "expiresIn": 3600}
        )
        self.assertEqual(self.sessions.rows["s-1"]["token_sha"], hash_token("access-token"))

        (auth_call,) = self.cognito.called("initiate_auth")
        self.assertEqual(auth_call["AuthFlow"], "REFRESH_TOKEN_AUTH")
        self.assertEqual(
            auth_call["AuthParameters"]["SECRET_HASH"],
            secret_hash("ada@example.com", client_id="client-1", client_secret="shh"),
        )

    def test_refresh_validation(self) -> None:
        status, payload = self._call("POST", "/sessions/refresh", body={"sessionId": "s-1"})
        self.assertEqual((status, payload["message"]), (400, "refreshToken is required"))

        status, payload = self._call("POST", "/sessions/refresh", body={"refreshToken": "refresh-token"})
        self.assertEqual(
            (status, payload["message"]), (400, "sessionId or email is required to refresh tokens")
        )

    def test_refresh_failure_keeps_the_old_token(self) -> None:
        self.cognito.errors["initiate_auth"] = "NotAuthorizedException"
        self.sessions.seed(_session("s-1", "2026-01-01T00:00:00Z", token_sha=hash_token("old")))
        status, payload = self._call(
            "POST", "/sessions/refresh", body={"refreshToken": "expired", "sessionId": "s-1"}
        )
        self.assertEqual((status, payload["message"]), (401, "Token refresh failed. Please login again."))
        self.assertEqual(self.sessions.rows["s-1"]["token_sha"], hash_token("old"))

    def test_logout_deactivates_session(self) -> None:
        self.sessions.seed(_session("s-1", "2026-01-01T00:00:00Z"))
        status, payload = self._call("POST", "/sessions/logout", body={"sessionId": "s-1", "accessToken": "tok"})
        self.assertEqual((status, payload["message"]), (200, "Logout successful"))
        self.assertFalse(self.sessions.rows["s-1"]["is_active"])
        self.assertEqual(len(self.cognito.called("global_sign_out")), 1)

    def test_active_sessions_listing(self) -> None:
        self.sessions.seed(
            _session("s-1", "2026-01-01T00:00:00Z"),
            _session("s-2", "2026-01-02T00:00:00Z"),
            _session("s-3", "2026-01-03T00:00:00Z", is_active=False),
        )
        status, payload = self._call("GET", "/sessions/user-1")
        self.assertEqual(status, 200)
        self.assertEqual(payload["data"]["activeSessionsCount"], 2)
        self.assertEqual([row["sessionId"] for row in payload["data"]["sessions"]], ["s-2", "s-1"])

    def test_all_sessions_newest_first(self) -> None:
        self.sessions.seed(
            _session("s-1", "2026-01-01T00:00:00Z"),
            _session("s-2", "2026-01-02T00:00:00Z", is_active=False),
        )
        _, payload = self._call("GET", "/sessions/user-1/all")
        self.assertEqual([row["sessionId"] for row in payload["data"]["sessions"]], ["s-2", "s-1"])
        self.assertEqual(payload["data"]["count"], 2)

    def test_session_details_hide_token_hash(self) -> None:
        self.sessions.seed(_session("s-1", "2026-01-01T00:00:00Z", token_sha="abc"))
        status, payload = self._call("GET", "/sessions/details/s-1")
        self.assertEqual(status, 200)
        self.assertNotIn("token_sha", payload["data"]["session"])

        status, payload = self._call("GET", "/sessions/details/s-9")
        self.assertEqual((status, payload["message"]), (404, "Session not found"))

    def test_revoke_all_except_current(self) -> None:
        self.sessions.seed(
            _session("s-1", "2026-01-01T00:00:00Z"),
            _session("s-2", "2026-01-02T00:00:00Z"),
            _session("s-3", "2026-01-03T00:00:00Z"),
        )
        status, payload = self._call("DELETE", "/sessions/user-1/all", body={"exceptSessionId": "s-3"})
        self.assertEqual((status, payload["message"]), (200, "2 session(s) revoked successfully"))
        self.assertTrue(self.sessions.rows["s-3"]["is_active"])
        self.assertIn("revoked_at", self.sessions.rows["s-1"])

    def test_revoke_single_session(self) -> None:
        self.sessions.seed(_session("s-1", "2026-01-01T00:00:00Z"))
        status, _ = self._call("DELETE", "/sessions/s-1")
        self.assertEqual(status, 200)
        self.assertFalse(self.sessions.rows["s-1"]["is_active"])


if __name__ == "__main__":
    unittest.main()
