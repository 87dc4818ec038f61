import unittest
from datetime import date, datetime, timedelta, timezone

from fastapi.testclient import TestClient

from pagehoppers.app import create_app
from pagehoppers.config import Settings
from pagehoppers.db import InMemoryDbClient, ReadingLogRow, Role, SqlDbClient
from pagehoppers.dependencies import get_today
from pagehoppers.security import TokenIssuer

TODAY = date(2024, 6, 15)
SECRET = "page-hoppers-test-secret-0123456789"


class PageHoppersApiTests(unittest.TestCase):
    def setUp(self):
        self.db = self._make_db()
        settings = Settings(
            jwt_secret=SECRET, bcrypt_rounds=4, use_in_memory_backends=True
        )
        self.app = create_app(settings, self.db)
        self.app.dependency_overrides[get_today] = lambda: TODAY
        self.client = TestClient(self.app)

    # Helpers

    def _make_db(self):
        return InMemoryDbClient()

    def _register(self, email="mum@example.com", password="secret", name="Mum"):
        return self.client.post(
            "/api/auth/parent/register",
            json={"name": name, "email": email, "password": password},
        )

    def _parent_token(self, email="mum@example.com", password="secret"):
        self._register(email=email, password=password)
        response = self.client.post(
            "/api/auth/parent/login", json={"email": email, "password": password}
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["token"]

    def _create_child(self, parent_token, name="Ada", age=8, pin="1234"):
        response = self.client.post(
            "/api/children",
            json={"name": name, "age": age, "pin": pin},
            headers=self._auth(parent_token),
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["id"]

    def _child_token(self, child_id, pin="1234"):
        response = self.client.post(
            "/api/auth/child/login", json={"childId": child_id, "pin": pin}
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["token"]

    def _log(self, child_token, title, status, day, **extra):
        return self.client.post(
            "/api/reading-logs",
            json={"title": title, "status": status, "date": day.isoformat(), **extra},
            headers=self._auth(child_token),
        )

    @staticmethod
    def _auth(token):
        return {"Authorization": f"Bearer {token}"}

    # Parent registration and login

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_register_parent(self):
        response = self._register()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["message"], "Parent registered successfully")
        parent = self.db.get_parent_by_email("mum@example.com")
        self.assertIsNotNone(parent)
        self.assertNotEqual(parent.password_hash, "secret")

    def test_register_duplicate_email_conflicts(self):
        self._register()
        response = self._register(name="Someone Else")
        self.assertEqual(response.status_code, 409)

    def test_register_missing_field_is_bad_request(self):
        response = self.client.post(
            "/api/auth/parent/register",
            json={"name": "Mum", "email": "mum@example.com"},
        )
        self.assertEqual(response.status_code, 400)

    def test_register_blank_field_is_bad_request(self):
        response = self._register(name="  ")
        self.assertEqual(response.status_code, 400)

    def test_parent_login_rejects_bad_credentials(self):
        self._register()
        wrong_password = self.client.post(
            "/api/auth/parent/login",
            json={"email": "mum@example.com", "password": "nope"},
        )
        self.assertEqual(wrong_password.status_code, 401)
        unknown = self.client.post(
            "/api/auth/parent/login",
            json={"email": "dad@example.com", "password": "secret"},
        )
        self.assertEqual(unknown.status_code, 401)

    def test_parent_login_records_last_login(self):
        token = self._parent_token()
        self.assertTrue(token)
        parent = self.db.get_parent_by_email("mum@example.com")
        self.assertIsNotNone(parent.last_login_at)

    # Children

    def test_create_and_list_children(self):
        token = self._parent_token()
        child_id = self._create_child(token)

        response = self.client.get("/api/children", headers=self._auth(token))
        self.assertEqual(response.status_code, 200)
        children = response.json()
        self.assertEqual(len(children), 1)
        self.assertEqual(children[0]["id"], child_id)
        self.assertEqual(children[0]["role"], "child")
        self.assertEqual(children[0]["age"], 8)
        self.assertNotIn("pin_hash", children[0])

    def test_children_are_scoped_to_parent(self):
        mum = self._parent_token()
        self._create_child(mum)
        dad = self._parent_token(email="dad@example.com")

        response = self.client.get("/api/children", headers=self._auth(dad))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])

    def test_create_child_validation(self):
        token = self._parent_token()
        for body in (
            {"name": "Ada", "age": 0, "pin": "1234"},
            {"name": "", "age": 8, "pin": "1234"},
            {"name": "Ada", "age": 8, "pin": ""},
            {"name": "Ada", "pin": "1234"},
        ):
            response = self.client.post(
                "/api/children", json=body, headers=self._auth(token)
            )
            self.assertEqual(response.status_code, 400, body)

    def test_children_routes_require_parent_token(self):
        response = self.client.get("/api/children")
        self.assertEqual(response.status_code, 401)

        token = self._parent_token()
        child_token = self._child_token(self._create_child(token))
        response = self.client.get("/api/children", headers=self._auth(child_token))
        self.assertEqual(response.status_code, 403)

    # Child login

    def test_child_login(self):
        child_id = self._create_child(self._parent_token())
        token = self._child_token(child_id)
        principal = TokenIssuer(SECRET).decode(token)
        self.assertEqual(principal.user_id, child_id)
        self.assertEqual(principal.role, Role.CHILD)
        self.assertIsNotNone(principal.parent_id)

    def test_child_login_rejects_wrong_pin_and_unknown_id(self):
        child_id = self._create_child(self._parent_token())
        wrong_pin = self.client.post(
            "/api/auth/child/login", json={"childId": child_id, "pin": "9999"}
        )
        self.assertEqual(wrong_pin.status_code, 401)
        unknown = self.client.post(
            "/api/auth/child/login", json={"childId": 999, "pin": "1234"}
        )
        self.assertEqual(unknown.status_code, 401)

    # Reading logs

    def test_create_reading_log(self):
        child_id = self._create_child(self._parent_token())
        token = self._child_token(child_id)
        response = self._log(
            token,
            "The Worst Witch",
            "started",
            TODAY,
            author="Jill Murphy",
            openLibraryKey="/works/OL1W",
            coverId=42,
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["title"], "The Worst Witch")
        self.assertEqual(payload["status"], "started")
        self.assertEqual(payload["date"], "2024-06-15")
        self.assertEqual(payload["open_library_key"], "/works/OL1W")
        self.assertEqual(payload["cover_id"], 42)
        self.assertEqual(payload["child_id"], child_id)

    def test_create_reading_log_accepts_snake_case_catalog_fields(self):
        token = self._child_token(self._create_child(self._parent_token()))
        response = self._log(
            token, "Matilda", "completed", TODAY, open_library_key="/works/OL2W", cover_id=7
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["open_library_key"], "/works/OL2W")
        self.assertEqual(response.json()["cover_id"], 7)

    def test_create_reading_log_validation(self):
        token = self._child_token(self._create_child(self._parent_token()))
        bad_status = self._log(token, "Matilda", "abandoned", TODAY)
        self.assertEqual(bad_status.status_code, 400)

        bad_date = self.client.post(
            "/api/reading-logs",
            json={"title": "Matilda", "status": "started", "date": "15/06/2024"},
            headers=self._auth(token),
        )
        self.assertEqual(bad_date.status_code, 400)

        impossible_date = self.client.post(
            "/api/reading-logs",
            json={"title": "Matilda", "status": "started", "date": "2024-02-30"},
            headers=self._auth(token),
        )
        self.assertEqual(impossible_date.status_code, 400)

        unpadded_date = self.client.post(
            "/api/reading-logs",
            json={"title": "Matilda", "status": "started", "date": "2024-6-5"},
            headers=self._auth(token),
        )
        self.assertEqual(unpadded_date.status_code, 400)

        missing_title = self.client.post(
            "/api/reading-logs",
            json={"status": "started", "date": "2024-06-15"},
            headers=self._auth(token),
        )
        self.assertEqual(missing_title.status_code, 400)

    def test_create_reading_log_requires_child_token(self):
        parent = self._parent_token()
        response = self._log(parent, "Matilda", "started", TODAY)
        self.assertEqual(response.status_code, 403)

    def test_list_own_logs_ordered_newest_first(self):
        token = self._child_token(self._create_child(self._parent_token()))
        self._log(token, "Older", "completed", TODAY - timedelta(days=3))
        self._log(token, "Newest", "started", TODAY)
        self._log(token, "Middle", "completed", TODAY - timedelta(days=1))

        response = self.client.get("/api/reading-logs", headers=self._auth(token))
        self.assertEqual(response.status_code, 200)
        titles = [log["title"] for log in response.json()]
        self.assertEqual(titles, ["Newest", "Middle", "Older"])

    def test_parent_lists_child_logs(self):
        parent = self._parent_token()
        child_id = self._create_child(parent)
        token = self._child_token(child_id)
        self._log(token, "Matilda", "completed", TODAY)

        response = self.client.get(
            "/api/children/reading-logs",
            params={"child_id": child_id},
            headers=self._auth(parent),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual([log["title"] for log in response.json()], ["Matilda"])

    def test_parent_cannot_list_other_parents_child_logs(self):
        child_id = self._create_child(self._parent_token())
        other = self._parent_token(email="dad@example.com")

        response = self.client.get(
            "/api/children/reading-logs",
            params={"child_id": child_id},
            headers=self._auth(other),
        )
        self.assertEqual(response.status_code, 404)

        missing = self.client.get(
            "/api/children/reading-logs", headers=self._auth(other)
        )
        self.assertEqual(missing.status_code, 400)

    # Summary

    def _seed_summary_logs(self, token):
        self._log(token, "Today Book", "started", TODAY)
        yesterday = TODAY - timedelta(days=1)
        for i in range(3):
            self._log(token, f"Yesterday {i}", "completed", yesterday)
        for i in range(3):
            self._log(token, f"Last Month {i}", "completed", date(2024, 5, 10))
        for i in range(2):
            self._log(token, f"Two Months Ago {i}", "completed", date(2024, 4, 10))

    def test_child_summary(self):
        parent = self._parent_token()
        child_id = self._create_child(parent)
        token = self._child_token(child_id)
        self._seed_summary_logs(token)

        response = self.client.get(
            f"/api/children/{child_id}/summary", headers=self._auth(token)
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["child_id"], child_id)
        self.assertEqual(payload["name"], "Ada")
        self.assertEqual(payload["currentBook"]["title"], "Today Book")
        self.assertEqual(payload["lastCompletedBook"]["date"], "2024-06-14")
        self.assertEqual(payload["totalUncompletedBooks"], 1)
        self.assertEqual(payload["totalBooksReadThisMonth"], 3)
        self.assertEqual(payload["totalBooksReadThisYear"], 8)
        self.assertEqual(payload["totalCompletedBooks"], 8)

        own = self.client.get("/api/reading-logs/summary", headers=self._auth(token))
        self.assertEqual(own.status_code, 200)
        self.assertEqual(own.json(), payload)

    def test_summary_without_logs(self):
        parent = self._parent_token()
        child_id = self._create_child(parent)

        response = self.client.get(
            f"/api/children/{child_id}/summary", headers=self._auth(parent)
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertIsNone(payload["currentBook"])
        self.assertIsNone(payload["lastCompletedBook"])
        self.assertEqual(payload["totalCompletedBooks"], 0)

    def test_summary_access_policy(self):
        mum = self._parent_token()
        ada = self._create_child(mum)
        bob = self._create_child(mum, name="Bob")
        dad = self._parent_token(email="dad@example.com")

        self.assertEqual(
            self.client.get(f"/api/children/{ada}/summary").status_code, 401
        )
        self.assertEqual(
            self.client.get(
                f"/api/children/{ada}/summary", headers=self._auth(dad)
            ).status_code,
            404,
        )
        bob_token = self._child_token(bob)
        self.assertEqual(
            self.client.get(
                f"/api/children/{ada}/summary", headers=self._auth(bob_token)
            ).status_code,
            404,
        )
        self.assertEqual(
            self.client.get(
                f"/api/children/{ada}/summary", headers=self._auth(mum)
            ).status_code,
            200,
        )

    # Tokens

    def test_expired_token_is_rejected(self):
        child_id = self._create_child(self._parent_token())
        child = self.db.get_user(child_id, Role.CHILD)
        expired = TokenIssuer(SECRET).issue(
            child, now=datetime.now(timezone.utc) - timedelta(days=1)
        )
        response = self.client.get("/api/reading-logs", headers=self._auth(expired))
        self.assertEqual(response.status_code, 401)

    def test_token_signed_with_other_secret_is_rejected(self):
        child_id = self._create_child(self._parent_token())
        child = self.db.get_user(child_id, Role.CHILD)
        forged = TokenIssuer("someone-else-entirely-0123456789abcdef").issue(child)
        response = self.client.get("/api/reading-logs", headers=self._auth(forged))
        self.assertEqual(response.status_code, 401)

    # Integer bounds

    def test_out_of_range_integers(self):
        huge = 2**70
        parent = self._parent_token()
        child_id = self._create_child(parent)
        token = self._child_token(child_id)

        login = self.client.post(
            "/api/auth/child/login", json={"childId": huge, "pin": "1234"}
        )
        self.assertEqual(login.status_code, 401)

        age = self.client.post(
            "/api/children",
            json={"name": "Ada", "age": huge, "pin": "1234"},
            headers=self._auth(parent),
        )
        self.assertEqual(age.status_code, 400)

        cover = self._log(token, "Matilda", "started", TODAY, coverId=huge)
        self.assertEqual(cover.status_code, 400)

        logs = self.client.get(
            "/api/children/reading-logs",
            params={"child_id": huge},
            headers=self._auth(parent),
        )
        self.assertEqual(logs.status_code, 400)

        summary = self.client.get(
            f"/api/children/{huge}/summary", headers=self._auth(parent)
        )
        self.assertEqual(summary.status_code, 400)


class SqlBackedApiTests(PageHoppersApiTests):
    """
    Runs the API flows against SQLite through the SQL client.
    """

    def _make_db(self):
        return SqlDbClient("sqlite+pysqlite:///:memory:")

    def test_storage_failure_is_internal_error(self):
        token = self._child_token(self._create_child(self._parent_token()))
        ReadingLogRow.__table__.drop(self.db.engine)

        response = self.client.get("/api/reading-logs", headers=self._auth(token))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"detail": "Database operation failed"})


class _BrokenDbClient(InMemoryDbClient):
    def list_children(self, parent_id):
        raise RuntimeError("storage exploded")


class UnhandledErrorTests(unittest.TestCase):
    def setUp(self):
        settings = Settings(
            jwt_secret=SECRET, bcrypt_rounds=4, use_in_memory_backends=True
        )
        self.client = TestClient(
            create_app(settings, _BrokenDbClient()), raise_server_exceptions=False
        )

    def test_unhandled_error_is_logged_and_returns_500(self):
        self.client.post(
            "/api/auth/parent/register",
            json={"name": "Mum", "email": "mum@example.com", "password": "secret"},
        )
        token = self.client.post(
            "/api/auth/parent/login",
            json={"email": "mum@example.com", "password": "secret"},
        ).json()["token"]

        with self.assertLogs("pagehoppers.app", level="INFO") as logs:
            response = self.client.get(
                "/api/children", headers={"Authorization": f"Bearer {token}"}
            )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"detail": "Internal server error"})
        self.assertTrue(
            any("GET /api/children -> 500" in line for line in logs.output),
            logs.output,
        )


if __name__ == "__main__":
    unittest.main()
