"""API tests: report listings, guarded user detail, access checks, admin reassignment, auth."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import jwt
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orgguard.core.config import settings
from orgguard.core.database import check_db_connected, get_db
from orgguard.core.security import create_access_token, hash_password
from orgguard.main import app
from orgguard.models import Base, User
from orgguard.services.errors import StoreUnavailableError
from orgguard.services.guards import ResourceGuard
from orgguard.services.store import SqlAlchemyHierarchyStore

PREFIX = "/api/v1"


def _user(
    user_id: str,
    manager_id: str | None,
    role: str = "EMPLOYEE",
    last_name: str = "",
    password_hash: str = "x",
) -> User:
    """User row with an email derived from the id."""
    return User(
        id=user_id,
        email=f"{user_id}@example.com",
        password_hash=password_hash,
        first_name=user_id.title(),
        last_name=last_name,
        role=role,
        manager_id=manager_id,
    )


def _auth(user_id: str, role: str = "EMPLOYEE") -> dict[str, str]:
    """Bearer header for user_id. The role claim is informational; the server reads the DB."""
    return {"Authorization": f"Bearer {create_access_token(sub=user_id, role=role)}"}


class ApiTestCase(unittest.TestCase):
    """
    In-memory SQLite users table wired into get_db:
      admin (ADMIN)
      boss (MANAGER) -> lead (MANAGER) -> dev (EMPLOYEE)
      boss -> ops (EMPLOYEE)
      other (MANAGER) -> ext (EMPLOYEE)
    """

    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        with self.Session() as db:
            db.add_all(
                [
                    _user("admin", None, "ADMIN", "Root"),
                    _user("boss", None, "MANAGER", "Boss"),
                    _user("lead", "boss", "MANAGER", "Alpha"),
                    _user("ops", "boss", "EMPLOYEE", "Beta"),
                    _user("dev", "lead", "EMPLOYEE", "Gamma"),
                    _user("other", None, "MANAGER", "Other"),
                    _user("ext", "other", "EMPLOYEE", "Ext"),
                ]
            )
            db.commit()

        def _override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _override_get_db
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _ids(self, response) -> list[str]:
        return [u["id"] for u in response.json()["users"]]


class TestHealth(ApiTestCase):
    def test_health(self) -> None:
        response = self.client.get(f"{PREFIX}/health/")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["database"], "connected")
        self.assertIn(body["hierarchy_cache"], ("enabled", "disabled"))

    def test_database_check_reports_failure(self) -> None:
        db = MagicMock()
        db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        self.assertFalse(check_db_connected(db))


class TestReportListings(ApiTestCase):
    """Direct and indirect listings for the caller."""

    def test_direct_reports_ordered_by_last_name(self) -> None:
        response = self.client.get(f"{PREFIX}/users/me/direct-reports", headers=_auth("boss"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._ids(response), ["lead", "ops"])
        self.assertEqual(response.json()["count"], 2)

    def test_indirect_reports(self) -> None:
        response = self.client.get(f"{PREFIX}/users/me/indirect-reports", headers=_auth("boss"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._ids(response), ["dev"])

    def test_manager_without_reports(self) -> None:
        response = self.client.get(f"{PREFIX}/users/me/indirect-reports", headers=_auth("lead"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"users": [], "count": 0})

    def test_employee_denied(self) -> None:
        response = self.client.get(f"{PREFIX}/users/me/direct-reports", headers=_auth("dev"))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "Access denied")

    def test_missing_token(self) -> None:
        response = self.client.get(f"{PREFIX}/users/me/direct-reports")
        self.assertEqual(response.status_code, 401)

    def test_invalid_token(self) -> None:
        response = self.client.get(
            f"{PREFIX}/users/me/direct-reports",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        self.assertEqual(response.status_code, 401)

    def test_token_without_subject(self) -> None:
        token = jwt.encode(
            {"role": "ADMIN", "exp": datetime.now(UTC) + timedelta(minutes=5)},
            settings.JWT_SECRET.get_secret_value(),
            algorithm=settings.JWT_ALGORITHM,
        )
        response = self.client.get(
            f"{PREFIX}/users/me/direct-reports",
            headers={"Authorization": f"Bearer {token}"},
        )
        self.assertEqual(response.status_code, 401)


class TestUserDetail(ApiTestCase):
    """GET /users/{user_id} goes through the profile guard."""

    def test_self(self) -> None:
        response = self.client.get(f"{PREFIX}/users/dev", headers=_auth("dev"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["manager_id"], "lead")
        self.assertNotIn("password_hash", response.json())

    def test_manager_reads_indirect_report(self) -> None:
        response = self.client.get(f"{PREFIX}/users/dev", headers=_auth("boss"))
        self.assertEqual(response.status_code, 200)

    def test_detail_and_chain_load_through_scoped_guard(self) -> None:
        with patch.object(
            ResourceGuard, "scoped", autospec=True, side_effect=ResourceGuard.scoped
        ) as scoped:
            detail = self.client.get(f"{PREFIX}/users/dev", headers=_auth("boss"))
            chain = self.client.get(f"{PREFIX}/users/dev/manager-chain", headers=_auth("boss"))
        self.assertEqual(detail.json()["id"], "dev")
        self.assertEqual(chain.json()["manager_ids"], ["lead", "boss"])
        self.assertEqual(scoped.call_count, 2)
        for call in scoped.call_args_list:
            self.assertEqual(call.args[1:4], ("boss", "MANAGER", "dev"))

    def test_employee_cannot_read_manager(self) -> None:
        response = self.client.get(f"{PREFIX}/users/boss", headers=_auth("dev"))
        self.assertEqual(response.status_code, 403)

    def test_manager_cannot_read_other_tree(self) -> None:
        response = self.client.get(f"{PREFIX}/users/ext", headers=_auth("boss"))
        self.assertEqual(response.status_code, 403)

    def test_missing_user_hidden_from_non_admin(self) -> None:
        response = self.client.get(f"{PREFIX}/users/ghost", headers=_auth("boss"))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"], "Access denied")

    def test_missing_user_visible_to_admin(self) -> None:
        response = self.client.get(f"{PREFIX}/users/ghost", headers=_auth("admin"))
        self.assertEqual(response.status_code, 404)

    def test_malformed_id(self) -> None:
        response = self.client.get(f"{PREFIX}/users/bad%20id", headers=_auth("boss"))
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["detail"], "Invalid identifier")

    def test_manager_chain(self) -> None:
        response = self.client.get(f"{PREFIX}/users/dev/manager-chain", headers=_auth("dev"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"user_id": "dev", "manager_ids": ["lead", "boss"]})

    def test_manager_chain_guarded(self) -> None:
        response = self.client.get(f"{PREFIX}/users/boss/manager-chain", headers=_auth("lead"))
        self.assertEqual(response.status_code, 403)


class TestAccessEndpoint(ApiTestCase):
    """GET /access/{resource}/{owner_id} returns the decision, allow or deny."""

    def test_allowed_by_hierarchy(self) -> None:
        response = self.client.get(f"{PREFIX}/access/feedback/dev", headers=_auth("boss"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"resource": "feedback", "owner_id": "dev", "allowed": True, "reason": "hierarchy"},
        )

    def test_denied_is_200(self) -> None:
        response = self.client.get(f"{PREFIX}/access/attendance/boss", headers=_auth("dev"))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["allowed"])
        self.assertEqual(response.json()["reason"], "insufficient_privilege")

    def test_nonexistent_owner_same_as_outsider(self) -> None:
        ghost = self.client.get(f"{PREFIX}/access/performance/ghost", headers=_auth("boss"))
        outsider = self.client.get(f"{PREFIX}/access/performance/ext", headers=_auth("boss"))
        self.assertEqual(ghost.json()["reason"], outsider.json()["reason"])
        self.assertFalse(ghost.json()["allowed"])

    def test_admin_override(self) -> None:
        response = self.client.get(f"{PREFIX}/access/assessments/ext", headers=_auth("admin"))
        self.assertEqual(response.json()["reason"], "admin_override")

    def test_unknown_resource(self) -> None:
        response = self.client.get(f"{PREFIX}/access/salaries/dev", headers=_auth("boss"))
        self.assertEqual(response.status_code, 400)


class TestStoreUnavailable(ApiTestCase):
    """Hierarchy store failures are 503 with Retry-After, never an allow."""

    def _failing(self):
        return patch.object(
            SqlAlchemyHierarchyStore,
            "find_reports_of",
            side_effect=StoreUnavailableError("down", query="find_reports_of"),
        )

    def test_listing(self) -> None:
        with self._failing():
            response = self.client.get(f"{PREFIX}/users/me/direct-reports", headers=_auth("boss"))
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.headers["Retry-After"], "1")

    def test_user_detail(self) -> None:
        with self._failing():
            response = self.client.get(f"{PREFIX}/users/dev", headers=_auth("boss"))
        self.assertEqual(response.status_code, 503)

    def test_access_endpoint(self) -> None:
        with self._failing():
            response = self.client.get(f"{PREFIX}/access/feedback/dev", headers=_auth("boss"))
        self.assertEqual(response.status_code, 503)

    def test_self_access_unaffected(self) -> None:
        with self._failing():
            response = self.client.get(f"{PREFIX}/access/feedback/dev", headers=_auth("dev"))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["allowed"])


class TestManagerAssignment(ApiTestCase):
    """PUT /users/{user_id}/manager is admin-only and rejects cycles."""

    def _put(self, user_id: str, manager_id: str | None, actor: str = "admin"):
        return self.client.put(
            f"{PREFIX}/users/{user_id}/manager",
            json={"manager_id": manager_id},
            headers=_auth(actor),
        )

    def test_reassignment_updates_listings(self) -> None:
        response = self._put("dev", "other")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["manager_id"], "other")

        other = self.client.get(f"{PREFIX}/users/me/direct-reports", headers=_auth("other"))
        self.assertEqual(self._ids(other), ["ext", "dev"])
        boss = self.client.get(f"{PREFIX}/users/me/indirect-reports", headers=_auth("boss"))
        self.assertEqual(self._ids(boss), [])

    def test_cycle_rejected(self) -> None:
        response = self._put("boss", "lead")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Assignment would create a reporting cycle")

    def test_self_rejected(self) -> None:
        response = self._put("lead", "lead")
        self.assertEqual(response.status_code, 400)

    def test_missing_manager(self) -> None:
        response = self._put("dev", "ghost")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Manager not found")

    def test_employee_cannot_be_manager(self) -> None:
        response = self._put("ext", "ops")
        self.assertEqual(response.status_code, 400)

    def test_clear_manager(self) -> None:
        response = self._put("lead", None)
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["manager_id"])

    def test_non_admin_forbidden(self) -> None:
        response = self._put("dev", "other", actor="boss")
        self.assertEqual(response.status_code, 403)

    def test_unknown_target(self) -> None:
        response = self._put("ghost", "boss")
        self.assertEqual(response.status_code, 404)

    def test_invalid_manager_id_body(self) -> None:
        response = self._put("dev", "not valid")
        self.assertEqual(response.status_code, 422)


class TestActiveStatus(ApiTestCase):
    """Deactivated users drop out of listings and lose access."""

    def _put(self, user_id: str, is_active: bool, actor: str = "admin"):
        return self.client.put(
            f"{PREFIX}/users/{user_id}/status",
            json={"is_active": is_active},
            headers=_auth(actor),
        )

    def test_deactivation_hides_subtree(self) -> None:
        response = self._put("lead", False)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["is_active"])

        direct = self.client.get(f"{PREFIX}/users/me/direct-reports", headers=_auth("boss"))
        self.assertEqual(self._ids(direct), ["ops"])
        indirect = self.client.get(f"{PREFIX}/users/me/indirect-reports", headers=_auth("boss"))
        self.assertEqual(self._ids(indirect), [])

    def test_deactivated_user_rejected(self) -> None:
        self._put("dev", False)
        response = self.client.get(f"{PREFIX}/auth/me", headers=_auth("dev"))
        self.assertEqual(response.status_code, 403)

    def test_reactivation(self) -> None:
        self._put("lead", False)
        self._put("lead", True)
        indirect = self.client.get(f"{PREFIX}/users/me/indirect-reports", headers=_auth("boss"))
        self.assertEqual(self._ids(indirect), ["dev"])

    def test_admin_cannot_deactivate_self(self) -> None:
        response = self._put("admin", False)
        self.assertEqual(response.status_code, 400)

    def test_non_admin_forbidden(self) -> None:
        response = self._put("dev", False, actor="boss")
        self.assertEqual(response.status_code, 403)


class TestLogin(ApiTestCase):
    """POST /auth issues a token for valid credentials."""

    def setUp(self) -> None:
        super().setUp()
        with patch("orgguard.core.security.BCRYPT_ROUNDS", 4):
            password_hash = hash_password("correct-horse")
        with self.Session() as db:
            db.add(_user("carol", "boss", "MANAGER", "Carol", password_hash=password_hash))
            db.commit()

    def test_login_and_me(self) -> None:
        response = self.client.post(
            f"{PREFIX}/auth",
            json={"email": "Carol@Example.com", "password": "correct-horse"},
        )
        self.assertEqual(response.status_code, 200)
        token = response.json()["access_token"]
        me = self.client.get(f"{PREFIX}/auth/me", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json(), {"id": "carol", "email": "carol@example.com", "role": "MANAGER"})

    def test_wrong_password(self) -> None:
        response = self.client.post(
            f"{PREFIX}/auth",
            json={"email": "carol@example.com", "password": "wrong-horse"},
        )
        self.assertEqual(response.status_code, 401)

    def test_role_read_from_database(self) -> None:
        # Token claims ADMIN but the stored role is EMPLOYEE.
        response = self.client.get(f"{PREFIX}/access/feedback/boss", headers=_auth("dev", "ADMIN"))
        self.assertFalse(response.json()["allowed"])


if __name__ == "__main__":
    unittest.main()
