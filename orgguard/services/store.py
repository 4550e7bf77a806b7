"""Hierarchy store: read-only view of {id, manager_id, role, is_active} user records.

The resolver only needs two lookups: a user by id, and the users reporting to a set of
managers. SqlAlchemyHierarchyStore answers them from the users table; InMemoryHierarchyStore
answers them from a dict and is used by fixtures and tests.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgguard.models.user import User
from orgguard.services.errors import MalformedIdentifierError, StoreUnavailableError

logger = logging.getLogger(__name__)

# Opaque ids: 1-100 chars of letters, digits, underscore, hyphen.
USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,100}$")


def ensure_user_id(value: object, field: str = "user id") -> str:
    """Return value if it is a well-formed user id; raise MalformedIdentifierError otherwise."""
    if not isinstance(value, str) or not USER_ID_PATTERN.match(value):
        raise MalformedIdentifierError(field, value)
    return value


@dataclass(frozen=True)
class UserRecord:
    """The slice of a user the hierarchy core reads."""

    id: str
    manager_id: str | None
    role: str
    is_active: bool = True


class HierarchyStore(Protocol):
    """Read-only source of user records. Implementations raise StoreUnavailableError on I/O failure."""

    def find_by_id(self, user_id: str) -> UserRecord | None: ...

    def find_direct_reports(self, manager_id: str, active_only: bool = True) -> list[UserRecord]: ...

    def find_reports_of(
        self, manager_ids: Iterable[str], active_only: bool = True
    ) -> list[UserRecord]: ...


class InMemoryHierarchyStore:
    """Dict-backed store. Counts queries so callers can assert level-by-level expansion."""

    def __init__(self, records: Iterable[UserRecord] = ()) -> None:
        self._records: dict[str, UserRecord] = {r.id: r for r in records}
        self.query_count = 0

    def add(self, record: UserRecord) -> None:
        self._records[record.id] = record

    def find_by_id(self, user_id: str) -> UserRecord | None:
        self.query_count += 1
        return self._records.get(user_id)

    def find_direct_reports(self, manager_id: str, active_only: bool = True) -> list[UserRecord]:
        return self.find_reports_of([manager_id], active_only=active_only)

    def find_reports_of(
        self, manager_ids: Iterable[str], active_only: bool = True
    ) -> list[UserRecord]:
        self.query_count += 1
        wanted = set(manager_ids)
        return sorted(
            (
                r
                for r in self._records.values()
                if r.manager_id in wanted and (r.is_active or not active_only)
            ),
            key=lambda r: r.id,
        )


class SqlAlchemyHierarchyStore:
    """
    Store backed by the users table through a request-scoped Session.

    statement_timeout_sec is applied with SET LOCAL on PostgreSQL before each query, so a slow
    database surfaces as StoreUnavailableError instead of blocking the request.
    """

    def __init__(self, session: Session, statement_timeout_sec: float | None = None) -> None:
        self._session = session
        self._timeout_ms = int(statement_timeout_sec * 1000) if statement_timeout_sec else 0

    def _apply_timeout(self) -> None:
        if not self._timeout_ms:
            return
        if self._session.get_bind().dialect.name != "postgresql":
            return
        # SET does not accept bind parameters; the value is an int computed above.
        self._session.execute(text(f"SET LOCAL statement_timeout = {self._timeout_ms}"))

    def _run(self, query_name: str, stmt) -> list:
        try:
            self._apply_timeout()
            return list(self._session.execute(stmt).all())
        except SQLAlchemyError as e:
            logger.warning(
                "Hierarchy store query failed",
                extra={"query": query_name, "error": type(e).__name__},
            )
            raise StoreUnavailableError(
                f"Hierarchy store query failed: {query_name}",
                query=query_name,
                cause=e,
            ) from e

    @staticmethod
    def _to_record(row) -> UserRecord:
        return UserRecord(
            id=row.id,
            manager_id=row.manager_id,
            role=row.role,
            is_active=bool(row.is_active),
        )

    def find_by_id(self, user_id: str) -> UserRecord | None:
        stmt = select(User.id, User.manager_id, User.role, User.is_active).where(
            User.id == user_id
        )
        rows = self._run("find_by_id", stmt)
        return self._to_record(rows[0]) if rows else None

    def find_direct_reports(self, manager_id: str, active_only: bool = True) -> list[UserRecord]:
        return self.find_reports_of([manager_id], active_only=active_only)

    def find_reports_of(
        self, manager_ids: Iterable[str], active_only: bool = True
    ) -> list[UserRecord]:
        ids = sorted(set(manager_ids))
        if not ids:
            return []
        stmt = select(User.id, User.manager_id, User.role, User.is_active).where(
            User.manager_id.in_(ids)
        )
        if active_only:
            stmt = stmt.where(User.is_active.is_(True))
        stmt = stmt.order_by(User.id)
        return [self._to_record(row) for row in self._run("find_reports_of", stmt)]
