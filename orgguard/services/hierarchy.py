"""Hierarchy resolver: structural questions about the manager/employee forest.

Descendants are found breadth-first, one store query per level, with a visited set keyed by
user id. A node already visited is never expanded again, so a corrupted hierarchy (A reports
to B, B reports to A) still terminates after at most one pass over the users.

Inactive users are not reports. They are also not expanded, so anyone who reaches the root
only through an inactive intermediary is not a descendant either.
"""

import logging
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from orgguard.services.errors import StoreUnavailableError
from orgguard.services.hierarchy_cache import HierarchyCache
from orgguard.services.store import HierarchyStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportPartition:
    """Descendants of a manager split into direct and indirect reports (disjoint)."""

    direct: frozenset[str]
    indirect: frozenset[str]

    @property
    def all(self) -> frozenset[str]:
        return self.direct | self.indirect


class HierarchyResolver:
    """
    Answers descendant/ancestor questions against a HierarchyStore.

    deadline is an absolute time on clock (time.monotonic by default). Once it has passed,
    the next store query is not issued and StoreUnavailableError is raised instead.
    """

    def __init__(
        self,
        store: HierarchyStore,
        deadline: float | None = None,
        cache: HierarchyCache | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self._deadline = deadline
        self._cache = cache
        self._clock = clock

    def _check_deadline(self, query: str) -> None:
        if self._deadline is not None and self._clock() >= self._deadline:
            raise StoreUnavailableError(
                f"Hierarchy store query timed out: {query}",
                query=query,
            )

    def _reports_of(
        self, manager_ids: Iterable[str], active_only: bool = True
    ) -> dict[str, frozenset[str]]:
        """Map each manager id to the ids reporting to it, using one store query for the misses."""
        result: dict[str, frozenset[str]] = {}
        use_cache = self._cache is not None and active_only
        missing: list[str] = []
        for manager_id in manager_ids:
            cached = self._cache.get(manager_id) if use_cache else None
            if cached is None:
                missing.append(manager_id)
            else:
                result[manager_id] = cached

        if missing:
            self._check_deadline("find_reports_of")
            generation = self._cache.generation if use_cache else None
            grouped: dict[str, set[str]] = {manager_id: set() for manager_id in missing}
            for record in self.store.find_reports_of(missing, active_only=active_only):
                if active_only and not record.is_active:
                    continue
                if record.manager_id in grouped:
                    grouped[record.manager_id].add(record.id)
            for manager_id, ids in grouped.items():
                result[manager_id] = frozenset(ids)
                if use_cache:
                    self._cache.put(manager_id, ids, generation=generation)
        return result

    def _iter_levels(self, root_id: str, active_only: bool = True) -> Iterator[set[str]]:
        """Yield each new level of descendants below root_id; root_id is never yielded."""
        visited = {root_id}
        frontier = {root_id}
        depth = 0
        while frontier:
            level: set[str] = set()
            for ids in self._reports_of(frontier, active_only=active_only).values():
                level.update(ids)
            level -= visited
            if not level:
                break
            depth += 1
            visited |= level
            yield level
            frontier = level
        logger.debug(
            "Hierarchy traversal finished",
            extra={"root_id": root_id, "depth": depth, "visited": len(visited) - 1},
        )

    def get_direct_reports(self, manager_id: str) -> set[str]:
        """Active users whose manager_id equals manager_id (never manager_id itself)."""
        reports = self._reports_of([manager_id]).get(manager_id, frozenset())
        return set(reports) - {manager_id}

    def get_all_descendants(self, manager_id: str) -> set[str]:
        """Every active user reachable downward from manager_id, excluding manager_id."""
        descendants: set[str] = set()
        for level in self._iter_levels(manager_id):
            descendants |= level
        return descendants

    def get_indirect_reports(self, manager_id: str) -> set[str]:
        """Descendants that are not direct reports."""
        return set(self.partition_reports(manager_id).indirect)

    def partition_reports(self, manager_id: str) -> ReportPartition:
        """Direct and indirect reports from a single traversal."""
        direct: set[str] = set()
        indirect: set[str] = set()
        for depth, level in enumerate(self._iter_levels(manager_id)):
            if depth == 0:
                direct = level
            else:
                indirect |= level
        return ReportPartition(direct=frozenset(direct), indirect=frozenset(indirect))

    def is_descendant(self, ancestor_id: str, candidate_id: str) -> bool:
        """True iff candidate_id is in get_all_descendants(ancestor_id); stops at the first hit."""
        if ancestor_id == candidate_id:
            return False
        for level in self._iter_levels(ancestor_id):
            if candidate_id in level:
                return True
        return False

    def is_direct_report(self, manager_id: str, candidate_id: str) -> bool:
        """True iff candidate_id is an active user whose manager is manager_id."""
        if manager_id == candidate_id:
            return False
        self._check_deadline("find_by_id")
        record = self.store.find_by_id(candidate_id)
        return record is not None and record.is_active and record.manager_id == manager_id

    def get_manager_chain(self, user_id: str) -> list[str]:
        """
        Ancestors of user_id from the immediate manager upward.

        Stops at a root, at a manager id with no record, or when an id repeats (cycle).
        Includes inactive managers: the chain describes structure, not visibility.
        """
        chain: list[str] = []
        seen = {user_id}
        self._check_deadline("find_by_id")
        record = self.store.find_by_id(user_id)
        while record is not None and record.manager_id is not None:
            manager_id = record.manager_id
            if manager_id in seen:
                logger.warning(
                    "Cycle detected in manager chain",
                    extra={"user_id": user_id, "repeated_id": manager_id},
                )
                break
            seen.add(manager_id)
            chain.append(manager_id)
            self._check_deadline("find_by_id")
            record = self.store.find_by_id(manager_id)
        return chain

    def would_create_cycle(self, user_id: str, new_manager_id: str) -> bool:
        """
        True if making new_manager_id the manager of user_id would close a loop.

        Walks inactive users too: a deactivated account that is later reactivated would
        otherwise bring the loop back.
        """
        if user_id == new_manager_id:
            return True
        for level in self._iter_levels(user_id, active_only=False):
            if new_manager_id in level:
                return True
        return False
