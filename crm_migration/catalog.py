"""
Table catalog for the CRM migration.

The list of tables and their foreign keys is fixed, version-controlled
configuration taken from the MySQL target schema. Ranks are derived from the
foreign-key graph rather than maintained by hand, so a parent table always
loads before the tables that reference it.
"""

import heapq
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class TableSpec:
    """A table to migrate and its position in the dependency order."""
    name: str
    rank: int

    def __post_init__(self):
        if not TABLE_NAME_PATTERN.match(self.name):
            raise ValueError(f"Invalid table name: {self.name!r}")
        if self.rank < 0:
            raise ValueError(f"Rank must be non-negative, got {self.rank} for {self.name}")


# Declared order. Only used to break ties and cycles when ranking.
TABLES: Tuple[str, ...] = (
    "branches",
    "dashboard_users",
    "user_permissions",
    "user_reporting_hierarchy",
    "universities",
    "leads",
    "lead_documents",
    "lead_timeline",
    "public_lead_submissions",
    "dashboard_services",
    "dashboard_students",
    "dashboard_student_academics",
    "dashboard_student_experiences",
    "student_mock_tests",
    "dashboard_cases",
    "application_history",
    "dashboard_teachers",
    "dashboard_teacher_assignments",
    "teacher_student_assignments",
    "dashboard_attendance",
    "teachers_timetable",
    "dashboard_student_remarks",
    "dashboard_study_materials",
    "dashboard_tasks",
    "notifications",
    "messenger",
    "employees",
    "employee_time_records",
    "payroll",
    "leaves",
    "employee_onboarding",
    "employee_assets",
    "chart_of_accounts",
    "vouchers",
    "invoices",
    "invoice_items",
    "payments",
    "dashboard_reports",
    "info_posts",
    "activity_log",
)

# child table -> tables it holds foreign keys into
FOREIGN_KEYS: Dict[str, Tuple[str, ...]] = {
    "dashboard_users": ("branches",),
    "branches": ("dashboard_users",),
    "leads": ("branches", "dashboard_users", "universities", "dashboard_students"),
    "lead_documents": ("leads",),
    "lead_timeline": ("leads",),
    "public_lead_submissions": ("leads", "dashboard_users"),
    "dashboard_students": ("branches", "dashboard_users"),
    "dashboard_student_academics": ("dashboard_students",),
    "dashboard_student_experiences": ("dashboard_students",),
    "student_mock_tests": ("dashboard_students",),
    "dashboard_cases": (
        "dashboard_students",
        "dashboard_services",
        "universities",
        "dashboard_users",
        "branches",
    ),
    "application_history": ("dashboard_cases", "universities", "dashboard_users"),
    "dashboard_teacher_assignments": ("dashboard_teachers", "dashboard_services"),
    "teacher_student_assignments": (
        "dashboard_teachers",
        "dashboard_students",
        "dashboard_services",
    ),
    "dashboard_attendance": ("dashboard_teachers", "dashboard_students"),
    "teachers_timetable": ("dashboard_teachers", "dashboard_services"),
    "dashboard_student_remarks": ("dashboard_students", "dashboard_teachers"),
    "dashboard_study_materials": ("dashboard_services", "dashboard_teachers"),
    "dashboard_tasks": ("dashboard_cases", "dashboard_users", "branches"),
    "notifications": ("dashboard_users",),
    "employee_time_records": ("employees",),
    "payroll": ("employees", "branches", "dashboard_users"),
    "leaves": ("branches", "dashboard_users"),
    "employee_onboarding": ("employees",),
    "employee_assets": ("employees",),
    "chart_of_accounts": ("chart_of_accounts",),
    "vouchers": ("dashboard_students",),
    "invoices": ("dashboard_students", "branches", "dashboard_users"),
    "invoice_items": ("invoices",),
    "payments": ("invoices", "branches", "dashboard_users"),
    "dashboard_reports": ("dashboard_cases", "dashboard_students", "branches", "dashboard_users"),
    "info_posts": ("branches", "dashboard_users"),
}


def rank_tables(
    tables: Sequence[str],
    foreign_keys: Mapping[str, Iterable[str]],
) -> List[TableSpec]:
    """
    Assign ranks by topologically sorting the foreign-key graph.

    Ties are broken by declared position. Self references and references to
    tables outside ``tables`` are ignored. When the remaining tables form a
    cycle, the earliest declared one is placed next and a warning is logged;
    its unresolved references are then tolerated by constraint suspension
    in the loader.

    Args:
        tables: Table names in declared order
        foreign_keys: Mapping of child table -> parent tables

    Returns:
        TableSpecs with ranks 0..n-1
    """
    if len(set(tables)) != len(tables):
        raise ValueError("Duplicate table names in catalog")

    position = {name: idx for idx, name in enumerate(tables)}
    parents: Dict[str, Set[str]] = {name: set() for name in tables}
    children: Dict[str, Set[str]] = {name: set() for name in tables}

    for child, refs in foreign_keys.items():
        if child not in position:
            continue
        for parent in refs:
            if parent == child or parent not in position:
                continue
            parents[child].add(parent)
            children[parent].add(child)

    pending = {name: len(parents[name]) for name in tables}
    ready = [(position[name], name) for name in tables if pending[name] == 0]
    heapq.heapify(ready)
    placed: Set[str] = set()
    order: List[str] = []

    while len(order) < len(tables):
        if not ready:
            # Everything left sits on a cycle; release the earliest declared table.
            name = min((n for n in tables if n not in placed), key=position.get)
            unresolved = sorted(p for p in parents[name] if p not in placed)
            logger.warning(
                f"Foreign-key cycle: loading {name} before {', '.join(unresolved)}"
            )
            pending[name] = 0
            heapq.heappush(ready, (position[name], name))

        _, name = heapq.heappop(ready)
        if name in placed:
            continue
        placed.add(name)
        order.append(name)

        for child in children[name]:
            if child in placed:
                continue
            pending[child] -= 1
            if pending[child] == 0:
                heapq.heappush(ready, (position[child], child))

    return [TableSpec(name=name, rank=rank) for rank, name in enumerate(order)]


def order_violations(
    specs: Sequence[TableSpec],
    foreign_keys: Mapping[str, Iterable[str]],
) -> List[Tuple[str, str]]:
    """List (child, parent) pairs where the child does not rank after its parent."""
    ranks = {spec.name: spec.rank for spec in specs}
    violations = []
    for child, refs in foreign_keys.items():
        if child not in ranks:
            continue
        for parent in refs:
            if parent == child or parent not in ranks:
                continue
            if ranks[child] <= ranks[parent]:
                violations.append((child, parent))
    return violations


@lru_cache(maxsize=1)
def _default_specs() -> Tuple[TableSpec, ...]:
    return tuple(rank_tables(TABLES, FOREIGN_KEYS))


def default_table_specs() -> List[TableSpec]:
    """The ranked catalog used by every CLI entry point."""
    return list(_default_specs())


def get_table_spec(name: str) -> Optional[TableSpec]:
    for spec in _default_specs():
        if spec.name == name:
            return spec
    return None
