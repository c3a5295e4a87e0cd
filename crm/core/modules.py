# crm/core/modules.py

from enum import Enum


class ModuleId(str, Enum):
    dashboard = "dashboard"
    students = "students"
    services = "services"
    cases = "cases"
    calendar = "calendar"
    accounts = "accounts"
    universities = "universities"
    employees = "employees"
    teachers = "teachers"
    teacher_assignments = "teacher_assignments"
    leaves = "leaves"
    messenger = "messenger"
    info = "info"
    reports = "reports"
    users = "users"


# ==========================================================
# CATALOG (order is the navigation order)
# ==========================================================
MODULE_LABELS = {
    ModuleId.dashboard: "Dashboard",
    ModuleId.students: "Students",
    ModuleId.services: "Products & Services",
    ModuleId.cases: "On-Going Cases",
    ModuleId.calendar: "Calendar",
    ModuleId.accounts: "Accounts",
    ModuleId.universities: "Universities",
    ModuleId.employees: "Employees",
    ModuleId.teachers: "Teachers",
    ModuleId.teacher_assignments: "Assign Students (Teachers)",
    ModuleId.leaves: "Leaves",
    ModuleId.messenger: "Messenger",
    ModuleId.info: "Info Portal",
    ModuleId.reports: "Reports",
    ModuleId.users: "Users",
}

# Old identifiers still found in stored rows and older clients
MODULE_ALIASES = {
    "info-portal": ModuleId.info.value,
    "finances": ModuleId.accounts.value,
    "teacher-assignments": ModuleId.teacher_assignments.value,
}

# dependent module -> module it needs at least view access on
MODULE_DEPENDENCIES = {
    ModuleId.teacher_assignments.value: ModuleId.teachers.value,
}

_CATALOG = tuple(m.value for m in MODULE_LABELS)


def canonicalize(module_id) -> str:
    """
    Collapse an alias onto its canonical module id.
    Unknown ids come back unchanged so newer clients don't break.
    """
    if isinstance(module_id, ModuleId):
        return module_id.value
    return MODULE_ALIASES.get(module_id, module_id)


def all_modules() -> list[str]:
    return list(_CATALOG)


def is_known_module(module_id) -> bool:
    return canonicalize(module_id) in _CATALOG


def module_label(module_id) -> str:
    canonical = canonicalize(module_id)
    if canonical in _CATALOG:
        return MODULE_LABELS[ModuleId(canonical)]
    return canonical
