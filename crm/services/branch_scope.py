# crm/services/branch_scope.py

from typing import Callable, Optional

from loguru import logger
from sqlalchemy import false

from crm.core.role_policy import is_scope_exempt

ALL_BRANCHES = "all"


def _selected(selected_branch: Optional[str]) -> Optional[str]:
    if not selected_branch or selected_branch == ALL_BRANCHES:
        return None
    return selected_branch


def _record_branch(record, branch_field: str):
    if isinstance(record, dict):
        return record.get(branch_field)
    return getattr(record, branch_field, None)


def scope_predicate(
    principal,
    branch_field: str = "branch",
    selected_branch: Optional[str] = None,
) -> Callable[[object], bool]:
    if is_scope_exempt(getattr(principal, "role", None)):
        wanted = _selected(selected_branch)
        if wanted is None:
            return lambda record: True
        return lambda record: _record_branch(record, branch_field) == wanted

    branch = getattr(principal, "branch", None)
    if not branch:
        logger.warning(
            "Branch scope: {} has no branch assigned, listing restricted to nothing",
            getattr(principal, "email", "<unknown>"),
        )
        return lambda record: False
    return lambda record: _record_branch(record, branch_field) == branch


def apply_branch_scope(statement, principal, column, selected_branch: Optional[str] = None):
    """
    Restrict a select() to the principal's branch.
    `column` is the branch column of the listed table, e.g. User.branch.
    """
    if is_scope_exempt(getattr(principal, "role", None)):
        wanted = _selected(selected_branch)
        return statement if wanted is None else statement.where(column == wanted)

    branch = getattr(principal, "branch", None)
    if not branch:
        logger.warning(
            "Branch scope: {} has no branch assigned, returning an empty listing",
            getattr(principal, "email", "<unknown>"),
        )
        return statement.where(false())
    return statement.where(column == branch)
