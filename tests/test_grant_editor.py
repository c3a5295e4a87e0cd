import asyncio

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from crm.core.exceptions import InputError, StoreError
from crm.core.modules import all_modules
from crm.services.grant_editor import (
    LEVEL_FLAGS,
    AccessLevel,
    level_for,
    parse_levels,
    plan_grants,
    save_grants,
)
from crm.services.grant_store import get_grant_rows, resolve_for_user
from crm.services.permission_resolver import FULL_ACCESS, NO_ACCESS, GrantFlags, ModuleAccess
from crm.services.user_service import get_user_by_email


# ------------------------------------------------------------------
# Level table
# ------------------------------------------------------------------
def test_nine_levels():
    assert len(AccessLevel) == 9
    assert set(LEVEL_FLAGS) == set(AccessLevel)


def test_level_flags():
    assert LEVEL_FLAGS[AccessLevel.NONE] == GrantFlags()
    assert LEVEL_FLAGS[AccessLevel.VIEW] == GrantFlags()
    assert LEVEL_FLAGS[AccessLevel.EDIT_DELETE] == GrantFlags(can_edit=True, can_delete=True)
    assert LEVEL_FLAGS[AccessLevel.CRUD] == GrantFlags(True, True, True)


def test_level_for_prefills_form():
    assert level_for(NO_ACCESS) is AccessLevel.NONE
    assert level_for(ModuleAccess(viewable=True)) is AccessLevel.VIEW
    assert level_for(ModuleAccess(True, True, False, True)) is AccessLevel.ADD_DELETE
    assert level_for(FULL_ACCESS) is AccessLevel.CRUD


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------
def test_levels_are_case_insensitive_and_aliases_normalised():
    levels = parse_levels({"info-portal": "add_edit", "cases": AccessLevel.VIEW})
    assert levels == {"info": AccessLevel.ADD_EDIT, "cases": AccessLevel.VIEW}


def test_every_rejection_is_reported():
    with pytest.raises(InputError) as exc:
        parse_levels({"hrm": "CRUD", "cases": "EVERYTHING", "students": "VIEW"})
    assert len(exc.value.rejected) == 2
    assert "hrm" in str(exc.value)
    assert "EVERYTHING" in str(exc.value)


def test_alias_pair_with_different_levels_is_rejected():
    with pytest.raises(InputError):
        parse_levels({"info": "VIEW", "info-portal": "CRUD"})


def test_role_is_required():
    with pytest.raises(InputError):
        plan_grants("  ", {})


# ------------------------------------------------------------------
# Planning
# ------------------------------------------------------------------
def test_teacher_assignments_plan_pulls_in_teachers():
    plan = plan_grants("Teacher", {"teacher_assignments": "CRUD"})
    assert plan.records == {
        "dashboard": GrantFlags(),
        "teachers": GrantFlags(),
        "teacher_assignments": GrantFlags(True, True, True),
    }
    assert plan.legacy == ("dashboard", "teachers", "teacher_assignments")
    assert plan.level_of("teachers") is AccessLevel.VIEW
    assert plan.level_of("teacher-assignments") is AccessLevel.CRUD
    assert plan.level_of("cases") is AccessLevel.NONE


def test_dashboard_always_persisted():
    plan = plan_grants("Staff", {})
    assert plan.records == {"dashboard": GrantFlags()}
    assert plan.legacy == ("dashboard",)


def test_view_levels_go_to_legacy_and_rows():
    plan = plan_grants("Staff", {"students": "VIEW", "cases": "ADD", "accounts": "NONE"})
    assert plan.legacy == ("dashboard", "students", "cases")
    assert plan.records["students"] == GrantFlags()
    assert plan.records["cases"] == GrantFlags(can_add=True)
    assert "accounts" not in plan.records


def test_super_admin_plan_ignores_requested_levels():
    plan = plan_grants("Super Admin", {"cases": "NONE", "users": "VIEW"})
    assert plan.legacy == tuple(all_modules())
    assert all(flags == GrantFlags(True, True, True) for flags in plan.records.values())
    assert set(plan.records) == set(all_modules())


def test_super_admin_plan_still_validates_input():
    with pytest.raises(InputError):
        plan_grants("Super Admin", {"nope": "CRUD"})


# ------------------------------------------------------------------
# Saving
# ------------------------------------------------------------------
@pytest.mark.asyncio
async def test_save_and_resolve_teacher(db_session, make_user):
    teacher = await make_user("teach@test.com", role="Teacher")
    levels = {m: "NONE" for m in all_modules()}
    levels["teacher_assignments"] = "CRUD"

    await save_grants(db_session, teacher, "Teacher", levels)
    result = await resolve_for_user(db_session, teacher)

    assert result["teacher_assignments"] == FULL_ACCESS
    assert result["teachers"] == ModuleAccess(viewable=True)
    assert result["dashboard"].viewable
    others = set(all_modules()) - {"teacher_assignments", "teachers", "dashboard"}
    assert all(result[m] == NO_ACCESS for m in others)


@pytest.mark.asyncio
async def test_view_on_teacher_assignments_still_exposes_teachers(db_session, make_user):
    user = await make_user("ta@test.com", role="Staff")
    await save_grants(db_session, user, "Staff", {"teacher_assignments": "VIEW"})
    result = await resolve_for_user(db_session, user)
    assert result["teachers"].viewable


@pytest.mark.asyncio
async def test_second_save_fully_replaces_first(db_session, make_user, fresh_session):
    user = await make_user("swap@test.com", role="Counsellor")
    await save_grants(db_session, user, "Counsellor", {"cases": "CRUD", "students": "ADD", "reports": "VIEW"})
    await save_grants(db_session, user, "Counsellor", {"students": "EDIT"})

    reloaded = await get_user_by_email(fresh_session, "swap@test.com")
    rows = await get_grant_rows(fresh_session, reloaded.email)
    assert {r.module for r in rows} == {"dashboard", "students"}
    assert reloaded.permissions == ["dashboard", "students"]

    result = await resolve_for_user(fresh_session, reloaded)
    assert result["students"] == ModuleAccess(True, False, True, False)
    assert result["cases"] == NO_ACCESS
    assert result["reports"] == NO_ACCESS


@pytest.mark.asyncio
async def test_save_updates_role(db_session, make_user, fresh_session):
    user = await make_user("promote@test.com", role="Staff")
    await save_grants(db_session, user, "Super Admin", {})

    reloaded = await get_user_by_email(fresh_session, "promote@test.com")
    assert reloaded.role == "Super Admin"
    assert reloaded.permissions == all_modules()
    result = await resolve_for_user(fresh_session, reloaded)
    assert result["users"] == FULL_ACCESS


@pytest.mark.asyncio
async def test_rejected_input_leaves_store_untouched(db_session, make_user, fresh_session):
    user = await make_user("keep@test.com", role="Staff", levels={"cases": "CRUD"})

    with pytest.raises(InputError):
        await save_grants(db_session, user, "Staff", {"cases": "VIEW", "bogus": "VIEW"})

    rows = await get_grant_rows(fresh_session, "keep@test.com")
    assert {r.module: r.can_delete for r in rows} == {"dashboard": False, "cases": True}


@pytest.mark.asyncio
async def test_store_failure_rolls_back_whole_replace(db_session, make_user, fresh_session):
    user = await make_user("fail@test.com", role="Staff", levels={"cases": "CRUD"})

    with patch.object(db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("db down"))):
        with pytest.raises(StoreError, match="fail@test.com"):
            await save_grants(db_session, user, "Admin", {"students": "VIEW"})

    reloaded = await get_user_by_email(fresh_session, "fail@test.com")
    assert reloaded.role == "Staff"
    assert reloaded.permissions == ["dashboard", "cases"]
    rows = await get_grant_rows(fresh_session, "fail@test.com")
    assert {r.module for r in rows} == {"dashboard", "cases"}


@pytest.mark.asyncio
async def test_cancelled_save_leaves_prior_grants(db_session, make_user, fresh_session):
    user = await make_user("quit@test.com", role="Staff", levels={"cases": "CRUD"})

    with patch.object(db_session, "commit", side_effect=asyncio.CancelledError()):
        with pytest.raises(asyncio.CancelledError):
            await save_grants(db_session, user, "Admin", {"students": "VIEW"})

    reloaded = await get_user_by_email(fresh_session, "quit@test.com")
    assert reloaded.role == "Staff"
    assert reloaded.permissions == ["dashboard", "cases"]
    rows = await get_grant_rows(fresh_session, "quit@test.com")
    assert {r.module for r in rows} == {"dashboard", "cases"}
