import pytest

from crm.models.permission import UserPermission
from crm.services.grant_store import load_grants, replace_grants, resolve_for_user, snapshot_from_rows
from crm.services.permission_resolver import FULL_ACCESS, GrantFlags, ModuleAccess
from crm.services.user_service import get_user_by_email


def test_rows_without_flag_columns_fall_back_to_access():
    rows = [
        UserPermission(user_email="a@test.com", module="cases", access="CRUD",
                       can_add=None, can_edit=None, can_delete=None),
        UserPermission(user_email="a@test.com", module="students", access="CRUD",
                       can_add=True, can_edit=False, can_delete=None),
    ]
    snapshot = snapshot_from_rows([], rows)
    assert snapshot.records["cases"] == GrantFlags(True, True, True)
    assert snapshot.records["students"] == GrantFlags(True, False, True)


def test_view_rows_count_as_legacy_membership():
    rows = [UserPermission(user_email="a@test.com", module="info-portal", access="VIEW")]
    snapshot = snapshot_from_rows(["finances"], rows)
    assert snapshot.legacy == {"info", "accounts"}
    assert snapshot.records == {"info": GrantFlags()}


def test_empty_snapshot():
    snapshot = snapshot_from_rows(None, [])
    assert snapshot.is_empty()


@pytest.mark.asyncio
async def test_legacy_rows_resolve_end_to_end(db_session, make_user):
    user = await make_user("old@test.com", role="Counsellor")
    user.permissions = ["dashboard", "info-portal"]
    db_session.add(user)
    db_session.add(
        UserPermission(user_email=user.email, module="finances", access="CRUD",
                       can_add=None, can_edit=None, can_delete=None)
    )
    await db_session.commit()

    result = await resolve_for_user(db_session, user)
    assert result["info"] == ModuleAccess(viewable=True)
    assert result["accounts"] == FULL_ACCESS
    assert result["students"].viewable is False


@pytest.mark.asyncio
async def test_replace_writes_rows_and_legacy_list(db_session, make_user, fresh_session):
    user = await make_user("new@test.com", role="Staff")

    await replace_grants(
        db_session,
        user,
        "Manager",
        legacy=["reports", "dashboard", "info-portal"],
        records={"dashboard": GrantFlags(), "reports": GrantFlags(can_edit=True)},
    )

    reloaded = await get_user_by_email(fresh_session, "new@test.com")
    assert reloaded.role == "Manager"
    assert reloaded.permissions == ["dashboard", "info", "reports"]

    snapshot = await load_grants(fresh_session, reloaded)
    assert snapshot.records == {"dashboard": GrantFlags(), "reports": GrantFlags(can_edit=True)}
