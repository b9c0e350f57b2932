import pytest
from fastapi import HTTPException

from gestao_acoes.core.authorization import (
    CAPABILITY_FLAGS,
    Capabilities,
    accessible_company_ids,
    ensure_company_access,
    require_capability,
)
from gestao_acoes.db import models
from gestao_acoes.services import users


def test_capabilities_from_missing_row_are_empty():
    caps = Capabilities.from_row(None)
    assert not any(caps.as_dict().values())


def test_full_capabilities_do_not_restrict_visibility():
    caps = Capabilities.full()
    assert all(caps.has(flag) for flag in CAPABILITY_FLAGS if flag != "view_only_assigned_actions")
    assert caps.restricted_to_assigned is False


def test_capabilities_are_immutable():
    caps = Capabilities()
    with pytest.raises(AttributeError):
        caps.can_create = True


def test_restricted_only_without_view_all():
    assert Capabilities(view_only_assigned_actions=True).restricted_to_assigned
    assert not Capabilities(view_only_assigned_actions=True, view_all_actions=True).restricted_to_assigned


def test_for_user_reads_permission_row(db_session, directory_seed):
    member = directory_seed["member"]
    users.set_permissions(db_session, member, {"can_edit_client": True, "can_delete": None})
    db_session.commit()

    caps = Capabilities.for_user(db_session, member)
    assert caps.can_edit_client is True
    assert caps.can_delete is False
    assert Capabilities.for_user(db_session, directory_seed["master"]) == Capabilities.full()


def test_require_capability_rejects_unknown_flag():
    with pytest.raises(ValueError):
        require_capability("pode_tudo")


def test_require_capability_dependency():
    dependency = require_capability("can_edit_company")
    user = models.User(id="u1", role="user")
    assert dependency(user=user, capabilities=Capabilities(can_edit_company=True)) is user
    with pytest.raises(HTTPException) as exc:
        dependency(user=user, capabilities=Capabilities())
    assert exc.value.status_code == 403


def test_company_access():
    master = models.User(role="master", company_ids=[])
    member = models.User(role="user", company_ids=["c1"])
    assert accessible_company_ids(master) is None
    assert accessible_company_ids(member) == ["c1"]
    ensure_company_access(master, "qualquer")
    ensure_company_access(member, "c1")
    with pytest.raises(HTTPException):
        ensure_company_access(member, "c2")
    with pytest.raises(HTTPException):
        ensure_company_access(member, None)
