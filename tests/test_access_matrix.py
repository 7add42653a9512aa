from uuid import uuid4

import pytest

from subtrack.core.errors import PermissionDeniedError
from subtrack.models.user import UserRole
from subtrack.services import access
from subtrack.services.access import Actor

OWN_DEPARTMENT = uuid4()
OTHER_DEPARTMENT = uuid4()


def _actor(role: UserRole | None, *departments) -> Actor:
    return Actor(user_id=uuid4(), role=role, department_ids=frozenset(departments))


@pytest.mark.parametrize(
    ("role", "department", "expected"),
    [
        (UserRole.ADMIN, OTHER_DEPARTMENT, True),
        (UserRole.POC, OWN_DEPARTMENT, True),
        (UserRole.POC, OTHER_DEPARTMENT, False),
        (UserRole.FINANCE, OWN_DEPARTMENT, False),
        (UserRole.HOD, OWN_DEPARTMENT, False),
        (None, OWN_DEPARTMENT, False),
    ],
)
def test_subscription_decisions_follow_role_and_department(role, department, expected) -> None:
    actor = _actor(role, OWN_DEPARTMENT)
    assert access.can_decide_subscription(actor, department) is expected
    assert access.can_decide_renewal(actor, department) is expected
    assert access.can_upload_invoice(actor, department) is expected


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        (UserRole.ADMIN, True),
        (UserRole.FINANCE, True),
        (UserRole.POC, False),
        (UserRole.HOD, False),
        (None, False),
    ],
)
def test_finance_capabilities(role, expected) -> None:
    actor = _actor(role, OWN_DEPARTMENT)
    assert access.can_manage_subscriptions(actor) is expected
    assert access.can_manage_payment_cycles(actor) is expected
    assert access.can_manage_locations(actor) is expected


def test_only_admin_administers_and_deletes() -> None:
    for role in (UserRole.FINANCE, UserRole.POC, UserRole.HOD, None):
        actor = _actor(role, OWN_DEPARTMENT)
        assert not access.can_administer(actor)
        assert not access.can_delete_subscription(actor)
    admin = _actor(UserRole.ADMIN)
    assert access.can_administer(admin)
    assert access.can_delete_subscription(admin)


def test_hod_reads_own_departments_but_cannot_touch_files() -> None:
    hod = _actor(UserRole.HOD, OWN_DEPARTMENT)
    assert access.can_view_subscription(hod, OWN_DEPARTMENT)
    assert not access.can_view_subscription(hod, OTHER_DEPARTMENT)
    assert not access.can_access_files(hod, OWN_DEPARTMENT)


def test_poc_file_access_is_department_scoped() -> None:
    poc = _actor(UserRole.POC, OWN_DEPARTMENT)
    assert access.can_access_files(poc, OWN_DEPARTMENT)
    assert not access.can_access_files(poc, OTHER_DEPARTMENT)
    assert not access.can_access_files(poc, None)


def test_visible_departments() -> None:
    assert access.visible_department_ids(_actor(UserRole.ADMIN)) is None
    assert access.visible_department_ids(_actor(UserRole.FINANCE)) is None
    assert access.visible_department_ids(_actor(UserRole.POC, OWN_DEPARTMENT)) == frozenset({OWN_DEPARTMENT})
    assert access.visible_department_ids(_actor(UserRole.HOD)) == frozenset()
    assert access.visible_department_ids(_actor(None)) == frozenset()


def test_require_raises_permission_denied() -> None:
    access.require(True)
    with pytest.raises(PermissionDeniedError) as excinfo:
        access.require(False)
    assert excinfo.value.message == "Insufficient permissions"
    assert excinfo.value.status_code == 403
