from uuid import uuid4

import pytest
from sqlmodel import Session, select

from subtrack.core.errors import InputValidationError, StorageError
from subtrack.models.organization import Location
from subtrack.models.user import User, UserRole
from subtrack.services.bulk import bulk_warning, run_in_batches
from subtrack.services.organization import OrganizationService
from subtrack.services.user import UserService
from tests.conftest import actor_for, make_location, make_user


def test_sub_batches_are_independent() -> None:
    ids = [uuid4() for _ in range(150)]
    calls: list[list] = []
    applied: set = set()

    def apply(batch):
        calls.append(batch)
        if len(calls) == 2:
            raise StorageError()
        applied.update(batch)
        return {}

    result = run_in_batches(ids, apply, label="locations", batch_size=100, max_items=200)

    assert len(calls) == 2
    assert [len(batch) for batch in calls] == [100, 50]
    assert applied == set(ids[:100])
    assert result.successful == 100
    assert result.failed == 50
    assert result.successful + result.failed == 150
    assert {error.id for error in result.errors} == set(ids[100:])
    assert bulk_warning(result, "location(s)") == "50 location(s) failed to update"


def test_skipped_items_are_reported_individually() -> None:
    ids = [uuid4() for _ in range(3)]
    result = run_in_batches(ids, lambda batch: {batch[0]: "Location not found"}, label="locations")
    assert result.successful == 2
    assert result.failed == 1
    assert result.errors[0].id == ids[0]
    assert result.errors[0].message == "Location not found"
    assert bulk_warning(run_in_batches(ids, lambda batch: {}, label="locations"), "x") is None


def test_limits() -> None:
    with pytest.raises(InputValidationError, match="No locations selected"):
        run_in_batches([], lambda batch: {}, label="locations")
    with pytest.raises(InputValidationError, match="Cannot update more than 100 locations at once"):
        run_in_batches([uuid4() for _ in range(101)], lambda batch: {}, label="locations")


def test_duplicate_ids_count_once() -> None:
    same = uuid4()
    result = run_in_batches([same, same, same], lambda batch: {}, label="users")
    assert result.successful == 1


def test_bulk_toggle_locations(db_session: Session) -> None:
    admin = actor_for(db_session, make_user(db_session, UserRole.ADMIN))
    locations = [make_location(db_session) for _ in range(3)]
    missing = uuid4()

    result = OrganizationService(db_session).bulk_toggle_locations(
        admin, [location.id for location in locations] + [missing], False
    )

    assert result.successful == 3
    assert result.failed == 1
    assert result.errors[0].id == missing
    db_session.expire_all()
    stored = db_session.exec(select(Location)).all()
    assert all(not location.is_active for location in stored)


def test_bulk_toggle_users_protects_caller(db_session: Session) -> None:
    admin_user = make_user(db_session, UserRole.ADMIN)
    admin = actor_for(db_session, admin_user)
    others = [make_user(db_session, UserRole.POC) for _ in range(2)]

    result = UserService(db_session).bulk_toggle_active(
        admin, [admin_user.id] + [user.id for user in others], False
    )

    assert result.successful == 2
    assert result.failed == 1
    assert result.errors[0].message == "You cannot deactivate your own account"
    db_session.expire_all()
    assert db_session.get(User, admin_user.id).is_active is True
