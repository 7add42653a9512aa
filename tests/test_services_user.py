import pytest
from sqlmodel import Session, select

from subtrack.core.errors import AuthenticationError, InputValidationError, InvalidStateError, PermissionDeniedError
from subtrack.models.user import PocDepartmentAccess, User, UserRole
from subtrack.schemas.auth import LoginRequest, RefreshRequest
from subtrack.schemas.user import UserCreate, UserUpdate
from subtrack.services.auth import AuthService
from subtrack.services.user import UserService
from subtrack.utils.security import TokenType, decode_token
from tests.conftest import TEST_PASSWORD, actor_for, make_department, make_subscription, make_user


@pytest.fixture()
def admin(db_session: Session):
    user = make_user(db_session, UserRole.ADMIN)
    return user, actor_for(db_session, user)


def test_create_user_normalizes_email(db_session: Session, admin) -> None:
    _, actor = admin
    service = UserService(db_session)
    created = service.create_user(
        actor, UserCreate(email="New.Person@Example.com", full_name="New Person", password="Secret123", role=UserRole.POC)
    )
    assert created.email == "new.person@example.com"
    with pytest.raises(InputValidationError, match="User with this email already exists"):
        service.create_user(actor, UserCreate(email="new.person@example.com", full_name="Dup", password="Secret123"))


def test_non_admin_cannot_manage_users(db_session: Session) -> None:
    finance = actor_for(db_session, make_user(db_session, UserRole.FINANCE))
    with pytest.raises(PermissionDeniedError):
        UserService(db_session).create_user(finance, UserCreate(email="x@example.com", full_name="X", password="Secret123"))


def test_users_may_update_themselves(db_session: Session) -> None:
    user = make_user(db_session, UserRole.HOD)
    other = make_user(db_session, UserRole.HOD)
    actor = actor_for(db_session, user)
    service = UserService(db_session)

    updated = service.update_user(actor, user.id, UserUpdate(full_name="Renamed"))
    assert updated.full_name == "Renamed"
    with pytest.raises(PermissionDeniedError):
        service.update_user(actor, other.id, UserUpdate(full_name="Nope"))


def test_role_change_clears_department_scope(db_session: Session, admin) -> None:
    _, actor = admin
    department = make_department(db_session)
    poc = make_user(db_session, UserRole.POC, (department,))
    service = UserService(db_session)

    changed = service.assign_role(actor, poc.id, UserRole.FINANCE)

    assert changed.role == UserRole.FINANCE
    assert db_session.exec(select(PocDepartmentAccess)).all() == []
    with pytest.raises(InputValidationError, match="User already has this role"):
        service.assign_role(actor, poc.id, UserRole.FINANCE)


def test_admin_guards_on_self(db_session: Session, admin) -> None:
    user, actor = admin
    service = UserService(db_session)
    with pytest.raises(InputValidationError, match="non-admin role"):
        service.assign_role(actor, user.id, UserRole.POC)
    with pytest.raises(InputValidationError, match="cannot deactivate your own account"):
        service.toggle_active(actor, user.id, False)
    with pytest.raises(InputValidationError, match="cannot delete your own account"):
        service.delete_user(actor, user.id)


def test_delete_user_with_subscriptions_is_refused(db_session: Session, admin) -> None:
    _, actor = admin
    department = make_department(db_session)
    finance_user = make_user(db_session, UserRole.FINANCE)
    make_subscription(db_session, actor_for(db_session, finance_user), department)
    service = UserService(db_session)

    with pytest.raises(InvalidStateError, match="Deactivate the account instead"):
        service.delete_user(actor, finance_user.id)

    spare = make_user(db_session, UserRole.HOD, (department,))
    service.delete_user(actor, spare.id)
    assert db_session.get(User, spare.id) is None


def test_login_and_refresh(db_session: Session) -> None:
    user = make_user(db_session, UserRole.FINANCE, email="finance@example.com")
    service = AuthService(db_session)

    logged_in, token = service.authenticate(LoginRequest(username="Finance@Example.com", password=TEST_PASSWORD))
    assert logged_in.id == user.id
    assert logged_in.last_login_at is not None
    assert token.home_path == "/finance"
    claims = decode_token(token.access_token, TokenType.ACCESS)
    assert claims.sub == user.id
    assert claims.role == UserRole.FINANCE

    refreshed = service.refresh(RefreshRequest(refresh_token=token.refresh_token))
    assert refreshed.access_token

    with pytest.raises(AuthenticationError, match="Invalid token type"):
        service.refresh(RefreshRequest(refresh_token=token.access_token))
    with pytest.raises(AuthenticationError, match="Invalid credentials"):
        service.authenticate(LoginRequest(username="finance@example.com", password="wrong-password"))


def test_inactive_users_cannot_log_in(db_session: Session) -> None:
    user = make_user(db_session, UserRole.POC, email="poc@example.com")
    user.is_active = False
    db_session.add(user)
    db_session.commit()
    with pytest.raises(AuthenticationError, match="Invalid credentials"):
        AuthService(db_session).authenticate(LoginRequest(username="poc@example.com", password=TEST_PASSWORD))
