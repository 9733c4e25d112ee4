"""Tests for registration, login lockout and profile changes."""

from datetime import timedelta

import pytest

from core.exceptions import AccountLockedError, AuthenticationError, ConflictError, NotFoundError, ValidationError
from core.security import AdminPrincipal, StudentPrincipal, principal_from_user
from core.utils import utcnow
from database import models
from schemas.user_schema import RegisterRequest, UpdateDetailsRequest, UpdatePasswordRequest
from services.identity import identity_service

PASSWORD = "s3cret!"


def register(db, **fields):
    payload = {"email": "asha@example.edu", "password": PASSWORD, "name": "Asha Rao", "role": "student"}
    payload.update(fields)
    return identity_service.register(db, RegisterRequest(**payload))


def test_student_joins_existing_mess(db, facility):
    mess = facility.messes[0]
    user, token = register(db, facility_id=facility.id, mess_id=mess.mess_id, college_id=" C-42 ", year=2)

    assert token
    assert user.email_verification_token != token
    assert user.facility_id == facility.id
    assert user.mess_id == mess.mess_id
    assert user.college_id == "C-42"
    assert user.hostel_id is None
    assert user.year == 2

    principal = principal_from_user(user)
    assert isinstance(principal, StudentPrincipal)
    assert principal.mess_type == "college_mess"


def test_student_with_unknown_mess(db, facility):
    with pytest.raises(NotFoundError):
        register(db, facility_id=facility.id, mess_id="missing")


def test_duplicate_email_conflicts(db):
    register(db)
    with pytest.raises(ConflictError) as exc_info:
        register(db, name="Someone Else")
    assert exc_info.value.message == "User already exists with this email"


def test_admin_creates_new_facility(db):
    user, _ = register(
        db, email="admin@example.edu", role="mess_admin", name="Ravi",
        facility_name="Lake Hostel", facility_type="hostel", mess_name="Lake Mess",
    )
    facility = db.get(models.Facility, user.facility_id)
    assert facility.name == "Lake Hostel"
    mess = facility.messes[0]
    assert mess.mess_id == user.mess_id
    assert mess.description == "Lake Mess - Managed by Ravi"
    assert mess.operating_hours["lunch"] == {"start": "12:00", "end": "16:00"}

    principal = principal_from_user(user)
    assert isinstance(principal, AdminPrincipal)
    assert principal.mess_type == "hostel_mess"


def test_admin_adds_mess_to_existing_facility(db, facility):
    user, _ = register(
        db, email="admin@example.edu", role="mess_admin",
        facility_name="sj hall", facility_type="college", mess_name="Annex Mess",
    )
    assert user.facility_id == facility.id
    db.refresh(facility)
    assert [m.name for m in facility.messes] == ["SJ Mess", "Annex Mess"]


def test_admin_mess_name_collision(db, facility):
    with pytest.raises(ConflictError):
        register(
            db, email="admin@example.edu", role="mess_admin",
            facility_name="SJ Hall", facility_type="college", mess_name="SJ MESS",
        )
    assert db.query(models.User).count() == 0


def test_admin_without_mess_is_rejected(db):
    with pytest.raises(ValidationError):
        register(db, email="admin@example.edu", role="mess_admin")


def test_login_success_resets_attempts(db):
    user, _ = register(db)
    user.login_attempts = 3
    db.commit()

    logged_in = identity_service.login(db, "asha@example.edu", PASSWORD)
    assert logged_in.login_attempts == 0
    assert logged_in.last_login is not None


def test_login_unknown_email(db):
    with pytest.raises(AuthenticationError) as exc_info:
        identity_service.login(db, "nobody@example.edu", PASSWORD)
    assert exc_info.value.status_code == 401


def test_failed_logins_lock_account(db):
    user, _ = register(db)
    for _ in range(5):
        with pytest.raises(AuthenticationError):
            identity_service.login(db, "asha@example.edu", "wrong")

    db.refresh(user)
    assert user.login_attempts == 5
    assert user.lock_until > utcnow()
    with pytest.raises(AccountLockedError) as exc_info:
        identity_service.login(db, "asha@example.edu", PASSWORD)
    assert exc_info.value.status_code == 423


def test_expired_lock_restarts_counter(db):
    user, _ = register(db)
    user.login_attempts = 5
    user.lock_until = utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(AuthenticationError):
        identity_service.login(db, "asha@example.edu", "wrong")
    db.refresh(user)
    assert user.login_attempts == 1
    assert user.lock_until is None


def test_deactivated_account(db):
    user, _ = register(db)
    user.is_active = False
    db.commit()
    with pytest.raises(AuthenticationError) as exc_info:
        identity_service.login(db, "asha@example.edu", PASSWORD)
    assert exc_info.value.message == "Account has been deactivated"


def test_update_details_ignores_course_for_admin(db):
    user, _ = register(
        db, email="admin@example.edu", role="mess_admin",
        facility_name="Lake Hostel", facility_type="hostel", mess_name="Lake Mess",
    )
    updated = identity_service.update_details(db, user.id, UpdateDetailsRequest(name="Ravi K", course="B.Tech"))
    assert updated.name == "Ravi K"
    assert updated.course is None


def test_update_password(db):
    user, _ = register(db)
    with pytest.raises(AuthenticationError):
        identity_service.update_password(
            db, user.id, UpdatePasswordRequest(current_password="wrong", new_password="n3w-pass"),
        )
    identity_service.update_password(
        db, user.id, UpdatePasswordRequest(current_password=PASSWORD, new_password="n3w-pass"),
    )
    assert identity_service.login(db, "asha@example.edu", "n3w-pass").id == user.id


def test_verify_email(db):
    user, token = register(db)
    with pytest.raises(ValidationError):
        identity_service.verify_email(db, "not-a-token")

    verified = identity_service.verify_email(db, token)
    assert verified.id == user.id
    assert verified.is_verified is True
    with pytest.raises(ValidationError):
        identity_service.verify_email(db, token)


def test_admin_cannot_reuse_inactive_facility_name(db):
    db.add(models.Facility(name="Old Hostel", type="hostel", is_active=False))
    db.commit()

    with pytest.raises(ConflictError) as exc_info:
        register(
            db, email="admin@example.edu", role="mess_admin",
            facility_name="Old Hostel", facility_type="hostel", mess_name="Old Mess",
        )
    assert exc_info.value.message == "Facility with this name already exists"
    assert db.query(models.User).count() == 0
    assert db.query(models.Facility).count() == 1
