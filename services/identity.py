"""Account registration, login with lockout, and profile management."""

from datetime import timedelta
from typing import Tuple

from sqlalchemy.orm import Session

from core.config import EMAIL_VERIFICATION_HOURS, LOCKOUT_MINUTES, MAX_LOGIN_ATTEMPTS, MEAL_TIME_WINDOWS
from core.exceptions import AccountLockedError, AuthenticationError, ConflictError, NotFoundError, ValidationError
from core.logger import get_logger
from core.repository import BaseRepository, run_in_transaction
from core.security import hash_password, verify_password
from core.utils import generate_token, hash_token, utcnow
from database import models
from schemas.user_schema import RegisterRequest, UpdateDetailsRequest, UpdatePasswordRequest
from services.directory import FACILITY_CONFLICT, append_mess, directory_service, find_mess

logger = get_logger("services.identity")

EMAIL_CONFLICT = "User already exists with this email"


def meal_window_hours() -> dict:
    """Operating hours matching the rating windows, in ``HH:MM`` form."""
    return {
        meal: {"start": start.strftime("%H:%M"), "end": end.strftime("%H:%M")}
        for meal, (start, end) in MEAL_TIME_WINDOWS.items()
    }


class IdentityService:
    """Creates accounts and authenticates them."""

    def _users(self, session: Session) -> BaseRepository[models.User]:
        return BaseRepository(models.User, session, resource="User")

    def register(self, session: Session, payload: RegisterRequest) -> Tuple[models.User, str]:
        """Create an account and return it with its raw email-verification token.

        Students may join an existing facility and mess. Mess admins join an
        existing pair or name a facility and mess: the mess is added to an
        active facility of that name (ignoring case) or a new facility is
        created around it.

        Raises:
            ConflictError: If the email is taken, the new mess name collides,
                or the facility name belongs to an inactive facility.
            NotFoundError: If a selected facility or mess does not exist.
            ValidationError: If a mess admin neither selects nor creates a mess.
        """
        raw_token, token_hash = generate_token()

        def operation():
            users = self._users(session)
            if users.first(email=payload.email) is not None:
                raise ConflictError(EMAIL_CONFLICT, resource="User")

            user = models.User(
                email=payload.email,
                password_hash=hash_password(payload.password),
                name=payload.name,
                phone=payload.phone,
                role=payload.role.value,
                email_verification_token=token_hash,
                email_verification_expires=utcnow() + timedelta(hours=EMAIL_VERIFICATION_HOURS),
            )
            if payload.role.value == "student":
                user.course = payload.course
                user.year = payload.year
                if payload.facility_id is not None or payload.mess_id is not None:
                    facility, mess = self._select_existing(session, payload)
                    user.facility_id, user.mess_id = facility.id, mess.mess_id
                    if facility.type == "college" and payload.college_id:
                        user.college_id = payload.college_id.strip()
                    elif facility.type == "hostel" and payload.hostel_id:
                        user.hostel_id = payload.hostel_id.strip()
            elif payload.facility_id is not None and payload.mess_id is not None:
                facility, mess = self._select_existing(session, payload)
                user.facility_id, user.mess_id = facility.id, mess.mess_id
            elif payload.facility_name and payload.facility_type and payload.mess_name:
                facility, mess = self._create_admin_mess(session, payload)
                user.facility_id, user.mess_id = facility.id, mess.mess_id
            else:
                raise ValidationError("Mess admin must either select existing facility/mess or create new ones")

            return users.add(user)

        user = run_in_transaction(session, operation, name="register", conflict_message=EMAIL_CONFLICT)
        logger.info("Registered %s user id=%s", user.role, user.id)
        return user, raw_token

    def _select_existing(self, session: Session, payload: RegisterRequest):
        if payload.facility_id is None or payload.mess_id is None:
            raise ValidationError("Select both a facility and a mess", field="mess_id")
        facility = session.get(models.Facility, payload.facility_id)
        if facility is None:
            raise NotFoundError("Facility", payload.facility_id)
        mess = find_mess(facility, payload.mess_id)
        if mess is None:
            raise NotFoundError("Mess", payload.mess_id)
        return facility, mess

    def _create_admin_mess(self, session: Session, payload: RegisterRequest):
        description = f"{payload.mess_name} - Managed by {payload.name}"
        facility = directory_service.find_active_facility_by_name(session, payload.facility_name)
        if facility is None:
            name = payload.facility_name.strip()
            # an inactive facility still holds its name
            if session.query(models.Facility).filter(models.Facility.name == name).first() is not None:
                raise ConflictError(FACILITY_CONFLICT, resource="Facility")
            facility = models.Facility(
                name=name,
                type=payload.facility_type.value,
                is_active=True,
            )
            session.add(facility)
        mess = append_mess(facility, payload.mess_name, description=description, operating_hours=meal_window_hours())
        session.flush()
        return facility, mess

    def login(self, session: Session, email: str, password: str) -> models.User:
        """Check credentials and stamp the login.

        Failed attempts are counted; reaching the limit locks the account.
        An expired lock restarts the count at one.

        Raises:
            AuthenticationError: On unknown email, wrong password or an
                inactive account.
            AccountLockedError: While the account is locked.
        """
        user = self._users(session).first(email=email)
        if user is None:
            raise AuthenticationError("Invalid credentials")

        now = utcnow()
        if user.lock_until is not None and user.lock_until > now:
            raise AccountLockedError(user.lock_until)
        if not user.is_active:
            raise AuthenticationError("Account has been deactivated")

        if not verify_password(password, user.password_hash):
            self._record_failed_attempt(session, user, now)
            raise AuthenticationError("Invalid credentials")

        user.login_attempts = 0
        user.lock_until = None
        user.last_login = now
        session.commit()
        logger.info("User id=%s logged in", user.id)
        return user

    def _record_failed_attempt(self, session: Session, user: models.User, now) -> None:
        if user.lock_until is not None and user.lock_until <= now:
            user.lock_until = None
            user.login_attempts = 1
        else:
            user.login_attempts = (user.login_attempts or 0) + 1
            if user.login_attempts >= MAX_LOGIN_ATTEMPTS:
                user.lock_until = now + timedelta(minutes=LOCKOUT_MINUTES)
                logger.warning("User id=%s locked until %s", user.id, user.lock_until)
        session.commit()

    def get_user(self, session: Session, user_id: int) -> models.User:
        return self._users(session).get_or_raise(user_id)

    def update_details(self, session: Session, user_id: int, payload: UpdateDetailsRequest) -> models.User:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        def operation():
            user = self._users(session).get_or_raise(user_id)
            for key, value in changes.items():
                if key in ("course", "year") and user.role != "student":
                    continue
                setattr(user, key, value)
            return user

        return run_in_transaction(session, operation, name="update_details")

    def update_password(self, session: Session, user_id: int, payload: UpdatePasswordRequest) -> models.User:
        """Replace the password after checking the current one.

        Raises:
            AuthenticationError: If ``current_password`` does not match.
        """
        def operation():
            user = self._users(session).get_or_raise(user_id)
            if not verify_password(payload.current_password, user.password_hash):
                raise AuthenticationError("Current password is incorrect")
            user.password_hash = hash_password(payload.new_password)
            return user

        user = run_in_transaction(session, operation, name="update_password")
        logger.info("Password updated for user id=%s", user_id)
        return user

    def verify_email(self, session: Session, token: str) -> models.User:
        """Mark the account owning ``token`` as verified.

        Raises:
            ValidationError: If the token is unknown or expired.
        """
        def operation():
            user = self._users(session).first(
                models.User.email_verification_token == hash_token(token),
                models.User.email_verification_expires > utcnow(),
            )
            if user is None:
                raise ValidationError("Invalid or expired verification token", field="token")
            user.is_verified = True
            user.email_verification_token = None
            user.email_verification_expires = None
            return user

        return run_in_transaction(session, operation, name="verify_email")


identity_service = IdentityService()
