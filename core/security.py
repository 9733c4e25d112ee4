"""Password hashing, access tokens and the authenticated principal.

The principal is a tagged union: students and mess admins carry the same
facility/mess pointer, and `role` tells them apart. Route handlers receive it
through the `get_current_principal` / `require_role` dependencies.
"""

from datetime import timedelta
from typing import Literal, Optional, Union

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.config import ACCESS_TOKEN_EXPIRE_MINUTES, BCRYPT_ROUNDS, JWT_ALGORITHM, JWT_SECRET
from core.exceptions import AuthenticationError, ForbiddenError
from core.utils import utcnow
from database import models
from database.deps import get_db_read
from schemas.common import MESS_TYPE_BY_FACILITY

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def create_access_token(user: models.User, expires_delta: Optional[timedelta] = None) -> str:
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {"sub": str(user.id), "role": user.role, "exp": expire}
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried by a token.

    Raises:
        AuthenticationError: If the token is invalid or expired.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise AuthenticationError("Invalid or expired token")


class _PrincipalBase(BaseModel):
    id: int
    name: str
    email: str
    facility_id: Optional[int] = None
    facility_name: Optional[str] = None
    facility_type: Optional[str] = None
    mess_id: Optional[str] = None

    @property
    def mess_type(self) -> Optional[str]:
        return MESS_TYPE_BY_FACILITY.get(self.facility_type)

    @property
    def has_facility(self) -> bool:
        return self.facility_id is not None and self.mess_id is not None


class StudentPrincipal(_PrincipalBase):
    role: Literal["student"] = "student"


class AdminPrincipal(_PrincipalBase):
    role: Literal["mess_admin"] = "mess_admin"


Principal = Union[StudentPrincipal, AdminPrincipal]


def principal_from_user(user: models.User) -> Principal:
    cls = StudentPrincipal if user.role == "student" else AdminPrincipal
    facility = user.facility
    return cls(
        id=user.id,
        name=user.name,
        email=user.email,
        facility_id=user.facility_id,
        facility_name=facility.name if facility else None,
        facility_type=facility.type if facility else None,
        mess_id=user.mess_id,
    )


def get_current_principal(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db_read),
) -> Principal:
    """Resolve the bearer token into a principal."""
    if not token:
        raise AuthenticationError()
    user = db.get(models.User, decode_access_token(token))
    if user is None or not user.is_active:
        raise AuthenticationError("User not found")
    return principal_from_user(user)


def get_optional_principal(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db_read),
) -> Optional[Principal]:
    """Like `get_current_principal` but anonymous callers get None."""
    if not token:
        return None
    try:
        return get_current_principal(token, db)
    except AuthenticationError:
        return None


def require_role(*roles: str):
    """Dependency factory admitting only principals with one of ``roles``.

    The principal must also be attached to a facility and mess, since every
    role-gated operation is tenant scoped.
    """
    def _guard(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise ForbiddenError(f"User role {principal.role} is not authorized to access this route")
        if not principal.has_facility:
            raise ForbiddenError("No facility assigned to user")
        return principal
    return _guard
