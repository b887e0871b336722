from collections.abc import Callable, Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from allocator.core.exceptions import AuthorizationError
from allocator.core.security import decode_token
from allocator.db.session import SessionLocal
from allocator.models.user import User, UserRole

bearer = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token's ``sub`` to an active user; issuing tokens happens elsewhere."""
    unauthenticated = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        user_id = decode_token(credentials.credentials).get("sub")
    except JWTError as exc:
        raise unauthenticated from exc
    user = db.get(User, user_id) if user_id else None
    if user is None:
        raise unauthenticated
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    """Role gate for allocation endpoints; ownership checks stay in the services."""
    allowed = frozenset(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise AuthorizationError(
                f"{current_user.role.value.title()} accounts cannot perform this operation",
                details={
                    "role": current_user.role.value,
                    "allowed_roles": sorted(role.value for role in allowed),
                },
            )
        return current_user

    return role_checker
