"""
Authentication and authorization handler for DeliveryLink

Tokens are issued by the external identity service; this module only
verifies them and resolves the acting principal.
"""

from datetime import datetime, timedelta
from typing import Optional
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from deliverylink.config import settings

ACCESS_TOKEN_EXPIRE_MINUTES = 30

ROLE_BUSINESS = "business"
ROLE_DRIVER = "driver"
ROLE_ADMIN = "admin"

security = HTTPBearer()


class AuthHandler:
    """Handles token encoding and verification"""

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None):
        """Create a JWT access token"""
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

        to_encode.update({"exp": expire})
        encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return encoded_jwt

    def verify_token(self, token: str) -> dict:
        """Verify and decode a JWT token"""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
            return payload
        except JWTError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )


auth_handler = AuthHandler()


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Dependency to get current authenticated actor"""
    token = credentials.credentials
    payload = auth_handler.verify_token(token)

    user_id: str = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {
        "user_id": str(user_id),
        "role": payload.get("role", ROLE_BUSINESS),
        "name": payload.get("name"),
    }


# Role-based access control
class RoleChecker:
    """Check actor roles for authorization"""

    def __init__(self, allowed_roles: list):
        self.allowed_roles = allowed_roles

    def __call__(self, user: dict = Depends(get_current_user)):
        user_role = user.get("role", ROLE_BUSINESS)
        if user_role not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted"
            )
        return user


def is_admin(user: dict) -> bool:
    return user.get("role") == ROLE_ADMIN


# Common role checkers
admin_required = RoleChecker([ROLE_ADMIN])
business_required = RoleChecker([ROLE_BUSINESS, ROLE_ADMIN])
driver_required = RoleChecker([ROLE_DRIVER])
any_role_required = RoleChecker([ROLE_BUSINESS, ROLE_DRIVER, ROLE_ADMIN])
