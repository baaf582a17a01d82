# uplaw/api/v1/deps.py

from typing import List
from uuid import UUID

from fastapi import Depends, Request, UploadFile
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt

from uplaw.core.config import settings
from uplaw.db.database import get_db
from uplaw.db.models import AccountStatus, User, UserRole
from uplaw.services.storage_service import IncomingFile, StorageGateway
from uplaw.utils.exceptions import (
    AuthenticationError,
    BadRequestError,
    ForbiddenError,
    UnauthorizedError,
)

security = HTTPBearer(auto_error=False)

# ============================================================================
# JWT Dependency
# ============================================================================

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Validate JWT token and return current user.
    """
    if credentials is None:
        raise AuthenticationError("Authentication required")

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid token")

    # Accept either "sub" (standard JWT) or "user_id"
    raw_user_id = payload.get("sub") or payload.get("user_id")
    try:
        user_id = UUID(str(raw_user_id))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token")

    user = db.query(User).filter(User.id == user_id).first()

    if not user or user.is_deleted:
        raise AuthenticationError("User not found")

    if user.account_status in (AccountStatus.suspended, AccountStatus.blocked):
        raise ForbiddenError("User account is suspended or blocked")

    return user


def require_role(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given roles.
    """
    def _checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise UnauthorizedError("You do not have permission to perform this action")
        return current_user

    return _checker


# ============================================================================
# Storage / Uploads
# ============================================================================

def get_storage(request: Request) -> StorageGateway:
    return request.app.state.storage


def to_incoming_files(files: List[UploadFile]) -> List[IncomingFile]:
    """Convert multipart uploads into storage-gateway input."""
    files = [f for f in (files or []) if f is not None and f.filename]
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise BadRequestError(f"A maximum of {settings.MAX_UPLOAD_FILES} files can be uploaded at once")

    return [
        IncomingFile(
            filename=f.filename,
            content_type=f.content_type or "application/octet-stream",
            fileobj=f.file,
            size=f.size,
        )
        for f in files
    ]
